"""Data models for claudekit.

Import from submodules:
- metadata: TrackedFile, KitManifestEntry, LegacyMetadata, MultiKitMetadata, migrate
- kits: AVAILABLE_KITS, infer_kit_type
- release: ReleaseManifest, ReleaseMetadata
- settings: ClaudeSettings, MatcherGroup
"""
