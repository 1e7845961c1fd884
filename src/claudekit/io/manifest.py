"""Manifest store: reading and writing metadata.json.

All writes go through `save_metadata`, which writes a temporary file and
renames it over the target so a crash never leaves a half-written manifest.
There is no locking against other processes touching the same directory.
"""

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from claudekit.errors import ManifestWriteError
from claudekit.models.kits import infer_kit_type
from claudekit.models.metadata import (
    InstalledSettings,
    KitManifestEntry,
    LegacyMetadata,
    Metadata,
    MultiKitMetadata,
    Scope,
    TrackedFile,
    get_kit_entry,
    legacy_kit_key,
    metadata_to_dict,
    migrate,
    normalize_path,
    parse_metadata,
)

logger = logging.getLogger(__name__)

METADATA_FILENAME = "metadata.json"

MetadataFormat = Literal["none", "legacy", "multikit"]


@dataclass(frozen=True)
class MetadataFormatDetection:
    """Which shape the on-disk manifest has, if any."""

    format: MetadataFormat
    metadata: Metadata | None
    detected_kit: str | None


@dataclass(frozen=True)
class MigrationResult:
    """Outcome of migrate_to_multi_kit."""

    migrated: bool
    from_format: MetadataFormat
    kit: str | None = None


@dataclass(frozen=True)
class InstalledFileLookup:
    """Where (if anywhere) a path is tracked among installed kits."""

    exists: bool
    owner_kit: str | None = None
    checksum: str | None = None
    version: str | None = None
    source_timestamp: str | None = None
    tracked: TrackedFile | None = None


def get_metadata_path(claude_dir: Path) -> Path:
    return claude_dir / METADATA_FILENAME


def read_manifest(claude_dir: Path) -> Metadata | None:
    """Load metadata.json from a kit directory.

    Returns None when the file is absent, is not valid JSON, or matches
    neither manifest shape. Callers treat None as "no prior state".
    """
    path = get_metadata_path(claude_dir)
    if not path.exists():
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return parse_metadata(data)
    except (OSError, ValueError) as e:
        # pydantic's ValidationError and JSONDecodeError are both ValueErrors
        logger.warning("Failed to read %s (may be corrupted): %s", path, e)
        return None


def read_kit_manifest(claude_dir: Path, kit: str) -> KitManifestEntry | None:
    """Return one kit's entry, or None if the manifest or the kit is absent."""
    metadata = read_manifest(claude_dir)
    if metadata is None:
        return None
    return get_kit_entry(metadata, kit)


def save_metadata(claude_dir: Path, metadata: Metadata) -> None:
    """Write metadata.json atomically.

    Raises:
        ManifestWriteError: If the file cannot be written
    """
    path = get_metadata_path(claude_dir)
    temp_path = path.with_suffix(".json.tmp")
    content = json.dumps(metadata_to_dict(metadata), indent=2) + "\n"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path.write_text(content, encoding="utf-8")
        temp_path.replace(path)
    except OSError as e:
        if temp_path.exists():
            temp_path.unlink()
        raise ManifestWriteError(f"Failed to write {path}: {e}") from e


def detect_metadata_format(claude_dir: Path) -> MetadataFormatDetection:
    metadata = read_manifest(claude_dir)
    if metadata is None:
        return MetadataFormatDetection(format="none", metadata=None, detected_kit=None)
    if isinstance(metadata, LegacyMetadata):
        return MetadataFormatDetection(
            format="legacy", metadata=metadata, detected_kit=legacy_kit_key(metadata)
        )
    first_kit = next(iter(metadata.kits), None)
    return MetadataFormatDetection(format="multikit", metadata=metadata, detected_kit=first_kit)


def migrate_to_multi_kit(claude_dir: Path) -> MigrationResult:
    """Rewrite a legacy metadata.json in the multi-kit shape.

    No-op for a missing or already multi-kit manifest.

    Raises:
        ManifestWriteError: If the migrated document cannot be written
    """
    detection = detect_metadata_format(claude_dir)
    if not isinstance(detection.metadata, LegacyMetadata):
        return MigrationResult(migrated=False, from_format=detection.format)

    migrated = migrate(detection.metadata)
    save_metadata(claude_dir, migrated)
    logger.info(
        "Migrated metadata from legacy format to multi-kit (detected: %s)",
        detection.detected_kit,
    )
    return MigrationResult(migrated=True, from_format="legacy", kit=detection.detected_kit)


def _load_multi_kit(claude_dir: Path) -> MultiKitMetadata:
    metadata = read_manifest(claude_dir)
    if metadata is None:
        return MultiKitMetadata()
    if isinstance(metadata, LegacyMetadata):
        logger.info("Migrating legacy metadata in %s before update", claude_dir)
        return migrate(metadata)
    return metadata


def write_manifest(
    claude_dir: Path,
    kit_display_name: str,
    version: str,
    scope: Scope,
    kit_type: str | None,
    tracked_files: list[TrackedFile],
    installed_settings: InstalledSettings | None = None,
    *,
    deletions: list[str] | None = None,
    installed_at: str | None = None,
) -> MultiKitMetadata:
    """Upsert one kit's entry in metadata.json.

    A legacy document is migrated first. Other kits' entries are left
    untouched. The cosmetic top-level name/version come from the first kit
    ever written and are never overwritten.

    Args:
        claude_dir: Kit root directory holding metadata.json
        kit_display_name: Release display name (e.g. "ClaudeKit Engineer")
        version: Release tag being installed
        scope: Installation scope
        kit_type: Kit key; inferred from kit_display_name when None
        tracked_files: Complete file list for this kit after the install
        installed_settings: settings.json entries this kit has injected
        deletions: Deprecated paths declared by the release
        installed_at: ISO-8601 timestamp (defaults to now, UTC)

    Returns:
        The metadata that was written

    Raises:
        UnknownKitError: If kit_type is None and cannot be inferred
        ManifestWriteError: If metadata.json cannot be written
    """
    kit = kit_type if kit_type is not None else infer_kit_type(kit_display_name)
    timestamp = installed_at if installed_at is not None else datetime.now(UTC).isoformat()

    existing = _load_multi_kit(claude_dir)
    previous = existing.kits.get(kit)
    settings = installed_settings
    if settings is None and previous is not None:
        settings = previous.installed_settings

    entry = KitManifestEntry(
        version=version,
        installed_at=timestamp,
        files=sorted(tracked_files, key=lambda tracked: tracked.path),
        installed_settings=settings,
    )

    updates: dict[str, object] = {"scope": scope}
    if existing.name is None:
        updates["name"] = kit_display_name
    if existing.version is None:
        updates["version"] = version
    if deletions:
        updates["deletions"] = sorted(set(deletions))

    metadata = existing.with_kit(kit, entry).model_copy(update=updates)
    save_metadata(claude_dir, metadata)
    logger.debug("Wrote manifest for kit %r with %d tracked files", kit, len(tracked_files))
    return metadata


def remove_kit_from_manifest(claude_dir: Path, kit: str) -> bool:
    """Remove one kit's entry from metadata.json.

    Returns False if there is no manifest or the kit is not in it. When the
    last kit is removed the document is still written (with an empty kits
    map); deleting it is the caller's decision.

    Raises:
        ManifestWriteError: If metadata.json cannot be written
    """
    metadata = read_manifest(claude_dir)
    if metadata is None:
        return False
    if isinstance(metadata, LegacyMetadata):
        metadata = migrate(metadata)
    if kit not in metadata.kits:
        return False

    updated = metadata.without_kit(kit)
    save_metadata(claude_dir, updated)
    logger.debug("Removed kit %r from metadata, %d kit(s) remaining", kit, len(updated.kits))
    return True


def find_file_in_metadata(
    metadata: Metadata | None, path: str, exclude_kit: str | None = None
) -> InstalledFileLookup:
    """Search every installed kit (except exclude_kit) for a tracked path."""
    if metadata is None:
        return InstalledFileLookup(exists=False)
    if isinstance(metadata, LegacyMetadata):
        metadata = migrate(metadata)

    normalized = normalize_path(path)
    for kit, entry in metadata.kits.items():
        if kit == exclude_kit:
            continue
        tracked = entry.find_file(normalized)
        if tracked is not None:
            return InstalledFileLookup(
                exists=True,
                owner_kit=kit,
                checksum=tracked.checksum,
                version=entry.version,
                source_timestamp=tracked.source_timestamp,
                tracked=tracked,
            )
    return InstalledFileLookup(exists=False)


def find_file_in_installed_kits(
    claude_dir: Path, path: str, exclude_kit: str | None = None
) -> InstalledFileLookup:
    """Read metadata.json and search it with find_file_in_metadata."""
    return find_file_in_metadata(read_manifest(claude_dir), path, exclude_kit)


def _is_deleted(path: str, deleted: set[str]) -> bool:
    if path in deleted:
        return True
    return any(path.startswith(f"{prefix}/") for prefix in deleted)


def update_metadata_after_deletion(claude_dir: Path, deleted_paths: list[str]) -> int:
    """Drop deleted paths (and anything under a deleted directory) from all kits.

    Returns:
        Number of tracked entries removed

    Raises:
        ManifestWriteError: If metadata.json cannot be written
    """
    if not deleted_paths:
        return 0
    metadata = read_manifest(claude_dir)
    if metadata is None:
        return 0

    deleted = {normalize_path(p).rstrip("/") for p in deleted_paths}
    removed = 0

    if isinstance(metadata, LegacyMetadata):
        kept = [f for f in metadata.files if not _is_deleted(f.path, deleted)]
        removed = len(metadata.files) - len(kept)
        updated: Metadata = metadata.model_copy(update={"files": kept})
    else:
        kits: dict[str, KitManifestEntry] = {}
        for kit, entry in metadata.kits.items():
            kept = [f for f in entry.files if not _is_deleted(f.path, deleted)]
            removed += len(entry.files) - len(kept)
            kits[kit] = entry.model_copy(update={"files": kept})
        updated = metadata.model_copy(update={"kits": kits})

    if removed:
        save_metadata(claude_dir, updated)
        logger.debug("Removed %d deleted path(s) from metadata", removed)
    return removed
