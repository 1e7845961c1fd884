"""Models for the metadata.json installation manifest.

A manifest is either legacy-shaped (one kit, flat fields) or multi-kit
shaped (a `kits` map). The two shapes are modeled as a tagged union with
an in-memory `kind` tag that is never persisted. `migrate()` is the only
conversion between them and it only goes legacy -> multi-kit.
"""

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from claudekit.models.kits import detect_legacy_kits

Ownership = Literal["ck", "ck-modified", "user"]
Scope = Literal["local", "global"]

CHECKSUM_PATTERN = re.compile(r"^[a-f0-9]{64}$")


def normalize_path(path: str) -> str:
    """Normalize a tracked path to POSIX separators without a leading ./"""
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


class TrackedFile(BaseModel):
    """One file recorded in a kit's manifest entry."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    path: str
    checksum: str
    ownership: Ownership
    installed_version: str = Field(alias="installedVersion")
    source_timestamp: str | None = Field(default=None, alias="sourceTimestamp")
    installed_at: str | None = Field(default=None, alias="installedAt")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        normalized = normalize_path(v)
        if not normalized:
            msg = "path cannot be empty"
            raise ValueError(msg)
        return normalized

    @field_validator("checksum")
    @classmethod
    def validate_checksum(cls, v: str) -> str:
        if not CHECKSUM_PATTERN.match(v):
            msg = f"Invalid SHA-256 checksum: {v!r}"
            raise ValueError(msg)
        return v


class InstalledSettings(BaseModel):
    """settings.json entries a kit has ever injected.

    Used to avoid re-adding hooks or MCP servers the user removed.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    hooks: list[str] = Field(default_factory=list)
    mcp_servers: list[str] = Field(default_factory=list, alias="mcpServers")


class KitManifestEntry(BaseModel):
    """One kit's installation record inside a shared target directory."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    version: str
    installed_at: str = Field(alias="installedAt")
    files: list[TrackedFile] = Field(default_factory=list)
    installed_settings: InstalledSettings | None = Field(default=None, alias="installedSettings")

    @field_validator("files", mode="before")
    @classmethod
    def coerce_missing_files(cls, v: Any) -> Any:
        if v is None:
            return []
        return v

    @model_validator(mode="after")
    def validate_unique_paths(self) -> "KitManifestEntry":
        seen: set[str] = set()
        for tracked in self.files:
            if tracked.path in seen:
                msg = f"Duplicate tracked path in kit entry: {tracked.path}"
                raise ValueError(msg)
            seen.add(tracked.path)
        return self

    def find_file(self, path: str) -> TrackedFile | None:
        normalized = normalize_path(path)
        for tracked in self.files:
            if tracked.path == normalized:
                return tracked
        return None

    def file_paths(self) -> set[str]:
        return {tracked.path for tracked in self.files}


class LegacyMetadata(BaseModel):
    """Pre multi-kit manifest: exactly one kit with flat fields."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    kind: Literal["legacy"] = Field(default="legacy", exclude=True)
    name: str | None = None
    version: str | None = None
    installed_at: str | None = Field(default=None, alias="installedAt")
    scope: Scope | None = None
    files: list[TrackedFile] = Field(default_factory=list)

    @field_validator("files", mode="before")
    @classmethod
    def coerce_missing_files(cls, v: Any) -> Any:
        if v is None:
            return []
        return v


class MultiKitMetadata(BaseModel):
    """Current manifest shape: a map of kit name to KitManifestEntry.

    Top-level `name` and `version` are cosmetic leftovers for display and are
    never authoritative once `kits` exists.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    kind: Literal["multikit"] = Field(default="multikit", exclude=True)
    kits: dict[str, KitManifestEntry] = Field(default_factory=dict)
    scope: Scope | None = None
    deletions: list[str] | None = None
    name: str | None = None
    version: str | None = None

    def with_kit(self, kit: str, entry: KitManifestEntry) -> "MultiKitMetadata":
        """Return new metadata with one kit entry upserted."""
        return self.model_copy(update={"kits": {**self.kits, kit: entry}})

    def without_kit(self, kit: str) -> "MultiKitMetadata":
        """Return new metadata with one kit entry removed."""
        remaining = {name: entry for name, entry in self.kits.items() if name != kit}
        return self.model_copy(update={"kits": remaining})


Metadata = LegacyMetadata | MultiKitMetadata

# Extra keys carried by legacy documents that have no meaning after migration
_LEGACY_ONLY_KEYS = ("installedFiles", "userConfigFiles")


def parse_metadata(data: Any) -> Metadata:
    """Parse a decoded metadata.json document into the tagged union.

    A document with a `kits` key is multi-kit shaped (even if the map is
    empty, which happens after the last kit was removed). Otherwise it is
    legacy shaped if it carries any of `name`, `version` or `files`.

    Raises:
        ValueError: If the document matches neither shape or fails validation
    """
    if not isinstance(data, dict):
        msg = f"metadata must be a JSON object, got {type(data).__name__}"
        raise ValueError(msg)

    if "kits" in data:
        return MultiKitMetadata.model_validate(data)

    if any(key in data for key in ("name", "version", "files")):
        return LegacyMetadata.model_validate(data)

    msg = "metadata has unrecognized format (missing kits, name, version, or files)"
    raise ValueError(msg)


def metadata_to_dict(metadata: Metadata) -> dict[str, Any]:
    """Convert metadata to its persisted JSON form (camelCase, no nulls)."""
    return metadata.model_dump(by_alias=True, exclude_none=True)


def legacy_kit_key(legacy: LegacyMetadata) -> str:
    """The kit key a legacy manifest migrates under."""
    return detect_legacy_kits(legacy.name)[0]


def migrate(legacy: LegacyMetadata, kit: str | None = None) -> MultiKitMetadata:
    """Convert a legacy manifest into the multi-kit shape.

    The legacy kit's version, timestamp and files move under `kit` (inferred
    from the legacy display name when not given). Top-level name/version are
    kept for display.
    """
    kit_key = kit if kit is not None else legacy_kit_key(legacy)
    entry = KitManifestEntry(
        version=legacy.version or "unknown",
        installed_at=legacy.installed_at or "",
        files=list(legacy.files),
    )
    extras = {
        key: value
        for key, value in (legacy.model_extra or {}).items()
        if key not in _LEGACY_ONLY_KEYS
    }
    return MultiKitMetadata.model_validate(
        {
            **extras,
            "kits": {kit_key: entry.model_dump(by_alias=True, exclude_none=True)},
            "scope": legacy.scope,
            "name": legacy.name,
            "version": legacy.version,
        }
    )


def get_installed_kits(metadata: Metadata) -> list[str]:
    """Names of all kits recorded in the manifest."""
    if isinstance(metadata, MultiKitMetadata):
        return list(metadata.kits)
    return detect_legacy_kits(metadata.name)


def get_kit_entry(metadata: Metadata, kit: str) -> KitManifestEntry | None:
    """Return one kit's entry, treating a legacy manifest as its single kit."""
    if isinstance(metadata, MultiKitMetadata):
        return metadata.kits.get(kit)

    if kit not in get_installed_kits(metadata):
        return None
    return KitManifestEntry(
        version=metadata.version or "unknown",
        installed_at=metadata.installed_at or "",
        files=list(metadata.files),
    )


def get_all_tracked_files(metadata: Metadata) -> list[TrackedFile]:
    """All tracked files across all kits (may contain repeated paths)."""
    if isinstance(metadata, MultiKitMetadata):
        files: list[TrackedFile] = []
        for entry in metadata.kits.values():
            files.extend(entry.files)
        return files
    return list(metadata.files)
