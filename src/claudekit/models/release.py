"""Models for files shipped inside a release tree."""

from pydantic import BaseModel, ConfigDict, Field

from claudekit.models.metadata import normalize_path


class ReleaseManifestFile(BaseModel):
    """One CK-owned file listed in release-manifest.json."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    path: str
    checksum: str
    size: int
    last_modified: str | None = Field(default=None, alias="lastModified")


class ReleaseManifest(BaseModel):
    """release-manifest.json: checksums of every file the release owns.

    Paths are relative to the kit root (the `.claude` folder).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    version: str = "unknown"
    generated_at: str | None = Field(default=None, alias="generatedAt")
    files: list[ReleaseManifestFile] = Field(default_factory=list)

    def find_file(self, path: str) -> ReleaseManifestFile | None:
        normalized = normalize_path(path)
        for entry in self.files:
            if normalize_path(entry.path) == normalized:
                return entry
        return None

    def as_map(self) -> dict[str, ReleaseManifestFile]:
        return {normalize_path(entry.path): entry for entry in self.files}


class ReleaseMetadata(BaseModel):
    """The release's own metadata.json (name, version, deprecated paths)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str | None = None
    version: str | None = None
    description: str | None = None
    deletions: list[str] = Field(default_factory=list)
