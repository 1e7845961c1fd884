"""Loading a decompressed release tree.

A release is a directory holding the kit files, either directly or under a
`.claude` subfolder, plus two optional control files:

- release-manifest.json: checksums of every file the release owns
- metadata.json: the release's name, version and `deletions` list
"""

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from claudekit.errors import ReleaseError
from claudekit.models.release import ReleaseManifest, ReleaseMetadata

logger = logging.getLogger(__name__)

RELEASE_MANIFEST_FILENAME = "release-manifest.json"
RELEASE_METADATA_FILENAME = "metadata.json"

# Control files that describe the release and are never merged into a target
RELEASE_CONTROL_FILES = frozenset({RELEASE_MANIFEST_FILENAME, RELEASE_METADATA_FILENAME})


def get_release_kit_root(release_dir: Path) -> Path:
    """Return the folder holding kit files: `<release>/.claude` if present."""
    nested = release_dir / ".claude"
    if nested.is_dir():
        return nested
    return release_dir


def _find_control_file(release_dir: Path, filename: str) -> Path | None:
    for candidate in (get_release_kit_root(release_dir) / filename, release_dir / filename):
        if candidate.is_file():
            return candidate
    return None


def _read_json(path: Path) -> object:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ReleaseError(f"Cannot read {path}: {e}") from e


def load_release_manifest(release_dir: Path) -> ReleaseManifest | None:
    """Load release-manifest.json, or None when the release ships without one.

    Raises:
        ReleaseError: If the file exists but is malformed
    """
    path = _find_control_file(release_dir, RELEASE_MANIFEST_FILENAME)
    if path is None:
        logger.debug("No %s in %s", RELEASE_MANIFEST_FILENAME, release_dir)
        return None

    try:
        manifest = ReleaseManifest.model_validate(_read_json(path))
    except ValidationError as e:
        raise ReleaseError(f"Invalid release manifest {path}: {e}") from e
    logger.debug("Loaded release manifest %s (%d files)", path, len(manifest.files))
    return manifest


def load_release_metadata(release_dir: Path) -> ReleaseMetadata | None:
    """Load the release's metadata.json, or None when absent.

    Raises:
        ReleaseError: If the file exists but is malformed
    """
    path = _find_control_file(release_dir, RELEASE_METADATA_FILENAME)
    if path is None:
        return None

    try:
        return ReleaseMetadata.model_validate(_read_json(path))
    except ValidationError as e:
        raise ReleaseError(f"Invalid release metadata {path}: {e}") from e
