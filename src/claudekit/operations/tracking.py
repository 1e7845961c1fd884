"""Recording checksums and ownership for files an install placed on disk."""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path

from claudekit.clock import Clock
from claudekit.concurrency import ProgressCallback, run_bounded
from claudekit.io.checksum import ChecksumCache
from claudekit.models.metadata import Ownership, TrackedFile, normalize_path
from claudekit.models.release import ReleaseManifest

logger = logging.getLogger(__name__)

KIT_DIR_PREFIX = ".claude/"


@dataclass(frozen=True)
class FileTrackInfo:
    """One file to checksum and record.

    Attributes:
        file_path: Absolute path of the installed file
        relative_path: Path relative to the kit root
        ownership: Ownership to record
        installed_version: Release tag that installed the file
        source_timestamp: Commit time of the file in the kit repo, if known
    """

    file_path: Path
    relative_path: str
    ownership: Ownership
    installed_version: str
    source_timestamp: str | None = None


@dataclass(frozen=True)
class BatchTrackResult:
    success: int
    failed: int
    total: int


class ManifestTracker:
    """Accumulates TrackedFile records for one kit during an install."""

    def __init__(self, cache: ChecksumCache, clock: Clock) -> None:
        self._cache = cache
        self._clock = clock
        self._tracked: dict[str, TrackedFile] = {}
        self._lock = threading.Lock()

    def add_tracked_file(self, info: FileTrackInfo) -> TrackedFile:
        """Checksum one file and record it.

        Raises:
            OSError: If the file cannot be read
        """
        tracked = TrackedFile(
            path=normalize_path(info.relative_path),
            checksum=self._cache.checksum(info.file_path),
            ownership=info.ownership,
            installed_version=info.installed_version,
            source_timestamp=info.source_timestamp,
            installed_at=self._clock.now_iso(),
        )
        with self._lock:
            self._tracked[tracked.path] = tracked
        return tracked

    def add_tracked_files_batch(
        self,
        files: list[FileTrackInfo],
        *,
        concurrency: int,
        on_progress: ProgressCallback | None = None,
    ) -> BatchTrackResult:
        """Track many files in parallel; unreadable files are counted, not raised."""
        batch = run_bounded(
            files, self.add_tracked_file, concurrency=concurrency, on_progress=on_progress
        )
        for failure in batch.failures:
            logger.debug("Failed to track %s: %s", failure.item.relative_path, failure.error)
        return BatchTrackResult(success=batch.succeeded, failed=batch.failed, total=len(files))

    def tracked_files(self) -> list[TrackedFile]:
        with self._lock:
            return sorted(self._tracked.values(), key=lambda tracked: tracked.path)


def to_kit_relative(installed_path: str, *, is_global: bool) -> str | None:
    """Map a path relative to the install target onto the kit root.

    Local installs target the project directory, so only paths under
    `.claude/` belong to the kit. Global installs target the kit root itself.
    """
    normalized = normalize_path(installed_path)
    if is_global:
        return normalized
    if not normalized.startswith(KIT_DIR_PREFIX):
        return None
    return normalized[len(KIT_DIR_PREFIX) :]


def build_file_tracking_list(
    installed_files: list[str],
    claude_dir: Path,
    release_manifest: ReleaseManifest | None,
    installed_version: str,
    *,
    is_global: bool,
) -> list[FileTrackInfo]:
    """Build the tracking list for files the merger installed or confirmed.

    Files listed in the release manifest are recorded as `ck`, others as
    `user`. Without a release manifest every installed kit file is `ck`.
    """
    manifest_map = release_manifest.as_map() if release_manifest is not None else None
    files: list[FileTrackInfo] = []

    for installed_path in installed_files:
        relative = to_kit_relative(installed_path, is_global=is_global)
        if relative is None:
            continue

        source_timestamp = None
        if manifest_map is None:
            ownership: Ownership = "ck"
        else:
            entry = manifest_map.get(relative)
            ownership = "ck" if entry is not None else "user"
            source_timestamp = entry.last_modified if entry is not None else None

        files.append(
            FileTrackInfo(
                file_path=claude_dir / relative,
                relative_path=relative,
                ownership=ownership,
                installed_version=installed_version,
                source_timestamp=source_timestamp,
            )
        )
    return files
