"""Three-way ownership classification of tracked files.

- ck: installed by claudekit and unmodified since
- ck-modified: installed by claudekit but the on-disk content diverged
- user: never installed by claudekit
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from claudekit.concurrency import ProgressCallback, run_bounded
from claudekit.io.checksum import ChecksumCache
from claudekit.models.metadata import Ownership, TrackedFile

logger = logging.getLogger(__name__)


def classify(current_checksum: str, tracked: TrackedFile | None) -> Ownership:
    """Classify a file from its current checksum and its tracked record.

    Pure: callers supply the checksum of what is on disk.
    """
    if tracked is None:
        return "user"
    if current_checksum == tracked.checksum:
        return "ck"
    return "ck-modified"


@dataclass(frozen=True)
class OwnershipCheckResult:
    path: Path
    ownership: Ownership
    exists: bool
    expected_checksum: str | None = None
    actual_checksum: str | None = None


def check_ownership(
    file_path: Path, tracked: TrackedFile | None, cache: ChecksumCache
) -> OwnershipCheckResult:
    """Checksum a file on disk and classify it against its tracked record.

    A missing file is reported as `user` with exists=False.

    Raises:
        OSError: If the file exists but cannot be read
    """
    if not file_path.is_file():
        return OwnershipCheckResult(path=file_path, ownership="user", exists=False)

    actual = cache.checksum(file_path)
    ownership = classify(actual, tracked)
    logger.debug("Ownership of %s: %s", file_path, ownership)
    return OwnershipCheckResult(
        path=file_path,
        ownership=ownership,
        exists=True,
        expected_checksum=tracked.checksum if tracked is not None else None,
        actual_checksum=actual,
    )


def check_ownership_batch(
    files: list[tuple[Path, TrackedFile | None]],
    cache: ChecksumCache,
    *,
    concurrency: int,
    on_progress: ProgressCallback | None = None,
) -> list[OwnershipCheckResult]:
    """Classify many files in parallel.

    Files that cannot be read are reported as `user` with exists=True so
    they are never treated as safe to delete or overwrite.
    """
    batch = run_bounded(
        files,
        lambda item: check_ownership(item[0], item[1], cache),
        concurrency=concurrency,
        on_progress=on_progress,
    )
    results: list[OwnershipCheckResult] = []
    for (path, _tracked), result in zip(files, batch.results, strict=True):
        if result is None:
            results.append(OwnershipCheckResult(path=path, ownership="user", exists=True))
        else:
            results.append(result)
    return results


def effective_ownership(current_checksum: str, tracked: TrackedFile | None) -> Ownership:
    """Ownership for destructive decisions (delete, uninstall).

    Like classify(), but a record whose recorded ownership is `user` stays
    `user` no matter what is on disk.
    """
    if tracked is not None and tracked.ownership == "user":
        return "user"
    return classify(current_checksum, tracked)
