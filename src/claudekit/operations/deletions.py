"""Cleanup of files a release declares deprecated.

A release's metadata.json may carry a `deletions` list of paths or glob
patterns. Each match is deleted only if the installing kit owns it
unmodified and no other kit tracks it.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from claudekit.errors import PathTraversalError
from claudekit.io.checksum import ChecksumCache
from claudekit.io.manifest import (
    find_file_in_metadata,
    read_manifest,
    update_metadata_after_deletion,
)
from claudekit.io.scanner import build_spec, is_glob_pattern, scan_files
from claudekit.models.metadata import get_kit_entry, normalize_path
from claudekit.operations.ownership import effective_ownership
from claudekit.operations.transaction import Transaction, snapshot_file

logger = logging.getLogger(__name__)

# Guards against pathological nesting when pruning empty directories
_MAX_CLEANUP_DEPTH = 50


@dataclass(frozen=True)
class PreservedPath:
    path: str
    reason: str


@dataclass(frozen=True)
class DeletionResult:
    deleted: list[str] = field(default_factory=list)
    preserved: list[PreservedPath] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def resolve_within(root: Path, relative: str) -> Path:
    """Return root/relative, refusing paths that escape root.

    The parent directory is resolved (following symlinks) but the final
    component is not, so a symlink inside root can be removed without
    touching its target.

    Raises:
        PathTraversalError: If the path resolves outside root or to root itself
    """
    resolved_root = root.resolve()
    candidate = root / relative
    resolved = candidate.parent.resolve() / candidate.name
    if resolved == resolved_root or not resolved.is_relative_to(resolved_root):
        raise PathTraversalError(f"Path escapes {root}: {relative}")
    return resolved


def cleanup_empty_directories(start: Path, root: Path) -> list[Path]:
    """Remove empty directories from start upward, stopping at root.

    Returns:
        Directories that were removed
    """
    resolved_root = root.resolve()
    current = start.resolve()
    removed: list[Path] = []
    for _ in range(_MAX_CLEANUP_DEPTH):
        if current == resolved_root or not current.is_relative_to(resolved_root):
            break
        if not current.is_dir() or any(current.iterdir()):
            break
        current.rmdir()
        logger.debug("Removed empty directory: %s", current)
        removed.append(current)
        current = current.parent
    return removed


def expand_deletion_patterns(patterns: list[str], claude_dir: Path) -> list[str]:
    """Expand glob patterns and directories into concrete file paths.

    Literal file paths are returned as-is, even when absent on disk.
    """
    all_files: list[str] | None = None
    expanded: list[str] = []
    for raw in patterns:
        pattern = normalize_path(raw).rstrip("/")
        if is_glob_pattern(pattern):
            if all_files is None:
                all_files = scan_files(claude_dir)
            spec = build_spec([pattern])
            matches = [path for path in all_files if spec.match_file(path)]
            logger.debug("Pattern %r matched %d files", pattern, len(matches))
            expanded.extend(matches)
            continue

        candidate = claude_dir / pattern
        if candidate.is_dir() and not candidate.is_symlink():
            expanded.extend(f"{pattern}/{path}" for path in scan_files(candidate))
        else:
            expanded.append(pattern)
    return list(dict.fromkeys(expanded))


def handle_deletions(
    deletions: list[str],
    claude_dir: Path,
    kit: str,
    cache: ChecksumCache,
    *,
    txn: Transaction | None = None,
    dry_run: bool = False,
) -> DeletionResult:
    """Delete deprecated paths that the installing kit exclusively owns.

    Rules, in order of precedence:
    - path escapes claude_dir: reported as an error
    - not on disk: no-op
    - tracked by another kit: preserved (shared)
    - tracked by `kit` and unmodified: deleted
    - tracked by `kit` but modified: preserved
    - untracked: preserved

    Deleted paths are removed from metadata.json afterwards.
    """
    if not deletions:
        return DeletionResult()

    metadata = read_manifest(claude_dir)
    own_entry = get_kit_entry(metadata, kit) if metadata is not None else None
    result = DeletionResult()

    for path in expand_deletion_patterns(deletions, claude_dir):
        try:
            target = resolve_within(claude_dir, path)
        except PathTraversalError as e:
            logger.warning("Skipping invalid deletion path: %s", e)
            result.errors.append(path)
            continue

        if not target.exists() and not target.is_symlink():
            continue

        shared = find_file_in_metadata(metadata, path, exclude_kit=kit)
        if shared.exists:
            result.preserved.append(PreservedPath(path, f"shared with {shared.owner_kit}"))
            continue

        tracked = own_entry.find_file(path) if own_entry is not None else None
        if tracked is None:
            result.preserved.append(PreservedPath(path, "user-created"))
            continue

        try:
            ownership = effective_ownership(cache.checksum(target), tracked)
            if ownership != "ck":
                reason = "modified by user" if ownership == "ck-modified" else "user-created"
                result.preserved.append(PreservedPath(path, reason))
                continue
            if not dry_run:
                if txn is not None:
                    snapshot_file(txn, target)
                target.unlink()
                cache.forget(target)
                cleanup_empty_directories(target.parent, claude_dir)
        except OSError as e:
            logger.debug("Failed to delete %s: %s", path, e)
            result.errors.append(path)
            continue

        logger.debug("Deleted deprecated file: %s", path)
        result.deleted.append(path)

    if result.deleted and not dry_run:
        update_metadata_after_deletion(claude_dir, result.deleted)

    return result
