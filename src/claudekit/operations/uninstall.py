"""Planning and executing uninstalls.

Uninstall is two-phase: `analyze_installation` decides what to delete and
what to keep (and why) without touching disk, then `remove_installation`
carries the decision out. Commands show the analysis as a preview before
asking for confirmation.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from claudekit.errors import PathTraversalError
from claudekit.io.checksum import ChecksumCache
from claudekit.io.manifest import get_metadata_path, read_manifest, remove_kit_from_manifest
from claudekit.io.scanner import build_spec
from claudekit.models.metadata import (
    KitManifestEntry,
    LegacyMetadata,
    Metadata,
    Ownership,
    TrackedFile,
    get_installed_kits,
    get_kit_entry,
)
from claudekit.operations.deletions import cleanup_empty_directories, resolve_within
from claudekit.operations.merge import USER_CONFIG_PATTERNS
from claudekit.operations.ownership import effective_ownership

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UninstallManifest:
    """Which tracked paths an uninstall may remove, from metadata alone.

    Attributes:
        files_to_remove: Paths tracked only by the kit(s) being removed
        files_to_preserve: Paths also tracked by a remaining kit
        is_multi_kit: More than one kit was installed
        remaining_kits: Kits still installed afterwards
        has_manifest: Whether metadata.json existed at all
    """

    files_to_remove: list[str]
    files_to_preserve: list[str]
    is_multi_kit: bool
    remaining_kits: list[str]
    has_manifest: bool


def plan_uninstall(metadata: Metadata | None, kit: str | None = None) -> UninstallManifest:
    """Split tracked paths into removable and shared.

    With `kit`, removes what only that kit tracks and preserves what another
    kit also tracks. Without `kit`, every tracked path of every kit is
    removable. A legacy manifest counts as one kit.
    """
    if metadata is None:
        return UninstallManifest(
            files_to_remove=[],
            files_to_preserve=[],
            is_multi_kit=False,
            remaining_kits=[],
            has_manifest=False,
        )

    installed = get_installed_kits(metadata)

    if isinstance(metadata, LegacyMetadata):
        if kit is not None and kit not in installed:
            return UninstallManifest([], [], False, installed, True)
        legacy_paths = sorted({tracked.path for tracked in metadata.files})
        return UninstallManifest(legacy_paths, [], False, [], True)

    is_multi_kit = len(metadata.kits) > 1

    if kit is None:
        paths: set[str] = set()
        for entry in metadata.kits.values():
            paths.update(entry.file_paths())
        return UninstallManifest(sorted(paths), [], is_multi_kit, [], True)

    remaining = [name for name in metadata.kits if name != kit]
    entry = metadata.kits.get(kit)
    if entry is None:
        return UninstallManifest([], [], is_multi_kit, remaining, True)

    others: set[str] = set()
    for name in remaining:
        others.update(metadata.kits[name].file_paths())

    target = entry.file_paths()
    return UninstallManifest(
        files_to_remove=sorted(target - others),
        files_to_preserve=sorted(target & others),
        is_multi_kit=is_multi_kit,
        remaining_kits=remaining,
        has_manifest=True,
    )


def get_uninstall_manifest(claude_dir: Path, kit: str | None = None) -> UninstallManifest:
    return plan_uninstall(read_manifest(claude_dir), kit)


@dataclass(frozen=True)
class FileAction:
    path: str
    reason: str


@dataclass(frozen=True)
class UninstallAnalysis:
    """What an uninstall will do.

    Attributes:
        kit: Kit being removed, or None for a full uninstall
        to_delete: Files that will be deleted
        to_preserve: Files that will be kept, with the reason
        remaining_kits: Kits still installed afterwards
        delete_metadata: Whether metadata.json goes too
        has_manifest: Whether there was anything installed
        installed_kits: Kits installed before the uninstall
    """

    kit: str | None
    to_delete: list[FileAction] = field(default_factory=list)
    to_preserve: list[FileAction] = field(default_factory=list)
    remaining_kits: list[str] = field(default_factory=list)
    delete_metadata: bool = False
    has_manifest: bool = False
    installed_kits: list[str] = field(default_factory=list)


def _records_by_path(metadata: Metadata, kit: str | None) -> dict[str, list[TrackedFile]]:
    entries: list[KitManifestEntry | None]
    if kit is not None:
        entries = [get_kit_entry(metadata, kit)]
    elif isinstance(metadata, LegacyMetadata):
        entries = [KitManifestEntry(version="unknown", installed_at="", files=metadata.files)]
    else:
        entries = list(metadata.kits.values())

    records: dict[str, list[TrackedFile]] = {}
    for entry in entries:
        if entry is None:
            continue
        for tracked in entry.files:
            records.setdefault(tracked.path, []).append(tracked)
    return records


def _ownership_against(checksum: str, records: list[TrackedFile]) -> Ownership:
    # A path tracked by several kits is pristine if it matches any of them
    ownerships = [effective_ownership(checksum, tracked) for tracked in records]
    if "user" in ownerships:
        return "user"
    if "ck" in ownerships:
        return "ck"
    return "ck-modified"


def analyze_installation(
    claude_dir: Path, kit: str | None, *, force: bool, cache: ChecksumCache
) -> UninstallAnalysis:
    """Decide per tracked file whether an uninstall deletes or keeps it.

    - shared with a remaining kit: keep
    - unmodified: delete
    - modified by the user: keep, unless force
    - recorded as user-owned or matching a user config pattern: keep

    Files no longer on disk are left out entirely.
    """
    metadata = read_manifest(claude_dir)
    plan = plan_uninstall(metadata, kit)
    if metadata is None:
        return UninstallAnalysis(kit=kit)

    records = _records_by_path(metadata, kit)
    user_config = build_spec(USER_CONFIG_PATTERNS)
    to_delete: list[FileAction] = []
    to_preserve = [FileAction(path, "shared with other kit") for path in plan.files_to_preserve]

    for path in plan.files_to_remove:
        target = claude_dir / path
        if not target.is_file():
            logger.debug("Already gone: %s", path)
            continue
        if user_config.match_file(path):
            to_preserve.append(FileAction(path, "user config"))
            continue

        try:
            ownership = _ownership_against(cache.checksum(target), records.get(path, []))
        except OSError as e:
            logger.warning("Cannot read %s, keeping it: %s", target, e)
            to_preserve.append(FileAction(path, "unreadable"))
            continue

        if ownership == "ck":
            to_delete.append(FileAction(path, "unmodified"))
        elif ownership == "ck-modified" and force:
            to_delete.append(FileAction(path, "force overwrite"))
        elif ownership == "ck-modified":
            to_preserve.append(FileAction(path, "modified by user"))
        else:
            to_preserve.append(FileAction(path, "user-created"))

    return UninstallAnalysis(
        kit=kit,
        to_delete=to_delete,
        to_preserve=sorted(to_preserve, key=lambda action: action.path),
        remaining_kits=plan.remaining_kits,
        delete_metadata=not plan.remaining_kits,
        has_manifest=plan.has_manifest,
        installed_kits=get_installed_kits(metadata),
    )


@dataclass(frozen=True)
class RemovalResult:
    deleted: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    removed_directories: int = 0
    kit_removed: bool = False
    metadata_deleted: bool = False


def remove_installation(claude_dir: Path, analysis: UninstallAnalysis) -> RemovalResult:
    """Delete the files an analysis selected and update metadata.json.

    A kit-scoped removal drops the kit's entry from the manifest; when no
    kits remain (or for a full uninstall) metadata.json itself is deleted.

    Raises:
        ManifestWriteError: If metadata.json cannot be rewritten
    """
    deleted: list[str] = []
    errors: list[str] = []
    removed_dirs = 0

    for action in analysis.to_delete:
        try:
            target = resolve_within(claude_dir, action.path)
            target.unlink()
        except PathTraversalError as e:
            logger.warning("Refusing to delete: %s", e)
            errors.append(action.path)
            continue
        except OSError as e:
            logger.warning("Failed to delete %s: %s", action.path, e)
            errors.append(action.path)
            continue
        deleted.append(action.path)
        removed_dirs += len(cleanup_empty_directories(target.parent, claude_dir))

    kit_removed = False
    if analysis.kit is not None:
        kit_removed = remove_kit_from_manifest(claude_dir, analysis.kit)

    metadata_deleted = False
    metadata_path = get_metadata_path(claude_dir)
    if analysis.delete_metadata and metadata_path.exists():
        metadata_path.unlink()
        metadata_deleted = True
        logger.debug("Removed %s", metadata_path)
        removed_dirs += len(cleanup_empty_directories(claude_dir, claude_dir.parent))

    logger.info(
        "Uninstall: %d deleted, %d preserved, %d errors",
        len(deleted),
        len(analysis.to_preserve),
        len(errors),
    )
    return RemovalResult(
        deleted=deleted,
        errors=errors,
        removed_directories=removed_dirs,
        kit_removed=kit_removed,
        metadata_deleted=metadata_deleted,
    )
