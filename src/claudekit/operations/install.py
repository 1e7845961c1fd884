"""Installing (or updating) one kit from a decompressed release.

One install runs these steps against a single kit root:

1. migrate a legacy metadata.json to the multi-kit shape
2. merge the release tree into the target (ownership-aware)
3. remove files the release declares deprecated
4. checksum everything installed and record it under the kit's entry

Every write from steps 1-3 is recorded in a Transaction. If metadata.json
cannot be written at the end, the transaction is rolled back so the target
is left as it was.

A fresh install first clears every kit's unmodified files (plan_fresh_install,
clear_for_fresh_install). That removal happens before the install starts
and is not part of its rollback.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from claudekit.concurrency import ProgressCallback
from claudekit.context import ClaudeKitContext
from claudekit.errors import ManifestWriteError, ReleaseError
from claudekit.io.manifest import (
    get_metadata_path,
    migrate_to_multi_kit,
    read_manifest,
    write_manifest,
)
from claudekit.io.release import get_release_kit_root, load_release_manifest, load_release_metadata
from claudekit.models.kits import AVAILABLE_KITS, validate_kit_type
from claudekit.models.metadata import (
    LegacyMetadata,
    Metadata,
    MultiKitMetadata,
    Scope,
    TrackedFile,
    get_kit_entry,
)
from claudekit.models.release import ReleaseManifest, ReleaseMetadata
from claudekit.operations.deletions import DeletionResult, handle_deletions
from claudekit.operations.merge import (
    ConflictResolver,
    FileMerger,
    MergeOptions,
    MergeResult,
    SkipConflictResolver,
)
from claudekit.operations.tracking import (
    BatchTrackResult,
    ManifestTracker,
    build_file_tracking_list,
)
from claudekit.operations.transaction import Transaction, snapshot_file
from claudekit.operations.uninstall import (
    RemovalResult,
    UninstallAnalysis,
    analyze_installation,
    remove_installation,
)

logger = logging.getLogger(__name__)

# Version recorded for a release tree that carries no version information
LOCAL_VERSION = "local"


@dataclass(frozen=True)
class InstallRequest:
    """Parameters of one install.

    Attributes:
        source: Decompressed release directory
        kit: Kit key being installed
        is_global: Install into the global kit directory instead of a project
        target_dir: Project directory (local) or kit directory (global);
            defaults to the context's cwd or configured global dir
        include: `--only` patterns, kit-relative
        exclude: `--exclude` patterns, kit-relative
        force: Overwrite user-modified files without asking
        dry_run: Report what would happen without writing
        resolver: Policy for user-modified files when not forced
        concurrency: Parallelism for checksumming (defaults to config)
        on_progress: Progress callback for the tracking step
    """

    source: Path
    kit: str
    is_global: bool = False
    target_dir: Path | None = None
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    force: bool = False
    dry_run: bool = False
    resolver: ConflictResolver = field(default_factory=SkipConflictResolver)
    concurrency: int | None = None
    on_progress: ProgressCallback | None = None


@dataclass(frozen=True)
class InstallLayout:
    """Where files come from and go to.

    `kit_root_target` is True when merge_target is the kit root itself
    (global installs, or a release without a `.claude` folder).
    """

    source_root: Path
    merge_target: Path
    claude_dir: Path
    kit_root_target: bool


@dataclass(frozen=True)
class InstallResult:
    kit: str
    version: str
    claude_dir: Path
    merge: MergeResult
    deletions: DeletionResult = field(default_factory=DeletionResult)
    tracking: BatchTrackResult | None = None
    metadata: MultiKitMetadata | None = None
    migrated: bool = False
    carried_forward: int = 0
    dry_run: bool = False


def resolve_layout(ctx: ClaudeKitContext, request: InstallRequest) -> InstallLayout:
    """Map a request onto source and target directories.

    Local installs copy the whole release (the `.claude` folder plus any
    project-root files such as CLAUDE.md) into the project directory.
    Global installs copy only the kit folder into the global directory.
    """
    if request.is_global:
        claude_dir = request.target_dir if request.target_dir is not None else ctx.config.global_dir
        return InstallLayout(
            source_root=get_release_kit_root(request.source),
            merge_target=claude_dir,
            claude_dir=claude_dir,
            kit_root_target=True,
        )

    project_dir = request.target_dir if request.target_dir is not None else ctx.cwd
    claude_dir = project_dir / ".claude"
    if (request.source / ".claude").is_dir():
        return InstallLayout(
            source_root=request.source,
            merge_target=project_dir,
            claude_dir=claude_dir,
            kit_root_target=False,
        )
    return InstallLayout(
        source_root=request.source,
        merge_target=claude_dir,
        claude_dir=claude_dir,
        kit_root_target=True,
    )


@dataclass(frozen=True)
class FreshInstallPlan:
    """Files a fresh install removes from claude_dir before installing."""

    claude_dir: Path
    analysis: UninstallAnalysis


def plan_fresh_install(ctx: ClaudeKitContext, request: InstallRequest) -> FreshInstallPlan:
    """Decide what a fresh install clears, across every installed kit.

    Unmodified kit files are removed. Files the user edited are kept unless
    request.force is set; untracked files and user config are always kept.
    """
    layout = resolve_layout(ctx, request)
    analysis = analyze_installation(
        layout.claude_dir, None, force=request.force, cache=ctx.checksum_cache
    )
    return FreshInstallPlan(claude_dir=layout.claude_dir, analysis=analysis)


def clear_for_fresh_install(plan: FreshInstallPlan) -> RemovalResult:
    """Remove the planned files and metadata.json.

    Kept files are no longer tracked afterwards, so the following install
    treats them as the user's own and never overwrites them.
    """
    result = remove_installation(plan.claude_dir, plan.analysis)
    logger.info(
        "Fresh install cleared %d file(s) from %s, kept %d",
        len(result.deleted),
        plan.claude_dir,
        len(plan.analysis.to_preserve),
    )
    return result


def resolve_version(
    release_metadata: ReleaseMetadata | None, release_manifest: ReleaseManifest | None
) -> str:
    if release_metadata is not None and release_metadata.version:
        return release_metadata.version
    if release_manifest is not None and release_manifest.version != "unknown":
        return release_manifest.version
    return LOCAL_VERSION


def _carry_forward(
    previous: Metadata | None, kit: str, claude_dir: Path, tracked: list[TrackedFile]
) -> list[TrackedFile]:
    """Previous records of this kit not re-tracked by this run.

    Files skipped this run (user-modified, filtered out by --only) stay
    tracked as long as they are still on disk.
    """
    if previous is None:
        return []
    entry = get_kit_entry(previous, kit)
    if entry is None:
        return []
    current = {record.path for record in tracked}
    return [
        record
        for record in entry.files
        if record.path not in current and (claude_dir / record.path).is_file()
    ]


def install_kit(ctx: ClaudeKitContext, request: InstallRequest) -> InstallResult:
    """Install or update one kit.

    Raises:
        ReleaseError: If the source is missing or its control files are malformed
        UnknownKitError: If the kit key is not known
        ManifestWriteError: If metadata.json cannot be written (changes are
            rolled back first)
    """
    if not request.source.is_dir():
        raise ReleaseError(f"Release directory not found: {request.source}")
    kit = validate_kit_type(request.kit)

    layout = resolve_layout(ctx, request)
    release_manifest = load_release_manifest(request.source)
    release_metadata = load_release_metadata(request.source)
    version = resolve_version(release_metadata, release_manifest)
    display_name = (
        release_metadata.name
        if release_metadata is not None and release_metadata.name
        else AVAILABLE_KITS[kit].name
    )
    scope: Scope = "global" if request.is_global else "local"
    concurrency = request.concurrency or ctx.config.concurrency
    cache = ctx.checksum_cache

    logger.info(
        "Installing %s %s from %s into %s", kit, version, request.source, layout.merge_target
    )

    txn = Transaction()
    metadata_path = get_metadata_path(layout.claude_dir)
    previous = read_manifest(layout.claude_dir)
    migrated = False

    if not request.dry_run:
        snapshot_file(txn, metadata_path)
        if isinstance(previous, LegacyMetadata):
            migrated = migrate_to_multi_kit(layout.claude_dir).migrated

    merger = FileMerger(
        options=MergeOptions(
            kit=kit,
            version=version,
            is_global=layout.kit_root_target,
            include=request.include,
            exclude=request.exclude,
            force=request.force,
            dry_run=request.dry_run,
        ),
        cache=cache,
        resolver=request.resolver,
        metadata=previous,
        release_manifest=release_manifest,
    )
    merge = merger.merge(layout.source_root, layout.merge_target, txn)

    if request.dry_run:
        return InstallResult(
            kit=kit,
            version=version,
            claude_dir=layout.claude_dir,
            merge=merge,
            dry_run=True,
        )

    try:
        deletions = handle_deletions(
            release_metadata.deletions if release_metadata is not None else [],
            layout.claude_dir,
            kit,
            cache,
            txn=txn,
        )

        tracker = ManifestTracker(cache, ctx.clock)
        tracking = tracker.add_tracked_files_batch(
            build_file_tracking_list(
                merge.installed_files,
                layout.claude_dir,
                release_manifest,
                version,
                is_global=layout.kit_root_target,
            ),
            concurrency=concurrency,
            on_progress=request.on_progress,
        )
        tracked = tracker.tracked_files()
        carried = _carry_forward(previous, kit, layout.claude_dir, tracked)

        metadata = write_manifest(
            layout.claude_dir,
            display_name,
            version,
            scope,
            kit,
            [*tracked, *carried],
            merge.installed_settings,
            deletions=release_metadata.deletions if release_metadata is not None else None,
            installed_at=ctx.clock.now_iso(),
        )
    except ManifestWriteError:
        failures = txn.rollback()
        logger.warning("Install of %s rolled back (%d undo steps failed)", kit, failures)
        cache.clear()
        raise

    txn.commit()
    logger.info(
        "Installed %s %s: %d files tracked, %d carried forward",
        kit,
        version,
        len(tracked),
        len(carried),
    )
    return InstallResult(
        kit=kit,
        version=version,
        claude_dir=layout.claude_dir,
        merge=merge,
        deletions=deletions,
        tracking=tracking,
        metadata=metadata,
        migrated=migrated,
        carried_forward=len(carried),
    )
