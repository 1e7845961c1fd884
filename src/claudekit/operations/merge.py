"""Ownership-aware merge of a release tree into a target directory.

For every source file the merger decides whether it may overwrite what is
on disk:

- new file: copy
- identical content: leave alone, still tracked
- tracked and unmodified (ck): overwrite
- tracked but edited by the user (ck-modified): ask the ConflictResolver,
  overwrite only with force or an explicit yes
- untracked (user): never overwrite
- shared with another kit (tracked only by it, or matching its record while
  ours is stale): the newer source wins by commit timestamp, falling back
  to release version

settings.json at the kit root is merged key-by-key instead of copied.
"""

import logging
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal

import click
from packaging.version import InvalidVersion, Version

from claudekit.io.checksum import ChecksumCache
from claudekit.io.manifest import InstalledFileLookup, find_file_in_metadata
from claudekit.io.release import RELEASE_CONTROL_FILES
from claudekit.io.scanner import PathFilter, build_spec, scan_files
from claudekit.io.settings_json import load_settings, save_settings
from claudekit.models.metadata import (
    InstalledSettings,
    KitManifestEntry,
    Metadata,
    Ownership,
    get_kit_entry,
)
from claudekit.models.release import ReleaseManifest
from claudekit.operations.ownership import classify
from claudekit.operations.settings_merge import (
    SettingsMergeResult,
    collect_installed_settings,
    merge_settings,
)
from claudekit.operations.tracking import to_kit_relative
from claudekit.operations.transaction import Transaction, snapshot_file

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"

# Security-sensitive files are never copied out of a release
NEVER_COPY_PATTERNS = (
    ".env",
    ".env.local",
    ".env.*.local",
    "*.key",
    "*.pem",
    "*.p12",
    "node_modules/**",
    ".git/**",
    "dist/**",
    "build/**",
)

# Copied on first install only; afterwards they belong to the user
USER_CONFIG_PATTERNS = (
    ".gitignore",
    ".repomixignore",
    ".mcp.json",
    ".ckignore",
    "CLAUDE.md",
)


@dataclass(frozen=True)
class FileConflict:
    """A file the merger would not overwrite without permission."""

    path: str
    ownership: Ownership
    reason: str
    owner_kit: str | None = None


@dataclass(frozen=True)
class SharedFileDecision:
    """Outcome of a shared file whose content differs between two kits."""

    path: str
    incoming_kit: str
    existing_kit: str
    incoming_timestamp: str | None
    existing_timestamp: str | None
    winner: Literal["incoming", "existing"]
    reason: Literal["newer", "existing-newer", "tie", "version"]


@dataclass(frozen=True)
class MergeResult:
    """Summary of one merge.

    All paths are relative to the merge target. `installed_files` lists
    every file written or confirmed on disk; files skipped for any reason
    other than a shared-file decision are absent from it.
    """

    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    conflicts: list[FileConflict] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    installed_files: list[str] = field(default_factory=list)
    shared_conflicts: list[SharedFileDecision] = field(default_factory=list)
    settings: SettingsMergeResult | None = None
    installed_settings: InstalledSettings | None = None

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)


class ConflictResolver(ABC):
    """Decides whether a user-modified file may be overwritten."""

    @abstractmethod
    def resolve(self, conflict: FileConflict) -> bool:
        """Return True to overwrite the file on disk."""
        ...


class SkipConflictResolver(ConflictResolver):
    """Non-interactive policy: never overwrite, report the conflict."""

    def resolve(self, conflict: FileConflict) -> bool:
        return False


class PromptConflictResolver(ConflictResolver):
    """Interactive policy: ask on the terminal for each conflict."""

    def resolve(self, conflict: FileConflict) -> bool:
        return click.confirm(
            f"{conflict.path} was modified ({conflict.reason}). Overwrite?",
            default=False,
            err=True,
        )


@dataclass(frozen=True)
class MergeOptions:
    """Per-run merge settings.

    Attributes:
        kit: Kit key being installed
        version: Release tag being installed
        is_global: Global scope (target is the kit root itself)
        include: `--only` patterns (gitignore syntax, kit-relative)
        exclude: `--exclude` patterns (gitignore syntax, kit-relative)
        force: Overwrite user-modified files without asking
        dry_run: Compute the result without writing anything
    """

    kit: str
    version: str
    is_global: bool
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    force: bool = False
    dry_run: bool = False


@dataclass
class _Accumulator:
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    conflicts: list[FileConflict] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    installed: list[str] = field(default_factory=list)
    shared: list[SharedFileDecision] = field(default_factory=list)
    settings: SettingsMergeResult | None = None
    installed_settings: InstalledSettings | None = None

    def freeze(self) -> MergeResult:
        return MergeResult(
            added=self.added,
            updated=self.updated,
            unchanged=self.unchanged,
            skipped=self.skipped,
            conflicts=self.conflicts,
            failed=self.failed,
            installed_files=sorted(self.installed),
            shared_conflicts=self.shared,
            settings=self.settings,
            installed_settings=self.installed_settings,
        )


def _parse_timestamp(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_version(value: str | None) -> Version | None:
    if not value:
        return None
    try:
        return Version(value.lstrip("v"))
    except InvalidVersion:
        return None


def decide_shared_winner(
    path: str,
    incoming_kit: str,
    incoming_timestamp: str | None,
    incoming_version: str,
    existing: InstalledFileLookup,
) -> SharedFileDecision:
    """Pick which of two kits' versions of a shared file to keep.

    The newer commit timestamp wins; equal timestamps keep the existing file.
    Without usable timestamps the higher release version wins and ties keep
    the existing file.
    """
    existing_kit = existing.owner_kit or ""

    def decision(
        winner: Literal["incoming", "existing"],
        reason: Literal["newer", "existing-newer", "tie", "version"],
    ) -> SharedFileDecision:
        return SharedFileDecision(
            path=path,
            incoming_kit=incoming_kit,
            existing_kit=existing_kit,
            incoming_timestamp=incoming_timestamp,
            existing_timestamp=existing.source_timestamp,
            winner=winner,
            reason=reason,
        )

    incoming_time = _parse_timestamp(incoming_timestamp) if incoming_timestamp else None
    existing_time = (
        _parse_timestamp(existing.source_timestamp) if existing.source_timestamp else None
    )
    if incoming_time is not None and existing_time is not None:
        try:
            if incoming_time > existing_time:
                return decision("incoming", "newer")
            if incoming_time < existing_time:
                return decision("existing", "existing-newer")
            return decision("existing", "tie")
        except TypeError:
            # naive vs aware timestamps cannot be compared
            logger.debug("Incomparable timestamps for %s, falling back to version", path)

    incoming_ver = _parse_version(incoming_version)
    existing_ver = _parse_version(existing.version)
    if incoming_ver is not None and existing_ver is not None and incoming_ver <= existing_ver:
        return decision("existing", "version")
    return decision("incoming", "version")


class FileMerger:
    """Merges one release tree into one target directory."""

    def __init__(
        self,
        *,
        options: MergeOptions,
        cache: ChecksumCache,
        resolver: ConflictResolver,
        metadata: Metadata | None,
        release_manifest: ReleaseManifest | None,
    ) -> None:
        self._options = options
        self._cache = cache
        self._resolver = resolver
        self._metadata = metadata
        self._own_entry: KitManifestEntry | None = (
            get_kit_entry(metadata, options.kit) if metadata is not None else None
        )
        self._release_map = release_manifest.as_map() if release_manifest is not None else {}
        self._filter = PathFilter(include=options.include, exclude=options.exclude)
        self._never_copy = build_spec(NEVER_COPY_PATTERNS)
        self._user_config = build_spec(USER_CONFIG_PATTERNS)

    def merge(self, source_dir: Path, target_dir: Path, txn: Transaction) -> MergeResult:
        """Merge every file under source_dir into target_dir.

        Per-file I/O errors are logged and counted in `failed`; they never
        abort the merge.
        """
        acc = _Accumulator()
        for rel in scan_files(source_dir):
            try:
                self._merge_file(rel, source_dir / rel, target_dir / rel, txn, acc)
            except OSError as e:
                logger.debug("Failed to merge %s: %s", rel, e, exc_info=True)
                acc.failed.append(rel)

        result = acc.freeze()
        logger.info(
            "Merge: %d added, %d updated, %d unchanged, %d skipped, %d conflicts, %d failed",
            len(result.added),
            len(result.updated),
            len(result.unchanged),
            len(result.skipped),
            len(result.conflicts),
            len(result.failed),
        )
        return result

    def _merge_file(
        self, rel: str, source: Path, dest: Path, txn: Transaction, acc: _Accumulator
    ) -> None:
        kit_rel = to_kit_relative(rel, is_global=self._options.is_global)

        if rel in RELEASE_CONTROL_FILES or kit_rel in RELEASE_CONTROL_FILES:
            return
        if self._never_copy.match_file(rel):
            logger.debug("Skipping security-sensitive file: %s", rel)
            acc.skipped.append(rel)
            return
        if not self._filter.matches(kit_rel if kit_rel is not None else rel):
            logger.debug("Filtered out: %s", rel)
            return
        if self._user_config.match_file(rel) and dest.exists():
            logger.debug("Preserving user config: %s", rel)
            acc.skipped.append(rel)
            return
        if kit_rel == SETTINGS_FILENAME:
            self._merge_settings(rel, source, dest, txn, acc)
            return

        if not dest.exists():
            self._write(source, dest, txn)
            acc.added.append(rel)
            acc.installed.append(rel)
            return

        source_checksum = self._cache.checksum(source)
        dest_checksum = self._cache.checksum(dest)
        if source_checksum == dest_checksum:
            logger.debug("Unchanged: %s", rel)
            acc.unchanged.append(rel)
            acc.installed.append(rel)
            return

        own = self._own_entry.find_file(kit_rel) if self._own_entry and kit_rel else None
        if own is not None:
            ownership = classify(dest_checksum, own)
            if ownership == "ck-modified" and kit_rel is not None:
                # another kit may have updated the file since our record was taken
                other = find_file_in_metadata(
                    self._metadata, kit_rel, exclude_kit=self._options.kit
                )
                if other.exists and classify(dest_checksum, other.tracked) == "ck":
                    self._apply_shared_winner(rel, kit_rel, other, source, dest, txn, acc)
                    return
            self._apply_ownership(rel, ownership, None, source, dest, txn, acc)
            return

        shared = (
            find_file_in_metadata(self._metadata, kit_rel, exclude_kit=self._options.kit)
            if kit_rel is not None
            else InstalledFileLookup(exists=False)
        )
        if not shared.exists:
            logger.debug("Preserving user-created file: %s", rel)
            acc.skipped.append(rel)
            return

        ownership = classify(dest_checksum, shared.tracked)
        if ownership != "ck":
            self._apply_ownership(rel, ownership, shared.owner_kit, source, dest, txn, acc)
            return

        self._apply_shared_winner(rel, kit_rel, shared, source, dest, txn, acc)

    def _apply_shared_winner(
        self,
        rel: str,
        kit_rel: str | None,
        shared: InstalledFileLookup,
        source: Path,
        dest: Path,
        txn: Transaction,
        acc: _Accumulator,
    ) -> None:
        release_entry = self._release_map.get(kit_rel) if kit_rel is not None else None
        decision = decide_shared_winner(
            rel,
            self._options.kit,
            release_entry.last_modified if release_entry is not None else None,
            self._options.version,
            shared,
        )
        acc.shared.append(decision)
        if decision.winner == "incoming":
            logger.debug("Shared newer: %s (%s)", rel, decision.reason)
            self._write(source, dest, txn)
            acc.updated.append(rel)
        else:
            logger.debug("Keeping shared file from %s: %s", shared.owner_kit, rel)
            acc.skipped.append(rel)
        acc.installed.append(rel)

    def _apply_ownership(
        self,
        rel: str,
        ownership: Ownership,
        owner_kit: str | None,
        source: Path,
        dest: Path,
        txn: Transaction,
        acc: _Accumulator,
    ) -> None:
        if ownership == "ck":
            self._write(source, dest, txn)
            acc.updated.append(rel)
            acc.installed.append(rel)
            return

        conflict = FileConflict(
            path=rel, ownership=ownership, reason="modified by user", owner_kit=owner_kit
        )
        overwrite = self._options.force or (
            not self._options.dry_run and self._resolver.resolve(conflict)
        )
        if overwrite:
            logger.debug("Overwriting user-modified file: %s", rel)
            self._write(source, dest, txn)
            acc.updated.append(rel)
            acc.installed.append(rel)
            return

        logger.debug("Skipping user-modified file: %s", rel)
        acc.skipped.append(rel)
        acc.conflicts.append(conflict)

    def _merge_settings(
        self, rel: str, source: Path, dest: Path, txn: Transaction, acc: _Accumulator
    ) -> None:
        try:
            source_settings = load_settings(source)
            if not dest.exists():
                self._write(source, dest, txn)
                acc.added.append(rel)
                acc.installed_settings = collect_installed_settings(source_settings)
                return

            previous = self._own_entry.installed_settings if self._own_entry else None
            dest_settings = load_settings(dest)
            result = merge_settings(source_settings, dest_settings, previous)
        except ValueError as e:
            logger.warning("Cannot merge %s: %s", rel, e)
            acc.failed.append(rel)
            return

        acc.settings = result
        acc.installed_settings = result.installed
        if result.settings.to_dict() == dest_settings.to_dict():
            acc.unchanged.append(rel)
            return

        if not self._options.dry_run:
            snapshot_file(txn, dest)
            save_settings(dest, result.settings)
            self._cache.forget(dest)
        acc.updated.append(rel)

    def _write(self, source: Path, dest: Path, txn: Transaction) -> None:
        """Copy source over dest through a sibling temp file.

        A copy that fails midway leaves dest as it was.
        """
        if self._options.dry_run:
            return
        snapshot_file(txn, dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        temp_path = dest.with_name(f".{dest.name}.ck-tmp")
        try:
            shutil.copyfile(source, temp_path)
            shutil.copymode(source, temp_path)
            temp_path.replace(dest)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise
        finally:
            self._cache.forget(dest)
