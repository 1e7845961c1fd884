"""Tests for the ownership-aware file merger."""

import json
import shutil
from pathlib import Path

import pytest

from claudekit.io.checksum import ChecksumCache, compute_checksum
from claudekit.io.manifest import InstalledFileLookup
from claudekit.models.metadata import InstalledSettings, KitManifestEntry, MultiKitMetadata
from claudekit.models.release import ReleaseManifest, ReleaseManifestFile
from claudekit.operations.merge import (
    ConflictResolver,
    FileMerger,
    MergeOptions,
    MergeResult,
    SharedFileDecision,
    SkipConflictResolver,
    decide_shared_winner,
)
from claudekit.operations.transaction import Transaction
from tests.fakes.conflict_resolver import RecordingConflictResolver
from tests.test_utils.builders import tracked, write_files


def _kits(**entries: list) -> MultiKitMetadata:
    return MultiKitMetadata(
        kits={
            kit: KitManifestEntry(version="v0.9.0", installed_at="", files=files)
            for kit, files in entries.items()
        }
    )


def _release_manifest(files: dict[str, str], timestamps: dict[str, str]) -> ReleaseManifest:
    return ReleaseManifest(
        version="v1.0.0",
        files=[
            ReleaseManifestFile(
                path=path,
                checksum=compute_checksum(content.encode("utf-8")),
                size=len(content),
                last_modified=timestamps.get(path),
            )
            for path, content in files.items()
        ],
    )


def _merge(
    source: Path,
    target: Path,
    *,
    metadata: MultiKitMetadata | None = None,
    kit: str = "engineer",
    force: bool = False,
    dry_run: bool = False,
    resolver: ConflictResolver | None = None,
    release_manifest: ReleaseManifest | None = None,
    include: tuple[str, ...] = (),
    exclude: tuple[str, ...] = (),
    is_global: bool = True,
    txn: Transaction | None = None,
) -> MergeResult:
    merger = FileMerger(
        options=MergeOptions(
            kit=kit,
            version="v1.0.0",
            is_global=is_global,
            include=include,
            exclude=exclude,
            force=force,
            dry_run=dry_run,
        ),
        cache=ChecksumCache(),
        resolver=resolver if resolver is not None else SkipConflictResolver(),
        metadata=metadata,
        release_manifest=release_manifest,
    )
    return merger.merge(source, target, txn if txn is not None else Transaction())


def _dirs(tmp_path: Path) -> tuple[Path, Path]:
    source = tmp_path / "source"
    target = tmp_path / "target"
    source.mkdir()
    target.mkdir()
    return source, target


def test_new_files_are_added(tmp_path: Path) -> None:
    source, target = _dirs(tmp_path)
    write_files(source, {"commands/plan.md": "plan", "agents/dev.md": "dev"})

    result = _merge(source, target)

    assert sorted(result.added) == ["agents/dev.md", "commands/plan.md"]
    assert result.installed_files == ["agents/dev.md", "commands/plan.md"]
    assert (target / "commands/plan.md").read_text(encoding="utf-8") == "plan"


def test_identical_files_are_unchanged_but_installed(tmp_path: Path) -> None:
    source, target = _dirs(tmp_path)
    write_files(source, {"a.md": "same"})
    write_files(target, {"a.md": "same"})

    result = _merge(source, target)

    assert result.unchanged == ["a.md"]
    assert result.installed_files == ["a.md"]


def test_unmodified_tracked_file_is_updated(tmp_path: Path) -> None:
    source, target = _dirs(tmp_path)
    write_files(source, {"a.md": "version two"})
    write_files(target, {"a.md": "version one"})

    result = _merge(source, target, metadata=_kits(engineer=[tracked("a.md", "version one")]))

    assert result.updated == ["a.md"]
    assert (target / "a.md").read_text(encoding="utf-8") == "version two"


class TestUserModifiedFiles:
    def _setup(self, tmp_path: Path) -> tuple[Path, Path, MultiKitMetadata]:
        source, target = _dirs(tmp_path)
        write_files(source, {"a.md": "version two"})
        write_files(target, {"a.md": "my local edits"})
        return source, target, _kits(engineer=[tracked("a.md", "version one")])

    def test_skipped_and_reported_as_conflict(self, tmp_path: Path) -> None:
        source, target, metadata = self._setup(tmp_path)
        resolver = RecordingConflictResolver(overwrite=False)

        result = _merge(source, target, metadata=metadata, resolver=resolver)

        assert result.skipped == ["a.md"]
        assert [conflict.path for conflict in result.conflicts] == ["a.md"]
        assert result.conflicts[0].ownership == "ck-modified"
        assert result.installed_files == []
        assert [conflict.path for conflict in resolver.seen] == ["a.md"]
        assert (target / "a.md").read_text(encoding="utf-8") == "my local edits"

    def test_overwritten_when_resolver_agrees(self, tmp_path: Path) -> None:
        source, target, metadata = self._setup(tmp_path)

        result = _merge(
            source, target, metadata=metadata, resolver=RecordingConflictResolver(overwrite=True)
        )

        assert result.updated == ["a.md"]
        assert result.conflicts == []
        assert (target / "a.md").read_text(encoding="utf-8") == "version two"

    def test_force_overwrites_without_asking(self, tmp_path: Path) -> None:
        source, target, metadata = self._setup(tmp_path)
        resolver = RecordingConflictResolver(overwrite=False)

        result = _merge(source, target, metadata=metadata, force=True, resolver=resolver)

        assert result.updated == ["a.md"]
        assert resolver.seen == []

    def test_dry_run_never_asks(self, tmp_path: Path) -> None:
        source, target, metadata = self._setup(tmp_path)
        resolver = RecordingConflictResolver(overwrite=True)

        result = _merge(source, target, metadata=metadata, dry_run=True, resolver=resolver)

        assert resolver.seen == []
        assert [conflict.path for conflict in result.conflicts] == ["a.md"]


def test_untracked_user_file_is_never_overwritten(tmp_path: Path) -> None:
    source, target = _dirs(tmp_path)
    write_files(source, {"a.md": "kit version"})
    write_files(target, {"a.md": "user wrote this"})

    result = _merge(source, target, metadata=_kits(engineer=[]), force=True)

    assert result.skipped == ["a.md"]
    assert result.conflicts == []
    assert (target / "a.md").read_text(encoding="utf-8") == "user wrote this"


class TestSharedFiles:
    def test_newer_incoming_wins(self, tmp_path: Path) -> None:
        source, target = _dirs(tmp_path)
        write_files(source, {"shared.md": "new"})
        write_files(target, {"shared.md": "old"})
        metadata = _kits(
            marketing=[tracked("shared.md", "old", source_timestamp="2025-01-01T00:00:00Z")]
        )
        manifest = _release_manifest({"shared.md": "new"}, {"shared.md": "2025-02-01T00:00:00Z"})

        result = _merge(source, target, metadata=metadata, release_manifest=manifest)

        assert result.updated == ["shared.md"]
        assert result.installed_files == ["shared.md"]
        decision = result.shared_conflicts[0]
        assert (decision.winner, decision.reason) == ("incoming", "newer")
        assert decision.existing_kit == "marketing"
        assert (target / "shared.md").read_text(encoding="utf-8") == "new"

    def test_older_incoming_keeps_existing_but_tracks_it(self, tmp_path: Path) -> None:
        source, target = _dirs(tmp_path)
        write_files(source, {"shared.md": "new"})
        write_files(target, {"shared.md": "old"})
        metadata = _kits(
            marketing=[tracked("shared.md", "old", source_timestamp="2025-03-01T00:00:00Z")]
        )
        manifest = _release_manifest({"shared.md": "new"}, {"shared.md": "2025-02-01T00:00:00Z"})

        result = _merge(source, target, metadata=metadata, release_manifest=manifest)

        assert result.skipped == ["shared.md"]
        assert result.installed_files == ["shared.md"]
        assert result.shared_conflicts[0].reason == "existing-newer"
        assert (target / "shared.md").read_text(encoding="utf-8") == "old"

    def test_modified_shared_file_follows_modified_policy(self, tmp_path: Path) -> None:
        source, target = _dirs(tmp_path)
        write_files(source, {"shared.md": "new"})
        write_files(target, {"shared.md": "edited by user"})
        metadata = _kits(marketing=[tracked("shared.md", "old")])

        result = _merge(source, target, metadata=metadata)

        assert result.conflicts[0].owner_kit == "marketing"
        assert result.shared_conflicts == []
        assert (target / "shared.md").read_text(encoding="utf-8") == "edited by user"

    def test_stale_own_record_defers_to_kit_that_updated_the_file(self, tmp_path: Path) -> None:
        source, target = _dirs(tmp_path)
        write_files(source, {"s.md": "v1"})
        write_files(target, {"s.md": "v2"})
        metadata = _kits(
            engineer=[tracked("s.md", "v2", source_timestamp="2025-03-01T00:00:00Z")],
            marketing=[tracked("s.md", "v1")],
        )
        manifest = _release_manifest({"s.md": "v1"}, {"s.md": "2025-01-01T00:00:00Z"})
        resolver = RecordingConflictResolver(overwrite=True)

        result = _merge(
            source,
            target,
            metadata=metadata,
            kit="marketing",
            resolver=resolver,
            release_manifest=manifest,
        )

        assert result.conflicts == []
        assert resolver.seen == []
        decision = result.shared_conflicts[0]
        assert (decision.existing_kit, decision.winner) == ("engineer", "existing")
        assert result.installed_files == ["s.md"]
        assert (target / "s.md").read_text(encoding="utf-8") == "v2"

    def test_stale_own_record_still_lets_newer_release_win(self, tmp_path: Path) -> None:
        source, target = _dirs(tmp_path)
        write_files(source, {"s.md": "v3"})
        write_files(target, {"s.md": "v2"})
        metadata = _kits(
            engineer=[tracked("s.md", "v2", source_timestamp="2025-01-01T00:00:00Z")],
            marketing=[tracked("s.md", "v1")],
        )
        manifest = _release_manifest({"s.md": "v3"}, {"s.md": "2025-02-01T00:00:00Z"})

        result = _merge(
            source, target, metadata=metadata, kit="marketing", release_manifest=manifest
        )

        assert result.conflicts == []
        assert result.updated == ["s.md"]
        assert result.shared_conflicts[0].reason == "newer"
        assert (target / "s.md").read_text(encoding="utf-8") == "v3"


class TestDecideSharedWinner:
    def _existing(self, timestamp: str | None, version: str) -> InstalledFileLookup:
        return InstalledFileLookup(
            exists=True, owner_kit="marketing", version=version, source_timestamp=timestamp
        )

    def test_equal_timestamps_keep_existing(self) -> None:
        stamp = "2025-01-01T00:00:00Z"

        decision = decide_shared_winner(
            "p", "engineer", stamp, "v2.0.0", self._existing(stamp, "v1.0.0")
        )

        assert (decision.winner, decision.reason) == ("existing", "tie")

    def test_falls_back_to_version(self) -> None:
        def decide(incoming: str, existing: str) -> SharedFileDecision:
            lookup = self._existing(None, existing)
            return decide_shared_winner("p", "engineer", None, incoming, lookup)

        newer = decide("v2.0.0", "v1.0.0")
        older = decide("v1.0.0", "v1.2.0")
        same = decide("v1.0.0", "v1.0.0")

        assert newer.winner == "incoming"
        assert older.winner == "existing"
        assert same.winner == "existing"
        assert {newer.reason, older.reason, same.reason} == {"version"}


def test_security_sensitive_files_are_never_copied(tmp_path: Path) -> None:
    source, target = _dirs(tmp_path)
    write_files(source, {".env": "SECRET=1", "certs/server.pem": "pem", "ok.md": "ok"})

    result = _merge(source, target)

    assert sorted(result.skipped) == [".env", "certs/server.pem"]
    assert result.installed_files == ["ok.md"]
    assert not (target / ".env").exists()


def test_user_config_copied_on_first_install_only(tmp_path: Path) -> None:
    source, target = _dirs(tmp_path)
    write_files(source, {"CLAUDE.md": "kit instructions", ".claude/a.md": "a"})

    first = _merge(source, target, is_global=False)
    (target / "CLAUDE.md").write_text("my instructions", encoding="utf-8")
    second = _merge(source, target, is_global=False)

    assert "CLAUDE.md" in first.added
    assert "CLAUDE.md" in second.skipped
    assert (target / "CLAUDE.md").read_text(encoding="utf-8") == "my instructions"


def test_release_control_files_are_not_merged(tmp_path: Path) -> None:
    source, target = _dirs(tmp_path)
    write_files(source, {"metadata.json": "{}", "release-manifest.json": "{}", "a.md": "a"})

    result = _merge(source, target)

    assert result.installed_files == ["a.md"]
    assert not (target / "metadata.json").exists()


def test_include_and_exclude_filters(tmp_path: Path) -> None:
    source, target = _dirs(tmp_path)
    write_files(
        source,
        {"commands/plan.md": "p", "commands/secret.md": "s", "agents/dev.md": "d"},
    )

    result = _merge(source, target, include=("commands/**",), exclude=("commands/secret.md",))

    assert result.installed_files == ["commands/plan.md"]
    assert result.skipped == []
    assert not (target / "agents/dev.md").exists()


def test_filters_apply_to_kit_relative_paths_for_local_installs(tmp_path: Path) -> None:
    source, target = _dirs(tmp_path)
    write_files(source, {".claude/commands/plan.md": "p", ".claude/agents/dev.md": "d"})

    result = _merge(source, target, include=("commands/**",), is_global=False)

    assert result.installed_files == [".claude/commands/plan.md"]


def test_dry_run_writes_nothing(tmp_path: Path) -> None:
    source, target = _dirs(tmp_path)
    write_files(source, {"a.md": "a", "b.md": "new b"})
    write_files(target, {"b.md": "old b"})

    result = _merge(
        source, target, dry_run=True, metadata=_kits(engineer=[tracked("b.md", "old b")])
    )

    assert result.added == ["a.md"]
    assert result.updated == ["b.md"]
    assert not (target / "a.md").exists()
    assert (target / "b.md").read_text(encoding="utf-8") == "old b"


def test_rollback_undoes_merge(tmp_path: Path) -> None:
    source, target = _dirs(tmp_path)
    write_files(source, {"a.md": "a", "b.md": "new b"})
    write_files(target, {"b.md": "old b"})
    txn = Transaction()

    _merge(source, target, metadata=_kits(engineer=[tracked("b.md", "old b")]), txn=txn)
    txn.rollback()

    assert not (target / "a.md").exists()
    assert (target / "b.md").read_text(encoding="utf-8") == "old b"


class TestPerFileFailures:
    def test_unreadable_destination_fails_alone(self, tmp_path: Path) -> None:
        source, target = _dirs(tmp_path)
        write_files(source, {"a.md": "a", "b.md": "b", "c.md": "c"})
        (target / "b.md").mkdir()

        result = _merge(source, target)

        assert result.added == ["a.md", "c.md"]
        assert result.failed == ["b.md"]
        assert result.has_failures
        assert result.installed_files == ["a.md", "c.md"]
        assert (target / "c.md").read_text(encoding="utf-8") == "c"

    def test_interrupted_copy_leaves_destination_intact(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        source, target = _dirs(tmp_path)
        write_files(source, {"a.md": "version two"})
        write_files(target, {"a.md": "version one"})

        def copy_then_fail(src: Path, dst: Path) -> None:
            Path(dst).write_text("vers", encoding="utf-8")
            raise OSError("No space left on device")

        monkeypatch.setattr(shutil, "copyfile", copy_then_fail)

        result = _merge(source, target, metadata=_kits(engineer=[tracked("a.md", "version one")]))

        assert result.failed == ["a.md"]
        assert result.updated == []
        assert result.installed_files == []
        assert (target / "a.md").read_text(encoding="utf-8") == "version one"
        assert [p.name for p in target.iterdir()] == ["a.md"]


class TestSettingsJson:
    def test_first_install_copies_and_records_entries(self, tmp_path: Path) -> None:
        source, target = _dirs(tmp_path)
        settings = {
            "hooks": {"Stop": [{"hooks": [{"type": "command", "command": "notify.sh"}]}]},
            "mcpServers": {"docs": {"command": "docs"}},
        }
        write_files(source, {"settings.json": json.dumps(settings)})

        result = _merge(source, target)

        assert result.added == ["settings.json"]
        assert result.installed_files == []
        assert result.installed_settings == InstalledSettings(
            hooks=["notify.sh"], mcp_servers=["docs"]
        )

    def test_merges_into_existing_user_settings(self, tmp_path: Path) -> None:
        source, target = _dirs(tmp_path)
        write_files(
            source,
            {"settings.json": json.dumps({"mcpServers": {"docs": {"command": "docs"}}})},
        )
        write_files(target, {"settings.json": json.dumps({"model": "mine"})})

        result = _merge(source, target)

        assert result.updated == ["settings.json"]
        merged = json.loads((target / "settings.json").read_text(encoding="utf-8"))
        assert merged == {"model": "mine", "mcpServers": {"docs": {"command": "docs"}}}
        assert result.settings is not None
        assert result.settings.mcp_servers_added == 1

    def test_invalid_user_settings_counts_as_failure(self, tmp_path: Path) -> None:
        source, target = _dirs(tmp_path)
        write_files(source, {"settings.json": "{}"})
        write_files(target, {"settings.json": "{broken"})

        result = _merge(source, target)

        assert result.failed == ["settings.json"]
        assert result.has_failures
        assert (target / "settings.json").read_text(encoding="utf-8") == "{broken"


def test_idempotent_merge_reports_everything_unchanged(tmp_path: Path) -> None:
    source, target = _dirs(tmp_path)
    write_files(source, {"a.md": "a", "nested/b.md": "b"})
    first = _merge(source, target)
    metadata = _kits(engineer=[tracked("a.md", "a"), tracked("nested/b.md", "b")])

    second = _merge(source, target, metadata=metadata)

    assert len(first.added) == 2
    assert second.unchanged == ["a.md", "nested/b.md"]
    assert second.updated == []
    assert second.installed_files == first.installed_files
