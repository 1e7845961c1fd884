"""Tests for deprecated-file cleanup during updates."""

from pathlib import Path

import pytest

from claudekit.errors import PathTraversalError
from claudekit.io.checksum import ChecksumCache
from claudekit.io.manifest import read_kit_manifest, write_manifest
from claudekit.models.metadata import TrackedFile
from claudekit.operations.deletions import (
    cleanup_empty_directories,
    expand_deletion_patterns,
    handle_deletions,
    resolve_within,
)
from claudekit.operations.transaction import Transaction
from tests.test_utils.builders import tracked, write_files


def _install(claude_dir: Path, kit: str, files: list[TrackedFile]) -> None:
    write_manifest(claude_dir, f"ClaudeKit {kit.title()}", "v1.0.0", "local", kit, files)


def test_owned_unmodified_file_is_deleted(claude_dir: Path) -> None:
    write_files(claude_dir, {"old/cmd.md": "old command", "keep.md": "keep"})
    _install(
        claude_dir,
        "engineer",
        [tracked("old/cmd.md", "old command"), tracked("keep.md", "keep")],
    )

    result = handle_deletions(["old/cmd.md"], claude_dir, "engineer", ChecksumCache())

    assert result.deleted == ["old/cmd.md"]
    assert not (claude_dir / "old/cmd.md").exists()
    assert not (claude_dir / "old").exists()
    entry = read_kit_manifest(claude_dir, "engineer")
    assert entry is not None and entry.file_paths() == {"keep.md"}


def test_path_shared_with_other_kit_is_preserved(claude_dir: Path) -> None:
    write_files(claude_dir, {"old/cmd.md": "old command"})
    _install(claude_dir, "engineer", [tracked("old/cmd.md", "old command")])
    _install(claude_dir, "marketing", [tracked("old/cmd.md", "old command")])

    result = handle_deletions(["old/cmd.md"], claude_dir, "engineer", ChecksumCache())

    assert result.deleted == []
    assert [(p.path, p.reason) for p in result.preserved] == [
        ("old/cmd.md", "shared with marketing")
    ]
    assert (claude_dir / "old/cmd.md").exists()


def test_modified_file_is_preserved(claude_dir: Path) -> None:
    write_files(claude_dir, {"old/cmd.md": "I changed this"})
    _install(claude_dir, "engineer", [tracked("old/cmd.md", "old command")])

    result = handle_deletions(["old/cmd.md"], claude_dir, "engineer", ChecksumCache())

    assert [p.reason for p in result.preserved] == ["modified by user"]
    assert (claude_dir / "old/cmd.md").exists()


@pytest.mark.parametrize("recorded_user", [True, False])
def test_user_files_are_preserved(claude_dir: Path, recorded_user: bool) -> None:
    write_files(claude_dir, {"mine.md": "mine"})
    files = [tracked("mine.md", "mine", ownership="user")] if recorded_user else []
    _install(claude_dir, "engineer", files)

    result = handle_deletions(["mine.md"], claude_dir, "engineer", ChecksumCache())

    assert [p.reason for p in result.preserved] == ["user-created"]
    assert (claude_dir / "mine.md").exists()


def test_absent_path_is_noop(claude_dir: Path) -> None:
    _install(claude_dir, "engineer", [])

    result = handle_deletions(["never/existed.md"], claude_dir, "engineer", ChecksumCache())

    assert (result.deleted, result.preserved, result.errors) == ([], [], [])


def test_path_traversal_is_an_error(claude_dir: Path) -> None:
    (claude_dir.parent / "outside.md").write_text("x", encoding="utf-8")

    result = handle_deletions(["../outside.md"], claude_dir, "engineer", ChecksumCache())

    assert result.errors == ["../outside.md"]
    assert (claude_dir.parent / "outside.md").exists()


def test_glob_patterns_expand(claude_dir: Path) -> None:
    write_files(
        claude_dir,
        {"commands/legacy-a.md": "a", "commands/legacy-b.md": "b", "commands/plan.md": "p"},
    )
    _install(
        claude_dir,
        "engineer",
        [
            tracked("commands/legacy-a.md", "a"),
            tracked("commands/legacy-b.md", "b"),
            tracked("commands/plan.md", "p"),
        ],
    )

    result = handle_deletions(["commands/legacy-*.md"], claude_dir, "engineer", ChecksumCache())

    assert sorted(result.deleted) == ["commands/legacy-a.md", "commands/legacy-b.md"]
    assert (claude_dir / "commands/plan.md").exists()


def test_dry_run_reports_without_deleting(claude_dir: Path) -> None:
    write_files(claude_dir, {"old.md": "old"})
    _install(claude_dir, "engineer", [tracked("old.md", "old")])

    result = handle_deletions(["old.md"], claude_dir, "engineer", ChecksumCache(), dry_run=True)

    assert result.deleted == ["old.md"]
    assert (claude_dir / "old.md").exists()
    entry = read_kit_manifest(claude_dir, "engineer")
    assert entry is not None and entry.file_paths() == {"old.md"}


def test_deletion_is_recorded_for_rollback(claude_dir: Path) -> None:
    write_files(claude_dir, {"old.md": "old"})
    _install(claude_dir, "engineer", [tracked("old.md", "old")])
    txn = Transaction()

    handle_deletions(["old.md"], claude_dir, "engineer", ChecksumCache(), txn=txn)
    txn.rollback()

    assert (claude_dir / "old.md").read_text(encoding="utf-8") == "old"


def test_expand_literal_directory(claude_dir: Path) -> None:
    write_files(claude_dir, {"skills/old/a.md": "a", "skills/old/b/c.md": "c"})

    assert expand_deletion_patterns(["skills/old/"], claude_dir) == [
        "skills/old/a.md",
        "skills/old/b/c.md",
    ]


def test_resolve_within_rejects_escapes(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()

    assert resolve_within(root, "a/b.md") == root.resolve() / "a/b.md"
    with pytest.raises(PathTraversalError):
        resolve_within(root, "../x")
    with pytest.raises(PathTraversalError):
        resolve_within(root, ".")


def test_cleanup_stops_at_root_and_non_empty_dirs(tmp_path: Path) -> None:
    root = tmp_path / "root"
    (root / "a/b/c").mkdir(parents=True)
    (root / "a/keep.md").write_text("k", encoding="utf-8")

    removed = cleanup_empty_directories(root / "a/b/c", root)

    assert [path.name for path in removed] == ["c", "b"]
    assert (root / "a").is_dir()
