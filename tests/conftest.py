"""Shared fixtures for claudekit tests."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from claudekit.context import ClaudeKitContext
from claudekit.io.checksum import compute_checksum
from tests.test_utils.builders import ReleaseFactory, write_files


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture
def claude_dir(project_dir: Path) -> Path:
    path = project_dir / ".claude"
    path.mkdir()
    return path


@pytest.fixture
def ck_ctx(project_dir: Path) -> ClaudeKitContext:
    return ClaudeKitContext.for_test(cwd=project_dir)


@pytest.fixture
def make_release(tmp_path: Path) -> ReleaseFactory:
    """Factory for decompressed release trees.

    Files are written under `<release>/.claude`. The release's metadata.json
    and release-manifest.json go next to them unless disabled.
    """
    counter = 0

    def factory(
        files: dict[str, str],
        *,
        name: str = "ClaudeKit Engineer",
        version: str = "v1.0.0",
        deletions: list[str] | None = None,
        timestamps: dict[str, str] | None = None,
        with_manifest: bool = True,
        root_files: dict[str, str] | None = None,
    ) -> Path:
        nonlocal counter
        counter += 1
        release = tmp_path / f"release-{counter}"
        kit_root = release / ".claude"
        kit_root.mkdir(parents=True)
        write_files(kit_root, files)
        if root_files:
            write_files(release, root_files)

        metadata: dict[str, object] = {"name": name, "version": version}
        if deletions is not None:
            metadata["deletions"] = deletions
        (kit_root / "metadata.json").write_text(json.dumps(metadata), encoding="utf-8")

        if with_manifest:
            stamps = timestamps or {}
            manifest_files = []
            for rel, content in files.items():
                entry: dict[str, object] = {
                    "path": rel,
                    "checksum": compute_checksum(content.encode("utf-8")),
                    "size": len(content.encode("utf-8")),
                }
                if rel in stamps:
                    entry["lastModified"] = stamps[rel]
                manifest_files.append(entry)
            manifest = {
                "version": version,
                "generatedAt": "2025-01-01T00:00:00Z",
                "files": manifest_files,
            }
            (kit_root / "release-manifest.json").write_text(
                json.dumps(manifest), encoding="utf-8"
            )
        return release

    return factory
