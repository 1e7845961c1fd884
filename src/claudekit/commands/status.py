"""Status command: per-kit ownership breakdown of tracked files."""

from collections import Counter
from pathlib import Path

import click

from claudekit.cli.output import user_output
from claudekit.context_helpers import require_context
from claudekit.error_boundary import cli_error_boundary
from claudekit.io.manifest import read_manifest
from claudekit.models.metadata import get_installed_kits, get_kit_entry
from claudekit.operations.ownership import check_ownership_batch


@click.command()
@click.option(
    "--dir",
    "target_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project directory (default: current directory)",
)
@click.option("--global", "-g", "is_global", is_flag=True, help="Inspect the global kit dir")
@click.option("--verbose", "-v", is_flag=True, help="List modified and missing files")
@click.pass_context
@cli_error_boundary
def status(ctx: click.Context, target_dir: Path | None, is_global: bool, verbose: bool) -> None:
    """Show which tracked files are unmodified, modified, or missing."""
    ck_ctx = require_context(ctx)
    if is_global:
        claude_dir = target_dir if target_dir is not None else ck_ctx.config.global_dir
    else:
        claude_dir = (target_dir if target_dir is not None else ck_ctx.cwd) / ".claude"

    metadata = read_manifest(claude_dir)
    if metadata is None:
        user_output(f"No installation found in {claude_dir}")
        return

    for kit in get_installed_kits(metadata):
        entry = get_kit_entry(metadata, kit)
        if entry is None:
            continue

        results = check_ownership_batch(
            [(claude_dir / tracked.path, tracked) for tracked in entry.files],
            ck_ctx.checksum_cache,
            concurrency=ck_ctx.config.concurrency,
        )
        counts: Counter[str] = Counter()
        modified: list[str] = []
        missing: list[str] = []
        for tracked, result in zip(entry.files, results, strict=True):
            if not result.exists:
                counts["missing"] += 1
                missing.append(tracked.path)
            elif result.ownership == "ck-modified":
                counts["modified"] += 1
                modified.append(tracked.path)
            elif result.ownership == "user":
                # check failed; the file could not be read
                counts["unreadable"] += 1
            else:
                counts["unmodified"] += 1

        user_output(
            click.style(f"{kit}", bold=True)
            + f" {entry.version}: {counts['unmodified']} unmodified, "
            f"{counts['modified']} modified, {counts['missing']} missing"
        )
        if counts["unreadable"]:
            user_output(f"  {counts['unreadable']} file(s) could not be read")
        if verbose:
            for path in modified:
                user_output(f"  M {path}")
            for path in missing:
                user_output(f"  ! {path}")
