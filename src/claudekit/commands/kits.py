"""Kits command for listing kits recorded in metadata.json."""

import json
from pathlib import Path

import click

from claudekit.cli.output import machine_output, user_output
from claudekit.context_helpers import require_context
from claudekit.error_boundary import cli_error_boundary
from claudekit.io.manifest import detect_metadata_format
from claudekit.models.metadata import get_installed_kits, get_kit_entry


@click.command()
@click.option(
    "--dir",
    "target_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project directory (default: current directory)",
)
@click.option("--global", "-g", "is_global", is_flag=True, help="Inspect the global kit dir")
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
@click.pass_context
@cli_error_boundary
def kits(ctx: click.Context, target_dir: Path | None, is_global: bool, as_json: bool) -> None:
    """List installed kits."""
    ck_ctx = require_context(ctx)
    if is_global:
        claude_dir = target_dir if target_dir is not None else ck_ctx.config.global_dir
    else:
        claude_dir = (target_dir if target_dir is not None else ck_ctx.cwd) / ".claude"

    detection = detect_metadata_format(claude_dir)
    rows: list[dict[str, object]] = []
    if detection.metadata is not None:
        for kit in get_installed_kits(detection.metadata):
            entry = get_kit_entry(detection.metadata, kit)
            if entry is None:
                continue
            rows.append(
                {
                    "kit": kit,
                    "version": entry.version,
                    "installedAt": entry.installed_at,
                    "files": len(entry.files),
                }
            )

    if as_json:
        machine_output(json.dumps({"format": detection.format, "kits": rows}, indent=2))
        return

    if not rows:
        user_output(f"No kits installed in {claude_dir}")
        return

    user_output(f"Installed {len(rows)} kit(s) in {claude_dir}:\n")
    for row in rows:
        user_output(
            f"  {row['kit']:<12} {row['version']:<12} {row['files']:>5} files  {row['installedAt']}"
        )
    if detection.format == "legacy":
        user_output("\n(legacy metadata format; the next install migrates it)")
