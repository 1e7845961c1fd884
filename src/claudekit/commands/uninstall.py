"""Uninstall command: remove one kit, or every kit, from a kit directory."""

from pathlib import Path

import click

from claudekit.cli.output import user_output
from claudekit.commands.formatting import print_removal_preview
from claudekit.context_helpers import require_context
from claudekit.error_boundary import cli_error_boundary
from claudekit.models.kits import AVAILABLE_KITS
from claudekit.operations.uninstall import analyze_installation, remove_installation


@click.command()
@click.option(
    "--dir",
    "target_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project directory (default: current directory)",
)
@click.option("--global", "-g", "is_global", is_flag=True, help="Uninstall from the global kit dir")
@click.option(
    "--kit",
    type=click.Choice(sorted(AVAILABLE_KITS)),
    default=None,
    help="Only remove this kit (default: all kits)",
)
@click.option("--force", "-f", is_flag=True, help="Also delete files you modified")
@click.option("--dry-run", is_flag=True, help="Show what would be removed without deleting")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@cli_error_boundary
def uninstall(
    ctx: click.Context,
    target_dir: Path | None,
    is_global: bool,
    kit: str | None,
    force: bool,
    dry_run: bool,
    yes: bool,
) -> None:
    """Remove installed kit files.

    Only files claudekit installed are removed. Files you modified are kept
    unless --force is given; files another kit still uses are always kept.

    Examples:

        # Remove the marketing kit, keep engineer
        ck uninstall --kit marketing

        # Preview a full uninstall of the global kit directory
        ck uninstall --global --dry-run
    """
    ck_ctx = require_context(ctx)
    if is_global:
        claude_dir = target_dir if target_dir is not None else ck_ctx.config.global_dir
    else:
        claude_dir = (target_dir if target_dir is not None else ck_ctx.cwd) / ".claude"

    analysis = analyze_installation(claude_dir, kit, force=force, cache=ck_ctx.checksum_cache)
    if not analysis.has_manifest:
        user_output(f"No installation found in {claude_dir}")
        return
    if kit is not None and kit not in analysis.installed_kits:
        user_output(f"Error: Kit '{kit}' is not installed in {claude_dir}")
        raise SystemExit(1)

    target = f"kit '{kit}'" if kit is not None else "all kits"
    print_removal_preview(analysis, f"Uninstalling {target}:")
    if dry_run:
        user_output("Dry run: nothing was deleted")
        return

    if not yes and not click.confirm("Proceed?", default=False, err=True):
        user_output("Aborted")
        return

    result = remove_installation(claude_dir, analysis)
    user_output(
        click.style(f"✓ Deleted {len(result.deleted)} file(s)", fg="green")
        + f", kept {len(analysis.to_preserve)}"
    )
    if result.metadata_deleted:
        user_output("  Removed metadata.json (no kits remain)")
    if result.errors:
        user_output(
            click.style(f"  {len(result.errors)} file(s) could not be deleted", fg="red")
        )
        raise SystemExit(1)
