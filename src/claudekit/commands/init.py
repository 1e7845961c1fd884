"""Init command: install or update a kit from a decompressed release."""

from pathlib import Path

import click

from claudekit.cli.output import user_output
from claudekit.commands.formatting import print_removal_preview
from claudekit.context import ClaudeKitContext
from claudekit.context_helpers import require_context
from claudekit.error_boundary import cli_error_boundary
from claudekit.models.kits import AVAILABLE_KITS
from claudekit.operations.install import (
    InstallRequest,
    InstallResult,
    clear_for_fresh_install,
    install_kit,
    plan_fresh_install,
)
from claudekit.operations.merge import (
    ConflictResolver,
    PromptConflictResolver,
    SkipConflictResolver,
)

# Cap on per-file lines printed for each category
_MAX_LISTED = 10


def _print_paths(label: str, paths: list[str]) -> None:
    if not paths:
        return
    user_output(f"  {label}: {len(paths)}")
    for path in paths[:_MAX_LISTED]:
        user_output(f"    {path}")
    if len(paths) > _MAX_LISTED:
        user_output(f"    ... and {len(paths) - _MAX_LISTED} more")


def _print_summary(result: InstallResult) -> None:
    merge = result.merge
    prefix = "Would install" if result.dry_run else "Installed"
    user_output(
        click.style(f"✓ {prefix} {result.kit} {result.version}", fg="green")
        + f" into {result.claude_dir}"
    )
    if result.migrated:
        user_output("  Migrated metadata.json to the multi-kit format")

    user_output(
        f"  {len(merge.added)} added, {len(merge.updated)} updated, "
        f"{len(merge.unchanged)} unchanged, {len(merge.skipped)} skipped"
    )
    if merge.settings is not None:
        settings = merge.settings
        user_output(
            f"  settings.json: {settings.hooks_added} hook(s) added, "
            f"{settings.mcp_servers_added} MCP server(s) added"
        )

    if merge.conflicts:
        user_output(
            click.style(f"  Kept {len(merge.conflicts)} file(s) you modified:", fg="yellow")
        )
        for conflict in merge.conflicts[:_MAX_LISTED]:
            user_output(f"    {conflict.path}")
        user_output("  Re-run with --force to overwrite them")

    for decision in merge.shared_conflicts:
        kept = decision.incoming_kit if decision.winner == "incoming" else decision.existing_kit
        user_output(f"  Shared file {decision.path}: kept {kept} version ({decision.reason})")

    _print_paths("Removed deprecated", result.deletions.deleted)
    for preserved in result.deletions.preserved:
        user_output(f"  Kept deprecated {preserved.path} ({preserved.reason})")

    if result.tracking is not None and result.tracking.failed:
        user_output(
            click.style(f"  Could not track {result.tracking.failed} file(s)", fg="yellow")
        )

    if merge.failed:
        user_output(
            click.style(f"  {len(merge.failed)} file(s) failed to install", fg="red")
            + " (run with --debug for details)"
        )


def _clear_for_fresh(ck_ctx: ClaudeKitContext, request: InstallRequest, *, yes: bool) -> bool:
    """Run the removal step of a fresh install. Returns False if the user declined."""
    plan = plan_fresh_install(ck_ctx, request)
    if not plan.analysis.has_manifest:
        user_output(f"No previous installation in {plan.claude_dir}, installing normally")
        return True

    print_removal_preview(plan.analysis, "Fresh install removes existing kit files first:")
    if request.dry_run:
        user_output("Dry run: nothing was removed")
        return True
    if not yes and not click.confirm("Remove these files and reinstall?", default=False, err=True):
        return False

    removal = clear_for_fresh_install(plan)
    user_output(
        f"  Removed {len(removal.deleted)} file(s), kept {len(plan.analysis.to_preserve)}"
    )
    if removal.errors:
        user_output(
            click.style(f"  {len(removal.errors)} file(s) could not be removed", fg="yellow")
        )
    return True


@click.command()
@click.option(
    "--source",
    "-s",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    required=True,
    help="Decompressed release directory to install from",
)
@click.option(
    "--dir",
    "target_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project directory (default: current directory)",
)
@click.option("--global", "-g", "is_global", is_flag=True, help="Install into the global kit dir")
@click.option(
    "--kit",
    type=click.Choice(sorted(AVAILABLE_KITS)),
    default=None,
    help="Kit to install (default: configured default kit)",
)
@click.option("--only", multiple=True, help="Only install matching paths (repeatable, glob)")
@click.option("--exclude", multiple=True, help="Skip matching paths (repeatable, glob)")
@click.option(
    "--force", "-f", is_flag=True, help="Overwrite files you modified (with --fresh: remove them)"
)
@click.option("--yes", "-y", is_flag=True, help="Do not prompt; keep files you modified")
@click.option(
    "--fresh",
    is_flag=True,
    help="Remove installed kit files first (files you modified or created are kept)",
)
@click.option("--dry-run", is_flag=True, help="Show what would change without writing")
@click.option("--concurrency", type=click.IntRange(min=1), default=None, help="Parallel file ops")
@click.pass_context
@cli_error_boundary
def init(
    ctx: click.Context,
    source: Path,
    target_dir: Path | None,
    is_global: bool,
    kit: str | None,
    only: tuple[str, ...],
    exclude: tuple[str, ...],
    force: bool,
    yes: bool,
    fresh: bool,
    dry_run: bool,
    concurrency: int | None,
) -> None:
    """Install a kit, or update it if already installed.

    Files you edited since the last install are never overwritten without
    --force or confirmation. Files you created yourself are never touched.

    Examples:

        # Install into the current project
        ck init --source ./claudekit-engineer

        # Install the marketing kit globally
        ck init --source ./claudekit-marketing --kit marketing --global

        # Start over, keeping only your own files
        ck init --source ./claudekit-engineer --fresh
    """
    ck_ctx = require_context(ctx)

    resolver: ConflictResolver
    if yes or dry_run:
        resolver = SkipConflictResolver()
    else:
        resolver = PromptConflictResolver()

    request = InstallRequest(
        source=source,
        kit=kit if kit is not None else ck_ctx.config.default_kit,
        is_global=is_global,
        target_dir=target_dir,
        include=only,
        exclude=exclude,
        force=force,
        dry_run=dry_run,
        resolver=resolver,
        concurrency=concurrency,
    )
    if fresh and not _clear_for_fresh(ck_ctx, request, yes=yes):
        user_output("Aborted")
        return

    result = install_kit(ck_ctx, request)
    _print_summary(result)

    if result.merge.has_failures:
        raise SystemExit(1)
