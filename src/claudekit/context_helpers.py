"""Helper for accessing the ClaudeKitContext from Click commands with an LBYL check."""

import click

from claudekit.context import ClaudeKitContext


def require_context(ctx: click.Context) -> ClaudeKitContext:
    """Get the ClaudeKitContext, exiting with an error if it is not initialized.

    Args:
        ctx: Click context (must have ClaudeKitContext in ctx.obj)

    Returns:
        The ClaudeKitContext created at the CLI entry point

    Raises:
        SystemExit: If context not initialized (exits with code 1)

    Example:
        >>> @click.command()
        >>> @click.pass_context
        >>> def my_command(ctx: click.Context) -> None:
        ...     ck_ctx = require_context(ctx)
        ...     claude_dir = ck_ctx.cwd / ".claude"
    """
    if not isinstance(ctx.obj, ClaudeKitContext):
        click.echo("Error: Context not initialized", err=True)
        raise SystemExit(1)

    return ctx.obj
