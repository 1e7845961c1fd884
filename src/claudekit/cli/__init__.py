import logging

import click

from claudekit.cli.output import user_output
from claudekit.context import create_context
from claudekit.version import __version__

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])

# Track whether commands are registered
_commands_registered = False


class LazyGroup(click.Group):
    """Click Group that lazily loads commands."""

    def list_commands(self, ctx):
        """List available commands, registering them if needed."""
        global _commands_registered
        if not _commands_registered:
            _register_commands()
        return super().list_commands(ctx)

    def get_command(self, ctx, cmd_name):
        """Get a command by name, registering if needed."""
        global _commands_registered
        if not _commands_registered:
            _register_commands()
        return super().get_command(ctx, cmd_name)


def _configure_logging(debug: bool, verbose: bool) -> None:
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("claudekit").setLevel(level)


@click.command(cls=LazyGroup, invoke_without_command=True, context_settings=CONTEXT_SETTINGS)
@click.version_option(version=__version__)
@click.option("--debug", is_flag=True, help="Show full stack traces and debug logging")
@click.option("--verbose", "-v", is_flag=True, help="Show progress logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool, verbose: bool) -> None:
    """Install and manage ClaudeKit kits."""
    _configure_logging(debug, verbose)

    # Only create context if not already provided (e.g., by tests)
    if ctx.obj is None:
        ctx.obj = create_context(debug=debug)

    if ctx.invoked_subcommand is None:
        user_output(ctx.get_help())


def _register_commands() -> None:
    """Register all commands with the CLI group."""
    global _commands_registered

    if _commands_registered:
        return

    from claudekit.commands.init import init
    from claudekit.commands.kits import kits
    from claudekit.commands.status import status
    from claudekit.commands.uninstall import uninstall

    cli.add_command(init)
    cli.add_command(kits)
    cli.add_command(status)
    cli.add_command(uninstall)

    _commands_registered = True


def main() -> None:
    """CLI entry point used by the `ck` console script."""
    cli()


if __name__ == "__main__":
    main()
