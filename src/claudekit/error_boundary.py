"""Error boundary handling for CLI commands.

This module provides decorators to catch well-known exceptions at CLI entry points
and display clean error messages without stack traces.
"""

import functools
import logging
from collections.abc import Callable
from typing import Any

import click

from claudekit.context import ClaudeKitContext
from claudekit.errors import ClaudeKitError

logger = logging.getLogger(__name__)

_HANDLED = (ClaudeKitError, FileExistsError, FileNotFoundError, PermissionError, ValueError)


def _debug_requested() -> bool:
    ctx = click.get_current_context(silent=True)
    if ctx is None:
        return False
    return isinstance(ctx.obj, ClaudeKitContext) and ctx.obj.debug


def cli_error_boundary[T: Callable[..., Any]](func: T) -> T:
    """Decorator that catches well-known exceptions and displays clean error messages.

    This decorator should be applied to CLI command entry points to provide
    user-friendly error messages without stack traces for predictable error conditions.

    Catches:
        - ClaudeKitError: Manifest write failures, unknown kits, bad releases
        - FileExistsError: File/directory conflicts
        - FileNotFoundError: Missing files/directories
        - ValueError: Invalid input or configuration
        - PermissionError: Permission denied errors

    When the top-level `--debug` flag is set the exception is re-raised so
    the full stack trace is shown. All other exceptions bubble up normally.

    Example:
        @click.command()
        @cli_error_boundary
        def my_command():
            ...
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except _HANDLED as e:
            if _debug_requested():
                raise
            logger.debug("Command failed", exc_info=True)
            click.echo(f"Error: {e}", err=True)
            raise SystemExit(1) from None

    return wrapper  # type: ignore[return-value]
