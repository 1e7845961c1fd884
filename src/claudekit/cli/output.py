"""Output helpers that keep human messages off stdout.

Progress and status messages go to stderr so stdout stays clean for
`--json` and other machine-readable output.
"""

from typing import Any

import click


def user_output(message: Any = "", *, nl: bool = True) -> None:
    """Print a human-facing message to stderr."""
    click.echo(message, err=True, nl=nl)


def machine_output(message: Any = "", *, nl: bool = True) -> None:
    """Print machine-readable output to stdout."""
    click.echo(message, nl=nl)
