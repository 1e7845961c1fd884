"""Formatting functions shared by commands that remove kit files."""

import click

from claudekit.cli.output import user_output
from claudekit.operations.uninstall import UninstallAnalysis


def print_removal_preview(analysis: UninstallAnalysis, heading: str) -> None:
    """Print which files an uninstall analysis deletes and which it keeps.

    Args:
        analysis: Result of analyze_installation
        heading: First line, describing what is being removed
    """
    user_output(heading)
    user_output(f"  {len(analysis.to_delete)} file(s) will be deleted")
    for action in analysis.to_delete:
        user_output(f"    - {action.path}")
    if analysis.to_preserve:
        user_output(f"  {len(analysis.to_preserve)} file(s) will be kept")
        for action in analysis.to_preserve:
            user_output(f"    = {action.path} " + click.style(f"({action.reason})", dim=True))
    if analysis.remaining_kits:
        user_output(f"  Remaining kits: {', '.join(analysis.remaining_kits)}")
