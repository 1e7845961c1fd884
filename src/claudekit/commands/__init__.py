"""CLI commands for the ck entry point."""
