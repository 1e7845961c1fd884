"""Core operations: ownership, merge, tracking, deletions, uninstall, install."""
