"""Exceptions raised by claudekit operations.

Recoverable conditions (absent manifest, single-file I/O failures, missing
kits) are reported through return values instead of these exceptions.
"""


class ClaudeKitError(Exception):
    """Base class for errors that should reach the CLI as a clean message."""


class ManifestWriteError(ClaudeKitError):
    """metadata.json could not be written."""


class UnknownKitError(ClaudeKitError):
    """A kit display name or identifier does not match any known kit."""


class PathTraversalError(ClaudeKitError):
    """A path resolved outside of the directory it must stay within."""


class ReleaseError(ClaudeKitError):
    """The release source tree is missing or malformed."""
