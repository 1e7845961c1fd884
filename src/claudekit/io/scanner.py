"""Walking kit directories and matching gitignore-style patterns."""

import logging
from pathlib import Path

import pathspec

logger = logging.getLogger(__name__)


def scan_files(root: Path) -> list[str]:
    """List regular files under root as sorted POSIX paths relative to root.

    Symlinks (to files or directories) are skipped and never followed.
    A missing root yields an empty list.
    """
    if not root.is_dir():
        return []

    results: list[str] = []
    stack = [root]
    while stack:
        current = stack.pop()
        for entry in current.iterdir():
            if entry.is_symlink():
                logger.debug("Skipping symlink %s", entry)
                continue
            if entry.is_dir():
                stack.append(entry)
            elif entry.is_file():
                results.append(entry.relative_to(root).as_posix())
    return sorted(results)


def is_glob_pattern(pattern: str) -> bool:
    return any(ch in pattern for ch in "*?{[")


def build_spec(patterns: list[str] | tuple[str, ...]) -> pathspec.PathSpec:
    return pathspec.PathSpec.from_lines("gitwildmatch", patterns)


class PathFilter:
    """Include/exclude filter over relative paths.

    An empty include list admits everything. Exclusions always win.
    """

    def __init__(
        self,
        include: list[str] | tuple[str, ...] = (),
        exclude: list[str] | tuple[str, ...] = (),
    ) -> None:
        self._include = build_spec(include) if include else None
        self._exclude = build_spec(exclude) if exclude else None

    def matches(self, path: str) -> bool:
        if self._exclude is not None and self._exclude.match_file(path):
            return False
        if self._include is None:
            return True
        return self._include.match_file(path)
