"""Reversible operation log for best-effort rollback.

Each mutation records its own undo action before (or right after) it
happens. On failure, `rollback()` replays the undo actions in reverse order.
This is not multi-file atomicity: an undo that itself fails is logged and
skipped.
"""

import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UndoAction:
    description: str
    undo: Callable[[], None]


class Transaction:
    """Ordered log of undo actions for one operation."""

    def __init__(self) -> None:
        self._actions: list[UndoAction] = []
        self._closed = False

    @property
    def actions(self) -> list[UndoAction]:
        return list(self._actions)

    def record(self, description: str, undo: Callable[[], None]) -> None:
        if self._closed:
            raise RuntimeError("Cannot record on a committed or rolled back transaction")
        self._actions.append(UndoAction(description=description, undo=undo))

    def commit(self) -> None:
        """Discard the log; the recorded changes are kept."""
        self._actions.clear()
        self._closed = True

    def rollback(self) -> int:
        """Undo recorded changes in reverse order.

        Returns:
            Number of undo actions that failed
        """
        failures = 0
        for action in reversed(self._actions):
            try:
                action.undo()
                logger.debug("Rolled back: %s", action.description)
            except OSError as e:
                failures += 1
                logger.warning("Rollback step failed (%s): %s", action.description, e)
        self._actions.clear()
        self._closed = True
        return failures


def snapshot_file(txn: Transaction, path: Path) -> None:
    """Record how to restore `path` to its current state.

    If the file exists its bytes are captured and restored on rollback;
    otherwise rollback deletes whatever was created at `path`. Parent
    directories created afterwards are left in place.
    """
    if path.is_file():
        original = path.read_bytes()

        def restore() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(original)

        txn.record(f"restore {path}", restore)
    else:

        def remove() -> None:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink(missing_ok=True)

        txn.record(f"remove {path}", remove)
