"""SHA-256 checksums for installed files.

Every checksum written to or compared against metadata.json comes from this
module so the algorithm and encoding (lowercase hex) never diverge.
"""

import hashlib
import logging
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def compute_checksum(content: bytes) -> str:
    """Return the SHA-256 hex digest of content."""
    return hashlib.sha256(content).hexdigest()


def checksum_file(path: Path) -> str:
    """Return the SHA-256 hex digest of a file, streaming it in chunks.

    Raises:
        OSError: If the file cannot be read
    """
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ChecksumCache:
    """Memoizes file checksums for the lifetime of one invocation.

    Entries are keyed by (resolved path, size, mtime_ns) so a file rewritten
    during the run is hashed again. Safe to share across worker threads.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[str, int, int], str] = {}
        self._lock = threading.Lock()

    def checksum(self, path: Path) -> str:
        stat = path.stat()
        key = (str(path.resolve()), stat.st_size, stat.st_mtime_ns)
        with self._lock:
            cached = self._entries.get(key)
        if cached is not None:
            return cached

        value = checksum_file(path)
        with self._lock:
            self._entries[key] = value
        logger.debug("Computed checksum for %s", path)
        return value

    def forget(self, path: Path) -> None:
        """Drop every cached entry for path (call after rewriting it)."""
        resolved = str(path.resolve())
        with self._lock:
            for key in [key for key in self._entries if key[0] == resolved]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
