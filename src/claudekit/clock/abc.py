"""Abstract clock for dependency injection."""

from abc import ABC, abstractmethod
from datetime import datetime


class Clock(ABC):
    """Abstract clock operations."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as a timezone-aware datetime."""
        ...

    def now_iso(self) -> str:
        return self.now().isoformat()
