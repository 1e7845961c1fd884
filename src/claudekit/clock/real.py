"""Real clock implementation using the system time."""

from datetime import UTC, datetime

from claudekit.clock.abc import Clock


class RealClock(Clock):
    """Production implementation using datetime.now() in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)
