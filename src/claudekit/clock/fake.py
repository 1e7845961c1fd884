"""Fake Clock implementation for testing.

FakeClock returns a fixed instant so manifests written in tests are
deterministic.
"""

from datetime import UTC, datetime

from claudekit.clock.abc import Clock

DEFAULT_FAKE_NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock(Clock):
    """In-memory fake that always reports the same instant.

    This class has NO public setup methods. The instant is provided via
    constructor and the number of now() calls is captured for assertions.
    """

    def __init__(self, now: datetime = DEFAULT_FAKE_NOW) -> None:
        self._now = now
        self._calls = 0

    @property
    def calls(self) -> int:
        """Number of times now() was called.

        This property is for test assertions only.
        """
        return self._calls

    def now(self) -> datetime:
        self._calls += 1
        return self._now
