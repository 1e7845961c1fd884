"""Clock abstraction for testing.

Timestamps written to metadata.json come from a Clock so tests can pin them.
"""

from claudekit.clock.abc import Clock
from claudekit.clock.real import RealClock

__all__ = ["Clock", "RealClock"]
