"""
Clock abstraction

Cache expiry, queue sequencing and retry scheduling read time through a
Clock so tests can drive them deterministically.
"""

import time
from typing import Protocol


class Clock(Protocol):
    """Source of wall-clock time in epoch seconds."""

    def now(self) -> float: ...


class SystemClock:
    """Clock backed by time.time()."""

    def now(self) -> float:
        return time.time()


class FakeClock:
    """Manually advanced clock for tests and simulations."""

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        """Move time forward and return the new timestamp."""
        if seconds < 0:
            raise ValueError("FakeClock cannot move backwards")
        self._now += seconds
        return self._now

    def set(self, timestamp: float) -> None:
        self._now = timestamp


system_clock = SystemClock()
