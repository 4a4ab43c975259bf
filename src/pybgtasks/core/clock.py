"""Injectable clocks.

All scheduler timestamps are integer milliseconds. SystemClock reads the
wall clock; ManualClock only moves when a test tells it to.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of the current time in milliseconds."""

    def now(self) -> int: ...


class SystemClock:
    """Wall-clock time (Unix epoch milliseconds)."""

    def now(self) -> int:
        return time.time_ns() // 1_000_000

    def __repr__(self) -> str:
        return "SystemClock"


class ManualClock:
    """Deterministic clock for tests.

    Example:
        clock = ManualClock(start=0)
        clock.advance(60_000)
        assert clock.now() == 60_000
    """

    def __init__(self, start: int = 0):
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, delta_ms: int) -> int:
        if delta_ms < 0:
            raise ValueError("ManualClock cannot move backwards")
        self._now += delta_ms
        return self._now

    def set(self, timestamp_ms: int) -> None:
        if timestamp_ms < self._now:
            raise ValueError("ManualClock cannot move backwards")
        self._now = timestamp_ms

    def __repr__(self) -> str:
        return f"ManualClock(now={self._now})"
