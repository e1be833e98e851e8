"""Time sources.

Services never call :func:`time.time` directly; they read an injected clock
so that windows, TTLs and expiries can be driven by virtual time.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone


class Clock:
    """Wall clock in UTC."""

    def time(self) -> float:
        """Seconds since the epoch."""
        return time.time()

    def now(self) -> datetime:
        return datetime.fromtimestamp(self.time(), tz=timezone.utc)


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._now = start.timestamp()

    def time(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("cannot move a clock backwards")
        self._now += seconds

    def advance_to(self, moment: datetime) -> None:
        self.advance(moment.timestamp() - self._now)

    def __repr__(self) -> str:
        return f"ManualClock({self.now().isoformat()})"


def seconds_from(moment: datetime, seconds: float) -> datetime:
    return moment + timedelta(seconds=seconds)
