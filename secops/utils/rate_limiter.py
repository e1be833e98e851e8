"""Sliding-window call counter."""

from __future__ import annotations

from collections import deque
from typing import Deque

from secops.utils.clock import Clock


class SlidingWindowRateLimiter:
    """Allow at most *max_calls* within any trailing *window_seconds*.

    Args:
        max_calls: Quota per window.
        window_seconds: Length of the trailing window (one minute by default).
        clock: Time source; inject a ManualClock in tests.
    """

    def __init__(self, max_calls: int, window_seconds: float = 60.0, clock: Clock | None = None) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._clock = clock or Clock()
        self._calls: Deque[float] = deque()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._calls and self._calls[0] <= cutoff:
            self._calls.popleft()

    def try_acquire(self) -> bool:
        """Record a call and return True, or return False when over quota."""
        now = self._clock.time()
        self._prune(now)
        if len(self._calls) >= self.max_calls:
            return False
        self._calls.append(now)
        return True

    @property
    def remaining(self) -> int:
        self._prune(self._clock.time())
        return self.max_calls - len(self._calls)
