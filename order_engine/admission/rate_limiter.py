"""
Sliding-window rate limiter for order dispatch.

Callers over the ceiling wait for the oldest call to leave the window
instead of being rejected.
"""

import asyncio
import time
from collections import deque
from typing import Callable, Deque


class SlidingWindowRateLimiter:
    """
    Allows at most ``max_calls`` acquisitions in any rolling ``period``.

    Attributes:
        _timestamps: Acquisition times still inside the window, oldest first
        _lock: Serializes window bookkeeping between waiting callers
    """

    def __init__(
        self,
        max_calls: int = 100,
        period: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize rate limiter.

        Args:
            max_calls: Acquisitions allowed per window
            period: Window length in seconds
            clock: Monotonic time source, injectable for tests
        """
        if max_calls <= 0:
            raise ValueError("max_calls must be positive")
        if period <= 0:
            raise ValueError("period must be positive")

        self._max_calls = max_calls
        self._period = period
        self._clock = clock
        self._timestamps: Deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def max_calls(self) -> int:
        return self._max_calls

    @property
    def period(self) -> float:
        return self._period

    def _prune(self, now: float) -> None:
        cutoff = now - self._period
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def try_acquire(self) -> bool:
        """Take a slot if one is free right now."""
        now = self._clock()
        self._prune(now)
        if len(self._timestamps) >= self._max_calls:
            return False
        self._timestamps.append(now)
        return True

    async def acquire(self) -> float:
        """
        Wait until a slot is free, then take it.

        Returns:
            float: Seconds spent waiting
        """
        started = self._clock()
        async with self._lock:
            while not self.try_acquire():
                wait = self._timestamps[0] + self._period - self._clock()
                await asyncio.sleep(max(wait, 0.001))
        return self._clock() - started

    def current_usage(self) -> int:
        """Acquisitions inside the current window."""
        self._prune(self._clock())
        return len(self._timestamps)
