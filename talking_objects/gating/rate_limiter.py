"""
Sliding-window rate limiter for remote analysis calls.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque


class RateLimiter:
    """
    Admits at most `max_requests` within any trailing `window_seconds`.

    Timestamps expire by age; a denied request is not recorded.
    """

    def __init__(
        self,
        max_requests: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            max_requests: Request ceiling per window
            window_seconds: Trailing window length
            clock: Monotonic time source in seconds
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Deque[float] = deque()

    def _expire(self, now: float):
        while self._requests and now - self._requests[0] >= self.window_seconds:
            self._requests.popleft()

    def try_acquire(self) -> bool:
        """
        Try to admit one request.

        Returns:
            True if admitted (and recorded), False if the ceiling is reached
        """
        now = self._clock()
        self._expire(now)

        if len(self._requests) >= self.max_requests:
            return False

        self._requests.append(now)
        return True

    def time_until_next_slot(self) -> float:
        """Seconds until a request would be admitted (0.0 if one would be now)."""
        now = self._clock()
        self._expire(now)

        if len(self._requests) < self.max_requests:
            return 0.0

        return max(0.0, self.window_seconds - (now - self._requests[0]))

    def reset(self):
        self._requests.clear()

    @property
    def in_window(self) -> int:
        """Number of admitted requests still inside the window."""
        self._expire(self._clock())
        return len(self._requests)
