"""Fixed-window token bucket shared by every outbound provider call."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

# Defaults mirror the public indexer quotas (30 requests per minute)
DEFAULT_CAPACITY = 30
DEFAULT_WINDOW_SECONDS = 60.0


class RateLimiter:
    """Token bucket that refills all at once when its window elapses.

    The bucket starts full. Each ``acquire()`` consumes one token; once the
    bucket is empty, callers suspend until ``window_seconds`` have passed since
    the last refill, at which point the bucket is reset to ``capacity``. This
    is a coarse reset, so a burst of up to ``capacity`` calls is possible right
    after every window boundary.

    Example:
        ```python
        limiter = RateLimiter(capacity=5, window_seconds=1.0)
        for _ in range(6):
            await limiter.acquire()  # the sixth call waits ~1s
        ```
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the limiter.

        Args:
            capacity: Tokens available per window.
            window_seconds: Window length in seconds.
            clock: Monotonic time source, injectable for tests.
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self._capacity = capacity
        self._window = window_seconds
        self._clock = clock

        self._tokens = capacity
        self._window_start = clock()
        self._lock = asyncio.Lock()

    @property
    def capacity(self) -> int:
        """Tokens granted per window."""
        return self._capacity

    @property
    def window_seconds(self) -> float:
        """Window length in seconds."""
        return self._window

    def _refill_if_due(self, now: float) -> None:
        if now - self._window_start >= self._window:
            self._tokens = self._capacity
            self._window_start = now

    async def acquire(self) -> None:
        """Wait until a token is available, then consume it."""
        async with self._lock:
            while True:
                now = self._clock()
                self._refill_if_due(now)
                if self._tokens > 0:
                    self._tokens -= 1
                    return

                wait_time = self._window - (now - self._window_start)
                logger.debug("Rate limit reached, waiting %.2fs for refill", wait_time)
                await asyncio.sleep(max(wait_time, 0.0))
