"""
Fixed-window admission gate for the page-server endpoint.

The limiter keeps the timestamps of recent grants and, on every attempt,
drops the ones that have aged out of the window before deciding. Waiters
sleep until the oldest grant expires and then re-check; there is no queue,
so under contention whichever waiter wakes first takes the next permit
(no FIFO guarantee).

Because admission is counted against individual grants rather than
aligned buckets, a burst can still reach up to twice the limit across a
window edge when the previous window's grants expire together. This
matches the upstream client behaviour and is left as is.

State lives in the instance only and resets on restart. It does not
coordinate with other processes sharing the same upstream quota.
"""

import asyncio
import logging
import threading
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Optional

from .config import (
    PAGE_SERVER_LIMIT,
    PAGE_SERVER_WINDOW_SECONDS,
    RATE_LIMIT_BUFFER_SECONDS,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class RateLimitTimeout(TimeoutError):
    """Raised when a permit is not available within the configured max wait."""

    def __init__(self, waited: float, needed: float, max_wait: float):
        super().__init__(
            f"No rate limit permit after {waited:.2f}s; next permit in {needed:.2f}s "
            f"exceeds max wait {max_wait:.2f}s"
        )
        self.waited = waited
        self.needed = needed
        self.max_wait = max_wait


class RateLimiter:
    """Async fixed-window rate limiter with an injectable monotonic clock."""

    def __init__(
        self,
        limit: int = PAGE_SERVER_LIMIT,
        window_seconds: float = PAGE_SERVER_WINDOW_SECONDS,
        buffer_seconds: float = RATE_LIMIT_BUFFER_SECONDS,
        max_wait_seconds: Optional[float] = None,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ):
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")

        self.limit = limit
        self.window_seconds = window_seconds
        self.buffer_seconds = buffer_seconds
        self.max_wait_seconds = max_wait_seconds
        self._clock = clock
        self._sleep = sleep
        self._granted: Deque[float] = deque()
        self._lock = threading.Lock()

    def _evict(self, now: float) -> None:
        while self._granted and now - self._granted[0] >= self.window_seconds:
            self._granted.popleft()

    def _try_grant(self) -> Optional[float]:
        """
        Grant a permit if one is free.

        Returns None on success, otherwise the number of seconds to sleep
        before the oldest grant leaves the window.
        """
        with self._lock:
            now = self._clock()
            self._evict(now)
            if len(self._granted) < self.limit:
                self._granted.append(now)
                return None
            oldest = self._granted[0]
            return self.window_seconds - (now - oldest) + self.buffer_seconds

    async def acquire(self) -> None:
        """Wait until a permit is available and record the grant."""
        started = self._clock()

        while True:
            wait = self._try_grant()
            if wait is None:
                return

            if self.max_wait_seconds is not None:
                waited = self._clock() - started
                if waited + wait > self.max_wait_seconds:
                    raise RateLimitTimeout(waited, wait, self.max_wait_seconds)

            logger.info(
                f"Rate limit reached ({self.limit} per {self.window_seconds:g}s), "
                f"waiting {wait:.2f}s"
            )
            await self._sleep(wait)

    @property
    def in_window(self) -> int:
        """Number of grants still counted against the current window."""
        with self._lock:
            self._evict(self._clock())
            return len(self._granted)

    def reset(self) -> None:
        with self._lock:
            self._granted.clear()
