"""Sliding-window rate limiter.

Bounds outbound calls to ``limit`` per trailing window (one second by
default). Unlike a token bucket or fixed buckets, no trailing window of
that length -- aligned or not -- ever contains more than ``limit``
admitted calls.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """Admit at most *limit* calls in any trailing *window* seconds.

    The timestamp deque is guarded by an :class:`asyncio.Lock`; the lock is
    held only while pruning and recording, never while a caller waits for a
    slot, so waiting callers do not block each other's bookkeeping.

    Args:
        limit: Maximum admitted calls per window. Must be at least 1.
        window: Window length in seconds.
        clock: Monotonic time source, injectable for tests.
        sleep: Async sleep function, injectable for tests.

    Example::

        limiter = RateLimiter(limit=5)
        await limiter.acquire()
    """

    def __init__(
        self,
        limit: int,
        window: float = 1.0,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        if limit < 1:
            raise ValueError(f"Rate limit must be at least 1, got {limit}")
        self._limit = limit
        self._window = window
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def limit(self) -> int:
        return self._limit

    async def acquire(self) -> None:
        """Wait until a slot is free, then record the call and return."""
        while True:
            async with self._lock:
                now = self._clock()
                self._prune(now)
                if len(self._timestamps) < self._limit:
                    self._timestamps.append(now)
                    return
                wait = self._timestamps[0] + self._window - now

            logger.debug(
                "Rate limit of %d per %.1fs reached, waiting %.3fs",
                self._limit,
                self._window,
                wait,
            )
            await self._sleep(max(wait, 0.0))

    def _prune(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self._window:
            self._timestamps.popleft()
