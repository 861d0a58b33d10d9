"""Sliding-window rate limiter shared by version-control operations."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque

LOGGER = logging.getLogger(__name__)

MIN_OPERATION_DELAY = 0.1
OPERATIONS_PER_WINDOW = 60
WINDOW_SECONDS = 60.0

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class RateLimiter:
    """Minimum spacing plus a cap on operations per sliding window.

    ``acquire`` is serialised through an :class:`asyncio.Lock`, so concurrent
    callers queue up instead of racing on the shared timestamp window.  The
    limiter belongs to one engine instance; nothing is shared across
    processes.
    """

    def __init__(
        self,
        *,
        min_delay: float = MIN_OPERATION_DELAY,
        max_operations: int = OPERATIONS_PER_WINDOW,
        window: float = WINDOW_SECONDS,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if max_operations < 1:
            raise ValueError("max_operations must be at least 1")
        self.min_delay = min_delay
        self.max_operations = max_operations
        self.window = window
        self._clock = clock
        self._sleep = sleep
        self._timestamps: Deque[float] = deque()
        self._last_operation: float | None = None
        self._lock = asyncio.Lock()
        self.total_wait = 0.0

    def _prune(self, now: float) -> None:
        horizon = now - self.window
        while self._timestamps and self._timestamps[0] <= horizon:
            self._timestamps.popleft()

    async def _wait(self, seconds: float) -> None:
        if seconds <= 0:
            return
        self.total_wait += seconds
        await self._sleep(seconds)

    async def acquire(self) -> None:
        """Wait until one more operation is allowed, then record it."""

        async with self._lock:
            if self._last_operation is not None:
                elapsed = self._clock() - self._last_operation
                await self._wait(self.min_delay - elapsed)

            self._prune(self._clock())
            if len(self._timestamps) >= self.max_operations:
                wait_for = self.window - (self._clock() - self._timestamps[0])
                if wait_for > 0:
                    LOGGER.info("Rate limit reached, waiting %.1fs", wait_for)
                    await self._wait(wait_for)
                self._prune(self._clock())

            now = self._clock()
            self._timestamps.append(now)
            self._last_operation = now

    def in_window(self) -> int:
        """Return how many operations are recorded in the current window."""

        self._prune(self._clock())
        return len(self._timestamps)


__all__ = ["MIN_OPERATION_DELAY", "OPERATIONS_PER_WINDOW", "RateLimiter", "WINDOW_SECONDS"]
