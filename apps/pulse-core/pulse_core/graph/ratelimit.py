"""Sliding-window rate limiter, one per credential context."""

from __future__ import annotations

import asyncio
import logging
from collections import deque

from pulse_core.utils.clock import Clock, system_clock

logger = logging.getLogger(__name__)


class SlidingWindowRateLimiter:
    """Allow at most ``max_requests`` calls in any trailing ``window_seconds``.

    ``acquire()`` suspends the caller until a slot is free. The lock is held
    while waiting, so concurrent callers sharing one credential are served in
    arrival order.
    """

    def __init__(
        self,
        max_requests: int = 200,
        window_seconds: float = 3600.0,
        clock: Clock = system_clock,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
            self._timestamps.popleft()

    async def acquire(self) -> float:
        """Reserve a slot. Returns the number of seconds spent waiting."""
        async with self._lock:
            now = self._clock.monotonic()
            self._prune(now)

            waited = 0.0
            if len(self._timestamps) >= self.max_requests:
                waited = self.window_seconds - (now - self._timestamps[0])
                logger.info(
                    "Rate limit reached (%d/%d in %.0fs window), waiting %.1fs",
                    len(self._timestamps),
                    self.max_requests,
                    self.window_seconds,
                    waited,
                )
                await self._clock.sleep(waited)
                now = self._clock.monotonic()
                self._prune(now)

            self._timestamps.append(now)
            return waited

    @property
    def in_window(self) -> int:
        """Requests currently counted against the window."""
        return len(self._timestamps)


class RateLimiterRegistry:
    """Hands out one shared limiter per credential key (a token hash)."""

    def __init__(
        self,
        max_requests: int = 200,
        window_seconds: float = 3600.0,
        clock: Clock = system_clock,
    ) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._clock = clock
        self._limiters: dict[str, SlidingWindowRateLimiter] = {}

    def get(self, key: str) -> SlidingWindowRateLimiter:
        # No await between lookup and insert, so this is atomic on the event loop
        limiter = self._limiters.get(key)
        if limiter is None:
            limiter = SlidingWindowRateLimiter(
                self._max_requests, self._window_seconds, self._clock
            )
            self._limiters[key] = limiter
        return limiter

    def __len__(self) -> int:
        return len(self._limiters)
