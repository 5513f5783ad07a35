"""Injectable time source for the scheduler, job store and rate limiter."""

import asyncio
import time
from datetime import datetime, timezone


class Clock:
    """Wall clock + monotonic clock + sleep, backed by the real event loop.

    Tests substitute a virtual clock with the same three methods so that
    backoff and rate-limit waits advance instantly.
    """

    def now(self) -> datetime:
        """Current UTC time (timezone-aware)."""
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)


system_clock = Clock()
