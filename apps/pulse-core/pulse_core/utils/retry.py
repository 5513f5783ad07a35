"""Retry utilities for async operations."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    ``max_retries`` counts retries after the first call, so the wrapped
    function runs at most ``max_retries + 1`` times.
    """

    max_retries: int = 3
    delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 30.0
    exceptions: tuple[Type[Exception], ...] = field(default_factory=lambda: (Exception,))

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for given attempt (0-indexed)."""
        delay = self.delay * (self.backoff_factor**attempt)
        return min(delay, self.max_delay)


async def retry_call(
    func: Callable[..., Awaitable[T]],
    *args,
    config: RetryConfig | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **kwargs,
) -> T:
    """Call ``func`` and retry on ``config.exceptions`` with exponential backoff.

    Exceptions outside ``config.exceptions`` propagate immediately without
    consuming retry budget. After the last attempt the final exception is
    re-raised unchanged.

    Usage:
        data = await retry_call(fetch_page, url, config=RetryConfig(max_retries=2))
    """
    if config is None:
        config = RetryConfig()

    for attempt in range(config.max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except config.exceptions as e:
            if attempt >= config.max_retries:
                logger.error(
                    "All %d attempts failed for %s: %s: %s",
                    config.max_retries + 1,
                    getattr(func, "__name__", func),
                    type(e).__name__,
                    e,
                )
                raise

            delay_time = config.get_delay(attempt)
            logger.warning(
                "Retry %d/%d for %s: %s: %s. Waiting %.1fs...",
                attempt + 1,
                config.max_retries,
                getattr(func, "__name__", func),
                type(e).__name__,
                e,
                delay_time,
            )
            await sleep(delay_time)

    raise RuntimeError("unreachable")  # pragma: no cover
