"""Job handlers, one module per JobKind.

Each module exposes ``async def handle(payload, ctx) -> dict``. Handlers are
idempotent: re-running one after a crash or retry upserts the same rows.
"""

from pulse_worker.handlers import (
    analyze_sentiment,
    cleanup_data,
    fetch_comments,
    fetch_posts,
    refresh_tokens,
)

__all__ = [
    "analyze_sentiment",
    "cleanup_data",
    "fetch_comments",
    "fetch_posts",
    "refresh_tokens",
]
