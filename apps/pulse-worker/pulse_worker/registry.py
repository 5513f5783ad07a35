"""JobKind -> handler map."""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from pulse_core.models import JobKind
from pulse_worker.context import HandlerContext
from pulse_worker.handlers import (
    analyze_sentiment,
    cleanup_data,
    fetch_comments,
    fetch_posts,
    refresh_tokens,
)

Handler = Callable[[dict[str, Any], HandlerContext], Awaitable[dict[str, Any] | None]]

HANDLERS: dict[JobKind, Handler] = {
    JobKind.FETCH_POSTS: fetch_posts.handle,
    JobKind.FETCH_COMMENTS: fetch_comments.handle,
    JobKind.ANALYZE_SENTIMENT: analyze_sentiment.handle,
    JobKind.REFRESH_TOKENS: refresh_tokens.handle,
    JobKind.CLEANUP_DATA: cleanup_data.handle,
}


def build_registry(handlers: Mapping[JobKind | str, Handler] | None = None) -> dict[str, Handler]:
    """Validate that every JobKind has a handler and key the map by kind value.

    Raises:
        ValueError: a kind has no handler, or a key is not a JobKind.
    """
    handlers = HANDLERS if handlers is None else handlers
    registry = {JobKind(kind).value: handler for kind, handler in handlers.items()}

    missing = [kind.value for kind in JobKind if kind.value not in registry]
    if missing:
        raise ValueError(f"No handler registered for job kinds: {missing}")
    return registry
