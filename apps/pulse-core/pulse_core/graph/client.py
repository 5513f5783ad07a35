"""GraphApiClient — rate-limited, retrying, paginating Graph API wrapper.

Every HTTP attempt first passes through the credential's sliding-window limiter.
Throttling (429), 5xx and network failures are retried with capped exponential
backoff; any other 4xx fails immediately.

Usage:
    async with GraphApiClient(token, limiter=registry.get(hash_token(token))) as api:
        if await api.validate_token():
            posts = await api.get_page_posts(page_external_id, since="2024-01-01")
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Self

import aiohttp

from pulse_core.config.settings import Settings
from pulse_core.errors import (
    PermanentApiError,
    RateLimitExceeded,
    TransientApiError,
)
from pulse_core.graph.ratelimit import RateLimiterRegistry, SlidingWindowRateLimiter
from pulse_core.models.content import (
    FacebookComment,
    FacebookPost,
    InstagramAccount,
    InstagramComment,
    InstagramPost,
    PageAccount,
    TokenInfo,
)
from pulse_core.utils.clock import Clock, system_clock
from pulse_core.utils.retry import RetryConfig, retry_call
from pulse_core.vault.credentials import hash_token

logger = logging.getLogger(__name__)

POST_FIELDS = "id,message,created_time,permalink_url,likes.summary(true),comments.summary(true)"
COMMENT_FIELDS = "id,from,message,created_time,like_count,parent"
IG_POST_FIELDS = "id,caption,timestamp,permalink,like_count,comments_count"
IG_COMMENT_FIELDS = "id,text,timestamp,username,like_count"

DEFAULT_POST_CAP = 1000
DEFAULT_COMMENT_CAP = 10000


def _redact(url: str) -> str:
    """Drop the query string (it carries access_token) before logging."""
    return url.split("?", 1)[0]


def _error_message(body: dict[str, Any], fallback: str) -> str:
    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return fallback


class GraphApiClient:
    """Graph API wrapper bound to one access token."""

    BASE_URL = "https://graph.facebook.com/v18.0"

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = BASE_URL,
        limiter: SlidingWindowRateLimiter | None = None,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 30.0,
        timeout: float = 30.0,
        clock: Clock = system_clock,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._access_token = access_token
        self._base_url = base_url.rstrip("/")
        self._clock = clock
        self._limiter = limiter or SlidingWindowRateLimiter(clock=clock)
        self._retry = RetryConfig(
            max_retries=max(max_attempts - 1, 0),
            delay=backoff_base,
            max_delay=backoff_max,
            exceptions=(TransientApiError,),
        )
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(
        cls,
        access_token: str,
        settings: Settings,
        limiters: RateLimiterRegistry,
        clock: Clock = system_clock,
    ) -> GraphApiClient:
        """Build a client that shares the process-wide limiter for this token."""
        return cls(
            access_token,
            base_url=settings.graph_base_url,
            limiter=limiters.get(hash_token(access_token)),
            max_attempts=settings.graph_max_attempts,
            backoff_base=settings.graph_backoff_base_seconds,
            backoff_max=settings.graph_backoff_max_seconds,
            timeout=settings.graph_timeout_seconds,
            clock=clock,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # ──────────────────────────────────────────────
    # Core request path
    # ──────────────────────────────────────────────

    async def request(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        method: str = "GET",
    ) -> dict[str, Any]:
        """Call ``endpoint`` (e.g. ``/me``) with retries. Returns the JSON body.

        Raises:
            RateLimitExceeded: throttled on every attempt.
            TransientApiError: 5xx / network failure on every attempt.
            PermanentApiError: any other 4xx, raised on the first occurrence.
        """
        query: dict[str, str] = {"access_token": self._access_token}
        for key, value in (params or {}).items():
            if value is None:
                continue
            query[key] = str(value).lower() if isinstance(value, bool) else str(value)

        url = f"{self._base_url}/{endpoint.lstrip('/')}"
        return await retry_call(
            self._send_once, method, url, query, config=self._retry, sleep=self._clock.sleep
        )

    async def _request_url(self, url: str) -> dict[str, Any]:
        """Follow an absolute ``paging.next`` URL (already carries params + token)."""
        return await retry_call(
            self._send_once, "GET", url, None, config=self._retry, sleep=self._clock.sleep
        )

    async def _send_once(
        self, method: str, url: str, params: dict[str, str] | None
    ) -> dict[str, Any]:
        await self._limiter.acquire()
        status, body = await self._send(method, url, params)
        logger.debug("%s %s -> %d", method, _redact(url), status)

        if status == 429:
            raise RateLimitExceeded(_error_message(body, "Rate limited by Graph API"))
        if status >= 500:
            raise TransientApiError(status, _error_message(body, "Graph API server error"))
        if status >= 400:
            raise PermanentApiError(status, _error_message(body, f"HTTP {status}"))
        return body

    async def _send(
        self, method: str, url: str, params: dict[str, str] | None
    ) -> tuple[int, dict[str, Any]]:
        """One HTTP round trip. Network failures surface as TransientApiError."""
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

        try:
            async with self._session.request(method, url, params=params) as resp:
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    body = {}
                if not isinstance(body, dict):
                    body = {"data": body}
                return resp.status, body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientApiError(None, f"{type(e).__name__}: {e}") from e

    async def list_all(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        item_cap: int = DEFAULT_POST_CAP,
    ) -> list[dict[str, Any]]:
        """Collect ``data`` items across pages until the cursor runs out or ``item_cap``.

        Returns at most ``item_cap`` items. Hitting the cap is a normal early stop.
        """
        items: list[dict[str, Any]] = []
        page = await self.request(endpoint, params)
        pages = 1

        while True:
            batch = page.get("data") or []
            items.extend(batch)
            if len(items) >= item_cap:
                logger.info(
                    "Pagination cap reached for %s (%d items, %d pages)",
                    endpoint, item_cap, pages,
                )
                return items[:item_cap]

            next_url = (page.get("paging") or {}).get("next")
            if not next_url or not batch:
                break
            page = await self._request_url(next_url)
            pages += 1

        logger.debug("Fetched %d items from %s in %d pages", len(items), endpoint, pages)
        return items

    # ──────────────────────────────────────────────
    # Tokens
    # ──────────────────────────────────────────────

    async def validate_token(self) -> bool:
        """True if the token can read ``/me``.

        Only permanent API errors count as invalid; transient failures propagate
        so a network blip never deactivates a page.
        """
        try:
            await self.request("/me", {"fields": "id"})
            return True
        except PermanentApiError as e:
            logger.info("Token validation failed: %s", e.message)
            return False

    async def get_token_info(self) -> TokenInfo:
        body = await self.request("/debug_token", {"input_token": self._access_token})
        return TokenInfo.model_validate(body.get("data") or {})

    async def exchange_for_long_lived_token(self, app_id: str, app_secret: str) -> str:
        body = await self.request(
            "/oauth/access_token",
            {
                "grant_type": "fb_exchange_token",
                "client_id": app_id,
                "client_secret": app_secret,
                "fb_exchange_token": self._access_token,
            },
        )
        token = body.get("access_token")
        if not token:
            raise PermanentApiError(None, "Token exchange returned no access_token")
        return token

    async def get_page_access_tokens(self) -> list[PageAccount]:
        raw = await self.list_all("/me/accounts", {"fields": "id,name,access_token"})
        return [PageAccount.model_validate(item) for item in raw]

    # ──────────────────────────────────────────────
    # Facebook Pages
    # ──────────────────────────────────────────────

    async def get_page_posts(
        self,
        page_id: str,
        since: str | None = None,
        until: str | None = None,
        limit: int = 25,
        item_cap: int = DEFAULT_POST_CAP,
    ) -> list[FacebookPost]:
        params = {"fields": POST_FIELDS, "limit": limit, "since": since, "until": until}
        raw = await self.list_all(f"/{page_id}/posts", params, item_cap)
        return [FacebookPost.model_validate(item) for item in raw]

    async def get_post_comments(
        self,
        post_id: str,
        limit: int = 100,
        item_cap: int = DEFAULT_COMMENT_CAP,
    ) -> list[FacebookComment]:
        params = {"fields": COMMENT_FIELDS, "filter": "stream", "limit": limit}
        raw = await self.list_all(f"/{post_id}/comments", params, item_cap)
        return [FacebookComment.model_validate(item) for item in raw]

    # ──────────────────────────────────────────────
    # Instagram Business
    # ──────────────────────────────────────────────

    async def get_connected_instagram_account(self, page_id: str) -> InstagramAccount | None:
        try:
            body = await self.request(f"/{page_id}", {"fields": "connected_instagram_account"})
        except PermanentApiError as e:
            logger.warning("No Instagram account for page %s: %s", page_id, e.message)
            return None
        account = body.get("connected_instagram_account")
        return InstagramAccount.model_validate(account) if account else None

    async def get_instagram_posts(
        self,
        ig_user_id: str,
        since: str | None = None,
        until: str | None = None,
        limit: int = 25,
        item_cap: int = DEFAULT_POST_CAP,
    ) -> list[InstagramPost]:
        params = {"fields": IG_POST_FIELDS, "limit": limit, "since": since, "until": until}
        raw = await self.list_all(f"/{ig_user_id}/media", params, item_cap)
        return [InstagramPost.model_validate(item) for item in raw]

    async def get_instagram_comments(
        self,
        media_id: str,
        limit: int = 100,
        item_cap: int = DEFAULT_COMMENT_CAP,
    ) -> list[InstagramComment]:
        params = {"fields": IG_COMMENT_FIELDS, "limit": limit}
        raw = await self.list_all(f"/{media_id}/comments", params, item_cap)
        return [InstagramComment.model_validate(item) for item in raw]
