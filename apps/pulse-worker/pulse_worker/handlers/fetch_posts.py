"""FETCH_POSTS — pull a page's posts and fan out comment fetches.

Payload: ``{"page_id": str, "date_range": {"since": str, "until": str}?}``
"""

import logging
from typing import Any

from sqlalchemy import update

from pulse_core.db import PageRow, PostRow, upsert
from pulse_core.errors import InvalidCredentialError, NotFoundError
from pulse_core.models import FacebookPost, InstagramPost, JobKind, Platform
from pulse_worker.context import HandlerContext
from pulse_worker.handlers.common import ensure_active, require

logger = logging.getLogger(__name__)

POST_UPDATE_FIELDS = [
    "message",
    "caption",
    "permalink_url",
    "like_count",
    "comment_count",
    "last_fetched_at",
]


def _facebook_values(post: FacebookPost) -> dict[str, Any]:
    return {
        "platform": Platform.FACEBOOK.value,
        "external_id": post.id,
        "message": post.message,
        "caption": None,
        "created_time": post.created_time,
        "permalink_url": post.permalink_url,
        "like_count": post.like_count,
        "comment_count": post.comment_count,
    }


def _instagram_values(post: InstagramPost) -> dict[str, Any]:
    return {
        "platform": Platform.INSTAGRAM.value,
        "external_id": post.id,
        "message": None,
        "caption": post.caption,
        "created_time": post.timestamp,
        "permalink_url": post.permalink,
        "like_count": post.like_count,
        "comment_count": post.comments_count,
    }


async def handle(payload: dict[str, Any], ctx: HandlerContext) -> dict[str, Any]:
    page_id = require(payload, "page_id")
    date_range = payload.get("date_range") or {}
    since, until = date_range.get("since"), date_range.get("until")

    async with ctx.session_factory() as session:
        page = await session.get(PageRow, page_id)
        if page is None:
            raise NotFoundError(f"Page not found: {page_id}")
        ensure_active(page)
        token = ctx.vault.decrypt(page.page_access_token)
        platform, external_id, name = Platform(page.platform), page.external_id, page.name

    cap = ctx.settings.post_item_cap
    async with ctx.client_factory(token) as api:
        if not await api.validate_token():
            raise InvalidCredentialError(f"Invalid token for page: {name}")

        if platform is Platform.FACEBOOK:
            fetched = await api.get_page_posts(external_id, since=since, until=until, item_cap=cap)
            posts = [_facebook_values(p) for p in fetched]
        else:
            account = await api.get_connected_instagram_account(external_id)
            if account is None:
                raise NotFoundError(f"No Instagram account connected to page: {name}")
            fetched = await api.get_instagram_posts(account.id, since=since, until=until, item_cap=cap)
            posts = [_instagram_values(p) for p in fetched]

    logger.info("Fetched %d posts for page %s", len(posts), name)

    now = ctx.clock.now()
    with_comments: list[str] = []
    async with ctx.session_factory() as session:
        for values in posts:
            post_id = await upsert(
                session,
                PostRow,
                {**values, "page_id": page_id, "fetched_at": now, "last_fetched_at": now},
                update_fields=POST_UPDATE_FIELDS,
            )
            if values["comment_count"] > 0:
                with_comments.append(post_id)

        await session.execute(
            update(PageRow).where(PageRow.id == page_id).values(last_fetched_at=now)
        )
        await session.commit()

    # Enqueue after commit so FETCH_COMMENTS never sees a missing post
    for post_id in with_comments:
        await ctx.store.enqueue(JobKind.FETCH_COMMENTS, {"post_id": post_id})

    return {"posts": len(posts), "comment_jobs": len(with_comments)}
