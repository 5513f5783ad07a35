"""FETCH_COMMENTS — pull a post's comments and queue one analysis per comment.

Payload: ``{"post_id": str}``
"""

import logging
from typing import Any

from sqlalchemy import select, update

from pulse_core.db import CommentRow, PageRow, PostRow, upsert
from pulse_core.errors import NotFoundError
from pulse_core.models import FacebookComment, InstagramComment, JobKind, Platform
from pulse_worker.context import HandlerContext
from pulse_worker.handlers.common import ensure_active, require

logger = logging.getLogger(__name__)

COMMENT_UPDATE_FIELDS = ["message", "like_count", "reply_count", "fetched_at"]


def _facebook_values(comment: FacebookComment) -> dict[str, Any]:
    return {
        "platform": Platform.FACEBOOK.value,
        "external_id": comment.id,
        "parent_external_id": comment.parent.id if comment.parent else None,
        "author_id": comment.author.id if comment.author else None,
        "author_name": comment.author.name if comment.author else None,
        "author_username": None,
        "message": comment.message,
        "created_time": comment.created_time,
        "like_count": comment.like_count,
        "reply_count": 0,
    }


def _instagram_values(comment: InstagramComment) -> dict[str, Any]:
    return {
        "platform": Platform.INSTAGRAM.value,
        "external_id": comment.id,
        "parent_external_id": None,
        "author_id": None,
        "author_name": None,
        "author_username": comment.username,
        "message": comment.text,
        "created_time": comment.timestamp,
        "like_count": comment.like_count,
        "reply_count": 0,
    }


async def handle(payload: dict[str, Any], ctx: HandlerContext) -> dict[str, Any]:
    post_id = require(payload, "post_id")

    async with ctx.session_factory() as session:
        row = (
            await session.execute(
                select(PostRow, PageRow)
                .join(PageRow, PostRow.page_id == PageRow.id)
                .where(PostRow.id == post_id)
            )
        ).one_or_none()
        if row is None:
            raise NotFoundError(f"Post not found: {post_id}")
        post, page = row
        ensure_active(page)
        token = ctx.vault.decrypt(page.page_access_token)
        platform, external_id = Platform(post.platform), post.external_id

    cap = ctx.settings.comment_item_cap
    async with ctx.client_factory(token) as api:
        if platform is Platform.FACEBOOK:
            comments = [_facebook_values(c) for c in await api.get_post_comments(external_id, item_cap=cap)]
        else:
            comments = [_instagram_values(c) for c in await api.get_instagram_comments(external_id, item_cap=cap)]

    logger.info("Fetched %d comments for post %s", len(comments), external_id)

    now = ctx.clock.now()
    comment_ids: list[str] = []
    async with ctx.session_factory() as session:
        for values in comments:
            comment_ids.append(
                await upsert(
                    session,
                    CommentRow,
                    {**values, "post_id": post_id, "fetched_at": now},
                    update_fields=COMMENT_UPDATE_FIELDS,
                )
            )

        await session.execute(
            update(PostRow)
            .where(PostRow.id == post_id)
            .values(comment_count=len(comments), last_fetched_at=now)
        )
        await session.commit()

    for comment_id in comment_ids:
        await ctx.store.enqueue(JobKind.ANALYZE_SENTIMENT, {"comment_id": comment_id})

    return {"comments": len(comment_ids)}
