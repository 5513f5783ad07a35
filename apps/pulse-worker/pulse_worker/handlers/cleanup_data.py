"""CLEANUP_DATA — enforce per-user retention, then sweep orphaned rows.

Payload: ``{"user_id": str?, "delete_all": bool?}``. Without a user id every
user with ``auto_delete`` enabled is cleaned. ``delete_all`` with a user id
removes all of that user's data regardless of retention.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from pulse_core.db import AnalysisRow, AuditLogRow, CommentRow, DataRetentionRow, PageRow, PostRow
from pulse_worker.context import HandlerContext

logger = logging.getLogger(__name__)


async def cleanup_user(session: AsyncSession, retention: DataRetentionRow, now: datetime) -> dict[str, int] | None:
    """Delete one user's analyses, comments and posts older than their window.

    Returns the deletion counts, or None if the user has no pages. Caller commits.
    """
    user_id = retention.user_id
    cutoff = now - timedelta(days=retention.retention_days)

    page_ids = select(PageRow.id).where(PageRow.owner_user_id == user_id)
    if not (await session.execute(page_ids.limit(1))).first():
        logger.info("No pages found for user %s", user_id)
        return None

    post_ids = select(PostRow.id).where(PostRow.page_id.in_(page_ids))
    comment_ids = select(CommentRow.id).where(CommentRow.post_id.in_(post_ids))

    analyses = await session.execute(
        delete(AnalysisRow)
        .where(AnalysisRow.analyzed_at < cutoff, AnalysisRow.comment_id.in_(comment_ids))
        .execution_options(synchronize_session=False)
    )
    comments = await session.execute(
        delete(CommentRow)
        .where(CommentRow.fetched_at < cutoff, CommentRow.post_id.in_(post_ids))
        .execution_options(synchronize_session=False)
    )
    posts = await session.execute(
        delete(PostRow)
        .where(PostRow.fetched_at < cutoff, PostRow.page_id.in_(page_ids))
        .execution_options(synchronize_session=False)
    )

    counts = {
        "deleted_analyses": analyses.rowcount,
        "deleted_comments": comments.rowcount,
        "deleted_posts": posts.rowcount,
    }
    retention.last_cleanup_at = now
    session.add(
        AuditLogRow(
            user_id=user_id,
            action="DATA_CLEANUP",
            resource="USER_DATA",
            details={**counts, "cutoff_date": cutoff.isoformat()},
            created_at=now,
        )
    )
    logger.info(
        "Cleaned up data for user %s: %d posts, %d comments, %d analyses",
        user_id, counts["deleted_posts"], counts["deleted_comments"], counts["deleted_analyses"],
    )
    return counts


async def delete_user_data(session: AsyncSession, user_id: str, now: datetime) -> dict[str, int]:
    """Delete everything held for ``user_id``: content, pages and retention settings.

    The audit entry is written without a user id since the user no longer owns
    anything. Caller commits.
    """
    page_ids = select(PageRow.id).where(PageRow.owner_user_id == user_id)
    post_ids = select(PostRow.id).where(PostRow.page_id.in_(page_ids))
    comment_ids = select(CommentRow.id).where(CommentRow.post_id.in_(post_ids))

    analyses = await session.execute(
        delete(AnalysisRow)
        .where(AnalysisRow.comment_id.in_(comment_ids))
        .execution_options(synchronize_session=False)
    )
    comments = await session.execute(
        delete(CommentRow)
        .where(CommentRow.post_id.in_(post_ids))
        .execution_options(synchronize_session=False)
    )
    posts = await session.execute(
        delete(PostRow).where(PostRow.page_id.in_(page_ids)).execution_options(synchronize_session=False)
    )
    pages = await session.execute(
        delete(PageRow).where(PageRow.owner_user_id == user_id).execution_options(synchronize_session=False)
    )
    await session.execute(
        delete(DataRetentionRow)
        .where(DataRetentionRow.user_id == user_id)
        .execution_options(synchronize_session=False)
    )

    counts = {
        "deleted_pages": pages.rowcount,
        "deleted_posts": posts.rowcount,
        "deleted_comments": comments.rowcount,
        "deleted_analyses": analyses.rowcount,
    }
    session.add(
        AuditLogRow(
            user_id=None,
            action="USER_DATA_DELETION",
            resource="USER_ACCOUNT",
            details={**counts, "deleted_user_id": user_id},
            created_at=now,
        )
    )
    logger.info(
        "Deleted all data for user %s: %d pages, %d posts, %d comments, %d analyses",
        user_id, counts["deleted_pages"], counts["deleted_posts"],
        counts["deleted_comments"], counts["deleted_analyses"],
    )
    return counts


async def sweep_orphans(session: AsyncSession) -> dict[str, int]:
    """Remove rows whose parent is gone (or whose page is inactive). Caller commits.

    Runs parent-first so each pass also catches children orphaned by the
    previous one.
    """
    active_page = (
        select(PageRow.id)
        .where(PageRow.id == PostRow.page_id, PageRow.is_active.is_(True))
        .correlate(PostRow)
        .exists()
    )
    posts = await session.execute(
        delete(PostRow).where(~active_page).execution_options(synchronize_session=False)
    )

    parent_post = (
        select(PostRow.id).where(PostRow.id == CommentRow.post_id).correlate(CommentRow).exists()
    )
    comments = await session.execute(
        delete(CommentRow).where(~parent_post).execution_options(synchronize_session=False)
    )

    parent_comment = (
        select(CommentRow.id)
        .where(CommentRow.id == AnalysisRow.comment_id)
        .correlate(AnalysisRow)
        .exists()
    )
    analyses = await session.execute(
        delete(AnalysisRow).where(~parent_comment).execution_options(synchronize_session=False)
    )

    counts = {
        "orphaned_posts": posts.rowcount,
        "orphaned_comments": comments.rowcount,
        "orphaned_analyses": analyses.rowcount,
    }
    logger.info(
        "Cleaned up orphaned data: %d posts, %d comments, %d analyses",
        counts["orphaned_posts"], counts["orphaned_comments"], counts["orphaned_analyses"],
    )
    return counts


async def handle(payload: dict[str, Any], ctx: HandlerContext) -> dict[str, Any]:
    user_id = payload.get("user_id")
    now = ctx.clock.now()
    cleaned = 0
    errors = 0

    async with ctx.session_factory() as session:
        if user_id and payload.get("delete_all"):
            deleted = await delete_user_data(session, user_id, now)
            await session.commit()
            return {"users_deleted": 1, **deleted}

        if user_id:
            retention = await session.get(DataRetentionRow, user_id)
            if retention is None:
                logger.info("No retention settings found for user %s", user_id)
            elif await cleanup_user(session, retention, now) is not None:
                await session.commit()
                cleaned += 1
        else:
            user_ids = (
                await session.execute(
                    select(DataRetentionRow.user_id).where(DataRetentionRow.auto_delete.is_(True))
                )
            ).scalars().all()
            logger.info("Cleaning up data for %d users with auto-delete enabled", len(user_ids))

            for uid in user_ids:
                try:
                    retention = await session.get(DataRetentionRow, uid)
                    if await cleanup_user(session, retention, now) is not None:
                        await session.commit()
                        cleaned += 1
                except Exception as e:
                    await session.rollback()
                    logger.error("Error cleaning up data for user %s: %s", uid, e, exc_info=True)
                    errors += 1

        orphans = await sweep_orphans(session)
        await session.commit()

    return {"users_cleaned": cleaned, "errors": errors, **orphans}
