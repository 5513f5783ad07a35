"""
Tests for CLEANUP_DATA: per-user retention and the orphan sweep
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from pulse_core.db import AnalysisRow, AuditLogRow, CommentRow, DataRetentionRow, PageRow, PostRow
from pulse_worker.handlers import cleanup_data


async def count(session_factory, model) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model))


@pytest.fixture
def seed(session_factory):
    """Insert one post -> comment -> analysis chain stamped at ``when``."""

    async def _seed(page_id: str, key: str, when) -> dict[str, str]:
        async with session_factory() as session:
            post = PostRow(page_id=page_id, platform="FACEBOOK", external_id=f"post-{key}", fetched_at=when)
            session.add(post)
            await session.flush()
            comment = CommentRow(
                post_id=post.id, platform="FACEBOOK", external_id=f"comment-{key}", message="hi", fetched_at=when
            )
            session.add(comment)
            await session.flush()
            analysis = AnalysisRow(
                comment_id=comment.id,
                sentiment_label="NEUTRAL",
                sentiment_score=0.5,
                model_name="lexicon",
                analyzed_at=when,
            )
            session.add(analysis)
            await session.commit()
            return {"post": post.id, "comment": comment.id, "analysis": analysis.id}

    return _seed


async def set_retention(session_factory, user_id: str, days: int, auto_delete: bool = True) -> None:
    async with session_factory() as session:
        session.add(DataRetentionRow(user_id=user_id, retention_days=days, auto_delete=auto_delete))
        await session.commit()


class TestUserRetention:
    @pytest.mark.asyncio
    async def test_deletes_only_rows_past_retention(self, ctx, add_page, seed, session_factory, clock):
        page_id = await add_page()
        await set_retention(session_factory, "user-1", days=30)
        old = await seed(page_id, "old", clock.now() - timedelta(days=45))
        fresh = await seed(page_id, "fresh", clock.now() - timedelta(days=5))

        result = await cleanup_data.handle({"user_id": "user-1"}, ctx)
        assert result["users_cleaned"] == 1
        assert result["errors"] == 0

        async with session_factory() as session:
            assert await session.get(PostRow, old["post"]) is None
            assert await session.get(CommentRow, old["comment"]) is None
            assert await session.get(AnalysisRow, old["analysis"]) is None
            assert await session.get(PostRow, fresh["post"]) is not None
            assert await session.get(CommentRow, fresh["comment"]) is not None
            assert await session.get(AnalysisRow, fresh["analysis"]) is not None

            retention = await session.get(DataRetentionRow, "user-1")
            assert retention.last_cleanup_at == clock.now()

    @pytest.mark.asyncio
    async def test_writes_audit_entry(self, ctx, add_page, seed, session_factory, clock):
        page_id = await add_page()
        await set_retention(session_factory, "user-1", days=30)
        await seed(page_id, "old", clock.now() - timedelta(days=45))

        await cleanup_data.handle({"user_id": "user-1"}, ctx)

        async with session_factory() as session:
            audit = await session.scalar(select(AuditLogRow))
        assert audit.user_id == "user-1"
        assert audit.action == "DATA_CLEANUP"
        assert audit.resource == "USER_DATA"
        assert audit.details["deleted_posts"] == 1
        assert audit.details["deleted_comments"] == 1
        assert audit.details["deleted_analyses"] == 1
        assert audit.details["cutoff_date"] == (clock.now() - timedelta(days=30)).isoformat()

    @pytest.mark.asyncio
    async def test_other_users_untouched(self, ctx, add_page, seed, session_factory, clock):
        mine = await add_page(external_id="page-1", owner_user_id="user-1")
        theirs = await add_page(external_id="page-2", owner_user_id="user-2")
        await set_retention(session_factory, "user-1", days=30)
        await seed(mine, "mine", clock.now() - timedelta(days=45))
        kept = await seed(theirs, "theirs", clock.now() - timedelta(days=45))

        await cleanup_data.handle({"user_id": "user-1"}, ctx)

        async with session_factory() as session:
            assert await session.get(PostRow, kept["post"]) is not None
        assert await count(session_factory, PostRow) == 1

    @pytest.mark.asyncio
    async def test_user_without_retention_settings(self, ctx, add_page, seed, session_factory, clock):
        page_id = await add_page()
        await seed(page_id, "old", clock.now() - timedelta(days=400))

        result = await cleanup_data.handle({"user_id": "user-1"}, ctx)
        assert result["users_cleaned"] == 0
        assert await count(session_factory, PostRow) == 1

    @pytest.mark.asyncio
    async def test_user_without_pages(self, ctx, session_factory):
        await set_retention(session_factory, "user-9", days=30)

        result = await cleanup_data.handle({"user_id": "user-9"}, ctx)
        assert result["users_cleaned"] == 0
        assert await count(session_factory, AuditLogRow) == 0


class TestAllUsers:
    @pytest.mark.asyncio
    async def test_only_auto_delete_users(self, ctx, add_page, seed, session_factory, clock):
        a = await add_page(external_id="page-a", owner_user_id="user-a")
        b = await add_page(external_id="page-b", owner_user_id="user-b")
        await set_retention(session_factory, "user-a", days=30)
        await set_retention(session_factory, "user-b", days=30, auto_delete=False)
        await seed(a, "a", clock.now() - timedelta(days=45))
        kept = await seed(b, "b", clock.now() - timedelta(days=45))

        result = await cleanup_data.handle({}, ctx)
        assert result["users_cleaned"] == 1

        async with session_factory() as session:
            posts = set((await session.execute(select(PostRow.id))).scalars())
        assert posts == {kept["post"]}


class TestOrphanSweep:
    @pytest.mark.asyncio
    async def test_inactive_page_content_removed(self, ctx, add_page, seed, session_factory, clock):
        page_id = await add_page()
        await seed(page_id, "x", clock.now())
        async with session_factory() as session:
            await session.execute(update(PageRow).where(PageRow.id == page_id).values(is_active=False))
            await session.commit()

        result = await cleanup_data.handle({}, ctx)
        assert result["orphaned_posts"] == 1
        assert result["orphaned_comments"] == 1
        assert result["orphaned_analyses"] == 1
        assert await count(session_factory, PostRow) == 0
        assert await count(session_factory, CommentRow) == 0
        assert await count(session_factory, AnalysisRow) == 0
        # The page itself is kept for re-authentication
        assert await count(session_factory, PageRow) == 1

    @pytest.mark.asyncio
    async def test_dangling_comment_removed(self, ctx, add_page, seed, session_factory, clock):
        page_id = await add_page()
        kept = await seed(page_id, "kept", clock.now())
        async with session_factory() as session:
            session.add(CommentRow(post_id="gone", platform="FACEBOOK", external_id="stray", fetched_at=clock.now()))
            await session.commit()

        result = await cleanup_data.handle({}, ctx)
        assert result["orphaned_posts"] == 0
        assert result["orphaned_comments"] == 1
        assert result["orphaned_analyses"] == 0

        async with session_factory() as session:
            assert await session.get(CommentRow, kept["comment"]) is not None

    @pytest.mark.asyncio
    async def test_active_content_untouched(self, ctx, add_page, seed, session_factory, clock):
        page_id = await add_page()
        await seed(page_id, "live", clock.now())

        result = await cleanup_data.handle({}, ctx)
        assert (result["orphaned_posts"], result["orphaned_comments"], result["orphaned_analyses"]) == (0, 0, 0)


class TestDeleteUserData:
    @pytest.mark.asyncio
    async def test_removes_everything_for_user(self, ctx, add_page, seed, session_factory, clock):
        mine = await add_page(external_id="page-1", owner_user_id="user-1")
        theirs = await add_page(external_id="page-2", owner_user_id="user-2")
        await set_retention(session_factory, "user-1", days=365)
        await seed(mine, "fresh", clock.now())
        kept = await seed(theirs, "theirs", clock.now())

        result = await cleanup_data.handle({"user_id": "user-1", "delete_all": True}, ctx)
        assert result == {
            "users_deleted": 1,
            "deleted_pages": 1,
            "deleted_posts": 1,
            "deleted_comments": 1,
            "deleted_analyses": 1,
        }

        async with session_factory() as session:
            assert await session.get(PageRow, mine) is None
            assert await session.get(DataRetentionRow, "user-1") is None
            assert await session.get(PageRow, theirs) is not None
            assert await session.get(AnalysisRow, kept["analysis"]) is not None

            audit = await session.scalar(select(AuditLogRow))
        assert audit.user_id is None
        assert audit.action == "USER_DATA_DELETION"
        assert audit.details["deleted_user_id"] == "user-1"

    @pytest.mark.asyncio
    async def test_user_without_data(self, ctx, session_factory):
        result = await cleanup_data.handle({"user_id": "ghost", "delete_all": True}, ctx)
        assert result["deleted_pages"] == 0
        assert await count(session_factory, AuditLogRow) == 1
