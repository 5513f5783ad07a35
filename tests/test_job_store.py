"""
Tests for the durable job store: claim atomicity, retry backoff, maintenance
"""

import asyncio
from datetime import timedelta

import pytest

from pulse_core.db import JobRow
from pulse_core.models.job import JobKind, JobStatus


class TestEnqueue:
    @pytest.mark.asyncio
    async def test_enqueue_defaults(self, store, clock):
        job_id = await store.enqueue(JobKind.FETCH_POSTS, {"page_id": "p1"})
        job = await store.get_job(job_id)

        assert job.kind == "FETCH_POSTS"
        assert job.payload == {"page_id": "p1"}
        assert job.status == JobStatus.QUEUED
        assert job.attempts == 0
        assert job.max_attempts == 3
        assert job.scheduled_at == clock.now()
        assert job.started_at is None

    @pytest.mark.asyncio
    async def test_enqueue_accepts_kind_string(self, store):
        job_id = await store.enqueue("CLEANUP_DATA", max_attempts=1)
        job = await store.get_job(job_id)
        assert job.kind == "CLEANUP_DATA"
        assert job.max_attempts == 1
        assert job.payload == {}

    @pytest.mark.asyncio
    async def test_unknown_kind_rejected(self, store):
        with pytest.raises(ValueError):
            await store.enqueue("SEND_EMAIL")
        assert await store.list_jobs() == []

    @pytest.mark.asyncio
    async def test_zero_max_attempts_rejected(self, store):
        with pytest.raises(ValueError, match="max_attempts"):
            await store.enqueue(JobKind.FETCH_POSTS, max_attempts=0)
        assert await store.list_jobs() == []

    @pytest.mark.asyncio
    async def test_get_missing_job(self, store):
        assert await store.get_job("does-not-exist") is None


class TestClaim:
    @pytest.mark.asyncio
    async def test_claim_marks_running(self, store, clock):
        job_id = await store.enqueue(JobKind.FETCH_POSTS)
        clock.advance(5)

        job = await store.claim_next()
        assert job.id == job_id
        assert job.status == JobStatus.RUNNING
        assert job.attempts == 1
        assert job.started_at == clock.now()

    @pytest.mark.asyncio
    async def test_empty_queue(self, store):
        assert await store.claim_next() is None

    @pytest.mark.asyncio
    async def test_oldest_scheduled_first(self, store, clock):
        later = await store.enqueue(JobKind.FETCH_POSTS, scheduled_at=clock.now() + timedelta(seconds=1))
        clock.advance(0.5)
        earlier = await store.enqueue(JobKind.FETCH_COMMENTS, scheduled_at=clock.now() - timedelta(seconds=10))
        clock.advance(1)

        assert (await store.claim_next()).id == earlier
        assert (await store.claim_next()).id == later

    @pytest.mark.asyncio
    async def test_ties_broken_by_creation_order(self, store, clock):
        when = clock.now()
        first = await store.enqueue(JobKind.FETCH_POSTS, scheduled_at=when)
        clock.advance(1)
        second = await store.enqueue(JobKind.FETCH_POSTS, scheduled_at=when)

        assert (await store.claim_next()).id == first
        assert (await store.claim_next()).id == second

    @pytest.mark.asyncio
    async def test_future_jobs_not_claimable(self, store, clock):
        await store.enqueue(JobKind.FETCH_POSTS, scheduled_at=clock.now() + timedelta(minutes=5))
        assert await store.claim_next() is None

        clock.advance(300)
        assert await store.claim_next() is not None

    @pytest.mark.asyncio
    async def test_running_job_not_claimed_twice(self, store):
        await store.enqueue(JobKind.FETCH_POSTS)
        assert await store.claim_next() is not None
        assert await store.claim_next() is None

    @pytest.mark.asyncio
    async def test_concurrent_claims_never_duplicate(self, store):
        ids = {await store.enqueue(JobKind.ANALYZE_SENTIMENT, {"comment_id": str(i)}) for i in range(5)}

        claimed = await asyncio.gather(*(store.claim_next() for _ in range(8)))
        got = [job.id for job in claimed if job is not None]

        assert len(got) == len(set(got))
        assert set(got) == ids
        assert claimed.count(None) == 3


class TestCompleteAndFail:
    @pytest.mark.asyncio
    async def test_complete(self, store, clock):
        job_id = await store.enqueue(JobKind.FETCH_POSTS)
        claimed = await store.claim_next()
        clock.advance(3)

        assert await store.complete(claimed) is True
        job = await store.get_job(job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.completed_at == clock.now()

    @pytest.mark.asyncio
    async def test_complete_is_not_repeatable(self, store):
        job_id = await store.enqueue(JobKind.FETCH_POSTS)
        claimed = await store.claim_next()
        assert await store.complete(claimed) is True
        assert await store.complete(claimed) is False
        assert (await store.get_job(job_id)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_complete_requires_running(self, store):
        job_id = await store.enqueue(JobKind.FETCH_POSTS)
        assert await store.complete(await store.get_job(job_id)) is False
        assert (await store.get_job(job_id)).status == JobStatus.QUEUED

    @pytest.mark.asyncio
    async def test_fail_requeues_with_backoff(self, store, clock):
        job_id = await store.enqueue(JobKind.FETCH_POSTS)
        claimed = await store.claim_next()

        job = await store.fail(claimed, "TransientApiError: boom")
        assert job.status == JobStatus.QUEUED
        assert job.attempts == 1
        assert job.last_error == "TransientApiError: boom"
        assert job.started_at is None
        assert job.scheduled_at == clock.now() + timedelta(seconds=store.backoff_delay(1))

        # Not eligible until the backoff elapses
        assert await store.claim_next() is None
        clock.advance(store.backoff_delay(1))
        assert (await store.claim_next()).id == job_id

    @pytest.mark.asyncio
    async def test_fails_permanently_after_max_attempts(self, store, clock):
        job_id = await store.enqueue(JobKind.FETCH_POSTS)

        for attempt in range(1, 4):
            claimed = await store.claim_next()
            assert claimed.id == job_id
            assert claimed.attempts == attempt
            job = await store.fail(claimed, f"error {attempt}")
            clock.advance(store.backoff_delay(attempt))

        assert job.status == JobStatus.FAILED
        assert job.attempts == 3
        assert job.last_error == "error 3"
        assert job.completed_at is not None
        assert await store.claim_next() is None

    @pytest.mark.asyncio
    async def test_single_attempt_job_fails_immediately(self, store):
        job_id = await store.enqueue(JobKind.FETCH_POSTS, max_attempts=1)
        claimed = await store.claim_next()
        job = await store.fail(claimed, "nope")
        assert job.status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_fail_truncates_long_errors(self, store):
        job_id = await store.enqueue(JobKind.FETCH_POSTS)
        claimed = await store.claim_next()
        job = await store.fail(claimed, "x" * 5000)
        assert len(job.last_error) == 2000

    @pytest.mark.asyncio
    async def test_fail_ignored_when_not_running(self, store):
        job_id = await store.enqueue(JobKind.FETCH_POSTS)
        assert await store.fail(await store.get_job(job_id), "nope") is None
        assert (await store.get_job(job_id)).attempts == 0

    @pytest.mark.asyncio
    async def test_reaped_claim_cannot_settle_the_new_attempt(self, store, clock):
        job_id = await store.enqueue(JobKind.FETCH_COMMENTS)
        slow = await store.claim_next()

        clock.advance(901)
        assert await store.reap_stalled(threshold_seconds=900) == 1
        current = await store.claim_next()
        assert current.id == job_id
        assert current.claim_token != slow.claim_token

        assert await store.complete(slow) is False
        assert await store.fail(slow, "late failure") is None
        job = await store.get_job(job_id)
        assert job.status == JobStatus.RUNNING
        assert job.attempts == 2

        assert await store.complete(current) is True
        assert (await store.get_job(job_id)).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_claim_token_not_serialized(self, store):
        await store.enqueue(JobKind.FETCH_POSTS)
        claimed = await store.claim_next()
        assert claimed.claim_token
        assert "claim_token" not in claimed.model_dump()

    def test_backoff_grows_and_caps(self, store):
        assert store.backoff_delay(1) == 2
        assert store.backoff_delay(2) == 4
        assert store.backoff_delay(20) == 300


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_reap_stalled_requeues(self, store, clock):
        job_id = await store.enqueue(JobKind.FETCH_POSTS)
        await store.claim_next()

        clock.advance(60)
        assert await store.reap_stalled(threshold_seconds=900) == 0

        clock.advance(900)
        assert await store.reap_stalled(threshold_seconds=900) == 1
        job = await store.get_job(job_id)
        assert job.status == JobStatus.QUEUED
        assert job.attempts == 1
        assert job.last_error.startswith("Stalled")

    @pytest.mark.asyncio
    async def test_reap_stalled_fails_exhausted(self, store, clock):
        job_id = await store.enqueue(JobKind.FETCH_POSTS, max_attempts=1)
        await store.claim_next()
        clock.advance(1000)

        assert await store.reap_stalled(threshold_seconds=900) == 1
        assert (await store.get_job(job_id)).status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_cleanup_old_jobs_only_removes_old_completed(self, store, clock):
        done = await store.enqueue(JobKind.FETCH_POSTS)
        await store.complete(await store.claim_next())

        failed = await store.enqueue(JobKind.FETCH_POSTS, max_attempts=1)
        await store.fail(await store.claim_next(), "nope")

        queued = await store.enqueue(JobKind.FETCH_POSTS)

        clock.advance(timedelta(days=6).total_seconds())
        assert await store.cleanup_old_jobs(older_than_days=7) == 0

        clock.advance(timedelta(days=2).total_seconds())
        assert await store.cleanup_old_jobs(older_than_days=7) == 1
        assert await store.get_job(done) is None
        assert await store.get_job(failed) is not None
        assert await store.get_job(queued) is not None

    @pytest.mark.asyncio
    async def test_purge_failed(self, store):
        failed = await store.enqueue(JobKind.FETCH_POSTS, max_attempts=1)
        await store.fail(await store.claim_next(), "nope")
        kept = await store.enqueue(JobKind.FETCH_POSTS)

        assert await store.purge_failed() == 1
        assert await store.get_job(failed) is None
        assert await store.get_job(kept) is not None


class TestQueries:
    @pytest.mark.asyncio
    async def test_queue_stats(self, store):
        for _ in range(3):
            await store.enqueue(JobKind.FETCH_POSTS)
        first = await store.claim_next()
        await store.complete(first)
        await store.claim_next()

        stats = await store.get_queue_stats()
        assert (stats.queued, stats.running, stats.completed, stats.failed) == (1, 1, 1, 0)

    @pytest.mark.asyncio
    async def test_list_jobs_newest_first_with_filters(self, store, clock):
        a = await store.enqueue(JobKind.FETCH_POSTS)
        clock.advance(1)
        b = await store.enqueue(JobKind.FETCH_COMMENTS)
        clock.advance(1)
        c = await store.enqueue(JobKind.FETCH_POSTS)

        assert [j.id for j in await store.list_jobs()] == [c, b, a]
        assert [j.id for j in await store.list_jobs(kind="FETCH_POSTS")] == [c, a]
        assert [j.id for j in await store.list_jobs(limit=1)] == [c]

        await store.claim_next()
        assert [j.id for j in await store.list_jobs(status=JobStatus.RUNNING)] == [a]

    @pytest.mark.asyncio
    async def test_has_pending(self, store):
        assert await store.has_pending(JobKind.REFRESH_TOKENS) is False

        await store.enqueue(JobKind.REFRESH_TOKENS)
        assert await store.has_pending(JobKind.REFRESH_TOKENS) is True

        claimed = await store.claim_next()
        assert await store.has_pending(JobKind.REFRESH_TOKENS) is True

        await store.complete(claimed)
        assert await store.has_pending(JobKind.REFRESH_TOKENS) is False

    @pytest.mark.asyncio
    async def test_row_with_unknown_kind_is_still_readable(self, store, session_factory, clock):
        async with session_factory() as session:
            session.add(JobRow(kind="LEGACY_KIND", payload={}, scheduled_at=clock.now(), created_at=clock.now()))
            await session.commit()

        job = await store.claim_next()
        assert job.kind == "LEGACY_KIND"
