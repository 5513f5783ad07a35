"""Durable job store backed by the ``jobs`` table.

Every state transition is a conditional UPDATE guarded by the current status, so
competing workers (in this process or another) can never double-claim a job or
move a terminal job back into the queue. Each claim also stamps a fresh
``claim_token``; ``complete`` and ``fail`` only apply while that token is still
the row's current one, so a worker whose job was reaped and re-claimed elsewhere
cannot settle the newer attempt.

Lifecycle::

    enqueue -> QUEUED --claim_next--> RUNNING --complete--> COMPLETED
                 ^                       |
                 +-------- fail ---------+--fail (attempts exhausted)--> FAILED
"""

import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from pulse_core.config.settings import Settings
from pulse_core.db.models import JobRow
from pulse_core.models.job import Job, JobKind, JobStatus, QueueStats
from pulse_core.utils.clock import Clock, system_clock
from pulse_core.utils.retry import RetryConfig

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


class JobStore:
    """Owns the job lifecycle. Scheduler, handlers and the API all go through it."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = system_clock,
        backoff: RetryConfig | None = None,
        default_max_attempts: int = 3,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._backoff = backoff or RetryConfig(delay=1.0, max_delay=300.0)
        self.default_max_attempts = default_max_attempts

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        clock: Clock = system_clock,
    ) -> "JobStore":
        return cls(
            session_factory,
            clock=clock,
            backoff=RetryConfig(
                delay=settings.job_backoff_base_seconds,
                max_delay=settings.job_backoff_max_seconds,
            ),
            default_max_attempts=settings.job_max_attempts,
        )

    def backoff_delay(self, attempts: int) -> float:
        """Seconds to wait before retrying a job that has failed ``attempts`` times."""
        return self._backoff.get_delay(attempts)

    # ──────────────────────────────────────────────
    # Producer side
    # ──────────────────────────────────────────────

    async def enqueue(
        self,
        kind: JobKind | str,
        payload: dict[str, Any] | None = None,
        max_attempts: int | None = None,
        scheduled_at: datetime | None = None,
    ) -> str:
        """Persist a new QUEUED job and return its id.

        Raises:
            ValueError: ``kind`` is not a known JobKind or ``max_attempts < 1``.
        """
        kind = JobKind(kind)
        if max_attempts is None:
            max_attempts = self.default_max_attempts
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        now = self._clock.now()
        row = JobRow(
            kind=kind.value,
            payload=payload or {},
            status=JobStatus.QUEUED.value,
            attempts=0,
            max_attempts=max_attempts,
            scheduled_at=scheduled_at or now,
            created_at=now,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()

        logger.debug("Enqueued job %s (kind=%s)", row.id, kind.value)
        return row.id

    # ──────────────────────────────────────────────
    # Consumer side
    # ──────────────────────────────────────────────

    async def claim_next(self) -> Job | None:
        """Atomically move the oldest eligible QUEUED job to RUNNING.

        Returns None when nothing is eligible (empty queue or all jobs scheduled
        in the future).
        """
        now = self._clock.now()
        candidate = aliased(JobRow)
        oldest_eligible = (
            select(candidate.id)
            .where(
                candidate.status == JobStatus.QUEUED.value,
                candidate.scheduled_at <= now,
                candidate.attempts < candidate.max_attempts,
            )
            .order_by(candidate.scheduled_at, candidate.created_at)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(JobRow)
            .where(JobRow.id == oldest_eligible, JobRow.status == JobStatus.QUEUED.value)
            .values(
                status=JobStatus.RUNNING.value,
                attempts=JobRow.attempts + 1,
                started_at=now,
                claim_token=str(uuid4()),
            )
            .returning(JobRow.id)
            .execution_options(synchronize_session=False)
        )

        async with self._session_factory() as session:
            job_id = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
            if job_id is None:
                return None
            row = await session.get(JobRow, job_id)
            job = Job.model_validate(row)

        logger.info("Claimed job %s (kind=%s, attempt %d/%d)", job.id, job.kind, job.attempts, job.max_attempts)
        return job

    @staticmethod
    def _held(job: Job):
        """WHERE clause matching ``job`` only while its claim is the current one."""
        return (
            JobRow.id == job.id,
            JobRow.status == JobStatus.RUNNING.value,
            JobRow.claim_token == job.claim_token,
        )

    async def complete(self, job: Job) -> bool:
        """RUNNING -> COMPLETED for the claim ``job`` was handed out with.

        Returns False if the job is no longer RUNNING under that claim (already
        settled, or reaped and re-claimed by another worker).
        """
        stmt = (
            update(JobRow)
            .where(*self._held(job))
            .values(
                status=JobStatus.COMPLETED.value,
                completed_at=self._clock.now(),
                last_error=None,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()

        if result.rowcount == 0:
            logger.warning("complete() ignored: job %s is not RUNNING under this claim", job.id)
            return False
        logger.info("Job %s completed", job.id)
        return True

    async def fail(self, job: Job, error: str) -> Job | None:
        """Record a failed attempt: re-queue with backoff, or FAILED when exhausted.

        Returns the updated job, or None if the job is no longer RUNNING under
        the claim ``job`` was handed out with.
        """
        error = (error or "unknown error")[:MAX_ERROR_LENGTH]
        now = self._clock.now()

        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(JobRow).where(*self._held(job)).with_for_update()
                )
            ).scalar_one_or_none()
            if row is None:
                logger.warning("fail() ignored: job %s is not RUNNING under this claim", job.id)
                return None

            if row.attempts < row.max_attempts:
                delay = self.backoff_delay(row.attempts)
                values = {
                    "status": JobStatus.QUEUED.value,
                    "scheduled_at": now + timedelta(seconds=delay),
                    "started_at": None,
                    "claim_token": None,
                    "last_error": error,
                }
            else:
                delay = None
                values = {
                    "status": JobStatus.FAILED.value,
                    "completed_at": now,
                    "last_error": error,
                }

            result = await session.execute(
                update(JobRow)
                .where(*self._held(job))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            if result.rowcount == 0:
                logger.warning("fail() ignored: job %s is not RUNNING under this claim", job.id)
                return None
            await session.refresh(row)
            updated = Job.model_validate(row)

        if delay is None:
            logger.error(
                "Job %s permanently failed after %d attempts: %s",
                job.id, updated.attempts, error,
            )
        else:
            logger.warning(
                "Job %s failed (attempt %d/%d), retry in %.0fs: %s",
                job.id, updated.attempts, updated.max_attempts, delay, error,
            )
        return updated

    # ──────────────────────────────────────────────
    # Maintenance
    # ──────────────────────────────────────────────

    async def reap_stalled(self, threshold_seconds: float) -> int:
        """Return RUNNING jobs older than ``threshold_seconds`` to the queue.

        A worker that crashed mid-job leaves its row RUNNING forever; this puts
        it back (or marks it FAILED if that attempt was the last one). Dropping the
        claim token means a worker that was merely slow can no longer settle the row.
        """
        now = self._clock.now()
        cutoff = now - timedelta(seconds=threshold_seconds)
        stalled = (JobRow.status == JobStatus.RUNNING.value, JobRow.started_at < cutoff)

        async with self._session_factory() as session:
            requeued = await session.execute(
                update(JobRow)
                .where(*stalled, JobRow.attempts < JobRow.max_attempts)
                .values(
                    status=JobStatus.QUEUED.value,
                    scheduled_at=now,
                    started_at=None,
                    claim_token=None,
                    last_error="Stalled: worker did not finish the job",
                )
                .execution_options(synchronize_session=False)
            )
            failed = await session.execute(
                update(JobRow)
                .where(*stalled, JobRow.attempts >= JobRow.max_attempts)
                .values(
                    status=JobStatus.FAILED.value,
                    completed_at=now,
                    last_error="Stalled: worker did not finish the job",
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        total = requeued.rowcount + failed.rowcount
        if total:
            logger.warning(
                "Reaped %d stalled jobs (%d re-queued, %d failed)",
                total, requeued.rowcount, failed.rowcount,
            )
        return total

    async def cleanup_old_jobs(self, older_than_days: int = 7) -> int:
        """Delete COMPLETED jobs finished more than ``older_than_days`` ago."""
        cutoff = self._clock.now() - timedelta(days=older_than_days)
        async with self._session_factory() as session:
            result = await session.execute(
                delete(JobRow).where(
                    JobRow.status == JobStatus.COMPLETED.value,
                    JobRow.completed_at < cutoff,
                )
            )
            await session.commit()

        if result.rowcount:
            logger.info("Deleted %d completed jobs older than %d days", result.rowcount, older_than_days)
        return result.rowcount

    async def purge_failed(self) -> int:
        """Operator action: delete every FAILED job."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(JobRow).where(JobRow.status == JobStatus.FAILED.value)
            )
            await session.commit()

        logger.info("Purged %d failed jobs", result.rowcount)
        return result.rowcount

    # ──────────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────────

    async def get_job(self, job_id: str) -> Job | None:
        async with self._session_factory() as session:
            row = await session.get(JobRow, job_id)
            return Job.model_validate(row) if row else None

    async def list_jobs(
        self,
        status: JobStatus | str | None = None,
        kind: JobKind | str | None = None,
        limit: int = 50,
    ) -> list[Job]:
        """Most recently created jobs first."""
        stmt = select(JobRow).order_by(JobRow.created_at.desc()).limit(limit)
        if status is not None:
            stmt = stmt.where(JobRow.status == JobStatus(status).value)
        if kind is not None:
            stmt = stmt.where(JobRow.kind == JobKind(kind).value)

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [Job.model_validate(row) for row in rows]

    async def has_pending(self, kind: JobKind | str) -> bool:
        """True if a job of ``kind`` is QUEUED or RUNNING."""
        stmt = select(
            exists().where(
                JobRow.kind == JobKind(kind).value,
                JobRow.status.in_([JobStatus.QUEUED.value, JobStatus.RUNNING.value]),
            )
        )
        async with self._session_factory() as session:
            return bool((await session.execute(stmt)).scalar())

    async def get_queue_stats(self) -> QueueStats:
        stmt = select(JobRow.status, func.count()).group_by(JobRow.status)
        async with self._session_factory() as session:
            counts = {status: count for status, count in (await session.execute(stmt)).all()}

        return QueueStats(
            queued=counts.get(JobStatus.QUEUED.value, 0),
            running=counts.get(JobStatus.RUNNING.value, 0),
            completed=counts.get(JobStatus.COMPLETED.value, 0),
            failed=counts.get(JobStatus.FAILED.value, 0),
        )
