"""Scheduler — the polling loop that drives the job store.

One tick claims at most one job, runs its handler, and records the outcome.
Between ticks the scheduler also performs queue maintenance: reaping stalled
jobs, deleting old completed jobs, and enqueueing the periodic token refresh
and retention cleanup.

Usage:
    scheduler = Scheduler(store, build_registry(), ctx)
    scheduler.start()
    ...
    await scheduler.stop()   # lets the in-flight job finish
"""

import asyncio
import logging
from collections.abc import Mapping

from pulse_core.config.settings import Settings
from pulse_core.errors import UnknownJobKindError
from pulse_core.models import Job, JobKind
from pulse_core.queue import JobStore
from pulse_core.utils.clock import Clock, system_clock
from pulse_worker.context import HandlerContext
from pulse_worker.registry import Handler

logger = logging.getLogger(__name__)


def describe_error(e: BaseException) -> str:
    """Single-line error string stored as ``last_error`` (no traceback)."""
    message = str(e).strip().splitlines()[0] if str(e).strip() else ""
    return f"{type(e).__name__}: {message}" if message else type(e).__name__


class Scheduler:
    def __init__(
        self,
        store: JobStore,
        handlers: Mapping[str, Handler],
        ctx: HandlerContext,
        *,
        clock: Clock = system_clock,
        poll_interval: float = 5.0,
        maintenance_interval: float = 60.0,
        stall_threshold: float = 7200.0,
        job_retention_days: int = 7,
        periodic: Mapping[JobKind, float] | None = None,
    ) -> None:
        self._store = store
        self._handlers = dict(handlers)
        self._ctx = ctx
        self._clock = clock
        self.poll_interval = poll_interval
        self.maintenance_interval = maintenance_interval
        self.stall_threshold = stall_threshold
        self.job_retention_days = job_retention_days
        # kind -> seconds between automatic enqueues
        self._periodic = dict(periodic or {})

        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._last_maintenance: float | None = None
        self._last_enqueued: dict[JobKind, float] = {}

        self.jobs_completed = 0
        self.jobs_failed = 0

    @classmethod
    def from_settings(
        cls,
        store: JobStore,
        handlers: Mapping[str, Handler],
        ctx: HandlerContext,
        settings: Settings,
        clock: Clock = system_clock,
    ) -> "Scheduler":
        return cls(
            store,
            handlers,
            ctx,
            clock=clock,
            poll_interval=settings.poll_interval_seconds,
            maintenance_interval=settings.maintenance_interval_seconds,
            stall_threshold=settings.stall_threshold_seconds,
            job_retention_days=settings.completed_job_retention_days,
            periodic={
                JobKind.REFRESH_TOKENS: settings.refresh_tokens_interval_hours * 3600,
                JobKind.CLEANUP_DATA: settings.cleanup_interval_hours * 3600,
            },
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ──────────────────────────────────────────────
    # One unit of work
    # ──────────────────────────────────────────────

    async def tick(self) -> Job | None:
        """Claim and process at most one job. Returns the job, or None if idle."""
        job = await self._store.claim_next()
        if job is None:
            return None

        logger.info("Executing job %s (kind=%s, attempt %d/%d)", job.id, job.kind, job.attempts, job.max_attempts)
        try:
            result = await self._dispatch(job)
        except Exception as e:
            logger.error("Job %s (kind=%s) failed: %s", job.id, job.kind, e, exc_info=True)
            await self._store.fail(job, describe_error(e))
            self.jobs_failed += 1
        else:
            await self._store.complete(job)
            self.jobs_completed += 1
            logger.info("Job %s (kind=%s) done: %s", job.id, job.kind, result)
        return job

    async def _dispatch(self, job: Job):
        handler = self._handlers.get(job.kind)
        if handler is None:
            raise UnknownJobKindError(job.kind)
        return await handler(job.payload, self._ctx)

    async def drain(self, max_jobs: int = 10_000) -> int:
        """Process jobs until none is eligible. Returns the number processed."""
        processed = 0
        while processed < max_jobs and await self.tick() is not None:
            processed += 1
        return processed

    # ──────────────────────────────────────────────
    # Maintenance
    # ──────────────────────────────────────────────

    async def run_maintenance(self, force: bool = False) -> None:
        now = self._clock.monotonic()
        if (
            not force
            and self._last_maintenance is not None
            and now - self._last_maintenance < self.maintenance_interval
        ):
            return
        self._last_maintenance = now

        await self._store.reap_stalled(self.stall_threshold)
        await self._store.cleanup_old_jobs(self.job_retention_days)

        for kind, every in self._periodic.items():
            last = self._last_enqueued.get(kind)
            if last is not None and now - last < every:
                continue
            if await self._store.has_pending(kind):
                logger.debug("Skipping periodic %s: one is already pending", kind.value)
                continue
            job_id = await self._store.enqueue(kind, {})
            self._last_enqueued[kind] = now
            logger.info("Enqueued periodic %s job %s", kind.value, job_id)

    # ──────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────

    async def run(self) -> None:
        """Main loop. Runs until ``stop()``; never cancels a job mid-flight."""
        logger.info(
            "Scheduler starting | poll_interval=%.1fs | kinds=%s",
            self.poll_interval,
            sorted(self._handlers),
        )
        while not self._stop_event.is_set():
            job = None
            try:
                job = await self.tick()
                await self.run_maintenance()
            except Exception:
                logger.error("Scheduler iteration failed", exc_info=True)

            if job is None:
                await self._wait(self.poll_interval)

        logger.info(
            "Scheduler stopped (completed=%d, failed=%d)",
            self.jobs_completed,
            self.jobs_failed,
        )

    async def _wait(self, seconds: float) -> None:
        """Sleep on the clock, waking early if stop() is called."""
        sleeper = asyncio.ensure_future(self._clock.sleep(seconds))
        stopper = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for fut in (sleeper, stopper):
                if not fut.done():
                    fut.cancel()

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run(), name="pulse-scheduler")
        return self._task

    async def stop(self) -> None:
        """Signal the loop to exit and wait for the current tick to finish."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
