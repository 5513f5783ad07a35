"""Job queue endpoints: enqueue work and inspect the queue.

Job records expose ``last_error`` as a one-line string; stack traces stay in
the worker log.
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pulse_api.deps import get_db, get_store
from pulse_core.models import Job, JobKind, JobStatus, QueueStats
from pulse_core.queue import JobStore
from pulse_core.services import get_active_pages

router = APIRouter(tags=["jobs"])


class JobCreate(BaseModel):
    """Request body for enqueueing a job."""

    kind: JobKind
    payload: dict[str, Any] = Field(default_factory=dict)
    max_attempts: int | None = Field(default=None, ge=1)
    scheduled_at: datetime | None = None


class JobCreated(BaseModel):
    job_id: str


class DateRange(BaseModel):
    since: str
    until: str


class FetchRequest(BaseModel):
    """Request body for fetching posts of a user's pages."""

    owner_user_id: str
    page_ids: list[str] = Field(min_length=1)
    date_range: DateRange
    platforms: list[str] | None = None


class FetchResponse(BaseModel):
    job_ids: list[str]
    total_jobs: int


@router.post("/jobs", response_model=JobCreated)
async def create_job(body: JobCreate, store: JobStore = Depends(get_store)) -> JobCreated:
    job_id = await store.enqueue(
        body.kind,
        body.payload,
        max_attempts=body.max_attempts,
        scheduled_at=body.scheduled_at,
    )
    return JobCreated(job_id=job_id)


@router.get("/jobs/stats", response_model=QueueStats)
async def queue_stats(store: JobStore = Depends(get_store)) -> QueueStats:
    return await store.get_queue_stats()


@router.get("/jobs", response_model=list[Job])
async def list_jobs(
    status: JobStatus | None = None,
    kind: JobKind | None = None,
    limit: int = 50,
    store: JobStore = Depends(get_store),
) -> list[Job]:
    return await store.list_jobs(status=status, kind=kind, limit=min(max(limit, 1), 500))


@router.get("/jobs/{job_id}", response_model=Job)
async def get_job(job_id: str, store: JobStore = Depends(get_store)) -> Job:
    job = await store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("/fetch", response_model=FetchResponse)
async def fetch_posts(
    body: FetchRequest,
    store: JobStore = Depends(get_store),
    db: async_sessionmaker[AsyncSession] = Depends(get_db),
) -> FetchResponse:
    """Enqueue one FETCH_POSTS job per requested page.

    Every page must be active and owned by ``owner_user_id``.
    """
    async with db() as session:
        pages = await get_active_pages(session, body.owner_user_id, body.page_ids)

    if len(pages) != len(set(body.page_ids)):
        raise HTTPException(status_code=403, detail="Some pages not found or not owned by user")

    job_ids = []
    for page in pages:
        if body.platforms and page.platform not in body.platforms:
            continue
        job_ids.append(
            await store.enqueue(
                JobKind.FETCH_POSTS,
                {"page_id": page.id, "date_range": body.date_range.model_dump()},
            )
        )
    return FetchResponse(job_ids=job_ids, total_jobs=len(job_ids))
