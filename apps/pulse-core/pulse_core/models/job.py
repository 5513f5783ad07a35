"""Job model for the durable work queue."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JobKind(str, Enum):
    """Kinds of work. Each kind has exactly one registered handler."""

    FETCH_POSTS = "FETCH_POSTS"
    FETCH_COMMENTS = "FETCH_COMMENTS"
    ANALYZE_SENTIMENT = "ANALYZE_SENTIMENT"
    REFRESH_TOKENS = "REFRESH_TOKENS"
    CLEANUP_DATA = "CLEANUP_DATA"


class JobStatus(str, Enum):
    """Job lifecycle: QUEUED -> RUNNING -> COMPLETED | QUEUED (retry) | FAILED."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Job(BaseModel):
    """Snapshot of a job row, as handed to the scheduler and the HTTP surface.

    ``kind`` stays a plain string so a row written by a newer deployment (with a
    kind this process doesn't know) can still be claimed and failed cleanly.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: str
    payload: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = JobStatus.QUEUED
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    scheduled_at: datetime
    started_at: datetime | None = None
    claim_token: str | None = Field(default=None, exclude=True)
    completed_at: datetime | None = None
    last_error: str | None = None
    created_at: datetime | None = None


class QueueStats(BaseModel):
    """Aggregate job counts for operational dashboards."""

    queued: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
