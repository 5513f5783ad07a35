"""Data models for Comment Pulse."""

from pulse_core.models.content import (
    FacebookComment,
    FacebookPost,
    InstagramAccount,
    InstagramComment,
    InstagramPost,
    PageAccount,
    Platform,
    Sentiment,
    TokenInfo,
)
from pulse_core.models.job import Job, JobKind, JobStatus, QueueStats

__all__ = [
    "FacebookComment",
    "FacebookPost",
    "InstagramAccount",
    "InstagramComment",
    "InstagramPost",
    "Job",
    "JobKind",
    "JobStatus",
    "PageAccount",
    "Platform",
    "QueueStats",
    "Sentiment",
    "TokenInfo",
]
