"""Database layer — async SQLAlchemy engine, session factory, and ORM models."""

from pulse_core.db.engine import close_engine, create_tables, get_engine, get_session_factory
from pulse_core.db.models import (
    AnalysisRow,
    AuditLogRow,
    Base,
    CommentRow,
    DataRetentionRow,
    JobRow,
    PageRow,
    PostRow,
)
from pulse_core.db.upsert import upsert

__all__ = [
    "Base",
    "AnalysisRow",
    "AuditLogRow",
    "CommentRow",
    "DataRetentionRow",
    "JobRow",
    "PageRow",
    "PostRow",
    "close_engine",
    "create_tables",
    "get_engine",
    "get_session_factory",
    "upsert",
]
