"""SQLAlchemy ORM models — job table and ingested Graph content."""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from pulse_core.models.job import JobStatus

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetimes in, timezone-aware UTC datetimes out.

    SQLite drops tzinfo on the way back; this reattaches UTC so comparisons with
    ``datetime.now(timezone.utc)`` work on every backend.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            value = value.astimezone(timezone.utc)
            if dialect.name == "sqlite":
                value = value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class Base(DeclarativeBase):
    pass


class JobRow(Base):
    """A unit of asynchronous work. Mutated only through JobStore."""

    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=JobStatus.QUEUED.value
    )
    attempts: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=3)
    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    # Rotated on every claim; complete/fail must present the current one
    claim_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_jobs_status_scheduled_at", "status", "scheduled_at"),
        Index("ix_jobs_kind_status", "kind", "status"),
        Index("ix_jobs_completed_at", "completed_at"),
    )


class PageRow(Base):
    """A connected Facebook page / Instagram business account and its credential."""

    __tablename__ = "pages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    owner_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    platform: Mapped[str] = mapped_column(String(16), nullable=False)
    external_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False)

    # Vault envelope, never plaintext
    page_access_token: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )
    last_fetched_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    posts: Mapped[list["PostRow"]] = relationship(back_populates="page")

    __table_args__ = (
        Index("ix_pages_external_id_platform", "external_id", "platform", unique=True),
        Index("ix_pages_owner_user_id", "owner_user_id"),
        Index("ix_pages_is_active", "is_active"),
    )


class PostRow(Base):
    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    page_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pages.id", ondelete="CASCADE"), nullable=False
    )
    platform: Mapped[str] = mapped_column(String(16), nullable=False)
    external_id: Mapped[str] = mapped_column(String(128), nullable=False)

    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    caption: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    permalink_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    fetched_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    last_fetched_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    page: Mapped["PageRow"] = relationship(back_populates="posts")
    comments: Mapped[list["CommentRow"]] = relationship(back_populates="post")

    __table_args__ = (
        Index("ix_posts_external_id_platform", "external_id", "platform", unique=True),
        Index("ix_posts_page_id", "page_id"),
        Index("ix_posts_fetched_at", "fetched_at"),
    )


class CommentRow(Base):
    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    post_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    platform: Mapped[str] = mapped_column(String(16), nullable=False)
    external_id: Mapped[str] = mapped_column(String(128), nullable=False)
    parent_external_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Author (Facebook gives id/name, Instagram gives username)
    author_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    author_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    author_username: Mapped[str | None] = mapped_column(String(128), nullable=True)

    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_time: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reply_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fetched_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    post: Mapped["PostRow"] = relationship(back_populates="comments")
    analysis: Mapped["AnalysisRow | None"] = relationship(back_populates="comment")

    __table_args__ = (
        Index("ix_comments_external_id_platform", "external_id", "platform", unique=True),
        Index("ix_comments_post_id", "post_id"),
        Index("ix_comments_fetched_at", "fetched_at"),
    )


class AnalysisRow(Base):
    """Sentiment/toxicity result — at most one per comment."""

    __tablename__ = "analyses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    comment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("comments.id", ondelete="CASCADE"), nullable=False
    )
    sentiment_label: Mapped[str] = mapped_column(String(16), nullable=False)
    sentiment_score: Mapped[float] = mapped_column(Float, nullable=False)
    toxicity_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    language: Mapped[str | None] = mapped_column(String(8), nullable=True)
    keywords: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    model_name: Mapped[str] = mapped_column(String(64), nullable=False)
    model_version: Mapped[str | None] = mapped_column(String(32), nullable=True)
    analyzed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    comment: Mapped["CommentRow"] = relationship(back_populates="analysis")

    __table_args__ = (
        Index("ix_analyses_comment_id", "comment_id", unique=True),
        Index("ix_analyses_analyzed_at", "analyzed_at"),
    )


class DataRetentionRow(Base):
    """Per-user retention window for ingested content."""

    __tablename__ = "data_retention"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    retention_days: Mapped[int] = mapped_column(Integer, nullable=False, default=90)
    auto_delete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_cleanup_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class AuditLogRow(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    resource: Mapped[str] = mapped_column(String(64), nullable=False)
    details: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    __table_args__ = (Index("ix_audit_logs_user_id", "user_id"),)
