"""Create core tables (jobs, pages, posts, comments, analyses, data_retention, audit_logs)

Revision ID: 20261018_0100
Revises:
Create Date: 2026-10-18 01:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '20261018_0100'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Job queue
    op.create_table(
        'jobs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('kind', sa.String(32), nullable=False),
        sa.Column('payload', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}'),
        sa.Column('status', sa.String(16), nullable=False, server_default='QUEUED'),
        sa.Column('attempts', sa.SmallInteger, nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.SmallInteger, nullable=False, server_default='3'),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint(
            "status IN ('QUEUED', 'RUNNING', 'COMPLETED', 'FAILED')", name='valid_job_status'
        ),
        sa.CheckConstraint('attempts <= max_attempts', name='attempts_within_max'),
    )
    op.create_index('ix_jobs_status_scheduled_at', 'jobs', ['status', 'scheduled_at'])
    op.create_index('ix_jobs_kind_status', 'jobs', ['kind', 'status'])
    op.create_index('ix_jobs_completed_at', 'jobs', ['completed_at'])

    # Connected pages
    op.create_table(
        'pages',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_user_id', sa.String(64), nullable=False),
        sa.Column('platform', sa.String(16), nullable=False),
        sa.Column('external_id', sa.String(128), nullable=False),
        sa.Column('name', sa.String(256), nullable=False),
        sa.Column('page_access_token', sa.Text, nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('last_fetched_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("platform IN ('FACEBOOK', 'INSTAGRAM')", name='valid_page_platform'),
    )
    op.create_index('ix_pages_external_id_platform', 'pages', ['external_id', 'platform'], unique=True)
    op.create_index('ix_pages_owner_user_id', 'pages', ['owner_user_id'])
    op.create_index('ix_pages_is_active', 'pages', ['is_active'])

    # Posts
    op.create_table(
        'posts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('page_id', sa.String(36), sa.ForeignKey('pages.id', ondelete='CASCADE'), nullable=False),
        sa.Column('platform', sa.String(16), nullable=False),
        sa.Column('external_id', sa.String(128), nullable=False),
        sa.Column('message', sa.Text, nullable=True),
        sa.Column('caption', sa.Text, nullable=True),
        sa.Column('created_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('permalink_url', sa.Text, nullable=True),
        sa.Column('like_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('comment_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('fetched_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('last_fetched_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_posts_external_id_platform', 'posts', ['external_id', 'platform'], unique=True)
    op.create_index('ix_posts_page_id', 'posts', ['page_id'])
    op.create_index('ix_posts_fetched_at', 'posts', ['fetched_at'])

    # Comments
    op.create_table(
        'comments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('post_id', sa.String(36), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('platform', sa.String(16), nullable=False),
        sa.Column('external_id', sa.String(128), nullable=False),
        sa.Column('parent_external_id', sa.String(128), nullable=True),
        sa.Column('author_id', sa.String(128), nullable=True),
        sa.Column('author_name', sa.String(256), nullable=True),
        sa.Column('author_username', sa.String(128), nullable=True),
        sa.Column('message', sa.Text, nullable=False, server_default=''),
        sa.Column('created_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('like_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('reply_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('fetched_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_comments_external_id_platform', 'comments', ['external_id', 'platform'], unique=True)
    op.create_index('ix_comments_post_id', 'comments', ['post_id'])
    op.create_index('ix_comments_fetched_at', 'comments', ['fetched_at'])

    # Analyses (at most one per comment)
    op.create_table(
        'analyses',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('comment_id', sa.String(36), sa.ForeignKey('comments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sentiment_label', sa.String(16), nullable=False),
        sa.Column('sentiment_score', sa.Float, nullable=False),
        sa.Column('toxicity_score', sa.Float, nullable=False, server_default='0'),
        sa.Column('language', sa.String(8), nullable=True),
        sa.Column('keywords', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('model_name', sa.String(64), nullable=False),
        sa.Column('model_version', sa.String(32), nullable=True),
        sa.Column('analyzed_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint("sentiment_label IN ('POSITIVE', 'NEGATIVE', 'NEUTRAL')", name='valid_sentiment_label'),
        sa.CheckConstraint('sentiment_score >= 0 AND sentiment_score <= 1', name='valid_sentiment_score'),
        sa.CheckConstraint('toxicity_score >= 0 AND toxicity_score <= 1', name='valid_toxicity_score'),
    )
    op.create_index('ix_analyses_comment_id', 'analyses', ['comment_id'], unique=True)
    op.create_index('ix_analyses_analyzed_at', 'analyses', ['analyzed_at'])

    # Retention + audit
    op.create_table(
        'data_retention',
        sa.Column('user_id', sa.String(64), primary_key=True),
        sa.Column('retention_days', sa.Integer, nullable=False, server_default='90'),
        sa.Column('auto_delete', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('last_cleanup_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('action', sa.String(64), nullable=False),
        sa.Column('resource', sa.String(64), nullable=False),
        sa.Column('details', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table('audit_logs')
    op.drop_table('data_retention')
    op.drop_table('analyses')
    op.drop_table('comments')
    op.drop_table('posts')
    op.drop_table('pages')
    op.drop_table('jobs')
