"""Add claim_token to jobs

Revision ID: 20261018_0200
Revises: 20261018_0100
Create Date: 2026-10-18 02:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '20261018_0200'
down_revision: Union[str, None] = '20261018_0100'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Fencing value rotated on every claim
    op.add_column('jobs', sa.Column('claim_token', sa.String(36), nullable=True))


def downgrade() -> None:
    op.drop_column('jobs', 'claim_token')
