"""Add notifications.read_token

Revision ID: 0002_add_read_token
Revises: 0001_initial
Create Date: 2026-10-19

"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "0002_add_read_token"
down_revision: str | None = "0001_initial"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column("notifications", sa.Column("read_token", sa.String(length=64), nullable=True))


def downgrade() -> None:
    op.drop_column("notifications", "read_token")
