"""Thread leases — per-thread mutual exclusion for analytics runs

Revision ID: 001_thread_leases
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001_thread_leases"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "thread_leases",
        sa.Column("thread_id", sa.String(), nullable=False, comment="Forum thread id"),
        sa.Column("owner_id", sa.String(), nullable=False, comment="Run id of the current holder"),
        sa.Column("acquired_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("expires_at", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("thread_id"),
    )
    op.create_index("ix_thread_leases_expires_at", "thread_leases", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_thread_leases_expires_at", table_name="thread_leases")
    op.drop_table("thread_leases")
