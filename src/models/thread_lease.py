"""
ONPOST Analytics — Thread Lease Model

One row per thread currently claimed by an analytics run. A lease is live
while ``expires_at`` is in the future; an expired row may be taken over by
any other run.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import TIMESTAMP, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class ThreadLease(Base):
    """Per-thread mutual exclusion record (owner id + expiry)."""

    __tablename__ = "thread_leases"

    thread_id: Mapped[str] = mapped_column(
        String,
        primary_key=True,
        comment="Forum thread id",
    )
    owner_id: Mapped[str] = mapped_column(
        String,
        nullable=False,
        comment="Run id of the current holder",
    )
    acquired_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        comment="When the current holder took the lease",
    )
    expires_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        comment="Lease is free after this instant",
    )

    def __repr__(self) -> str:
        return (
            f"<ThreadLease thread_id={self.thread_id!r} owner_id={self.owner_id!r} "
            f"expires_at={self.expires_at!r}>"
        )
