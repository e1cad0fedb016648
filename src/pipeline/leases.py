"""
ONPOST Analytics — Thread Leases

Per-thread mutual exclusion between overlapping analytics runs. A run must
hold a thread's lease (owner id + expiry) while processing it. Expired leases
can be taken over, so a crashed run blocks a thread for at most the TTL.

Two stores:
- InMemoryLeaseStore: single-process deployments and tests.
- SqlLeaseStore: the ``thread_leases`` table, shared by every worker.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol

import structlog
from sqlalchemy import delete, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import settings
from src.models.thread_lease import ThreadLease
from src.utils.clock import Clock, SystemClock, as_utc

logger = structlog.get_logger(__name__)


class LeaseStore(Protocol):
    async def acquire(self, thread_id: str, owner_id: str, ttl_seconds: float | None = None) -> bool:
        ...

    async def release(self, thread_id: str, owner_id: str) -> None:
        ...


def _ttl(ttl_seconds: float | None) -> timedelta:
    return timedelta(
        seconds=ttl_seconds if ttl_seconds is not None else settings.LEASE_TTL_SECONDS
    )


class InMemoryLeaseStore:
    """Leases held in a dict; only excludes runs within the same process."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._leases: dict[str, tuple[str, datetime]] = {}

    async def acquire(self, thread_id: str, owner_id: str, ttl_seconds: float | None = None) -> bool:
        now = self._clock.now()
        held = self._leases.get(thread_id)
        if held is not None:
            holder, expires_at = held
            if holder != owner_id and expires_at > now:
                return False
        self._leases[thread_id] = (owner_id, now + _ttl(ttl_seconds))
        return True

    async def release(self, thread_id: str, owner_id: str) -> None:
        held = self._leases.get(thread_id)
        if held is not None and held[0] == owner_id:
            del self._leases[thread_id]

    def holder(self, thread_id: str) -> str | None:
        held = self._leases.get(thread_id)
        if held is None or held[1] <= self._clock.now():
            return None
        return held[0]


class SqlLeaseStore:
    """
    Leases in the ``thread_leases`` table.

    Acquire is a conditional UPDATE (expired or already ours) followed by an
    INSERT when no row exists. A concurrent INSERT loses on the primary key.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock | None = None,
    ) -> None:
        self.session_factory = session_factory
        self._clock = clock or SystemClock()

    async def acquire(self, thread_id: str, owner_id: str, ttl_seconds: float | None = None) -> bool:
        now = self._clock.now()
        expires_at = now + _ttl(ttl_seconds)

        async with self.session_factory() as session:
            result = await session.execute(
                update(ThreadLease)
                .where(ThreadLease.thread_id == thread_id)
                .where(or_(ThreadLease.expires_at <= now, ThreadLease.owner_id == owner_id))
                .values(owner_id=owner_id, acquired_at=now, expires_at=expires_at)
            )
            if result.rowcount == 1:
                await session.commit()
                logger.debug("lease_renewed", thread_id=thread_id, owner_id=owner_id)
                return True

            session.add(
                ThreadLease(
                    thread_id=thread_id,
                    owner_id=owner_id,
                    acquired_at=now,
                    expires_at=expires_at,
                )
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info("lease_held_elsewhere", thread_id=thread_id, owner_id=owner_id)
                return False

        logger.debug("lease_acquired", thread_id=thread_id, owner_id=owner_id)
        return True

    async def release(self, thread_id: str, owner_id: str) -> None:
        async with self.session_factory() as session:
            await session.execute(
                delete(ThreadLease)
                .where(ThreadLease.thread_id == thread_id)
                .where(ThreadLease.owner_id == owner_id)
            )
            await session.commit()

    async def force_release(self, thread_id: str) -> bool:
        """Drop a lease whatever its owner. Returns True when a row was removed."""
        async with self.session_factory() as session:
            result = await session.execute(
                delete(ThreadLease).where(ThreadLease.thread_id == thread_id)
            )
            await session.commit()
        removed = result.rowcount > 0
        logger.info("lease_force_released", thread_id=thread_id, removed=removed)
        return removed

    async def get(self, thread_id: str) -> ThreadLease | None:
        async with self.session_factory() as session:
            lease = await session.get(ThreadLease, thread_id)
        if lease is not None:
            lease.acquired_at = as_utc(lease.acquired_at)
            lease.expires_at = as_utc(lease.expires_at)
        return lease
