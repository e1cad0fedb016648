"""
ONPOST Analytics — Admin Lease Release Script

Drops the lease on a thread so the next run can process it, e.g. after a
worker died mid-run and the operator does not want to wait out the TTL.

Usage:
    python scripts/release_lease.py --thread-id thr_123
    python scripts/release_lease.py --thread-id thr_123 --show
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Resolve project root so this script can be run from any working directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.config import settings
from src.pipeline.leases import SqlLeaseStore


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Release a stuck analytics lease on a forum thread.",
    )
    parser.add_argument(
        "--thread-id",
        type=str,
        required=True,
        help="Forum thread id whose lease should be dropped.",
    )
    parser.add_argument(
        "--show",
        action="store_true",
        help="Only print the current lease, do not release it.",
    )
    return parser.parse_args()


async def main() -> None:
    args = parse_args()

    if not settings.DATABASE_URL:
        print("DATABASE_URL is not set; leases are in-memory only.", file=sys.stderr)
        sys.exit(1)

    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    store = SqlLeaseStore(
        async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    )

    try:
        lease = await store.get(args.thread_id)
        if lease is None:
            print(f"No lease held on thread {args.thread_id}.")
            return

        print(f"  owner_id    = {lease.owner_id}")
        print(f"  acquired_at = {lease.acquired_at.isoformat()}")
        print(f"  expires_at  = {lease.expires_at.isoformat()}")

        if not args.show:
            await store.force_release(args.thread_id)
            print(f"Lease on thread {args.thread_id} released.")
    except Exception as e:
        print(f"Failed to release lease: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
