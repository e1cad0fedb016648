"""
ONPOST Analytics — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- In-memory forum (FakeForums) implementing the forum gateway
- Fixed clock
- aiosqlite in-memory database for the lease table
- Post / thread builders
"""

from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.models.base import Base
from src.models.market import ForumPost, ForumThread, PostPage, ThreadPage
from src.pipeline.forums import ForumsAPIError
from src.utils.clock import FixedClock, to_epoch_ms


NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# In-memory forum
# ---------------------------------------------------------------------------


class FakeForums:
    """
    Forum gateway over plain dicts.

    Posts are stored newest first per thread and served in pages of
    ``page_size``; the cursor is the index of the next post. Extended-data
    writes are shallow merges, like the real API.
    """

    def __init__(self, page_size: int = 20) -> None:
        self.page_size = page_size
        self.threads: dict[str, dict[str, Any]] = {}
        self.posts: dict[str, list[dict[str, Any]]] = {}
        self.thread_writes: list[tuple[str, dict[str, Any]]] = []
        self.post_writes: list[tuple[str, dict[str, Any]]] = []
        self.list_posts_calls = 0
        self.fail_threads: set[str] = set()
        self.fail_listing = False

    def add_thread(self, thread_id: str, market: dict[str, Any] | None = None) -> None:
        extended = {"market": market} if market is not None else {}
        self.threads[thread_id] = {"id": thread_id, "title": thread_id, "extendedData": extended}
        self.posts.setdefault(thread_id, [])

    def add_post(self, thread_id: str, post: dict[str, Any]) -> None:
        """Insert a post keeping the thread's newest-first order."""
        posts = self.posts.setdefault(thread_id, [])
        posts.append(post)
        posts.sort(key=lambda p: p["createdAt"], reverse=True)

    def market(self, thread_id: str) -> dict[str, Any]:
        return self.threads[thread_id]["extendedData"]["market"]

    def post(self, post_id: str) -> dict[str, Any]:
        for posts in self.posts.values():
            for p in posts:
                if p["id"] == post_id:
                    return p
        raise KeyError(post_id)

    async def list_threads(
        self, filter: str = "newest", limit: int | None = None, cursor: str | None = None
    ) -> ThreadPage:
        if self.fail_listing:
            raise RuntimeError("thread listing unavailable")
        threads = list(self.threads.values())[: limit or len(self.threads)]
        return ThreadPage.model_validate({"threads": copy.deepcopy(threads)})

    async def list_posts(
        self,
        thread_id: str,
        filter: str = "newest",
        cursor: str | None = None,
        limit: int | None = None,
    ) -> PostPage:
        self.list_posts_calls += 1
        if thread_id in self.fail_threads:
            raise ForumsAPIError(500, f"/thread/{thread_id}/posts")

        start = int(cursor) if cursor else 0
        size = limit or self.page_size
        chunk = self.posts.get(thread_id, [])[start : start + size]
        next_start = start + size
        next_cursor = str(next_start) if next_start < len(self.posts.get(thread_id, [])) else None
        return PostPage.model_validate(
            {"posts": copy.deepcopy(chunk), "nextPostCursor": next_cursor}
        )

    async def update_thread_extended_data(self, thread_id: str, extended_data: dict[str, Any]) -> None:
        self.thread_writes.append((thread_id, copy.deepcopy(extended_data)))
        self.threads[thread_id]["extendedData"].update(copy.deepcopy(extended_data))

    async def update_post_extended_data(self, post_id: str, extended_data: dict[str, Any]) -> None:
        self.post_writes.append((post_id, copy.deepcopy(extended_data)))
        post = self.post(post_id)
        post["extendedData"] = {**(post.get("extendedData") or {}), **copy.deepcopy(extended_data)}


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def trade_data(
    price: float | None,
    intent: str = "WTS",
    confidence: float = 0.8,
    status: str = "ACTIVE",
    **extra: Any,
) -> dict[str, Any]:
    """Wire-format trade record as stored in a post's extendedData."""
    return {
        "isTrade": True,
        "intent": intent,
        "status": status,
        "displayPrice": "" if price is None else str(price),
        "normalizedPrice": price,
        "currency": "IDR",
        "unit": "pcs",
        "parseConfidence": confidence,
        "parserVersion": "1.0.0",
        "parsedAt": to_epoch_ms(NOW - timedelta(days=1)),
        "accountFeatures": None,
        **extra,
    }


def make_post(
    post_id: str,
    body: str = "",
    age: timedelta = timedelta(hours=1),
    trade: dict[str, Any] | None = None,
) -> dict[str, Any]:
    post: dict[str, Any] = {
        "id": post_id,
        "body": body,
        "createdAt": (NOW - age).isoformat(),
        "extendedData": {},
    }
    if trade is not None:
        post["extendedData"]["trade"] = trade
    return post


def market_state(**overrides: Any) -> dict[str, Any]:
    """Wire-format ThreadMarketState with sensible defaults."""
    state: dict[str, Any] = {
        "marketEnabled": True,
        "marketTypeCandidate": "ITEM_MARKET",
        "marketTypeFinal": None,
        "windowDays": 30,
        "thresholdValid": 10,
        "validCount": 0,
        "lastWindowCutoffAt": 0,
        "lastProcessed": {
            "mode": "NEWEST",
            "cursor": None,
            "lastPostIdProcessed": None,
            "at": 0,
        },
        "analytics": {
            "locked": True,
            "updatedAt": 0,
            "snapshot": None,
            "narrative": None,
            "narrativeUpdatedAt": None,
            "version": "1.0.0",
        },
    }
    state.update(overrides)
    return state


def as_post(data: dict[str, Any]) -> ForumPost:
    return ForumPost.model_validate(data)


def as_thread(data: dict[str, Any]) -> ForumThread:
    return ForumThread.model_validate(data)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def forums() -> FakeForums:
    return FakeForums()


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over in-memory SQLite (aiosqlite) with all tables created.

    A single-connection pool keeps the in-memory database alive across sessions.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
