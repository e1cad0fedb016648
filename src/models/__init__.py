"""
Models package — SQLAlchemy tables and pydantic market models.
"""

from src.models.base import Base
from src.models.market import (
    AccountMarketSnapshot,
    ForumPost,
    ForumThread,
    ItemMarketSnapshot,
    ScanCheckpoint,
    ThreadMarketState,
    TradeRecord,
)
from src.models.thread_lease import ThreadLease

__all__ = [
    "AccountMarketSnapshot",
    "Base",
    "ForumPost",
    "ForumThread",
    "ItemMarketSnapshot",
    "ScanCheckpoint",
    "ThreadLease",
    "ThreadMarketState",
    "TradeRecord",
]
