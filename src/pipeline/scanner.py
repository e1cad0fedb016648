"""
ONPOST Analytics — Window Scanner

Two bounded, newest-first scans over a thread's posts:

- Incremental scan: posts strictly newer than the stored checkpoint post,
  capped at INCREMENTAL_SCAN_MAX_POSTS in case the checkpoint post was deleted.
- Rolling-window scan: every post created within the last ``window_days``.
  Not cumulative across runs; each call re-walks the window from the newest
  post and stops at the first post older than the cutoff.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncIterator

import structlog
from pydantic import ValidationError

from src.config import ScanMode, settings
from src.models.market import ForumPost, ScanCheckpoint, TradeRecord
from src.pipeline.forums import ForumsGateway
from src.utils.clock import Clock, SystemClock, as_utc, to_epoch_ms

logger = structlog.get_logger(__name__)


@dataclass
class IncrementalScan:
    """New posts (newest first) and the checkpoint to store after processing them."""

    posts: list[ForumPost]
    checkpoint: ScanCheckpoint


def valid_trade(post: ForumPost) -> TradeRecord | None:
    """The post's trade record if it counts as a valid trade."""
    try:
        trade = post.trade
    except ValidationError as e:
        logger.warning(
            "scanner_malformed_trade_record",
            post_id=post.id,
            error=str(e),
            source="scanner",
        )
        return None
    if trade is None or not trade.is_valid:
        return None
    return trade


class WindowScanner:
    def __init__(self, forums: ForumsGateway, clock: Clock | None = None) -> None:
        self._forums = forums
        self._clock = clock or SystemClock()

    async def scan_new_posts(
        self,
        thread_id: str,
        checkpoint: ScanCheckpoint,
        max_posts: int | None = None,
    ) -> IncrementalScan:
        """
        Collect posts newer than ``checkpoint.last_post_id_processed``.

        Stops at the checkpoint post (excluded), after ``max_posts`` posts, or
        when the thread has no more pages. The returned checkpoint points at
        the newest post seen, or keeps the old one when nothing is new.
        """
        cap = max_posts if max_posts is not None else settings.INCREMENTAL_SCAN_MAX_POSTS
        stop_id = checkpoint.last_post_id_processed
        posts: list[ForumPost] = []
        cursor: str | None = None
        reached_checkpoint = False

        while len(posts) < cap:
            page = await self._forums.list_posts(
                thread_id, filter=ScanMode.NEWEST.value.lower(), cursor=cursor
            )
            for post in page.posts:
                if stop_id is not None and post.id == stop_id:
                    reached_checkpoint = True
                    break
                posts.append(post)
                if len(posts) >= cap:
                    break

            if reached_checkpoint or not page.next_post_cursor:
                break
            cursor = page.next_post_cursor

        if posts:
            new_checkpoint = ScanCheckpoint(
                mode=ScanMode.NEWEST,
                cursor=None,
                last_post_id_processed=posts[0].id,
                at=to_epoch_ms(self._clock.now()),
            )
        else:
            new_checkpoint = checkpoint.model_copy(
                update={"mode": ScanMode.NEWEST, "at": to_epoch_ms(self._clock.now())}
            )

        logger.info(
            "scanner_incremental_done",
            thread_id=thread_id,
            new_posts=len(posts),
            reached_checkpoint=reached_checkpoint,
            capped=len(posts) >= cap,
            source="scanner",
        )
        return IncrementalScan(posts=posts, checkpoint=new_checkpoint)

    async def iter_window_posts(
        self, thread_id: str, window_days: int
    ) -> AsyncIterator[ForumPost]:
        """Yield posts newest first until the first one older than the window."""
        cutoff = self._clock.now() - timedelta(days=window_days)
        cursor: str | None = None

        while True:
            page = await self._forums.list_posts(
                thread_id, filter=ScanMode.NEWEST.value.lower(), cursor=cursor
            )
            for post in page.posts:
                if as_utc(post.created_at) < cutoff:
                    return
                yield post

            if not page.next_post_cursor:
                return
            cursor = page.next_post_cursor

    async def collect_valid_trades(self, thread_id: str, window_days: int) -> list[TradeRecord]:
        """Valid trade records inside the rolling window, newest first."""
        trades = [
            trade
            async for post in self.iter_window_posts(thread_id, window_days)
            if (trade := valid_trade(post)) is not None
        ]
        logger.info(
            "scanner_window_collected",
            thread_id=thread_id,
            window_days=window_days,
            valid_count=len(trades),
            source="scanner",
        )
        return trades

    async def count_valid_trades(self, thread_id: str, window_days: int) -> int:
        return len(await self.collect_valid_trades(thread_id, window_days))
