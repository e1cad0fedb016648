"""
ONPOST Analytics — Run Orchestrator

One analytics run over the forum:

    SELECT CANDIDATES
      -> per thread: SKIP_RECENT | SKIP_LOCKED | DEADLINE | PROCESS
      -> PERSIST extendedData.market

Per-thread processing:
1. Incremental scan for posts newer than the checkpoint.
2. Trade Record Builder on each new post.
3. Rolling-window rescan when new posts arrived or the last rescan is
   older than RESCAN_INTERVAL_MINUTES; otherwise the stored validCount stands.
4. validCount >= thresholdValid: snapshot, narrative refresh policy,
   narrative (kept on AI failure), unlock.
   Otherwise: lock, snapshot and narrative untouched.
5. Write the thread's market state back.

Threads run sequentially. Each one holds a lease for its duration and is
bounded by THREAD_TIMEOUT_SECONDS; no new thread starts after the run
deadline. A failing thread is recorded and the run moves on.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Awaitable, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import ThreadOutcome, settings
from src.engine.narrative_policy import should_refresh_narrative
from src.engine.snapshot import compute_snapshot
from src.models.market import AnalyticsState, ForumThread, ThreadMarketState, TradeRecord
from src.models.report import RunReport, ThreadResult
from src.pipeline.ai import (
    AIError,
    AnthropicNarrativeGenerator,
    AnthropicTradeClassifier,
    NarrativeGenerator,
)
from src.pipeline.forums import ForumsClient, ForumsGateway
from src.pipeline.leases import InMemoryLeaseStore, LeaseStore, SqlLeaseStore
from src.pipeline.scanner import WindowScanner
from src.pipeline.trade_builder import TradeRecordBuilder
from src.utils.clock import Clock, SystemClock, to_epoch_ms

logger = structlog.get_logger(__name__)


def _market_enabled(thread: ForumThread) -> bool:
    market = (thread.extended_data or {}).get("market")
    return isinstance(market, dict) and bool(market.get("marketEnabled"))


class AnalyticsOrchestrator:
    """
    Drives one analytics run.

    Collaborators are injected so the run can be exercised against an
    in-memory forum and a fixed clock.
    """

    def __init__(
        self,
        forums: ForumsGateway,
        builder: TradeRecordBuilder | None = None,
        scanner: WindowScanner | None = None,
        narrator: NarrativeGenerator | None = None,
        lease_store: LeaseStore | None = None,
        clock: Clock | None = None,
        run_id: str | None = None,
        thread_timeout: float | None = None,
        run_deadline: float | None = None,
    ) -> None:
        self.clock = clock or SystemClock()
        self.forums = forums
        self.builder = builder or TradeRecordBuilder(clock=self.clock)
        self.scanner = scanner or WindowScanner(forums, self.clock)
        self.narrator = narrator
        self.lease_store = lease_store or InMemoryLeaseStore(self.clock)
        self.run_id = run_id or uuid.uuid4().hex
        self.thread_timeout = (
            thread_timeout if thread_timeout is not None else settings.THREAD_TIMEOUT_SECONDS
        )
        self.run_deadline = (
            run_deadline if run_deadline is not None else settings.RUN_DEADLINE_SECONDS
        )

    async def run(self) -> RunReport:
        """
        Execute one run. Never raises.

        Returns:
            RunReport with success=False and ``details`` set only when the
            run itself failed (e.g. the thread listing could not be fetched).
        """
        report = RunReport()
        logger.info("analytics_run_start", run_id=self.run_id)

        try:
            await self._run(report)
        except Exception as e:
            logger.error(
                "analytics_run_failed",
                run_id=self.run_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return RunReport(
                success=False,
                processed=report.processed,
                updated=report.updated,
                skipped=report.skipped,
                errors=report.errors,
                threads=report.threads,
                details=str(e) or type(e).__name__,
            )

        logger.info(
            "analytics_run_complete",
            run_id=self.run_id,
            processed=report.processed,
            updated=report.updated,
            skipped=report.skipped,
            errors=len(report.errors),
        )
        return report

    async def _run(self, report: RunReport) -> None:
        page = await self.forums.list_threads(limit=settings.THREAD_LIST_LIMIT)
        candidates = [t for t in page.threads if _market_enabled(t)]
        candidates = candidates[: settings.MAX_THREADS_PER_RUN]

        logger.info(
            "analytics_candidates_selected",
            run_id=self.run_id,
            listed=len(page.threads),
            candidates=len(candidates),
        )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.run_deadline

        for thread in candidates:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning("analytics_deadline_reached", thread_id=thread.id)
                report.record(ThreadResult(thread_id=thread.id, outcome=ThreadOutcome.DEADLINE))
                continue

            result = await self._run_thread(thread, min(self.thread_timeout, remaining), report)
            report.record(result)

    async def _run_thread(
        self, thread: ForumThread, timeout: float, report: RunReport
    ) -> ThreadResult:
        """Debounce, lease, and time-box one thread. Errors become results."""
        try:
            state = thread.market

            since_last_ms = to_epoch_ms(self.clock.now()) - state.last_processed.at
            if since_last_ms < settings.DEBOUNCE_MINUTES * 60 * 1000:
                logger.debug("analytics_thread_debounced", thread_id=thread.id)
                return ThreadResult(thread_id=thread.id, outcome=ThreadOutcome.SKIPPED_RECENT)

            if not await self.lease_store.acquire(thread.id, self.run_id):
                logger.info("analytics_thread_leased_elsewhere", thread_id=thread.id)
                return ThreadResult(thread_id=thread.id, outcome=ThreadOutcome.SKIPPED_LOCKED)

            report.processed += 1
            try:
                return await asyncio.wait_for(self.process_thread(thread.id, state), timeout)
            finally:
                await self.lease_store.release(thread.id, self.run_id)

        except asyncio.TimeoutError:
            message = f"timed out after {timeout:.0f}s"
            logger.error("analytics_thread_timeout", thread_id=thread.id, timeout=timeout)
            return ThreadResult(thread_id=thread.id, outcome=ThreadOutcome.ERROR, error=message)
        except Exception as e:
            logger.error(
                "analytics_thread_failed",
                thread_id=thread.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ThreadResult(
                thread_id=thread.id,
                outcome=ThreadOutcome.ERROR,
                error=str(e) or "Unknown error",
            )

    async def process_thread(self, thread_id: str, state: ThreadMarketState) -> ThreadResult:
        """Scan, classify, count, snapshot, and persist one thread."""
        now_ms = to_epoch_ms(self.clock.now())

        scan = await self.scanner.scan_new_posts(thread_id, state.last_processed)
        for post in scan.posts:
            await self.builder.process_post(post, self.forums)

        rescan_interval_ms = settings.RESCAN_INTERVAL_MINUTES * 60 * 1000
        rescan_due = now_ms - state.last_window_cutoff_at > rescan_interval_ms

        valid_count = state.valid_count
        window_trades: list[TradeRecord] | None = None
        if rescan_due or scan.posts:
            window_trades = await self.scanner.collect_valid_trades(thread_id, state.window_days)
            valid_count = len(window_trades)

        updated = state.model_copy(
            update={
                "valid_count": valid_count,
                "last_window_cutoff_at": now_ms if window_trades is not None else state.last_window_cutoff_at,
                "last_processed": scan.checkpoint,
            }
        )

        narrative_refreshed: bool | None = None
        if valid_count >= state.threshold_valid:
            if window_trades is None:
                window_trades = await self.scanner.collect_valid_trades(
                    thread_id, state.window_days
                )
            updated.analytics, narrative_refreshed = await self._unlock(
                thread_id, state, window_trades, now_ms
            )
            outcome = ThreadOutcome.UPDATED
        else:
            updated.analytics = state.analytics.model_copy(
                update={"locked": True, "updated_at": now_ms}
            )
            outcome = ThreadOutcome.PROCESSED

        await self.forums.update_thread_extended_data(thread_id, {"market": updated.to_wire()})

        logger.info(
            "analytics_thread_processed",
            thread_id=thread_id,
            outcome=outcome.value,
            new_posts=len(scan.posts),
            valid_count=valid_count,
            threshold_valid=state.threshold_valid,
            rescanned=window_trades is not None,
            narrative_refreshed=narrative_refreshed,
        )
        return ThreadResult(
            thread_id=thread_id,
            outcome=outcome,
            valid_count=valid_count,
            new_posts=len(scan.posts),
            narrative_refreshed=narrative_refreshed,
        )

    async def _unlock(
        self,
        thread_id: str,
        state: ThreadMarketState,
        trades: list[TradeRecord],
        now_ms: int,
    ) -> tuple[AnalyticsState, bool]:
        snapshot = compute_snapshot(state.market_type, trades)
        previous = state.analytics.snapshot

        narrative = state.analytics.narrative
        narrative_updated_at = state.analytics.narrative_updated_at
        refreshed = False

        if self.narrator is not None and should_refresh_narrative(previous, snapshot):
            try:
                narrative = await self.narrator.narrate(state.market_type, snapshot, previous)
            except AIError as e:
                logger.warning(
                    "analytics_narrative_failed",
                    thread_id=thread_id,
                    error=str(e),
                )
            else:
                narrative_updated_at = now_ms
                refreshed = True

        analytics = AnalyticsState(
            locked=False,
            updated_at=now_ms,
            snapshot=snapshot,
            narrative=narrative,
            narrative_updated_at=narrative_updated_at,
            version=settings.ANALYTICS_VERSION,
        )
        return analytics, refreshed


def make_runner(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    clock: Clock | None = None,
) -> Callable[[], Awaitable[RunReport]]:
    """
    Build the production run callable used by the trigger and ``--once``.

    Leases go to the database when a session factory is given, otherwise to
    a process-local store shared by every run of this runner.
    """
    clock = clock or SystemClock()
    lease_store: LeaseStore = (
        SqlLeaseStore(session_factory, clock)
        if session_factory is not None
        else InMemoryLeaseStore(clock)
    )

    async def run_analytics() -> RunReport:
        ai_classifier = AnthropicTradeClassifier() if settings.ANTHROPIC_API_KEY else None
        async with ForumsClient() as forums:
            orchestrator = AnalyticsOrchestrator(
                forums,
                builder=TradeRecordBuilder(ai_classifier, clock),
                narrator=AnthropicNarrativeGenerator(),
                lease_store=lease_store,
                clock=clock,
            )
            return await orchestrator.run()

    return run_analytics
