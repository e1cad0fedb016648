"""
ONPOST Analytics — Run Report

Aggregate result of one analytics run, returned by the trigger endpoint and
printed by ``python -m src.main --once``.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from src.config import ThreadOutcome
from src.models.market import WireModel


class ThreadResult(WireModel):
    thread_id: str
    outcome: ThreadOutcome
    valid_count: int | None = None
    new_posts: int | None = None
    narrative_refreshed: bool | None = None
    error: str | None = None


class RunReport(WireModel):
    success: bool = True
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
    threads: list[ThreadResult] = Field(default_factory=list)
    details: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def record(self, result: ThreadResult) -> None:
        """Append a thread result and update the aggregate counters."""
        self.threads.append(result)
        if result.outcome in (
            ThreadOutcome.SKIPPED_RECENT,
            ThreadOutcome.SKIPPED_LOCKED,
            ThreadOutcome.DEADLINE,
        ):
            self.skipped += 1
        elif result.outcome == ThreadOutcome.UPDATED:
            self.updated += 1
        if result.error is not None:
            self.errors.append(f"Thread {result.thread_id}: {result.error}")
