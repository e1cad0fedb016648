"""
ONPOST Analytics — Narrative Refresh Policy

Decides whether the AI narrative must be regenerated for a new snapshot.

    | Snapshot kind | Refresh when                                    |
    |:--------------|:------------------------------------------------|
    | (no previous) | always                                          |
    | item          | |Δ sell.median| / prev sell.median > 10%        |
    | account       | |Δ totalValidCount| / prev totalValidCount > 20% |
    | kind changed  | never (logged)                                  |

A zero baseline has no relative change: it refreshes only when the current
value is non-zero.
"""

from __future__ import annotations

import structlog

from src.config import settings
from src.models.market import AccountMarketSnapshot, ItemMarketSnapshot

logger = structlog.get_logger(__name__)

Snapshot = ItemMarketSnapshot | AccountMarketSnapshot


def _relative_change(current: float, previous: float) -> float:
    return abs(current - previous) / previous


def should_refresh_narrative(
    previous: Snapshot | None,
    current: Snapshot,
    item_threshold: float | None = None,
    account_threshold: float | None = None,
) -> bool:
    """
    Compare the previous and current snapshot of a thread.

    Args:
        previous: Snapshot stored by the last run, or None.
        current: Snapshot computed by this run.
        item_threshold: Override for NARRATIVE_ITEM_MEDIAN_THRESHOLD.
        account_threshold: Override for NARRATIVE_ACCOUNT_COUNT_THRESHOLD.

    Returns:
        True when the narrative should be regenerated.
    """
    if previous is None:
        return True

    item_limit = (
        item_threshold if item_threshold is not None else settings.NARRATIVE_ITEM_MEDIAN_THRESHOLD
    )
    account_limit = (
        account_threshold
        if account_threshold is not None
        else settings.NARRATIVE_ACCOUNT_COUNT_THRESHOLD
    )

    if isinstance(current, ItemMarketSnapshot) and isinstance(previous, ItemMarketSnapshot):
        if previous.sell.median == 0:
            return current.sell.median != 0
        return _relative_change(current.sell.median, previous.sell.median) > item_limit

    if isinstance(current, AccountMarketSnapshot) and isinstance(previous, AccountMarketSnapshot):
        if previous.total_valid_count == 0:
            return current.total_valid_count != 0
        return (
            _relative_change(current.total_valid_count, previous.total_valid_count)
            > account_limit
        )

    logger.warning(
        "narrative_policy_kind_mismatch",
        previous_kind=previous.kind,
        current_kind=current.kind,
        source="narrative_policy",
    )
    return False
