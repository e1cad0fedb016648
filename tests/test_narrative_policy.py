"""
Tests for the narrative refresh policy (src/engine/narrative_policy.py).
"""

from __future__ import annotations

from src.config import Trend
from src.engine.narrative_policy import should_refresh_narrative
from src.models.market import (
    AccountBands,
    AccountMarketSnapshot,
    ItemMarketSnapshot,
    PriceBand,
    ValueBand,
)


def _item(sell_median: float) -> ItemMarketSnapshot:
    return ItemMarketSnapshot(
        sell=PriceBand(median=sell_median, p10=0, p90=0, count=10),
        buy=PriceBand(),
        total_valid_count=10,
        spread=sell_median,
        trend=Trend.STABLE,
    )


def _account(total: int) -> AccountMarketSnapshot:
    band = ValueBand(median=0, count=0, range=(0, 0))
    return AccountMarketSnapshot(
        bands=AccountBands(budget=band, mid=band, high=band, premium=band),
        demand_pressure=0,
        total_valid_count=total,
    )


def test_no_previous_snapshot_refreshes() -> None:
    assert should_refresh_narrative(None, _item(100))


def test_item_median_change_above_ten_percent() -> None:
    """100 → 115 is a 15% move."""
    assert should_refresh_narrative(_item(100), _item(115))


def test_item_median_change_below_ten_percent() -> None:
    assert not should_refresh_narrative(_item(100), _item(105))


def test_item_median_drop_counts() -> None:
    assert should_refresh_narrative(_item(100), _item(80))


def test_item_exactly_ten_percent_does_not_refresh() -> None:
    assert not should_refresh_narrative(_item(1000), _item(1100))


def test_item_zero_previous_median_refreshes() -> None:
    assert should_refresh_narrative(_item(0), _item(50))


def test_item_zero_median_unchanged_does_not_refresh() -> None:
    """A buy-only market keeps a sell median of 0; nothing moved."""
    assert not should_refresh_narrative(_item(0), _item(0))


def test_account_count_change_above_twenty_percent() -> None:
    assert should_refresh_narrative(_account(10), _account(13))


def test_account_count_change_below_twenty_percent() -> None:
    assert not should_refresh_narrative(_account(10), _account(11))


def test_account_zero_previous_count_refreshes() -> None:
    assert should_refresh_narrative(_account(0), _account(12))


def test_account_zero_count_unchanged_does_not_refresh() -> None:
    assert not should_refresh_narrative(_account(0), _account(0))


def test_mismatched_kinds_do_not_refresh() -> None:
    assert not should_refresh_narrative(_item(100), _account(10))
    assert not should_refresh_narrative(_account(10), _item(100))


def test_thresholds_overridable() -> None:
    assert should_refresh_narrative(_item(100), _item(105), item_threshold=0.01)
    assert should_refresh_narrative(_account(10), _account(11), account_threshold=0.05)
