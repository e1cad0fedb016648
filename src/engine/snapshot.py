"""
ONPOST Analytics — Snapshot Computer

Turns the valid trades of a thread's rolling window into a statistical
snapshot. Input lists are in collection order (newest first).

Item markets (ITEM_MARKET, PHYSICAL_ITEM, GENERAL):
    sell/buy bands = median, p10, p90, count of WTS / WTB prices
    spread         = sell.median - buy.median (may be negative)
    trend          = recent half vs older half of sell prices

Account markets (everything else):
    bands           = budget / mid / high / premium split on this run's quartiles
    demand_pressure = WTB count / WTS count (0 when there are no WTS trades)
    top drivers     = most frequent truthy accountFeatures keys
"""

from __future__ import annotations

import math
from collections import Counter
from typing import Sequence

import structlog

from src.config import ITEM_LIKE_MARKETS, MarketType, TradeIntent, Trend, settings
from src.engine.stats import median, percentile
from src.models.market import (
    AccountBands,
    AccountMarketSnapshot,
    ItemMarketSnapshot,
    PriceBand,
    TradeRecord,
    ValueBand,
)

logger = structlog.get_logger(__name__)


def _price_band(prices: list[float]) -> PriceBand:
    return PriceBand(
        median=median(prices),
        p10=percentile(prices, 10),
        p90=percentile(prices, 90),
        count=len(prices),
    )


def _prices_for(trades: Sequence[TradeRecord], intent: TradeIntent) -> list[float]:
    return [
        t.normalized_price
        for t in trades
        if t.intent == intent and t.normalized_price is not None
    ]


def compute_trend(
    sell_prices: Sequence[float],
    min_trades: int | None = None,
    change_threshold: float | None = None,
) -> Trend:
    """
    Compare the recent half of sell prices against the older half.

    Args:
        sell_prices: WTS prices newest first.
        min_trades: Below this many sell trades the trend is STABLE
            (default: TREND_MIN_SELL_TRADES).
        change_threshold: Relative change that counts as movement
            (default: TREND_CHANGE_THRESHOLD).

    Returns:
        RISING when median(recent) is more than the threshold above
        median(older), DECLINING when more than the threshold below,
        STABLE otherwise.
    """
    minimum = min_trades if min_trades is not None else settings.TREND_MIN_SELL_TRADES
    threshold = (
        change_threshold if change_threshold is not None else settings.TREND_CHANGE_THRESHOLD
    )

    if len(sell_prices) < minimum:
        return Trend.STABLE

    half = len(sell_prices) // 2
    recent_median = median(sell_prices[:half])
    older_median = median(sell_prices[half:])

    if older_median == 0:
        return Trend.STABLE

    change = (recent_median - older_median) / older_median

    if change > threshold:
        trend = Trend.RISING
    elif change < -threshold:
        trend = Trend.DECLINING
    else:
        trend = Trend.STABLE

    logger.debug(
        "trend_computed",
        recent_median=recent_median,
        older_median=older_median,
        change=round(change, 6),
        trend=trend.value,
        source="snapshot",
    )
    return trend


def compute_item_snapshot(trades: Sequence[TradeRecord]) -> ItemMarketSnapshot:
    """Sell/buy price bands, spread, and trend for an item market."""
    sell_prices = _prices_for(trades, TradeIntent.WTS)
    buy_prices = _prices_for(trades, TradeIntent.WTB)

    sell = _price_band(sell_prices)
    buy = _price_band(buy_prices)

    return ItemMarketSnapshot(
        sell=sell,
        buy=buy,
        total_valid_count=len(trades),
        spread=sell.median - buy.median,
        trend=compute_trend(sell_prices),
    )


def top_value_drivers(
    trades: Sequence[TradeRecord],
    limit: int | None = None,
) -> list[str]:
    """
    Most frequent truthy accountFeatures keys.

    Ties are broken alphabetically so the result does not depend on the
    order in which posts were collected.
    """
    n = limit if limit is not None else settings.TOP_VALUE_DRIVERS
    counts: Counter[str] = Counter()
    for trade in trades:
        for key, value in (trade.account_features or {}).items():
            if value:
                counts[key] += 1
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [key for key, _ in ranked[:n]]


def compute_account_snapshot(trades: Sequence[TradeRecord]) -> AccountMarketSnapshot:
    """
    Quartile value bands, demand pressure, and top value drivers.

    Band edges come from this run's quartiles, so a trade can move between
    bands from one run to the next even when its price is unchanged.
    """
    prices = [t.normalized_price for t in trades if t.normalized_price is not None]

    q1 = percentile(prices, 25)
    q2 = percentile(prices, 50)
    q3 = percentile(prices, 75)

    budget = [p for p in prices if p <= q1]
    mid = [p for p in prices if q1 < p <= q2]
    high = [p for p in prices if q2 < p <= q3]
    premium = [p for p in prices if p > q3]

    wtb_count = sum(1 for t in trades if t.intent == TradeIntent.WTB)
    wts_count = sum(1 for t in trades if t.intent == TradeIntent.WTS)

    return AccountMarketSnapshot(
        bands=AccountBands(
            budget=ValueBand(median=median(budget), count=len(budget), range=(0, q1)),
            mid=ValueBand(median=median(mid), count=len(mid), range=(q1, q2)),
            high=ValueBand(median=median(high), count=len(high), range=(q2, q3)),
            premium=ValueBand(
                median=median(premium), count=len(premium), range=(q3, math.inf)
            ),
        ),
        demand_pressure=wtb_count / wts_count if wts_count > 0 else 0,
        top_value_drivers=top_value_drivers(trades),
        total_valid_count=len(trades),
    )


def compute_snapshot(
    market_type: MarketType | None,
    trades: Sequence[TradeRecord],
) -> ItemMarketSnapshot | AccountMarketSnapshot:
    """Dispatch on market type: item-like markets get price bands, the rest quartile bands."""
    if market_type in ITEM_LIKE_MARKETS:
        snapshot: ItemMarketSnapshot | AccountMarketSnapshot = compute_item_snapshot(trades)
    else:
        snapshot = compute_account_snapshot(trades)

    logger.info(
        "snapshot_computed",
        market_type=market_type.value if market_type else None,
        kind=snapshot.kind,
        total_valid_count=snapshot.total_valid_count,
        source="snapshot",
    )
    return snapshot
