from src.engine.classifier import (
    detect_trade,
    detect_trade_intent,
    has_high_likelihood_trade_pattern,
    parse_price,
)
from src.engine.narrative_policy import should_refresh_narrative
from src.engine.snapshot import compute_snapshot, compute_trend
from src.engine.stats import median, percentile

__all__ = [
    "compute_snapshot",
    "compute_trend",
    "detect_trade",
    "detect_trade_intent",
    "has_high_likelihood_trade_pattern",
    "median",
    "parse_price",
    "percentile",
    "should_refresh_narrative",
]
