"""
ONPOST Analytics — Configuration & Constants

Every threshold, cap, and heuristic used by the analytics job lives here.
No hardcoded values in business logic.

Usage:
    from src.config import settings
"""

from __future__ import annotations

from enum import Enum

from pydantic_settings import BaseSettings


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TradeIntent(str, Enum):
    """Trade intent tag attached to a post."""
    WTS = "WTS"   # want to sell
    WTB = "WTB"   # want to buy
    WTT = "WTT"   # want to trade


class TradeStatus(str, Enum):
    """Lifecycle status of a trade post."""
    ACTIVE = "ACTIVE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"
    FULFILLED = "FULFILLED"
    EXPIRED = "EXPIRED"


class Currency(str, Enum):
    IDR = "IDR"
    USD = "USD"
    UNKNOWN = "UNKNOWN"


class MarketType(str, Enum):
    """Thread market classification."""
    ITEM_MARKET = "ITEM_MARKET"
    ACCOUNT_MARKET = "ACCOUNT_MARKET"
    PHYSICAL_ITEM = "PHYSICAL_ITEM"
    GENERAL = "GENERAL"
    UNKNOWN = "UNKNOWN"


# Market types summarised with sell/buy price bands
ITEM_LIKE_MARKETS = frozenset(
    {MarketType.ITEM_MARKET, MarketType.PHYSICAL_ITEM, MarketType.GENERAL}
)


class Trend(str, Enum):
    RISING = "RISING"
    STABLE = "STABLE"
    DECLINING = "DECLINING"


class ScanMode(str, Enum):
    NEWEST = "NEWEST"
    OLDEST = "OLDEST"


class SnapshotKind(str, Enum):
    """Discriminant for the snapshot variants."""
    ITEM_MARKET = "ITEM_MARKET"
    ACCOUNT_MARKET = "ACCOUNT_MARKET"


class ThreadOutcome(str, Enum):
    """Per-thread terminal state of an analytics run."""
    PROCESSED = "PROCESSED"             # counted, still below threshold
    UPDATED = "UPDATED"                 # snapshot recomputed
    SKIPPED_RECENT = "SKIPPED_RECENT"   # debounce
    SKIPPED_LOCKED = "SKIPPED_LOCKED"   # lease held by another run
    DEADLINE = "DEADLINE"               # run deadline reached before this thread
    ERROR = "ERROR"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Central configuration for ONPOST Analytics.

    Loads from environment variables with fallback defaults.
    """

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # -----------------------------------------------------------------------
    # Forum API (data source and sink)
    # -----------------------------------------------------------------------
    FORUMS_BASE_URL: str = "https://foru.ms"
    FORUMS_API_KEY: str = ""
    FORUMS_TIMEOUT_SECONDS: float = 30.0
    FORUMS_MAX_RETRIES: int = 3
    FORUMS_BASE_BACKOFF_SECONDS: float = 1.0

    # -----------------------------------------------------------------------
    # Trigger surface
    # -----------------------------------------------------------------------
    CRON_SECRET: str = ""                   # Empty secret rejects every trigger
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # -----------------------------------------------------------------------
    # AI collaborators (Anthropic)
    # -----------------------------------------------------------------------
    ANTHROPIC_API_KEY: str = ""
    AI_PARSE_MODEL_ID: str = "claude-3-5-haiku-latest"
    AI_NARRATIVE_MODEL_ID: str = "claude-3-5-haiku-latest"
    AI_TIMEOUT_SECONDS: float = 30.0
    AI_PARSE_MAX_TOKENS: int = 500
    AI_NARRATIVE_MAX_TOKENS: int = 200

    # -----------------------------------------------------------------------
    # Database (lease store). Empty URL falls back to the in-memory store.
    # -----------------------------------------------------------------------
    DATABASE_URL: str = ""

    # -----------------------------------------------------------------------
    # Trade classification
    # -----------------------------------------------------------------------
    PARSER_VERSION: str = "1.0.0"
    HIGH_CONFIDENCE_THRESHOLD: float = 0.7      # Skip re-parse at or above this
    INTENT_BASE_CONFIDENCE: float = 0.5
    PRICE_CONFIDENCE_BONUS: float = 0.3
    PRICE_PATTERN_CONFIDENCE: float = 0.85
    AI_PARSE_CONFIDENCE: float = 0.9
    DEFAULT_UNIT: str = "pcs"

    # -----------------------------------------------------------------------
    # Run orchestration
    # -----------------------------------------------------------------------
    THREAD_LIST_LIMIT: int = 20
    MAX_THREADS_PER_RUN: int = 10
    DEBOUNCE_MINUTES: int = 5
    INCREMENTAL_SCAN_MAX_POSTS: int = 100
    RESCAN_INTERVAL_MINUTES: int = 60           # Rolling-window rescan at most hourly
    DEFAULT_WINDOW_DAYS: int = 30
    DEFAULT_THRESHOLD_VALID: int = 10
    ANALYTICS_VERSION: str = "1.0.0"

    # Lease + deadlines
    LEASE_TTL_SECONDS: int = 300
    THREAD_TIMEOUT_SECONDS: float = 60.0
    RUN_DEADLINE_SECONDS: float = 240.0

    # -----------------------------------------------------------------------
    # Snapshot statistics
    # -----------------------------------------------------------------------
    TREND_MIN_SELL_TRADES: int = 10
    TREND_CHANGE_THRESHOLD: float = 0.05        # ±5% between recent and older halves
    TOP_VALUE_DRIVERS: int = 3

    # -----------------------------------------------------------------------
    # Narrative refresh policy
    # -----------------------------------------------------------------------
    NARRATIVE_ITEM_MEDIAN_THRESHOLD: float = 0.10
    NARRATIVE_ACCOUNT_COUNT_THRESHOLD: float = 0.20

    # -----------------------------------------------------------------------
    # Currency display (narrative prompts are always in USD)
    # -----------------------------------------------------------------------
    IDR_TO_USD_RATE: int = 15800
    MISLABELLED_USD_CEILING: int = 10000        # "USD" above this is really IDR


# Singleton instance
settings = Settings()
