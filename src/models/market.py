"""
ONPOST Analytics — Market Domain Models

Pydantic models for everything the analytics job reads from and writes to the
forum's extended data. The wire format is camelCase with epoch-millisecond
timestamps, so every model uses an alias generator and is dumped with
``to_wire()``.

Snapshots are a tagged union on ``kind``. Snapshots persisted before the
discriminant existed are recognised by their ``sell`` / ``bands`` keys.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel

from src.config import (
    Currency,
    MarketType,
    ScanMode,
    SnapshotKind,
    TradeIntent,
    TradeStatus,
    Trend,
    settings,
)


class WireModel(BaseModel):
    """Base for camelCase models exchanged with the forum API."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Trade records
# ---------------------------------------------------------------------------


class ParsedPrice(WireModel):
    """Price extracted from free text by the rule-based parser."""

    raw: str = ""
    normalized: float | None = None
    currency: Currency = Currency.UNKNOWN
    confidence: float = 0.0


class TradeDetection(WireModel):
    """Classifier output before it is wrapped into a TradeRecord."""

    is_trade: bool
    intent: TradeIntent | None = None
    price: ParsedPrice | None = None
    confidence: float = 0.0


class TradeRecord(WireModel):
    """Trade metadata attached to a post's ``extendedData.trade``."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    is_trade: bool = True
    intent: TradeIntent | None = None
    status: TradeStatus = TradeStatus.ACTIVE
    display_price: str = ""
    normalized_price: float | None = None
    currency: str = Currency.UNKNOWN.value
    unit: str = "pcs"
    parse_confidence: float = 0.0
    parser_version: str = settings.PARSER_VERSION
    parsed_at: int = 0
    account_features: dict[str, Any] | None = None

    @property
    def is_valid(self) -> bool:
        """Counts toward validCount and statistics (window check is separate)."""
        return (
            self.is_trade
            and self.status == TradeStatus.ACTIVE
            and self.normalized_price is not None
        )

    @property
    def is_confident(self) -> bool:
        return (
            self.parse_confidence >= settings.HIGH_CONFIDENCE_THRESHOLD
            and self.normalized_price is not None
        )


# ---------------------------------------------------------------------------
# Forum entities
# ---------------------------------------------------------------------------


class ForumPost(WireModel):
    """Post as returned by the forum API (only the fields we use)."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: str
    body: str = ""
    created_at: datetime
    extended_data: dict[str, Any] | None = None

    @property
    def trade(self) -> TradeRecord | None:
        raw = (self.extended_data or {}).get("trade")
        if not raw:
            return None
        return TradeRecord.model_validate(raw)


class ForumThread(WireModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: str
    title: str = ""
    extended_data: dict[str, Any] | None = None

    @property
    def market(self) -> ThreadMarketState | None:
        raw = (self.extended_data or {}).get("market")
        if not raw:
            return None
        return ThreadMarketState.model_validate(raw)


class PostPage(WireModel):
    posts: list[ForumPost] = Field(default_factory=list)
    next_post_cursor: str | None = None


class ThreadPage(WireModel):
    threads: list[ForumThread] = Field(default_factory=list)
    next_thread_cursor: str | None = None


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class PriceBand(WireModel):
    median: float = 0.0
    p10: float = 0.0
    p90: float = 0.0
    count: int = 0


class ItemMarketSnapshot(WireModel):
    kind: Literal["ITEM_MARKET"] = "ITEM_MARKET"
    sell: PriceBand
    buy: PriceBand
    total_valid_count: int
    spread: float
    trend: Trend


class ValueBand(WireModel):
    median: float = 0.0
    count: int = 0
    range: tuple[float, float]

    @field_validator("range", mode="before")
    @classmethod
    def _unbounded_from_null(cls, v: Any) -> Any:
        # JSON has no infinity: an open upper bound travels as null
        if isinstance(v, (list, tuple)) and len(v) == 2 and v[1] is None:
            return (v[0], math.inf)
        return v

    @field_serializer("range")
    def _unbounded_to_null(self, v: tuple[float, float]) -> list[float | None]:
        return [v[0], None if math.isinf(v[1]) else v[1]]


class AccountBands(WireModel):
    budget: ValueBand
    mid: ValueBand
    high: ValueBand
    premium: ValueBand


class AccountMarketSnapshot(WireModel):
    kind: Literal["ACCOUNT_MARKET"] = "ACCOUNT_MARKET"
    bands: AccountBands
    demand_pressure: float
    top_value_drivers: list[str] = Field(default_factory=list, max_length=3)
    total_valid_count: int


MarketSnapshot = Annotated[
    Union[ItemMarketSnapshot, AccountMarketSnapshot],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Thread market state
# ---------------------------------------------------------------------------


class ScanCheckpoint(WireModel):
    """
    Resumption point for the incremental new-post scan.

    ``last_post_id_processed`` is the newest post observed by a previous run;
    it only ever moves forward to a post that was actually returned by the API.
    """

    mode: ScanMode = ScanMode.NEWEST
    cursor: str | None = None
    last_post_id_processed: str | None = None
    at: int = 0


class AnalyticsState(WireModel):
    locked: bool = True
    updated_at: int = 0
    snapshot: Optional[MarketSnapshot] = None
    narrative: str | None = None
    narrative_updated_at: int | None = None
    version: str = settings.ANALYTICS_VERSION

    @field_validator("snapshot", mode="before")
    @classmethod
    def _tag_legacy_snapshot(cls, v: Any) -> Any:
        if isinstance(v, dict) and "kind" not in v:
            if "sell" in v:
                return {**v, "kind": SnapshotKind.ITEM_MARKET.value}
            if "bands" in v:
                return {**v, "kind": SnapshotKind.ACCOUNT_MARKET.value}
        return v


class ThreadMarketState(WireModel):
    """``extendedData.market`` of a thread. Unknown keys are preserved."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    market_enabled: bool = False
    market_type_candidate: MarketType | None = None
    market_type_final: MarketType | None = None
    window_days: int = settings.DEFAULT_WINDOW_DAYS
    threshold_valid: int = settings.DEFAULT_THRESHOLD_VALID
    valid_count: int = 0
    last_window_cutoff_at: int = 0
    last_processed: ScanCheckpoint = Field(default_factory=ScanCheckpoint)
    analytics: AnalyticsState = Field(default_factory=AnalyticsState)

    @property
    def market_type(self) -> MarketType | None:
        return self.market_type_final or self.market_type_candidate
