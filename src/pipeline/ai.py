"""
ONPOST Analytics — AI Collaborators (Anthropic)

Two black-box text-completion uses:

- Trade classifier: fallback for posts the rule-based parser is unsure about.
- Narrative generator: 2-3 sentence market insight from snapshot metrics.

SECURITY: the narrative prompt is built from aggregate metrics only; raw post
bodies never reach the narrative model.

Both raise AIError on any failure. Callers decide what to fall back to.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Protocol

import anthropic
import structlog
from pydantic import ValidationError

from src.config import Currency, MarketType, TradeStatus, settings
from src.models.market import AccountMarketSnapshot, ItemMarketSnapshot, TradeRecord
from src.utils.clock import to_epoch_ms
from src.utils.currency import format_price, to_usd

logger = structlog.get_logger(__name__)

Snapshot = ItemMarketSnapshot | AccountMarketSnapshot

_FENCE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)

PARSE_SYSTEM_PROMPT = """You are a trade post analyzer. Analyze forum posts and extract trade information.
Return ONLY a valid JSON object with this exact structure:
{
  "isTrade": boolean,
  "intent": "WTS" | "WTB" | "WTT" | null,
  "displayPrice": string or null (the raw price as written),
  "normalizedPrice": number or null (price converted to base currency unit),
  "currency": "IDR" | "USD",
  "unit": "pcs" | "bundle" | "account",
  "accountFeatures": object of boolean flags or null
}

Price conversion rules:
- "50rb" or "50k" = 50000 (IDR)
- "1.5jt" or "1,5jt" = 1500000 (IDR)
- "1.500.000" = 1500000 (IDR)
- "$10" or "10 USD" = 10 (USD)

Trade intent keywords:
- WTS/SELL/JUAL/DIJUAL/S> = "WTS"
- WTB/BUY/BELI/CARI/B> = "WTB"
- WTT/TRADE/TUKAR/T> = "WTT\""""

NARRATIVE_SYSTEM_PROMPT = (
    "You are a market analyst. Provide brief, data-driven insights. "
    "Always express prices in USD."
)


class AIError(Exception):
    """An AI collaborator could not produce a usable answer."""


class TradeClassifier(Protocol):
    async def classify(self, body: str) -> TradeRecord | None:
        ...


class NarrativeGenerator(Protocol):
    async def narrate(
        self,
        market_type: MarketType | None,
        current: Snapshot,
        previous: Snapshot | None = None,
    ) -> str:
        ...


class _AnthropicBase:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: Any | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.ANTHROPIC_API_KEY
        self._model = model
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            if not self._api_key:
                raise AIError("ANTHROPIC_API_KEY is not configured")
            self._client = anthropic.AsyncAnthropic(
                api_key=self._api_key,
                timeout=settings.AI_TIMEOUT_SECONDS,
            )
        return self._client

    async def _complete(
        self,
        system: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        client = self._get_client()
        try:
            response = await client.messages.create(
                model=self._model,
                system=system,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise AIError(f"AI request failed: {e}") from e

        try:
            return response.content[0].text.strip()
        except (IndexError, AttributeError) as e:
            raise AIError("AI response had no text content") from e


class AnthropicTradeClassifier(_AnthropicBase):
    """Extracts a TradeRecord from a post body with an LLM."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: Any | None = None,
    ) -> None:
        super().__init__(api_key, model or settings.AI_PARSE_MODEL_ID, client)

    async def classify(self, body: str) -> TradeRecord | None:
        """
        Classify a post body.

        Returns:
            A TradeRecord stamped ACTIVE with AI_PARSE_CONFIDENCE, or None
            when the model says the post is not a trade.

        Raises:
            AIError: missing key, API failure, or unparseable output.
        """
        text = await self._complete(
            PARSE_SYSTEM_PROMPT,
            f"Analyze this post:\n\n{body}",
            max_tokens=settings.AI_PARSE_MAX_TOKENS,
            temperature=0.1,
        )

        try:
            data = json.loads(_FENCE.sub("", text).strip())
        except json.JSONDecodeError as e:
            raise AIError(f"AI returned invalid JSON: {e}") from e

        if not isinstance(data, dict) or not data.get("isTrade"):
            logger.debug("ai_classified_not_trade", source="ai")
            return None

        try:
            record = TradeRecord(
                is_trade=True,
                intent=data.get("intent"),
                status=TradeStatus.ACTIVE,
                display_price=data.get("displayPrice") or "",
                normalized_price=data.get("normalizedPrice"),
                currency=data.get("currency") or Currency.IDR.value,
                unit=data.get("unit") or settings.DEFAULT_UNIT,
                parse_confidence=settings.AI_PARSE_CONFIDENCE,
                parser_version=f"{settings.PARSER_VERSION}-ai",
                parsed_at=to_epoch_ms(datetime.now(timezone.utc)),
                account_features=data.get("accountFeatures"),
            )
        except ValidationError as e:
            raise AIError(f"AI returned an invalid trade record: {e}") from e

        logger.info(
            "ai_trade_classified",
            intent=record.intent.value if record.intent else None,
            normalized_price=record.normalized_price,
            currency=record.currency,
            source="ai",
        )
        return record


def _usd_whole(amount: float | None) -> int:
    """Snapshot prices are IDR; prompts show whole USD."""
    usd = to_usd(amount or 0, Currency.IDR.value)
    return int(usd.to_integral_value()) if usd else 0


def build_narrative_prompt(
    market_type: MarketType | None,
    current: Snapshot,
    previous: Snapshot | None = None,
) -> str:
    """Metrics-only prompt for the narrative model."""
    if isinstance(current, ItemMarketSnapshot):
        label = (
            "PHYSICAL ITEMS MARKET"
            if market_type == MarketType.PHYSICAL_ITEM
            else "GENERAL MARKETPLACE"
            if market_type == MarketType.GENERAL
            else "ITEM MARKET"
        )
        lines = [
            f"Generate a brief market insight (2-3 sentences) for this {label}:",
            "",
            "Current:",
            f"- Sell: ${_usd_whole(current.sell.median)} USD median ({current.sell.count} listings)",
            f"- Buy: ${_usd_whole(current.buy.median)} USD median ({current.buy.count} listings)",
            f"- Sell range (P10-P90): {format_price(current.sell.p10, Currency.IDR.value)}"
            f" to {format_price(current.sell.p90, Currency.IDR.value)}",
            f"- Spread: ${_usd_whole(current.spread)} USD",
            f"- Trend: {current.trend.value}",
        ]
        if isinstance(previous, ItemMarketSnapshot):
            median_change = _usd_whole(current.sell.median) - _usd_whole(previous.sell.median)
            volume_change = current.total_valid_count - previous.total_valid_count
            lines += [
                "",
                f"Changes: Median {'+' if median_change > 0 else ''}${median_change}, "
                f"Volume {'+' if volume_change > 0 else ''}{volume_change}",
            ]
        lines += ["", "Be concise and data-driven. Always use USD for prices."]
        return "\n".join(lines)

    bands = {}
    for name in ("budget", "mid", "high", "premium"):
        band = getattr(current.bands, name)
        bands[name] = {"median": _usd_whole(band.median), "count": band.count}
    drivers = ", ".join(current.top_value_drivers) or "N/A"
    return "\n".join(
        [
            "Generate a brief market insight (2-3 sentences) for this ACCOUNT MARKET:",
            "",
            f"- Total: {current.total_valid_count} listings",
            f"- Demand Pressure: {current.demand_pressure * 100:.0f}%",
            f"- Bands: {json.dumps(bands)}",
            f"- Value Drivers: {drivers}",
            "",
            "Focus on tier activity and demand vs supply. "
            "Always use USD for prices. Be concise.",
        ]
    )


class AnthropicNarrativeGenerator(_AnthropicBase):
    """Writes the thread's market narrative from snapshot metrics."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: Any | None = None,
    ) -> None:
        super().__init__(api_key, model or settings.AI_NARRATIVE_MODEL_ID, client)

    async def narrate(
        self,
        market_type: MarketType | None,
        current: Snapshot,
        previous: Snapshot | None = None,
    ) -> str:
        try:
            prompt = build_narrative_prompt(market_type, current, previous)
        except (ArithmeticError, TypeError, ValueError) as e:
            raise AIError(f"Could not build narrative prompt: {e}") from e

        narrative = await self._complete(
            NARRATIVE_SYSTEM_PROMPT,
            prompt,
            max_tokens=settings.AI_NARRATIVE_MAX_TOKENS,
            temperature=0.7,
        )
        if not narrative:
            raise AIError("AI returned an empty narrative")

        logger.info(
            "ai_narrative_generated",
            market_type=market_type.value if market_type else None,
            length=len(narrative),
            source="ai",
        )
        return narrative
