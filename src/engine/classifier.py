"""
ONPOST Analytics — Price / Intent Classifier

Pure rule-based classification of free-text trade posts. Indonesian slang and
English are both expected.

Intent detection (first match wins, fixed priority):
    WTS → WTB → WTT

Price extraction (first matching pattern wins, most specific first):
    | Pattern                      | Currency | Multiplier |
    |:-----------------------------|:---------|:-----------|
    | 10 usd / 1,500.50 dollars    | USD      | 1          |
    | $10 / $1,500                 | USD      | 1          |
    | 1.5jt / 2 juta               | IDR      | 1,000,000  |
    | 50rb / 50 ribu               | IDR      | 1,000      |
    | 50k                          | IDR      | 1,000      |
    | Rp 1.500.000 / 1,500,000     | IDR      | 1          |
    | harga: 150000 / @150000      | IDR      | 1          |

Confidence: 0.5 for a detected intent, +0.3 (capped at the price pattern's
own confidence) when a price was extracted. No intent means not a trade.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from src.config import Currency, TradeIntent, settings
from src.models.market import ParsedPrice, TradeDetection

logger = structlog.get_logger(__name__)

# Shorthand like "S> sword" or "B>acc": no word char right before the letter
_SHORTHAND = r"(?<!\w){letters}>"

_INTENT_PATTERNS: list[tuple[TradeIntent, re.Pattern[str]]] = [
    (
        TradeIntent.WTS,
        re.compile(
            r"\b(?:WTS|SELL|SELLING|JUAL|DIJUAL|FOR\s*SALE)\b|" + _SHORTHAND.format(letters="S"),
            re.IGNORECASE,
        ),
    ),
    (
        TradeIntent.WTB,
        re.compile(
            r"\b(?:WTB|BUY|BUYING|BELI|CARI|LOOKING\s*FOR|LF)\b|" + _SHORTHAND.format(letters="B"),
            re.IGNORECASE,
        ),
    ),
    (
        TradeIntent.WTT,
        re.compile(
            r"\b(?:WTT|TRADE|TRADING|TUKAR|SWAP)\b|" + _SHORTHAND.format(letters="T"),
            re.IGNORECASE,
        ),
    ),
]

# Gate for the expensive path: an intent keyword AND a price indicator
_HIGH_LIKELIHOOD_PATTERN = re.compile(
    r"\b(?:WTS|WTB|WTT|SELL|BUY|JUAL|BELI|DIJUAL|CARI)\b|" + _SHORTHAND.format(letters="[SBT]"),
    re.IGNORECASE,
)
_PRICE_INDICATOR_PATTERN = re.compile(
    r"\$\s*\d+"
    r"|\d+(?:[.,]\d+)?\s*(?:k|rb|ribu|jt|juta|m|million|usd|rp)\b"
    r"|\brp\.?\s*\d+"
    r"|\b\d{1,3}(?:[.,]\d{3})+\b",
    re.IGNORECASE,
)

# A number that may carry thousand groups and a 1-2 digit decimal part
_AMOUNT = r"(\d{1,3}(?:[.,]\d{3})+(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?)"


@dataclass(frozen=True)
class PricePattern:
    regex: re.Pattern[str]
    currency: Currency
    multiplier: int


PRICE_PATTERNS: tuple[PricePattern, ...] = (
    PricePattern(re.compile(_AMOUNT + r"\s*(?:usd|dollars?)\b", re.IGNORECASE), Currency.USD, 1),
    PricePattern(re.compile(r"\$\s*" + _AMOUNT, re.IGNORECASE), Currency.USD, 1),
    PricePattern(re.compile(r"(\d+(?:[.,]\d+)?)\s*(?:jt|juta)", re.IGNORECASE), Currency.IDR, 1_000_000),
    PricePattern(re.compile(r"(\d+(?:[.,]\d+)?)\s*(?:rb|ribu)", re.IGNORECASE), Currency.IDR, 1_000),
    PricePattern(re.compile(r"(\d+(?:[.,]\d+)?)\s*k\b", re.IGNORECASE), Currency.IDR, 1_000),
    PricePattern(
        re.compile(
            r"(?:rp\.?\s*)?(?<![\d.,])(\d{1,3}(?:[.,]\d{3})+)(?![.,]?\d)"
            r"(?!\s*(?:jt|juta|rb|ribu|k\b|usd|dollar|\$))",
            re.IGNORECASE,
        ),
        Currency.IDR,
        1,
    ),
    PricePattern(
        re.compile(r"(?:price|harga|@|\brp\.?)\s*:?\s*(\d+(?:[.,]\d+)?)", re.IGNORECASE),
        Currency.IDR,
        1,
    ),
)

_THOUSAND_GROUPED = re.compile(r"\d{1,3}(?:[.,]\d{3})+")


def normalize_number(num_str: str, currency: Currency) -> float | None:
    """
    Turn a matched numeric literal into a float, resolving separators.

    - Both '.' and ',' present: the later one is the decimal point
      (1.500,00 European vs 1,500.00 US).
    - Only 3-digit groups: separators are thousand grouping (1.500.000).
    - Single separator: 2 trailing digits → decimal for USD, exactly 3 →
      thousands, anything else → decimal.

    Returns None when the literal cannot be parsed.
    """
    if "." in num_str and "," in num_str:
        if num_str.rfind(",") > num_str.rfind("."):
            cleaned = num_str.replace(".", "").replace(",", ".")
        else:
            cleaned = num_str.replace(",", "")
    elif _THOUSAND_GROUPED.fullmatch(num_str):
        cleaned = num_str.replace(".", "").replace(",", "")
    else:
        decimal_match = re.search(r"[.,](\d+)$", num_str)
        if decimal_match and len(decimal_match.group(1)) == 2 and currency == Currency.USD:
            cleaned = num_str.replace(",", ".")
        elif decimal_match and len(decimal_match.group(1)) == 3:
            cleaned = num_str.replace(".", "").replace(",", "")
        else:
            cleaned = num_str.replace(",", ".")

    try:
        return float(cleaned)
    except ValueError:
        return None


def detect_trade_intent(body: str) -> TradeIntent | None:
    """Return the highest-priority intent present in the text, if any."""
    for intent, pattern in _INTENT_PATTERNS:
        if pattern.search(body):
            return intent
    return None


def parse_price(body: str) -> ParsedPrice:
    """
    Extract the first price in the text according to PRICE_PATTERNS order.

    Deterministic: the same body always yields the same ParsedPrice.
    Returns an empty ParsedPrice (normalized=None, UNKNOWN) when nothing matches.
    """
    for pattern in PRICE_PATTERNS:
        match = pattern.regex.search(body)
        if not match:
            continue

        value = normalize_number(match.group(1), pattern.currency)
        if value is None:
            continue

        value *= pattern.multiplier
        if value <= 0:
            continue

        return ParsedPrice(
            raw=match.group(0).strip(),
            normalized=value,
            currency=pattern.currency,
            confidence=settings.PRICE_PATTERN_CONFIDENCE,
        )

    return ParsedPrice()


def has_high_likelihood_trade_pattern(body: str) -> bool:
    """True only when the text carries both an intent keyword and a price indicator."""
    return bool(
        _HIGH_LIKELIHOOD_PATTERN.search(body) and _PRICE_INDICATOR_PATTERN.search(body)
    )


def detect_trade(body: str) -> TradeDetection:
    """
    Classify a post body. Never raises.

    Args:
        body: Raw post text.

    Returns:
        TradeDetection with is_trade=False and confidence 0 when no intent
        keyword is present; otherwise the intent, the parsed price, and the
        combined confidence.
    """
    intent = detect_trade_intent(body)
    if intent is None:
        return TradeDetection(is_trade=False, confidence=0.0)

    price = parse_price(body)
    confidence = settings.INTENT_BASE_CONFIDENCE
    if price.normalized is not None:
        confidence = min(confidence + settings.PRICE_CONFIDENCE_BONUS, price.confidence)

    logger.debug(
        "trade_detected",
        intent=intent.value,
        price=price.normalized,
        currency=price.currency.value,
        confidence=confidence,
        source="classifier",
    )
    return TradeDetection(is_trade=True, intent=intent, price=price, confidence=confidence)
