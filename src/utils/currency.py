"""
ONPOST Analytics — Price Display Conversion

Trade prices are stored in whatever currency the post used (mostly IDR).
Narratives and summaries always speak USD, so prices are converted at a
configured IDR/USD rate before they reach a prompt.

Legacy records sometimes carry IDR amounts labelled "USD"; any "USD" value
above MISLABELLED_USD_CEILING is treated as IDR.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

import structlog

from src.config import Currency, settings

logger = structlog.get_logger(__name__)

_CENTS = Decimal("0.01")
_ONE = Decimal("1")
_THOUSAND = Decimal("1000")


def to_usd(
    amount: float | Decimal | None,
    currency: str,
    rate: Decimal | None = None,
) -> Decimal | None:
    """
    Convert a stored price to USD.

    Args:
        amount: Normalized price, or None when the post gave no price.
        currency: Currency tag stored on the trade record.
        rate: IDR per USD (default: IDR_TO_USD_RATE).

    Returns:
        USD amount rounded to cents, or None when amount is None.

    Examples:
        >>> to_usd(158000, "IDR", Decimal("15800"))
        Decimal('10.00')
    """
    if amount is None:
        return None

    idr_per_usd = rate if rate is not None else Decimal(settings.IDR_TO_USD_RATE)
    if idr_per_usd <= 0:
        raise ValueError(f"rate must be positive, got {idr_per_usd}")

    value = Decimal(str(amount))
    if currency == Currency.IDR.value:
        value = value / idr_per_usd
    elif currency == Currency.USD.value and value > settings.MISLABELLED_USD_CEILING:
        logger.debug(
            "currency_mislabelled_usd",
            amount=str(value),
            source="currency",
        )
        value = value / idr_per_usd

    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def format_price(price: float | Decimal | None, currency: str) -> str:
    """
    Compact USD label for a stored price.

    "Negotiable" for no price, "$1.5k" style from 1,000 up, otherwise whole
    dollars (two decimals kept below $10, trailing zeros dropped).
    """
    usd = to_usd(price, currency)
    if usd is None:
        return "Negotiable"

    if usd >= _THOUSAND:
        thousands = (usd / _THOUSAND).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
        label = f"{thousands}".removesuffix(".0")
        return f"${label}k"

    if usd < Decimal("10"):
        label = f"{usd:.2f}".rstrip("0").rstrip(".")
        return f"${label}"

    return f"${usd.quantize(_ONE, rounding=ROUND_HALF_UP):,}"
