"""
Tests for the rule-based price / intent classifier (src/engine/classifier.py).

Covers:
- Intent detection and WTS → WTB → WTT priority
- Price patterns, currency tags, and pattern order
- Separator normalization (European vs US, thousand groups)
- High-likelihood gate
- Confidence scoring
"""

from __future__ import annotations

import pytest

from src.config import Currency, TradeIntent
from src.engine.classifier import (
    detect_trade,
    detect_trade_intent,
    has_high_likelihood_trade_pattern,
    normalize_number,
    parse_price,
)


# ---------------------------------------------------------------------------
# Intent detection
# ---------------------------------------------------------------------------


class TestDetectTradeIntent:
    @pytest.mark.parametrize(
        "body, expected",
        [
            ("WTS pedang legendaris", TradeIntent.WTS),
            ("dijual akun ML", TradeIntent.WTS),
            ("Selling my spare keys", TradeIntent.WTS),
            ("wtb skin langka", TradeIntent.WTB),
            ("cari joki rank", TradeIntent.WTB),
            ("LF cheap mount", TradeIntent.WTB),
            ("WTT pet for mount", TradeIntent.WTT),
            ("tukar item dong", TradeIntent.WTT),
        ],
    )
    def test_keywords(self, body: str, expected: TradeIntent) -> None:
        assert detect_trade_intent(body) == expected

    @pytest.mark.parametrize(
        "body, expected",
        [
            ("S> pedang 50rb", TradeIntent.WTS),
            ("B>akun sultan", TradeIntent.WTB),
            ("T> pet", TradeIntent.WTT),
        ],
    )
    def test_shorthand(self, body: str, expected: TradeIntent) -> None:
        assert detect_trade_intent(body) == expected

    def test_priority_beats_position(self) -> None:
        """WTB appears first in the text but WTS has priority."""
        assert detect_trade_intent("WTB armor, also WTS helmet") == TradeIntent.WTS

    def test_no_keyword(self) -> None:
        assert detect_trade_intent("halo semua, apa kabar?") is None

    def test_keyword_inside_word_does_not_match(self) -> None:
        assert detect_trade_intent("the buyer's remorse is real") is None


# ---------------------------------------------------------------------------
# Price extraction
# ---------------------------------------------------------------------------


class TestParsePrice:
    @pytest.mark.parametrize(
        "body, normalized, currency",
        [
            ("50rb", 50_000, Currency.IDR),
            ("1.5jt", 1_500_000, Currency.IDR),
            ("$10", 10, Currency.USD),
            ("1.500.000", 1_500_000, Currency.IDR),
            ("nego 2 juta", 2_000_000, Currency.IDR),
            ("1,5jt aja", 1_500_000, Currency.IDR),
            ("75 ribu", 75_000, Currency.IDR),
            ("150k", 150_000, Currency.IDR),
            ("10 usd", 10, Currency.USD),
            ("Rp 250.000", 250_000, Currency.IDR),
            ("harga: 150000", 150_000, Currency.IDR),
        ],
    )
    def test_known_patterns(self, body: str, normalized: float, currency: Currency) -> None:
        price = parse_price(body)
        assert price.normalized == normalized
        assert price.currency == currency
        assert price.confidence == 0.85

    def test_deterministic(self) -> None:
        assert parse_price("WTS 50rb") == parse_price("WTS 50rb")

    def test_usd_suffix_with_separators_beats_dollar_sign(self) -> None:
        """A formatted 'usd' amount is matched whole, not truncated at the separator."""
        price = parse_price("1,500.50 usd")
        assert price.normalized == 1500.5
        assert price.currency == Currency.USD

    def test_dollar_sign_with_thousand_groups(self) -> None:
        assert parse_price("$1,500").normalized == 1500

    def test_raw_keeps_matched_text(self) -> None:
        assert parse_price("WTS pedang 50rb nego").raw == "50rb"

    def test_no_price(self) -> None:
        price = parse_price("WTS pedang, DM aja")
        assert price.normalized is None
        assert price.currency == Currency.UNKNOWN
        assert price.raw == ""

    def test_zero_is_not_a_price(self) -> None:
        assert parse_price("0rb").normalized is None


class TestNormalizeNumber:
    @pytest.mark.parametrize(
        "literal, currency, expected",
        [
            ("1.500,50", Currency.IDR, 1500.5),     # European
            ("1,500.50", Currency.USD, 1500.5),     # US
            ("1.500.000", Currency.IDR, 1_500_000),  # thousand groups only
            ("2,000", Currency.IDR, 2000),          # single 3-digit group
            ("9,99", Currency.USD, 9.99),           # USD cents
            ("1.5", Currency.IDR, 1.5),
            ("12", Currency.IDR, 12),
        ],
    )
    def test_separators(self, literal: str, currency: Currency, expected: float) -> None:
        assert normalize_number(literal, currency) == pytest.approx(expected)


# ---------------------------------------------------------------------------
# High-likelihood gate
# ---------------------------------------------------------------------------


class TestHighLikelihoodGate:
    def test_intent_and_price(self) -> None:
        assert has_high_likelihood_trade_pattern("WTS pedang 50rb")

    def test_intent_without_price_indicator(self) -> None:
        assert not has_high_likelihood_trade_pattern("WTS akun sultan, DM ya")

    def test_price_without_intent(self) -> None:
        assert not has_high_likelihood_trade_pattern("harganya cuma 50rb kemarin")

    def test_rupiah_prefix_counts_as_price(self) -> None:
        assert has_high_likelihood_trade_pattern("jual skin Rp150000")

    def test_formatted_number_counts_as_price(self) -> None:
        assert has_high_likelihood_trade_pattern("WTB akun 1.500.000")


# ---------------------------------------------------------------------------
# detect_trade
# ---------------------------------------------------------------------------


class TestDetectTrade:
    def test_intent_and_price(self) -> None:
        """0.5 base + 0.3 bonus, below the pattern's 0.85 cap."""
        detection = detect_trade("WTS pedang 50rb")
        assert detection.is_trade
        assert detection.intent == TradeIntent.WTS
        assert detection.price.normalized == 50_000
        assert detection.confidence == pytest.approx(0.8)

    def test_intent_without_price_keeps_base_confidence(self) -> None:
        detection = detect_trade("WTB akun sultan")
        assert detection.is_trade
        assert detection.price.normalized is None
        assert detection.confidence == 0.5

    def test_no_intent_is_not_a_trade(self) -> None:
        detection = detect_trade("cuma 50rb kok")
        assert not detection.is_trade
        assert detection.intent is None
        assert detection.confidence == 0

    def test_never_raises_on_odd_input(self) -> None:
        assert not detect_trade("").is_trade
        assert detect_trade("WTS ₿ 💎 ,,,...").is_trade
