"""
ONPOST Analytics — Trade Record Builder

Turns a post into the TradeRecord stored at ``extendedData.trade``.

Resolution order:
1. Existing record with confidence >= HIGH_CONFIDENCE_THRESHOLD and a price
   is kept as-is (no classifier, no AI, no write).
2. Posts without both an intent keyword and a price indicator are skipped.
3. Rule-based classifier.
4. AI classifier when the rule-based result is missing, weak, or unpriced.
   An AI trade with a price replaces the rule-based record wholesale.
   AI failures keep the rule-based result.
"""

from __future__ import annotations

import structlog
from pydantic import ValidationError

from src.config import Currency, TradeStatus, settings
from src.engine.classifier import detect_trade, has_high_likelihood_trade_pattern
from src.models.market import ForumPost, TradeRecord
from src.pipeline.ai import AIError, TradeClassifier
from src.pipeline.forums import ForumsGateway
from src.utils.clock import Clock, SystemClock, to_epoch_ms

logger = structlog.get_logger(__name__)


def stored_record(post: ForumPost) -> TradeRecord | None:
    """
    The trade record already stored on a post.

    A record that no longer validates is treated as absent so the post is
    reclassified and the record overwritten.
    """
    try:
        return post.trade
    except ValidationError as e:
        logger.warning(
            "trade_malformed_record",
            post_id=post.id,
            error=str(e),
            source="trade_builder",
        )
        return None


class TradeRecordBuilder:
    """Classifies posts and writes their trade records back to the forum."""

    def __init__(
        self,
        ai_classifier: TradeClassifier | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._ai = ai_classifier
        self._clock = clock or SystemClock()

    def _rule_based(self, body: str) -> TradeRecord | None:
        detection = detect_trade(body)
        if not detection.is_trade:
            return None

        price = detection.price
        return TradeRecord(
            is_trade=True,
            intent=detection.intent,
            status=TradeStatus.ACTIVE,
            display_price=price.raw if price else "",
            normalized_price=price.normalized if price else None,
            currency=(price.currency if price else Currency.UNKNOWN).value,
            unit=settings.DEFAULT_UNIT,
            parse_confidence=detection.confidence,
            parser_version=settings.PARSER_VERSION,
            parsed_at=to_epoch_ms(self._clock.now()),
        )

    async def build(self, post: ForumPost) -> TradeRecord | None:
        """
        Resolve the trade record for a post.

        Returns the existing record when it is already confident, a new
        record when one was derived, or None when the post is not a trade.
        """
        return await self._resolve(post, stored_record(post))

    async def _resolve(self, post: ForumPost, existing: TradeRecord | None) -> TradeRecord | None:
        if existing is not None and existing.is_confident:
            return existing

        if not has_high_likelihood_trade_pattern(post.body):
            return None

        record = self._rule_based(post.body)

        needs_ai = (
            record is None
            or record.parse_confidence < settings.HIGH_CONFIDENCE_THRESHOLD
            or record.normalized_price is None
        )
        if needs_ai and self._ai is not None:
            try:
                ai_record = await self._ai.classify(post.body)
            except AIError as e:
                logger.warning(
                    "trade_ai_fallback_failed",
                    post_id=post.id,
                    error=str(e),
                    source="trade_builder",
                )
            else:
                if (
                    ai_record is not None
                    and ai_record.is_trade
                    and ai_record.normalized_price is not None
                ):
                    record = ai_record

        return record

    async def process_post(self, post: ForumPost, forums: ForumsGateway) -> TradeRecord | None:
        """Build the record for a post and persist it when it changed."""
        existing = stored_record(post)
        record = await self._resolve(post, existing)

        if record is None or not record.is_trade or record == existing:
            return record

        await forums.update_post_extended_data(post.id, {"trade": record.to_wire()})

        # keep the in-memory post consistent with what was written
        post.extended_data = {**(post.extended_data or {}), "trade": record.to_wire()}

        logger.info(
            "trade_record_written",
            post_id=post.id,
            intent=record.intent.value if record.intent else None,
            normalized_price=record.normalized_price,
            confidence=record.parse_confidence,
            parser_version=record.parser_version,
            source="trade_builder",
        )
        return record
