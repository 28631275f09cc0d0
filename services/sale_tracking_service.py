"""
Sale tracking for relayed messages.

Runs the keyword detector over each message as it is sent or received and,
when the message is a strong enough purchase signal:
- marks the conversation as a potential sale and counts the keywords,
- refreshes the evidence of the sale the conversation already links, or
- creates a potential sale when the signal is strong enough and no sale exists.

This is a best-effort side channel. Failures are logged and reported in the
returned outcome, never raised, so that message delivery is never blocked by
commission bookkeeping. Detection never changes an existing sale's status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional, Tuple
from uuid import UUID

from domain.conversation import ConversationSaleStatus, Message, sale_info_changes
from domain.errors import NotFoundError
from domain.evidence import matches_for_message
from domain.keywords import ConfidenceLevel, KeywordDetector
from repositories.store import SalesStore
from services.sale_lifecycle_service import SaleLifecycleManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TrackingOutcome:
    flagged: bool
    keywords: Tuple[str, ...] = ()
    confidence_level: Optional[ConfidenceLevel] = None
    sale_id: Optional[UUID] = None
    sale_created: bool = False
    evidence_updated: bool = False
    error: Optional[str] = None


class SaleTrackingService:
    def __init__(
        self,
        store: SalesStore,
        detector: KeywordDetector,
        lifecycle: SaleLifecycleManager,
    ) -> None:
        self._store = store
        self._detector = detector
        self._lifecycle = lifecycle

    def track_message(self, conversation_id: str, message: Message) -> TrackingOutcome:
        detection = self._detector.detect(message.content)
        if not self._detector.should_flag(detection):
            return TrackingOutcome(
                flagged=False,
                keywords=detection.keywords,
                confidence_level=detection.confidence_level,
            )

        outcome = TrackingOutcome(
            flagged=True,
            keywords=detection.keywords,
            confidence_level=detection.confidence_level,
        )

        try:
            conversation = self._store.get_conversation(conversation_id)
            if conversation is None:
                raise NotFoundError(f"Conversation not found: {conversation_id}")

            last_keyword_at = message.timestamp
            if conversation.last_sale_keyword_at is not None:
                last_keyword_at = max(conversation.last_sale_keyword_at, message.timestamp)

            self._store.update_conversation_sale_info(
                conversation_id,
                sale_info_changes(
                    has_potential_sale=True,
                    sale_status=conversation.sale_status or ConversationSaleStatus.POTENTIAL,
                    sale_keywords_count=conversation.sale_keywords_count + len(detection.keywords),
                    last_sale_keyword_at=last_keyword_at,
                ),
            )

            sale = self._lifecycle.find_active_sale(conversation)
            if sale is not None:
                history = self._store.list_messages(conversation_id)
                self._lifecycle.refresh_evidence(sale, matches_for_message(detection, message), history)
                outcome = replace(outcome, sale_id=sale.sale_id, evidence_updated=True)
            elif self._detector.should_create_sale(detection):
                history = self._store.list_messages(conversation_id)
                created = self._lifecycle.create_from_detection(conversation, detection, message, history)
                outcome = replace(outcome, sale_id=created.sale_id, sale_created=True)

            logger.info(
                "Sale keywords detected",
                extra={
                    "conversation_id": conversation_id,
                    "message_id": message.message_id,
                    "keywords": list(detection.keywords),
                    "confidence_level": detection.confidence_level.value if detection.confidence_level else None,
                    "sale_id": str(outcome.sale_id) if outcome.sale_id else None,
                    "sale_created": outcome.sale_created,
                },
            )
            return outcome

        except Exception as exc:
            logger.exception(
                "Sale tracking failed; message delivery is unaffected",
                extra={"conversation_id": conversation_id, "message_id": message.message_id},
            )
            return replace(outcome, error=str(exc))


__all__ = [
    "SaleTrackingService",
    "TrackingOutcome",
]
