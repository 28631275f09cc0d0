"""
Sale Lifecycle Manager.

Single entry point for every Sale mutation: creation (keyword-detected or
manually marked), status transitions, amount edits and notes edits.

Transition rules:
- Any status may move to any other status; nothing is terminal, so rejected
  or verified sales can be revisited.
- Moving to a status different from the current one requires a non-blank
  reason. Re-applying the current status is a no-op.
- verified stamps verified_at / verified_by; disputed stamps dispute_reason /
  disputed_at / disputed_by.
- rejected clears the conversation's sale_status and sale_id. Any other status
  is mirrored onto the conversation (re-linking it if the link was cleared).
- If the conversation already links a *different* sale the write is refused
  with ConsistencyError.

Write ordering (two-phase, not atomic):
1. Sale insert or update
2. Audit entries appended
3. Evidence (on creation) and the conversation sale-tracking update

Step 3 runs even when step 2 fails, and a failure in step 3 never skips step
2. The audit append runs only after the state change is stored and is
retried; if it still fails, AuditTrailError is raised and the unwritten entry
is logged at ERROR with its full payload so it can be reconciled. An audit
entry is never written for a change that was not stored.

A conversation has at most one non-rejected sale. The check follows the
conversation's link and also the most recent sale recorded for the
conversation, so a sale whose link write failed still blocks a second one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from domain.audit import AuditAction, SaleAuditLogEntry, SaleSnapshot
from domain.commission import DEFAULT_INSTAGRAM_PREFIX, CommissionCalculator, channel_for_contact
from domain.conversation import Conversation, ConversationSaleStatus, Message, sale_info_changes
from domain.errors import AuditTrailError, ConsistencyError, NotFoundError, ValidationError
from domain.evidence import (
    DEFAULT_EVIDENCE_WINDOW,
    KeywordMatch,
    SaleEvidence,
    build_evidence,
    find_keyword_matches,
    matches_for_message,
    merge_evidence,
)
from domain.keywords import KeywordDetectionResult, KeywordDetector
from domain.money import require_non_negative_amount, round_money
from domain.sale import (
    SYSTEM_ACTOR,
    UNKNOWN_REP_NAME,
    Actor,
    DetectionMethod,
    RepInfo,
    Sale,
    SaleStatus,
)
from domain.sale_updates import (
    REASON_REQUIRED_MESSAGE,
    AmountChange,
    NotesChange,
    SaleChange,
    StatusChange,
)
from domain.time import require_utc_timestamp
from repositories.filters import SaleQueryFilters
from repositories.sale_audit_repository import audit_entry_to_row
from repositories.store import SalesStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

AUDIT_APPEND_ATTEMPTS = 3


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class SaleDetails:
    sale: Sale
    evidence: Optional[SaleEvidence]
    audit_logs: List[SaleAuditLogEntry]


class SaleLifecycleManager:
    def __init__(
        self,
        store: SalesStore,
        calculator: CommissionCalculator,
        detector: KeywordDetector,
        *,
        evidence_window: int = DEFAULT_EVIDENCE_WINDOW,
        instagram_prefix: str = DEFAULT_INSTAGRAM_PREFIX,
        clock: Clock = utc_now,
    ) -> None:
        if evidence_window < 1:
            raise ValueError("evidence_window must be >= 1")
        self._store = store
        self._calculator = calculator
        self._detector = detector
        self._evidence_window = evidence_window
        self._instagram_prefix = instagram_prefix
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_sale(self, sale_id: UUID) -> Sale:
        sale = self._store.get_sale(sale_id)
        if sale is None:
            raise NotFoundError(f"Sale not found: {sale_id}")
        return sale

    def get_sale_details(self, sale_id: UUID) -> SaleDetails:
        sale = self.get_sale(sale_id)
        return SaleDetails(
            sale=sale,
            evidence=self._store.get_evidence(sale_id),
            audit_logs=self._store.list_audit_entries(sale_id),
        )

    def list_sales(self, filters: SaleQueryFilters) -> Tuple[List[Sale], int]:
        return self._store.list_sales(filters)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_from_detection(
        self,
        conversation: Conversation,
        detection: KeywordDetectionResult,
        message: Message,
        history: Sequence[Message],
    ) -> Sale:
        """
        Create a potential sale for a conversation flagged by keyword detection.

        The amount is unknown at this point and recorded as 0.00; an admin sets
        it later through `change_amount`.
        """

        if not detection.found:
            raise ValidationError("Cannot create a sale from a detection without keywords")
        self._require_unlinked(conversation)

        now = self._now()
        sale = self._new_sale(
            conversation,
            sale_amount=Decimal("0.00"),
            status=SaleStatus.POTENTIAL,
            detection_method=DetectionMethod.KEYWORD,
            sale_date=now,
            now=now,
            detected_keywords=detection.keywords,
        )
        evidence = build_evidence(
            evidence_id=uuid4(),
            sale_id=sale.sale_id,
            conversation_id=conversation.conversation_id,
            keyword_matches=matches_for_message(detection, message),
            messages=self._with_message(history, message),
            now=now,
            window=self._evidence_window,
        )
        reason = "Detected keywords: " + ", ".join(detection.keywords)
        self._persist_new_sale(sale, evidence, actor=SYSTEM_ACTOR, reason=reason, now=now)
        return sale

    def create_manual(
        self,
        conversation_id: str,
        sale_amount: Any,
        actor: Actor,
        *,
        product_details: Optional[str] = None,
        sale_date: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Sale:
        """Record a sale marked by an admin or rep; it starts as pending review."""

        amount = require_non_negative_amount(sale_amount)
        if amount == 0:
            raise ValidationError("sale_amount must be > 0")
        if sale_date is not None:
            require_utc_timestamp("sale_date", sale_date)

        conversation = self._store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation not found: {conversation_id}")
        self._require_unlinked(conversation)

        now = self._now()
        history = self._store.list_messages(conversation_id)
        matches = find_keyword_matches(self._detector, history)
        sale = self._new_sale(
            conversation,
            sale_amount=round_money(amount),
            status=SaleStatus.PENDING,
            detection_method=DetectionMethod.MANUAL,
            sale_date=sale_date or now,
            now=now,
            detected_keywords=tuple(dict.fromkeys(m.keyword for m in matches)),
            product_details=product_details or None,
            notes=notes or None,
            marked_by=actor,
        )
        evidence = build_evidence(
            evidence_id=uuid4(),
            sale_id=sale.sale_id,
            conversation_id=conversation_id,
            keyword_matches=matches,
            messages=history,
            now=now,
            window=self._evidence_window,
        )
        self._persist_new_sale(sale, evidence, actor=actor, reason="Manual sale marking", now=now)
        return sale

    def refresh_evidence(
        self,
        sale: Sale,
        matches: Sequence[KeywordMatch],
        history: Sequence[Message],
    ) -> SaleEvidence:
        """
        Merge newly detected keywords into the sale's evidence.

        Never touches the sale's status: a late keyword detection must not
        undo a reviewed decision.
        """

        now = self._now()
        existing = self._store.get_evidence(sale.sale_id)
        if existing is None:
            evidence = build_evidence(
                evidence_id=uuid4(),
                sale_id=sale.sale_id,
                conversation_id=sale.conversation_id,
                keyword_matches=matches,
                messages=history,
                now=now,
                window=self._evidence_window,
            )
        else:
            evidence = merge_evidence(existing, matches, history, now=now, window=self._evidence_window)
        self._store.save_evidence(evidence)
        return evidence

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def change_status(self, sale_id: UUID, change: StatusChange, actor: Actor) -> Sale:
        return self.apply(sale_id, [change], actor)

    def change_amount(self, sale_id: UUID, change: AmountChange, actor: Actor) -> Sale:
        return self.apply(sale_id, [change], actor)

    def update_notes(self, sale_id: UUID, change: NotesChange, actor: Actor) -> Sale:
        return self.apply(sale_id, [change], actor)

    def apply(self, sale_id: UUID, changes: Sequence[SaleChange], actor: Actor) -> Sale:
        """
        Apply one admin edit (one or more variants) to a sale.

        Every variant is validated against the current sale before anything is
        written. Returns the sale as stored afterwards.
        """

        if not changes:
            raise ValidationError("Nothing to update: provide status, sale_amount or notes")

        current = self.get_sale(sale_id)
        now = self._now()

        updated = current
        entries: List[SaleAuditLogEntry] = []
        status_changed = False

        for change in changes:
            before = updated
            if isinstance(change, StatusChange):
                if change.status is updated.status:
                    continue
                if not change.reason:
                    raise ValidationError(REASON_REQUIRED_MESSAGE)
                updated = updated.with_status(change.status, actor=actor, reason=change.reason, at=now)
                entries.append(
                    self._audit_entry(
                        before, updated, AuditAction.for_status(change.status), actor, change.reason, now
                    )
                )
                status_changed = True
            elif isinstance(change, AmountChange):
                amount = round_money(change.sale_amount)
                if amount == updated.sale_amount:
                    continue
                # The stored rate is reused; it was fixed when the sale was created.
                commission = self._calculator.compute_commission(amount, updated.commission_rate)
                updated = updated.with_amount(amount, commission, at=now)
                entries.append(
                    self._audit_entry(before, updated, AuditAction.AMOUNT_CHANGED, actor, change.reason, now)
                )
            elif isinstance(change, NotesChange):
                if change.notes == updated.notes:
                    continue
                updated = updated.with_notes(change.notes, at=now)
            else:
                raise ValidationError(f"Unsupported sale change: {type(change).__name__}")

        if updated == current:
            return current

        conversation_update = self._conversation_update(updated) if status_changed else None

        self._store.save_sale(updated)
        try:
            for entry in entries:
                self._append_audit(entry)
        finally:
            if conversation_update is not None:
                self._store.update_conversation_sale_info(updated.conversation_id, conversation_update)

        logger.info(
            "Sale updated",
            extra={
                "sale_id": str(updated.sale_id),
                "previous_status": current.status.value,
                "status": updated.status.value,
                "previous_sale_amount": str(current.sale_amount),
                "sale_amount": str(updated.sale_amount),
                "performed_by": actor.uid,
            },
        )
        return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        now = self._clock()
        require_utc_timestamp("now", now)
        return now

    @staticmethod
    def _with_message(history: Sequence[Message], message: Message) -> List[Message]:
        if any(m.message_id == message.message_id for m in history):
            return list(history)
        return [*history, message]

    def find_active_sale(self, conversation: Conversation) -> Optional[Sale]:
        """The conversation's non-rejected sale, linked or not, if any."""

        if conversation.sale_id is not None:
            linked = self._store.get_sale(conversation.sale_id)
            if linked is not None and linked.status is not SaleStatus.REJECTED:
                return linked
        latest = self._store.get_sale_by_conversation(conversation.conversation_id)
        if latest is not None and latest.status is not SaleStatus.REJECTED:
            return latest
        return None

    def _require_unlinked(self, conversation: Conversation) -> None:
        active = self.find_active_sale(conversation)
        if active is not None:
            raise ValidationError(
                f"Conversation {conversation.conversation_id} already has an active sale: {active.sale_id}"
            )

    def _resolve_rep(self, conversation: Conversation) -> RepInfo:
        rep = self._store.find_rep_by_phone(conversation.rep_phone_number)
        if rep is not None:
            return RepInfo(name=rep.name, phone_number=conversation.rep_phone_number, rep_id=rep.rep_id)
        return RepInfo(name=UNKNOWN_REP_NAME, phone_number=conversation.rep_phone_number)

    def _new_sale(
        self,
        conversation: Conversation,
        *,
        sale_amount: Decimal,
        status: SaleStatus,
        detection_method: DetectionMethod,
        sale_date: datetime,
        now: datetime,
        detected_keywords: Tuple[str, ...] = (),
        product_details: Optional[str] = None,
        notes: Optional[str] = None,
        marked_by: Optional[Actor] = None,
    ) -> Sale:
        channel = channel_for_contact(conversation.user_mobile_number, self._instagram_prefix)
        rate = self._calculator.rate_for_channel(channel)
        return Sale(
            sale_id=uuid4(),
            conversation_id=conversation.conversation_id,
            customer_name=conversation.customer_name,
            customer_phone=conversation.user_mobile_number,
            customer_instagram=conversation.user_instagram_handle or None,
            channel=channel,
            sale_amount=sale_amount,
            commission_rate=rate,
            commission_amount=self._calculator.compute_commission(sale_amount, rate),
            status=status,
            detection_method=detection_method,
            rep_info=self._resolve_rep(conversation),
            sale_date=sale_date,
            notes=notes,
            product_details=product_details,
            detected_keywords=detected_keywords,
            marked_by=marked_by.ref() if marked_by is not None else None,
            created_at=now,
            updated_at=now,
        )

    def _persist_new_sale(
        self,
        sale: Sale,
        evidence: SaleEvidence,
        *,
        actor: Actor,
        reason: str,
        now: datetime,
    ) -> None:
        self._store.insert_sale(sale)
        try:
            self._append_audit(
                SaleAuditLogEntry(
                    entry_id=uuid4(),
                    sale_id=sale.sale_id,
                    action=AuditAction.CREATED,
                    performed_by=actor,
                    timestamp=now,
                    previous_value=None,
                    new_value=SaleSnapshot(status=sale.status, sale_amount=sale.sale_amount),
                    reason=reason,
                )
            )
        finally:
            self._store.save_evidence(evidence)
            self._store.update_conversation_sale_info(
                sale.conversation_id,
                sale_info_changes(
                    has_potential_sale=True,
                    sale_status=ConversationSaleStatus.for_sale_status(sale.status),
                    sale_id=sale.sale_id,
                ),
            )
        logger.info(
            "Sale created",
            extra={
                "sale_id": str(sale.sale_id),
                "conversation_id": sale.conversation_id,
                "channel": sale.channel.value,
                "status": sale.status.value,
                "detection_method": sale.detection_method.value,
                "commission_rate": str(sale.commission_rate),
                "performed_by": actor.uid,
            },
        )

    def _conversation_update(self, sale: Sale) -> Optional[Dict[str, Any]]:
        """
        Sale-tracking fields to write on the sale's conversation.

        Raises ConsistencyError when the conversation links another sale.
        """

        conversation = self._store.get_conversation(sale.conversation_id)
        if conversation is None:
            logger.warning(
                "Conversation missing for sale; skipping conversation update",
                extra={"sale_id": str(sale.sale_id), "conversation_id": sale.conversation_id},
            )
            return None

        if conversation.sale_id is not None and conversation.sale_id != sale.sale_id:
            raise ConsistencyError(
                f"Conversation {conversation.conversation_id} is linked to sale "
                f"{conversation.sale_id}, not {sale.sale_id}"
            )

        if sale.status is SaleStatus.REJECTED:
            return sale_info_changes(sale_status=None, sale_id=None)
        return sale_info_changes(
            has_potential_sale=True,
            sale_status=ConversationSaleStatus.for_sale_status(sale.status),
            sale_id=sale.sale_id,
        )

    @staticmethod
    def _audit_entry(
        before: Sale,
        after: Sale,
        action: AuditAction,
        actor: Actor,
        reason: Optional[str],
        now: datetime,
    ) -> SaleAuditLogEntry:
        return SaleAuditLogEntry(
            entry_id=uuid4(),
            sale_id=after.sale_id,
            action=action,
            performed_by=actor,
            timestamp=now,
            previous_value=SaleSnapshot(status=before.status, sale_amount=before.sale_amount),
            new_value=SaleSnapshot(status=after.status, sale_amount=after.sale_amount),
            reason=reason,
        )

    def _append_audit(self, entry: SaleAuditLogEntry) -> None:
        last_error: Optional[Exception] = None
        for attempt in range(1, AUDIT_APPEND_ATTEMPTS + 1):
            try:
                self._store.append_audit_entry(entry)
                return
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Sale audit append failed",
                    extra={"sale_id": str(entry.sale_id), "attempt": attempt, "error": str(exc)},
                )

        payload = audit_entry_to_row(entry)
        logger.error(
            "Sale audit entry could not be written; state change is stored without it",
            extra={"sale_id": str(entry.sale_id), "audit_entry": payload},
        )
        raise AuditTrailError(
            f"Audit entry for sale {entry.sale_id} could not be written",
            sale_id=entry.sale_id,
            payload=payload,
        ) from last_error


__all__ = [
    "AUDIT_APPEND_ATTEMPTS",
    "SaleDetails",
    "SaleLifecycleManager",
    "utc_now",
]
