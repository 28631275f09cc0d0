"""
Tests for `services/sale_tracking_service.py`.

Covers contract rules:
- Weak signals are ignored; flagged messages mark the conversation.
- sale_keywords_count never decreases; last_sale_keyword_at never moves back.
- A linked sale gets its evidence refreshed; its status is never touched.
- A sale whose conversation link failed is refreshed, not duplicated.
- Tracking failures are reported in the outcome, never raised.
"""

from __future__ import annotations

from datetime import timedelta

from conftest import T0, make_message
from domain.audit import AuditAction
from domain.commission import CommissionCalculator
from domain.conversation import ConversationSaleStatus
from domain.keywords import ConfidenceLevel
from domain.sale import SaleStatus
from domain.sale_updates import StatusChange
from repositories.filters import SaleQueryFilters
from repositories.memory_store import InMemorySalesStore
from services.sale_lifecycle_service import SaleLifecycleManager
from services.sale_tracking_service import SaleTrackingService


def test_unflagged_message_changes_nothing(store, tracker, website_conversation) -> None:
    outcome = tracker.track_message("conv-web", make_message("m3", "What's the price?"))

    assert outcome.flagged is False
    assert outcome.confidence_level is ConfidenceLevel.LOW
    assert store.get_conversation("conv-web") == website_conversation


def test_flagged_message_without_creation_threshold_marks_conversation_only(
    store, tracker, website_conversation
) -> None:
    message = make_message("m3", "I bought it and paid already", minutes=4)

    outcome = tracker.track_message("conv-web", message)

    conversation = store.get_conversation("conv-web")
    assert outcome.flagged is True
    assert outcome.sale_created is False
    assert outcome.sale_id is None
    assert conversation.has_potential_sale is True
    assert conversation.sale_status is ConversationSaleStatus.POTENTIAL
    assert conversation.sale_keywords_count == 2
    assert conversation.last_sale_keyword_at == message.timestamp
    assert conversation.sale_id is None


def test_keyword_count_and_timestamp_only_move_forward(store, tracker, website_conversation) -> None:
    tracker.track_message("conv-web", make_message("m3", "bought it, paid", minutes=10))
    # A delayed message with an older timestamp arrives afterwards.
    tracker.track_message("conv-web", make_message("m4", "paid by credit card", minutes=5))

    conversation = store.get_conversation("conv-web")
    assert conversation.sale_keywords_count == 4
    assert conversation.last_sale_keyword_at == T0 + timedelta(minutes=10)


def test_strong_signal_creates_one_potential_sale(store, tracker, website_conversation) -> None:
    first = tracker.track_message("conv-web", make_message("m3", "payment sent", minutes=2))
    second = tracker.track_message("conv-web", make_message("m4", "order confirmed", minutes=3))

    assert first.sale_created is True
    assert second.sale_created is False
    assert second.evidence_updated is True
    assert second.sale_id == first.sale_id
    assert store.get_conversation("conv-web").sale_id == first.sale_id

    _, total = store.list_sales(SaleQueryFilters())
    assert total == 1


def test_detection_refreshes_evidence_without_touching_status(
    store, tracker, manager, admin, website_conversation
) -> None:
    sale = manager.create_manual("conv-web", "80", admin)
    manager.change_status(sale.sale_id, StatusChange(SaleStatus.VERIFIED, "receipt"), admin)
    audit_before = store.list_audit_entries(sale.sale_id)

    message = make_message("m3", "tracking number is 1Z999", minutes=6)
    store.add_message("conv-web", message)
    outcome = tracker.track_message("conv-web", message)

    assert outcome.evidence_updated is True
    stored = store.get_sale(sale.sale_id)
    assert stored.status is SaleStatus.VERIFIED
    assert store.get_conversation("conv-web").sale_status is ConversationSaleStatus.VERIFIED
    evidence = store.get_evidence(sale.sale_id)
    assert ("tracking number", "m3") in [m.key for m in evidence.keywords_found]
    assert "m3" in evidence.message_ids
    assert store.list_audit_entries(sale.sale_id) == audit_before


def test_rejected_sale_lets_detection_create_a_new_one(store, tracker, manager, admin, website_conversation) -> None:
    rejected = manager.create_manual("conv-web", "80", admin)
    manager.change_status(rejected.sale_id, StatusChange(SaleStatus.REJECTED, "test order"), admin)

    outcome = tracker.track_message("conv-web", make_message("m3", "payment received", minutes=2))

    assert outcome.sale_created is True
    assert outcome.sale_id != rejected.sale_id
    assert store.get_sale(rejected.sale_id).status is SaleStatus.REJECTED


def test_unknown_conversation_is_reported_not_raised(tracker) -> None:
    outcome = tracker.track_message("missing", make_message("m1", "payment received"))

    assert outcome.flagged is True
    assert outcome.error is not None
    assert "missing" in outcome.error


class BrokenStore:
    """Store double whose conversation lookup always fails."""

    def get_conversation(self, conversation_id):
        raise RuntimeError("database unavailable")


def test_store_failure_is_logged_and_reported(detector, manager, caplog) -> None:
    tracker = SaleTrackingService(BrokenStore(), detector, manager)

    with caplog.at_level("ERROR"):
        outcome = tracker.track_message("conv-web", make_message("m1", "order placed"))

    assert outcome.error == "database unavailable"
    assert outcome.sale_created is False
    assert any("Sale tracking failed" in r.getMessage() for r in caplog.records)


class UnlinkableStore(InMemorySalesStore):
    """The first conversation write that sets the sale link fails."""

    def __init__(self) -> None:
        super().__init__()
        self.link_failures = 1

    def update_conversation_sale_info(self, conversation_id, changes) -> None:
        if self.link_failures and "sale_id" in changes:
            self.link_failures -= 1
            raise RuntimeError("conversations table unavailable")
        super().update_conversation_sale_info(conversation_id, changes)


def test_sale_whose_link_failed_is_not_duplicated(detector, clock, website_conversation) -> None:
    store = UnlinkableStore()
    store.add_conversation(website_conversation)
    tracker = SaleTrackingService(
        store, detector, SaleLifecycleManager(store, CommissionCalculator(), detector, clock=clock)
    )

    first = tracker.track_message("conv-web", make_message("m3", "payment sent", minutes=2))
    second = tracker.track_message("conv-web", make_message("m4", "order confirmed", minutes=3))

    orphan = store.get_sale_by_conversation("conv-web")
    assert first.error == "conversations table unavailable"
    assert second.sale_created is False
    assert second.evidence_updated is True
    assert second.sale_id == orphan.sale_id
    assert [e.action for e in store.list_audit_entries(orphan.sale_id)] == [AuditAction.CREATED]

    _, total = store.list_sales(SaleQueryFilters())
    assert total == 1
