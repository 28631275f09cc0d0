"""
Tests for the Supabase repositories.

The Supabase client is replaced by a recording fake so that the row mapping
and the query chain can be checked without a database.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, List, Tuple
from uuid import UUID

import pytest

from conftest import T0
from domain.audit import AuditAction, SaleAuditLogEntry, SaleSnapshot
from domain.conversation import ConversationSaleStatus, MessageSender, sale_info_changes
from domain.evidence import KeywordMatch, SaleEvidence, TranscriptEntry
from domain.sale import (
    Actor,
    ActorRef,
    DetectionMethod,
    RepInfo,
    Sale,
    SaleChannel,
    SaleStatus,
    UserRole,
)
from repositories.conversation_repository import ConversationRepository, sale_info_to_columns
from repositories.filters import MAX_ROWS, SaleQueryFilters
from repositories.sale_audit_repository import SaleAuditRepository, audit_entry_to_row
from repositories.sale_evidence_repository import SaleEvidenceRepository, evidence_to_row
from repositories.sale_repository import SaleRepository, row_to_sale, sale_to_row

SALE_ID = UUID("00000000-0000-0000-0000-0000000000b1")


class FakeQuery:
    """Records every builder call; `execute` returns the canned response."""

    def __init__(self, table: str, response: Any) -> None:
        self.table = table
        self.calls: List[Tuple[str, tuple, dict]] = []
        self._response = response

    def __getattr__(self, name: str):
        def _call(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return _call

    def execute(self):
        return self._response

    def called(self, name: str) -> List[tuple]:
        return [(args, kwargs) for call, args, kwargs in self.calls if call == name]


class FakeClient:
    def __init__(self, data=None, error=None, count=None) -> None:
        self.response = SimpleNamespace(data=data, error=error, count=count)
        self.queries: List[FakeQuery] = []

    def table(self, name: str) -> FakeQuery:
        query = FakeQuery(name, self.response)
        self.queries.append(query)
        return query

    @property
    def last(self) -> FakeQuery:
        return self.queries[-1]


def _sale(**overrides) -> Sale:
    fields = dict(
        sale_id=SALE_ID,
        conversation_id="conv-web",
        customer_name="Jane Doe",
        customer_phone="+15551234567",
        channel=SaleChannel.WEBSITE,
        sale_amount=Decimal("100.00"),
        commission_rate=Decimal("0.10"),
        commission_amount=Decimal("10.00"),
        status=SaleStatus.VERIFIED,
        detection_method=DetectionMethod.KEYWORD,
        rep_info=RepInfo(name="Sam Rep", phone_number="+15557654321", rep_id="rep_1"),
        sale_date=T0,
        detected_keywords=("payment sent", "sold"),
        verified_at=T0,
        verified_by=ActorRef(uid="admin-1", name="Ada Admin"),
        created_at=T0,
        updated_at=T0,
    )
    fields.update(overrides)
    return Sale(**fields)


# ----------------------------------------------------------------------
# Row mapping
# ----------------------------------------------------------------------

def test_sale_row_round_trip() -> None:
    sale = _sale()

    row = sale_to_row(sale)

    assert row["sale_amount"] == "100.00"
    assert row["sale_date_utc"] == "2025-03-14T15:00:00+00:00"
    assert row["verified_by"] == {"uid": "admin-1", "name": "Ada Admin"}
    assert row["disputed_by"] is None
    assert row_to_sale(row) == sale


def test_row_to_sale_accepts_numeric_columns_and_z_timestamps() -> None:
    row = sale_to_row(_sale(verified_at=None, verified_by=None))
    row.update(sale_amount=100, commission_rate=0.1, commission_amount=10, sale_date_utc="2025-03-14T15:00:00Z")

    sale = row_to_sale(row)

    assert sale.commission_rate == Decimal("0.1")
    assert sale.sale_date == T0


def test_audit_row_uses_actor_and_snapshots() -> None:
    entry = SaleAuditLogEntry(
        entry_id=UUID("00000000-0000-0000-0000-0000000000a9"),
        sale_id=SALE_ID,
        action=AuditAction.AMOUNT_CHANGED,
        performed_by=Actor(uid="admin-1", name="Ada Admin", email="ada@example.com", role=UserRole.SUPER_ADMIN),
        timestamp=T0,
        previous_value=SaleSnapshot(SaleStatus.VERIFIED, Decimal("100.00")),
        new_value=SaleSnapshot(SaleStatus.VERIFIED, Decimal("150.00")),
    )

    row = audit_entry_to_row(entry)

    assert row["action"] == "amount_changed"
    assert row["performed_by"]["role"] == "super_admin"
    assert row["previous_value"] == {"status": "verified", "sale_amount": "100.00"}
    assert row["new_value"] == {"status": "verified", "sale_amount": "150.00"}


# ----------------------------------------------------------------------
# SaleRepository
# ----------------------------------------------------------------------

def test_get_by_id_maps_first_row() -> None:
    client = FakeClient(data=[sale_to_row(_sale())])

    sale = SaleRepository(client).get_by_id(SALE_ID)

    assert sale == _sale()
    assert client.last.table == "sales"
    assert client.last.called("eq") == [(("sale_id", str(SALE_ID)), {})]


def test_get_by_id_returns_none_when_missing() -> None:
    assert SaleRepository(FakeClient(data=[])).get_by_id(SALE_ID) is None


def test_get_by_conversation_reads_the_newest_sale() -> None:
    client = FakeClient(data=[sale_to_row(_sale())])

    sale = SaleRepository(client).get_by_conversation("conv-web")

    assert sale == _sale()
    assert client.last.called("eq") == [(("conversation_id", "conv-web"), {})]
    assert client.last.called("order") == [(("created_at_utc",), {"desc": True})]
    assert client.last.called("limit") == [((1,), {})]


def test_errors_become_runtime_errors() -> None:
    repo = SaleRepository(FakeClient(error="permission denied"))

    with pytest.raises(RuntimeError, match="Failed to get sale"):
        repo.get_by_id(SALE_ID)
    with pytest.raises(RuntimeError, match="Failed to create sale"):
        repo.insert(_sale())


def test_save_updates_by_id_without_overwriting_creation_time() -> None:
    client = FakeClient(data=[])

    SaleRepository(client).save(_sale())

    [(args, _)] = client.last.called("update")
    assert "sale_id" not in args[0]
    assert "created_at_utc" not in args[0]
    assert args[0]["status"] == "verified"
    assert client.last.called("eq") == [(("sale_id", str(SALE_ID)), {})]


def test_list_sales_applies_filters_order_and_range() -> None:
    client = FakeClient(data=[sale_to_row(_sale())], count=42)
    filters = SaleQueryFilters.for_dates(
        date(2025, 3, 1),
        date(2025, 3, 31),
        channel=SaleChannel.WEBSITE,
        status=SaleStatus.VERIFIED,
        rep_phone_number="+15557654321",
        limit=50,
        offset=100,
    )

    sales, total = SaleRepository(client).list_sales(filters)

    query = client.last
    assert total == 42
    assert len(sales) == 1
    assert query.called("select") == [(("*",), {"count": "exact"})]
    assert query.called("gte") == [(("sale_date_utc", "2025-03-01T00:00:00+00:00"), {})]
    assert query.called("lt") == [(("sale_date_utc", "2025-04-01T00:00:00+00:00"), {})]
    assert ("channel", "website") in [args for args, _ in query.called("eq")]
    assert ("status", "verified") in [args for args, _ in query.called("eq")]
    assert ("rep_phone_number", "+15557654321") in [args for args, _ in query.called("eq")]
    assert query.called("order") == [(("sale_date_utc",), {"desc": True})]
    assert query.called("range") == [((100, 149), {})]


def test_list_sales_without_limit_reads_up_to_max_rows() -> None:
    client = FakeClient(data=[])

    sales, total = SaleRepository(client).list_sales(SaleQueryFilters())

    assert (sales, total) == ([], 0)
    assert client.last.called("range") == [((0, MAX_ROWS - 1), {})]
    assert client.last.called("gte") == []


# ----------------------------------------------------------------------
# SaleAuditRepository
# ----------------------------------------------------------------------

def test_audit_append_is_insert_only() -> None:
    client = FakeClient(data=[])
    entry = SaleAuditLogEntry(
        entry_id=UUID("00000000-0000-0000-0000-0000000000a9"),
        sale_id=SALE_ID,
        action=AuditAction.VERIFIED,
        performed_by=Actor(uid="admin-1", name="Ada Admin", email="", role=UserRole.ADMIN),
        timestamp=T0,
    )

    SaleAuditRepository(client).append(entry)

    assert client.last.table == "sale_audit_logs"
    assert [call for call, _, _ in client.last.calls] == ["insert"]


# ----------------------------------------------------------------------
# ConversationRepository
# ----------------------------------------------------------------------

def test_sale_info_columns() -> None:
    columns = sale_info_to_columns(
        sale_info_changes(
            has_potential_sale=True,
            sale_status=ConversationSaleStatus.VERIFIED,
            sale_id=SALE_ID,
            last_sale_keyword_at=datetime(2025, 3, 14, 15, 0, tzinfo=timezone.utc),
        )
    )

    assert columns == {
        "has_potential_sale": True,
        "sale_status": "verified",
        "sale_id": str(SALE_ID),
        "last_sale_keyword_at_utc": "2025-03-14T15:00:00+00:00",
    }


def test_clearing_the_link_writes_nulls() -> None:
    assert sale_info_to_columns(sale_info_changes(sale_status=None, sale_id=None)) == {
        "sale_status": None,
        "sale_id": None,
    }


def test_only_sale_tracking_columns_are_writable() -> None:
    with pytest.raises(ValueError):
        sale_info_to_columns({"customer_first_name": "Mallory"})


def test_conversation_row_is_mapped() -> None:
    client = FakeClient(
        data=[
            {
                "conversation_id": "conv-ig",
                "user_mobile_number": "instagram-jane.doe",
                "rep_phone_number": "+15550000000",
                "customer_first_name": "Jane",
                "user_instagram_handle": "jane.doe",
                "has_potential_sale": True,
                "sale_status": "pending",
                "sale_keywords_count": 3,
                "last_sale_keyword_at_utc": "2025-03-14T15:00:00Z",
                "sale_id": str(SALE_ID),
            }
        ]
    )

    conversation = ConversationRepository(client).get_by_id("conv-ig")

    assert conversation.sale_status is ConversationSaleStatus.PENDING
    assert conversation.sale_id == SALE_ID
    assert conversation.last_sale_keyword_at == T0
    assert conversation.customer_name == "Jane"


def test_messages_are_read_oldest_first() -> None:
    client = FakeClient(
        data=[{"message_id": "m1", "sender": "USER", "content": "hi", "timestamp_utc": "2025-03-14T15:00:00+00:00"}]
    )

    [message] = ConversationRepository(client).list_messages("conv-web")

    assert message.timestamp == T0
    assert client.last.table == "messages"
    assert client.last.called("order") == [(("timestamp_utc",), {})]


def test_rep_lookup() -> None:
    client = FakeClient(data=[{"rep_id": "rep_1", "name": "Sam Rep", "phone_number": "+15557654321"}])

    rep = ConversationRepository(client).find_rep_by_phone("+15557654321")

    assert rep == RepInfo(name="Sam Rep", phone_number="+15557654321", rep_id="rep_1")
    assert ConversationRepository(FakeClient(data=[])).find_rep_by_phone("") is None


# ----------------------------------------------------------------------
# SaleEvidenceRepository
# ----------------------------------------------------------------------

def test_evidence_is_upserted_per_sale() -> None:
    evidence = SaleEvidence(
        evidence_id=UUID("00000000-0000-0000-0000-0000000000e1"),
        sale_id=SALE_ID,
        conversation_id="conv-web",
        keywords_found=(KeywordMatch("sold", "m1", T0, "sold!"),),
        transcript_snapshot=(TranscriptEntry("m1", MessageSender.USER, "sold!", T0),),
        created_at=T0,
    )
    client = FakeClient(data=[evidence_to_row(evidence)])
    repo = SaleEvidenceRepository(client)

    repo.save(evidence)
    [(args, kwargs)] = client.last.called("upsert")
    assert kwargs == {"on_conflict": "sale_id"}
    assert args[0]["message_ids"] == ["m1"]

    assert repo.get_by_sale(SALE_ID) == evidence
