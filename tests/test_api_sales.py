"""
Tests for the sales and message-tracking HTTP endpoints.

The store and services are swapped for in-memory instances through
`app.dependency_overrides`; identity comes from the forwarded auth headers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from api.dependencies import (
    get_lifecycle_manager,
    get_store,
    get_summary_service,
    get_tracking_service,
)
from api.main import app
from services.commission_summary_service import CommissionSummaryService
from services.csv_export_service import SALES_CSV_HEADER

SUPER_ADMIN = {
    "X-User-Uid": "admin-1",
    "X-User-Name": "Ada Admin",
    "X-User-Email": "ada@example.com",
    "X-User-Role": "super_admin",
}
REP = {"X-User-Uid": "rep-1", "X-User-Name": "Sam Rep", "X-User-Role": "rep"}


@pytest.fixture
def client(store, manager, tracker, clock, website_conversation):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_lifecycle_manager] = lambda: manager
    app.dependency_overrides[get_tracking_service] = lambda: tracker
    app.dependency_overrides[get_summary_service] = lambda: CommissionSummaryService(
        store, clock=lambda: datetime(2025, 3, 20, tzinfo=timezone.utc)
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


def _mark_sale(client, amount="100.00") -> str:
    response = client.post(
        "/api/v1/sales",
        json={"conversation_id": "conv-web", "sale_amount": amount, "notes": "card payment"},
        headers=SUPER_ADMIN,
    )
    assert response.status_code == 200, response.text
    return response.json()["sale_id"]


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# ----------------------------------------------------------------------
# Authorization
# ----------------------------------------------------------------------

def test_missing_identity_is_unauthorized(client) -> None:
    assert client.get("/api/v1/sales").status_code == 401


def test_unknown_role_is_forbidden(client) -> None:
    response = client.get("/api/v1/sales", headers={"X-User-Uid": "x", "X-User-Role": "system"})

    assert response.status_code == 403


def test_rep_cannot_review_or_list_sales(client) -> None:
    sale_id = _mark_sale(client)

    assert client.get("/api/v1/sales", headers=REP).status_code == 403
    response = client.put(
        f"/api/v1/sales/{sale_id}", json={"status": "verified", "reason": "ok"}, headers=REP
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "Insufficient permissions"


def test_rep_can_mark_a_sale(client) -> None:
    response = client.post(
        "/api/v1/sales",
        json={"conversation_id": "conv-web", "sale_amount": "80"},
        headers=REP,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["channel"] == "website"
    assert Decimal(body["commission_amount"]) == Decimal("8.00")


# ----------------------------------------------------------------------
# Create / read
# ----------------------------------------------------------------------

def test_create_rejects_zero_amount(client) -> None:
    response = client.post(
        "/api/v1/sales", json={"conversation_id": "conv-web", "sale_amount": "0"}, headers=SUPER_ADMIN
    )

    assert response.status_code == 400


def test_create_for_unknown_conversation_is_not_found(client) -> None:
    response = client.post(
        "/api/v1/sales", json={"conversation_id": "nope", "sale_amount": "10"}, headers=SUPER_ADMIN
    )

    assert response.status_code == 404


def test_get_sale_details(client) -> None:
    sale_id = _mark_sale(client)

    response = client.get(f"/api/v1/sales/{sale_id}", headers=SUPER_ADMIN)

    assert response.status_code == 200
    body = response.json()
    assert body["sale"]["sale_id"] == sale_id
    assert body["sale"]["status"] == "pending"
    assert body["evidence"]["conversation_id"] == "conv-web"
    assert [entry["action"] for entry in body["audit_logs"]] == ["created"]


def test_invalid_and_unknown_sale_ids(client) -> None:
    assert client.get("/api/v1/sales/not-a-uuid", headers=SUPER_ADMIN).status_code == 400
    assert client.get(f"/api/v1/sales/{uuid4()}", headers=SUPER_ADMIN).status_code == 404


def test_list_sales_with_filters(client) -> None:
    _mark_sale(client)

    everything = client.get("/api/v1/sales", headers=SUPER_ADMIN).json()
    websites = client.get("/api/v1/sales?channel=website&status=pending", headers=SUPER_ADMIN).json()
    instagram = client.get("/api/v1/sales?channel=instagram", headers=SUPER_ADMIN).json()

    assert everything["total"] == 1
    assert websites["total"] == 1
    assert instagram == {"sales": [], "total": 0}


def test_list_sales_rejects_unknown_channel(client) -> None:
    response = client.get("/api/v1/sales?channel=fax", headers=SUPER_ADMIN)

    assert response.status_code == 400


# ----------------------------------------------------------------------
# Update
# ----------------------------------------------------------------------

def test_status_change_requires_reason(client, store) -> None:
    sale_id = _mark_sale(client)

    response = client.put(f"/api/v1/sales/{sale_id}", json={"status": "verified"}, headers=SUPER_ADMIN)

    assert response.status_code == 400
    assert response.json()["detail"] == "Reason is required for status changes"


def test_verify_then_amend_amount(client) -> None:
    sale_id = _mark_sale(client)

    verified = client.put(
        f"/api/v1/sales/{sale_id}",
        json={"status": "verified", "reason": "confirmed via screenshot"},
        headers=SUPER_ADMIN,
    )
    amended = client.put(f"/api/v1/sales/{sale_id}", json={"sale_amount": "150.00"}, headers=SUPER_ADMIN)

    assert verified.status_code == 200
    assert verified.json()["sale"]["status"] == "verified"
    assert amended.status_code == 200
    assert Decimal(amended.json()["sale"]["commission_amount"]) == Decimal("15.00")

    details = client.get(f"/api/v1/sales/{sale_id}", headers=SUPER_ADMIN).json()
    assert [entry["action"] for entry in details["audit_logs"]] == ["amount_changed", "verified", "created"]
    assert details["audit_logs"][1]["performed_by"]["uid"] == "admin-1"


def test_null_notes_clears_them(client, store) -> None:
    sale_id = _mark_sale(client)

    response = client.put(f"/api/v1/sales/{sale_id}", json={"notes": None}, headers=SUPER_ADMIN)

    assert response.status_code == 200
    assert response.json()["sale"]["notes"] is None


def test_empty_update_is_rejected(client) -> None:
    sale_id = _mark_sale(client)

    assert client.put(f"/api/v1/sales/{sale_id}", json={}, headers=SUPER_ADMIN).status_code == 400


def test_invalid_status_is_rejected(client) -> None:
    sale_id = _mark_sale(client)

    response = client.put(
        f"/api/v1/sales/{sale_id}", json={"status": "approved", "reason": "x"}, headers=SUPER_ADMIN
    )

    assert response.status_code == 400


# ----------------------------------------------------------------------
# Summary / export
# ----------------------------------------------------------------------

def test_summary_counts_verified_only(client) -> None:
    sale_id = _mark_sale(client)
    client.put(f"/api/v1/sales/{sale_id}", json={"status": "verified", "reason": "ok"}, headers=SUPER_ADMIN)

    response = client.get("/api/v1/sales/summary?startDate=2025-03-01&endDate=2025-03-31", headers=SUPER_ADMIN)

    assert response.status_code == 200
    body = response.json()
    assert body["total_sales"] == 1
    assert Decimal(body["total_commission"]) == Decimal("10.00")
    assert body["counts_by_status"]["verified"] == 1


def test_summary_requires_both_dates(client) -> None:
    response = client.get("/api/v1/sales/summary?startDate=2025-03-01", headers=SUPER_ADMIN)

    assert response.status_code == 400


def test_export_streams_csv(client) -> None:
    _mark_sale(client)

    response = client.get("/api/v1/sales/export?includeEvidence=true", headers=SUPER_ADMIN)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="sales-export-' in response.headers["content-disposition"]
    lines = response.text.splitlines()
    assert lines[0].startswith('"' + SALES_CSV_HEADER[0] + '"')
    assert lines[0].endswith('"Message Count"')
    assert len(lines) == 2
    assert '"card payment"' in lines[1]


# ----------------------------------------------------------------------
# Message tracking
# ----------------------------------------------------------------------

def test_track_message_creates_potential_sale(client, store) -> None:
    response = client.post(
        "/api/v1/conversations/conv-web/messages/track",
        json={
            "message_id": "m3",
            "sender": "user",
            "content": "sold! sending payment",
            "timestamp": "2025-03-14T15:05:00Z",
        },
        headers=REP,
    )

    assert response.status_code == 202
    body = response.json()
    assert body["flagged"] is True
    assert body["sale_created"] is True
    assert body["confidence_level"] == "high"
    assert store.get_conversation("conv-web").sale_status.value == "potential"


def test_track_message_rejects_unknown_sender(client) -> None:
    response = client.post(
        "/api/v1/conversations/conv-web/messages/track",
        json={"message_id": "m3", "sender": "bot", "content": "hi"},
        headers=REP,
    )

    assert response.status_code == 400


def test_track_message_failure_is_still_accepted(client) -> None:
    response = client.post(
        "/api/v1/conversations/missing/messages/track",
        json={"message_id": "m1", "sender": "USER", "content": "payment received"},
        headers=REP,
    )

    assert response.status_code == 202
    assert response.json()["sale_created"] is False


def test_export_evidence_failure_is_a_server_error(client, store, monkeypatch) -> None:
    _mark_sale(client)

    def unavailable(sale_id):
        raise RuntimeError("evidence table unavailable")

    monkeypatch.setattr(store, "get_evidence", unavailable)

    response = client.get("/api/v1/sales/export?includeEvidence=true", headers=SUPER_ADMIN)

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to export sales: evidence table unavailable"
