"""
Sale audit log repository (persistence).

Append-only: entries are inserted and read back, never updated or deleted.
"""

from __future__ import annotations

from typing import Any, List, Mapping
from uuid import UUID

from domain.audit import AuditAction, SaleAuditLogEntry, SaleSnapshot
from domain.sale import Actor, UserRole
from domain.time import parse_utc_datetime, to_iso_utc

_AUDIT_TABLE: str = "sale_audit_logs"


def audit_entry_to_row(entry: SaleAuditLogEntry) -> dict[str, Any]:
    return {
        "entry_id": str(entry.entry_id),
        "sale_id": str(entry.sale_id),
        "action": entry.action.value,
        "performed_by": {
            "uid": entry.performed_by.uid,
            "name": entry.performed_by.name,
            "email": entry.performed_by.email,
            "role": entry.performed_by.role.value,
        },
        "previous_value": entry.previous_value.to_dict() if entry.previous_value else None,
        "new_value": entry.new_value.to_dict() if entry.new_value else None,
        "reason": entry.reason,
        "timestamp_utc": to_iso_utc(entry.timestamp, name="timestamp"),
    }


def row_to_audit_entry(row: Mapping[str, Any]) -> SaleAuditLogEntry:
    performed_by = row["performed_by"]
    previous_value = row.get("previous_value")
    new_value = row.get("new_value")
    return SaleAuditLogEntry(
        entry_id=UUID(str(row["entry_id"])),
        sale_id=UUID(str(row["sale_id"])),
        action=AuditAction(str(row["action"])),
        performed_by=Actor(
            uid=str(performed_by["uid"]),
            name=str(performed_by.get("name") or ""),
            email=str(performed_by.get("email") or ""),
            role=UserRole(str(performed_by["role"])),
        ),
        previous_value=SaleSnapshot.from_dict(previous_value) if previous_value else None,
        new_value=SaleSnapshot.from_dict(new_value) if new_value else None,
        reason=row.get("reason"),
        timestamp=parse_utc_datetime(row["timestamp_utc"]),
    )


class SaleAuditRepository:
    """Supabase-backed persistence for SaleAuditLogEntry."""

    def __init__(self, client: Any) -> None:
        self._client = client

    def append(self, entry: SaleAuditLogEntry) -> None:
        response = self._client.table(_AUDIT_TABLE).insert(audit_entry_to_row(entry)).execute()
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to append sale audit log: {error}")

    def list_by_sale(self, sale_id: UUID) -> List[SaleAuditLogEntry]:
        """Audit entries for a sale, newest first."""

        response = (
            self._client.table(_AUDIT_TABLE)
            .select("*")
            .eq("sale_id", str(sale_id))
            .order("timestamp_utc", desc=True)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to list sale audit logs: {error}")

        rows = getattr(response, "data", None) or []
        return [row_to_audit_entry(row) for row in rows]


__all__ = [
    "SaleAuditRepository",
    "audit_entry_to_row",
    "row_to_audit_entry",
]
