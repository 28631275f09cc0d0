"""
Domain: Sale audit trail.

Rules implemented here:
- The audit log is append-only; entries are never updated or removed.
- Every status transition or sale_amount change produces exactly one entry,
  carrying the prior and new {status, sale_amount} and the acting identity.
- The audit log is the only record of history; the Sale holds current state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from .sale import Actor, SaleStatus
from .time import require_utc_timestamp


class AuditAction(str, Enum):
    CREATED = "created"
    POTENTIAL = "potential"
    PENDING = "pending"
    VERIFIED = "verified"
    DISPUTED = "disputed"
    REJECTED = "rejected"
    AMOUNT_CHANGED = "amount_changed"

    @staticmethod
    def for_status(status: SaleStatus) -> "AuditAction":
        """Action recorded when a sale moves into `status`."""
        return AuditAction(status.value)


@dataclass(frozen=True, slots=True)
class SaleSnapshot:
    """The {status, sale_amount} pair captured before and after a mutation."""

    status: SaleStatus
    sale_amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "sale_amount": str(self.sale_amount)}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SaleSnapshot":
        return SaleSnapshot(
            status=SaleStatus(str(data["status"])),
            sale_amount=Decimal(str(data["sale_amount"])),
        )


@dataclass(frozen=True, slots=True)
class SaleAuditLogEntry:
    entry_id: UUID
    sale_id: UUID
    action: AuditAction
    performed_by: Actor
    timestamp: datetime
    previous_value: Optional[SaleSnapshot] = None
    new_value: Optional[SaleSnapshot] = None
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)


__all__ = [
    "AuditAction",
    "SaleSnapshot",
    "SaleAuditLogEntry",
]
