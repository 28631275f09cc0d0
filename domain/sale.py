"""
Domain: Sale records and the identities attached to them.

Rules implemented here:
- A Sale belongs to exactly one conversation; a conversation references at most
  its current active Sale.
- commission_amount == round_half_up(sale_amount * commission_rate, 2) at all times.
- commission_rate is in [0, 1] and is fixed when the Sale is created.
- Sales are never deleted; rejected sales are retained for audit.

Sale is immutable. The Lifecycle Manager produces updated copies through
`with_status` and `with_amount`; no other code changes Sale fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID

from .errors import ValidationError
from .money import round_money
from .time import require_utc_timestamp


class SaleChannel(str, Enum):
    INSTAGRAM = "instagram"
    WEBSITE = "website"
    SMS = "sms"
    OTHER = "other"


class SaleStatus(str, Enum):
    POTENTIAL = "potential"
    PENDING = "pending"
    VERIFIED = "verified"
    DISPUTED = "disputed"
    REJECTED = "rejected"


class DetectionMethod(str, Enum):
    KEYWORD = "keyword"
    MANUAL = "manual"


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    REP = "rep"
    SYSTEM = "system"


@dataclass(frozen=True, slots=True)
class ActorRef:
    """Short identity stored on the Sale itself (verified_by, disputed_by, marked_by)."""

    uid: str
    name: str


@dataclass(frozen=True, slots=True)
class Actor:
    """Identity of whoever performs a mutation (admin user or the system)."""

    uid: str
    name: str
    email: str
    role: UserRole

    def ref(self) -> ActorRef:
        return ActorRef(uid=self.uid, name=self.name)


# Keyword-triggered mutations are attributed to this identity.
SYSTEM_ACTOR = Actor(uid="system", name="Sale Detection", email="", role=UserRole.SYSTEM)


@dataclass(frozen=True, slots=True)
class RepInfo:
    name: str
    phone_number: str
    rep_id: Optional[str] = None


UNKNOWN_REP_NAME = "Unknown Rep"


@dataclass(frozen=True, slots=True)
class Sale:
    """
    Current state of a sale attributed to a conversation.

    History is not kept here; the audit log is the only source of truth for
    past values.
    """

    sale_id: UUID
    conversation_id: str
    customer_name: str
    customer_phone: str
    channel: SaleChannel
    sale_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    status: SaleStatus
    detection_method: DetectionMethod
    rep_info: RepInfo
    sale_date: datetime
    customer_instagram: Optional[str] = None
    notes: Optional[str] = None
    product_details: Optional[str] = None
    detected_keywords: Tuple[str, ...] = field(default_factory=tuple)
    marked_by: Optional[ActorRef] = None
    dispute_reason: Optional[str] = None
    disputed_at: Optional[datetime] = None
    disputed_by: Optional[ActorRef] = None
    verified_at: Optional[datetime] = None
    verified_by: Optional[ActorRef] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("sale_date", self.sale_date)
        for name in ("disputed_at", "verified_at", "created_at", "updated_at"):
            value = getattr(self, name)
            if value is not None:
                require_utc_timestamp(name, value)

        if self.sale_amount < 0:
            raise ValidationError("sale_amount must be >= 0")
        if not (Decimal("0") <= self.commission_rate <= Decimal("1")):
            raise ValidationError("commission_rate must be within [0, 1]")
        expected = round_money(self.sale_amount * self.commission_rate)
        if self.commission_amount != expected:
            raise ValidationError(
                f"commission_amount {self.commission_amount} does not match "
                f"sale_amount * commission_rate ({expected})"
            )

    @property
    def is_recognized(self) -> bool:
        """Only verified sales count towards earned commission."""
        return self.status is SaleStatus.VERIFIED

    def with_status(
        self,
        status: SaleStatus,
        *,
        actor: Actor,
        reason: Optional[str],
        at: datetime,
    ) -> "Sale":
        """Return a copy moved to `status`, stamping verification/dispute fields."""

        require_utc_timestamp("at", at)
        changes: dict = {"status": status, "updated_at": at}
        if status is SaleStatus.VERIFIED:
            changes.update(verified_at=at, verified_by=actor.ref())
        elif status is SaleStatus.DISPUTED and reason:
            changes.update(dispute_reason=reason, disputed_at=at, disputed_by=actor.ref())
        return replace(self, **changes)

    def with_amount(self, sale_amount: Decimal, commission_amount: Decimal, *, at: datetime) -> "Sale":
        """Return a copy with a new amount; the commission rate never changes here."""

        require_utc_timestamp("at", at)
        return replace(
            self,
            sale_amount=sale_amount,
            commission_amount=commission_amount,
            updated_at=at,
        )

    def with_notes(self, notes: Optional[str], *, at: datetime) -> "Sale":
        require_utc_timestamp("at", at)
        return replace(self, notes=notes, updated_at=at)


__all__ = [
    "SaleChannel",
    "SaleStatus",
    "DetectionMethod",
    "UserRole",
    "Actor",
    "ActorRef",
    "SYSTEM_ACTOR",
    "RepInfo",
    "UNKNOWN_REP_NAME",
    "Sale",
]
