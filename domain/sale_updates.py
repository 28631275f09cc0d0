"""
Domain: update requests accepted by the Sale Lifecycle Manager.

An admin edit arrives as one body with optional status, sale_amount, notes and
reason. It is split at the boundary into tagged variants, each validated on
its own before anything is written.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Optional, Union

from .errors import ValidationError
from .money import require_non_negative_amount
from .sale import SaleStatus

REASON_REQUIRED_MESSAGE = "Reason is required for status changes"


def _clean_reason(reason: Optional[str]) -> Optional[str]:
    if reason is None:
        return None
    reason = reason.strip()
    return reason or None


@dataclass(frozen=True, slots=True)
class StatusChange:
    status: SaleStatus
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "reason", _clean_reason(self.reason))


@dataclass(frozen=True, slots=True)
class AmountChange:
    sale_amount: Decimal
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "sale_amount", require_non_negative_amount(self.sale_amount))
        object.__setattr__(self, "reason", _clean_reason(self.reason))


@dataclass(frozen=True, slots=True)
class NotesChange:
    notes: Optional[str]


SaleChange = Union[StatusChange, AmountChange, NotesChange]


def parse_status(value: Any) -> SaleStatus:
    try:
        return SaleStatus(value)
    except ValueError as exc:
        allowed = ", ".join(status.value for status in SaleStatus)
        raise ValidationError(f"Invalid status {value!r}; expected one of: {allowed}") from exc


def split_update_request(
    *,
    status: Any = None,
    sale_amount: Any = None,
    notes: Optional[str] = None,
    reason: Optional[str] = None,
    notes_provided: bool = False,
) -> List[SaleChange]:
    """
    Split a combined edit into ordered variants: status, then amount, then notes.

    `notes_provided` distinguishes "clear the notes" (notes=None sent explicitly)
    from "notes not part of this edit".
    """

    changes: List[SaleChange] = []
    if status is not None:
        changes.append(StatusChange(status=parse_status(status), reason=reason))
    if sale_amount is not None:
        changes.append(AmountChange(sale_amount=sale_amount, reason=reason))
    if notes is not None or notes_provided:
        changes.append(NotesChange(notes=notes))
    if not changes:
        raise ValidationError("Nothing to update: provide status, sale_amount or notes")
    return changes


__all__ = [
    "REASON_REQUIRED_MESSAGE",
    "StatusChange",
    "AmountChange",
    "NotesChange",
    "SaleChange",
    "parse_status",
    "split_update_request",
]
