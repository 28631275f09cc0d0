"""
Domain: money helpers (pure).

All amounts are Decimal. Rounding is ROUND_HALF_UP to whole cents, applied
consistently wherever a commission or an amount is stored.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .errors import ValidationError

CENT = Decimal("0.01")


def to_decimal(value: Any, *, name: str) -> Decimal:
    """
    Coerce a numeric input to Decimal.

    Floats go through their string form so that 19.99 stays 19.99.
    Booleans, non-numeric strings and non-finite values are rejected.
    """

    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{name} must be a number")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{name} must be a number") from exc
    if not result.is_finite():
        raise ValidationError(f"{name} must be a finite number")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half-up."""

    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def require_non_negative_amount(value: Any, *, name: str = "sale_amount") -> Decimal:
    """Validate a monetary amount: finite and >= 0. No rounding is applied."""

    amount = to_decimal(value, name=name)
    if amount < 0:
        raise ValidationError(f"{name} must be >= 0")
    return amount


__all__ = [
    "CENT",
    "to_decimal",
    "round_money",
    "require_non_negative_amount",
]
