"""
Domain: error taxonomy for sale tracking and commission attribution.

- ValidationError: missing or invalid input. Never retried, never partially applied.
- ConsistencyError: a write against a Sale whose conversation linkage no longer
  matches. Reported as a validation failure, never silently corrected.
- NotFoundError: the referenced Sale or Conversation does not exist.
- AuditTrailError: a state change was persisted but its audit entry could not be.
"""

from __future__ import annotations


class SaleError(Exception):
    """Base class for sale tracking errors."""
    pass


class ValidationError(SaleError, ValueError):
    """Raised when a request is missing data or carries invalid values."""
    pass


class ConsistencyError(ValidationError):
    """Raised when a Sale and its conversation disagree on their linkage."""
    pass


class NotFoundError(SaleError):
    """Raised when a referenced Sale or Conversation does not exist."""
    pass


class AuditTrailError(SaleError):
    """Raised when an audit entry could not be appended after a successful update."""

    def __init__(self, message: str, *, sale_id: object, payload: dict) -> None:
        super().__init__(message)
        self.sale_id = sale_id
        self.payload = payload


__all__ = [
    "SaleError",
    "ValidationError",
    "ConsistencyError",
    "NotFoundError",
    "AuditTrailError",
]
