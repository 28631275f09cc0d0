"""
Query filters shared by every SalesStore implementation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Optional

from domain.sale import Sale, SaleChannel, SaleStatus
from domain.summary import ReportingPeriod

# Upper bound for unpaginated reads (exports, summaries).
MAX_ROWS: int = 10000


@dataclass(frozen=True, slots=True)
class SaleQueryFilters:
    """
    Filters for listing sales.

    Date bounds are UTC and half-open: start <= sale_date < end_exclusive.
    """

    start: Optional[datetime] = None
    end_exclusive: Optional[datetime] = None
    channel: Optional[SaleChannel] = None
    status: Optional[SaleStatus] = None
    rep_phone_number: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 1:
            raise ValueError("limit must be >= 1")
        if self.offset < 0:
            raise ValueError("offset must be >= 0")

    @staticmethod
    def for_period(period: ReportingPeriod, **kwargs) -> "SaleQueryFilters":
        return SaleQueryFilters(start=period.start, end_exclusive=period.end_exclusive, **kwargs)

    @staticmethod
    def for_dates(
        start_date: Optional[date],
        end_date: Optional[date],
        tz: tzinfo = timezone.utc,
        **kwargs,
    ) -> "SaleQueryFilters":
        """Calendar-day bounds in `tz`; either side may be left open."""

        if start_date is not None and end_date is not None:
            return SaleQueryFilters.for_period(ReportingPeriod.from_dates(start_date, end_date, tz), **kwargs)
        start = ReportingPeriod.from_dates(start_date, start_date, tz).start if start_date else None
        end_exclusive = ReportingPeriod.from_dates(end_date, end_date, tz).end_exclusive if end_date else None
        return SaleQueryFilters(start=start, end_exclusive=end_exclusive, **kwargs)

    def matches(self, sale: Sale) -> bool:
        """In-process equivalent of the database filter (pagination excluded)."""

        if self.start is not None and sale.sale_date < self.start:
            return False
        if self.end_exclusive is not None and sale.sale_date >= self.end_exclusive:
            return False
        if self.channel is not None and sale.channel is not self.channel:
            return False
        if self.status is not None and sale.status is not self.status:
            return False
        if self.rep_phone_number and sale.rep_info.phone_number != self.rep_phone_number:
            return False
        return True


__all__ = ["MAX_ROWS", "SaleQueryFilters"]
