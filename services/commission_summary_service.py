"""
Commission summary service.

Loads the sales of a reporting period from the store and aggregates them with
`domain.summary.summarize`. Report dates are plain calendar days interpreted in
the configured reporting timezone; with no dates the current month is used.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone, tzinfo
from typing import Callable, List, Optional

from domain.errors import ValidationError
from domain.sale import Sale
from domain.summary import CommissionSummary, ReportingPeriod, summarize
from repositories.filters import MAX_ROWS, SaleQueryFilters
from repositories.store import SalesStore, list_all_sales
from services.sale_lifecycle_service import utc_now

logger = logging.getLogger(__name__)


def resolve_period(
    start_date: Optional[date],
    end_date: Optional[date],
    *,
    tz: tzinfo,
    now: datetime,
) -> ReportingPeriod:
    """Both dates, or neither (current month). A single date is rejected."""

    if start_date is None and end_date is None:
        return ReportingPeriod.current_month(now, tz)
    if start_date is None or end_date is None:
        raise ValidationError("startDate and endDate must be provided together")
    return ReportingPeriod.from_dates(start_date, end_date, tz)


class CommissionSummaryService:
    def __init__(
        self,
        store: SalesStore,
        *,
        tz: tzinfo = timezone.utc,
        clock: Callable[[], datetime] = utc_now,
        page_size: int = MAX_ROWS,
    ) -> None:
        self._store = store
        self._tz = tz
        self._clock = clock
        self._page_size = page_size

    def period_for(self, start_date: Optional[date], end_date: Optional[date]) -> ReportingPeriod:
        return resolve_period(start_date, end_date, tz=self._tz, now=self._clock())

    def sales_in_period(self, period: ReportingPeriod) -> List[Sale]:
        sales = list_all_sales(self._store, SaleQueryFilters.for_period(period), page_size=self._page_size)
        logger.debug(
            "Sales loaded for summary",
            extra={"start_utc": period.start.isoformat(), "count": len(sales)},
        )
        return sales

    def summarize(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> CommissionSummary:
        period = self.period_for(start_date, end_date)
        return summarize(self.sales_in_period(period), period)


__all__ = [
    "CommissionSummaryService",
    "resolve_period",
]
