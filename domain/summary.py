"""
Domain: commission summary aggregation (pure).

Rules implemented here:
- A sale belongs to a reporting period when its sale_date falls within
  [start of start_date, end of end_date] in the reporting timezone.
- Recognized totals (total_sales, total_sale_amount, total_commission) count
  verified sales only.
- Potential, pending and disputed sales are reported as the pipeline.
- Rejected sales are excluded from every monetary total but still counted in
  the status, channel and rep breakdowns.
- Channel and rep rows sum their amounts independently; the rows of either
  breakdown always add up to the recognized totals.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from .errors import ValidationError
from .sale import Sale, SaleChannel, SaleStatus

PIPELINE_STATUSES = frozenset({SaleStatus.POTENTIAL, SaleStatus.PENDING, SaleStatus.DISPUTED})


@dataclass(frozen=True, slots=True)
class ReportingPeriod:
    """Half-open UTC interval [start, end_exclusive) covering whole calendar days."""

    start: datetime
    end_exclusive: datetime

    @property
    def end(self) -> datetime:
        """Last instant inside the period (end of the final day)."""
        return self.end_exclusive - timedelta(microseconds=1)

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end_exclusive

    @staticmethod
    def from_dates(start_date: date, end_date: date, tz: tzinfo = timezone.utc) -> "ReportingPeriod":
        """
        Build the period from plain calendar dates interpreted in `tz`.

        Both days are included in full, so a caller passing 2025-03-01 and
        2025-03-31 gets every sale made in March in that timezone.
        """

        if end_date < start_date:
            raise ValidationError("endDate must not be before startDate")
        start = datetime.combine(start_date, time.min, tzinfo=tz)
        end_exclusive = datetime.combine(end_date + timedelta(days=1), time.min, tzinfo=tz)
        return ReportingPeriod(
            start=start.astimezone(timezone.utc),
            end_exclusive=end_exclusive.astimezone(timezone.utc),
        )

    @staticmethod
    def current_month(now: datetime, tz: tzinfo = timezone.utc) -> "ReportingPeriod":
        local = now.astimezone(tz).date()
        last_day = calendar.monthrange(local.year, local.month)[1]
        return ReportingPeriod.from_dates(local.replace(day=1), local.replace(day=last_day), tz)


@dataclass(frozen=True, slots=True)
class ChannelSummary:
    channel: SaleChannel
    count: int
    verified_count: int
    sale_amount: Decimal
    commission: Decimal


@dataclass(frozen=True, slots=True)
class RepSummary:
    rep_name: str
    rep_phone_number: str
    count: int
    verified_count: int
    sale_amount: Decimal
    commission: Decimal


@dataclass(frozen=True, slots=True)
class CommissionSummary:
    period: ReportingPeriod
    total_sales: int
    total_sale_amount: Decimal
    total_commission: Decimal
    counts_by_status: Dict[SaleStatus, int]
    pipeline_sale_amount: Decimal
    pipeline_commission: Decimal
    by_channel: Tuple[ChannelSummary, ...]
    by_rep: Tuple[RepSummary, ...]


class _Bucket:
    __slots__ = ("count", "verified_count", "sale_amount", "commission")

    def __init__(self) -> None:
        self.count = 0
        self.verified_count = 0
        self.sale_amount = Decimal("0.00")
        self.commission = Decimal("0.00")

    def add(self, sale: Sale) -> None:
        self.count += 1
        if sale.is_recognized:
            self.verified_count += 1
            self.sale_amount += sale.sale_amount
            self.commission += sale.commission_amount


def summarize(sales: Iterable[Sale], period: ReportingPeriod) -> CommissionSummary:
    counts: Dict[SaleStatus, int] = {status: 0 for status in SaleStatus}
    overall = _Bucket()
    pipeline = _Bucket()
    channels: Dict[SaleChannel, _Bucket] = {channel: _Bucket() for channel in SaleChannel}
    reps: Dict[str, _Bucket] = {}
    rep_names: Dict[str, str] = {}

    for sale in sales:
        if not period.contains(sale.sale_date):
            continue

        counts[sale.status] += 1
        overall.add(sale)
        channels[sale.channel].add(sale)

        rep_key = sale.rep_info.phone_number
        rep_names.setdefault(rep_key, sale.rep_info.name)
        reps.setdefault(rep_key, _Bucket()).add(sale)

        if sale.status in PIPELINE_STATUSES:
            pipeline.sale_amount += sale.sale_amount
            pipeline.commission += sale.commission_amount

    by_rep: List[RepSummary] = [
        RepSummary(
            rep_name=rep_names[key],
            rep_phone_number=key,
            count=bucket.count,
            verified_count=bucket.verified_count,
            sale_amount=bucket.sale_amount,
            commission=bucket.commission,
        )
        for key, bucket in reps.items()
    ]
    by_rep.sort(key=lambda row: (-row.commission, row.rep_name, row.rep_phone_number))

    return CommissionSummary(
        period=period,
        total_sales=overall.verified_count,
        total_sale_amount=overall.sale_amount,
        total_commission=overall.commission,
        counts_by_status=counts,
        pipeline_sale_amount=pipeline.sale_amount,
        pipeline_commission=pipeline.commission,
        by_channel=tuple(
            ChannelSummary(
                channel=channel,
                count=bucket.count,
                verified_count=bucket.verified_count,
                sale_amount=bucket.sale_amount,
                commission=bucket.commission,
            )
            for channel, bucket in channels.items()
        ),
        by_rep=tuple(by_rep),
    )


__all__ = [
    "PIPELINE_STATUSES",
    "ReportingPeriod",
    "ChannelSummary",
    "RepSummary",
    "CommissionSummary",
    "summarize",
]
