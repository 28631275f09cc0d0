"""
Domain: commission rates and commission amounts (pure).

Rules implemented here:
- The commission rate is a fixed fraction in [0, 1] determined by the sale channel.
- commission = round(sale_amount * rate, 2), rounding half-up.
- Negative or non-finite sale amounts are rejected.
- The acquisition channel is inferred from the conversation's
  user_mobile_number: a literal "instagram-" prefix marks an Instagram
  (direct-link) conversation, anything else came through the website widget.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

from .errors import ValidationError
from .money import require_non_negative_amount, round_money, to_decimal
from .sale import SaleChannel

DEFAULT_INSTAGRAM_PREFIX = "instagram-"

DEFAULT_COMMISSION_RATES: Mapping[SaleChannel, Decimal] = {
    SaleChannel.WEBSITE: Decimal("0.10"),
    SaleChannel.INSTAGRAM: Decimal("0.05"),
    SaleChannel.SMS: Decimal("0.05"),
    SaleChannel.OTHER: Decimal("0.05"),
}


def validate_rate(value: Any, *, name: str = "commission_rate") -> Decimal:
    rate = to_decimal(value, name=name)
    if rate < 0 or rate > 1:
        raise ValidationError(f"{name} must be within [0, 1]")
    return rate


def channel_for_contact(user_mobile_number: str, instagram_prefix: str = DEFAULT_INSTAGRAM_PREFIX) -> SaleChannel:
    """Infer the acquisition channel from the conversation's contact field."""

    if user_mobile_number.startswith(instagram_prefix):
        return SaleChannel.INSTAGRAM
    return SaleChannel.WEBSITE


class CommissionCalculator:
    """Channel-to-rate lookup and commission arithmetic."""

    def __init__(self, rates: Mapping[SaleChannel, Any] | None = None) -> None:
        source = dict(DEFAULT_COMMISSION_RATES)
        if rates:
            source.update(rates)
        self._rates = {
            SaleChannel(channel): validate_rate(rate, name=f"{SaleChannel(channel).value} commission rate")
            for channel, rate in source.items()
        }

    @property
    def rates(self) -> Mapping[SaleChannel, Decimal]:
        return dict(self._rates)

    def rate_for_channel(self, channel: SaleChannel) -> Decimal:
        return self._rates[SaleChannel(channel)]

    def compute_commission(self, sale_amount: Any, rate: Any) -> Decimal:
        amount = require_non_negative_amount(sale_amount)
        return round_money(amount * validate_rate(rate))


__all__ = [
    "DEFAULT_INSTAGRAM_PREFIX",
    "DEFAULT_COMMISSION_RATES",
    "CommissionCalculator",
    "channel_for_contact",
    "validate_rate",
]
