"""
Tests for `domain/commission.py` and `domain/money.py`.

Covers contract rules:
- commission == round_half_up(sale_amount * rate, 2).
- Negative, non-finite and non-numeric amounts are rejected.
- Rates must lie in [0, 1].
- The channel comes from the conversation's contact prefix.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from domain.commission import CommissionCalculator, channel_for_contact
from domain.errors import ValidationError
from domain.money import round_money
from domain.sale import SaleChannel


def test_default_rates() -> None:
    calculator = CommissionCalculator()

    assert calculator.rate_for_channel(SaleChannel.WEBSITE) == Decimal("0.10")
    assert calculator.rate_for_channel(SaleChannel.INSTAGRAM) == Decimal("0.05")
    assert calculator.rate_for_channel(SaleChannel.SMS) == Decimal("0.05")
    assert calculator.rate_for_channel(SaleChannel.OTHER) == Decimal("0.05")


@pytest.mark.parametrize(
    "amount, rate, expected",
    [
        ("100.00", "0.10", "10.00"),
        ("150.00", "0.10", "15.00"),
        ("0", "0.05", "0.00"),
        ("19.99", "0.05", "1.00"),   # 0.9995 rounds half-up
        ("10.05", "0.10", "1.01"),   # 1.005 rounds half-up, not to even
        ("0.01", "0.10", "0.00"),
        ("249.99", "1", "249.99"),
    ],
)
def test_compute_commission_rounds_half_up(amount: str, rate: str, expected: str) -> None:
    assert CommissionCalculator().compute_commission(Decimal(amount), Decimal(rate)) == Decimal(expected)


def test_compute_commission_matches_rounded_product_for_many_inputs() -> None:
    calculator = CommissionCalculator()

    for cents in range(0, 100001, 137):
        amount = Decimal(cents) / 100
        for rate in (Decimal("0"), Decimal("0.05"), Decimal("0.10"), Decimal("0.125"), Decimal("1")):
            assert calculator.compute_commission(amount, rate) == round_money(amount * rate)


def test_compute_commission_accepts_float_via_string_form() -> None:
    assert CommissionCalculator().compute_commission(19.99, "0.10") == Decimal("2.00")


@pytest.mark.parametrize("amount", [Decimal("-0.01"), -5, float("nan"), float("inf"), "abc", None, True])
def test_invalid_amounts_are_rejected(amount) -> None:
    with pytest.raises(ValidationError):
        CommissionCalculator().compute_commission(amount, Decimal("0.10"))


@pytest.mark.parametrize("rate", [Decimal("-0.01"), Decimal("1.01"), "NaN"])
def test_rates_outside_unit_interval_are_rejected(rate) -> None:
    with pytest.raises(ValidationError):
        CommissionCalculator().compute_commission(Decimal("10"), rate)

    with pytest.raises(ValidationError):
        CommissionCalculator({SaleChannel.WEBSITE: rate})


def test_configured_rates_override_defaults() -> None:
    calculator = CommissionCalculator({SaleChannel.WEBSITE: "0.15"})

    assert calculator.rate_for_channel(SaleChannel.WEBSITE) == Decimal("0.15")
    assert calculator.rate_for_channel(SaleChannel.INSTAGRAM) == Decimal("0.05")


def test_channel_for_contact() -> None:
    assert channel_for_contact("instagram-jane.doe") is SaleChannel.INSTAGRAM
    assert channel_for_contact("+15551234567") is SaleChannel.WEBSITE
    assert channel_for_contact("ig:jane", instagram_prefix="ig:") is SaleChannel.INSTAGRAM
    # The prefix is literal and case-sensitive.
    assert channel_for_contact("Instagram-jane") is SaleChannel.WEBSITE
