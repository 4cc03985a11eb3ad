"""
Unit tests for Money, rates and date arithmetic.

Verifies:
- Quantization to 2 places, half-up, on construction
- Float constructor prohibition
- Daily rate conversion and undefined percentages
- Due-date derivation and overdue day counts
"""

from datetime import date
from decimal import Decimal

import pytest

from receivables_kernel.domain.dates import days_between, days_overdue, derive_due_date
from receivables_kernel.domain.values import (
    Money,
    daily_rate,
    percentage,
    quantize_amount,
    sum_money,
)


class TestMoneyConstruction:
    """Money is always a finite Decimal at exactly 2 places."""

    def test_from_string(self):
        assert Money.of("100.50").amount == Decimal("100.50")

    def test_from_int(self):
        assert Money.of(10000).amount == Decimal("10000.00")

    def test_rounds_half_up(self):
        assert Money.of("0.005") == Money.of("0.01")
        assert Money.of("147.945") == Money.of("147.95")
        assert Money.of("-0.005").amount == Decimal("-0.01")

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            Money(0.1)

    @pytest.mark.parametrize("value", [1.1, 0.0, 10000.0])
    def test_factory_rejects_float(self, value):
        with pytest.raises(TypeError):
            Money.of(value)

    def test_factory_rejects_garbage(self):
        with pytest.raises(ValueError):
            Money.of("12,50")

    def test_garbage_rejected(self):
        with pytest.raises(ValueError):
            Money("not a number")

    def test_infinity_rejected(self):
        with pytest.raises(ValueError):
            Money(Decimal("Infinity"))

    def test_zero(self):
        assert Money.zero().is_zero
        assert not Money.zero().is_positive
        assert not Money.zero().is_negative


class TestMoneyArithmetic:

    def test_add_and_subtract(self):
        assert Money.of("10.10") + Money.of("0.90") == Money.of("11.00")
        assert Money.of("10") - Money.of("12.50") == Money.of("-2.50")

    def test_scalar_multiplication_requantizes(self):
        assert Money.of("10.00") * Decimal("0.333") == Money.of("3.33")
        assert 3 * Money.of("1.10") == Money.of("3.30")

    def test_adding_non_money_is_type_error(self):
        with pytest.raises(TypeError):
            Money.of("1") + Decimal("1")

    def test_clamp_non_negative(self):
        assert Money.of("-5").clamp_non_negative() == Money.zero()
        assert Money.of("5").clamp_non_negative() == Money.of("5")

    def test_ordering(self):
        assert Money.of("1") < Money.of("2")
        assert min(Money.of("7"), Money.of("3")) == Money.of("3")

    def test_sum_money_empty(self):
        assert sum_money([]) == Money.zero()

    def test_sum_money(self):
        assert sum_money([Money.of("1.10"), Money.of("2.20")]) == Money.of("3.30")

    def test_str_and_repr(self):
        assert str(Money.of("5")) == "5.00"
        assert repr(Money.of("5")) == "Money('5.00')"


class TestRates:

    def test_daily_rate_keeps_full_precision(self):
        assert daily_rate(Decimal("18")) == Decimal("18") / Decimal("100") / Decimal("365")

    def test_daily_rate_absent_is_zero(self):
        assert daily_rate(None) == Decimal("0")

    def test_percentage(self):
        assert percentage(Decimal("8"), Decimal("10")) == Decimal("80.00")
        assert percentage(Decimal("1"), Decimal("3")) == Decimal("33.33")

    def test_percentage_zero_denominator_is_none(self):
        assert percentage(Decimal("2500"), Decimal("0")) is None

    def test_quantize_amount(self):
        assert quantize_amount(Decimal("25.005")) == Decimal("25.01")


class TestDates:

    def test_due_date_from_terms(self):
        assert derive_due_date(date(2024, 1, 1), 30) == date(2024, 1, 31)

    def test_due_date_override_wins(self):
        assert derive_due_date(date(2024, 1, 1), 30, date(2024, 3, 1)) == date(2024, 3, 1)

    def test_days_between_is_signed(self):
        assert days_between(date(2024, 1, 10), date(2024, 1, 1)) == -9

    def test_days_overdue_never_negative(self):
        assert days_overdue(date(2024, 1, 10), date(2024, 1, 1)) == 0
        assert days_overdue(date(2024, 1, 10), date(2024, 1, 10)) == 0
        assert days_overdue(date(2024, 1, 10), date(2024, 2, 9)) == 30

    def test_leap_year_counts_calendar_days(self):
        assert days_between(date(2024, 2, 1), date(2024, 3, 1)) == 29
