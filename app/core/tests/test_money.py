"""
Tests for the Money value type.

Covers:
- Construction guards (int-only amounts, currency codes)
- Major/minor unit conversion with half-up rounding
- Currency-checked arithmetic and comparison
- Percentages used for platform fees
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from core.money import CurrencyMismatchError, InvalidAmountError, Money, sum_money


class TestMoneyConstruction:
    def test_stores_minor_units_and_uppercases_currency(self):
        money = Money(10000, "uyu")
        assert money.amount == 10000
        assert money.currency == "UYU"

    @pytest.mark.parametrize("amount", [100.0, "100", Decimal("100"), True])
    def test_rejects_non_integer_amounts(self, amount):
        with pytest.raises(InvalidAmountError):
            Money(amount, "UYU")

    def test_rejects_bad_currency_code(self):
        with pytest.raises(InvalidAmountError):
            Money(100, "PESOS")

    def test_is_immutable(self):
        money = Money(100, "UYU")
        with pytest.raises(AttributeError):
            money.amount = 200


class TestMoneyConversion:
    def test_from_major_rounds_half_up(self):
        assert Money.from_major("12.345", "USD") == Money(1235, "USD")
        assert Money.from_major("12.344", "USD") == Money(1234, "USD")

    def test_from_major_respects_zero_decimal_currencies(self):
        assert Money.from_major("1500", "CLP") == Money(1500, "CLP")

    def test_from_major_rejects_float(self):
        with pytest.raises(InvalidAmountError):
            Money.from_major(12.5, "USD")

    def test_from_major_rejects_garbage(self):
        with pytest.raises(InvalidAmountError):
            Money.from_major("twelve", "USD")

    def test_to_major(self):
        assert Money(10000, "UYU").to_major() == Decimal("100.00")
        assert str(Money(1235, "USD")) == "12.35 USD"


class TestMoneyArithmetic:
    def test_add_and_subtract(self):
        total = Money(10000, "UYU")
        fee = Money(1000, "UYU")
        assert total - fee == Money(9000, "UYU")
        assert total + fee == Money(11000, "UYU")

    def test_mixed_currency_raises(self):
        with pytest.raises(CurrencyMismatchError):
            Money(100, "UYU") + Money(100, "USD")
        with pytest.raises(CurrencyMismatchError):
            Money(100, "UYU") < Money(100, "USD")

    def test_percentage_rounds_half_up(self):
        assert Money(10000, "UYU").percentage("10") == Money(1000, "UYU")
        # 12.5% of 1001 = 125.125
        assert Money(1001, "UYU").percentage("12.5") == Money(125, "UYU")
        # 10% of 15 = 1.5
        assert Money(15, "UYU").percentage(10) == Money(2, "UYU")

    def test_multiply_by_decimal_hours(self):
        assert Money(2500, "UYU").multiply("1.5") == Money(3750, "UYU")

    def test_sum_money(self):
        amounts = [Money(100, "UYU"), Money(250, "UYU")]
        assert sum_money(amounts, "UYU") == Money(350, "UYU")
        assert sum_money([], "UYU").is_zero
