"""Tests for exact minor-unit Money arithmetic."""

from decimal import Decimal

import pytest

from commerce.shared.money import (
    CurrencyMismatch,
    Money,
    NegativeResult,
    UnsupportedCurrency,
    currency_info,
    round_half_up,
)


class TestMoneyConstruction:
    def test_currency_is_normalized(self):
        assert Money(100, "usd").currency == "USD"

    def test_unknown_currency_rejected(self):
        with pytest.raises(UnsupportedCurrency):
            Money(100, "XYZ")

    def test_negative_amount_rejected(self):
        with pytest.raises(NegativeResult):
            Money(-1, "USD")

    def test_float_amount_rejected(self):
        with pytest.raises(TypeError):
            Money(19.99, "USD")

    def test_bool_amount_rejected(self):
        with pytest.raises(TypeError):
            Money(True, "USD")

    def test_zero(self):
        assert Money.zero("EUR").is_zero()

    def test_from_display_rounds_half_up(self):
        assert Money.from_display("19.995", "USD").amount == 2000
        assert Money.from_display(Decimal("19.99"), "USD").amount == 1999

    def test_from_display_float_keeps_its_decimal_value(self):
        assert Money.from_display(0.1, "USD").amount == 10

    def test_from_display_zero_decimal_currency(self):
        assert Money.from_display("1500", "JPY").amount == 1500


class TestMoneyDisplay:
    @pytest.mark.parametrize(
        "amount,currency,expected",
        [
            (123456, "USD", "$1,234.56"),
            (1500, "JPY", "¥1,500"),
            (12345, "KWD", "KD 12.345"),
            (999, "NOK", "kr 9.99"),
            (5, "EUR", "€0.05"),
        ],
    )
    def test_format(self, amount, currency, expected):
        assert Money(amount, currency).format() == expected

    def test_to_display_carries_precision(self):
        assert Money(1000, "USD").to_display() == Decimal("10.00")
        assert str(Money(1000, "USD").to_display()) == "10.00"

    def test_precision_lookup(self):
        assert currency_info("CLF").precision == 4
        assert currency_info("jpy").precision == 0


class TestMoneyArithmetic:
    def test_add(self):
        assert Money(150, "USD") + Money(250, "USD") == Money(400, "USD")

    def test_add_across_currencies_fails(self):
        with pytest.raises(CurrencyMismatch):
            Money(150, "USD").add(Money(150, "EUR"))

    def test_subtract(self):
        assert Money(500, "USD") - Money(200, "USD") == Money(300, "USD")

    def test_subtract_below_zero_fails(self):
        with pytest.raises(NegativeResult):
            Money(100, "USD").subtract(Money(200, "USD"))

    def test_subtract_floor_clamps(self):
        assert Money(100, "USD").subtract_floor(Money(200, "USD")).is_zero()

    def test_multiply_rounds_once(self):
        assert Money(333, "USD").multiply("1.5").amount == 500  # 499.5 rounds up

    def test_multiply_negative_factor_fails(self):
        with pytest.raises(NegativeResult):
            Money(100, "USD").multiply(-1)

    def test_percentage(self):
        assert Money(3998, "USD").percentage(10) == Money(400, "USD")
        assert Money(1999, "USD").percentage(15).amount == 300  # 299.85

    def test_min(self):
        assert Money(100, "USD").min(Money(50, "USD")).amount == 50

    def test_ordering(self):
        assert Money(100, "USD") < Money(101, "USD")
        assert Money(200, "USD") > Money(100, "USD")

    def test_ordering_across_currencies_fails(self):
        with pytest.raises(CurrencyMismatch):
            _ = Money(100, "USD") < Money(100, "EUR")


class TestMoneyConversion:
    def test_convert_rounds_into_target_precision(self):
        assert Money(1000, "USD").convert("EUR", Decimal("0.85")) == Money(850, "EUR")

    def test_convert_into_zero_decimal_currency(self):
        assert Money(1999, "USD").convert("JPY", Decimal("110")) == Money(2199, "JPY")  # 2198.9

    def test_convert_to_same_currency_is_identity(self):
        money = Money(1000, "USD")
        assert money.convert("USD", Decimal("2")) is money


class TestRounding:
    @pytest.mark.parametrize(
        "value,expected",
        [("0.5", 1), ("1.5", 2), ("2.5", 3), ("2.4999", 2)],
    )
    def test_round_half_up(self, value, expected):
        assert round_half_up(Decimal(value)) == expected
