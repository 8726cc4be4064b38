"""
Tests for amount coercion and the currency registry.

Covers:
- Decimal-only construction (floats rejected)
- Half-up rounding to each currency's minor unit
- Rounding tolerance and display formatting
- Currency-safe Money arithmetic
"""

from decimal import Decimal

import pytest

from invoicing_kernel.domain.currency import CurrencyRegistry, format_amount, quantize_amount
from invoicing_kernel.domain.values import Money, to_decimal
from invoicing_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidAmountError,
    InvalidCurrencyError,
)


class TestToDecimal:
    def test_accepts_strings_ints_and_decimals(self):
        assert to_decimal("12.50") == Decimal("12.50")
        assert to_decimal(" 7 ") == Decimal("7")
        assert to_decimal(Decimal("0.001")) == Decimal("0.001")

    def test_rejects_float(self):
        """Binary floating point never enters an amount."""
        with pytest.raises(InvalidAmountError) as exc_info:
            to_decimal(0.1, "unit_price")
        assert exc_info.value.field == "unit_price"

    def test_rejects_bool(self):
        with pytest.raises(InvalidAmountError):
            to_decimal(True)

    @pytest.mark.parametrize("value", ["abc", "", "NaN", "Infinity"])
    def test_rejects_non_numeric_and_non_finite(self, value):
        with pytest.raises(InvalidAmountError):
            to_decimal(value)


class TestCurrencyRegistry:
    def test_code_normalized(self):
        assert CurrencyRegistry.validate(" aed ") == "AED"

    @pytest.mark.parametrize("code", ["XXX", "", None, 840])
    def test_unknown_code_rejected(self, code):
        assert not CurrencyRegistry.is_valid(code)
        with pytest.raises(InvalidCurrencyError):
            CurrencyRegistry.validate(code)

    def test_rounding_tolerance_is_one_minor_unit(self):
        assert CurrencyRegistry.get_rounding_tolerance("AED") == Decimal("0.01")
        assert CurrencyRegistry.get_rounding_tolerance("BHD") == Decimal("0.001")
        assert CurrencyRegistry.get_rounding_tolerance("JPY") == Decimal("1")


class TestQuantizeAndFormat:
    @pytest.mark.parametrize(
        "amount,currency,expected",
        [
            ("0.125", "AED", "0.13"),
            ("2.344", "AED", "2.34"),
            ("1.2345", "KWD", "1.235"),
            ("100.5", "JPY", "101"),
        ],
    )
    def test_half_up(self, amount, currency, expected):
        assert quantize_amount(Decimal(amount), currency) == Decimal(expected)

    @pytest.mark.parametrize(
        "amount,currency,expected",
        [
            ("1000", "AED", "AED 1,000.00"),
            ("1234567.891", "USD", "USD 1,234,567.89"),
            ("-12.5", "AED", "AED -12.50"),
            ("1500", "JPY", "JPY 1,500"),
            ("0.5", "KWD", "KWD 0.500"),
        ],
    )
    def test_format_amount(self, amount, currency, expected):
        assert format_amount(Decimal(amount), currency) == expected


class TestMoney:
    def test_addition_same_currency(self):
        assert Money.of("100.10", "AED") + Money.of("0.20", "AED") == Money.of("100.30", "AED")

    def test_addition_mixed_currency_rejected(self):
        with pytest.raises(CurrencyMismatchError):
            Money.of("1", "AED") + Money.of("1", "USD")

    def test_ordering_mixed_currency_rejected(self):
        with pytest.raises(CurrencyMismatchError):
            Money.of("1", "AED") <= Money.of("2", "USD")

    def test_ordering(self):
        assert Money.of("1", "AED") < Money.of("2", "AED")
        assert Money.of("2", "AED") >= Money.of("2.00", "AED")

    def test_multiplication_is_unrounded(self):
        assert (Money.of("10.00", "AED") * Decimal("0.05")).amount == Decimal("0.5000")
        assert (3 * Money.of("1.10", "AED")).amount == Decimal("3.30")

    def test_round_uses_currency_precision(self):
        assert Money.of("2.345", "AED").round().amount == Decimal("2.35")
        assert Money.of("1.2345", "KWD").round().amount == Decimal("1.235")

    def test_sign_helpers(self):
        assert Money.zero("AED").is_zero
        assert Money.of("5", "AED").is_positive
        assert (-Money.of("5", "AED")).is_negative

    def test_currency_normalized_and_validated(self):
        assert Money.of("1", "aed").currency == "AED"
        with pytest.raises(InvalidCurrencyError):
            Money.of("1", "XXX")

    def test_float_rejected(self):
        with pytest.raises(InvalidAmountError):
            Money(0.1, "AED")

    def test_format(self):
        assert Money.of("1000", "AED").format() == "AED 1,000.00"
