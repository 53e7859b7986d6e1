"""
Tests for Money and the single rounding rule.

Money is integer minor units paired with a currency; arithmetic never mixes
currencies and every percentage goes through round_half_up.
"""

from decimal import Decimal

import pytest

from billing_kernel.domain.currency import CurrencyRegistry
from billing_kernel.domain.money import Money, round_half_up, sum_money, to_rate
from billing_kernel.exceptions import CurrencyMismatchError, ValidationError


class TestMoneyConstruction:

    def test_of_and_zero(self):
        assert Money.of(105000, "VND").minor == 105000
        assert Money.zero("VND").is_zero

    def test_lowercase_currency_normalized(self):
        assert Money.of(1, " vnd ").currency == "VND"

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            Money(10.5, "VND")

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            Money(True, "VND")

    def test_unknown_currency_rejected(self):
        with pytest.raises(ValueError, match="Unsupported currency"):
            Money.of(100, "XYZ")

    def test_from_major_uses_currency_exponent(self):
        assert Money.from_major("10.50", "USD").minor == 1050
        assert Money.from_major("105000", "VND").minor == 105000

    def test_from_major_rounds_half_up(self):
        assert Money.from_major("0.005", "USD").minor == 1

    def test_from_major_rejects_float(self):
        with pytest.raises(TypeError):
            Money.from_major(10.5, "USD")


class TestMoneyArithmetic:

    def test_add_and_subtract(self):
        a = Money.of(50000, "VND")
        b = Money.of(55000, "VND")
        assert (a + b).minor == 105000
        assert (b - a).minor == 5000

    def test_mixed_currency_addition_rejected(self):
        with pytest.raises(CurrencyMismatchError) as exc_info:
            Money.of(1, "VND") + Money.of(1, "USD")
        assert exc_info.value.code == "CURRENCY_MISMATCH"
        assert isinstance(exc_info.value, ValidationError)

    def test_mixed_currency_comparison_rejected(self):
        with pytest.raises(CurrencyMismatchError):
            Money.of(1, "VND") < Money.of(1, "USD")

    def test_multiply_by_quantity(self):
        assert (Money.of(50000, "VND") * 2).minor == 100000
        assert (3 * Money.of(100, "VND")).minor == 300

    def test_multiply_by_float_unsupported(self):
        with pytest.raises(TypeError):
            Money.of(100, "VND") * 1.5

    def test_percent_of(self):
        assert Money.of(50000, "VND").percent_of(10).minor == 5000
        assert Money.of(50000, "VND").percent_of("8.5").minor == 4250

    def test_percent_of_rounds_half_up(self):
        # 25 * 10% = 2.5 -> 3
        assert Money.of(25, "VND").percent_of(10).minor == 3
        # 24 * 10% = 2.4 -> 2
        assert Money.of(24, "VND").percent_of(10).minor == 2

    def test_divide_rounds_half_up(self):
        assert Money.of(10, "VND").divide(4).minor == 3
        assert Money.of(9, "VND").divide(4).minor == 2

    def test_divide_by_zero_rejected(self):
        with pytest.raises(ValueError):
            Money.of(10, "VND").divide(0)

    def test_max_zero(self):
        assert Money.of(-5, "VND").max_zero().is_zero
        assert Money.of(5, "VND").max_zero().minor == 5

    def test_sum_money_starts_at_zero(self):
        assert sum_money([], "VND") == Money.zero("VND")
        assert sum_money([Money.of(1, "VND"), Money.of(2, "VND")], "VND").minor == 3


class TestRounding:

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2.5", 3),
            ("2.4999", 2),
            ("-2.5", -3),
            ("0.5", 1),
            ("7", 7),
        ],
    )
    def test_round_half_up(self, value, expected):
        assert round_half_up(Decimal(value)) == expected

    def test_to_rate_rejects_float(self):
        with pytest.raises(TypeError):
            to_rate(0.1)

    def test_to_rate_parses_strings(self):
        assert to_rate("10") == Decimal("10")

    def test_to_rate_rejects_garbage(self):
        with pytest.raises(ValueError):
            to_rate("ten")


class TestFormatting:

    def test_vnd_has_no_decimals(self):
        assert Money.of(105000, "VND").format() == "105,000 VND"

    def test_vnd_symbol_is_suffixed(self):
        assert Money.of(105000, "VND").format(with_symbol=True) == "105,000 ₫"

    def test_usd_symbol_prefixed(self):
        assert Money.of(105050, "USD").format(with_symbol=True) == "$1,050.50"

    def test_str_uses_format(self):
        assert str(Money.of(5000, "VND")) == "5,000 VND"


class TestCurrencyRegistry:

    def test_zero_decimal_currency(self):
        assert CurrencyRegistry.get_decimal_places("VND") == 0
        assert CurrencyRegistry.get_minor_per_major("VND") == 1

    def test_two_decimal_currency(self):
        assert CurrencyRegistry.get_minor_per_major("USD") == 100

    def test_to_major(self):
        assert CurrencyRegistry.to_major("USD", 1050) == Decimal("10.50")

    def test_unknown_code_invalid(self):
        assert not CurrencyRegistry.is_valid("XYZ")
        assert "VND" in CurrencyRegistry.all_codes()
