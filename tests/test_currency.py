"""
Tests for Money and amount parsing
"""

import pytest
from decimal import Decimal

from bankease.currency import Money, Currency, parse_amount
from bankease.errors import InvalidAmountError


class TestMoney:
    """Test Money arithmetic and formatting"""

    def test_rounds_to_currency_precision(self):
        """Construction rounds half-up to the currency's minor unit"""
        assert Money(Decimal('10.005'), Currency.USD).amount == Decimal('10.01')
        assert Money(Decimal('10.5'), Currency.JPY).amount == Decimal('11')

    def test_add_and_subtract(self):
        a = Money(Decimal('1000.00'), Currency.USD)
        b = Money(Decimal('250.00'), Currency.USD)
        assert (a - b).amount == Decimal('750.00')
        assert (a + b).amount == Decimal('1250.00')

    def test_mixed_currencies_rejected(self):
        with pytest.raises(ValueError):
            Money(Decimal('1'), Currency.USD) + Money(Decimal('1'), Currency.EUR)
        with pytest.raises(ValueError):
            Money(Decimal('1'), Currency.USD) < Money(Decimal('1'), Currency.EUR)

    def test_decimal_string(self):
        assert Money(Decimal('750'), Currency.USD).to_decimal_string() == "750.00"
        assert Money(Decimal('1500'), Currency.USD).to_string() == "USD 1,500.00"
        assert Money(Decimal('1500'), Currency.JPY).to_decimal_string() == "1500"


class TestParseAmount:
    """Test caller-supplied amount validation"""

    def test_accepts_strings_ints_and_decimals(self):
        assert parse_amount("250.00", Currency.USD).amount == Decimal('250.00')
        assert parse_amount(250, Currency.USD).amount == Decimal('250.00')
        assert parse_amount(Decimal('0.01'), Currency.USD).amount == Decimal('0.01')
        assert parse_amount(" 12.5 ", Currency.USD).amount == Decimal('12.50')

    def test_trailing_zeros_are_not_extra_precision(self):
        assert parse_amount("12.500", Currency.USD).amount == Decimal('12.50')

    @pytest.mark.parametrize("value", [None, "", "abc", "0", "-5", "NaN", "Infinity", True])
    def test_rejects_non_positive_or_malformed(self, value):
        with pytest.raises(InvalidAmountError):
            parse_amount(value, Currency.USD)

    def test_rejects_sub_minor_unit_precision(self):
        with pytest.raises(InvalidAmountError) as exc_info:
            parse_amount("1.001", Currency.USD)
        assert "decimal places" in exc_info.value.message

        with pytest.raises(InvalidAmountError):
            parse_amount("1.5", Currency.JPY)

    def test_bounds(self):
        minimum = Decimal('0.01')
        maximum = Decimal('100000.00')
        assert parse_amount("0.01", Currency.USD, minimum, maximum).amount == minimum

        with pytest.raises(InvalidAmountError) as exc_info:
            parse_amount("100000.01", Currency.USD, minimum, maximum)
        assert "Maximum" in exc_info.value.message

        with pytest.raises(InvalidAmountError) as exc_info:
            parse_amount("1", Currency.USD, minimum=Decimal('5.00'))
        assert "Minimum" in exc_info.value.message
