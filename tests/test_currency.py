"""
Test suite for currency module

Tests Money arithmetic, exact Decimal conversion and even splitting.
All monetary calculations must use Decimal precision.
"""

import pytest
from decimal import Decimal

from finledger.currency import (
    Money, Currency, to_decimal, decimal_from_string, sum_money, split_evenly
)
from finledger.errors import ValidationError


class TestMoney:
    """Test Money class operations"""

    def test_money_creation(self):
        """Test Money object creation and rounding"""
        money = Money(Decimal('100.50'), Currency.USD)
        assert money.amount == Decimal('100.50')
        assert money.currency == Currency.USD

        # Rounded half up to the currency's minor unit
        assert Money(Decimal('100.555'), Currency.USD).amount == Decimal('100.56')
        assert Money(Decimal('100.5'), Currency.JPY).amount == Decimal('101')

    def test_money_accepts_plain_numbers(self):
        """Test non-Decimal amounts are converted exactly"""
        assert Money("19.99", Currency.USD).amount == Decimal('19.99')
        assert Money(0.1, Currency.USD).amount == Decimal('0.10')
        assert Money(5, Currency.EUR).amount == Decimal('5.00')

    def test_money_rejects_non_finite(self):
        """Test NaN and infinity are rejected"""
        with pytest.raises(ValidationError):
            Money(Decimal('NaN'), Currency.USD)
        with pytest.raises(ValidationError):
            Money(float('inf'), Currency.USD)

    def test_money_arithmetic(self):
        """Test Money arithmetic operations"""
        money1 = Money(Decimal('100.50'), Currency.USD)
        money2 = Money(Decimal('50.25'), Currency.USD)

        assert (money1 + money2).amount == Decimal('150.75')
        assert (money1 - money2).amount == Decimal('50.25')
        assert (money1 * Decimal('2')).amount == Decimal('201.00')
        assert (money1 / Decimal('2')).amount == Decimal('50.25')
        assert (-money1).amount == Decimal('-100.50')
        assert abs(Money(Decimal('-50.00'), Currency.USD)).amount == Decimal('50.00')

    def test_money_comparison(self):
        """Test Money comparison operations"""
        money1 = Money(Decimal('100.00'), Currency.USD)
        money2 = Money(Decimal('50.00'), Currency.USD)

        assert money1 == Money(Decimal('100'), Currency.USD)
        assert money1 != money2
        assert money1 > money2
        assert money2 <= money1
        assert max(money1, money2) == money1

    def test_currency_mismatch(self):
        """Test operations across currencies are rejected"""
        usd = Money(Decimal('10'), Currency.USD)
        eur = Money(Decimal('10'), Currency.EUR)

        with pytest.raises(ValidationError):
            usd + eur
        with pytest.raises(ValidationError):
            usd < eur
        assert usd != eur

    def test_non_money_operand(self):
        """Test adding a bare number is a type error"""
        with pytest.raises(TypeError):
            Money(Decimal('10'), Currency.USD) + 5

    def test_sign_predicates(self):
        """Test zero, positive and negative checks"""
        assert Money.zero(Currency.USD).is_zero()
        assert Money(Decimal('0.01'), Currency.USD).is_positive()
        assert Money(Decimal('-0.01'), Currency.USD).is_negative()

    def test_to_string(self):
        """Test plain string rendering"""
        assert Money(Decimal('1234.5'), Currency.USD).to_string() == "USD 1,234.50"
        assert Money(Decimal('1234'), Currency.JPY).to_string() == "JPY 1,234"


class TestCurrency:
    """Test Currency lookup"""

    def test_from_code(self):
        """Test lookup is case insensitive"""
        assert Currency.from_code("usd") == Currency.USD
        assert Currency.from_code("BDT") == Currency.BDT

    def test_unknown_code(self):
        """Test unknown codes raise ValidationError"""
        with pytest.raises(ValidationError):
            Currency.from_code("XYZ")

    def test_minor_unit(self):
        """Test minor units follow precision"""
        assert Currency.USD.minor_unit == Decimal('0.01')
        assert Currency.JPY.minor_unit == Decimal('1')


class TestDecimalConversion:
    """Test exact conversion helpers"""

    def test_float_has_no_binary_artifacts(self):
        """Test floats convert through their repr"""
        assert to_decimal(0.1) == Decimal('0.1')
        assert to_decimal(1234.56) == Decimal('1234.56')

    def test_int_and_string(self):
        """Test ints and strings convert exactly"""
        assert to_decimal(42) == Decimal('42')
        assert to_decimal("3.14159") == Decimal('3.14159')

    def test_rejects_bool_and_non_finite(self):
        """Test booleans and non-finite values are rejected"""
        with pytest.raises(ValidationError):
            to_decimal(True)
        with pytest.raises(ValidationError):
            to_decimal(float('nan'))
        with pytest.raises(ValidationError):
            to_decimal(None)

    def test_decimal_from_string_formats(self):
        """Test common human formats"""
        assert decimal_from_string("$1,234.56") == Decimal('1234.56')
        assert decimal_from_string("12,50") == Decimal('12.50')
        assert decimal_from_string("1,000") == Decimal('1000')

    def test_decimal_from_string_invalid(self):
        """Test unparseable strings raise ValidationError"""
        with pytest.raises(ValidationError):
            decimal_from_string("abc")
        with pytest.raises(ValidationError):
            decimal_from_string("")


class TestSplitting:
    """Test exact sums and even splits"""

    def test_sum_money(self):
        """Test sums are exact"""
        values = [Money(Decimal('0.10'), Currency.USD)] * 10
        assert sum_money(values, Currency.USD) == Money(Decimal('1.00'), Currency.USD)
        assert sum_money([], Currency.USD).is_zero()

    def test_split_last_part_absorbs_remainder(self):
        """Test 100 / 3 splits into 33.33, 33.33, 33.34"""
        parts = split_evenly(Money(Decimal('100'), Currency.USD), 3)
        assert [p.amount for p in parts] == [Decimal('33.33'), Decimal('33.33'), Decimal('33.34')]
        assert sum_money(parts, Currency.USD) == Money(Decimal('100'), Currency.USD)

    def test_split_rounds_down(self):
        """Test shares round down even when the fraction is above half"""
        parts = split_evenly(Money(Decimal('2.00'), Currency.USD), 3)
        assert [p.amount for p in parts] == [Decimal('0.66'), Decimal('0.66'), Decimal('0.68')]

    def test_split_zero_decimal_currency(self):
        """Test splitting yen keeps whole units"""
        parts = split_evenly(Money(Decimal('1000'), Currency.JPY), 3)
        assert [p.amount for p in parts] == [Decimal('333'), Decimal('333'), Decimal('334')]

    def test_split_invalid_count(self):
        """Test counts below one are rejected"""
        with pytest.raises(ValidationError):
            split_evenly(Money(Decimal('100'), Currency.USD), 0)
        with pytest.raises(ValidationError):
            split_evenly(Money(Decimal('100'), Currency.USD), 2.5)
