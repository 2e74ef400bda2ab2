"""
Test suite for simple interest calculations
"""

import pytest
from decimal import Decimal
from datetime import date

from finledger.currency import Money, Currency
from finledger.errors import ValidationError
from finledger.interest import compute_simple_interest


class TestSimpleInterest:
    """Test principal * rate / 100 * days / basis"""

    def test_one_year_at_twelve_percent(self):
        """Test 1000 at 12% over 365 days earns 120"""
        result = compute_simple_interest(
            Money(Decimal('1000'), Currency.USD), 12, date(2025, 1, 1), date(2026, 1, 1)
        )
        assert result.days == 365
        assert result.interest_amount == Money(Decimal('120.00'), Currency.USD)
        assert result.total_amount == Money(Decimal('1120.00'), Currency.USD)
        assert result.interest_rate == Decimal('12')

    def test_partial_period_rounds_half_up(self):
        """Test 30 days of 5% on 1000 rounds to the cent"""
        result = compute_simple_interest(
            Money(Decimal('1000'), Currency.USD), "5", date(2025, 1, 1), date(2025, 1, 31)
        )
        # 1000 * 0.05 * 30 / 365 = 4.1095...
        assert result.interest_amount == Money(Decimal('4.11'), Currency.USD)

    def test_no_rate_means_no_interest(self):
        """Test missing or non-positive rates"""
        principal = Money(Decimal('500'), Currency.USD)
        for rate in (None, 0, -3):
            result = compute_simple_interest(principal, rate, date(2025, 1, 1), date(2025, 6, 1))
            assert result.interest_amount.is_zero()
            assert result.total_amount == principal

    def test_end_before_start(self):
        """Test an inverted span accrues nothing"""
        result = compute_simple_interest(
            Money(Decimal('500'), Currency.USD), 10, date(2025, 6, 1), date(2025, 1, 1)
        )
        assert result.days == 0
        assert result.interest_amount.is_zero()

    def test_custom_day_count_basis(self):
        """Test a 360 day basis"""
        result = compute_simple_interest(
            Money(Decimal('3600'), Currency.USD), 10, date(2025, 1, 1), date(2025, 1, 31), day_count_basis=360
        )
        assert result.interest_amount == Money(Decimal('30.00'), Currency.USD)

    def test_invalid_basis(self):
        """Test a non-positive basis is rejected"""
        with pytest.raises(ValidationError):
            compute_simple_interest(
                Money(Decimal('100'), Currency.USD), 10, date(2025, 1, 1), date(2025, 2, 1), day_count_basis=0
            )
