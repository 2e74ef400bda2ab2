"""
Interest Calculator Module

Simple (non-compounding) interest on an actual/365 day count.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from .currency import Money, NumberLike, to_decimal
from .dates import days_between
from .errors import ValidationError
from .logging_config import get_logger

logger = get_logger("finledger.interest")

DEFAULT_DAY_COUNT_BASIS = 365


@dataclass(frozen=True)
class InterestCalculation:
    """Result of a simple interest computation"""
    principal: Money
    interest_rate: Decimal   # Annual rate in percent, e.g. 12 for 12%
    interest_amount: Money
    total_amount: Money
    days: int


def compute_simple_interest(
    principal: Money,
    annual_rate_percent: Optional[NumberLike],
    start_date: date,
    end_date: date,
    day_count_basis: int = DEFAULT_DAY_COUNT_BASIS
) -> InterestCalculation:
    """
    Compute simple interest over a date span

    interest = principal * rate / 100 * days / basis, where days is the
    number of calendar days from start_date to end_date. No interest
    accrues when end_date <= start_date or the rate is not positive.

    Args:
        principal: Amount the interest accrues on
        annual_rate_percent: Annual rate in percent (12 means 12%); None means no interest
        start_date: First day of the term
        end_date: Last day of the term
        day_count_basis: Days per year in the day-count fraction

    Returns:
        InterestCalculation with interest rounded to the currency's minor unit
    """
    if day_count_basis <= 0:
        raise ValidationError(f"Day count basis must be positive, got {day_count_basis}")

    rate = to_decimal(annual_rate_percent) if annual_rate_percent is not None else Decimal('0')
    days = days_between(start_date, end_date)

    if days <= 0 or rate <= 0:
        interest = Money.zero(principal.currency)
    else:
        interest = Money(
            principal.amount * rate / Decimal('100') * Decimal(days) / Decimal(day_count_basis),
            principal.currency
        )

    logger.debug(
        f"Simple interest on {principal.to_string()} at {rate}% for {max(days, 0)} days: "
        f"{interest.to_string()}"
    )
    return InterestCalculation(
        principal=principal,
        interest_rate=rate,
        interest_amount=interest,
        total_amount=principal + interest,
        days=max(days, 0)
    )
