"""
Calendar Primitives Module

Frequencies and calendar-aware date increments shared by the installment
generator, the loan lifecycle and the recurrence projector.
"""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Union
import calendar

from .errors import ValidationError

DateLike = Union[date, datetime, str]


class Frequency(Enum):
    """Period lengths for schedules and recurring transactions"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


def parse_frequency(value: Union[Frequency, str]) -> Frequency:
    """Coerce a frequency name to Frequency, rejecting unknown values"""
    if isinstance(value, Frequency):
        return value
    try:
        return Frequency(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown frequency: {value!r}")


def to_date(value: DateLike) -> date:
    """Normalize a date, datetime or ISO 8601 string to a date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            return datetime.fromisoformat(text).date()
        except ValueError:
            raise ValidationError(f"Invalid ISO date: {value!r}")
    raise ValidationError(f"Cannot interpret {type(value).__name__} as a date")


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, handling month-end edge cases"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def advance(start_date: date, frequency: Frequency, periods: int = 1) -> date:
    """
    Move start_date forward by a whole number of periods.

    Month and year steps are anchored on start_date, so Jan 31 advanced by
    two months is Mar 31. Installment schedules rely on this; recurrence
    steps one period at a time instead.
    """
    frequency = parse_frequency(frequency)
    if frequency == Frequency.DAILY:
        return start_date + timedelta(days=periods)
    elif frequency == Frequency.WEEKLY:
        return start_date + timedelta(weeks=periods)
    elif frequency == Frequency.MONTHLY:
        return add_months(start_date, periods)
    elif frequency == Frequency.QUARTERLY:
        return add_months(start_date, 3 * periods)
    elif frequency == Frequency.YEARLY:
        return add_months(start_date, 12 * periods)
    raise ValidationError(f"Unsupported frequency: {frequency}")


def days_between(start_date: date, end_date: date) -> int:
    """Calendar days from start_date to end_date (negative if end is earlier)"""
    return (end_date - start_date).days
