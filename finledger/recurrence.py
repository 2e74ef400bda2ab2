"""
Recurrence Projector Module

Projects the next due date of recurring transactions and surfaces the
obligations falling due within a window.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Union

from .dates import DateLike, Frequency, advance, days_between, parse_frequency, to_date
from .errors import ValidationError
from .logging_config import get_logger
from .transactions import Transaction, TransactionType

logger = get_logger("finledger.recurrence")

# Bound on periods walked before giving up
MAX_PERIODS = 366 * 100


def next_occurrence(
    start_date: DateLike,
    frequency: Optional[Union[Frequency, str]],
    now: DateLike
) -> Optional[date]:
    """
    First occurrence on or after now, never the start date itself

    Starting from start_date, the candidate is advanced one period at a
    time while it is before now. Each step starts from the previous
    candidate, so a month-end start settles on the clamped day (Jan 31
    gives Feb 29, then Mar 29).

    Returns:
        The next due date, or None when there is no frequency
    """
    if frequency is None:
        return None
    frequency = parse_frequency(frequency)
    start = to_date(start_date)
    today = to_date(now)

    candidate = advance(start, frequency)
    if candidate < today and frequency in (Frequency.DAILY, Frequency.WEEKLY):
        # Fixed-length periods: jump straight to the last period before today
        step = 1 if frequency == Frequency.DAILY else 7
        candidate = advance(start, frequency, max(1, days_between(start, today) // step))

    steps = 0
    while candidate < today:
        steps += 1
        if steps > MAX_PERIODS:
            raise ValidationError(f"Recurrence from {start} did not reach {today}")
        candidate = advance(candidate, frequency)
    return candidate


def next_occurrence_for(transaction: Transaction, now: DateLike) -> Optional[date]:
    """Next due date of a transaction, or None if it does not recur"""
    if not transaction.is_recurring or transaction.recurrence_frequency is None:
        return None
    return next_occurrence(transaction.date, transaction.recurrence_frequency, now)


@dataclass(frozen=True)
class UpcomingObligation:
    transaction: Transaction
    due_date: date
    days_until: int


def upcoming_obligations(
    transactions: Iterable[Transaction],
    now: DateLike,
    window_days: int = 30,
    transaction_type: Optional[TransactionType] = None
) -> List[UpcomingObligation]:
    """
    Recurring transactions due within window_days of now

    Sorted by days until due, then by name.
    """
    today = to_date(now)
    upcoming = []
    for transaction in transactions:
        if transaction_type is not None and transaction.transaction_type != transaction_type:
            continue
        due = next_occurrence_for(transaction, today)
        if due is None:
            continue
        days_until = days_between(today, due)
        if 0 <= days_until <= window_days:
            upcoming.append(UpcomingObligation(transaction, due, days_until))

    upcoming.sort(key=lambda item: (item.days_until, item.transaction.name))
    logger.debug(f"{len(upcoming)} recurring obligations due within {window_days} days of {today}")
    return upcoming
