"""
Installment Schedule Module

Splits a loan's total payable amount into equal periodic installments.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Union
import uuid

from .currency import Money, NumberLike, split_evenly, sum_money, to_decimal
from .dates import Frequency, advance, parse_frequency
from .errors import InvariantViolation, ValidationError
from .interest import DEFAULT_DAY_COUNT_BASIS, compute_simple_interest
from .logging_config import get_logger

logger = get_logger("finledger.installments")


class InstallmentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"


@dataclass(frozen=True)
class Installment:
    """One scheduled share of a loan's total payable amount"""
    id: str
    loan_id: str
    installment_number: int
    amount: Money
    due_date: date
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_date: Optional[date] = None

    def __post_init__(self):
        if self.installment_number < 1:
            raise ValidationError("Installment numbers start at 1")
        if self.status == InstallmentStatus.PENDING and self.paid_date is not None:
            raise ValidationError(f"Pending installment {self.id} cannot have a paid date")

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID


def final_due_date(start_date: date, frequency: Union[Frequency, str], count: int) -> date:
    """Due date of the last installment of a count-installment schedule"""
    return advance(start_date, parse_frequency(frequency), count)


def generate_installments(
    loan_id: str,
    amount: Money,
    count: int,
    frequency: Union[Frequency, str],
    start_date: date,
    interest_rate_percent: Optional[NumberLike] = None,
    day_count_basis: int = DEFAULT_DAY_COUNT_BASIS,
    id_factory: Callable[[], str] = lambda: str(uuid.uuid4())
) -> List[Installment]:
    """
    Build the installment schedule for a loan

    An interest-bearing loan (rate > 0) is scheduled over principal plus
    simple interest for the whole term, from start_date to the last due
    date. Installment i falls due i periods after start_date. Every
    installment gets total / count rounded down to the minor unit and the
    last one absorbs the remainder, so the amounts sum to the total
    exactly.

    Raises:
        ValidationError: For a count below 1, a non-positive amount or an
            unknown frequency. Nothing is generated in that case.
    """
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise ValidationError(f"Installment count must be an integer of at least 1, got {count!r}")
    if not amount.is_positive():
        raise ValidationError(f"Loan amount must be positive, got {amount.to_string()}")
    frequency = parse_frequency(frequency)

    total = amount
    if interest_rate_percent is not None and to_decimal(interest_rate_percent) > 0:
        total = compute_simple_interest(
            amount,
            interest_rate_percent,
            start_date,
            final_due_date(start_date, frequency, count),
            day_count_basis
        ).total_amount

    shares = split_evenly(total, count)
    schedule = [
        Installment(
            id=id_factory(),
            loan_id=loan_id,
            installment_number=number,
            amount=share,
            due_date=advance(start_date, frequency, number)
        )
        for number, share in enumerate(shares, start=1)
    ]

    logger.debug(
        f"Generated {count} {frequency.value} installments for loan {loan_id} "
        f"totalling {total.to_string()}"
    )
    return schedule


def schedule_total(installments: Iterable[Installment]) -> Money:
    """Sum of all installment amounts"""
    installments = list(installments)
    if not installments:
        raise ValidationError("Schedule is empty")
    return sum_money((i.amount for i in installments), installments[0].amount.currency)


def validate_schedule(installments: Sequence[Installment], expected_total: Money) -> None:
    """
    Check a stored schedule before it is used for payment bookkeeping

    Raises:
        InvariantViolation: If numbers are not exactly 1..count, the schedule
            spans several loans, or the amounts do not sum to expected_total
    """
    if not installments:
        raise InvariantViolation("Installment schedule is empty")

    loan_ids = {i.loan_id for i in installments}
    if len(loan_ids) != 1:
        raise InvariantViolation(f"Schedule mixes installments of loans {sorted(loan_ids)}")

    numbers = sorted(i.installment_number for i in installments)
    if numbers != list(range(1, len(installments) + 1)):
        raise InvariantViolation(f"Installment numbers are not contiguous: {numbers}")

    total = schedule_total(installments)
    if total != expected_total:
        raise InvariantViolation(
            f"Installments sum to {total.to_string()}, expected {expected_total.to_string()}"
        )
