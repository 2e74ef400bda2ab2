"""
Loan Module

Handles loan origination, free-form repayments, installment repayments and
loan status. Status is never set by hand: derive_status() is applied after
every mutation, so a stored status always agrees with total paid.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple, Union
import uuid

from .config import FinLedgerConfig, get_config
from .currency import Money, NumberLike, sum_money, to_decimal
from .dates import Frequency, parse_frequency
from .errors import (
    InvariantViolation, LoanClosedError, NotFoundCondition,
    PaymentStyleError, ValidationError
)
from .installments import (
    Installment, InstallmentStatus, final_due_date, generate_installments,
    schedule_total, validate_schedule
)
from .interest import InterestCalculation, compute_simple_interest
from .logging_config import get_logger
from .storage import StorageRecord


class LoanType(Enum):
    """Direction of a loan from the user's point of view"""
    GIVEN = "given"   # User lent money out
    TAKEN = "taken"   # User borrowed money


class LoanStatus(Enum):
    """Stored loan states; overdue is a display predicate, not a state"""
    ACTIVE = "active"
    PARTIALLY_PAID = "partially_paid"
    COMPLETED = "completed"


def derive_status(total_paid: Money, amount: Money) -> LoanStatus:
    """The single source of truth for a loan's status"""
    if total_paid >= amount:
        return LoanStatus.COMPLETED
    if total_paid.is_positive():
        return LoanStatus.PARTIALLY_PAID
    return LoanStatus.ACTIVE


@dataclass(frozen=True)
class Loan(StorageRecord):
    """
    Loan with repayment progress

    amount is the total payable: principal plus simple interest for
    interest-bearing loans, otherwise the principal itself. remaining_amount,
    total_paid and status default to a freshly originated loan.
    """
    loan_type: LoanType
    counterparty: str
    account_id: str
    principal: Money
    amount: Money
    start_date: date
    due_date: date
    remaining_amount: Optional[Money] = None
    total_paid: Optional[Money] = None
    interest_rate: Optional[Decimal] = None   # Annual %, e.g. 12 for 12%
    is_installment: bool = False
    installment_count: Optional[int] = None
    installment_frequency: Optional[Frequency] = None
    status: Optional[LoanStatus] = None
    last_payment_date: Optional[date] = None
    description: str = ""

    def __post_init__(self):
        if not self.principal.is_positive():
            raise ValidationError(f"Loan principal must be positive, got {self.principal.to_string()}")
        if self.amount.currency != self.principal.currency:
            raise ValidationError("Loan amount currency must match principal currency")
        if self.amount < self.principal:
            raise ValidationError("Loan amount cannot be less than its principal")

        if self.total_paid is None:
            object.__setattr__(self, 'total_paid', Money.zero(self.amount.currency))
        if self.remaining_amount is None:
            remaining = self.amount - self.total_paid
            object.__setattr__(self, 'remaining_amount', max(remaining, Money.zero(self.amount.currency)))
        if self.status is None:
            object.__setattr__(self, 'status', derive_status(self.total_paid, self.amount))

        if self.is_installment:
            if not self.installment_count or self.installment_count < 1:
                raise ValidationError("Installment loans need an installment count of at least 1")
            if self.installment_frequency is None:
                raise ValidationError("Installment loans need an installment frequency")

    @property
    def currency(self):
        return self.amount.currency

    @property
    def is_completed(self) -> bool:
        return self.status == LoanStatus.COMPLETED


def is_overdue(loan: Loan, today: date) -> bool:
    """Display predicate: unpaid and past its due date"""
    return loan.status != LoanStatus.COMPLETED and loan.due_date < today


def check_loan_invariants(loan: Loan) -> None:
    """
    Fail fast if a loan's repayment fields disagree

    Raises:
        InvariantViolation: If total_paid + remaining_amount != amount, either
            is negative, or status does not match derive_status()
    """
    zero = Money.zero(loan.currency)
    if loan.total_paid < zero or loan.remaining_amount < zero:
        raise InvariantViolation(f"Loan {loan.id} has negative repayment figures")
    if loan.total_paid + loan.remaining_amount != loan.amount:
        raise InvariantViolation(
            f"Loan {loan.id}: paid {loan.total_paid.to_string()} + remaining "
            f"{loan.remaining_amount.to_string()} != amount {loan.amount.to_string()}"
        )
    expected = derive_status(loan.total_paid, loan.amount)
    if loan.status != expected:
        raise InvariantViolation(
            f"Loan {loan.id} status {loan.status.value} should be {expected.value}"
        )


def next_payment_date(installments: Sequence[Installment]) -> Optional[date]:
    """Due date of the earliest pending installment, if any"""
    pending = [i.due_date for i in installments if not i.is_paid]
    return min(pending) if pending else None


@dataclass(frozen=True)
class LoanOrigination:
    """A new loan with its schedule and the interest it was priced with"""
    loan: Loan
    installments: List[Installment]
    interest: InterestCalculation


@dataclass(frozen=True)
class PaymentResult:
    """
    Outcome of a payment operation

    applied is False when the operation changed nothing (a repeated
    installment payment). overpayment is the part of a free-form payment
    above the remaining amount, which is not booked against the loan.
    """
    loan: Loan
    installments: Tuple[Installment, ...]
    applied_amount: Money
    overpayment: Money
    applied: bool = True
    installment: Optional[Installment] = None


class LoanLifecycle:
    """
    Applies payments to loans and keeps their state consistent

    Every operation takes current records and returns new ones; the caller
    persists them and serializes writers per loan.
    """

    def __init__(self, config: Optional[FinLedgerConfig] = None):
        settings = config or get_config()
        self.enforce_installment_order = settings.enforce_installment_order
        self.reject_repeat_installment_payment = settings.reject_repeat_installment_payment
        self.day_count_basis = settings.interest_day_count_basis
        self.logger = get_logger("finledger.loans")

    def originate_loan(
        self,
        loan_id: str,
        loan_type: Union[LoanType, str],
        counterparty: str,
        account_id: str,
        principal: Money,
        start_date: date,
        created_at: datetime,
        due_date: Optional[date] = None,
        interest_rate: Optional[NumberLike] = None,
        is_installment: bool = False,
        installment_count: Optional[int] = None,
        installment_frequency: Optional[Union[Frequency, str]] = None,
        description: str = "",
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4())
    ) -> LoanOrigination:
        """
        Create an active loan and, for installment loans, its schedule

        Interest accrues from start_date to due_date, or to the final
        installment date for installment loans. An installment loan
        without a due date falls due with its last installment.

        Returns:
            LoanOrigination with the loan, its installments (empty for
            free-form loans) and the interest calculation
        """
        try:
            loan_type = LoanType(loan_type) if not isinstance(loan_type, LoanType) else loan_type
        except ValueError:
            raise ValidationError(f"Unknown loan type: {loan_type!r}")
        if not principal.is_positive():
            raise ValidationError(f"Loan principal must be positive, got {principal.to_string()}")
        rate = to_decimal(interest_rate) if interest_rate is not None else None

        installments: List[Installment] = []
        frequency = None
        if is_installment:
            if installment_frequency is None:
                raise ValidationError("Installment loans need an installment frequency")
            frequency = parse_frequency(installment_frequency)
            installments = generate_installments(
                loan_id,
                principal,
                installment_count,
                frequency,
                start_date,
                interest_rate_percent=rate,
                day_count_basis=self.day_count_basis,
                id_factory=id_factory
            )
            last_due = final_due_date(start_date, frequency, installment_count)
            interest = compute_simple_interest(principal, rate, start_date, last_due, self.day_count_basis)
            due_date = due_date or last_due
            amount = schedule_total(installments)
        else:
            if due_date is None:
                raise ValidationError("A due date is required for loans without installments")
            interest = compute_simple_interest(principal, rate, start_date, due_date, self.day_count_basis)
            amount = interest.total_amount

        loan = Loan(
            id=loan_id,
            created_at=created_at,
            updated_at=created_at,
            loan_type=loan_type,
            counterparty=counterparty,
            account_id=account_id,
            principal=principal,
            amount=amount,
            start_date=start_date,
            due_date=due_date,
            interest_rate=rate,
            is_installment=is_installment,
            installment_count=installment_count if is_installment else None,
            installment_frequency=frequency,
            description=description
        )
        check_loan_invariants(loan)

        self.logger.debug(
            f"Originated {loan_type.value} loan {loan_id}: principal {principal.to_string()}, "
            f"payable {amount.to_string()}"
        )
        return LoanOrigination(loan=loan, installments=installments, interest=interest)

    def record_payment(self, loan: Loan, payment_amount: Money, payment_date: date) -> PaymentResult:
        """
        Apply a free-form repayment

        The remaining amount never goes below zero. Any excess over the
        remaining amount is reported as overpayment and not added to
        total_paid.

        Raises:
            ValidationError: If the payment is not positive or in another currency
            PaymentStyleError: If the loan is repaid through installments
            LoanClosedError: If the loan is already completed
        """
        self._validate_payment_amount(loan, payment_amount)
        if loan.is_installment:
            raise PaymentStyleError(
                f"Loan {loan.id} is repaid by installments; use record_installment_payment"
            )
        self._ensure_open(loan)

        applied = min(payment_amount, loan.remaining_amount)
        overpayment = payment_amount - applied
        total_paid = loan.total_paid + applied
        remaining = loan.remaining_amount - applied

        updated = replace(
            loan,
            total_paid=total_paid,
            remaining_amount=remaining,
            status=derive_status(total_paid, loan.amount),
            last_payment_date=payment_date
        )
        check_loan_invariants(updated)

        if overpayment.is_positive():
            self.logger.warning(
                f"Payment of {payment_amount.to_string()} on loan {loan.id} exceeds the remaining "
                f"{loan.remaining_amount.to_string()}; {overpayment.to_string()} not applied"
            )
        self.logger.debug(
            f"Loan {loan.id} paid {applied.to_string()}: status {updated.status.value}, "
            f"remaining {remaining.to_string()}"
        )
        return PaymentResult(
            loan=updated,
            installments=(),
            applied_amount=applied,
            overpayment=overpayment
        )

    def record_installment_payment(
        self,
        loan: Loan,
        installments: Sequence[Installment],
        installment_id: str,
        payment_date: date
    ) -> PaymentResult:
        """
        Mark one installment paid and re-derive the loan's repayment figures

        The caller chooses the installment. total_paid is recomputed as the
        sum of all paid installments rather than incremented.

        Raises:
            PaymentStyleError: If the loan is not an installment loan
            LoanClosedError: If the loan is already completed
            NotFoundCondition: If the installment is not part of the schedule
            ValidationError: For a repeated payment when repeats are rejected, or
                an out-of-order payment when order is enforced
            InvariantViolation: If the stored schedule does not match the loan
        """
        if not loan.is_installment:
            raise PaymentStyleError(
                f"Loan {loan.id} is not an installment loan; use record_payment"
            )
        self._ensure_open(loan)

        schedule = sorted(installments, key=lambda i: i.installment_number)
        target = next((i for i in schedule if i.id == installment_id), None)
        if target is None:
            raise NotFoundCondition(f"Installment {installment_id} not found for loan {loan.id}")
        if any(i.loan_id != loan.id for i in schedule):
            raise InvariantViolation(f"Schedule passed for loan {loan.id} contains foreign installments")
        validate_schedule(schedule, loan.amount)

        zero = Money.zero(loan.currency)
        if target.is_paid:
            if self.reject_repeat_installment_payment:
                raise ValidationError(
                    f"Installment {target.installment_number} of loan {loan.id} is already paid"
                )
            self.logger.info(
                f"Installment {target.installment_number} of loan {loan.id} already paid; ignoring"
            )
            return PaymentResult(
                loan=loan,
                installments=tuple(schedule),
                applied_amount=zero,
                overpayment=zero,
                applied=False,
                installment=target
            )

        if self.enforce_installment_order:
            earliest = next(i for i in schedule if not i.is_paid)
            if earliest.id != target.id:
                raise ValidationError(
                    f"Installment {earliest.installment_number} of loan {loan.id} must be paid "
                    f"before installment {target.installment_number}"
                )

        paid = replace(target, status=InstallmentStatus.PAID, paid_date=payment_date)
        new_schedule = tuple(paid if i.id == target.id else i for i in schedule)

        total_paid = sum_money((i.amount for i in new_schedule if i.is_paid), loan.currency)
        remaining = max(loan.amount - total_paid, zero)
        updated = replace(
            loan,
            total_paid=total_paid,
            remaining_amount=remaining,
            status=derive_status(total_paid, loan.amount),
            last_payment_date=payment_date
        )
        check_loan_invariants(updated)

        self.logger.debug(
            f"Loan {loan.id} installment {paid.installment_number} paid: "
            f"status {updated.status.value}, remaining {remaining.to_string()}"
        )
        return PaymentResult(
            loan=updated,
            installments=new_schedule,
            applied_amount=paid.amount,
            overpayment=zero,
            installment=paid
        )

    def _validate_payment_amount(self, loan: Loan, payment_amount: Money) -> None:
        if payment_amount.currency != loan.currency:
            raise ValidationError(
                f"Payment in {payment_amount.currency.code} on a {loan.currency.code} loan"
            )
        if not payment_amount.is_positive():
            raise ValidationError(f"Payment amount must be positive, got {payment_amount.to_string()}")

    def _ensure_open(self, loan: Loan) -> None:
        if loan.is_completed:
            raise LoanClosedError(f"Loan {loan.id} is already completed")
