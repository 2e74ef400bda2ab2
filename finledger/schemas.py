"""
Pydantic schemas for stored documents

Documents arrive from the document store with loose shapes: camelCase keys,
amounts as numbers or strings, and dates as ISO strings, datetimes or
timestamp objects. These models validate them once at the boundary and
convert them to the typed records the core works with.
"""

from decimal import Decimal
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .accounts import Account, AccountType
from .categories import Category, CategoryTag
from .currency import Currency, Money, to_decimal
from .dates import Frequency, to_date
from .errors import ValidationError
from .installments import Installment, InstallmentStatus
from .loans import Loan, LoanType
from .transactions import Transaction, TransactionType

DocumentT = TypeVar("DocumentT", bound="StoredDocument")


def _timestamp_seconds(value: Any) -> Optional[float]:
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
    else:
        seconds = getattr(value, "seconds", None)
        nanos = getattr(value, "nanoseconds", 0) or 0
    if seconds is None:
        return None
    return float(seconds) + float(nanos) / 1e9


def coerce_datetime(value: Any) -> Optional[datetime]:
    """Normalize datetimes, ISO strings, dates and timestamp objects to aware datetimes"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return coerce_datetime(datetime.fromisoformat(text))
        except ValueError:
            raise ValueError(f"Invalid ISO timestamp: {value!r}")

    converter = getattr(value, "to_datetime", None) or getattr(value, "toDate", None)
    if callable(converter):
        return coerce_datetime(converter())

    seconds = _timestamp_seconds(value)
    if seconds is not None:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    raise ValueError(f"Cannot interpret {type(value).__name__} as a timestamp")


def coerce_date(value: Any) -> Optional[date]:
    """Normalize any supported date shape to a calendar date"""
    if value is None or value == "":
        return None
    if isinstance(value, (date, str)) and not isinstance(value, datetime):
        return to_date(value)
    return coerce_datetime(value).date()


def parse_document(model: Type[DocumentT], data: Dict[str, Any]) -> DocumentT:
    """Validate a raw document, raising finledger's ValidationError on failure"""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model.__name__}: {e}") from e


class StoredDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    currency: Optional[str] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _timestamps(cls, value):
        return coerce_datetime(value)

    def resolve_currency(self, default: Currency) -> Currency:
        return Currency.from_code(self.currency) if self.currency else default

    def timestamps(self):
        created = self.created_at or datetime.now(timezone.utc)
        return created, self.updated_at or created

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the document store (Decimals and dates become strings)"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _decimal(value):
    if value is None or value == "":
        return None
    return to_decimal(value)


class AccountDocument(StoredDocument):
    name: str = ""
    account_type: AccountType = Field(AccountType.CUSTOM, alias="type")
    initial_balance: Decimal = Field(Decimal("0"), alias="initialBalance")
    balance: Optional[Decimal] = None

    @field_validator("account_type", mode="before")
    @classmethod
    def _account_type(cls, value):
        # Older documents use hyphens, e.g. "credit-card"
        return value.replace("-", "_") if isinstance(value, str) else value

    @field_validator("initial_balance", "balance", mode="before")
    @classmethod
    def _amounts(cls, value):
        return _decimal(value)

    def to_record(self, default_currency: Currency) -> Account:
        currency = self.resolve_currency(default_currency)
        created, updated = self.timestamps()
        return Account(
            id=self.id,
            created_at=created,
            updated_at=updated,
            name=self.name,
            account_type=self.account_type,
            initial_balance=Money(self.initial_balance, currency),
            balance=Money(self.balance, currency) if self.balance is not None else None
        )

    @classmethod
    def from_record(cls, account: Account) -> "AccountDocument":
        return cls(
            id=account.id,
            currency=account.currency.code,
            created_at=account.created_at,
            updated_at=account.updated_at,
            name=account.name,
            account_type=account.account_type,
            initial_balance=account.initial_balance.amount,
            balance=account.balance.amount
        )


class TransactionDocument(StoredDocument):
    account_id: str = Field(..., alias="accountId")
    amount: Decimal
    transaction_type: TransactionType = Field(..., alias="type")
    transaction_date: date = Field(..., alias="date")
    name: str = ""
    category_id: Optional[str] = Field(None, alias="categoryId")
    is_recurring: bool = Field(False, alias="isRecurring")
    recurrence_frequency: Optional[Frequency] = Field(None, alias="recurrenceFrequency")
    loan_id: Optional[str] = Field(None, alias="loanId")

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value):
        # Direction lives in the type; stored amounts are magnitudes
        return abs(to_decimal(value))

    @field_validator("transaction_date", mode="before")
    @classmethod
    def _date(cls, value):
        return coerce_date(value)

    def to_record(self, default_currency: Currency) -> Transaction:
        currency = self.resolve_currency(default_currency)
        created, updated = self.timestamps()
        return Transaction(
            id=self.id,
            created_at=created,
            updated_at=updated,
            account_id=self.account_id,
            amount=Money(self.amount, currency),
            transaction_type=self.transaction_type,
            date=self.transaction_date,
            name=self.name,
            category_id=self.category_id,
            is_recurring=self.is_recurring,
            recurrence_frequency=self.recurrence_frequency,
            loan_id=self.loan_id
        )

    @classmethod
    def from_record(cls, transaction: Transaction) -> "TransactionDocument":
        return cls(
            id=transaction.id,
            currency=transaction.currency.code,
            created_at=transaction.created_at,
            updated_at=transaction.updated_at,
            account_id=transaction.account_id,
            amount=transaction.amount.amount,
            transaction_type=transaction.transaction_type,
            transaction_date=transaction.date,
            name=transaction.name,
            category_id=transaction.category_id,
            is_recurring=transaction.is_recurring,
            recurrence_frequency=transaction.recurrence_frequency,
            loan_id=transaction.loan_id
        )


class LoanDocument(StoredDocument):
    loan_type: LoanType = Field(..., alias="type")
    counterparty: str = Field("", alias="borrowerName")
    account_id: str = Field(..., alias="accountId")
    principal: Optional[Decimal] = None
    amount: Decimal
    remaining_amount: Optional[Decimal] = Field(None, alias="remainingAmount")
    total_paid: Optional[Decimal] = Field(None, alias="totalPaid")
    interest_rate: Optional[Decimal] = Field(None, alias="interestRate")
    start_date: date = Field(..., alias="startDate")
    due_date: date = Field(..., alias="dueDate")
    status: Optional[str] = None
    is_installment: bool = Field(False, alias="isInstallment")
    installment_count: Optional[int] = Field(None, alias="installmentCount")
    installment_frequency: Optional[Frequency] = Field(None, alias="installmentFrequency")
    last_payment_date: Optional[date] = Field(None, alias="lastPaymentDate")
    description: str = ""

    @field_validator("principal", "amount", "remaining_amount", "total_paid", "interest_rate", mode="before")
    @classmethod
    def _amounts(cls, value):
        return _decimal(value)

    @field_validator("start_date", "due_date", "last_payment_date", mode="before")
    @classmethod
    def _dates(cls, value):
        return coerce_date(value)

    def to_record(self, default_currency: Currency) -> Loan:
        """
        Build the Loan record

        The stored status is not trusted: it is re-derived from total paid,
        which also retires the legacy stored "overdue" status.
        """
        currency = self.resolve_currency(default_currency)
        created, updated = self.timestamps()
        principal = self.principal if self.principal is not None else self.amount
        return Loan(
            id=self.id,
            created_at=created,
            updated_at=updated,
            loan_type=self.loan_type,
            counterparty=self.counterparty,
            account_id=self.account_id,
            principal=Money(principal, currency),
            amount=Money(self.amount, currency),
            start_date=self.start_date,
            due_date=self.due_date,
            remaining_amount=Money(self.remaining_amount, currency) if self.remaining_amount is not None else None,
            total_paid=Money(self.total_paid, currency) if self.total_paid is not None else None,
            interest_rate=self.interest_rate,
            is_installment=self.is_installment,
            installment_count=self.installment_count if self.is_installment else None,
            installment_frequency=self.installment_frequency if self.is_installment else None,
            last_payment_date=self.last_payment_date,
            description=self.description
        )

    @classmethod
    def from_record(cls, loan: Loan) -> "LoanDocument":
        return cls(
            id=loan.id,
            currency=loan.currency.code,
            created_at=loan.created_at,
            updated_at=loan.updated_at,
            loan_type=loan.loan_type,
            counterparty=loan.counterparty,
            account_id=loan.account_id,
            principal=loan.principal.amount,
            amount=loan.amount.amount,
            remaining_amount=loan.remaining_amount.amount,
            total_paid=loan.total_paid.amount,
            interest_rate=loan.interest_rate,
            start_date=loan.start_date,
            due_date=loan.due_date,
            status=loan.status.value,
            is_installment=loan.is_installment,
            installment_count=loan.installment_count,
            installment_frequency=loan.installment_frequency,
            last_payment_date=loan.last_payment_date,
            description=loan.description
        )


class InstallmentDocument(StoredDocument):
    loan_id: str = Field(..., alias="loanId")
    installment_number: int = Field(..., alias="installmentNumber", ge=1)
    amount: Decimal
    due_date: date = Field(..., alias="dueDate")
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_date: Optional[date] = Field(None, alias="paidDate")

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value):
        return to_decimal(value)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value):
        # "overdue" was once stored; it is a display state of a pending installment
        return "pending" if value == "overdue" else value

    @field_validator("due_date", "paid_date", mode="before")
    @classmethod
    def _dates(cls, value):
        return coerce_date(value)

    def to_record(self, default_currency: Currency) -> Installment:
        currency = self.resolve_currency(default_currency)
        return Installment(
            id=self.id,
            loan_id=self.loan_id,
            installment_number=self.installment_number,
            amount=Money(self.amount, currency),
            due_date=self.due_date,
            status=self.status,
            paid_date=self.paid_date if self.status == InstallmentStatus.PAID else None
        )

    @classmethod
    def from_record(cls, installment: Installment) -> "InstallmentDocument":
        return cls(
            id=installment.id,
            currency=installment.amount.currency.code,
            loan_id=installment.loan_id,
            installment_number=installment.installment_number,
            amount=installment.amount.amount,
            due_date=installment.due_date,
            status=installment.status,
            paid_date=installment.paid_date
        )


class CategoryDocument(StoredDocument):
    name: str
    category_type: TransactionType = Field(..., alias="type")
    tags: List[CategoryTag] = Field(default_factory=list)

    def to_record(self) -> Category:
        return Category(
            id=self.id,
            name=self.name,
            category_type=self.category_type,
            tags=frozenset(self.tags)
        )
