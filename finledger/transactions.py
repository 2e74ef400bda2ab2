"""
Transactions Module

Income and expense records. Amounts are always stored positive; the
direction of a transaction is carried solely by its type.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from .currency import Money, Currency
from .dates import Frequency
from .errors import ValidationError
from .storage import StorageRecord


class TransactionType(Enum):
    """Direction of a transaction relative to its account"""
    INCOME = "income"
    EXPENSE = "expense"


@dataclass(frozen=True)
class Transaction(StorageRecord):
    """Single ledger entry against one account"""
    account_id: str
    amount: Money
    transaction_type: TransactionType
    date: date
    name: str = ""
    category_id: Optional[str] = None
    is_recurring: bool = False
    recurrence_frequency: Optional[Frequency] = None
    loan_id: Optional[str] = None  # Set on transactions mirroring loan activity

    def __post_init__(self):
        if not self.amount.is_positive():
            raise ValidationError(
                f"Transaction amount must be positive, got {self.amount.to_string()}"
            )
        if not self.account_id:
            raise ValidationError("Transaction must reference an account")

    @property
    def currency(self) -> Currency:
        return self.amount.currency

    @property
    def signed_amount(self) -> Money:
        """+amount for income, -amount for expense"""
        if self.transaction_type == TransactionType.INCOME:
            return self.amount
        return -self.amount

    @property
    def is_loan_generated(self) -> bool:
        return self.loan_id is not None
