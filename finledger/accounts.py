"""
Accounts Module

Account records whose balance is a cache of initial balance plus the signed
sum of the account's transactions. Balances are changed only through the
BalanceEngine in ledger.py.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .currency import Money, Currency
from .errors import ValidationError
from .storage import StorageRecord


class AccountType(Enum):
    """Kinds of money holders a user can track"""
    BANK = "bank"
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PAYPAL = "paypal"
    ZELLE = "zelle"
    CASH_APP = "cash_app"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Account(StorageRecord):
    """
    Account with a derived, cached balance

    initial_balance may be negative (e.g. an opening credit card debt).
    When balance is omitted the account starts at its initial balance.
    """
    name: str
    account_type: AccountType
    initial_balance: Money
    balance: Optional[Money] = None

    def __post_init__(self):
        if self.balance is None:
            object.__setattr__(self, 'balance', self.initial_balance)
        elif self.balance.currency != self.initial_balance.currency:
            raise ValidationError("Balance currency must match initial balance currency")

    @property
    def currency(self) -> Currency:
        return self.initial_balance.currency
