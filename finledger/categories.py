"""
Category Policy Module

Resolves the category for loan-generated transactions through an explicit,
injectable policy, and builds the transactions that mirror loan
disbursements and repayments in the ledger.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from .currency import Money
from .errors import NotFoundCondition, ValidationError
from .loans import Loan, LoanType
from .logging_config import get_logger
from .transactions import Transaction, TransactionType

logger = get_logger("finledger.categories")


class CategoryTag(Enum):
    """Semantic roles a category can play for loan activity"""
    LOAN_GIVEN = "loan_given"        # Money lent out
    LOAN_TAKEN = "loan_taken"        # Money borrowed
    LOAN_RECEIVED = "loan_received"  # Repayment received on a given loan
    LOAN_REPAID = "loan_repaid"      # Repayment made on a taken loan


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    category_type: TransactionType
    tags: FrozenSet[CategoryTag] = field(default_factory=frozenset)


class CategoryPolicy(ABC):
    """Capability lookup: find a category with a given type and role"""

    @abstractmethod
    def resolve(self, category_type: TransactionType, tag: CategoryTag) -> Optional[str]:
        """Return a category id, or None when the transaction stays uncategorized"""
        pass


class TaggedCategoryPolicy(CategoryPolicy):
    """
    Picks the first category carrying the tag, falling back to any category
    of the right type when allow_fallback is set
    """

    def __init__(self, categories: Iterable[Category], allow_fallback: bool = True):
        self.categories = list(categories)
        self.allow_fallback = allow_fallback

    def resolve(self, category_type: TransactionType, tag: CategoryTag) -> Optional[str]:
        candidates = [c for c in self.categories if c.category_type == category_type]
        for category in candidates:
            if tag in category.tags:
                return category.id

        if self.allow_fallback and candidates:
            logger.warning(
                f"No {category_type.value} category tagged {tag.value}; "
                f"falling back to {candidates[0].name!r}"
            )
            return candidates[0].id

        raise NotFoundCondition(f"No {category_type.value} category for {tag.value}")


class UncategorizedPolicy(CategoryPolicy):
    """Leaves loan transactions without a category"""

    def resolve(self, category_type: TransactionType, tag: CategoryTag) -> Optional[str]:
        return None


def disbursement_direction(loan_type: LoanType) -> TransactionType:
    """Lending money out is an expense; borrowing brings money in"""
    return TransactionType.EXPENSE if loan_type == LoanType.GIVEN else TransactionType.INCOME


def repayment_direction(loan_type: LoanType) -> TransactionType:
    """Repayments flow opposite to the disbursement"""
    return TransactionType.INCOME if loan_type == LoanType.GIVEN else TransactionType.EXPENSE


def build_disbursement_transaction(
    loan: Loan,
    policy: CategoryPolicy,
    transaction_id: str,
    created_at: datetime
) -> Transaction:
    """Transaction moving the loan principal into or out of the loan's account"""
    transaction_type = disbursement_direction(loan.loan_type)
    tag = CategoryTag.LOAN_GIVEN if loan.loan_type == LoanType.GIVEN else CategoryTag.LOAN_TAKEN
    name = (
        f"Loan given to {loan.counterparty}" if loan.loan_type == LoanType.GIVEN
        else f"Loan taken from {loan.counterparty}"
    )
    return Transaction(
        id=transaction_id,
        created_at=created_at,
        updated_at=created_at,
        account_id=loan.account_id,
        amount=loan.principal,
        transaction_type=transaction_type,
        date=loan.start_date,
        name=name,
        category_id=policy.resolve(transaction_type, tag),
        loan_id=loan.id
    )


def build_repayment_transaction(
    loan: Loan,
    amount: Money,
    payment_date: date,
    policy: CategoryPolicy,
    transaction_id: str,
    created_at: datetime,
    account_id: Optional[str] = None
) -> Transaction:
    """Transaction mirroring a repayment; account_id defaults to the loan's account"""
    if not amount.is_positive():
        raise ValidationError("Repayment transactions need a positive amount")
    transaction_type = repayment_direction(loan.loan_type)
    tag = CategoryTag.LOAN_RECEIVED if loan.loan_type == LoanType.GIVEN else CategoryTag.LOAN_REPAID
    name = (
        f"Loan repayment received from {loan.counterparty}" if loan.loan_type == LoanType.GIVEN
        else f"Loan repayment to {loan.counterparty}"
    )
    return Transaction(
        id=transaction_id,
        created_at=created_at,
        updated_at=created_at,
        account_id=account_id or loan.account_id,
        amount=amount,
        transaction_type=transaction_type,
        date=payment_date,
        name=name,
        category_id=policy.resolve(transaction_type, tag),
        loan_id=loan.id
    )
