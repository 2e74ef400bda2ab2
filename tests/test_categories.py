"""
Tests for the category policy and loan mirror transactions
"""

import pytest
from decimal import Decimal
from datetime import date, datetime, timezone

from finledger.categories import (
    Category, CategoryTag, TaggedCategoryPolicy, UncategorizedPolicy,
    build_disbursement_transaction, build_repayment_transaction
)
from finledger.currency import Money, Currency
from finledger.errors import NotFoundCondition, ValidationError
from finledger.loans import Loan, LoanType
from finledger.transactions import TransactionType

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)

CATEGORIES = [
    Category("salary", "Salary", TransactionType.INCOME),
    Category("loan_in", "Loan received", TransactionType.INCOME, frozenset({CategoryTag.LOAN_RECEIVED})),
    Category("borrowed", "Borrowed money", TransactionType.INCOME, frozenset({CategoryTag.LOAN_TAKEN})),
    Category("food", "Food", TransactionType.EXPENSE),
    Category("lent", "Money lent", TransactionType.EXPENSE, frozenset({CategoryTag.LOAN_GIVEN})),
]


def make_loan(loan_type):
    principal = Money(Decimal('400'), Currency.USD)
    return Loan(
        id="loan_1",
        created_at=NOW,
        updated_at=NOW,
        loan_type=loan_type,
        counterparty="Bob",
        account_id="acc_1",
        principal=principal,
        amount=Money(Decimal('440'), Currency.USD),
        start_date=date(2025, 1, 1),
        due_date=date(2025, 12, 31)
    )


class TestTaggedCategoryPolicy:
    """Test category resolution by tag"""

    def test_resolves_by_tag(self):
        """Test the tagged category wins over earlier categories"""
        policy = TaggedCategoryPolicy(CATEGORIES)
        assert policy.resolve(TransactionType.INCOME, CategoryTag.LOAN_RECEIVED) == "loan_in"
        assert policy.resolve(TransactionType.EXPENSE, CategoryTag.LOAN_GIVEN) == "lent"

    def test_fallback_to_first_of_type(self):
        """Test an untagged role falls back to the first category of the type"""
        policy = TaggedCategoryPolicy(CATEGORIES)
        assert policy.resolve(TransactionType.EXPENSE, CategoryTag.LOAN_REPAID) == "food"

    def test_no_fallback(self):
        """Test a strict policy raises when no category carries the tag"""
        policy = TaggedCategoryPolicy(CATEGORIES, allow_fallback=False)
        with pytest.raises(NotFoundCondition):
            policy.resolve(TransactionType.EXPENSE, CategoryTag.LOAN_REPAID)

    def test_no_category_of_type(self):
        """Test an empty category list raises"""
        with pytest.raises(NotFoundCondition):
            TaggedCategoryPolicy([]).resolve(TransactionType.INCOME, CategoryTag.LOAN_TAKEN)

    def test_uncategorized(self):
        """Test the uncategorized policy"""
        assert UncategorizedPolicy().resolve(TransactionType.INCOME, CategoryTag.LOAN_TAKEN) is None


class TestMirrorTransactions:
    """Test the ledger side of loan activity"""

    def setup_method(self):
        """Set up test fixtures"""
        self.policy = TaggedCategoryPolicy(CATEGORIES)

    def test_given_loan_disbursement_is_expense(self):
        """Test lending money out debits the account by the principal"""
        tx = build_disbursement_transaction(make_loan(LoanType.GIVEN), self.policy, "tx_1", NOW)
        assert tx.transaction_type == TransactionType.EXPENSE
        assert tx.amount == Money(Decimal('400'), Currency.USD)
        assert tx.category_id == "lent"
        assert tx.loan_id == "loan_1"
        assert tx.date == date(2025, 1, 1)
        assert tx.name == "Loan given to Bob"

    def test_taken_loan_disbursement_is_income(self):
        """Test borrowing credits the account"""
        tx = build_disbursement_transaction(make_loan(LoanType.TAKEN), self.policy, "tx_1", NOW)
        assert tx.transaction_type == TransactionType.INCOME
        assert tx.category_id == "borrowed"

    def test_repayment_directions(self):
        """Test repayments flow opposite to the disbursement"""
        amount = Money(Decimal('110'), Currency.USD)
        received = build_repayment_transaction(
            make_loan(LoanType.GIVEN), amount, date(2025, 3, 1), self.policy, "tx_2", NOW
        )
        assert received.transaction_type == TransactionType.INCOME
        assert received.category_id == "loan_in"
        assert received.account_id == "acc_1"

        repaid = build_repayment_transaction(
            make_loan(LoanType.TAKEN), amount, date(2025, 3, 1), self.policy, "tx_3", NOW, account_id="acc_2"
        )
        assert repaid.transaction_type == TransactionType.EXPENSE
        assert repaid.account_id == "acc_2"

    def test_repayment_needs_positive_amount(self):
        """Test zero repayments are rejected"""
        with pytest.raises(ValidationError):
            build_repayment_transaction(
                make_loan(LoanType.GIVEN), Money.zero(Currency.USD), date(2025, 3, 1), self.policy, "tx", NOW
            )
