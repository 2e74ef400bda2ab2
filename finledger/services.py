"""
Services Module

LedgerService and LoanService orchestrate the pure core over a document
store: they load typed records, run the core operation, and persist every
resulting record inside one atomic block. Writers touching the same
account or loan are serialized with per-entity locks.
"""

from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
import threading
import uuid

from .accounts import Account, AccountType
from .categories import (
    Category, CategoryPolicy, TaggedCategoryPolicy,
    build_disbursement_transaction, build_repayment_transaction
)
from .config import FinLedgerConfig, get_config
from .currency import Currency, Money
from .dates import DateLike, Frequency, parse_frequency, to_date
from .errors import NotFoundCondition, ValidationError
from .installments import Installment
from .ledger import BalanceEngine, group_by_account
from .loans import Loan, LoanLifecycle, LoanOrigination, LoanType, PaymentResult, is_overdue
from .logging_config import get_logger, log_action
from .recurrence import UpcomingObligation, upcoming_obligations
from .schemas import (
    AccountDocument, CategoryDocument, InstallmentDocument, LoanDocument, TransactionDocument,
    parse_document
)
from .storage import StorageInterface
from .transactions import Transaction, TransactionType


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _EntityLocks:
    """Lazily created re-entrant lock per entity id"""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def get(self, entity_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(entity_id)
            if lock is None:
                lock = self._locks[entity_id] = threading.RLock()
            return lock


class LedgerService:
    """
    Account and transaction bookkeeping over a document store

    Every write keeps the touched account balances consistent through the
    BalanceEngine; recalculate_balances() is the corrective sweep.
    """

    # Fields update_transaction() accepts
    MUTABLE_TRANSACTION_FIELDS = (
        "account_id", "amount", "transaction_type", "date", "name",
        "category_id", "is_recurring", "recurrence_frequency"
    )

    def __init__(
        self,
        storage: StorageInterface,
        config: Optional[FinLedgerConfig] = None,
        engine: Optional[BalanceEngine] = None
    ):
        self.storage = storage
        self.config = config or get_config()
        self.default_currency = Currency.from_code(self.config.default_currency)
        self.engine = engine or BalanceEngine()
        self.logger = get_logger("finledger.services.ledger")
        self._locks = _EntityLocks()

        self.accounts_table = "accounts"
        self.transactions_table = "transactions"
        self.categories_table = "categories"

    # Accounts

    def create_account(
        self,
        name: str,
        account_type: Union[AccountType, str],
        initial_balance: Money,
        account_id: Optional[str] = None
    ) -> Account:
        """
        Create an account whose balance starts at its initial balance

        Raises:
            ValidationError: For an unknown account type or an id already in use
        """
        try:
            account_type = AccountType(account_type) if not isinstance(account_type, AccountType) else account_type
        except ValueError:
            raise ValidationError(f"Unknown account type: {account_type!r}")

        account_id = account_id or _new_id()
        now = _utcnow()
        account = Account(
            id=account_id,
            created_at=now,
            updated_at=now,
            name=name,
            account_type=account_type,
            initial_balance=initial_balance
        )

        with self._locks.get(account_id):
            if self.storage.exists(self.accounts_table, account_id):
                raise ValidationError(f"Account {account_id} already exists")
            self._save_account(account)

        log_action(
            self.logger, "info", f"Account created: {name}",
            action="create_account", resource=f"account:{account.id}",
            extra={
                "account_type": account_type.value,
                "initial_balance": initial_balance.to_string()
            }
        )
        return account

    def find_account(self, account_id: str) -> Optional[Account]:
        data = self.storage.load(self.accounts_table, account_id)
        if data is None:
            return None
        return parse_document(AccountDocument, data).to_record(self.default_currency)

    def get_account(self, account_id: str) -> Account:
        """
        Raises:
            NotFoundCondition: If the account does not exist
        """
        account = self.find_account(account_id)
        if account is None:
            raise NotFoundCondition(f"Account {account_id} not found")
        return account

    def list_accounts(self) -> List[Account]:
        return [
            parse_document(AccountDocument, data).to_record(self.default_currency)
            for data in self.storage.load_all(self.accounts_table)
        ]

    # Categories

    def list_categories(self) -> List[Category]:
        return [
            parse_document(CategoryDocument, data).to_record()
            for data in self.storage.load_all(self.categories_table)
        ]

    def category_policy(self, allow_fallback: bool = True) -> TaggedCategoryPolicy:
        """Category policy over the categories currently in the store"""
        categories = sorted(self.list_categories(), key=lambda c: c.id)
        return TaggedCategoryPolicy(categories, allow_fallback=allow_fallback)

    # Transactions

    def add_transaction(
        self,
        account_id: str,
        amount: Money,
        transaction_type: Union[TransactionType, str],
        transaction_date: DateLike,
        name: str = "",
        category_id: Optional[str] = None,
        is_recurring: bool = False,
        recurrence_frequency: Optional[Union[Frequency, str]] = None,
        transaction_id: Optional[str] = None
    ) -> Transaction:
        """
        Record a transaction and apply it to its account's balance

        Raises:
            ValidationError: For a non-positive amount or an unknown type or frequency
            NotFoundCondition: If the account does not exist
        """
        now = _utcnow()
        transaction = Transaction(
            id=transaction_id or _new_id(),
            created_at=now,
            updated_at=now,
            account_id=account_id,
            amount=amount,
            transaction_type=self._transaction_type(transaction_type),
            date=to_date(transaction_date),
            name=name,
            category_id=category_id,
            is_recurring=is_recurring,
            recurrence_frequency=parse_frequency(recurrence_frequency) if recurrence_frequency else None
        )
        return self.post_transaction(transaction)

    def post_transaction(self, transaction: Transaction) -> Transaction:
        """Persist an already built transaction and apply it to its account"""
        with self._locks.get(transaction.account_id):
            with self.storage.atomic():
                if self.storage.exists(self.transactions_table, transaction.id):
                    raise ValidationError(f"Transaction {transaction.id} already exists")
                account = self.get_account(transaction.account_id)
                account = self.engine.apply_transaction(account, transaction)
                self._save_transaction(transaction)
                self._save_account(replace(account, updated_at=_utcnow()))

        log_action(
            self.logger, "info", f"Transaction recorded: {transaction.transaction_type.value}",
            action="create_transaction", resource=f"transaction:{transaction.id}",
            extra={
                "account_id": transaction.account_id,
                "amount": transaction.amount.to_string(),
                "loan_id": transaction.loan_id
            }
        )
        return transaction

    def find_transaction(self, transaction_id: str) -> Optional[Transaction]:
        data = self.storage.load(self.transactions_table, transaction_id)
        if data is None:
            return None
        return parse_document(TransactionDocument, data).to_record(self.default_currency)

    def get_transaction(self, transaction_id: str) -> Transaction:
        transaction = self.find_transaction(transaction_id)
        if transaction is None:
            raise NotFoundCondition(f"Transaction {transaction_id} not found")
        return transaction

    def list_transactions(self, account_id: Optional[str] = None) -> List[Transaction]:
        if account_id is None:
            documents = self.storage.load_all(self.transactions_table)
        else:
            documents = self.storage.find(self.transactions_table, {"accountId": account_id})
        return [
            parse_document(TransactionDocument, data).to_record(self.default_currency)
            for data in documents
        ]

    def update_transaction(self, transaction_id: str, **changes: Any) -> Transaction:
        """
        Edit a transaction and move its balance effect accordingly

        Amount, type and account may all change at once. The old effect is
        reversed on the old account (skipped if it was deleted) and the new
        one applied on the new account.

        Raises:
            ValidationError: For an unknown field or invalid new values
            NotFoundCondition: If the transaction or the new account does not exist
        """
        unknown = set(changes) - set(self.MUTABLE_TRANSACTION_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update transaction fields: {sorted(unknown)}")
        if "transaction_type" in changes:
            changes["transaction_type"] = self._transaction_type(changes["transaction_type"])
        if "date" in changes:
            changes["date"] = to_date(changes["date"])
        if changes.get("recurrence_frequency"):
            changes["recurrence_frequency"] = parse_frequency(changes["recurrence_frequency"])

        while True:
            observed = self.get_transaction(transaction_id)
            target_account_id = changes.get("account_id", observed.account_id)
            with self._locked(observed.account_id, target_account_id):
                with self.storage.atomic():
                    # Re-read under the lock; a concurrent writer may have won
                    old = self.get_transaction(transaction_id)
                    if old.account_id != observed.account_id:
                        continue
                    new = replace(old, updated_at=_utcnow(), **changes)

                    accounts = {}
                    for account_id in {old.account_id, new.account_id}:
                        account = self.find_account(account_id)
                        if account is not None:
                            accounts[account_id] = account

                    updated = self.engine.reapply_transaction(accounts, old, new)
                    self._save_transaction(new)
                    for account in updated.values():
                        self._save_account(replace(account, updated_at=_utcnow()))
                    break

        log_action(
            self.logger, "info", "Transaction updated",
            action="update_transaction", resource=f"transaction:{transaction_id}",
            extra={
                "changed_fields": sorted(changes),
                "old_account_id": old.account_id,
                "new_account_id": new.account_id
            }
        )
        return new

    def delete_transaction(self, transaction_id: str) -> bool:
        """
        Delete a transaction and reverse its balance effect

        If the account has already been deleted only the transaction is
        removed. Returns False when the transaction does not exist.
        """
        while True:
            observed = self.find_transaction(transaction_id)
            if observed is None:
                return False
            with self._locks.get(observed.account_id):
                with self.storage.atomic():
                    # Re-read under the lock; a concurrent delete may have won
                    transaction = self.find_transaction(transaction_id)
                    if transaction is None:
                        return False
                    if transaction.account_id != observed.account_id:
                        continue
                    account = self.engine.revert_transaction(
                        self.find_account(transaction.account_id), transaction
                    )
                    self.storage.delete(self.transactions_table, transaction_id)
                    if account is not None:
                        self._save_account(replace(account, updated_at=_utcnow()))
                    break

        log_action(
            self.logger, "info", "Transaction deleted",
            action="delete_transaction", resource=f"transaction:{transaction_id}",
            extra={"account_id": transaction.account_id, "amount": transaction.amount.to_string()}
        )
        return True

    def recalculate_balances(self) -> List[Account]:
        """
        Recompute every balance from the stored transactions

        Accounts without transactions are reset to their initial balance.
        Only accounts whose balance changed are written.
        """
        with self.storage.atomic():
            accounts = self.list_accounts()
            by_account = group_by_account(self.list_transactions())
            recomputed = self.engine.recompute_all_balances(accounts, by_account)

            previous = {account.id: account.balance for account in accounts}
            corrected = [a for a in recomputed if a.balance != previous[a.id]]
            now = _utcnow()
            for account in corrected:
                self._save_account(replace(account, updated_at=now))

        log_action(
            self.logger, "info", "Balances recalculated",
            action="recalculate_balances", resource="accounts",
            extra={"accounts": len(recomputed), "corrected": [a.id for a in corrected]}
        )
        return recomputed

    def upcoming_obligations(
        self,
        now: DateLike,
        window_days: Optional[int] = None,
        transaction_type: Optional[TransactionType] = None
    ) -> List[UpcomingObligation]:
        """Recurring transactions falling due within the window (configured default)"""
        if window_days is None:
            window_days = self.config.upcoming_window_days
        return upcoming_obligations(
            self.list_transactions(), now, window_days=window_days, transaction_type=transaction_type
        )

    def _locked(self, *entity_ids: str):
        # Locks are always taken in sorted id order
        return _MultiLock([self._locks.get(entity_id) for entity_id in sorted(set(entity_ids))])

    def _transaction_type(self, value: Union[TransactionType, str]) -> TransactionType:
        if isinstance(value, TransactionType):
            return value
        try:
            return TransactionType(value)
        except ValueError:
            raise ValidationError(f"Unknown transaction type: {value!r}")

    def _save_account(self, account: Account) -> None:
        self.storage.save(
            self.accounts_table, account.id, AccountDocument.from_record(account).to_document()
        )

    def _save_transaction(self, transaction: Transaction) -> None:
        self.storage.save(
            self.transactions_table, transaction.id, TransactionDocument.from_record(transaction).to_document()
        )


class _MultiLock:
    def __init__(self, locks: Iterable[threading.RLock]):
        self.locks = list(locks)

    def __enter__(self):
        for lock in self.locks:
            lock.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        for lock in reversed(self.locks):
            lock.release()
        return False


class LoanService:
    """
    Loan bookkeeping over a document store

    Each loan operation also records the mirroring ledger transaction
    (disbursement or repayment) through the LedgerService, in the same
    atomic block as the loan and installment writes.
    """

    def __init__(
        self,
        storage: StorageInterface,
        ledger: LedgerService,
        category_policy: CategoryPolicy,
        config: Optional[FinLedgerConfig] = None,
        id_factory: Callable[[], str] = _new_id
    ):
        self.storage = storage
        self.ledger = ledger
        self.category_policy = category_policy
        self.config = config or get_config()
        self.default_currency = Currency.from_code(self.config.default_currency)
        self.lifecycle = LoanLifecycle(self.config)
        self.id_factory = id_factory
        self.logger = get_logger("finledger.services.loans")
        self._locks = _EntityLocks()

        self.loans_table = "loans"
        self.installments_table = "installments"

    def create_loan(
        self,
        loan_type: Union[LoanType, str],
        counterparty: str,
        account_id: str,
        principal: Money,
        start_date: DateLike,
        due_date: Optional[DateLike] = None,
        interest_rate=None,
        is_installment: bool = False,
        installment_count: Optional[int] = None,
        installment_frequency: Optional[Union[Frequency, str]] = None,
        description: str = "",
        loan_id: Optional[str] = None
    ) -> LoanOrigination:
        """
        Originate a loan, persist its schedule and book the disbursement

        Raises:
            NotFoundCondition: If the account does not exist
            ValidationError: For invalid loan terms or a currency that differs
                from the account's
        """
        account = self.ledger.get_account(account_id)
        if account.currency != principal.currency:
            raise ValidationError(
                f"Loan in {principal.currency.code} on account {account_id} in {account.currency.code}"
            )

        origination = self.lifecycle.originate_loan(
            loan_id=loan_id or self.id_factory(),
            loan_type=loan_type,
            counterparty=counterparty,
            account_id=account_id,
            principal=principal,
            start_date=to_date(start_date),
            created_at=_utcnow(),
            due_date=to_date(due_date) if due_date is not None else None,
            interest_rate=interest_rate,
            is_installment=is_installment,
            installment_count=installment_count,
            installment_frequency=installment_frequency,
            description=description,
            id_factory=self.id_factory
        )
        loan = origination.loan

        with self._locks.get(loan.id):
            with self.storage.atomic():
                if self.storage.exists(self.loans_table, loan.id):
                    raise ValidationError(f"Loan {loan.id} already exists")
                self._save_loan(loan)
                for installment in origination.installments:
                    self._save_installment(installment)
                self.ledger.post_transaction(build_disbursement_transaction(
                    loan, self.category_policy, self.id_factory(), loan.created_at
                ))

        log_action(
            self.logger, "info", f"Loan created: {loan.loan_type.value}",
            action="create_loan", resource=f"loan:{loan.id}",
            extra={
                "counterparty": loan.counterparty,
                "principal": loan.principal.to_string(),
                "amount": loan.amount.to_string(),
                "installments": len(origination.installments)
            }
        )
        return origination

    def find_loan(self, loan_id: str) -> Optional[Loan]:
        data = self.storage.load(self.loans_table, loan_id)
        if data is None:
            return None
        return parse_document(LoanDocument, data).to_record(self.default_currency)

    def get_loan(self, loan_id: str) -> Loan:
        """
        Raises:
            NotFoundCondition: If the loan does not exist
        """
        loan = self.find_loan(loan_id)
        if loan is None:
            raise NotFoundCondition(f"Loan {loan_id} not found")
        return loan

    def list_loans(self) -> List[Loan]:
        return [
            parse_document(LoanDocument, data).to_record(self.default_currency)
            for data in self.storage.load_all(self.loans_table)
        ]

    def overdue_loans(self, today: DateLike) -> List[Loan]:
        today = to_date(today)
        return [loan for loan in self.list_loans() if is_overdue(loan, today)]

    def get_installments(self, loan_id: str) -> List[Installment]:
        """Installments of a loan ordered by number"""
        installments = [
            parse_document(InstallmentDocument, data).to_record(self.default_currency)
            for data in self.storage.find(self.installments_table, {"loanId": loan_id})
        ]
        return sorted(installments, key=lambda i: i.installment_number)

    def make_payment(
        self,
        loan_id: str,
        amount: Money,
        payment_date: DateLike,
        account_id: Optional[str] = None
    ) -> PaymentResult:
        """
        Apply a free-form repayment and book it on the ledger

        Only the applied amount is booked; an overpayment is reported on the
        result and leaves no ledger trace.
        """
        payment_date = to_date(payment_date)
        with self._locks.get(loan_id):
            loan = self.get_loan(loan_id)
            result = self.lifecycle.record_payment(loan, amount, payment_date)
            updated = replace(result.loan, updated_at=_utcnow())

            with self.storage.atomic():
                self._save_loan(updated)
                self._book_repayment(updated, result.applied_amount, payment_date, account_id)

        log_action(
            self.logger, "info", "Loan payment recorded",
            action="loan_payment", resource=f"loan:{loan_id}",
            extra={
                "applied": result.applied_amount.to_string(),
                "overpayment": result.overpayment.to_string(),
                "status": updated.status.value
            }
        )
        return replace(result, loan=updated)

    def pay_installment(
        self,
        loan_id: str,
        installment_id: str,
        payment_date: DateLike,
        account_id: Optional[str] = None
    ) -> PaymentResult:
        """Mark an installment paid and book its amount on the ledger"""
        payment_date = to_date(payment_date)
        with self._locks.get(loan_id):
            loan = self.get_loan(loan_id)
            result = self.lifecycle.record_installment_payment(
                loan, self.get_installments(loan_id), installment_id, payment_date
            )
            if not result.applied:
                return result

            updated = replace(result.loan, updated_at=_utcnow())
            with self.storage.atomic():
                self._save_loan(updated)
                self._save_installment(result.installment)
                self._book_repayment(updated, result.applied_amount, payment_date, account_id)

        log_action(
            self.logger, "info", f"Installment {result.installment.installment_number} paid",
            action="installment_payment", resource=f"loan:{loan_id}",
            extra={
                "installment_id": installment_id,
                "amount": result.applied_amount.to_string(),
                "status": updated.status.value
            }
        )
        return replace(result, loan=updated)

    def delete_loan(self, loan_id: str) -> bool:
        """
        Delete a loan and its installment schedule

        Ledger transactions already booked for the loan are kept. Returns
        False when the loan does not exist.

        Raises:
            ValidationError: If the loan is not completed and deletion of
                open loans is disallowed
        """
        with self._locks.get(loan_id):
            loan = self.find_loan(loan_id)
            if loan is None:
                return False
            if self.config.require_completed_loan_for_delete and not loan.is_completed:
                raise ValidationError(f"Loan {loan_id} is {loan.status.value}; only completed loans can be deleted")

            with self.storage.atomic():
                installments = self.storage.find(self.installments_table, {"loanId": loan_id})
                for data in installments:
                    self.storage.delete(self.installments_table, data["id"])
                self.storage.delete(self.loans_table, loan_id)

        log_action(
            self.logger, "info", "Loan deleted",
            action="delete_loan", resource=f"loan:{loan_id}",
            extra={"installments_removed": len(installments), "status": loan.status.value}
        )
        return True

    def _book_repayment(
        self,
        loan: Loan,
        amount: Money,
        payment_date: date,
        account_id: Optional[str]
    ) -> None:
        if not amount.is_positive():
            return
        self.ledger.post_transaction(build_repayment_transaction(
            loan, amount, payment_date, self.category_policy,
            self.id_factory(), _utcnow(), account_id=account_id
        ))

    def _save_loan(self, loan: Loan) -> None:
        self.storage.save(self.loans_table, loan.id, LoanDocument.from_record(loan).to_document())

    def _save_installment(self, installment: Installment) -> None:
        self.storage.save(
            self.installments_table, installment.id, InstallmentDocument.from_record(installment).to_document()
        )
