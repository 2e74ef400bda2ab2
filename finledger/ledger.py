"""
Ledger Balance Engine Module

Keeps account balances equal to initial balance plus the signed sum of
the account's transactions. Incremental operations (apply, revert,
reapply) are used on each write; full recomputation corrects drift.

All operations are pure: they take records and return new records.
"""

from dataclasses import replace
from typing import Dict, Iterable, List, Mapping, Optional

from .accounts import Account
from .currency import Money, sum_money
from .errors import InvariantViolation, NotFoundCondition, ValidationError
from .logging_config import get_logger
from .transactions import Transaction

APPLY = 1
REVERT = -1


def group_by_account(transactions: Iterable[Transaction]) -> Dict[str, List[Transaction]]:
    """Group transactions into lists keyed by account id"""
    grouped: Dict[str, List[Transaction]] = {}
    for transaction in transactions:
        grouped.setdefault(transaction.account_id, []).append(transaction)
    return grouped


class BalanceEngine:
    """
    Derives and maintains account balances

    Direction comes only from the transaction type: income adds the
    amount, expense subtracts it.
    """

    def __init__(self):
        self.logger = get_logger("finledger.ledger")

    def apply_transaction(self, account: Account, transaction: Transaction, sign: int = APPLY) -> Account:
        """
        Shift an account balance by a transaction's signed amount

        Args:
            account: Account the transaction belongs to
            transaction: Transaction being created (sign=APPLY) or deleted (sign=REVERT)
            sign: APPLY (+1) or REVERT (-1)

        Returns:
            Account with the updated balance
        """
        if sign not in (APPLY, REVERT):
            raise ValidationError(f"sign must be +1 or -1, got {sign!r}")
        self._check_membership(account, transaction)

        delta = transaction.signed_amount * sign
        new_balance = self._checked(account.balance + delta, account)

        self.logger.debug(
            f"{'Applied' if sign == APPLY else 'Reverted'} {transaction.id} on {account.id}: "
            f"{account.balance.to_string()} -> {new_balance.to_string()}"
        )
        return replace(account, balance=new_balance)

    def revert_transaction(self, account: Optional[Account], transaction: Transaction) -> Optional[Account]:
        """
        Undo a transaction's effect, e.g. when it is deleted

        The account may already have been deleted; that is a no-op and
        None is returned.
        """
        if account is None:
            self.logger.warning(
                f"Account {transaction.account_id} not found while reverting "
                f"transaction {transaction.id}; nothing to revert"
            )
            return None
        return self.apply_transaction(account, transaction, REVERT)

    def reapply_transaction(
        self,
        accounts: Mapping[str, Account],
        old_transaction: Transaction,
        new_transaction: Transaction
    ) -> Dict[str, Account]:
        """
        Replace old_transaction's effect with new_transaction's

        Handles changes of amount, type and account. The reversal goes to
        the old account (skipped if it no longer exists) and the new
        application to the new account.

        Args:
            accounts: Current accounts by id
            old_transaction: Transaction as it was applied
            new_transaction: Transaction as it is now

        Returns:
            The accounts whose balance changed, by id

        Raises:
            NotFoundCondition: If the new account does not exist
        """
        if old_transaction.id != new_transaction.id:
            raise ValidationError(
                f"Cannot reapply {old_transaction.id} as {new_transaction.id}"
            )
        if new_transaction.account_id not in accounts:
            raise NotFoundCondition(f"Account {new_transaction.account_id} not found")

        updated: Dict[str, Account] = {}

        reverted = self.revert_transaction(accounts.get(old_transaction.account_id), old_transaction)
        if reverted is not None:
            updated[reverted.id] = reverted

        target = updated.get(new_transaction.account_id, accounts[new_transaction.account_id])
        applied = self.apply_transaction(target, new_transaction)
        updated[applied.id] = applied
        return updated

    def recompute_account_balance(self, account: Account, transactions: Iterable[Transaction]) -> Account:
        """
        Rebuild a balance from scratch: initial balance plus signed amounts

        Transactions for other accounts are ignored, so a caller may pass an
        unfiltered snapshot. The result does not depend on the order of the
        transactions, and calling it twice gives the same balance.
        """
        own = [t for t in transactions if t.account_id == account.id]
        for transaction in own:
            self._check_currency(account, transaction)

        total = sum_money((t.signed_amount for t in own), account.currency)
        balance = self._checked(account.initial_balance + total, account)

        if balance != account.balance:
            self.logger.debug(
                f"Balance drift corrected on {account.id}: "
                f"{account.balance.to_string()} -> {balance.to_string()}"
            )
        return replace(account, balance=balance)

    def recompute_all_balances(
        self,
        accounts: Iterable[Account],
        transactions_by_account: Mapping[str, Iterable[Transaction]]
    ) -> List[Account]:
        """
        Recompute every account, including those with no transactions

        Accounts without transactions reset to their initial balance.
        Transactions grouped under an unknown account are logged and left
        out; they cannot change any balance.
        """
        accounts = list(accounts)
        known = {account.id for account in accounts}

        orphaned = [account_id for account_id in transactions_by_account if account_id not in known]
        for account_id in orphaned:
            self.logger.warning(
                f"Ignoring transactions for unknown account {account_id} during recompute"
            )

        # Build the full result before returning so callers never see a partial sweep
        results = [
            self.recompute_account_balance(account, transactions_by_account.get(account.id, ()))
            for account in accounts
        ]
        self.logger.debug(f"Recomputed {len(results)} account balances")
        return results

    def _check_membership(self, account: Account, transaction: Transaction) -> None:
        if transaction.account_id != account.id:
            raise ValidationError(
                f"Transaction {transaction.id} belongs to account {transaction.account_id}, not {account.id}"
            )
        self._check_currency(account, transaction)

    def _check_currency(self, account: Account, transaction: Transaction) -> None:
        if transaction.currency != account.currency:
            raise ValidationError(
                f"Transaction {transaction.id} is in {transaction.currency.code} "
                f"but account {account.id} is in {account.currency.code}"
            )

    def _checked(self, balance: Money, account: Account) -> Money:
        if not balance.amount.is_finite():
            raise InvariantViolation(f"Non-finite balance computed for account {account.id}")
        return balance
