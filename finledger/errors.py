"""Exception hierarchy for finledger."""


class FinLedgerError(Exception):
    """Base exception for all finledger errors."""


class ValidationError(FinLedgerError, ValueError):
    """Raised when an operation receives invalid input."""


class InvariantViolation(FinLedgerError):
    """Raised when a result would break a ledger or loan invariant."""


class NotFoundCondition(FinLedgerError, LookupError):
    """Raised when a referenced account, loan, installment or category is missing."""


class LoanClosedError(ValidationError):
    """Raised when a payment targets a loan that is already completed."""


class PaymentStyleError(ValidationError):
    """Raised when installment and free-form payments are mixed on one loan."""
