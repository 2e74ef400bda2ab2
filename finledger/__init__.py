"""
Financial Ledger & Obligation Scheduling Core

Derives account balances from a transaction log, tracks loan repayment
state, builds installment schedules with simple interest and projects the
next date of recurring obligations. Money is always Decimal.
"""

__version__ = "1.0.0"
