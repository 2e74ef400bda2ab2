"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class FinLedgerConfig(BaseSettings):
    """finledger core configuration"""

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    # Money configuration
    default_currency: str = "USD"  # Applied to documents without a currency field

    # Interest configuration
    interest_day_count_basis: int = 365  # actual/365

    # Recurrence configuration
    upcoming_window_days: int = 30

    # Loan policy configuration
    enforce_installment_order: bool = False  # Only the earliest pending installment may be paid
    reject_repeat_installment_payment: bool = False  # Paying a paid installment raises instead of no-op
    require_completed_loan_for_delete: bool = True

    class Config:
        env_prefix = "FINLEDGER_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = FinLedgerConfig()


def get_config() -> FinLedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> FinLedgerConfig:
    """Reload configuration from environment"""
    global config
    config = FinLedgerConfig()
    return config
