"""Configuration package."""

from envelope_ledger.config.settings import (
    AppSettings,
    IncomeSettings,
    LedgerSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "IncomeSettings",
    "LedgerSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
