"""
Configuration Management for the Envelope Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Ledger thresholds (lock timeouts, minimum payment rules, income variance
tolerances) live in one place instead of being scattered as literals.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Ledger engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    lock_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="How long to wait for a row lock before giving up"
    )

    # Credit card defaults when a card has no cycle days configured
    default_statement_close_day: int = Field(
        default=1,
        ge=1,
        le=31,
        description="Statement close day used when a card has none"
    )
    default_payment_due_day: int = Field(
        default=15,
        ge=1,
        le=31,
        description="Payment due day used when a card has none"
    )

    # Minimum payment rule for cards without an explicit amount
    minimum_payment_percentage: Decimal = Field(
        default=Decimal("2"),
        ge=0,
        le=100,
        description="Percentage of the balance charged as minimum payment"
    )
    minimum_payment_floor: Decimal = Field(
        default=Decimal("25"),
        ge=0,
        description="Minimum payment never drops below this (unless the balance is lower)"
    )


class IncomeSettings(BaseSettings):
    """Income reconciliation and matching thresholds."""

    model_config = SettingsConfigDict(
        env_prefix="INCOME_",
        extra="ignore"
    )

    variance_percentage_threshold: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Relative variance (0.01 = 1%) needed to flag a bonus or shortfall"
    )
    variance_absolute_threshold: Decimal = Field(
        default=Decimal("1.00"),
        ge=0,
        description="Absolute variance needed to flag a bonus or shortfall"
    )
    match_amount_tolerance: Decimal = Field(
        default=Decimal("0.05"),
        ge=0,
        le=1,
        description="Relative tolerance when matching an amount to a typical pay"
    )
    match_min_confidence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Minimum confidence to accept an income source match"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level for the stdlib logger behind structlog"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def income(self) -> IncomeSettings:
        return IncomeSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("ledger", "income", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
