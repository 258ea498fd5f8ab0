"""
Income Models

Income sources describe expected pay. Every time a pay lands, a
reconciliation event records expected vs actual and the pay date moves
forward by one pay cycle.

DESIGN DECISION: Reconciliation events are append-only. One event per
(income source, transaction); a second attempt is rejected.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from envelope_ledger.models.base import LedgerModel, utcnow
from envelope_ledger.models.money import ZERO, Money


class PayCycle(str, Enum):
    """How often an income source pays."""
    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class VarianceType(str, Enum):
    """Classification of an amount variance."""
    BONUS = "bonus"
    SHORTFALL = "shortfall"
    NONE = "none"


class IncomeSource(LedgerModel):
    """A recurring source of income (e.g. "My Salary")."""

    name: str = Field(..., min_length=1, max_length=200)
    pay_cycle: PayCycle = PayCycle.MONTHLY
    typical_amount: Optional[Money] = Field(
        default=None,
        ge=0,
        description="Expected amount per pay. None for variable income."
    )
    next_pay_date: Optional[date] = None
    is_active: bool = True

    last_reconciled_date: Optional[date] = None
    last_reconciled_transaction_id: Optional[UUID] = None

    updated_at: datetime = Field(default_factory=utcnow)


class IncomeReconciliationEvent(LedgerModel):
    """Append-only record of one pay being matched to its income source."""

    unique_together = (("income_source_id", "transaction_id"),)

    income_source_id: UUID
    transaction_id: UUID

    expected_amount: Optional[Money] = None
    actual_amount: Money
    expected_date: Optional[date] = None
    actual_date: date

    # None when the expectation was unknown
    amount_variance: Optional[Money] = None
    date_variance_days: Optional[int] = None
    variance_type: VarianceType = VarianceType.NONE

    previous_next_pay_date: Optional[date] = None
    new_next_pay_date: date

    allocations_created: int = Field(default=0, ge=0)
    total_allocated: Money = ZERO


class IncomeMatch(BaseModel):
    """Result of matching a transaction against the owner's income sources."""

    matched: bool
    income_source_id: Optional[UUID] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reason: Optional[str] = None
