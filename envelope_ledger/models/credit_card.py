"""
Credit Card Models

A card's spending is tracked per billing cycle. A cycle is named after
the month its payment is DUE ("2026-02" closes in January, is due in
February). Money set aside to cover card spending sits in the card's
Credit-Card-Holding envelope until the payment clears it.

DESIGN DECISION: One cycle row per account per billing cycle. A closed
cycle's spending totals are frozen for historical display; payments still
record cleared coverage and paid interest against it.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from envelope_ledger.models.base import LedgerModel, utcnow
from envelope_ledger.models.money import ZERO, Money


class ReconciliationMethod(str, Enum):
    """How a card payment was split."""
    AUTO_SPLIT = "auto_split"
    USER_SPLIT = "user_split"
    ALL_TO_DEBT = "all_to_debt"
    ALL_TO_HOLDING = "all_to_holding"


class ProjectionType(str, Enum):
    """Payment scenario a cached payoff projection was computed for."""
    MINIMUM_ONLY = "minimum_only"
    CURRENT_PAYMENT = "current_payment"
    CUSTOM = "custom"


class CreditCardCycleHolding(LedgerModel):
    """Spending and coverage for one billing cycle of one card."""

    unique_together = (("account_id", "billing_cycle"),)

    account_id: UUID
    billing_cycle: str = Field(
        ...,
        pattern=r"^\d{4}-(0[1-9]|1[0-2])$",
        description="Cycle key, e.g. '2026-01'"
    )
    statement_close_date: date
    payment_due_date: date

    spending_amount: Money = ZERO
    covered_amount: Money = ZERO
    # Coverage already released from holding by a payment
    cleared_amount: Money = ZERO

    interest_amount: Money = ZERO
    interest_paid_amount: Money = ZERO

    is_closed: bool = False
    closed_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def uncovered_amount(self) -> Money:
        return max(ZERO, self.spending_amount - self.covered_amount)

    @property
    def uncleared_coverage(self) -> Money:
        return max(ZERO, self.covered_amount - self.cleared_amount)

    @property
    def outstanding_interest(self) -> Money:
        return max(ZERO, self.interest_amount - self.interest_paid_amount)


class CreditCardPaymentReconciliation(LedgerModel):
    """Append-only record of how one card payment was split."""

    account_id: UUID
    transaction_id: UUID

    total_payment_amount: Money = Field(..., gt=0)
    payment_date: date

    amount_to_holding: Money = ZERO
    amount_to_debt: Money = ZERO
    amount_to_interest: Money = ZERO

    billing_cycle: Optional[str] = None
    reconciliation_method: ReconciliationMethod


class CreditCardPayoffProjection(LedgerModel):
    """
    Cached payoff projection for a card.

    Derived data: recomputed on demand, never authoritative.
    """

    unique_together = (("account_id", "projection_type"),)

    account_id: UUID
    monthly_payment_amount: Money
    apr_used: Money
    starting_balance: Money

    projected_payoff_date: Optional[date] = None  # None = never pays off
    total_interest_projected: Money
    total_payments_projected: Money
    months_to_payoff: int = Field(..., ge=0)

    projection_type: ProjectionType
    calculated_at: datetime = Field(default_factory=utcnow)


class PaymentSplit(BaseModel):
    """Holding / debt / interest components of a card payment."""
    model_config = ConfigDict(frozen=True)

    to_holding: Money = ZERO
    to_debt: Money = ZERO
    to_interest: Money = ZERO
    explanation: str = ""

    @property
    def total(self) -> Money:
        return self.to_holding + self.to_debt + self.to_interest


class CycleComputedValues(BaseModel):
    """Display values derived from a cycle row."""

    uncovered_amount: Money
    coverage_percent: Money
    days_until_close: int
    days_until_due: int
    is_overdue: bool
