"""
Debt Models

A debt item lives inside a debt envelope. When it is linked to an account
(usually a credit card) the account balance is authoritative and the debt
item mirrors it; unlinked debts (a personal loan tracked by hand) are
paid down directly.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from envelope_ledger.models.base import LedgerModel, utcnow
from envelope_ledger.models.money import ZERO, Money, to_money


class DebtType(str, Enum):
    """Kinds of debt a user can track."""
    CREDIT_CARD = "credit_card"
    PERSONAL_LOAN = "personal_loan"
    CAR_LOAN = "car_loan"
    STUDENT_LOAN = "student_loan"
    AFTERPAY = "afterpay"
    HP = "hp"  # Hire purchase
    OTHER = "other"


class DebtItem(LedgerModel):
    """A single debt within a debt envelope."""

    unique_together = (("envelope_id", "name"),)

    envelope_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    debt_type: DebtType = DebtType.OTHER
    linked_account_id: Optional[UUID] = None

    starting_balance: Money = Field(..., ge=0)
    current_balance: Money = Field(..., description="Amount still owed")
    interest_rate: Optional[Money] = Field(
        default=None,
        ge=0,
        description="APR as a percentage, e.g. 19.99"
    )
    minimum_payment: Optional[Money] = Field(default=None, ge=0)
    display_order: int = 0

    paid_off_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_linked(self) -> bool:
        return self.linked_account_id is not None

    @property
    def is_paid_off(self) -> bool:
        return self.paid_off_at is not None

    @property
    def progress_percent(self) -> Money:
        """Share of the starting balance already paid, 0-100."""
        if self.starting_balance <= ZERO:
            return to_money(100)
        paid = self.starting_balance - max(ZERO, self.current_balance)
        return to_money(max(ZERO, min(paid * 100 / self.starting_balance, Decimal(100))))


class PayoffProjection(BaseModel):
    """
    Result of an amortisation run.

    months_to_payoff == NEVER_PAYS_OFF_MONTHS and payoff_date None mean the
    payment never clears the balance.
    """

    starting_balance: Money
    apr: Money
    monthly_payment: Money
    months_to_payoff: int = Field(..., ge=0)
    payoff_date: Optional[date] = None
    total_interest: Money = ZERO
    total_payments: Money = ZERO
    converges: bool = True


class PaymentComparison(BaseModel):
    """Two payment scenarios for the same balance, side by side."""

    current: PayoffProjection
    alternative: PayoffProjection
    months_saved: Optional[int] = None  # None when either scenario never pays off
    interest_saved: Optional[Money] = None
