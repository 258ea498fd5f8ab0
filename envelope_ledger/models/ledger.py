"""
Core Ledger Models

Accounts hold real money (bank, card, wallet). Envelopes are named
sub-allocations of budgeted money with their own balances, independent
of the account holding the cash. Transactions come from the bank feed;
splits divide one transaction across envelopes.

DESIGN DECISION: Balances on accounts and envelopes are only changed by
the ledger engines, and every change is paired with a ledger-visible
cause (an EnvelopeTransfer, a Transaction, or a reconciliation row).
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from envelope_ledger.models.base import LedgerModel, utcnow
from envelope_ledger.models.money import ZERO, Money


# =============================================================================
# ENUMS
# =============================================================================

class AccountKind(str, Enum):
    """Kinds of accounts that can hold or owe money."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    HOLDING = "holding"
    WALLET = "wallet"


class EnvelopeSubtype(str, Enum):
    """Envelope subtypes. No subtype may go negative."""
    BILL = "bill"
    SPENDING = "spending"
    SAVINGS = "savings"
    GOAL = "goal"
    TRACKING = "tracking"
    DEBT = "debt"


class TransactionType(str, Enum):
    """Transaction types."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    ALLOCATION = "allocation"  # Child rows written when a plan is applied


class TransactionStatus(str, Enum):
    """Reconciliation status of a bank transaction."""
    UNMATCHED = "unmatched"  # Imported, no envelope assigned yet
    PENDING = "pending"      # Envelope(s) assigned, awaiting approval
    APPROVED = "approved"


class PaymentSplitPreference(str, Enum):
    """How the user wants credit card payments handled."""
    ASK_EVERY_TIME = "ask_every_time"
    AUTO_SPLIT = "auto_split"
    ALL_TO_DEBT = "all_to_debt"


# =============================================================================
# ACCOUNTS & ENVELOPES
# =============================================================================

class Account(LedgerModel):
    """
    A bank, credit card, holding or wallet account.

    Credit card balances are negative (money owed).
    """

    name: str = Field(..., min_length=1, max_length=200)
    kind: AccountKind
    current_balance: Money = Field(default=ZERO)
    is_credit_card_holding: bool = False
    is_wallet: bool = False

    # Credit card configuration
    statement_close_day: Optional[int] = Field(default=None, ge=1, le=31)
    payment_due_day: Optional[int] = Field(default=None, ge=1, le=31)
    apr: Optional[Money] = Field(
        default=None,
        ge=0,
        description="Annual percentage rate, e.g. 19.99"
    )
    minimum_payment_amount: Optional[Money] = Field(default=None, ge=0)
    minimum_payment_percentage: Optional[Money] = Field(default=None, ge=0, le=100)
    credit_limit: Optional[Money] = Field(default=None, ge=0)
    payment_split_preference: PaymentSplitPreference = PaymentSplitPreference.ASK_EVERY_TIME
    total_interest_paid: Money = Field(
        default=ZERO,
        description="Running total of interest paid since onboarding"
    )

    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_credit_card(self) -> bool:
        return self.kind == AccountKind.CREDIT

    @property
    def outstanding(self) -> Money:
        """Amount owed on a credit account (positive number)."""
        return abs(self.current_balance)


class Envelope(LedgerModel):
    """A budget envelope. Each owner has at most one Surplus envelope."""

    unique_together = (("surplus_owner_id",),)

    name: str = Field(..., min_length=1, max_length=200)
    subtype: EnvelopeSubtype = EnvelopeSubtype.SPENDING
    current_balance: Money = Field(default=ZERO)
    target_amount: Optional[Money] = Field(default=None, ge=0)

    # Credit-card-holding envelopes point at their card account
    linked_account_id: Optional[UUID] = None
    debt_item_id: Optional[UUID] = None

    is_cc_holding: bool = False
    is_surplus: bool = False
    # Stored as given; no ledger operation overdraws, flagged or not
    allow_overdraft: bool = False

    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def surplus_owner_id(self) -> Optional[UUID]:
        return self.owner_id if self.is_surplus else None


class EnvelopeTransfer(LedgerModel):
    """
    Append-only record of a move between two envelopes.

    CRITICAL: Written only by the transfer engine. Never updated.
    """

    from_envelope_id: UUID
    to_envelope_id: UUID
    amount: Money = Field(..., gt=0)

    from_balance_before: Money
    from_balance_after: Money
    to_balance_before: Money
    to_balance_after: Money

    note: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode='after')
    def validate_conservation(self) -> 'EnvelopeTransfer':
        """Before and after totals across both envelopes must match."""
        before = self.from_balance_before + self.to_balance_before
        after = self.from_balance_after + self.to_balance_after
        if before != after:
            raise ValueError(
                f"Transfer does not conserve money: {before} before, {after} after"
            )
        return self


# =============================================================================
# TRANSACTIONS & SPLITS
# =============================================================================

class Transaction(LedgerModel):
    """A bank transaction (or a child allocation row)."""

    account_id: Optional[UUID] = None
    amount: Money = Field(..., description="Signed amount; income is positive")
    transaction_type: TransactionType
    status: TransactionStatus = TransactionStatus.UNMATCHED
    description: str = Field(default="", max_length=500)
    transaction_date: date = Field(default_factory=date.today)

    # Single-envelope shortcut; cleared when the transaction has several splits
    envelope_id: Optional[UUID] = None

    parent_transaction_id: Optional[UUID] = None
    allocation_plan_id: Optional[UUID] = None
    is_auto_allocated: bool = False

    income_source_id: Optional[UUID] = None

    is_cc_payment: bool = False
    cc_payment_reconciliation_id: Optional[UUID] = None

    updated_at: datetime = Field(default_factory=utcnow)


class TransactionSplit(LedgerModel):
    """One envelope's share of a transaction."""

    transaction_id: UUID
    envelope_id: UUID
    amount: Money


class SplitRequest(BaseModel):
    """
    A requested split, as sent by the caller.

    The caller always sends the complete set of splits for a transaction.
    """
    model_config = ConfigDict(frozen=True)

    envelope_id: UUID
    amount: Money
