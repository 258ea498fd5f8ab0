"""
Allocation Plan Models

An allocation plan is a proposed, reviewable distribution of one income
transaction across envelopes. Proposal and application are separate steps:
the user reviews the plan between them.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import Field

from envelope_ledger.models.base import LedgerModel, utcnow
from envelope_ledger.models.money import ZERO, Money


class AllocationPlanStatus(str, Enum):
    """
    Plan lifecycle.

    PENDING -> APPLIED or PENDING -> REJECTED. Both end states are final.
    """
    PENDING = "pending"
    APPLIED = "applied"
    REJECTED = "rejected"


class EnvelopeIncomeAllocation(LedgerModel):
    """Fixed amount to allocate to an envelope from each pay of an income source."""

    unique_together = (("envelope_id", "income_source_id"),)

    envelope_id: UUID
    income_source_id: UUID
    allocation_amount: Money = Field(..., ge=0)
    priority: int = Field(
        default=1,
        description="Order in which allocations are applied (lower numbers first)"
    )
    updated_at: datetime = Field(default_factory=utcnow)


class AllocationPlan(LedgerModel):
    """A proposed distribution of an income transaction."""

    source_transaction_id: UUID
    income_source_id: Optional[UUID] = None
    amount: Money = Field(..., ge=0)
    status: AllocationPlanStatus = AllocationPlanStatus.PENDING

    # Summary data for quick display
    regular_total: Money = ZERO
    surplus_total: Money = ZERO
    envelope_count: int = Field(default=0, ge=0)

    applied_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_final(self) -> bool:
        return self.status != AllocationPlanStatus.PENDING


class AllocationPlanItem(LedgerModel):
    """One envelope's share of a plan."""

    plan_id: UUID
    envelope_id: UUID
    amount: Money = Field(..., ge=0)
    is_regular: bool = Field(
        default=True,
        description="True for a fixed recurring allocation, False for surplus"
    )
    priority: int = 1
    notes: Optional[str] = Field(default=None, max_length=500)
