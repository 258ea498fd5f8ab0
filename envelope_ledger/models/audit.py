"""
Audit Models for the Envelope Ledger

Every money-moving operation is logged for audit purposes.
This provides:
1. Complete traceability of every balance change
2. Debugging information when an operation is rejected
3. The ability to reconstruct how a balance got where it is

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from envelope_ledger.models.base import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every ledger operation has its own success event type; failures share
    OPERATION_REJECTED (validation and invariant errors) and SYSTEM_ERROR.
    """
    # Envelopes
    TRANSFER_COMPLETED = "transfer_completed"
    SPLITS_SAVED = "splits_saved"

    # Allocation plans
    PLAN_PROPOSED = "plan_proposed"
    PLAN_APPLIED = "plan_applied"
    PLAN_REJECTED = "plan_rejected"

    # Credit cards
    CARD_SPEND_RECORDED = "card_spend_recorded"
    PAYMENT_RECONCILED = "payment_reconciled"
    CYCLE_CLOSED = "cycle_closed"
    INTEREST_CHARGED = "interest_charged"

    # Debt
    ACCOUNT_BALANCE_SYNCED = "account_balance_synced"
    DEBT_PAYMENT_APPLIED = "debt_payment_applied"
    DEBT_PAID_OFF = "debt_paid_off"
    PROJECTION_REFRESHED = "projection_refreshed"

    # Income
    INCOME_RECONCILED = "income_reconciled"

    # Failures
    OPERATION_REJECTED = "operation_rejected"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger operation outcome creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who and what
    owner_id: Optional[UUID] = Field(
        default=None,
        description="Owner whose ledger the event touched"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'envelope', 'allocation_plan')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - all events of one operation share this
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": str(self.owner_id) if self.owner_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_log_dict(), default=str)


def _amount(value: Decimal) -> str:
    return str(value)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transfer_completed(owner_id, transfer, correlation_id)
        event = AuditEventBuilder.plan_applied(owner_id, plan, correlation_id)
    """

    @staticmethod
    def transfer_completed(
        owner_id: UUID,
        transfer_id: UUID,
        from_envelope_id: UUID,
        to_envelope_id: UUID,
        amount: Decimal,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_COMPLETED,
            owner_id=owner_id,
            entity_type="envelope_transfer",
            entity_id=transfer_id,
            correlation_id=correlation_id,
            description=f"Moved {amount} between envelopes",
            details={
                "from_envelope_id": str(from_envelope_id),
                "to_envelope_id": str(to_envelope_id),
                "amount": _amount(amount),
            },
        )

    @staticmethod
    def splits_saved(
        owner_id: UUID,
        transaction_id: UUID,
        split_count: int,
        total: Decimal,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLITS_SAVED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction split across {split_count} envelope(s)",
            details={
                "split_count": split_count,
                "total": _amount(total),
            },
        )

    @staticmethod
    def plan_proposed(
        owner_id: UUID,
        plan_id: UUID,
        source_transaction_id: UUID,
        amount: Decimal,
        envelope_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_PROPOSED,
            owner_id=owner_id,
            entity_type="allocation_plan",
            entity_id=plan_id,
            correlation_id=correlation_id,
            description=f"Allocation plan proposed for {amount} across {envelope_count} envelope(s)",
            details={
                "source_transaction_id": str(source_transaction_id),
                "amount": _amount(amount),
                "envelope_count": envelope_count,
            },
        )

    @staticmethod
    def plan_applied(
        owner_id: UUID,
        plan_id: UUID,
        amount: Decimal,
        envelope_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_APPLIED,
            owner_id=owner_id,
            entity_type="allocation_plan",
            entity_id=plan_id,
            correlation_id=correlation_id,
            description=f"Allocation plan applied: {amount} to {envelope_count} envelope(s)",
            details={
                "amount": _amount(amount),
                "envelope_count": envelope_count,
            },
        )

    @staticmethod
    def plan_rejected(
        owner_id: UUID,
        plan_id: UUID,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_REJECTED,
            owner_id=owner_id,
            entity_type="allocation_plan",
            entity_id=plan_id,
            correlation_id=correlation_id,
            description="Allocation plan rejected",
        )

    @staticmethod
    def card_spend_recorded(
        owner_id: UUID,
        account_id: UUID,
        billing_cycle: str,
        amount: Decimal,
        covered_amount: Decimal,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARD_SPEND_RECORDED,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Card spend of {amount} recorded in cycle {billing_cycle}",
            details={
                "billing_cycle": billing_cycle,
                "amount": _amount(amount),
                "covered_amount": _amount(covered_amount),
            },
        )

    @staticmethod
    def payment_reconciled(
        owner_id: UUID,
        reconciliation_id: UUID,
        account_id: UUID,
        method: str,
        to_holding: Decimal,
        to_debt: Decimal,
        to_interest: Decimal,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_RECONCILED,
            owner_id=owner_id,
            entity_type="cc_payment_reconciliation",
            entity_id=reconciliation_id,
            correlation_id=correlation_id,
            description=f"Card payment reconciled ({method})",
            details={
                "account_id": str(account_id),
                "method": method,
                "to_holding": _amount(to_holding),
                "to_debt": _amount(to_debt),
                "to_interest": _amount(to_interest),
            },
        )

    @staticmethod
    def cycle_closed(
        owner_id: UUID,
        account_id: UUID,
        billing_cycle: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CYCLE_CLOSED,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Billing cycle {billing_cycle} closed",
            details={"billing_cycle": billing_cycle},
        )

    @staticmethod
    def interest_charged(
        owner_id: UUID,
        account_id: UUID,
        billing_cycle: str,
        amount: Decimal,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INTEREST_CHARGED,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Interest of {amount} charged in cycle {billing_cycle}",
            details={
                "billing_cycle": billing_cycle,
                "amount": _amount(amount),
            },
        )

    @staticmethod
    def account_balance_synced(
        owner_id: UUID,
        account_id: UUID,
        old_balance: Decimal,
        new_balance: Decimal,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_BALANCE_SYNCED,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account balance synced: {old_balance} -> {new_balance}",
            details={
                "old_balance": _amount(old_balance),
                "new_balance": _amount(new_balance),
            },
        )

    @staticmethod
    def debt_payment_applied(
        owner_id: UUID,
        debt_item_id: UUID,
        amount: Decimal,
        new_balance: Decimal,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_PAYMENT_APPLIED,
            owner_id=owner_id,
            entity_type="debt_item",
            entity_id=debt_item_id,
            correlation_id=correlation_id,
            description=f"Debt payment of {amount} applied",
            details={
                "amount": _amount(amount),
                "new_balance": _amount(new_balance),
            },
        )

    @staticmethod
    def debt_paid_off(
        owner_id: UUID,
        debt_item_id: UUID,
        name: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_PAID_OFF,
            owner_id=owner_id,
            entity_type="debt_item",
            entity_id=debt_item_id,
            correlation_id=correlation_id,
            description=f"Debt paid off: {name}",
            details={"name": name},
        )

    @staticmethod
    def projection_refreshed(
        owner_id: UUID,
        account_id: UUID,
        projection_type: str,
        months_to_payoff: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROJECTION_REFRESHED,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Payoff projection refreshed ({projection_type})",
            details={
                "projection_type": projection_type,
                "months_to_payoff": months_to_payoff,
            },
        )

    @staticmethod
    def income_reconciled(
        owner_id: UUID,
        event_id: UUID,
        income_source_id: UUID,
        amount_variance: Optional[Decimal],
        date_variance_days: Optional[int],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_RECONCILED,
            owner_id=owner_id,
            entity_type="income_reconciliation_event",
            entity_id=event_id,
            correlation_id=correlation_id,
            description="Income reconciled against its source",
            details={
                "income_source_id": str(income_source_id),
                "amount_variance": _amount(amount_variance) if amount_variance is not None else None,
                "date_variance_days": date_variance_days,
            },
        )

    @staticmethod
    def operation_rejected(
        owner_id: Optional[UUID],
        operation: str,
        error_code: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_REJECTED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Operation rejected: {operation}",
            details={"operation": operation},
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
        owner_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            description=f"System error: {error_type}",
            error_code=error_type,
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
