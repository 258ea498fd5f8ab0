"""
Data Models Package

This package contains all Pydantic models used by the envelope ledger.
All data flowing through the ledger must conform to these schemas.
"""

from envelope_ledger.models.money import (
    CENT,
    ZERO,
    Money,
    sum_money,
    to_money,
    within_tolerance,
)
from envelope_ledger.models.base import LedgerModel, utcnow
from envelope_ledger.models.ledger import (
    Account,
    AccountKind,
    Envelope,
    EnvelopeSubtype,
    EnvelopeTransfer,
    PaymentSplitPreference,
    SplitRequest,
    Transaction,
    TransactionSplit,
    TransactionStatus,
    TransactionType,
)
from envelope_ledger.models.allocation import (
    AllocationPlan,
    AllocationPlanItem,
    AllocationPlanStatus,
    EnvelopeIncomeAllocation,
)
from envelope_ledger.models.income import (
    IncomeMatch,
    IncomeReconciliationEvent,
    IncomeSource,
    PayCycle,
    VarianceType,
)
from envelope_ledger.models.credit_card import (
    CreditCardCycleHolding,
    CreditCardPaymentReconciliation,
    CreditCardPayoffProjection,
    CycleComputedValues,
    PaymentSplit,
    ProjectionType,
    ReconciliationMethod,
)
from envelope_ledger.models.debt import (
    DebtItem,
    DebtType,
    PaymentComparison,
    PayoffProjection,
)
from envelope_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Money
    "CENT",
    "ZERO",
    "Money",
    "sum_money",
    "to_money",
    "within_tolerance",
    # Base
    "LedgerModel",
    "utcnow",
    # Ledger models
    "Account",
    "AccountKind",
    "Envelope",
    "EnvelopeSubtype",
    "EnvelopeTransfer",
    "PaymentSplitPreference",
    "SplitRequest",
    "Transaction",
    "TransactionSplit",
    "TransactionStatus",
    "TransactionType",
    # Allocation models
    "AllocationPlan",
    "AllocationPlanItem",
    "AllocationPlanStatus",
    "EnvelopeIncomeAllocation",
    # Income models
    "IncomeMatch",
    "IncomeReconciliationEvent",
    "IncomeSource",
    "PayCycle",
    "VarianceType",
    # Credit card models
    "CreditCardCycleHolding",
    "CreditCardPaymentReconciliation",
    "CreditCardPayoffProjection",
    "CycleComputedValues",
    "PaymentSplit",
    "ProjectionType",
    "ReconciliationMethod",
    # Debt models
    "DebtItem",
    "DebtType",
    "PaymentComparison",
    "PayoffProjection",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
