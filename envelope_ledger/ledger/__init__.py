"""
Ledger engines.

The engines live in their own modules (transfers, splits, allocation,
credit_card, debt, income); this package only re-exports the error
taxonomy so callers can catch `envelope_ledger.ledger.LedgerError`.
"""

from envelope_ledger.ledger.errors import (
    CycleClosedError,
    DuplicateReconciliationError,
    EmptySplitsError,
    InsufficientFundsError,
    IntegrityError,
    InvalidAmountError,
    InvariantViolationError,
    LedgerError,
    LedgerValidationError,
    MissingEnvelopeError,
    NotFoundError,
    OverPaymentError,
    PlanAlreadyAppliedError,
    PlanRejectedError,
    SameEnvelopeError,
    SplitMismatchError,
    UnmatchedIncomeError,
)

__all__ = [
    "CycleClosedError",
    "DuplicateReconciliationError",
    "EmptySplitsError",
    "InsufficientFundsError",
    "IntegrityError",
    "InvalidAmountError",
    "InvariantViolationError",
    "LedgerError",
    "LedgerValidationError",
    "MissingEnvelopeError",
    "NotFoundError",
    "OverPaymentError",
    "PlanAlreadyAppliedError",
    "PlanRejectedError",
    "SameEnvelopeError",
    "SplitMismatchError",
    "UnmatchedIncomeError",
]
