"""
Ledger Error Taxonomy

DESIGN DECISION: Errors are grouped by what the caller can do about them.

- LedgerValidationError: the request itself is wrong. Raised before any
  row is touched; the caller can fix the input and retry.
- InvariantViolationError: the request is well-formed but the ledger's
  current state forbids it (not enough money, plan already applied).
  The unit of work is abandoned.
- NotFoundError: the row does not exist or belongs to someone else.
  Foreign rows are reported exactly like missing ones.
- IntegrityError: the ledger is inconsistent (a card without its holding
  envelope, a missing cycle row). Never defaulted, always surfaced.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


# =============================================================================
# VALIDATION
# =============================================================================

class LedgerValidationError(LedgerError):
    """The request is invalid."""
    pass


class InvalidAmountError(LedgerValidationError):
    """An amount is zero, negative or otherwise out of range."""
    pass


class SameEnvelopeError(LedgerValidationError):
    """A transfer names the same envelope on both sides."""

    def __init__(self, envelope_id: UUID):
        self.envelope_id = envelope_id
        super().__init__(f"Cannot transfer an envelope to itself: {envelope_id}")


class EmptySplitsError(LedgerValidationError):
    """A split save was requested with no splits."""

    def __init__(self):
        super().__init__("At least one split is required")


class SplitMismatchError(LedgerValidationError):
    """Splits do not add up to the transaction amount."""

    def __init__(self, expected: Decimal, actual: Decimal):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Splits total {actual} but the transaction is {expected}"
        )


class OverPaymentError(LedgerValidationError):
    """Payment components add up to more than the payment."""

    def __init__(self, total: Decimal, requested: Decimal):
        self.total = total
        self.requested = requested
        super().__init__(
            f"Payment components total {requested} but the payment is {total}"
        )


class UnmatchedIncomeError(LedgerValidationError):
    """An income transaction could not be tied to any income source."""
    pass


# =============================================================================
# INVARIANTS
# =============================================================================

class InvariantViolationError(LedgerError):
    """The ledger's current state forbids the operation."""
    pass


class InsufficientFundsError(InvariantViolationError):
    """An envelope does not hold enough money."""

    def __init__(self, envelope_id: UUID, balance: Decimal, requested: Decimal):
        self.envelope_id = envelope_id
        self.balance = balance
        self.requested = requested
        super().__init__(
            f"Envelope {envelope_id} holds {balance}, {requested} requested"
        )


class PlanAlreadyAppliedError(InvariantViolationError):
    """The allocation plan has already been applied."""

    def __init__(self, plan_id: UUID):
        self.plan_id = plan_id
        super().__init__(f"Allocation plan {plan_id} is already applied")


class PlanRejectedError(InvariantViolationError):
    """The allocation plan was rejected."""

    def __init__(self, plan_id: UUID):
        self.plan_id = plan_id
        super().__init__(f"Allocation plan {plan_id} was rejected")


class CycleClosedError(InvariantViolationError):
    """The billing cycle is closed."""

    def __init__(self, account_id: UUID, billing_cycle: str):
        self.account_id = account_id
        self.billing_cycle = billing_cycle
        super().__init__(f"Billing cycle {billing_cycle} of {account_id} is closed")


class DuplicateReconciliationError(InvariantViolationError):
    """The transaction was already reconciled against this income source."""

    def __init__(self, income_source_id: UUID, transaction_id: UUID):
        self.income_source_id = income_source_id
        self.transaction_id = transaction_id
        super().__init__(
            f"Transaction {transaction_id} is already reconciled "
            f"against income source {income_source_id}"
        )


# =============================================================================
# LOOKUP & INTEGRITY
# =============================================================================

class NotFoundError(LedgerError):
    """A row is missing or belongs to another owner."""

    def __init__(self, entity: str, entity_id: Optional[UUID] = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class MissingEnvelopeError(NotFoundError):
    """An envelope referenced by the request is missing or foreign."""

    def __init__(self, envelope_id: UUID):
        super().__init__("Envelope", envelope_id)


class IntegrityError(LedgerError):
    """The ledger is in an inconsistent state."""
    pass
