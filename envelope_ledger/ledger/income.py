"""
Income Reconciliation & Pay-Cycle Advancer

When a pay lands it is matched to its income source, the variance
against the expected pay is recorded as a permanent event, and the
source's next pay date moves forward one pay cycle.

DESIGN DECISION: Reconciliation events are a historical ledger. They are
never amended or deleted, and a transaction can be reconciled against a
given income source only once.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Union
from uuid import UUID

from dateutil.relativedelta import relativedelta

from envelope_ledger.config import IncomeSettings, get_settings
from envelope_ledger.ledger.access import get_owned, lock_owned
from envelope_ledger.ledger.engine import LedgerEngine
from envelope_ledger.ledger.errors import DuplicateReconciliationError
from envelope_ledger.models.audit import AuditEventBuilder
from envelope_ledger.models.base import utcnow
from envelope_ledger.models.income import (
    IncomeMatch,
    IncomeReconciliationEvent,
    IncomeSource,
    PayCycle,
    VarianceType,
)
from envelope_ledger.models.ledger import Transaction, TransactionType
from envelope_ledger.models.money import ZERO, MoneyInput
from envelope_ledger.validation import require_non_negative, require_positive


# =============================================================================
# PURE FUNCTIONS
# =============================================================================

def advance(from_date: date, pay_cycle: Union[PayCycle, str, None]) -> date:
    """
    Next pay date after `from_date`.

    Weekly adds 7 days, fortnightly 14, monthly one calendar month
    (31 Jan -> 28/29 Feb). Custom and unknown cycles advance monthly.
    """
    cycle = pay_cycle.value if isinstance(pay_cycle, PayCycle) else pay_cycle
    if cycle == PayCycle.WEEKLY.value:
        return from_date + timedelta(days=7)
    if cycle == PayCycle.FORTNIGHTLY.value:
        return from_date + timedelta(days=14)
    return from_date + relativedelta(months=1)


def classify_variance(
    expected: Optional[Decimal],
    actual: Decimal,
    settings: Optional[IncomeSettings] = None,
) -> VarianceType:
    """
    Classify a pay as a bonus, a shortfall or neither.

    A variance counts only when it reaches BOTH the percentage threshold
    and the absolute threshold.
    """
    settings = settings or get_settings().income
    if expected is None or expected <= ZERO:
        return VarianceType.NONE

    difference = actual - expected
    reaches_percentage = abs(difference) / expected >= settings.variance_percentage_threshold
    reaches_absolute = abs(difference) >= settings.variance_absolute_threshold
    if not (reaches_percentage and reaches_absolute):
        return VarianceType.NONE
    return VarianceType.BONUS if difference > ZERO else VarianceType.SHORTFALL


def score_income_match(
    transaction: Transaction,
    source: IncomeSource,
    amount_tolerance: Decimal,
) -> float:
    """
    Confidence (0-1) that `transaction` is a pay from `source`.

    Weights: amount close to the typical pay 50% (scaled by how close),
    source name in the description 30%, income-typed transaction 20%.
    """
    confidence = 0.0

    if source.typical_amount and amount_tolerance > ZERO:
        diff_ratio = abs(transaction.amount - source.typical_amount) / source.typical_amount
        if diff_ratio <= amount_tolerance:
            confidence += 0.5 * float(1 - diff_ratio / amount_tolerance)

    if source.name.lower() in transaction.description.lower():
        confidence += 0.3

    if transaction.transaction_type in (TransactionType.INCOME, TransactionType.TRANSFER):
        confidence += 0.2

    return confidence


def match_income_source(
    transaction: Transaction,
    sources: Iterable[IncomeSource],
    settings: Optional[IncomeSettings] = None,
) -> IncomeMatch:
    """Pick the active income source that best explains a transaction."""
    settings = settings or get_settings().income

    if transaction.amount <= ZERO:
        return IncomeMatch(matched=False, reason="Not a credit")

    active = [source for source in sources if source.is_active]
    if not active:
        return IncomeMatch(matched=False, reason="No active income sources")

    best: Optional[IncomeSource] = None
    best_confidence = 0.0
    for source in active:
        confidence = score_income_match(transaction, source, settings.match_amount_tolerance)
        if confidence > best_confidence:
            best, best_confidence = source, confidence

    best_confidence = min(best_confidence, 1.0)
    if best is not None and best_confidence >= settings.match_min_confidence:
        return IncomeMatch(
            matched=True,
            income_source_id=best.id,
            confidence=best_confidence,
            reason=f"Matched to income source: {best.name}",
        )
    return IncomeMatch(
        matched=False,
        confidence=best_confidence,
        reason="Confidence too low for automatic matching",
    )


# =============================================================================
# RECONCILER
# =============================================================================

class IncomeReconciler(LedgerEngine):
    """Records pay reconciliations and advances pay dates."""

    def reconcile_income(
        self,
        owner_id: UUID,
        income_source_id: UUID,
        transaction_id: UUID,
        transaction_date: date,
        actual_amount: MoneyInput,
        allocations_created: int = 0,
        total_allocated: MoneyInput = ZERO,
        correlation_id: Optional[UUID] = None,
    ) -> IncomeReconciliationEvent:
        """
        Reconcile one pay against its income source.

        Raises:
            InvalidAmountError: If the amount is not positive
            NotFoundError: If the source or transaction is missing or foreign
            DuplicateReconciliationError: If this pair was already reconciled
        """
        correlation_id = self._correlation(correlation_id)
        actual = require_positive(actual_amount, "actual_amount")
        total_allocated = require_non_negative(total_allocated, "total_allocated")

        with self._storage.begin() as uow:
            source = lock_owned(uow, IncomeSource, income_source_id, owner_id)
            transaction = lock_owned(uow, Transaction, transaction_id, owner_id)

            if uow.find(
                IncomeReconciliationEvent,
                income_source_id=source.id,
                transaction_id=transaction.id,
            ):
                raise DuplicateReconciliationError(source.id, transaction.id)

            expected_amount = source.typical_amount
            expected_date = source.next_pay_date
            new_next_pay_date = advance(transaction_date, source.pay_cycle)

            event = IncomeReconciliationEvent(
                owner_id=owner_id,
                income_source_id=source.id,
                transaction_id=transaction.id,
                expected_amount=expected_amount,
                actual_amount=actual,
                expected_date=expected_date,
                actual_date=transaction_date,
                amount_variance=(
                    actual - expected_amount if expected_amount is not None else None
                ),
                date_variance_days=(
                    (transaction_date - expected_date).days
                    if expected_date is not None else None
                ),
                variance_type=classify_variance(expected_amount, actual),
                previous_next_pay_date=expected_date,
                new_next_pay_date=new_next_pay_date,
                allocations_created=allocations_created,
                total_allocated=total_allocated,
            )
            uow.insert(event)

            source.next_pay_date = new_next_pay_date
            source.last_reconciled_date = transaction_date
            source.last_reconciled_transaction_id = transaction.id
            source.updated_at = utcnow()
            uow.update(source)

            if transaction.income_source_id is None:
                transaction.income_source_id = source.id
                transaction.updated_at = utcnow()
                uow.update(transaction)

        self._logger.info(
            "income_reconciled",
            income_source_id=str(source.id),
            variance_type=event.variance_type.value,
            new_next_pay_date=new_next_pay_date.isoformat(),
        )
        self._emit(AuditEventBuilder.income_reconciled(
            owner_id=owner_id,
            event_id=event.id,
            income_source_id=source.id,
            amount_variance=event.amount_variance,
            date_variance_days=event.date_variance_days,
            correlation_id=correlation_id,
        ))
        return event

    def match_income_source(self, owner_id: UUID, transaction_id: UUID) -> IncomeMatch:
        """Match a stored transaction against the owner's income sources."""
        with self._storage.begin() as uow:
            transaction = get_owned(uow, Transaction, transaction_id, owner_id)
            sources = uow.find(IncomeSource, owner_id=owner_id)
        return match_income_source(transaction, sources)

    def history(self, owner_id: UUID, income_source_id: UUID) -> list[IncomeReconciliationEvent]:
        """Reconciliation events of a source, oldest first."""
        with self._storage.begin() as uow:
            get_owned(uow, IncomeSource, income_source_id, owner_id)
            events = uow.find(IncomeReconciliationEvent, income_source_id=income_source_id)
        return sorted(events, key=lambda event: event.created_at)
