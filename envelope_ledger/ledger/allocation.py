"""
Auto-Allocation Planner

Two phases, deliberately split so that user review never happens while
a lock is held:

1. propose_plan: read the income source's allocation rules and build a
   plan (regular items first by priority, remainder to Surplus)
2. apply_plan: credit every envelope in one atomic batch

LOCK ORDER (propose and apply): source transaction, plan rows, then
envelopes in ascending id order. Apply reads the plan unlocked only to
find its transaction, then locks and re-checks it.
"""

from typing import Optional
from uuid import UUID

from envelope_ledger.ledger.access import credit_envelope, get_owned, lock_owned
from envelope_ledger.ledger.engine import LedgerEngine
from envelope_ledger.ledger.errors import (
    InvalidAmountError,
    MissingEnvelopeError,
    PlanAlreadyAppliedError,
    PlanRejectedError,
    UnmatchedIncomeError,
)
from envelope_ledger.ledger.income import match_income_source
from envelope_ledger.models.allocation import (
    AllocationPlan,
    AllocationPlanItem,
    AllocationPlanStatus,
    EnvelopeIncomeAllocation,
)
from envelope_ledger.models.audit import AuditEventBuilder
from envelope_ledger.models.base import utcnow
from envelope_ledger.models.income import IncomeSource
from envelope_ledger.models.ledger import (
    Envelope,
    EnvelopeSubtype,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from envelope_ledger.models.money import ZERO, MoneyInput, sum_money
from envelope_ledger.services.storage import UnitOfWork
from envelope_ledger.validation import require_non_negative


SURPLUS_ENVELOPE_NAME = "Surplus"


class AllocationPlanner(LedgerEngine):
    """Proposes, applies and rejects income allocation plans."""

    # =========================================================================
    # PROPOSE
    # =========================================================================

    def propose_plan(
        self,
        owner_id: UUID,
        source_transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AllocationPlan:
        """
        Build a pending plan for an income transaction.

        Raises:
            NotFoundError: If the transaction is missing or foreign
            InvalidAmountError: If it is not a positive income transaction
            UnmatchedIncomeError: If no income source can be determined
            PlanAlreadyAppliedError: If the transaction already has an applied plan
        """
        correlation_id = self._correlation(correlation_id)

        with self._storage.begin() as uow:
            transaction = lock_owned(uow, Transaction, source_transaction_id, owner_id)
            if transaction.transaction_type != TransactionType.INCOME or transaction.amount <= ZERO:
                raise InvalidAmountError(
                    f"Only positive income can be allocated, got "
                    f"{transaction.transaction_type.value} of {transaction.amount}"
                )

            source = self._resolve_income_source(uow, owner_id, transaction)
            self._supersede_pending_plans(uow, owner_id, transaction.id)

            plan = AllocationPlan(
                owner_id=owner_id,
                source_transaction_id=transaction.id,
                income_source_id=source.id,
                amount=transaction.amount,
            )
            items = self._build_items(uow, owner_id, plan, source.id)

            plan.regular_total = sum_money(item.amount for item in items if item.is_regular)
            plan.surplus_total = sum_money(item.amount for item in items if not item.is_regular)
            plan.envelope_count = len({item.envelope_id for item in items})

            uow.insert(plan)
            for item in items:
                uow.insert(item)

        self._emit(AuditEventBuilder.plan_proposed(
            owner_id=owner_id,
            plan_id=plan.id,
            source_transaction_id=source_transaction_id,
            amount=plan.amount,
            envelope_count=plan.envelope_count,
            correlation_id=correlation_id,
        ))
        return plan

    def _resolve_income_source(
        self,
        uow: UnitOfWork,
        owner_id: UUID,
        transaction: Transaction,
    ) -> IncomeSource:
        if transaction.income_source_id is not None:
            return get_owned(uow, IncomeSource, transaction.income_source_id, owner_id)

        match = match_income_source(transaction, uow.find(IncomeSource, owner_id=owner_id))
        if not match.matched:
            raise UnmatchedIncomeError(
                f"Transaction {transaction.id} matches no income source: {match.reason}"
            )

        transaction.income_source_id = match.income_source_id
        transaction.updated_at = utcnow()
        uow.update(transaction)
        return get_owned(uow, IncomeSource, match.income_source_id, owner_id)

    def _supersede_pending_plans(
        self,
        uow: UnitOfWork,
        owner_id: UUID,
        transaction_id: UUID,
    ) -> None:
        """Reject older pending plans; refuse if one was already applied."""
        for existing in uow.find(AllocationPlan, source_transaction_id=transaction_id):
            if existing.owner_id != owner_id:
                continue
            if existing.status == AllocationPlanStatus.APPLIED:
                raise PlanAlreadyAppliedError(existing.id)
            if existing.status == AllocationPlanStatus.PENDING:
                stale = uow.lock(AllocationPlan, existing.id)
                stale.status = AllocationPlanStatus.REJECTED
                stale.rejected_at = utcnow()
                stale.updated_at = stale.rejected_at
                uow.update(stale)

    def _build_items(
        self,
        uow: UnitOfWork,
        owner_id: UUID,
        plan: AllocationPlan,
        income_source_id: UUID,
    ) -> list[AllocationPlanItem]:
        """Regular items by (priority, envelope id), remainder to Surplus."""
        rules = sorted(
            (
                rule for rule in uow.find(EnvelopeIncomeAllocation, income_source_id=income_source_id)
                if rule.owner_id == owner_id
            ),
            key=lambda rule: (rule.priority, rule.envelope_id),
        )

        items = []
        remaining = plan.amount
        for rule in rules:
            if remaining <= ZERO:
                break
            if rule.allocation_amount <= ZERO:
                continue
            envelope = uow.get(Envelope, rule.envelope_id)
            if envelope is None or envelope.owner_id != owner_id:
                raise MissingEnvelopeError(rule.envelope_id)

            share = min(rule.allocation_amount, remaining)
            items.append(AllocationPlanItem(
                owner_id=owner_id,
                plan_id=plan.id,
                envelope_id=envelope.id,
                amount=share,
                is_regular=True,
                priority=rule.priority,
            ))
            remaining -= share

        if remaining > ZERO:
            surplus = self._surplus_envelope(uow, owner_id)
            items.append(AllocationPlanItem(
                owner_id=owner_id,
                plan_id=plan.id,
                envelope_id=surplus.id,
                amount=remaining,
                is_regular=False,
                priority=max((rule.priority for rule in rules), default=0) + 1,
                notes="Remainder after regular allocations",
            ))
        return items

    def _surplus_envelope(self, uow: UnitOfWork, owner_id: UUID) -> Envelope:
        """
        The owner's Surplus system envelope, created on first use.

        Two first uses racing for different transactions both insert; the
        per-owner uniqueness on Envelope fails the later commit with
        DuplicateError and the caller retries.
        """
        existing = uow.find(Envelope, owner_id=owner_id, is_surplus=True)
        if existing:
            return existing[0]

        surplus = Envelope(
            owner_id=owner_id,
            name=SURPLUS_ENVELOPE_NAME,
            subtype=EnvelopeSubtype.SPENDING,
            is_surplus=True,
        )
        uow.insert(surplus)
        self._logger.info("surplus_envelope_created", owner_id=str(owner_id))
        return surplus

    # =========================================================================
    # APPLY / REJECT
    # =========================================================================

    def apply_plan(
        self,
        owner_id: UUID,
        plan_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AllocationPlan:
        """
        Credit every item of a pending plan in one atomic batch.

        Raises:
            NotFoundError: If the plan is missing or foreign
            PlanAlreadyAppliedError: If the plan was already applied
            PlanRejectedError: If the plan was rejected
        """
        correlation_id = self._correlation(correlation_id)

        with self._storage.begin() as uow:
            unlocked = get_owned(uow, AllocationPlan, plan_id, owner_id)
            self._require_pending(unlocked)

            transaction = lock_owned(uow, Transaction, unlocked.source_transaction_id, owner_id)
            plan = lock_owned(uow, AllocationPlan, plan_id, owner_id)
            self._require_pending(plan)

            items = self.get_plan_items_in(uow, plan.id)
            envelopes = uow.lock_many(Envelope, [item.envelope_id for item in items])

            for item in items:
                envelope = envelopes.get(item.envelope_id)
                if envelope is None or envelope.owner_id != owner_id:
                    raise MissingEnvelopeError(item.envelope_id)
                credit_envelope(uow, envelope, item.amount)
                uow.insert(Transaction(
                    owner_id=owner_id,
                    account_id=transaction.account_id,
                    amount=item.amount,
                    transaction_type=TransactionType.ALLOCATION,
                    status=TransactionStatus.APPROVED,
                    description=f"Allocation: {envelope.name}",
                    transaction_date=transaction.transaction_date,
                    envelope_id=envelope.id,
                    parent_transaction_id=transaction.id,
                    allocation_plan_id=plan.id,
                    is_auto_allocated=True,
                    income_source_id=plan.income_source_id,
                ))

            now = utcnow()
            plan.status = AllocationPlanStatus.APPLIED
            plan.applied_at = now
            plan.updated_at = now
            uow.update(plan)

            transaction.allocation_plan_id = plan.id
            transaction.is_auto_allocated = True
            if len(envelopes) == 1:
                transaction.envelope_id = next(iter(envelopes))
            transaction.updated_at = now
            uow.update(transaction)

        self._emit(AuditEventBuilder.plan_applied(
            owner_id=owner_id,
            plan_id=plan.id,
            amount=plan.amount,
            envelope_count=plan.envelope_count,
            correlation_id=correlation_id,
        ))
        return plan

    def reject_plan(
        self,
        owner_id: UUID,
        plan_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AllocationPlan:
        """Mark a pending plan rejected. No balance changes."""
        correlation_id = self._correlation(correlation_id)

        with self._storage.begin() as uow:
            plan = lock_owned(uow, AllocationPlan, plan_id, owner_id)
            self._require_pending(plan)
            plan.status = AllocationPlanStatus.REJECTED
            plan.rejected_at = utcnow()
            plan.updated_at = plan.rejected_at
            uow.update(plan)

        self._emit(AuditEventBuilder.plan_rejected(
            owner_id=owner_id,
            plan_id=plan.id,
            correlation_id=correlation_id,
        ))
        return plan

    @staticmethod
    def _require_pending(plan: AllocationPlan) -> None:
        if plan.status == AllocationPlanStatus.APPLIED:
            raise PlanAlreadyAppliedError(plan.id)
        if plan.status == AllocationPlanStatus.REJECTED:
            raise PlanRejectedError(plan.id)

    # =========================================================================
    # READS & RULES
    # =========================================================================

    @staticmethod
    def get_plan_items_in(uow: UnitOfWork, plan_id: UUID) -> list[AllocationPlanItem]:
        items = uow.find(AllocationPlanItem, plan_id=plan_id)
        return sorted(items, key=lambda item: (not item.is_regular, item.priority, item.envelope_id))

    def get_plan_items(self, owner_id: UUID, plan_id: UUID) -> list[AllocationPlanItem]:
        """Items of a plan: regular items by priority, then surplus."""
        with self._storage.begin() as uow:
            get_owned(uow, AllocationPlan, plan_id, owner_id)
            return self.get_plan_items_in(uow, plan_id)

    def set_allocation_rule(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        income_source_id: UUID,
        allocation_amount: MoneyInput,
        priority: int = 1,
    ) -> EnvelopeIncomeAllocation:
        """Create or update the fixed allocation of a source to an envelope."""
        amount = require_non_negative(allocation_amount, "allocation_amount")

        with self._storage.begin() as uow:
            envelope = uow.get(Envelope, envelope_id)
            if envelope is None or envelope.owner_id != owner_id:
                raise MissingEnvelopeError(envelope_id)
            get_owned(uow, IncomeSource, income_source_id, owner_id)

            existing = uow.find(
                EnvelopeIncomeAllocation,
                envelope_id=envelope_id,
                income_source_id=income_source_id,
            )
            if existing:
                rule = uow.lock(EnvelopeIncomeAllocation, existing[0].id)
                rule.allocation_amount = amount
                rule.priority = priority
                rule.updated_at = utcnow()
                uow.update(rule)
            else:
                rule = EnvelopeIncomeAllocation(
                    owner_id=owner_id,
                    envelope_id=envelope_id,
                    income_source_id=income_source_id,
                    allocation_amount=amount,
                    priority=priority,
                )
                uow.insert(rule)
        return rule
