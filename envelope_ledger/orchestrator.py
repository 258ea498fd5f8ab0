"""
Main Orchestrator for Envelope Ledger

This module ties together the ledger engines behind one service object,
LedgerService, which is the surface callers use for:
1. Envelope transfers and transaction splits
2. Income allocation plans (propose -> review -> apply/reject)
3. Credit-card spending, payments and billing cycles
4. Debt tracking and payoff projections
5. Income reconciliation

DESIGN DECISION: The orchestrator enforces the boundaries:
- Every operation gets a correlation id
- Every rejected or failed operation is audited, then re-raised unchanged
- Nothing here mutates data directly; the engines own their units of work

The caller is responsible for identity: owner_id is assumed to be
authenticated. Ownership of every row is still checked by the engines.
"""

from datetime import date
from typing import Callable, Optional, Sequence, TypeVar, Union
from uuid import UUID

import structlog

from envelope_ledger.audit import AuditLogger, configure_logging, create_correlation_id
from envelope_ledger.config import Settings, get_settings
from envelope_ledger.ledger.allocation import AllocationPlanner
from envelope_ledger.ledger.credit_card import CreditCardLedger
from envelope_ledger.ledger.debt import DebtLedger
from envelope_ledger.ledger.errors import (
    IntegrityError,
    InvariantViolationError,
    LedgerValidationError,
    NotFoundError,
)
from envelope_ledger.ledger.income import IncomeReconciler
from envelope_ledger.ledger.payoff import compute_payoff
from envelope_ledger.ledger.splits import SplitAllocator
from envelope_ledger.ledger.transfers import TransferEngine
from envelope_ledger.models.allocation import AllocationPlan, AllocationPlanItem
from envelope_ledger.models.credit_card import (
    CreditCardCycleHolding,
    CreditCardPaymentReconciliation,
    CreditCardPayoffProjection,
    ProjectionType,
    ReconciliationMethod,
)
from envelope_ledger.models.debt import DebtItem, PayoffProjection
from envelope_ledger.models.income import IncomeReconciliationEvent
from envelope_ledger.models.ledger import (
    Account,
    EnvelopeTransfer,
    SplitRequest,
    TransactionSplit,
)
from envelope_ledger.models.money import ZERO, MoneyInput
from envelope_ledger.queries import AvailableCash, HoldingSummary, LedgerQueries
from envelope_ledger.services.storage import (
    AuditStorageInterface,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    StorageError,
)


T = TypeVar("T")

# Rejections are the caller's problem; failures are ours
REJECTED_ERRORS = (LedgerValidationError, InvariantViolationError, NotFoundError)
FAILED_ERRORS = (IntegrityError, StorageError)


class LedgerService:
    """
    Facade over the ledger engines.

    Every mutating method:
    1. Assigns a correlation id
    2. Delegates to its engine (one unit of work)
    3. On rejection: audits at WARNING and re-raises
    4. On integrity/storage failure: audits at ERROR and re-raises
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings()
        self._logger = structlog.get_logger(__name__)

        ledger_settings = self._settings.ledger
        self.transfers = TransferEngine(storage, self._audit)
        self.splits = SplitAllocator(storage, self._audit)
        self.allocations = AllocationPlanner(storage, self._audit)
        self.debts = DebtLedger(storage, self._audit)
        self.cards = CreditCardLedger(
            storage, self._audit, debts=self.debts, settings=ledger_settings
        )
        self.income = IncomeReconciler(storage, self._audit)
        self.queries = LedgerQueries(storage, settings=ledger_settings)

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    def _run(
        self,
        operation: str,
        owner_id: Optional[UUID],
        call: Callable[[UUID], T],
    ) -> T:
        correlation_id = create_correlation_id()
        self._logger.debug(
            "ledger_operation_started",
            operation=operation,
            correlation_id=str(correlation_id),
        )
        try:
            return call(correlation_id)
        except REJECTED_ERRORS as e:
            self._audit.log_rejected(
                owner_id=owner_id,
                operation=operation,
                error=e,
                correlation_id=correlation_id,
            )
            raise
        except FAILED_ERRORS as e:
            self._audit.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"operation": operation},
                correlation_id=correlation_id,
                owner_id=owner_id,
            )
            raise

    # =========================================================================
    # ENVELOPES & TRANSACTIONS
    # =========================================================================

    def transfer(
        self,
        owner_id: UUID,
        from_envelope_id: UUID,
        to_envelope_id: UUID,
        amount: MoneyInput,
        note: Optional[str] = None,
    ) -> EnvelopeTransfer:
        return self._run("transfer", owner_id, lambda cid: self.transfers.transfer(
            owner_id, from_envelope_id, to_envelope_id, amount, note=note, correlation_id=cid,
        ))

    def save_splits(
        self,
        owner_id: UUID,
        transaction_id: UUID,
        splits: Sequence[Union[SplitRequest, dict]],
    ) -> list[TransactionSplit]:
        return self._run("save_splits", owner_id, lambda cid: self.splits.save_splits(
            owner_id, transaction_id, splits, correlation_id=cid,
        ))

    # =========================================================================
    # ALLOCATION PLANS
    # =========================================================================

    def propose_plan(self, owner_id: UUID, source_transaction_id: UUID) -> AllocationPlan:
        return self._run("propose_plan", owner_id, lambda cid: self.allocations.propose_plan(
            owner_id, source_transaction_id, correlation_id=cid,
        ))

    def apply_plan(self, owner_id: UUID, plan_id: UUID) -> AllocationPlan:
        return self._run("apply_plan", owner_id, lambda cid: self.allocations.apply_plan(
            owner_id, plan_id, correlation_id=cid,
        ))

    def reject_plan(self, owner_id: UUID, plan_id: UUID) -> AllocationPlan:
        return self._run("reject_plan", owner_id, lambda cid: self.allocations.reject_plan(
            owner_id, plan_id, correlation_id=cid,
        ))

    def get_plan_items(self, owner_id: UUID, plan_id: UUID) -> list[AllocationPlanItem]:
        return self.allocations.get_plan_items(owner_id, plan_id)

    # =========================================================================
    # CREDIT CARDS
    # =========================================================================

    def record_card_spend(
        self,
        owner_id: UUID,
        account_id: UUID,
        amount: MoneyInput,
        covered_amount: MoneyInput = ZERO,
        spend_date: Optional[date] = None,
    ) -> CreditCardCycleHolding:
        return self._run("record_card_spend", owner_id, lambda cid: self.cards.record_card_spend(
            owner_id, account_id, amount,
            covered_amount=covered_amount, spend_date=spend_date, correlation_id=cid,
        ))

    def record_interest_charge(
        self,
        owner_id: UUID,
        account_id: UUID,
        amount: MoneyInput,
        charge_date: Optional[date] = None,
    ) -> CreditCardCycleHolding:
        return self._run(
            "record_interest_charge", owner_id,
            lambda cid: self.cards.record_interest_charge(
                owner_id, account_id, amount, charge_date=charge_date, correlation_id=cid,
            ),
        )

    def reconcile_payment(
        self,
        owner_id: UUID,
        account_id: UUID,
        transaction_id: UUID,
        total_amount: MoneyInput,
        method: Optional[Union[ReconciliationMethod, str]] = None,
        amount_to_holding: Optional[MoneyInput] = None,
        amount_to_debt: Optional[MoneyInput] = None,
        amount_to_interest: Optional[MoneyInput] = None,
        payment_date: Optional[date] = None,
    ) -> CreditCardPaymentReconciliation:
        """
        Reconcile a card payment.

        When `method` is None the card's payment split preference decides.
        """
        return self._run("reconcile_payment", owner_id, lambda cid: self.cards.reconcile_payment(
            owner_id, account_id, transaction_id, total_amount,
            method=method,
            amount_to_holding=amount_to_holding,
            amount_to_debt=amount_to_debt,
            amount_to_interest=amount_to_interest,
            payment_date=payment_date,
            correlation_id=cid,
        ))

    def close_cycle(
        self,
        owner_id: UUID,
        account_id: UUID,
        cycle_key: str,
    ) -> CreditCardCycleHolding:
        return self._run("close_cycle", owner_id, lambda cid: self.cards.close_cycle(
            owner_id, account_id, cycle_key, correlation_id=cid,
        ))

    def holding_summary(
        self,
        owner_id: UUID,
        account_id: UUID,
        today: Optional[date] = None,
    ) -> HoldingSummary:
        return self.queries.holding_summary(owner_id, account_id, today=today)

    def available_cash(self, owner_id: UUID) -> AvailableCash:
        return self.queries.available_cash(owner_id)

    # =========================================================================
    # DEBT
    # =========================================================================

    @staticmethod
    def compute_payoff(
        balance: MoneyInput,
        apr_percent: MoneyInput,
        monthly_payment: MoneyInput,
        start_date: Optional[date] = None,
    ) -> PayoffProjection:
        """Pure projection; never touches storage."""
        return compute_payoff(balance, apr_percent, monthly_payment, start_date)

    def set_account_balance(
        self,
        owner_id: UUID,
        account_id: UUID,
        new_balance: MoneyInput,
    ) -> Account:
        return self._run("set_account_balance", owner_id, lambda cid: self.debts.set_account_balance(
            owner_id, account_id, new_balance, correlation_id=cid,
        ))

    def apply_debt_payment(
        self,
        owner_id: UUID,
        debt_item_id: UUID,
        amount: MoneyInput,
    ) -> DebtItem:
        return self._run("apply_debt_payment", owner_id, lambda cid: self.debts.apply_debt_payment(
            owner_id, debt_item_id, amount, correlation_id=cid,
        ))

    def refresh_payoff_projection(
        self,
        owner_id: UUID,
        account_id: UUID,
        projection_type: ProjectionType = ProjectionType.MINIMUM_ONLY,
        monthly_payment: Optional[MoneyInput] = None,
    ) -> CreditCardPayoffProjection:
        return self._run(
            "refresh_payoff_projection", owner_id,
            lambda cid: self.debts.refresh_payoff_projection(
                owner_id, account_id, projection_type,
                monthly_payment=monthly_payment, correlation_id=cid,
            ),
        )

    def debt_snowball(self, owner_id: UUID) -> list[DebtItem]:
        return self.queries.debt_snowball(owner_id)

    # =========================================================================
    # INCOME
    # =========================================================================

    def reconcile_income(
        self,
        owner_id: UUID,
        income_source_id: UUID,
        transaction_id: UUID,
        transaction_date: date,
        actual_amount: MoneyInput,
        allocations_created: int = 0,
        total_allocated: MoneyInput = ZERO,
    ) -> IncomeReconciliationEvent:
        return self._run("reconcile_income", owner_id, lambda cid: self.income.reconcile_income(
            owner_id, income_source_id, transaction_id, transaction_date, actual_amount,
            allocations_created=allocations_created,
            total_allocated=total_allocated,
            correlation_id=cid,
        ))


def create_ledger_service(
    storage: Optional[LedgerStorageInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> LedgerService:
    """
    Factory function to create a wired LedgerService.

    Args:
        storage: Ledger storage backend. Defaults to in-memory storage.
        audit_storage: Where audit events are persisted.
                      If None, audit events are only logged locally.
    """
    settings = get_settings()
    configure_logging("DEBUG" if settings.app.debug_mode else settings.app.log_level)
    storage = storage or InMemoryLedgerStorage(
        lock_timeout=settings.ledger.lock_timeout_seconds
    )
    return LedgerService(
        storage=storage,
        audit_logger=AuditLogger(audit_storage),
        settings=settings,
    )
