"""
Credit-Card Holding Ledger

Tracks, per card, a rolling set of billing cycles: how much was spent in
each cycle and how much of that spending the user already set aside in
the card's Credit-Card-Holding envelope ("covered"). A card payment is
then split between releasing that set-aside money (holding), paying down
carried debt, and paying interest.

INVARIANT: the holding envelope grows only by covered spending and
shrinks only by the holding portion of payments, and each holding
payment marks the same amount of coverage cleared on unsettled cycles,
closed statements included.

LOCK ORDER: card account, payment transaction, cycle rows (ascending
id), holding envelope, linked debt items.

Every change to the card account balance re-syncs linked debt items in
the same unit of work.
"""

from datetime import date
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

from envelope_ledger.audit import AuditLogger
from envelope_ledger.config import LedgerSettings, get_settings
from envelope_ledger.ledger.access import credit_envelope, debit_envelope, get_owned, lock_owned
from envelope_ledger.ledger.billing_cycles import (
    current_cycle_key,
    cycle_dates,
    parse_cycle_key,
    suggest_payment_split,
)
from envelope_ledger.ledger.debt import DebtLedger
from envelope_ledger.ledger.engine import LedgerEngine
from envelope_ledger.ledger.errors import (
    CycleClosedError,
    IntegrityError,
    InvariantViolationError,
    LedgerValidationError,
)
from envelope_ledger.ledger.payoff import account_minimum_payment
from envelope_ledger.models.audit import AuditEventBuilder
from envelope_ledger.models.base import utcnow
from envelope_ledger.models.credit_card import (
    CreditCardCycleHolding,
    CreditCardPaymentReconciliation,
    PaymentSplit,
    ReconciliationMethod,
)
from envelope_ledger.models.ledger import (
    Account,
    Envelope,
    EnvelopeSubtype,
    PaymentSplitPreference,
    Transaction,
)
from envelope_ledger.models.money import ZERO, MoneyInput, sum_money
from envelope_ledger.services.storage import LedgerStorageInterface, UnitOfWork
from envelope_ledger.validation import (
    require_positive,
    validate_card_spend,
    validate_payment_components,
)


class CreditCardLedger(LedgerEngine):
    """Billing cycles, holding envelope and payment reconciliation for cards."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit: Optional[AuditLogger] = None,
        debts: Optional[DebtLedger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        super().__init__(storage, audit)
        self._debts = debts or DebtLedger(storage, self._audit)
        self._settings = settings or get_settings().ledger

    # =========================================================================
    # HELPERS
    # =========================================================================

    def cycle_days(self, account: Account) -> tuple[int, int]:
        """(statement close day, payment due day), falling back to defaults."""
        return (
            account.statement_close_day or self._settings.default_statement_close_day,
            account.payment_due_day or self._settings.default_payment_due_day,
        )

    def _lock_card(self, uow: UnitOfWork, owner_id: UUID, account_id: UUID) -> Account:
        account = lock_owned(uow, Account, account_id, owner_id)
        if not account.is_credit_card:
            raise LedgerValidationError(f"Account {account_id} is not a credit card")
        return account

    def _open_cycle(
        self,
        uow: UnitOfWork,
        account: Account,
        on_date: date,
    ) -> CreditCardCycleHolding:
        """Lock the cycle `on_date` falls in, creating it if needed."""
        close_day, due_day = self.cycle_days(account)
        cycle_key = current_cycle_key(on_date, close_day)

        existing = uow.find(
            CreditCardCycleHolding,
            account_id=account.id,
            billing_cycle=cycle_key,
        )
        if existing:
            cycle = uow.lock(CreditCardCycleHolding, existing[0].id)
        else:
            close_date, due_date = cycle_dates(cycle_key, close_day, due_day)
            cycle = CreditCardCycleHolding(
                owner_id=account.owner_id,
                account_id=account.id,
                billing_cycle=cycle_key,
                statement_close_date=close_date,
                payment_due_date=due_date,
            )
            uow.insert(cycle)
            self._logger.info(
                "billing_cycle_opened",
                account_id=str(account.id),
                billing_cycle=cycle_key,
            )

        if cycle.is_closed:
            raise CycleClosedError(account.id, cycle_key)
        return cycle

    @staticmethod
    def _find_holding_envelope(uow: UnitOfWork, account: Account) -> Optional[Envelope]:
        found = uow.find(
            Envelope,
            owner_id=account.owner_id,
            is_cc_holding=True,
            linked_account_id=account.id,
        )
        return found[0] if found else None

    def _lock_holding_envelope(self, uow: UnitOfWork, account: Account) -> Envelope:
        holding = self._find_holding_envelope(uow, account)
        if holding is None:
            raise IntegrityError(f"Card {account.id} has no Credit-Card-Holding envelope")
        return uow.lock(Envelope, holding.id)

    @staticmethod
    def _is_payable(cycle: CreditCardCycleHolding) -> bool:
        """
        Whether a payment may settle against this cycle.

        A closed statement still owes its uncleared coverage and unpaid
        interest; only its spending totals are frozen.
        """
        return (
            not cycle.is_closed
            or cycle.uncleared_coverage > ZERO
            or cycle.outstanding_interest > ZERO
        )

    def _payable_cycles(self, uow: UnitOfWork, account: Account) -> list[CreditCardCycleHolding]:
        return sorted(
            (
                cycle for cycle in uow.find(CreditCardCycleHolding, account_id=account.id)
                if self._is_payable(cycle)
            ),
            key=lambda cycle: cycle.billing_cycle,
        )

    def _lock_payable_cycles(self, uow: UnitOfWork, account: Account) -> list[CreditCardCycleHolding]:
        """Payable cycles of a card, locked, oldest first."""
        ids = [cycle.id for cycle in self._payable_cycles(uow, account)]
        cycles = uow.lock_many(CreditCardCycleHolding, ids).values()
        return sorted(cycles, key=lambda cycle: cycle.billing_cycle)

    def _post_to_card(
        self,
        uow: UnitOfWork,
        account: Account,
        change: Decimal,
    ) -> list:
        """Move the card balance by `change` and re-sync its debts."""
        account.current_balance = account.current_balance + change
        account.updated_at = utcnow()
        uow.update(account)
        return self._debts.sync_linked_debts(uow, account)

    # =========================================================================
    # SPENDING & INTEREST
    # =========================================================================

    def record_card_spend(
        self,
        owner_id: UUID,
        account_id: UUID,
        amount: MoneyInput,
        covered_amount: MoneyInput = ZERO,
        spend_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> CreditCardCycleHolding:
        """
        Record card spending in the cycle it falls in.

        `covered_amount` is the part of the spend the user's budget already
        covers; it moves into the card's holding envelope.

        Raises:
            InvalidAmountError: Unless 0 <= covered_amount <= amount and amount > 0
            CycleClosedError: If the spend falls in a closed cycle
            IntegrityError: If coverage is given but the card has no holding envelope
        """
        correlation_id = self._correlation(correlation_id)
        amount, covered = validate_card_spend(amount, covered_amount)
        spend_date = spend_date or date.today()

        with self._storage.begin() as uow:
            account = self._lock_card(uow, owner_id, account_id)
            cycle = self._open_cycle(uow, account, spend_date)

            cycle.spending_amount = cycle.spending_amount + amount
            cycle.covered_amount = cycle.covered_amount + covered
            cycle.updated_at = utcnow()
            uow.update(cycle)

            if covered > ZERO:
                holding = self._lock_holding_envelope(uow, account)
                credit_envelope(uow, holding, covered)

            paid_off = self._post_to_card(uow, account, -amount)

        self._emit(AuditEventBuilder.card_spend_recorded(
            owner_id=owner_id,
            account_id=account_id,
            billing_cycle=cycle.billing_cycle,
            amount=amount,
            covered_amount=covered,
            correlation_id=correlation_id,
        ))
        self._debts.announce_paid_off(owner_id, paid_off, correlation_id)
        return cycle

    def record_interest_charge(
        self,
        owner_id: UUID,
        account_id: UUID,
        amount: MoneyInput,
        charge_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> CreditCardCycleHolding:
        """Add an interest charge to the open cycle and the card balance."""
        correlation_id = self._correlation(correlation_id)
        amount = require_positive(amount)
        charge_date = charge_date or date.today()

        with self._storage.begin() as uow:
            account = self._lock_card(uow, owner_id, account_id)
            cycle = self._open_cycle(uow, account, charge_date)
            cycle.interest_amount = cycle.interest_amount + amount
            cycle.updated_at = utcnow()
            uow.update(cycle)
            paid_off = self._post_to_card(uow, account, -amount)

        self._emit(AuditEventBuilder.interest_charged(
            owner_id=owner_id,
            account_id=account_id,
            billing_cycle=cycle.billing_cycle,
            amount=amount,
            correlation_id=correlation_id,
        ))
        self._debts.announce_paid_off(owner_id, paid_off, correlation_id)
        return cycle

    # =========================================================================
    # PAYMENTS
    # =========================================================================

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
        correlation_id: Optional[UUID] = None,
    ) -> CreditCardPaymentReconciliation:
        """
        Split a card payment and apply it.

        Methods:
            all_to_debt: the whole payment pays down debt
            all_to_holding: the whole payment releases holding money
            auto_split: outstanding interest, then the minimum payment's
                principal to debt, then holding up to the uncleared
                coverage, then the rest to debt
            user_split: the caller's components; any shortfall goes to debt

        When `method` is omitted the card's payment split preference decides.

        Raises:
            OverPaymentError: If user components exceed the total by more than a cent
            InsufficientFundsError: If the holding envelope can't cover its portion
            IntegrityError: If a holding portion is due but the card has no holding envelope
        """
        correlation_id = self._correlation(correlation_id)
        total = require_positive(total_amount, "total_amount")
        payment_date = payment_date or date.today()
        if method is not None:
            try:
                method = ReconciliationMethod(method)
            except ValueError:
                raise LedgerValidationError(f"Unknown reconciliation method: {method!r}")

        user_components = None
        if method == ReconciliationMethod.USER_SPLIT:
            user_components = validate_payment_components(
                total, amount_to_holding, amount_to_debt, amount_to_interest
            )

        with self._storage.begin() as uow:
            account = self._lock_card(uow, owner_id, account_id)
            method = method or self._preferred_method(account)

            transaction = lock_owned(uow, Transaction, transaction_id, owner_id)
            if transaction.is_cc_payment:
                raise InvariantViolationError(
                    f"Transaction {transaction.id} is already reconciled as a card payment"
                )

            cycles = self._lock_payable_cycles(uow, account)
            holding = self._find_holding_envelope(uow, account)
            if holding is not None:
                holding = uow.lock(Envelope, holding.id)

            if method == ReconciliationMethod.ALL_TO_DEBT:
                split = PaymentSplit(to_debt=total, explanation="All to debt")
            elif method == ReconciliationMethod.ALL_TO_HOLDING:
                split = PaymentSplit(to_holding=total, explanation="All to holding")
            elif method == ReconciliationMethod.AUTO_SPLIT:
                split = self._auto_split(account, cycles, holding, total)
            else:
                to_holding, to_debt, to_interest = user_components
                shortfall = total - (to_holding + to_debt + to_interest)
                split = PaymentSplit(
                    to_holding=to_holding,
                    to_debt=to_debt + max(ZERO, shortfall),
                    to_interest=to_interest,
                    explanation="Split chosen by user",
                )

            if split.to_holding > ZERO:
                if holding is None:
                    raise IntegrityError(
                        f"Card {account.id} has no Credit-Card-Holding envelope"
                    )
                debit_envelope(uow, holding, split.to_holding)
                self._clear_coverage(cycles, split.to_holding)
            if split.to_interest > ZERO:
                self._pay_interest(cycles, split.to_interest)
            for cycle in cycles:
                uow.update(cycle)

            account.total_interest_paid = account.total_interest_paid + split.to_interest
            paid_off = self._post_to_card(uow, account, total)

            close_day, _ = self.cycle_days(account)
            reconciliation = CreditCardPaymentReconciliation(
                owner_id=owner_id,
                account_id=account.id,
                transaction_id=transaction.id,
                total_payment_amount=total,
                payment_date=payment_date,
                amount_to_holding=split.to_holding,
                amount_to_debt=split.to_debt,
                amount_to_interest=split.to_interest,
                billing_cycle=current_cycle_key(payment_date, close_day),
                reconciliation_method=method,
            )
            uow.insert(reconciliation)

            transaction.is_cc_payment = True
            transaction.cc_payment_reconciliation_id = reconciliation.id
            transaction.updated_at = utcnow()
            uow.update(transaction)

        self._emit(AuditEventBuilder.payment_reconciled(
            owner_id=owner_id,
            reconciliation_id=reconciliation.id,
            account_id=account_id,
            method=method.value,
            to_holding=split.to_holding,
            to_debt=split.to_debt,
            to_interest=split.to_interest,
            correlation_id=correlation_id,
        ))
        self._debts.announce_paid_off(owner_id, paid_off, correlation_id)
        return reconciliation

    def preview_auto_split(
        self,
        owner_id: UUID,
        account_id: UUID,
        total_amount: MoneyInput,
    ) -> PaymentSplit:
        """The split auto_split would apply right now. Changes nothing."""
        total = require_positive(total_amount, "total_amount")
        with self._storage.begin() as uow:
            account = get_owned(uow, Account, account_id, owner_id)
            cycles = self._payable_cycles(uow, account)
            holding = self._find_holding_envelope(uow, account)
        return self._auto_split(account, cycles, holding, total)

    @staticmethod
    def _preferred_method(account: Account) -> ReconciliationMethod:
        if account.payment_split_preference == PaymentSplitPreference.AUTO_SPLIT:
            return ReconciliationMethod.AUTO_SPLIT
        if account.payment_split_preference == PaymentSplitPreference.ALL_TO_DEBT:
            return ReconciliationMethod.ALL_TO_DEBT
        raise LedgerValidationError(
            f"Card {account.id} asks every time; a reconciliation method is required"
        )

    def _auto_split(
        self,
        account: Account,
        cycles: list[CreditCardCycleHolding],
        holding: Optional[Envelope],
        total: Decimal,
    ) -> PaymentSplit:
        interest_due = sum_money(cycle.outstanding_interest for cycle in cycles)
        uncleared = sum_money(cycle.uncleared_coverage for cycle in cycles)
        holding_available = min(uncleared, max(ZERO, holding.current_balance)) if holding else ZERO
        minimum_due = account_minimum_payment(account, self._settings)
        minimum_principal = max(ZERO, minimum_due - interest_due)
        return suggest_payment_split(total, holding_available, interest_due, minimum_principal)

    @staticmethod
    def _clear_coverage(cycles: list[CreditCardCycleHolding], amount: Decimal) -> None:
        """Mark `amount` of coverage cleared, oldest cycle first."""
        remaining = amount
        for cycle in cycles:
            if remaining <= ZERO:
                break
            cleared = min(remaining, cycle.uncleared_coverage)
            if cleared > ZERO:
                cycle.cleared_amount = cycle.cleared_amount + cleared
                cycle.updated_at = utcnow()
                remaining -= cleared

    @staticmethod
    def _pay_interest(cycles: list[CreditCardCycleHolding], amount: Decimal) -> None:
        """Mark `amount` of interest paid, oldest cycle first."""
        remaining = amount
        for cycle in cycles:
            if remaining <= ZERO:
                break
            paid = min(remaining, cycle.outstanding_interest)
            if paid > ZERO:
                cycle.interest_paid_amount = cycle.interest_paid_amount + paid
                cycle.updated_at = utcnow()
                remaining -= paid

    # =========================================================================
    # CYCLES & SETUP
    # =========================================================================

    def close_cycle(
        self,
        owner_id: UUID,
        account_id: UUID,
        cycle_key: str,
        correlation_id: Optional[UUID] = None,
    ) -> CreditCardCycleHolding:
        """
        Freeze a cycle's totals.

        Raises:
            CycleClosedError: If the cycle is already closed
            IntegrityError: If the card has no row for this cycle
        """
        correlation_id = self._correlation(correlation_id)
        parse_cycle_key(cycle_key)

        with self._storage.begin() as uow:
            account = self._lock_card(uow, owner_id, account_id)
            existing = uow.find(
                CreditCardCycleHolding,
                account_id=account.id,
                billing_cycle=cycle_key,
            )
            if not existing:
                raise IntegrityError(f"Card {account.id} has no cycle {cycle_key}")

            cycle = uow.lock(CreditCardCycleHolding, existing[0].id)
            if cycle.is_closed:
                raise CycleClosedError(account.id, cycle_key)
            cycle.is_closed = True
            cycle.closed_at = utcnow()
            cycle.updated_at = cycle.closed_at
            uow.update(cycle)

        self._emit(AuditEventBuilder.cycle_closed(
            owner_id=owner_id,
            account_id=account_id,
            billing_cycle=cycle_key,
            correlation_id=correlation_id,
        ))
        return cycle

    def ensure_holding_envelope(self, owner_id: UUID, account_id: UUID) -> Envelope:
        """Return the card's Credit-Card-Holding envelope, creating it if missing."""
        with self._storage.begin() as uow:
            account = self._lock_card(uow, owner_id, account_id)
            holding = self._find_holding_envelope(uow, account)
            if holding is None:
                holding = Envelope(
                    owner_id=owner_id,
                    name=f"{account.name} Holding",
                    subtype=EnvelopeSubtype.TRACKING,
                    linked_account_id=account.id,
                    is_cc_holding=True,
                )
                uow.insert(holding)
                self._logger.info("holding_envelope_created", account_id=str(account.id))
        return holding

    def list_cycles(self, owner_id: UUID, account_id: UUID) -> list[CreditCardCycleHolding]:
        """All cycles of a card, oldest first."""
        with self._storage.begin() as uow:
            account = get_owned(uow, Account, account_id, owner_id)
            cycles = uow.find(CreditCardCycleHolding, account_id=account.id)
        return sorted(cycles, key=lambda cycle: cycle.billing_cycle)
