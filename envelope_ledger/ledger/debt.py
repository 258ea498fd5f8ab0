"""
Debt Synchronisation

Keeps debt items in step with the accounts they are linked to and
caches payoff projections for credit cards.

DESIGN DECISION: Sync is one-way (account -> debt item) and explicit.
Every component that changes an account balance calls
sync_linked_debts() inside the same unit of work, so the debt item can
never disagree with its account after a commit.

The paid-off timestamp is owned by apply_balance(): crossing from a
positive balance to zero or below sets it, rising above zero clears it.
Nothing else writes paid_off_at.
"""

from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from envelope_ledger.ledger.access import get_owned, lock_owned
from envelope_ledger.ledger.engine import LedgerEngine
from envelope_ledger.ledger.errors import (
    IntegrityError,
    InvalidAmountError,
    LedgerValidationError,
    MissingEnvelopeError,
    OverPaymentError,
)
from envelope_ledger.ledger.payoff import account_minimum_payment, compute_payoff
from envelope_ledger.models.audit import AuditEventBuilder
from envelope_ledger.models.base import utcnow
from envelope_ledger.models.credit_card import (
    CreditCardPaymentReconciliation,
    CreditCardPayoffProjection,
    ProjectionType,
)
from envelope_ledger.models.debt import DebtItem, DebtType
from envelope_ledger.models.ledger import Account, Envelope
from envelope_ledger.models.money import ZERO, MoneyInput
from envelope_ledger.services.storage import UnitOfWork
from envelope_ledger.validation import parse_amount, require_non_negative, require_positive


def apply_balance(debt: DebtItem, new_balance: Decimal) -> bool:
    """
    Set a debt item's balance, maintaining paid_off_at.

    Returns True if this change paid the debt off.
    """
    old_balance = debt.current_balance
    debt.current_balance = new_balance
    debt.updated_at = utcnow()

    if old_balance > ZERO and new_balance <= ZERO:
        debt.paid_off_at = debt.updated_at
        return True
    if new_balance > ZERO:
        debt.paid_off_at = None
    return False


class DebtLedger(LedgerEngine):
    """Debt items, account-to-debt sync and the payoff projection cache."""

    # =========================================================================
    # SYNC
    # =========================================================================

    def sync_linked_debts(self, uow: UnitOfWork, account: Account) -> list[DebtItem]:
        """
        Mirror an account's balance onto every debt item linked to it.

        Must run in the unit of work that changed the account.
        Returns the debt items this sync paid off.
        """
        paid_off = []
        for linked in uow.find(DebtItem, linked_account_id=account.id):
            if linked.owner_id != account.owner_id:
                raise IntegrityError(
                    f"Debt item {linked.id} is linked to another owner's account {account.id}"
                )
            debt = uow.lock(DebtItem, linked.id)
            if apply_balance(debt, abs(account.current_balance)):
                paid_off.append(debt)
            uow.update(debt)
        return paid_off

    def announce_paid_off(
        self,
        owner_id: UUID,
        debts: Iterable[DebtItem],
        correlation_id: UUID,
    ) -> None:
        """Emit a paid-off event per debt. Call after commit."""
        for debt in debts:
            self._emit(AuditEventBuilder.debt_paid_off(
                owner_id=owner_id,
                debt_item_id=debt.id,
                name=debt.name,
                correlation_id=correlation_id,
            ))

    def set_account_balance(
        self,
        owner_id: UUID,
        account_id: UUID,
        new_balance: MoneyInput,
        correlation_id: Optional[UUID] = None,
    ) -> Account:
        """Record a balance reported by the bank feed and re-sync linked debts."""
        correlation_id = self._correlation(correlation_id)
        new_balance = parse_amount(new_balance, "new_balance")

        with self._storage.begin() as uow:
            account = lock_owned(uow, Account, account_id, owner_id)
            old_balance = account.current_balance
            account.current_balance = new_balance
            account.updated_at = utcnow()
            uow.update(account)
            paid_off = self.sync_linked_debts(uow, account)

        self._emit(AuditEventBuilder.account_balance_synced(
            owner_id=owner_id,
            account_id=account_id,
            old_balance=old_balance,
            new_balance=new_balance,
            correlation_id=correlation_id,
        ))
        self.announce_paid_off(owner_id, paid_off, correlation_id)
        return account

    # =========================================================================
    # DEBT ITEMS
    # =========================================================================

    def add_debt_item(
        self,
        owner_id: UUID,
        envelope_id: UUID,
        name: str,
        debt_type: DebtType = DebtType.OTHER,
        starting_balance: Optional[MoneyInput] = None,
        linked_account_id: Optional[UUID] = None,
        interest_rate: Optional[MoneyInput] = None,
        minimum_payment: Optional[MoneyInput] = None,
        display_order: int = 0,
    ) -> DebtItem:
        """
        Add a debt to a debt envelope.

        A linked debt starts at the account's balance; an unlinked one
        needs an explicit starting balance.

        Raises:
            DuplicateError: If the envelope already has a debt with this name
        """
        with self._storage.begin() as uow:
            envelope = uow.lock(Envelope, envelope_id)
            if envelope is None or envelope.owner_id != owner_id:
                raise MissingEnvelopeError(envelope_id)

            if linked_account_id is not None:
                account = get_owned(uow, Account, linked_account_id, owner_id)
                current = abs(account.current_balance)
                start = (
                    require_non_negative(starting_balance, "starting_balance")
                    if starting_balance is not None else current
                )
            else:
                if starting_balance is None:
                    raise InvalidAmountError("An unlinked debt needs a starting balance")
                start = require_non_negative(starting_balance, "starting_balance")
                current = start

            debt = DebtItem(
                owner_id=owner_id,
                envelope_id=envelope.id,
                name=name,
                debt_type=debt_type,
                linked_account_id=linked_account_id,
                starting_balance=start,
                current_balance=current,
                interest_rate=interest_rate,
                minimum_payment=minimum_payment,
                display_order=display_order,
            )
            uow.insert(debt)

            if envelope.debt_item_id is None:
                envelope.debt_item_id = debt.id
                envelope.updated_at = utcnow()
                uow.update(envelope)
        return debt

    def apply_debt_payment(
        self,
        owner_id: UUID,
        debt_item_id: UUID,
        amount: MoneyInput,
        correlation_id: Optional[UUID] = None,
    ) -> DebtItem:
        """
        Pay down an unlinked debt.

        Raises:
            IntegrityError: If the debt is linked (its account is authoritative)
            OverPaymentError: If the payment exceeds what is owed
        """
        correlation_id = self._correlation(correlation_id)
        amount = require_positive(amount)

        with self._storage.begin() as uow:
            debt = lock_owned(uow, DebtItem, debt_item_id, owner_id)
            if debt.is_linked:
                raise IntegrityError(
                    f"Debt item {debt.id} follows account {debt.linked_account_id}; "
                    "change the account balance instead"
                )
            if amount > debt.current_balance:
                raise OverPaymentError(total=debt.current_balance, requested=amount)

            paid_off = apply_balance(debt, debt.current_balance - amount)
            uow.update(debt)

        self._emit(AuditEventBuilder.debt_payment_applied(
            owner_id=owner_id,
            debt_item_id=debt.id,
            amount=amount,
            new_balance=debt.current_balance,
            correlation_id=correlation_id,
        ))
        if paid_off:
            self.announce_paid_off(owner_id, [debt], correlation_id)
        return debt

    def list_debts(self, owner_id: UUID) -> list[DebtItem]:
        debts = self._storage.find(DebtItem, owner_id=owner_id)
        return sorted(debts, key=lambda debt: (debt.display_order, debt.name))

    # =========================================================================
    # PROJECTION CACHE
    # =========================================================================

    def refresh_payoff_projection(
        self,
        owner_id: UUID,
        account_id: UUID,
        projection_type: ProjectionType,
        monthly_payment: Optional[MoneyInput] = None,
        correlation_id: Optional[UUID] = None,
    ) -> CreditCardPayoffProjection:
        """
        Recompute and store the payoff projection of a card.

        MINIMUM_ONLY uses the card's minimum payment. CURRENT_PAYMENT uses
        `monthly_payment`, or the card's most recent payment when omitted.
        CUSTOM requires `monthly_payment`. The stored row for
        (account, projection type) is replaced.
        """
        correlation_id = self._correlation(correlation_id)

        with self._storage.begin() as uow:
            account = get_owned(uow, Account, account_id, owner_id)
            if not account.is_credit_card:
                raise LedgerValidationError(f"Account {account_id} is not a credit card")

            payment = self._projection_payment(uow, account, projection_type, monthly_payment)
            projection = compute_payoff(account.outstanding, account.apr or ZERO, payment)

            existing = uow.find(
                CreditCardPayoffProjection,
                account_id=account.id,
                projection_type=projection_type,
            )
            if existing:
                row = uow.lock(CreditCardPayoffProjection, existing[0].id)
            else:
                row = None

            values = dict(
                monthly_payment_amount=payment,
                apr_used=projection.apr,
                starting_balance=projection.starting_balance,
                projected_payoff_date=projection.payoff_date,
                total_interest_projected=projection.total_interest,
                total_payments_projected=projection.total_payments,
                months_to_payoff=projection.months_to_payoff,
            )
            if row is None:
                row = CreditCardPayoffProjection(
                    owner_id=owner_id,
                    account_id=account.id,
                    projection_type=projection_type,
                    **values,
                )
                uow.insert(row)
            else:
                for field, value in values.items():
                    setattr(row, field, value)
                row.calculated_at = utcnow()
                uow.update(row)

        self._emit(AuditEventBuilder.projection_refreshed(
            owner_id=owner_id,
            account_id=account_id,
            projection_type=projection_type.value,
            months_to_payoff=row.months_to_payoff,
            correlation_id=correlation_id,
        ))
        return row

    @staticmethod
    def _projection_payment(
        uow: UnitOfWork,
        account: Account,
        projection_type: ProjectionType,
        monthly_payment: Optional[MoneyInput],
    ) -> Decimal:
        if projection_type == ProjectionType.MINIMUM_ONLY:
            return account_minimum_payment(account)

        if monthly_payment is not None:
            return require_positive(monthly_payment, "monthly_payment")

        if projection_type == ProjectionType.CURRENT_PAYMENT:
            payments = uow.find(CreditCardPaymentReconciliation, account_id=account.id)
            if payments:
                latest = max(payments, key=lambda row: (row.payment_date, row.created_at))
                return latest.total_payment_amount

        raise InvalidAmountError(
            f"A monthly payment is required for a {projection_type.value} projection"
        )
