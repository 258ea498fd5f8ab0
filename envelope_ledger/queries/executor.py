"""
Read-Side Ledger Queries

DESIGN DECISION: Queries are DETERMINISTIC and read committed data only.
They never lock and never write; every figure they return is computed
from rows that exist in storage, never estimated.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from envelope_ledger.config import LedgerSettings, get_settings
from envelope_ledger.ledger.access import owned
from envelope_ledger.ledger.billing_cycles import (
    compute_cycle_values,
    current_cycle_key,
    previous_cycle_key,
)
from envelope_ledger.ledger.errors import LedgerValidationError
from envelope_ledger.ledger.payoff import snowball_order
from envelope_ledger.models.credit_card import (
    CreditCardCycleHolding,
    CreditCardPaymentReconciliation,
    CycleComputedValues,
)
from envelope_ledger.models.debt import DebtItem
from envelope_ledger.models.ledger import Account, AccountKind, Envelope, EnvelopeTransfer
from envelope_ledger.models.money import ZERO, Money, sum_money
from envelope_ledger.services.storage import LedgerStorageInterface


# Accounts whose balance is spendable cash
CASH_ACCOUNT_KINDS = frozenset({AccountKind.CHECKING, AccountKind.SAVINGS, AccountKind.WALLET})


class CycleView(BaseModel):
    """A cycle row together with its display values."""
    cycle: CreditCardCycleHolding
    values: CycleComputedValues


class HoldingSummary(BaseModel):
    """Where a card stands: holding money, the statement due, the cycle accruing."""

    account_id: UUID
    account_name: str
    card_balance: Money
    holding_balance: Money
    statement_cycle: Optional[CycleView] = None  # Previous cycle, payment due
    current_cycle: Optional[CycleView] = None    # Cycle accruing spend now
    total_uncovered: Money = ZERO


class AvailableCash(BaseModel):
    """Bank money minus money set aside in holding envelopes."""

    bank_total: Money
    holding_total: Money
    available: Money


class LedgerQueries:
    """
    Read-only views over the ledger.

    GUARANTEES:
    - Only returns real data from storage
    - Foreign rows are reported as not found
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._settings = settings or get_settings().ledger

    def _account(self, owner_id: UUID, account_id: UUID) -> Account:
        return owned(self._storage.get(Account, account_id), owner_id, "Account", account_id)

    def holding_summary(
        self,
        owner_id: UUID,
        account_id: UUID,
        today: Optional[date] = None,
    ) -> HoldingSummary:
        """Holding balance and cycle status of one card."""
        today = today or date.today()
        account = self._account(owner_id, account_id)
        if not account.is_credit_card:
            raise LedgerValidationError(f"Account {account_id} is not a credit card")

        close_day = account.statement_close_day or self._settings.default_statement_close_day
        current_key = current_cycle_key(today, close_day)
        statement_key = previous_cycle_key(current_key)

        cycles = {
            cycle.billing_cycle: cycle
            for cycle in self._storage.find(CreditCardCycleHolding, account_id=account.id)
        }
        holding = self._storage.find(
            Envelope,
            owner_id=owner_id,
            is_cc_holding=True,
            linked_account_id=account.id,
        )

        def view(key: str) -> Optional[CycleView]:
            cycle = cycles.get(key)
            if cycle is None:
                return None
            return CycleView(cycle=cycle, values=compute_cycle_values(cycle, today))

        return HoldingSummary(
            account_id=account.id,
            account_name=account.name,
            card_balance=account.current_balance,
            holding_balance=holding[0].current_balance if holding else ZERO,
            statement_cycle=view(statement_key),
            current_cycle=view(current_key),
            total_uncovered=sum_money(
                cycle.uncovered_amount for cycle in cycles.values() if not cycle.is_closed
            ),
        )

    def available_cash(self, owner_id: UUID) -> AvailableCash:
        """Cash in bank and wallet accounts, less everything held for cards."""
        bank_total = sum_money(
            account.current_balance
            for account in self._storage.find(Account, owner_id=owner_id)
            if account.kind in CASH_ACCOUNT_KINDS and not account.is_credit_card_holding
        )
        holding_total = sum_money(
            envelope.current_balance
            for envelope in self._storage.find(Envelope, owner_id=owner_id, is_cc_holding=True)
        )
        return AvailableCash(
            bank_total=bank_total,
            holding_total=holding_total,
            available=bank_total - holding_total,
        )

    def debt_snowball(self, owner_id: UUID) -> list[DebtItem]:
        """Debts still owing, smallest balance first."""
        return snowball_order(self._storage.find(DebtItem, owner_id=owner_id))

    def transfer_history(
        self,
        owner_id: UUID,
        envelope_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> list[EnvelopeTransfer]:
        """Most recent transfers first, optionally for one envelope."""
        if envelope_id is not None:
            owned(self._storage.get(Envelope, envelope_id), owner_id, "Envelope", envelope_id)
        transfers = [
            row for row in self._storage.find(EnvelopeTransfer, owner_id=owner_id)
            if envelope_id is None or envelope_id in (row.from_envelope_id, row.to_envelope_id)
        ]
        transfers.sort(key=lambda row: row.created_at)
        transfers.reverse()
        return transfers[:limit]

    def reconciliation_history(
        self,
        owner_id: UUID,
        account_id: UUID,
    ) -> list[CreditCardPaymentReconciliation]:
        """Card payment reconciliations, oldest first."""
        account = self._account(owner_id, account_id)
        rows = self._storage.find(CreditCardPaymentReconciliation, account_id=account.id)
        return sorted(rows, key=lambda row: (row.payment_date, row.created_at))
