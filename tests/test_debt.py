"""
Tests for debt items, account-to-debt sync and projection caching.
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from envelope_ledger.ledger.debt import DebtLedger, apply_balance
from envelope_ledger.ledger.errors import (
    IntegrityError,
    InvalidAmountError,
    LedgerValidationError,
    MissingEnvelopeError,
    NotFoundError,
    OverPaymentError,
)
from envelope_ledger.ledger.payoff import NEVER_PAYS_OFF_MONTHS
from envelope_ledger.models import (
    AuditEventType,
    CreditCardPaymentReconciliation,
    CreditCardPayoffProjection,
    DebtItem,
    DebtType,
    Envelope,
    EnvelopeSubtype,
    ProjectionType,
    ReconciliationMethod,
)
from envelope_ledger.services.storage import DuplicateError


@pytest.fixture
def debts(storage, audit):
    return DebtLedger(storage, audit)


@pytest.fixture
def debt_envelope(seed, owner_id):
    return seed(Envelope(owner_id=owner_id, name="Debts", subtype=EnvelopeSubtype.DEBT))


@pytest.fixture
def loan(debts, owner_id, debt_envelope):
    return debts.add_debt_item(
        owner_id,
        debt_envelope.id,
        "Personal loan",
        debt_type=DebtType.PERSONAL_LOAN,
        starting_balance="1000.00",
        interest_rate="9.5",
        minimum_payment="50",
    )


@pytest.fixture
def card_debt(debts, owner_id, debt_envelope, card):
    return debts.add_debt_item(
        owner_id, debt_envelope.id, "Visa", debt_type=DebtType.CREDIT_CARD, linked_account_id=card.id
    )


class TestApplyBalance:
    """Tests for the paid-off rule."""

    def test_crossing_zero_sets_paid_off(self):
        """Test that reaching zero from a positive balance pays off."""
        debt = DebtItem(
            owner_id=uuid4(), envelope_id=uuid4(), name="X",
            starting_balance=10, current_balance=10,
        )
        assert apply_balance(debt, Decimal("0.00")) is True
        assert debt.paid_off_at is not None

    def test_rising_above_zero_clears_paid_off(self):
        """Test that new debt un-pays a paid-off item."""
        debt = DebtItem(
            owner_id=uuid4(), envelope_id=uuid4(), name="X",
            starting_balance=10, current_balance=10,
        )
        apply_balance(debt, Decimal("0.00"))
        assert apply_balance(debt, Decimal("5.00")) is False
        assert debt.paid_off_at is None

    def test_staying_at_zero_is_not_a_new_payoff(self):
        """Test that zero to zero does not pay off again."""
        debt = DebtItem(
            owner_id=uuid4(), envelope_id=uuid4(), name="X",
            starting_balance=0, current_balance=0,
        )
        assert apply_balance(debt, Decimal("0.00")) is False


class TestAccountSync:
    """Tests for mirroring account balances onto linked debts."""

    def test_linked_debt_mirrors_account(self, debts, storage, owner_id, card, card_debt):
        """Test that a -450 card balance is a 450 debt."""
        debts.set_account_balance(owner_id, card.id, "-450.00")
        debt = storage.get(DebtItem, card_debt.id)
        assert debt.current_balance == Decimal("450.00")
        assert debt.paid_off_at is None

    def test_zero_balance_pays_off(self, debts, storage, audit_storage, owner_id, card, card_debt):
        """Test that a cleared card pays off its debt."""
        debts.set_account_balance(owner_id, card.id, "-450.00")
        debts.set_account_balance(owner_id, card.id, "0")
        assert storage.get(DebtItem, card_debt.id).paid_off_at is not None

        types = [event.event_type for event in audit_storage.get_recent_events()]
        assert AuditEventType.DEBT_PAID_OFF in types
        assert AuditEventType.ACCOUNT_BALANCE_SYNCED in types

    def test_new_spending_reopens_debt(self, debts, storage, owner_id, card, card_debt):
        """Test that paid_off_at clears when the balance rises again."""
        debts.set_account_balance(owner_id, card.id, "-450.00")
        debts.set_account_balance(owner_id, card.id, "0")
        debts.set_account_balance(owner_id, card.id, "-10.00")
        debt = storage.get(DebtItem, card_debt.id)
        assert debt.current_balance == Decimal("10.00")
        assert debt.paid_off_at is None

    def test_foreign_account_not_found(self, debts, other_owner_id, card):
        """Test that another owner cannot sync this card."""
        with pytest.raises(NotFoundError):
            debts.set_account_balance(other_owner_id, card.id, "-1")

    def test_non_numeric_balance_rejected(self, debts, owner_id, card):
        """Test that the new balance must be a number."""
        with pytest.raises(InvalidAmountError):
            debts.set_account_balance(owner_id, card.id, "lots")


class TestDebtItems:
    """Tests for adding and paying down debt items."""

    def test_add_sets_envelope_shortcut(self, storage, debt_envelope, loan):
        """Test that the first debt becomes the envelope's debt item."""
        assert storage.get(Envelope, debt_envelope.id).debt_item_id == loan.id
        assert loan.current_balance == Decimal("1000.00")

    def test_linked_debt_starts_at_account_balance(self, debts, seed, owner_id, debt_envelope, card, storage):
        """Test that a linked debt copies the account balance."""
        debts.set_account_balance(owner_id, card.id, "-320.00")
        item = debts.add_debt_item(owner_id, debt_envelope.id, "Visa", linked_account_id=card.id)
        assert item.current_balance == Decimal("320.00")
        assert item.starting_balance == Decimal("320.00")

    def test_unlinked_debt_needs_starting_balance(self, debts, owner_id, debt_envelope):
        """Test that a hand-tracked debt must say what is owed."""
        with pytest.raises(InvalidAmountError):
            debts.add_debt_item(owner_id, debt_envelope.id, "Mystery")

    def test_duplicate_name_in_envelope_rejected(self, debts, owner_id, debt_envelope, loan):
        """Test that names are unique within an envelope."""
        with pytest.raises(DuplicateError):
            debts.add_debt_item(owner_id, debt_envelope.id, "Personal loan", starting_balance=5)

    def test_missing_envelope(self, debts, owner_id):
        """Test that the envelope must exist."""
        with pytest.raises(MissingEnvelopeError):
            debts.add_debt_item(owner_id, uuid4(), "Loan", starting_balance=5)

    def test_payment_reduces_balance(self, debts, owner_id, loan):
        """Test a partial payment."""
        item = debts.apply_debt_payment(owner_id, loan.id, "250.00")
        assert item.current_balance == Decimal("750.00")
        assert item.progress_percent == Decimal("25.00")

    def test_final_payment_pays_off(self, debts, owner_id, loan):
        """Test that paying the balance in full sets paid_off_at."""
        item = debts.apply_debt_payment(owner_id, loan.id, "1000.00")
        assert item.is_paid_off

    def test_overpayment_rejected(self, debts, storage, owner_id, loan):
        """Test that a payment cannot exceed the balance."""
        with pytest.raises(OverPaymentError):
            debts.apply_debt_payment(owner_id, loan.id, "1000.01")
        assert storage.get(DebtItem, loan.id).current_balance == Decimal("1000.00")

    def test_linked_debt_cannot_be_paid_directly(self, debts, owner_id, card, card_debt):
        """Test that the account stays authoritative for linked debts."""
        debts.set_account_balance(owner_id, card.id, "-100.00")
        with pytest.raises(IntegrityError):
            debts.apply_debt_payment(owner_id, card_debt.id, "10.00")

    def test_list_debts_in_display_order(self, debts, owner_id, debt_envelope, loan):
        """Test listing debts."""
        debts.add_debt_item(owner_id, debt_envelope.id, "Afterpay", starting_balance=80, display_order=-1)
        assert [item.name for item in debts.list_debts(owner_id)] == ["Afterpay", "Personal loan"]


class TestPayoffProjectionCache:
    """Tests for refreshing cached card projections."""

    def test_minimum_only(self, debts, storage, owner_id, card):
        """Test a projection at the card's minimum payment."""
        debts.set_account_balance(owner_id, card.id, "-1200.00")
        row = debts.refresh_payoff_projection(owner_id, card.id, ProjectionType.MINIMUM_ONLY)
        assert row.monthly_payment_amount == Decimal("25.00")
        assert row.starting_balance == Decimal("1200.00")
        assert row.months_to_payoff < NEVER_PAYS_OFF_MONTHS
        assert row.projected_payoff_date is not None

    def test_refresh_replaces_row(self, debts, storage, owner_id, card):
        """Test that one row per projection type is kept."""
        debts.set_account_balance(owner_id, card.id, "-1200.00")
        debts.refresh_payoff_projection(owner_id, card.id, ProjectionType.CUSTOM, monthly_payment=100)
        row = debts.refresh_payoff_projection(owner_id, card.id, ProjectionType.CUSTOM, monthly_payment=200)
        debts.refresh_payoff_projection(owner_id, card.id, ProjectionType.MINIMUM_ONLY)

        assert row.monthly_payment_amount == Decimal("200.00")
        rows = storage.find(CreditCardPayoffProjection, account_id=card.id)
        assert len(rows) == 2

    def test_never_pays_off_is_cached(self, debts, owner_id, card):
        """Test that a hopeless payment is stored as the sentinel."""
        debts.set_account_balance(owner_id, card.id, "-1200.00")
        row = debts.refresh_payoff_projection(owner_id, card.id, ProjectionType.CUSTOM, monthly_payment=5)
        assert row.months_to_payoff == NEVER_PAYS_OFF_MONTHS
        assert row.projected_payoff_date is None

    def test_custom_requires_payment(self, debts, owner_id, card):
        """Test that a custom projection needs a payment."""
        with pytest.raises(InvalidAmountError):
            debts.refresh_payoff_projection(owner_id, card.id, ProjectionType.CUSTOM)

    def test_current_payment_uses_latest_payment(self, debts, seed, owner_id, card, card_payment):
        """Test that the most recent card payment is the current payment."""
        debts.set_account_balance(owner_id, card.id, "-1200.00")
        with pytest.raises(InvalidAmountError):
            debts.refresh_payoff_projection(owner_id, card.id, ProjectionType.CURRENT_PAYMENT)

        seed(CreditCardPaymentReconciliation(
            owner_id=owner_id,
            account_id=card.id,
            transaction_id=card_payment.id,
            total_payment_amount=Decimal("150.00"),
            payment_date=card_payment.transaction_date,
            amount_to_debt=Decimal("150.00"),
            reconciliation_method=ReconciliationMethod.ALL_TO_DEBT,
        ))
        row = debts.refresh_payoff_projection(owner_id, card.id, ProjectionType.CURRENT_PAYMENT)
        assert row.monthly_payment_amount == Decimal("150.00")

    def test_non_card_rejected(self, debts, owner_id, checking):
        """Test that only cards get payoff projections."""
        with pytest.raises(LedgerValidationError):
            debts.refresh_payoff_projection(owner_id, checking.id, ProjectionType.MINIMUM_ONLY)
