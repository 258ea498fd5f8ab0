"""
Tests for the LedgerService facade.

The facade adds correlation ids and failure auditing on top of the
engines; the engines' own behaviour is covered in their modules.
"""

import pytest
from datetime import date
from decimal import Decimal

from envelope_ledger.ledger.errors import (
    InsufficientFundsError,
    IntegrityError,
    NotFoundError,
    PlanAlreadyAppliedError,
)
from envelope_ledger.ledger.payoff import NEVER_PAYS_OFF_MONTHS
from envelope_ledger.models import (
    AuditEventType,
    AuditSeverity,
    DebtItem,
    Envelope,
    EnvelopeSubtype,
    ProjectionType,
)
from envelope_ledger.orchestrator import LedgerService, create_ledger_service
from envelope_ledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


@pytest.fixture
def service(storage, audit):
    return LedgerService(storage, audit_logger=audit)


def events_of(audit_storage, event_type):
    return [event for event in audit_storage.get_recent_events() if event.event_type == event_type]


class TestFailureAuditing:
    """Tests for auditing rejected and failed operations."""

    def test_rejection_is_audited_and_reraised(self, service, audit_storage, owner_id, groceries, rent):
        """Test that an invariant violation is logged at warning and re-raised."""
        with pytest.raises(InsufficientFundsError):
            service.transfer(owner_id, rent.id, groceries.id, "999.00")

        rejected = events_of(audit_storage, AuditEventType.OPERATION_REJECTED)
        assert len(rejected) == 1
        assert rejected[0].severity == AuditSeverity.WARNING
        assert rejected[0].error_code == "InsufficientFundsError"
        assert rejected[0].details["operation"] == "transfer"
        assert rejected[0].owner_id == owner_id

    def test_not_found_is_a_rejection(self, service, audit_storage, other_owner_id, groceries, rent):
        """Test that foreign rows are reported as not found."""
        with pytest.raises(NotFoundError):
            service.transfer(other_owner_id, groceries.id, rent.id, "1.00")
        assert len(events_of(audit_storage, AuditEventType.OPERATION_REJECTED)) == 1

    def test_integrity_failure_is_error(self, service, audit_storage, owner_id, card):
        """Test that an integrity failure is logged at error severity."""
        with pytest.raises(IntegrityError):
            service.close_cycle(owner_id, card.id, "2026-02")

        errors = events_of(audit_storage, AuditEventType.SYSTEM_ERROR)
        assert len(errors) == 1
        assert errors[0].severity == AuditSeverity.ERROR
        assert errors[0].error_code == "IntegrityError"
        assert errors[0].details == {"operation": "close_cycle"}

    def test_success_events_share_a_correlation_id(self, service, audit_storage, owner_id, card, holding):
        """Test that one operation's events are correlated."""
        service.record_card_spend(owner_id, card.id, "10.00", covered_amount="10.00")
        event = events_of(audit_storage, AuditEventType.CARD_SPEND_RECORDED)[0]
        assert event.correlation_id is not None
        assert audit_storage.get_events_by_correlation_id(event.correlation_id) == [event]


class TestEndToEnd:
    """A month in the life of a ledger, through the facade."""

    def test_pay_allocate_spend_and_pay_card(
        self, service, storage, seed, owner_id, salary, pay_transaction, rent, groceries,
        card, holding, card_payment,
    ):
        """Test income allocation feeding card coverage and payment."""
        service.allocations.set_allocation_rule(owner_id, rent.id, salary.id, "1000.00")
        debt_envelope = seed(Envelope(owner_id=owner_id, name="Debts", subtype=EnvelopeSubtype.DEBT))
        card_debt = service.debts.add_debt_item(owner_id, debt_envelope.id, "Visa", linked_account_id=card.id)

        event = service.reconcile_income(
            owner_id, salary.id, pay_transaction.id, date(2026, 3, 13), "2900.00"
        )
        assert event.amount_variance == Decimal("50.00")
        assert event.date_variance_days == 0

        plan = service.propose_plan(owner_id, pay_transaction.id)
        assert [item.amount for item in service.get_plan_items(owner_id, plan.id)] == [
            Decimal("1000.00"), Decimal("1900.00"),
        ]
        service.apply_plan(owner_id, plan.id)
        with pytest.raises(PlanAlreadyAppliedError):
            service.apply_plan(owner_id, plan.id)

        service.transfer(owner_id, groceries.id, holding.id, "100.00")
        service.record_card_spend(owner_id, card.id, "250.00", spend_date=date(2026, 3, 14))
        assert storage.get(DebtItem, card_debt.id).current_balance == Decimal("250.00")

        reconciliation = service.reconcile_payment(
            owner_id, card.id, card_payment.id, "250.00",
            method="all_to_debt", payment_date=date(2026, 4, 1),
        )
        assert reconciliation.amount_to_debt == Decimal("250.00")

        debt = storage.get(DebtItem, card_debt.id)
        assert debt.current_balance == Decimal("0.00")
        assert debt.is_paid_off
        assert storage.get(Envelope, rent.id).current_balance == Decimal("1200.00")

    def test_debt_operations(self, service, storage, seed, owner_id, card):
        """Test account sync, projections and snowball through the facade."""
        envelope = seed(Envelope(owner_id=owner_id, name="Debts", subtype=EnvelopeSubtype.DEBT))
        service.debts.add_debt_item(owner_id, envelope.id, "Visa", linked_account_id=card.id)
        loan = service.debts.add_debt_item(owner_id, envelope.id, "Loan", starting_balance="300.00")

        service.set_account_balance(owner_id, card.id, "-450.00")
        service.apply_debt_payment(owner_id, loan.id, "100.00")

        assert [item.name for item in service.debt_snowball(owner_id)] == ["Loan", "Visa"]
        projection = service.refresh_payoff_projection(owner_id, card.id, ProjectionType.MINIMUM_ONLY)
        assert projection.starting_balance == Decimal("450.00")
        assert service.available_cash(owner_id).holding_total == Decimal("0.00")

    def test_compute_payoff_is_pure(self):
        """Test the static projection entry point."""
        assert LedgerService.compute_payoff(1200, "19.99", 5).months_to_payoff == NEVER_PAYS_OFF_MONTHS
        assert LedgerService.compute_payoff(1200, "19.99", 100).converges


class TestFactory:
    """Tests for create_ledger_service."""

    def test_defaults_to_in_memory_storage(self):
        service = create_ledger_service()
        assert isinstance(service.storage, InMemoryLedgerStorage)

    def test_audit_storage_is_used(self, owner_id):
        audit_storage = InMemoryAuditStorage()
        service = create_ledger_service(audit_storage=audit_storage)
        with pytest.raises(NotFoundError):
            service.apply_plan(owner_id, owner_id)
        assert len(audit_storage.get_recent_events()) == 1
