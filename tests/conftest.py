"""
Shared fixtures for the Envelope Ledger tests.

Every test gets a fresh in-memory storage seeded through real units of
work, so the rows tests start from went through the same commit path as
the rows the engines write.
"""

import threading

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from envelope_ledger.audit import AuditLogger
from envelope_ledger.config import get_settings
from envelope_ledger.models import (
    Account,
    AccountKind,
    Envelope,
    EnvelopeSubtype,
    IncomeSource,
    PayCycle,
    Transaction,
    TransactionType,
)
from envelope_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    InMemoryUnitOfWork,
)


def _seed(storage, *rows):
    """Insert rows in one committed unit of work."""
    with storage.begin() as uow:
        for row in rows:
            uow.insert(row)
    return rows[0] if len(rows) == 1 else rows


@pytest.fixture
def seed(storage):
    """seed(*rows) inserts rows into this test's storage."""
    return lambda *rows: _seed(storage, *rows)


@pytest.fixture
def interleave_first_locks(monkeypatch):
    """
    interleave_first_locks(parties) makes each thread that takes a row lock
    hold its first lock until `parties` threads hold one, or `wait` runs out.

    Two operations that lock the same rows in opposite orders deadlock under
    this schedule; operations sharing one lock order do not.
    """
    def install(parties=2, wait=0.3):
        barrier = threading.Barrier(parties)
        state = threading.local()
        original = InMemoryUnitOfWork.lock

        def lock(self, model, row_id):
            row = original(self, model, row_id)
            if not getattr(state, "waited", False):
                state.waited = True
                try:
                    barrier.wait(timeout=wait)
                except threading.BrokenBarrierError:
                    pass
            return row

        monkeypatch.setattr(InMemoryUnitOfWork, "lock", lock)

    return install


def run_concurrently(**calls):
    """Run each call in its own thread; return {name: error class name} of failures."""
    errors = {}

    def runner(name, call):
        try:
            call()
        except Exception as e:
            errors[name] = type(e).__name__

    threads = [
        threading.Thread(target=runner, args=(name, call))
        for name, call in calls.items()
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return errors


@pytest.fixture
def concurrently():
    return run_concurrently


@pytest.fixture(autouse=True)
def fresh_settings():
    """Reload settings for every test so env changes never leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def storage():
    return InMemoryLedgerStorage(lock_timeout=1.0)


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def owner_id():
    return uuid4()


@pytest.fixture
def other_owner_id():
    return uuid4()


@pytest.fixture
def checking(storage, owner_id):
    return _seed(storage, Account(
        owner_id=owner_id,
        name="Everyday",
        kind=AccountKind.CHECKING,
        current_balance=Decimal("3000.00"),
    ))


@pytest.fixture
def groceries(storage, owner_id):
    return _seed(storage, Envelope(
        owner_id=owner_id,
        name="Groceries",
        subtype=EnvelopeSubtype.SPENDING,
        current_balance=Decimal("500.00"),
    ))


@pytest.fixture
def rent(storage, owner_id):
    return _seed(storage, Envelope(
        owner_id=owner_id,
        name="Rent",
        subtype=EnvelopeSubtype.BILL,
        current_balance=Decimal("200.00"),
    ))


@pytest.fixture
def card(storage, owner_id):
    return _seed(storage, Account(
        owner_id=owner_id,
        name="Visa",
        kind=AccountKind.CREDIT,
        current_balance=Decimal("0.00"),
        statement_close_day=15,
        payment_due_day=10,
        apr=Decimal("19.99"),
    ))


@pytest.fixture
def holding(storage, owner_id, card):
    return _seed(storage, Envelope(
        owner_id=owner_id,
        name="Visa Holding",
        subtype=EnvelopeSubtype.TRACKING,
        linked_account_id=card.id,
        is_cc_holding=True,
    ))


@pytest.fixture
def salary(storage, owner_id):
    return _seed(storage, IncomeSource(
        owner_id=owner_id,
        name="Acme Payroll",
        pay_cycle=PayCycle.FORTNIGHTLY,
        typical_amount=Decimal("2850.00"),
        next_pay_date=date(2026, 3, 13),
    ))


@pytest.fixture
def pay_transaction(storage, owner_id, checking):
    return _seed(storage, Transaction(
        owner_id=owner_id,
        account_id=checking.id,
        amount=Decimal("2900.00"),
        transaction_type=TransactionType.INCOME,
        description="ACME PAYROLL SALARY",
        transaction_date=date(2026, 3, 13),
    ))


@pytest.fixture
def card_payment(storage, owner_id, checking):
    return _seed(storage, Transaction(
        owner_id=owner_id,
        account_id=checking.id,
        amount=Decimal("-300.00"),
        transaction_type=TransactionType.TRANSFER,
        description="VISA PAYMENT",
        transaction_date=date(2026, 3, 5),
    ))
