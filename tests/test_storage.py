"""
Tests for the in-memory transactional storage.
"""

import threading

import pytest
from decimal import Decimal
from uuid import uuid4

from envelope_ledger.models import Envelope, EnvelopeIncomeAllocation
from envelope_ledger.services.storage import (
    DuplicateError,
    LockTimeoutError,
    StorageError,
)


class TestUnitOfWork:
    """Tests for commit, rollback and isolation."""

    def test_commit_applies_writes(self, storage, owner_id):
        """Test that a committed insert is visible afterwards."""
        envelope = Envelope(owner_id=owner_id, name="Fun")
        with storage.begin() as uow:
            uow.insert(envelope)
            assert storage.get(Envelope, envelope.id) is None
        assert storage.get(Envelope, envelope.id).name == "Fun"

    def test_exception_rolls_back(self, storage, groceries):
        """Test that staged writes are discarded on error."""
        with pytest.raises(RuntimeError):
            with storage.begin() as uow:
                row = uow.lock(Envelope, groceries.id)
                row.current_balance = Decimal("0.00")
                uow.update(row)
                raise RuntimeError("abort")
        assert storage.get(Envelope, groceries.id).current_balance == Decimal("500.00")

    def test_update_requires_lock(self, storage, groceries):
        """Test that unlocked rows cannot be updated."""
        with pytest.raises(StorageError):
            with storage.begin() as uow:
                row = uow.get(Envelope, groceries.id)
                row.name = "Food"
                uow.update(row)

    def test_find_sees_staged_writes(self, storage, owner_id, groceries):
        """Test that a unit of work reads its own writes."""
        with storage.begin() as uow:
            uow.insert(Envelope(owner_id=owner_id, name="Fun"))
            uow.delete(Envelope, groceries.id)
            names = {row.name for row in uow.find(Envelope, owner_id=owner_id)}
        assert names == {"Fun"}

    def test_returned_rows_are_copies(self, storage, groceries):
        """Test that mutating a read row never touches storage."""
        row = storage.get(Envelope, groceries.id)
        row.current_balance = Decimal("1.00")
        assert storage.get(Envelope, groceries.id).current_balance == Decimal("500.00")

    def test_closed_unit_of_work_rejects_use(self, storage):
        """Test that a committed unit of work cannot be reused."""
        uow = storage.begin()
        uow.commit()
        with pytest.raises(StorageError):
            uow.find(Envelope)

    def test_lock_missing_row_returns_none(self, storage):
        """Test that locking a missing row yields None."""
        with storage.begin() as uow:
            assert uow.lock(Envelope, uuid4()) is None


class TestConstraints:
    """Tests for declared uniqueness constraints."""

    def test_duplicate_unique_key_rejected_at_commit(self, storage, seed, owner_id, groceries):
        """Test that (envelope, income source) is unique."""
        source_id = uuid4()
        seed(EnvelopeIncomeAllocation(
            owner_id=owner_id,
            envelope_id=groceries.id,
            income_source_id=source_id,
            allocation_amount=Decimal("100.00"),
        ))
        with pytest.raises(DuplicateError):
            seed(EnvelopeIncomeAllocation(
                owner_id=owner_id,
                envelope_id=groceries.id,
                income_source_id=source_id,
                allocation_amount=Decimal("50.00"),
            ))
        assert len(storage.find(EnvelopeIncomeAllocation)) == 1

    def test_one_surplus_envelope_per_owner(self, storage, seed, owner_id, other_owner_id):
        """Test that a second Surplus for the same owner fails at commit."""
        seed(Envelope(owner_id=owner_id, name="Surplus", is_surplus=True))
        with pytest.raises(DuplicateError):
            seed(Envelope(owner_id=owner_id, name="Surplus", is_surplus=True))

        seed(Envelope(owner_id=other_owner_id, name="Surplus", is_surplus=True))
        assert len(storage.find(Envelope, is_surplus=True)) == 2

    def test_ordinary_envelopes_are_not_constrained(self, storage, seed, owner_id):
        """Test that non-surplus envelopes never collide on the surplus key."""
        seed(
            Envelope(owner_id=owner_id, name="Fun"),
            Envelope(owner_id=owner_id, name="Fun"),
        )
        assert len(storage.find(Envelope, owner_id=owner_id)) == 2

    def test_duplicate_id_rejected(self, storage, groceries):
        """Test that the same row cannot be inserted twice."""
        with pytest.raises(DuplicateError):
            with storage.begin() as uow:
                uow.insert(groceries)


class TestLocking:
    """Tests for exclusive row locks."""

    def test_lock_times_out(self, storage, seed, owner_id):
        """Test that a second writer gives up after the timeout."""
        envelope = seed(Envelope(owner_id=owner_id, name="Fun"))
        holder = storage.begin()
        holder.lock(Envelope, envelope.id)

        errors = []

        def contender():
            try:
                with storage.begin() as uow:
                    uow.lock(Envelope, envelope.id)
            except LockTimeoutError as e:
                errors.append(e)

        thread = threading.Thread(target=contender)
        thread.start()
        thread.join()
        holder.rollback()

        assert len(errors) == 1

    def test_lock_released_after_commit(self, storage, seed, owner_id):
        """Test that commit releases held locks."""
        envelope = seed(Envelope(owner_id=owner_id, name="Fun"))
        with storage.begin() as uow:
            uow.lock(Envelope, envelope.id)
        with storage.begin() as uow:
            assert uow.lock(Envelope, envelope.id) is not None

    def test_lock_many_returns_existing_rows(self, storage, groceries, rent):
        """Test locking several rows at once."""
        with storage.begin() as uow:
            rows = uow.lock_many(Envelope, [rent.id, groceries.id, uuid4()])
        assert set(rows) == {groceries.id, rent.id}
