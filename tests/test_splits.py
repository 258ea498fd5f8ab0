"""
Tests for transaction splits.
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from envelope_ledger.ledger.errors import (
    EmptySplitsError,
    MissingEnvelopeError,
    NotFoundError,
    SplitMismatchError,
)
from envelope_ledger.ledger.splits import SplitAllocator
from envelope_ledger.models import (
    SplitRequest,
    Transaction,
    TransactionSplit,
    TransactionStatus,
    TransactionType,
)


@pytest.fixture
def allocator(storage, audit):
    return SplitAllocator(storage, audit)


@pytest.fixture
def purchase(seed, owner_id, checking):
    return seed(Transaction(
        owner_id=owner_id,
        account_id=checking.id,
        amount=Decimal("100.00"),
        transaction_type=TransactionType.EXPENSE,
        description="SUPERMARKET",
    ))


class TestSaveSplits:
    """Tests for saving a full split set."""

    def test_splits_matching_total_succeed(self, allocator, storage, owner_id, purchase, groceries, rent):
        """Test that 60 + 40 covers a 100 transaction."""
        saved = allocator.save_splits(owner_id, purchase.id, [
            SplitRequest(envelope_id=groceries.id, amount="60.00"),
            SplitRequest(envelope_id=rent.id, amount="40.00"),
        ])
        assert [row.amount for row in saved] == [Decimal("60.00"), Decimal("40.00")]

        transaction = storage.get(Transaction, purchase.id)
        assert transaction.envelope_id is None
        assert transaction.status == TransactionStatus.PENDING

    def test_splits_short_by_a_dollar_fail(self, allocator, storage, owner_id, purchase, groceries, rent):
        """Test that 60 + 39 does not cover a 100 transaction."""
        with pytest.raises(SplitMismatchError) as exc_info:
            allocator.save_splits(owner_id, purchase.id, [
                SplitRequest(envelope_id=groceries.id, amount="60.00"),
                SplitRequest(envelope_id=rent.id, amount="39.00"),
            ])
        assert exc_info.value.expected == Decimal("100.00")
        assert exc_info.value.actual == Decimal("99.00")
        assert storage.find(TransactionSplit) == []

    def test_one_cent_tolerance(self, allocator, owner_id, purchase, groceries, rent):
        """Test that a one-cent rounding gap is accepted."""
        saved = allocator.save_splits(owner_id, purchase.id, [
            {"envelope_id": groceries.id, "amount": "66.67"},
            {"envelope_id": rent.id, "amount": "33.34"},
        ])
        assert len(saved) == 2

    def test_single_split_sets_shortcut(self, allocator, storage, owner_id, purchase, groceries):
        """Test that one split sets the transaction's envelope."""
        allocator.save_splits(owner_id, purchase.id, [
            SplitRequest(envelope_id=groceries.id, amount="100.00"),
        ])
        assert storage.get(Transaction, purchase.id).envelope_id == groceries.id

    def test_resave_replaces_previous_splits(self, allocator, storage, owner_id, purchase, groceries, rent):
        """Test that the caller's set replaces the stored set."""
        allocator.save_splits(owner_id, purchase.id, [
            SplitRequest(envelope_id=groceries.id, amount="60.00"),
            SplitRequest(envelope_id=rent.id, amount="40.00"),
        ])
        allocator.save_splits(owner_id, purchase.id, [
            SplitRequest(envelope_id=rent.id, amount="100.00"),
        ])
        rows = allocator.get_splits(owner_id, purchase.id)
        assert [(row.envelope_id, row.amount) for row in rows] == [(rent.id, Decimal("100.00"))]

    def test_empty_splits_rejected(self, allocator, owner_id, purchase):
        """Test that at least one split is required."""
        with pytest.raises(EmptySplitsError):
            allocator.save_splits(owner_id, purchase.id, [])

    def test_unknown_envelope_rejected(self, allocator, storage, owner_id, purchase):
        """Test that every split must name an owned envelope."""
        with pytest.raises(MissingEnvelopeError):
            allocator.save_splits(owner_id, purchase.id, [
                SplitRequest(envelope_id=uuid4(), amount="100.00"),
            ])
        assert storage.get(Transaction, purchase.id).status == TransactionStatus.UNMATCHED

    def test_foreign_transaction_not_found(self, allocator, other_owner_id, purchase, groceries):
        """Test that another owner cannot split this transaction."""
        with pytest.raises(NotFoundError):
            allocator.save_splits(other_owner_id, purchase.id, [
                SplitRequest(envelope_id=groceries.id, amount="100.00"),
            ])
