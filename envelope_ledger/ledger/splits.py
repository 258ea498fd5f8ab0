"""
Transaction Split Allocator

Divides one bank transaction across several envelopes.

DESIGN DECISION: A save is a full replace. The caller always sends the
complete split set; the old set is deleted and the new one inserted in
the same unit of work. There is no partial update.
"""

from typing import Optional, Sequence
from uuid import UUID

from envelope_ledger.ledger.access import get_owned, lock_owned
from envelope_ledger.ledger.engine import LedgerEngine
from envelope_ledger.ledger.errors import MissingEnvelopeError
from envelope_ledger.models.audit import AuditEventBuilder
from envelope_ledger.models.base import utcnow
from envelope_ledger.models.ledger import (
    Envelope,
    SplitRequest,
    Transaction,
    TransactionSplit,
    TransactionStatus,
)
from envelope_ledger.validation import validate_splits


class SplitAllocator(LedgerEngine):
    """Saves and reads the envelope splits of a transaction."""

    def save_splits(
        self,
        owner_id: UUID,
        transaction_id: UUID,
        splits: Sequence[SplitRequest],
        correlation_id: Optional[UUID] = None,
    ) -> list[TransactionSplit]:
        """
        Replace the splits of a transaction.

        Raises:
            EmptySplitsError: If `splits` is empty
            NotFoundError: If the transaction is missing or foreign
            MissingEnvelopeError: If any envelope is missing or foreign
            SplitMismatchError: If the splits don't add up to the amount
        """
        correlation_id = self._correlation(correlation_id)
        splits = [
            split if isinstance(split, SplitRequest) else SplitRequest.model_validate(split)
            for split in splits
        ]

        with self._storage.begin() as uow:
            transaction = lock_owned(uow, Transaction, transaction_id, owner_id)
            total = validate_splits(splits, transaction.amount)

            for split in splits:
                envelope = uow.get(Envelope, split.envelope_id)
                if envelope is None or envelope.owner_id != owner_id:
                    raise MissingEnvelopeError(split.envelope_id)

            for existing in uow.find(TransactionSplit, transaction_id=transaction.id):
                uow.delete(TransactionSplit, existing.id)

            saved = []
            for split in splits:
                row = TransactionSplit(
                    owner_id=owner_id,
                    transaction_id=transaction.id,
                    envelope_id=split.envelope_id,
                    amount=split.amount,
                )
                uow.insert(row)
                saved.append(row)

            # Single-envelope shortcut
            transaction.envelope_id = splits[0].envelope_id if len(splits) == 1 else None
            if transaction.status == TransactionStatus.UNMATCHED:
                transaction.status = TransactionStatus.PENDING
            transaction.updated_at = utcnow()
            uow.update(transaction)

        self._emit(AuditEventBuilder.splits_saved(
            owner_id=owner_id,
            transaction_id=transaction_id,
            split_count=len(saved),
            total=total,
            correlation_id=correlation_id,
        ))
        return saved

    def get_splits(self, owner_id: UUID, transaction_id: UUID) -> list[TransactionSplit]:
        """Current splits of a transaction, in the order they were saved."""
        with self._storage.begin() as uow:
            get_owned(uow, Transaction, transaction_id, owner_id)
            return uow.find(TransactionSplit, transaction_id=transaction_id)
