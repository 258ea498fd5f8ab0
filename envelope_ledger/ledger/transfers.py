"""
Envelope Transfer Engine

The only legal way to move money directly between two envelopes.

LOCK ORDER: both envelope rows are locked in ascending id order, so two
transfers touching the same pair in opposite directions cannot deadlock.
"""

from typing import Optional
from uuid import UUID

from envelope_ledger.ledger.access import credit_envelope, debit_envelope
from envelope_ledger.ledger.engine import LedgerEngine
from envelope_ledger.ledger.errors import MissingEnvelopeError
from envelope_ledger.models.audit import AuditEventBuilder
from envelope_ledger.models.ledger import Envelope, EnvelopeTransfer
from envelope_ledger.models.money import MoneyInput
from envelope_ledger.validation import validate_transfer


class TransferEngine(LedgerEngine):
    """Atomic two-envelope balance moves with an append-only transfer log."""

    def transfer(
        self,
        owner_id: UUID,
        from_envelope_id: UUID,
        to_envelope_id: UUID,
        amount: MoneyInput,
        note: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> EnvelopeTransfer:
        """
        Move `amount` from one envelope to another.

        Raises:
            SameEnvelopeError: If both ids are the same
            InvalidAmountError: If the amount is not positive
            MissingEnvelopeError: If either envelope is missing or foreign
            InsufficientFundsError: If the source holds less than `amount`
        """
        correlation_id = self._correlation(correlation_id)
        amount = validate_transfer(from_envelope_id, to_envelope_id, amount)

        with self._storage.begin() as uow:
            envelopes = uow.lock_many(Envelope, [from_envelope_id, to_envelope_id])
            source = self._owned_envelope(envelopes, from_envelope_id, owner_id)
            target = self._owned_envelope(envelopes, to_envelope_id, owner_id)

            from_before = source.current_balance
            to_before = target.current_balance

            debit_envelope(uow, source, amount)
            credit_envelope(uow, target, amount)

            record = EnvelopeTransfer(
                owner_id=owner_id,
                from_envelope_id=source.id,
                to_envelope_id=target.id,
                amount=amount,
                from_balance_before=from_before,
                from_balance_after=source.current_balance,
                to_balance_before=to_before,
                to_balance_after=target.current_balance,
                note=note,
            )
            uow.insert(record)

        self._emit(AuditEventBuilder.transfer_completed(
            owner_id=owner_id,
            transfer_id=record.id,
            from_envelope_id=from_envelope_id,
            to_envelope_id=to_envelope_id,
            amount=amount,
            correlation_id=correlation_id,
        ))
        return record

    @staticmethod
    def _owned_envelope(
        envelopes: dict[UUID, Envelope],
        envelope_id: UUID,
        owner_id: UUID,
    ) -> Envelope:
        envelope = envelopes.get(envelope_id)
        if envelope is None or envelope.owner_id != owner_id:
            raise MissingEnvelopeError(envelope_id)
        return envelope
