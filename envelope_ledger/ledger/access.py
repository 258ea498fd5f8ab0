"""
Owner-scoped row access.

Every row read on behalf of a caller goes through these helpers. A row
that exists but belongs to another owner is reported exactly like a
missing row.
"""

from typing import Optional
from uuid import UUID

from envelope_ledger.ledger.errors import (
    InsufficientFundsError,
    NotFoundError,
)
from envelope_ledger.models.base import utcnow
from envelope_ledger.models.ledger import Envelope
from envelope_ledger.models.money import ZERO, Money
from envelope_ledger.services.storage import UnitOfWork
from envelope_ledger.services.storage.interface import M


def owned(row: Optional[M], owner_id: UUID, entity: str, row_id: UUID) -> M:
    """Return `row` if it exists and belongs to `owner_id`."""
    if row is None or row.owner_id != owner_id:
        raise NotFoundError(entity, row_id)
    return row


def get_owned(uow: UnitOfWork, model: type[M], row_id: UUID, owner_id: UUID) -> M:
    return owned(uow.get(model, row_id), owner_id, model.__name__, row_id)


def lock_owned(uow: UnitOfWork, model: type[M], row_id: UUID, owner_id: UUID) -> M:
    return owned(uow.lock(model, row_id), owner_id, model.__name__, row_id)


def credit_envelope(uow: UnitOfWork, envelope: Envelope, amount: Money) -> Envelope:
    """Add `amount` to a locked envelope and stage the update."""
    envelope.current_balance = envelope.current_balance + amount
    envelope.updated_at = utcnow()
    return uow.update(envelope)


def debit_envelope(uow: UnitOfWork, envelope: Envelope, amount: Money) -> Envelope:
    """
    Take `amount` out of a locked envelope and stage the update.

    No envelope is ever left below zero, whatever its overdraft flag.
    """
    new_balance = envelope.current_balance - amount
    if new_balance < ZERO:
        raise InsufficientFundsError(envelope.id, envelope.current_balance, amount)
    envelope.current_balance = new_balance
    envelope.updated_at = utcnow()
    return uow.update(envelope)
