"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the in-memory store for a real database later
2. Use in-memory storage for testing
3. Keep ledger logic decoupled from the storage implementation

The interface is intentionally simple - we're not building a full ORM.
Rows are pydantic models keyed by (model class, id). Every write happens
inside a UnitOfWork: staged writes become visible to other readers only
at commit, and are discarded on rollback.

LOCKING: Rows must be locked (UnitOfWork.lock / lock_many) before they are
updated. Locks are exclusive and held until commit or rollback. When a
unit of work needs several rows of the same kind it must use lock_many,
which acquires them in ascending id order so two concurrent operations
can never deadlock on each other.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional, TypeVar
from uuid import UUID

from envelope_ledger.models.audit import AuditEvent
from envelope_ledger.models.base import LedgerModel


M = TypeVar("M", bound=LedgerModel)


class UnitOfWork(ABC):
    """
    One atomic batch of reads and writes.

    Use as a context manager: commits when the block exits normally,
    rolls back when it raises.

        with storage.begin() as uow:
            envelope = uow.lock(Envelope, envelope_id)
            envelope.current_balance += amount
            uow.update(envelope)
    """

    @abstractmethod
    def get(self, model: type[M], row_id: UUID) -> Optional[M]:
        """
        Read a row as this unit of work sees it (staged writes included).

        Returns a copy; mutating it has no effect until update() is called.
        """
        pass

    @abstractmethod
    def lock(self, model: type[M], row_id: UUID) -> Optional[M]:
        """
        Take an exclusive lock on a row and return its current state.

        Returns None (and holds no lock) if the row does not exist.

        Raises:
            LockTimeoutError: If the lock is not acquired in time
        """
        pass

    @abstractmethod
    def lock_many(self, model: type[M], row_ids: Iterable[UUID]) -> dict[UUID, M]:
        """
        Lock several rows of one model in ascending id order.

        Missing rows are left out of the returned mapping.
        """
        pass

    @abstractmethod
    def find(self, model: type[M], **filters: Any) -> list[M]:
        """Return rows whose attributes equal every filter value."""
        pass

    @abstractmethod
    def insert(self, row: M) -> M:
        """
        Stage a new row.

        Raises:
            DuplicateError: If a row with the same id exists
        """
        pass

    @abstractmethod
    def update(self, row: M) -> M:
        """
        Stage a change to a row locked by (or inserted in) this unit of work.

        Raises:
            StorageError: If the row is not locked
            NotFoundError: If the row doesn't exist
        """
        pass

    @abstractmethod
    def delete(self, model: type[M], row_id: UUID) -> None:
        """
        Stage removal of a row.

        Raises:
            NotFoundError: If the row doesn't exist
        """
        pass

    @abstractmethod
    def commit(self) -> None:
        """
        Apply every staged write atomically and release all locks.

        Raises:
            DuplicateError: If a declared uniqueness constraint is violated
        """
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Discard staged writes and release all locks."""
        pass

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        return False


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage.

    Any storage implementation (in-memory, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    def begin(self) -> UnitOfWork:
        """Start a new unit of work."""
        pass

    @abstractmethod
    def get(self, model: type[M], row_id: UUID) -> Optional[M]:
        """Read a committed row by id, or None."""
        pass

    @abstractmethod
    def find(self, model: type[M], **filters: Any) -> list[M]:
        """Read committed rows matching every filter."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (one ledger operation).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'envelope_transfer', 'allocation_plan')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class LockTimeoutError(StorageError):
    """A row lock could not be acquired in time."""
    pass
