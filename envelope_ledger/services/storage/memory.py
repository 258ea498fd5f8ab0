"""
In-Memory Storage Implementation

DESIGN DECISION: The in-memory store is a real transactional store, not a
dict wrapper. It gives the ledger the same guarantees a database would:
1. Staged writes, applied atomically at commit
2. Exclusive row locks with a timeout
3. Uniqueness constraints checked at commit

TRADEOFFS:
- Single process only (locks are threading locks)
- Data is lost when the process exits

The implementation follows the abstract interface, so a database-backed
store can replace it without changing ledger logic.
"""

import threading
from typing import Any, Iterable, Optional
from uuid import UUID

import structlog

from envelope_ledger.config import get_settings
from envelope_ledger.models.audit import AuditEvent
from envelope_ledger.models.base import LedgerModel
from envelope_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    LockTimeoutError,
    M,
    NotFoundError,
    StorageError,
    UnitOfWork,
)


logger = structlog.get_logger(__name__)

RowKey = tuple[type, UUID]


def _copy(row: M) -> M:
    return row.model_copy(deep=True)


def _matches(row: LedgerModel, filters: dict[str, Any]) -> bool:
    return all(getattr(row, name) == value for name, value in filters.items())


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    Ledger storage held in process memory.

    Tables are keyed by model class. Rows handed out are always copies, so
    callers can never mutate committed state behind the store's back.
    """

    def __init__(self, lock_timeout: Optional[float] = None):
        """
        Args:
            lock_timeout: Seconds to wait for a row lock.
                          Defaults to LEDGER_LOCK_TIMEOUT_SECONDS.
        """
        if lock_timeout is None:
            lock_timeout = get_settings().ledger.lock_timeout_seconds
        self.lock_timeout = lock_timeout

        self._tables: dict[type, dict[UUID, LedgerModel]] = {}
        self._row_locks: dict[RowKey, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._commit_lock = threading.Lock()

    def begin(self) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self)

    def get(self, model: type[M], row_id: UUID) -> Optional[M]:
        row = self._table(model).get(row_id)
        return _copy(row) if row is not None else None

    def find(self, model: type[M], **filters: Any) -> list[M]:
        return [
            _copy(row)
            for row in self._table(model).values()
            if _matches(row, filters)
        ]

    def _table(self, model: type) -> dict[UUID, LedgerModel]:
        return self._tables.setdefault(model, {})

    def _row_lock(self, key: RowKey) -> threading.Lock:
        with self._registry_lock:
            lock = self._row_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._row_locks[key] = lock
            return lock


class InMemoryUnitOfWork(UnitOfWork):
    """
    A unit of work against InMemoryLedgerStorage.

    Nothing touches the shared tables until commit().
    """

    def __init__(self, storage: InMemoryLedgerStorage):
        self._storage = storage
        self._inserts: dict[RowKey, LedgerModel] = {}
        self._updates: dict[RowKey, LedgerModel] = {}
        self._deletes: set[RowKey] = set()
        self._held: dict[RowKey, threading.Lock] = {}
        self._closed = False

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, model: type[M], row_id: UUID) -> Optional[M]:
        self._ensure_open()
        key = (model, row_id)
        if key in self._deletes:
            return None
        staged = self._inserts.get(key) or self._updates.get(key)
        if staged is not None:
            return _copy(staged)
        return self._storage.get(model, row_id)

    def find(self, model: type[M], **filters: Any) -> list[M]:
        self._ensure_open()
        rows: dict[UUID, LedgerModel] = dict(self._storage._table(model))
        for (kind, row_id), row in self._updates.items():
            if kind is model:
                rows[row_id] = row
        for (kind, row_id), row in self._inserts.items():
            if kind is model:
                rows[row_id] = row
        for kind, row_id in self._deletes:
            if kind is model:
                rows.pop(row_id, None)
        return [_copy(row) for row in rows.values() if _matches(row, filters)]

    # =========================================================================
    # LOCKS
    # =========================================================================

    def lock(self, model: type[M], row_id: UUID) -> Optional[M]:
        self._ensure_open()
        key = (model, row_id)
        if key not in self._held and key not in self._inserts:
            row_lock = self._storage._row_lock(key)
            if not row_lock.acquire(timeout=self._storage.lock_timeout):
                raise LockTimeoutError(
                    f"Timed out locking {model.__name__} {row_id}"
                )
            self._held[key] = row_lock

        row = self.get(model, row_id)
        if row is None and key in self._held:
            self._held.pop(key).release()
        return row

    def lock_many(self, model: type[M], row_ids: Iterable[UUID]) -> dict[UUID, M]:
        rows = {}
        for row_id in sorted(set(row_ids)):
            row = self.lock(model, row_id)
            if row is not None:
                rows[row_id] = row
        return rows

    # =========================================================================
    # WRITES
    # =========================================================================

    def insert(self, row: M) -> M:
        self._ensure_open()
        key = (type(row), row.id)
        if key in self._inserts or (
            key not in self._deletes
            and row.id in self._storage._table(type(row))
        ):
            raise DuplicateError(f"{type(row).__name__} {row.id} already exists")
        self._inserts[key] = _copy(row)
        return row

    def update(self, row: M) -> M:
        self._ensure_open()
        key = (type(row), row.id)
        if key in self._inserts:
            self._inserts[key] = _copy(row)
            return row
        if key not in self._held:
            raise StorageError(
                f"{type(row).__name__} {row.id} must be locked before it is updated"
            )
        if key in self._deletes or row.id not in self._storage._table(type(row)):
            raise NotFoundError(f"{type(row).__name__} not found: {row.id}")
        self._updates[key] = _copy(row)
        return row

    def delete(self, model: type[M], row_id: UUID) -> None:
        self._ensure_open()
        key = (model, row_id)
        if key in self._inserts:
            del self._inserts[key]
            return
        if key in self._deletes or row_id not in self._storage._table(model):
            raise NotFoundError(f"{model.__name__} not found: {row_id}")
        self._updates.pop(key, None)
        self._deletes.add(key)

    # =========================================================================
    # COMMIT / ROLLBACK
    # =========================================================================

    def commit(self) -> None:
        self._ensure_open()
        try:
            with self._storage._commit_lock:
                self._check_unique()
                # Deletes first: a row may be deleted and re-inserted in one batch
                for model, row_id in self._deletes:
                    self._storage._table(model).pop(row_id, None)
                for (model, row_id), row in self._updates.items():
                    self._storage._table(model)[row_id] = row
                for (model, row_id), row in self._inserts.items():
                    self._storage._table(model)[row_id] = row
            logger.debug(
                "unit_of_work_committed",
                inserts=len(self._inserts),
                updates=len(self._updates),
                deletes=len(self._deletes),
            )
        finally:
            self._close()

    def rollback(self) -> None:
        if self._closed:
            return
        logger.debug(
            "unit_of_work_rolled_back",
            discarded=len(self._inserts) + len(self._updates) + len(self._deletes),
        )
        self._close()

    def _check_unique(self) -> None:
        """Check declared uniqueness constraints against the post-commit view."""
        changed = {**self._updates, **self._inserts}
        for (model, _), row in changed.items():
            if not model.unique_together:
                continue
            others = [
                other for other in self.find(model)
                if other.id != row.id
            ]
            for fields, values in row.unique_keys():
                for other in others:
                    if tuple(getattr(other, name) for name in fields) == values:
                        raise DuplicateError(
                            f"{model.__name__} with {dict(zip(fields, values))} already exists"
                        )

    def _close(self) -> None:
        self._inserts.clear()
        self._updates.clear()
        self._deletes.clear()
        for row_lock in self._held.values():
            row_lock.release()
        self._held.clear()
        self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise StorageError("Unit of work is already closed")


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log held in memory."""

    def __init__(self):
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event)
        return True

    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
