"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Currently implements an in-memory transactional backend, but designed to
be swappable.
"""

from envelope_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    LockTimeoutError,
    NotFoundError,
    StorageError,
    UnitOfWork,
)
from envelope_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    InMemoryUnitOfWork,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "UnitOfWork",
    # Exceptions
    "DuplicateError",
    "LockTimeoutError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "InMemoryUnitOfWork",
]
