"""Services package."""

from envelope_ledger.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    LockTimeoutError,
    NotFoundError,
    StorageError,
    UnitOfWork,
)

__all__ = [
    "AuditStorageInterface",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "LockTimeoutError",
    "NotFoundError",
    "StorageError",
    "UnitOfWork",
]
