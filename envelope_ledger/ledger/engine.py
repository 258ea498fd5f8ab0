"""Shared wiring for the ledger engines."""

from typing import Optional
from uuid import UUID

import structlog

from envelope_ledger.audit import AuditLogger, create_correlation_id
from envelope_ledger.models.audit import AuditEvent
from envelope_ledger.services.storage import LedgerStorageInterface


class LedgerEngine:
    """
    Base class for the ledger engines.

    Each public engine method runs in its own unit of work and emits its
    success audit event only after the unit of work has committed.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit = audit or AuditLogger()
        self._logger = structlog.get_logger(type(self).__module__)

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    def _emit(self, event: AuditEvent) -> None:
        self._audit.log(event)

    @staticmethod
    def _correlation(correlation_id: Optional[UUID]) -> UUID:
        return correlation_id or create_correlation_id()
