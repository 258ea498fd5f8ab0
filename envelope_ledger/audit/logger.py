"""
Audit Logger

DESIGN DECISION: Every ledger operation outcome is logged.
This provides:
1. Complete traceability of balance changes
2. Debugging capability when an operation is rejected
3. A history the user can inspect

The audit logger:
- Is synchronous, like the ledger operations it records
- Gracefully handles storage failures (a ledger operation that committed
  is never reported as failed because its audit write failed)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from envelope_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from envelope_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route the stdlib root logger (which structlog writes through) at `level`."""
    logging.basicConfig(format="%(message)s", level=level.upper())


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("envelope_ledger.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_rejected(
        self,
        owner_id: Optional[UUID],
        operation: str,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        """Log a ledger operation rejected by validation or an invariant."""
        event = AuditEventBuilder.operation_rejected(
            owner_id=owner_id,
            operation=operation,
            error_code=type(error).__name__,
            error_message=str(error),
            correlation_id=correlation_id,
        )
        self.log(event)

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
        owner_id: Optional[UUID] = None,
    ) -> None:
        """Log an integrity or storage failure."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
            owner_id=owner_id,
        )
        self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a ledger operation.
    Pass it through all subsequent audit events of that operation.
    """
    return uuid4()
