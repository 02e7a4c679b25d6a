"""
Audit Logger

DESIGN DECISION: Every write to the ledger is logged.
This provides:
1. Complete traceability of who recorded what
2. Debugging capability when a balance looks off
3. History that survives deletions

The audit logger:
- Is async to match the storage interface
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from smart_split.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from smart_split.services.storage import AuditStorageInterface


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
    """Route structlog output through the stdlib root logger at `level`."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", level=numeric_level)
    logging.getLogger().setLevel(numeric_level)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The auditLog collection (for persistence)
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
        self._logger = structlog.get_logger("smart_split.audit")

    async def log(self, event: AuditEvent) -> bool:
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
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_created(
        self,
        transaction_id: str,
        actor_id: str,
        amount: str,
        participant_count: int,
        group_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a newly recorded transaction."""
        event = AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            actor_id=actor_id,
            amount=amount,
            participant_count=participant_count,
            group_id=group_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_rejected(
        self,
        actor_id: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a transaction that failed validation."""
        event = AuditEventBuilder.transaction_rejected(
            actor_id=actor_id,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_settlement_recorded(
        self,
        settlement_id: str,
        paid_by: str,
        paid_to: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.settlement_recorded(
            settlement_id=settlement_id,
            paid_by=paid_by,
            paid_to=paid_to,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_access_denied(
        self,
        actor_id: str,
        entity_type: str,
        entity_id: str,
        action: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a permission failure."""
        event = AuditEventBuilder.access_denied(
            actor_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., adding an expense).
    Pass it through all subsequent operations.
    """
    return uuid4()
