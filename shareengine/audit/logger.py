"""
Audit Logger

DESIGN DECISION: Every committed mutation in the engine is logged.
This provides:
1. Complete traceability of who changed which split
2. Debugging capability when shares look wrong
3. A history the creator and participants can be shown

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (auditing never undoes a committed change)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from shareengine.models.audit import AuditEvent, AuditEventBuilder
from shareengine.services.storage import AuditStorageInterface


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


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
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
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
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
        transaction_id: UUID,
        creator_id: str,
        amount: str,
        participant_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log transaction creation."""
        event = AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            creator_id=creator_id,
            amount=amount,
            participant_count=participant_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_participant_responded(
        self,
        transaction_id: UUID,
        participant_id: UUID,
        responder_id: str,
        status: str,
        correlation_id: UUID,
    ) -> None:
        """Log an accepted or declined invitation."""
        event = AuditEventBuilder.participant_responded(
            transaction_id=transaction_id,
            participant_id=participant_id,
            responder_id=responder_id,
            status=status,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_participants_replaced(
        self,
        transaction_id: UUID,
        creator_id: str,
        removed_ids: list[str],
        created_ids: list[str],
        amount: str,
        correlation_id: UUID,
    ) -> None:
        """Log a whole-list participant edit."""
        event = AuditEventBuilder.participants_replaced(
            transaction_id=transaction_id,
            creator_id=creator_id,
            removed_ids=removed_ids,
            created_ids=created_ids,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_deleted(
        self,
        transaction_id: UUID,
        creator_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            creator_id=creator_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        operation: str,
        issues: list[dict],
        actor_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        """Log rejected input."""
        event = AuditEventBuilder.validation_failed(
            operation=operation,
            issues=issues,
            actor_id=actor_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_write_conflict(
        self,
        transaction_id: UUID,
        operation: str,
        attempts: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.write_conflict(
            transaction_id=transaction_id,
            operation=operation,
            attempts=attempts,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_notification_failed(
        self,
        recipient: str,
        event_kind: str,
        error_message: str,
    ) -> None:
        event = AuditEventBuilder.notification_failed(
            recipient=recipient,
            event_kind=event_kind,
            error_message=error_message,
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

    Use this at the start of each engine call and pass it through
    all subsequent operations.
    """
    return uuid4()
