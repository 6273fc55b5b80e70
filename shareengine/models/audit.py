"""
Audit Models for the Share Engine

Every committed mutation of a shared transaction is recorded for audit
purposes. This provides:
1. Traceability of who accepted, declined or edited what
2. Debugging information when shares look wrong
3. A way to reconstruct how a split evolved

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    One event type per engine operation, plus the failure paths worth
    keeping a record of.
    """
    # Mutations
    TRANSACTION_CREATED = "transaction_created"
    PARTICIPANT_RESPONDED = "participant_responded"
    PARTICIPANTS_REPLACED = "participants_replaced"
    TRANSACTION_DELETED = "transaction_deleted"

    # Rejections and failures
    VALIDATION_FAILED = "validation_failed"
    WRITE_CONFLICT = "write_conflict"
    NOTIFICATION_FAILED = "notification_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every committed mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'participant')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    actor_id: Optional[str] = Field(
        default=None,
        description="Identity reference of whoever triggered the event"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (one per engine call)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "actor_id": self.actor_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(transaction_id, ...)
        event = AuditEventBuilder.participant_responded(transaction_id, ...)
    """

    @staticmethod
    def transaction_created(
        transaction_id: UUID,
        creator_id: str,
        amount: str,
        participant_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction_id,
            actor_id=creator_id,
            correlation_id=correlation_id,
            description=f"Transaction created: {amount} with {participant_count} participants",
            details={
                "amount": amount,
                "participant_count": participant_count,
            },
        )

    @staticmethod
    def participant_responded(
        transaction_id: UUID,
        participant_id: UUID,
        responder_id: str,
        status: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTICIPANT_RESPONDED,
            entity_type="participant",
            entity_id=participant_id,
            actor_id=responder_id,
            correlation_id=correlation_id,
            description=f"Participant {status} the shared transaction",
            details={
                "transaction_id": str(transaction_id),
                "status": status,
            },
        )

    @staticmethod
    def participants_replaced(
        transaction_id: UUID,
        creator_id: str,
        removed_ids: list[str],
        created_ids: list[str],
        amount: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTICIPANTS_REPLACED,
            entity_type="transaction",
            entity_id=transaction_id,
            actor_id=creator_id,
            correlation_id=correlation_id,
            description=(
                f"Participant list replaced: {len(removed_ids)} removed, "
                f"{len(created_ids)} created"
            ),
            details={
                "amount": amount,
                "removed_participant_ids": removed_ids,
                "created_participant_ids": created_ids,
            },
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: UUID,
        creator_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            actor_id=creator_id,
            correlation_id=correlation_id,
            description="Transaction deleted with all participants",
        )

    @staticmethod
    def validation_failed(
        operation: str,
        issues: list[dict],
        actor_id: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"{operation} rejected with {len(issues)} issues",
            details={
                "operation": operation,
                "issues": issues,
            },
        )

    @staticmethod
    def write_conflict(
        transaction_id: UUID,
        operation: str,
        attempts: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WRITE_CONFLICT,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{operation} gave up after {attempts} conflicting writes",
            details={
                "operation": operation,
                "attempts": attempts,
            },
        )

    @staticmethod
    def notification_failed(
        recipient: str,
        event_kind: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="notification",
            description=f"Notification not delivered: {event_kind}",
            error_message=error_message,
            details={
                "recipient": recipient,
                "event_kind": event_kind,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
