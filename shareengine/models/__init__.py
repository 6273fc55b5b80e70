"""
Data Models Package

This package contains all Pydantic models used by the Share Engine.
All data flowing through the engine must conform to these schemas.
"""

from shareengine.models.transaction import (
    CreateTransactionRequest,
    CreatorShare,
    EditParticipantsRequest,
    ExternalIdentity,
    MemberIdentity,
    Participant,
    ParticipantIdentity,
    ParticipantRequest,
    ParticipantStatus,
    PendingInvitation,
    ShareView,
    Transaction,
    TransactionKind,
    TransactionView,
    ValidationIssue,
    ValidationResult,
)
from shareengine.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from shareengine.models.notification import (
    Notification,
    NotificationEventKind,
)

__all__ = [
    # Transaction models
    "CreateTransactionRequest",
    "CreatorShare",
    "EditParticipantsRequest",
    "ExternalIdentity",
    "MemberIdentity",
    "Participant",
    "ParticipantIdentity",
    "ParticipantRequest",
    "ParticipantStatus",
    "PendingInvitation",
    "ShareView",
    "Transaction",
    "TransactionKind",
    "TransactionView",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Notification models
    "Notification",
    "NotificationEventKind",
]
