"""
Notification Models

Notifications are side effects of committed changes. The engine builds
them after a commit and hands them to the notification dispatcher.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class NotificationEventKind(str, Enum):
    """Events a participant or creator can be told about."""
    TRANSACTION_INVITATION = "transaction_invitation"
    TRANSACTION_UPDATED = "transaction_updated"
    PARTICIPANT_REMOVED = "participant_removed"
    PARTICIPANT_ACCEPTED = "participant_accepted"
    PARTICIPANT_DECLINED = "participant_declined"
    TRANSACTION_NO_LONGER_SHARED = "transaction_no_longer_shared"
    TRANSACTION_DELETED = "transaction_deleted"


class Notification(BaseModel):
    """A single message for one recipient."""

    notification_id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    recipient: str = Field(
        ...,
        min_length=1,
        description="Identity reference of the recipient"
    )
    event_kind: NotificationEventKind
    payload: dict[str, Any] = Field(default_factory=dict)
