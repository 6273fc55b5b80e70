"""In-memory notification sink that records every delivery."""

from typing import Any

from shareengine.models.notification import Notification, NotificationEventKind
from shareengine.services.notifications.interface import NotificationSinkInterface


class InMemoryNotificationSink(NotificationSinkInterface):
    """Keeps delivered notifications in a list, in delivery order."""

    def __init__(self):
        self.delivered: list[Notification] = []

    async def notify(
        self,
        identity_ref: str,
        event_kind: NotificationEventKind,
        payload: dict[str, Any],
    ) -> None:
        self.delivered.append(
            Notification(
                recipient=identity_ref,
                event_kind=event_kind,
                payload=payload,
            )
        )

    def for_recipient(self, identity_ref: str) -> list[Notification]:
        return [n for n in self.delivered if n.recipient == identity_ref]

    def of_kind(self, event_kind: NotificationEventKind) -> list[Notification]:
        return [n for n in self.delivered if n.event_kind == event_kind]
