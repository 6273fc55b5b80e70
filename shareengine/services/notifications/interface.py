"""
Abstract Notification Sink Interface

The engine tells a sink that something happened to a recipient. Delivery
guarantees (retries, channels, persistence of the inbox) are the sink's
concern; from the engine's side every call is at-most-once.
"""

from abc import ABC, abstractmethod
from typing import Any

from shareengine.models.notification import NotificationEventKind


class NotificationSinkInterface(ABC):
    """Receives notifications for delivery to a single identity."""

    @abstractmethod
    async def notify(
        self,
        identity_ref: str,
        event_kind: NotificationEventKind,
        payload: dict[str, Any],
    ) -> None:
        """
        Deliver one notification.

        Raises:
            Any exception on delivery failure. The engine logs it and
            moves on; committed state is never affected.
        """
        pass
