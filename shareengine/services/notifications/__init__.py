"""Notification services."""

from shareengine.services.notifications.dispatcher import NotificationDispatcher
from shareengine.services.notifications.interface import NotificationSinkInterface
from shareengine.services.notifications.memory import InMemoryNotificationSink

__all__ = [
    "InMemoryNotificationSink",
    "NotificationDispatcher",
    "NotificationSinkInterface",
]
