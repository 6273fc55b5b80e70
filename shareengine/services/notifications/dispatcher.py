"""
Notification Dispatcher

DESIGN DECISION: Notifications go out only AFTER a commit, as background
tasks. The engine call returns without waiting for them.

- A failed or timed-out delivery is logged and audited, never raised
- Nothing is retried by the engine; that is the sink's job
- `drain()` waits for outstanding deliveries (shutdown, tests)
"""

import asyncio
from typing import Optional

import structlog

from shareengine.audit.logger import AuditLogger
from shareengine.config import NotificationSettings
from shareengine.models.notification import Notification
from shareengine.services.notifications.interface import NotificationSinkInterface


class NotificationDispatcher:
    """Fire-and-forget delivery of notifications to a sink."""

    def __init__(
        self,
        sink: Optional[NotificationSinkInterface],
        settings: NotificationSettings,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._sink = sink
        self._settings = settings
        self._audit_logger = audit_logger
        self._pending: set[asyncio.Task] = set()
        self._logger = structlog.get_logger(__name__)

    def dispatch(self, notifications: list[Notification]) -> None:
        """
        Schedule delivery of each notification and return immediately.

        Must be called from a running event loop.
        """
        if self._sink is None or not self._settings.enabled:
            return

        for notification in notifications:
            task = asyncio.create_task(self._deliver(notification))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, notification: Notification) -> None:
        try:
            await asyncio.wait_for(
                self._sink.notify(
                    notification.recipient,
                    notification.event_kind,
                    notification.payload,
                ),
                timeout=self._settings.delivery_timeout_seconds,
            )
        except asyncio.TimeoutError:
            await self._record_failure(notification, "delivery timed out")
        except Exception as e:
            # Delivery failure must never reach committed state
            await self._record_failure(notification, str(e))

    async def _record_failure(self, notification: Notification, error: str) -> None:
        self._logger.warning(
            "notification_delivery_failed",
            recipient=notification.recipient,
            event_kind=notification.event_kind.value,
            error=error,
        )
        if self._audit_logger:
            await self._audit_logger.log_notification_failed(
                recipient=notification.recipient,
                event_kind=notification.event_kind.value,
                error_message=error,
            )
