"""
In-Memory Storage Implementation

Backs the storage interfaces with plain dictionaries. Used in tests and
for embedding the engine where no database is configured.

TRADEOFFS:
- Nothing survives the process
- Atomicity comes from a single lock held around every compare-and-set

Snapshots are deep-copied on the way in and out, so a caller holding a
loaded transaction can never change stored state without saving it.
"""

import threading
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from shareengine.models.audit import AuditEvent
from shareengine.models.transaction import Transaction
from shareengine.services.storage.interface import (
    AuditStorageInterface,
    TransactionStorageInterface,
    VersionConflictError,
)


class InMemoryTransactionStorage(TransactionStorageInterface):
    """
    Dictionary-backed transaction storage with optimistic versioning.

    Each saved transaction carries a version; saving against a stale
    version raises VersionConflictError.
    """

    def __init__(self):
        self._rows: dict[UUID, Transaction] = {}
        self._lock = threading.Lock()

    async def load_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        with self._lock:
            row = self._rows.get(transaction_id)
            return row.model_copy(deep=True) if row else None

    async def save_transaction(
        self,
        transaction: Transaction,
        expected_version: Optional[int],
    ) -> Transaction:
        with self._lock:
            current = self._rows.get(transaction.id)
            actual_version = current.version if current else None
            if actual_version != expected_version:
                raise VersionConflictError(
                    transaction.id, expected_version, actual_version
                )

            stored = transaction.model_copy(
                deep=True,
                update={
                    "version": (actual_version or 0) + 1,
                    "updated_at": datetime.now(timezone.utc),
                },
            )
            self._rows[transaction.id] = stored
            return stored.model_copy(deep=True)

    async def delete_transaction(
        self,
        transaction_id: UUID,
        expected_version: Optional[int] = None,
    ) -> bool:
        with self._lock:
            current = self._rows.get(transaction_id)
            if current is None:
                if expected_version is not None:
                    raise VersionConflictError(transaction_id, expected_version, None)
                return False
            if expected_version is not None and current.version != expected_version:
                raise VersionConflictError(
                    transaction_id, expected_version, current.version
                )
            del self._rows[transaction_id]
            return True

    async def list_transactions_for_identity(
        self,
        identity_ref: str,
    ) -> list[Transaction]:
        with self._lock:
            matches = [
                row.model_copy(deep=True)
                for row in self._rows.values()
                if row.is_visible_to(identity_ref)
            ]
        return sorted(matches, key=lambda t: t.created_at)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    async def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        with self._lock:
            return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        with self._lock:
            return [
                e for e in self._events
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        with self._lock:
            return list(reversed(self._events))[:limit]
