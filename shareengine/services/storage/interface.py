"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Plug in any database that supports an atomic compare-and-set
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The engine is stateless between calls: every operation loads a fresh
snapshot by id, changes it, and saves it back against the version it
loaded. A transaction and its participant list are one unit, saved
whole or not at all.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from shareengine.models.audit import AuditEvent
from shareengine.models.transaction import Transaction


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage operations.

    Implementations must make `save_transaction` and `delete_transaction`
    atomic for one transaction and its participants, and must enforce
    their own call timeouts (raising StorageTimeoutError).
    """

    @abstractmethod
    async def load_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        """
        Retrieve a transaction with its participants.

        Args:
            transaction_id: The transaction's unique identifier

        Returns:
            A snapshot the caller may freely mutate, or None if not found
        """
        pass

    @abstractmethod
    async def save_transaction(
        self,
        transaction: Transaction,
        expected_version: Optional[int],
    ) -> Transaction:
        """
        Atomically insert or replace a transaction and its participants.

        Args:
            transaction: The full transaction to store
            expected_version: Version the caller loaded, or None to insert

        Returns:
            The stored transaction, with its version incremented

        Raises:
            VersionConflictError: If the stored version differs from expected
            StorageTimeoutError: If the backend did not answer in time
        """
        pass

    @abstractmethod
    async def delete_transaction(
        self,
        transaction_id: UUID,
        expected_version: Optional[int] = None,
    ) -> bool:
        """
        Delete a transaction and cascade to its participants.

        Returns:
            True if a transaction was deleted

        Raises:
            VersionConflictError: If expected_version is given and differs
        """
        pass

    @abstractmethod
    async def list_transactions_for_identity(
        self,
        identity_ref: str,
    ) -> list[Transaction]:
        """
        List transactions created by, or shared with, an identity.

        Returns:
            Matching transactions, oldest first
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for one engine call, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class VersionConflictError(StorageError):
    """Optimistic lock failure: someone else saved first."""

    def __init__(
        self,
        transaction_id: UUID,
        expected_version: Optional[int],
        actual_version: Optional[int],
    ):
        self.transaction_id = transaction_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Transaction {transaction_id} is at version {actual_version}, "
            f"expected {expected_version}"
        )


class StorageTimeoutError(StorageError):
    """The storage backend did not answer in time."""
    pass
