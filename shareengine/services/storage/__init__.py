"""
Storage Services Package

Provides the abstract persistence boundary and an in-memory
implementation. Any backend with an atomic compare-and-set can be
plugged in behind the same interface.
"""

from shareengine.services.storage.interface import (
    AuditStorageInterface,
    StorageError,
    StorageTimeoutError,
    TransactionStorageInterface,
    VersionConflictError,
)
from shareengine.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "StorageError",
    "StorageTimeoutError",
    "VersionConflictError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryTransactionStorage",
]
