"""
Engine Error Taxonomy

Every failure the engine surfaces to a caller is one of these.
Validation errors are raised before any mutation; the others abort the
enclosing atomic operation as a whole.
"""

from typing import Optional

from shareengine.models.transaction import ValidationIssue


class ShareEngineError(Exception):
    """Base exception for share engine errors."""
    pass


class InvalidInputError(ShareEngineError):
    """Caller input is malformed or inconsistent. Nothing was mutated."""

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        self.issues = issues or []
        super().__init__(message)


class NotFoundError(ShareEngineError):
    """Transaction or participant is not resolvable on that transaction."""
    pass


class ForbiddenError(ShareEngineError):
    """Caller is not allowed to perform this operation."""
    pass


class InvalidStateError(ShareEngineError):
    """Status transition attempted from a non-PENDING state."""
    pass


class StaleIdentityError(NotFoundError):
    """
    An identity reference no longer exists in the identity store.

    Subclasses NotFoundError so callers can treat it as recoverable.
    """

    def __init__(self, identity_ref: str):
        self.identity_ref = identity_ref
        super().__init__(f"Identity no longer exists: {identity_ref}")


class ConflictError(ShareEngineError):
    """Concurrent writes to the same transaction could not be reconciled."""
    pass


class TransientError(ShareEngineError):
    """Persistence timed out; the operation may be retried later."""
    pass
