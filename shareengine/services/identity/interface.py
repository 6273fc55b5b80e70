"""
Abstract Identity Resolver Interface

The engine never manages accounts. It asks this collaborator to turn a
user-visible handle into a stable identity reference, and to confirm an
identity still exists before trusting it on a write.

Identity references are opaque and immutable. The account behind one
may be deleted at any time, so reads must not assume it still exists.
"""

from abc import ABC, abstractmethod
from typing import Optional


class IdentityResolverInterface(ABC):
    """Resolves handles and checks that identities still exist."""

    @abstractmethod
    async def resolve_handle(self, handle: str) -> Optional[str]:
        """
        Resolve a user-visible handle (e.g. a username).

        Returns:
            The identity reference, or None if no account has this handle
        """
        pass

    @abstractmethod
    async def exists(self, identity_ref: str) -> bool:
        """Check whether an identity reference still has an account."""
        pass

    @abstractmethod
    async def display_name(self, identity_ref: str) -> Optional[str]:
        """
        Human-readable name for an identity.

        Returns:
            The name, or None if the account no longer exists
        """
        pass
