"""Identity resolution services."""

from shareengine.services.identity.interface import IdentityResolverInterface
from shareengine.services.identity.memory import InMemoryIdentityDirectory

__all__ = ["IdentityResolverInterface", "InMemoryIdentityDirectory"]
