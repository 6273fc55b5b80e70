"""In-memory identity directory, for tests and embedded use."""

import threading
from typing import Optional

from shareengine.services.identity.interface import IdentityResolverInterface


class InMemoryIdentityDirectory(IdentityResolverInterface):
    """
    Keeps accounts in a dictionary keyed by identity reference.

    Usage:
        directory = InMemoryIdentityDirectory()
        directory.register("user-1", username="alice", display_name="Alice")
    """

    def __init__(self):
        self._accounts: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()

    def register(
        self,
        identity_ref: str,
        username: str,
        display_name: Optional[str] = None,
    ) -> None:
        with self._lock:
            self._accounts[identity_ref] = {
                "username": username.lower(),
                "display_name": display_name or username,
            }

    def remove(self, identity_ref: str) -> None:
        """Simulate an account deletion."""
        with self._lock:
            self._accounts.pop(identity_ref, None)

    async def resolve_handle(self, handle: str) -> Optional[str]:
        needle = handle.strip().lower()
        with self._lock:
            for identity_ref, account in self._accounts.items():
                if account["username"] == needle:
                    return identity_ref
        return None

    async def exists(self, identity_ref: str) -> bool:
        with self._lock:
            return identity_ref in self._accounts

    async def display_name(self, identity_ref: str) -> Optional[str]:
        with self._lock:
            account = self._accounts.get(identity_ref)
            return account["display_name"] if account else None
