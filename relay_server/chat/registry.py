"""
Client registry module.

This module keeps the ordered collection of named clients and the
per-connection session records used by the chat server.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union


class NameTakenError(Exception):
    """Raised when a nickname is already held by another connection."""

    def __init__(self, nickname: str):
        super().__init__(f"Nickname '{nickname}' is already taken")
        self.nickname = nickname


@dataclass
class PendingConnection:
    """A connection that has been accepted but has not chosen a nickname."""
    handle: int
    address: Optional[Tuple] = None
    connected_at: str = field(default_factory=lambda: datetime.now().isoformat())


@dataclass
class RegisteredClient:
    """A connection that completed nickname registration."""
    handle: int
    nickname: str
    address: Optional[Tuple] = None
    joined_at: str = field(default_factory=lambda: datetime.now().isoformat())


Session = Union[PendingConnection, RegisteredClient]


class ClientRegistry:
    """Named clients keyed by connection handle, in insertion order."""

    def __init__(self):
        self._clients: Dict[int, RegisteredClient] = {}

    def register(self, handle: int, nickname: str, address: Optional[Tuple] = None) -> RegisteredClient:
        """
        Insert a named client.

        Raises NameTakenError if a different connection already holds the
        exact same nickname. Re-registering a handle keeps its original
        position in the iteration order.
        """
        for other in self._clients.values():
            if other.nickname == nickname and other.handle != handle:
                raise NameTakenError(nickname)

        client = RegisteredClient(handle=handle, nickname=nickname, address=address)
        self._clients[handle] = client
        return client

    def find(self, handle: int) -> Optional[RegisteredClient]:
        return self._clients.get(handle)

    def remove(self, handle: int) -> Optional[RegisteredClient]:
        """Remove a client; removing an unknown handle is a no-op."""
        return self._clients.pop(handle, None)

    def all(self) -> List[RegisteredClient]:
        return list(self._clients.values())

    def nickname_exists(self, nickname: str) -> bool:
        return any(c.nickname == nickname for c in self._clients.values())

    def nicknames(self, exclude: Optional[int] = None) -> List[str]:
        """Nicknames in registration order, optionally skipping one handle."""
        return [c.nickname for c in self._clients.values() if c.handle != exclude]

    def __contains__(self, handle: int) -> bool:
        return handle in self._clients

    def __len__(self) -> int:
        return len(self._clients)
