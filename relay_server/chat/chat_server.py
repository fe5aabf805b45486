"""
Chat server module.

This module handles the nickname registration and broadcast protocol.
It never opens or closes sockets itself; the event loop passes in its
``connections`` mapping (handle -> socket) for every operation that sends.
"""

import socket
from typing import Dict, List, Optional

from relay_common.protocol_definitions import (
    create_nickname_taken_message, create_welcome_message, create_user_joined_message,
    create_user_left_message, create_chat_message, encode_message
)
from relay_server.chat.registry import (
    ClientRegistry, NameTakenError, PendingConnection, RegisteredClient, Session
)
from relay_server.utils.logger import logger


class ChatServer:
    """Server-side chat functionality."""

    def __init__(self, registry: Optional[ClientRegistry] = None):
        self.registry = registry if registry is not None else ClientRegistry()
        self.sessions: Dict[int, Session] = {}  # handle -> pending or registered

    def send_message(self, handle: int, message: str, connections: Dict[int, socket.socket]) -> bool:
        """Send a message to a specific connection. Failures are logged, never raised."""
        conn = connections.get(handle)
        if conn is None:
            logger.warning(f"Cannot send to handle={handle}: connection already closed")
            return False

        try:
            conn.sendall(encode_message(message))
            return True
        except BrokenPipeError:
            logger.debug(f"Peer on handle={handle} already gone, message dropped")
            return False
        except BlockingIOError:
            # Peer stopped reading; part of the message may already be written
            logger.warning(f"Send buffer full for handle={handle}, message dropped")
            return False
        except OSError as e:
            logger.error(f"Failed to send to handle={handle}: {e}")
            return False

    def broadcast(self, sender_handle: int, message: str, connections: Dict[int, socket.socket]) -> List[int]:
        """
        Send ``message`` verbatim to every named client except the sender.

        Recipients are visited in registry order. Returns the handles whose
        send failed; they stay registered until their own read fails.
        """
        failed = []
        for client in self.registry.all():
            if client.handle == sender_handle:
                continue
            if not self.send_message(client.handle, message, connections):
                failed.append(client.handle)
        return failed

    def open_session(self, handle: int, address: Optional[tuple] = None) -> PendingConnection:
        """Track a freshly accepted connection that has no nickname yet."""
        session = PendingConnection(handle=handle, address=address)
        self.sessions[handle] = session
        return session

    def get_session(self, handle: int) -> Optional[Session]:
        return self.sessions.get(handle)

    def handle_line(self, handle: int, line: str, connections: Dict[int, socket.socket]):
        """Dispatch one received line according to the connection's state."""
        if not line:
            return

        session = self.sessions.get(handle)
        if session is None:
            logger.warning(f"Ignoring data from unknown handle={handle}")
            return

        if isinstance(session, RegisteredClient):
            self.handle_chat(handle, line, connections)
        else:
            self.handle_register(handle, line, connections)

    def handle_register(self, handle: int, nickname: str, connections: Dict[int, socket.socket]) -> bool:
        """
        Process a nickname claim.

        On collision the client gets a retry prompt and stays anonymous.
        Otherwise it is added to the registry, welcomed with the list of
        other online nicknames, and announced to everybody else.
        """
        session = self.sessions.get(handle)
        address = session.address if session is not None else None

        try:
            client = self.registry.register(handle, nickname, address=address)
        except NameTakenError:
            logger.log_nickname_rejected(nickname, handle)
            self.send_message(handle, create_nickname_taken_message(), connections)
            return False

        self.sessions[handle] = client
        logger.log_registration(nickname, handle)
        logger.debug(f"{self.get_participant_count()} users online")

        welcome = create_welcome_message(self.registry.nicknames(exclude=handle))
        self.send_message(handle, welcome, connections)
        self.broadcast(handle, create_user_joined_message(nickname), connections)
        return True

    def handle_chat(self, handle: int, text: str, connections: Dict[int, socket.socket]):
        """Relay a chat line from a named client to everybody else."""
        client = self.registry.find(handle)
        if client is None:
            logger.warning(f"Chat from unregistered handle={handle} dropped")
            return

        logger.log_chat(client.nickname, handle, text)
        self.broadcast(handle, create_chat_message(client.nickname, text), connections)

    def disconnect_client(self, handle: int, connections: Dict[int, socket.socket]) -> Optional[Session]:
        """
        Forget a connection and notify others if it was named.

        Anonymous connections leave silently. Calling this for a handle that
        is already gone does nothing and returns None.
        """
        session = self.sessions.pop(handle, None)
        client = self.registry.remove(handle)

        if client is not None:
            logger.log_disconnect(client.nickname, handle)
            logger.debug(f"{self.get_participant_count()} users online")
            self.broadcast(handle, create_user_left_message(client.nickname), connections)
        elif session is not None:
            logger.log_disconnect(None, handle)

        return session

    def get_participant_count(self) -> int:
        """Get the number of named clients."""
        return len(self.registry)
