#!/usr/bin/env python3
"""
Chat Relay Server - Event Loop

This module owns the listening socket and every client socket. It waits
for readiness on all of them, accepts new connections, reads from ready
clients and hands complete lines to the chat protocol handler.
"""

import socket
from typing import Dict, List, Optional

from relay_common.constants import FramingModes
from relay_common.protocol_definitions import (
    LineBuffer, create_nickname_prompt, encode_message, extract_first_line
)
from relay_server.chat.chat_server import ChatServer
from relay_server.net.multiplexer import ReadinessMultiplexer, create_multiplexer
from relay_server.utils.config import ServerConfig
from relay_server.utils.logger import logger


class ServerSetupError(Exception):
    """Raised when the listening endpoint cannot be created."""


class RelayServer:
    """Main server class: single-threaded readiness loop around ChatServer."""

    def __init__(self, config: Optional[ServerConfig] = None,
                 multiplexer: Optional[ReadinessMultiplexer] = None):
        self.config = config or ServerConfig()
        self.chat_server = ChatServer()
        self.multiplexer = multiplexer if multiplexer is not None else create_multiplexer(self.config.multiplexer)

        self.connections: Dict[int, socket.socket] = {}  # handle -> client socket
        self.line_buffers: Dict[int, LineBuffer] = {}
        self.listen_socket: Optional[socket.socket] = None
        self.listen_handle = -1
        self._should_stop = False

    @property
    def address(self):
        """Actual (host, port) the server is bound to."""
        if self.listen_socket is None:
            return None
        return self.listen_socket.getsockname()

    def start(self):
        """Create the listening endpoint. Raises ServerSetupError on failure."""
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise ServerSetupError(f"socket failed: {e}") from e

        info = self.config.get_connection_info()
        stage = 'setsockopt'
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            stage = 'bind'
            sock.bind((info['host'], info['port']))
            stage = 'listen'
            sock.listen(info['backlog'])
            sock.setblocking(False)
        except OSError as e:
            sock.close()
            raise ServerSetupError(f"{stage} failed: {e}") from e

        self.listen_socket = sock
        self.listen_handle = self.multiplexer.register(sock)

        host, port = sock.getsockname()[:2]
        logger.log_listening(host, port)
        logger.debug(f"I/O settings: {self.config.get_io_settings()}")

    def serve_forever(self, poll_interval: Optional[float] = None):
        """Run the event loop until stop() is called."""
        self._should_stop = False
        while not self._should_stop:
            self.serve_once(poll_interval)

    def stop(self):
        self._should_stop = True

    def serve_once(self, timeout: Optional[float] = None) -> int:
        """
        Wait for readiness once and handle every ready connection.

        Handles are processed in ascending order, each to completion.
        Returns the number of ready handles (0 on timeout or wait error).
        """
        try:
            ready = self.multiplexer.wait(timeout)
        except InterruptedError:
            return 0
        except (OSError, ValueError) as e:
            logger.log_error("readiness wait", e)
            return 0

        for handle in ready:
            if handle == self.listen_handle:
                self.accept_connection()
            elif handle in self.connections:
                self.handle_client_data(handle)
        return len(ready)

    def accept_connection(self) -> Optional[int]:
        """Accept one pending connection and prompt it for a nickname."""
        try:
            conn, addr = self.listen_socket.accept()
        except (BlockingIOError, InterruptedError):
            return None
        except OSError as e:
            logger.log_error("accept", e)
            return None

        # Sends must never stall the loop on a peer that stops reading
        conn.setblocking(False)
        try:
            handle = self.multiplexer.register(conn)
        except ValueError as e:
            logger.log_error(f"watch connection from {addr}", e)
            conn.close()
            return None
        self.connections[handle] = conn
        self.line_buffers[handle] = LineBuffer(self.config.max_read_size)
        self.chat_server.open_session(handle, addr)
        logger.log_connection(addr, handle)

        try:
            conn.sendall(encode_message(create_nickname_prompt()))
        except OSError as e:
            logger.log_error(f"send prompt to handle={handle}", e)
            self.disconnect_client(handle)
            return None
        return handle

    def handle_client_data(self, handle: int):
        """Read from a ready client and dispatch every line it produced."""
        conn = self.connections.get(handle)
        if conn is None:
            return

        try:
            data = conn.recv(self.config.max_read_size)
        except BlockingIOError:
            return
        except ConnectionResetError:
            logger.info(f"Connection reset by peer (handle={handle})")
            self.disconnect_client(handle)
            return
        except OSError as e:
            logger.log_error(f"recv on handle={handle}", e)
            self.disconnect_client(handle)
            return

        if not data:
            logger.info(f"Client {handle} closed connection")
            self.disconnect_client(handle)
            return

        for line in self.extract_lines(handle, data):
            self.chat_server.handle_line(handle, line, self.connections)

    def extract_lines(self, handle: int, data: bytes) -> List[str]:
        if self.config.framing == FramingModes.PER_READ:
            return [extract_first_line(data)]
        buffer = self.line_buffers.setdefault(handle, LineBuffer(self.config.max_read_size))
        return buffer.feed(data)

    def disconnect_client(self, handle: int):
        """
        Tear down a client connection.

        The chat server drops the session and sends any leave notice, then
        the handle leaves the watched-set and the socket is closed, all in
        the same step. Safe to call for a handle that is already gone.
        """
        self.chat_server.disconnect_client(handle, self.connections)

        conn = self.connections.pop(handle, None)
        buffer = self.line_buffers.pop(handle, None)
        self.multiplexer.unregister(handle)
        if buffer is not None and buffer.pending:
            logger.debug(f"Discarding {len(buffer.pending)} unterminated bytes from handle={handle}")

        if conn is not None:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # peer may already be gone
            conn.close()

    def close(self):
        """Close every client socket and the listening socket."""
        for handle in list(self.connections):
            conn = self.connections.pop(handle)
            self.multiplexer.unregister(handle)
            self.chat_server.sessions.pop(handle, None)
            self.chat_server.registry.remove(handle)
            conn.close()
        self.line_buffers.clear()

        if self.listen_socket is not None:
            self.multiplexer.unregister(self.listen_handle)
            self.listen_socket.close()
            self.listen_socket = None
            self.listen_handle = -1
        self.multiplexer.close()
