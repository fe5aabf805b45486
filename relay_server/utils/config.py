"""
Server configuration module.

This module handles server-side configuration settings.
"""

import os
from typing import Optional

from relay_common.constants import (
    DEFAULT_HOST, DEFAULT_PORT, LISTEN_BACKLOG, RECV_BUFFER_SIZE, DEFAULT_LOG_LEVEL,
    ENV_HOST, ENV_PORT, ENV_BACKLOG, ENV_BUFFER_SIZE, ENV_FRAMING, ENV_MULTIPLEXER,
    ENV_LOG_LEVEL, ENV_LOG_FILE, FramingModes, MultiplexerKinds
)


class ServerConfig:
    """Server configuration class."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
                 backlog: int = LISTEN_BACKLOG, buffer_size: int = RECV_BUFFER_SIZE,
                 framing: str = FramingModes.LINES,
                 multiplexer: str = MultiplexerKinds.SELECTORS,
                 log_level: str = DEFAULT_LOG_LEVEL, log_file: Optional[str] = None):
        if framing not in FramingModes.ALL:
            raise ValueError(f"Unknown framing mode: {framing}")
        if multiplexer not in MultiplexerKinds.ALL:
            raise ValueError(f"Unknown multiplexer: {multiplexer}")
        if buffer_size < 2:
            raise ValueError("buffer_size must be at least 2 bytes")
        if not 0 <= port <= 65535:
            raise ValueError(f"Port out of range: {port}")

        self.host = host
        self.port = port
        self.backlog = backlog

        # Receive settings
        self.buffer_size = buffer_size
        self.framing = framing
        self.multiplexer = multiplexer

        # Logging configuration
        self.log_level = log_level
        self.log_file = log_file

    @property
    def max_read_size(self) -> int:
        """Bytes requested per recv call (one byte of the buffer is reserved)."""
        return self.buffer_size - 1

    @classmethod
    def from_env(cls, environ=None) -> 'ServerConfig':
        """Build a configuration from CHAT_RELAY_* environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            host=env.get(ENV_HOST, DEFAULT_HOST),
            port=int(env.get(ENV_PORT, DEFAULT_PORT)),
            backlog=int(env.get(ENV_BACKLOG, LISTEN_BACKLOG)),
            buffer_size=int(env.get(ENV_BUFFER_SIZE, RECV_BUFFER_SIZE)),
            framing=env.get(ENV_FRAMING, FramingModes.LINES),
            multiplexer=env.get(ENV_MULTIPLEXER, MultiplexerKinds.SELECTORS),
            log_level=env.get(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL),
            log_file=env.get(ENV_LOG_FILE) or None,
        )

    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port,
            'backlog': self.backlog
        }

    def get_io_settings(self):
        """Get receive and multiplexing settings."""
        return {
            'buffer_size': self.buffer_size,
            'framing': self.framing,
            'multiplexer': self.multiplexer
        }

    def get_log_settings(self):
        """Get logging settings."""
        return {
            'log_level': self.log_level,
            'log_file': self.log_file
        }
