"""
Shared constants for the chat relay.

This module contains all constants used by the relay server and its tests.
"""

# Network Configuration
DEFAULT_HOST = '127.0.0.1'
DEFAULT_PORT = 3000
LISTEN_BACKLOG = 10

# select() cannot watch descriptors at or above FD_SETSIZE
SELECT_FD_LIMIT = 1024

# Buffer Sizes
RECV_BUFFER_SIZE = 1024  # one byte is reserved, at most 1023 are read per call

# Wire format
ENCODING = 'utf-8'
LINE_TERMINATOR = '\r\n'
PROMPT_MARKER = '> '
LINE_END_CHARS = b'\r\n'

# Placeholder used when a connection without a nickname goes away
ANONYMOUS_NICKNAME = 'unknown'

# Logging
DEFAULT_LOG_LEVEL = 'INFO'
LOGGER_NAME = 'chat_relay'

# Environment variables read by ServerConfig.from_env()
ENV_HOST = 'CHAT_RELAY_HOST'
ENV_PORT = 'CHAT_RELAY_PORT'
ENV_BACKLOG = 'CHAT_RELAY_BACKLOG'
ENV_BUFFER_SIZE = 'CHAT_RELAY_BUFFER_SIZE'
ENV_FRAMING = 'CHAT_RELAY_FRAMING'
ENV_MULTIPLEXER = 'CHAT_RELAY_MULTIPLEXER'
ENV_LOG_LEVEL = 'CHAT_RELAY_LOG_LEVEL'
ENV_LOG_FILE = 'CHAT_RELAY_LOG_FILE'


# Line framing modes
class FramingModes:
    # Buffer per connection and reassemble lines split across reads
    LINES = 'lines'
    # Each read is one message, cut at the first terminator
    PER_READ = 'per_read'

    ALL = (LINES, PER_READ)


# Readiness multiplexer backends
class MultiplexerKinds:
    SELECTORS = 'selectors'
    SELECT = 'select'

    ALL = (SELECTORS, SELECT)
