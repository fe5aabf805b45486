"""
Server logging module.

This module handles server-side logging functionality.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from relay_common.constants import LOGGER_NAME, ANONYMOUS_NICKNAME


class RelayLogger:
    """Server logging class."""

    def __init__(self, log_level: int = logging.INFO):
        # Set up main logger
        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.setLevel(log_level)

        # Remove existing handlers
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

        # Create formatter
        self.formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # Create console handler
        self.console_handler = logging.StreamHandler()
        self.console_handler.setLevel(log_level)
        self.console_handler.setFormatter(self.formatter)
        self.logger.addHandler(self.console_handler)

        self.file_handler: Optional[logging.FileHandler] = None

    def configure(self, level: Union[int, str] = logging.INFO, log_file: Optional[str] = None):
        """Apply a log level and optionally mirror output to a file."""
        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                raise ValueError(f"Unknown log level: {level}")

        self.logger.setLevel(level)
        self.console_handler.setLevel(level)

        if self.file_handler is not None:
            self.logger.removeHandler(self.file_handler)
            self.file_handler.close()
            self.file_handler = None

        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            self.file_handler = logging.FileHandler(log_path, encoding='utf-8')
            self.file_handler.setLevel(level)
            self.file_handler.setFormatter(self.formatter)
            self.logger.addHandler(self.file_handler)

    def info(self, message: str):
        """Log info message."""
        self.logger.info(message)

    def error(self, message: str):
        """Log error message."""
        self.logger.error(message)

    def warning(self, message: str):
        """Log warning message."""
        self.logger.warning(message)

    def debug(self, message: str):
        """Log debug message."""
        self.logger.debug(message)

    def log_listening(self, host: str, port: int):
        self.info(f"🚀 Server running on {host}:{port}")

    def log_connection(self, addr: tuple, handle: int):
        """Log client connection."""
        self.info(f"✅ Connected: {addr[0] if addr else '?'} (handle={handle})")

    def log_registration(self, nickname: str, handle: int):
        """Log successful nickname registration."""
        self.info(f"👤 Registered: {nickname} (handle={handle})")

    def log_nickname_rejected(self, nickname: str, handle: int):
        self.info(f"Nickname '{nickname}' rejected for handle={handle}: already taken")

    def log_disconnect(self, nickname: Optional[str], handle: int):
        """Log client disconnect."""
        self.info(f"❌ {nickname or ANONYMOUS_NICKNAME} disconnected (handle={handle})")

    def log_chat(self, nickname: str, handle: int, message: str):
        """Log chat message."""
        self.info(f"📢 {nickname} (handle={handle}): {message}")

    def log_error(self, operation: str, error: Exception):
        """Log error with operation context."""
        self.error(f"Error in {operation}: {error}")


# Global logger instance
logger = RelayLogger()
