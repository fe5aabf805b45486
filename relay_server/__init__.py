"""
Server package for the single-process chat relay.

This package contains all server-side functionality including:
- Connection multiplexing
- Nickname registration and the client registry
- Chat message broadcasting
- Configuration and utilities
"""
