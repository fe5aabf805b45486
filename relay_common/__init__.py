"""
Shared definitions for the chat relay.

This package contains the constants and wire-level message definitions
used by the server and its tests.
"""
