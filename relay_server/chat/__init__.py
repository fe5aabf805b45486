"""
Chat module for server-side messaging functionality.

Handles:
- Nickname registration
- Chat message broadcasting
- Join and leave notifications
"""
