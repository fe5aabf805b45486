"""
Readiness multiplexing for the relay event loop.
"""
