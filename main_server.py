#!/usr/bin/env python3
"""
Chat Relay Server - Main Entry Point

Starts the single-process chat relay: clients connect, pick a nickname and
every chat line is relayed to all other named clients.

Usage:
    python main_server.py

Optional arguments:
    --host HOST           Bind address (default: 127.0.0.1)
    --port PORT           TCP port (default: 3000)
    --backlog N           Listen backlog (default: 10)
    --buffer-size BYTES   Receive buffer size (default: 1024)
    --framing MODE        'lines' or 'per_read' (default: lines)
    --multiplexer KIND    'selectors' or 'select' (default: selectors)
    --log-level LEVEL     Log level (default: INFO)
    --log-file PATH       Also write the log to PATH

Every option defaults to its CHAT_RELAY_* environment variable when set.
"""

import argparse
import sys

from relay_common.constants import FramingModes, MultiplexerKinds
from relay_server.main_server import RelayServer, ServerSetupError
from relay_server.utils.config import ServerConfig
from relay_server.utils.logger import logger


def parse_args(argv=None):
    defaults = ServerConfig.from_env()

    parser = argparse.ArgumentParser(description='Chat Relay Server')
    parser.add_argument('--host', type=str, default=defaults.host,
                        help=f'Host to bind to (default: {defaults.host})')
    parser.add_argument('--port', type=int, default=defaults.port,
                        help=f'TCP port (default: {defaults.port})')
    parser.add_argument('--backlog', type=int, default=defaults.backlog,
                        help=f'Listen backlog (default: {defaults.backlog})')
    parser.add_argument('--buffer-size', type=int, default=defaults.buffer_size,
                        help=f'Receive buffer size in bytes (default: {defaults.buffer_size})')
    parser.add_argument('--framing', choices=FramingModes.ALL, default=defaults.framing,
                        help=f'Line framing mode (default: {defaults.framing})')
    parser.add_argument('--multiplexer', choices=MultiplexerKinds.ALL, default=defaults.multiplexer,
                        help=f'Readiness backend (default: {defaults.multiplexer})')
    parser.add_argument('--log-level', type=str, default=defaults.log_level,
                        help=f'Log level (default: {defaults.log_level})')
    parser.add_argument('--log-file', type=str, default=defaults.log_file,
                        help='Also write the log to this file')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    try:
        args = parse_args(argv)
        config = ServerConfig(
            host=args.host,
            port=args.port,
            backlog=args.backlog,
            buffer_size=args.buffer_size,
            framing=args.framing,
            multiplexer=args.multiplexer,
            log_level=args.log_level,
            log_file=args.log_file
        )
        log_settings = config.get_log_settings()
        logger.configure(log_settings['log_level'], log_settings['log_file'])
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    server = RelayServer(config)
    try:
        server.start()
    except ServerSetupError as e:
        logger.error(f"Server failed to start: {e}")
        server.close()
        return 1

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Server shutting down...")
    finally:
        server.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
