#!/usr/bin/env python3
"""
Chat Relay Server - Main Entry Point

This is the main entry point for the server application.
It owns the shared state (credentials, history, broadcast bus) and runs one
ConnectionHandler per accepted WebSocket connection.
"""

import argparse
import asyncio
import logging
from typing import Dict, List, Tuple

from websockets.asyncio.server import serve

from relay_common.protocol_definitions import Message
from relay_server.auth.credential_store import CredentialStore
from relay_server.chat.broadcast_bus import BroadcastBus, Subscription
from relay_server.chat.history_log import HistoryLog
from relay_server.connection_handler import ConnectionHandler
from relay_server.utils.config import ServerConfig
from relay_server.utils.logger import logger


class RelayServer:
    """Server context shared by every connection."""

    def __init__(self, config: ServerConfig = None):
        self.config = config or ServerConfig()

        # Shared state
        self.credentials = CredentialStore()
        self.history = HistoryLog(self.config.history_limit)
        self.bus = BroadcastBus(self.config.bus_capacity)

        self.sessions: Dict[int, ConnectionHandler] = {}  # uid -> live handler
        self.next_uid = 1

    async def accept_message(self, message: Message):
        """Record a message in the history and fan it out."""
        async with self.history.lock:
            self.history.append_locked(message)
            self.bus.publish(message)

    async def join(self) -> Tuple[List[Message], Subscription]:
        """
        Snapshot the history and subscribe to the bus as one step, so each
        message reaches a new session exactly once.
        """
        async with self.history.lock:
            return self.history.snapshot_locked(), self.bus.subscribe()

    async def handle_client(self, websocket):
        """Handle individual client connection."""
        uid = self.get_next_uid()
        handler = ConnectionHandler(self, websocket, uid)
        self.sessions[uid] = handler

        logger.log_connection(websocket.remote_address, uid)

        try:
            await handler.run()
        finally:
            self.sessions.pop(uid, None)
            logger.log_disconnect(handler.username, uid)

    def get_next_uid(self) -> int:
        """Get the next available UID."""
        uid = self.next_uid
        self.next_uid += 1
        return uid

    def get_session_count(self) -> int:
        """Get the number of live connections."""
        return len(self.sessions)

    async def start(self):
        """Start the server."""
        async with serve(
            self.handle_client,
            self.config.host,
            self.config.port,
            max_size=self.config.max_message_size
        ) as server:
            addr = ', '.join(str(sock.getsockname()) for sock in server.sockets)
            logger.info(f"Server listening on {addr}")
            await server.serve_forever()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Chat Relay Server')
    parser.add_argument('--host', type=str, default=None,
                       help='Host to bind to (default: 127.0.0.1)')
    parser.add_argument('--port', type=int, default=None,
                       help='WebSocket port (default: 8100)')
    parser.add_argument('--history-limit', type=int, default=None,
                       help='Keep only the newest N messages (default: keep all)')
    parser.add_argument('--auth-timeout', type=float, default=None,
                       help='Seconds allowed for the login/register message, 0 disables (default: 30)')
    parser.add_argument('--idle-timeout', type=float, default=None,
                       help='Close sessions idle for this many seconds (default: never)')
    parser.add_argument('--logs-dir', type=str, default=None,
                       help='Directory for the chat log (default: logs)')
    parser.add_argument('--no-chat-log', action='store_true',
                       help='Do not write accepted messages to a log file')
    parser.add_argument('--debug', action='store_true',
                       help='Enable debug logging')
    return parser


def parse_args(argv=None) -> argparse.Namespace:
    """Parse and sanity-check the command line."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.history_limit is not None and args.history_limit < 1:
        parser.error("--history-limit must be at least 1")
    if args.auth_timeout is not None and args.auth_timeout < 0:
        parser.error("--auth-timeout must not be negative")
    if args.idle_timeout is not None and args.idle_timeout < 0:
        parser.error("--idle-timeout must not be negative")
    return args


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Build a ServerConfig, keeping defaults for flags that were not given."""
    config = ServerConfig()
    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.history_limit is not None:
        config.history_limit = args.history_limit
    if args.auth_timeout is not None:
        config.auth_timeout = args.auth_timeout or None
    if args.idle_timeout is not None:
        config.idle_timeout = args.idle_timeout or None
    if args.logs_dir is not None:
        config.logs_dir = args.logs_dir
    if args.no_chat_log:
        config.logs_dir = None
    return config


def main(argv=None):
    """Parse arguments and run the server until interrupted."""
    args = parse_args(argv)
    config = config_from_args(args)

    logger.configure(
        logs_dir=config.logs_dir,
        log_level=logging.DEBUG if args.debug else None
    )

    logger.info(f"Server binding to {config.get_connection_info()['uri']}")
    server = RelayServer(config)
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("Server shutting down...")
    except OSError as e:
        logger.log_error("server startup", e)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
