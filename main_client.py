#!/usr/bin/env python3
"""
Chat Relay Client - Main Entry Point

Command-line client: registers or logs in, prints the message history and
live messages, and sends every line typed on stdin.

Usage:
    python main_client.py --username NAME [--password PW] [--register]

Optional arguments:
    --server-ip HOST      Server address (default: 127.0.0.1)
    --port PORT           Server port (default: 8100)
"""

import argparse
import asyncio
import getpass

from relay_common.constants import DEFAULT_HOST, DEFAULT_PORT


def run_cli_client(username: str, password: str, server_host: str, server_port: int, register: bool):
    """Run the CLI client."""
    from relay_client.chat_client import RelayClient
    from relay_client.utils.logger import logger
    
    client = RelayClient(f"ws://{server_host}:{server_port}", username, password)
    
    try:
        asyncio.run(client.interactive_mode(register=register))
    except KeyboardInterrupt:
        print("\n[INFO] Interrupted by user")
    except Exception as e:
        logger.log_error("client", e)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Chat Relay Client')
    parser.add_argument('--username', type=str, default=None,
                       help='Username (default: asked interactively)')
    parser.add_argument('--password', type=str, default=None,
                       help='Password (default: asked interactively)')
    parser.add_argument('--server-ip', type=str, default=DEFAULT_HOST,
                       help=f'Server IP address (default: {DEFAULT_HOST})')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                       help=f'Server port (default: {DEFAULT_PORT})')
    parser.add_argument('--register', action='store_true',
                       help='Create the account instead of logging in')
    
    args = parser.parse_args()
    
    username = args.username or input("Enter username: ").strip()
    if not username:
        parser.error("a username is required")
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    
    run_cli_client(username, password, args.server_ip, args.port, args.register)


if __name__ == "__main__":
    main()
