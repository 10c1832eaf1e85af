"""
Chat client module.

This module handles client-side chat messaging functionality.
"""

import asyncio
import json
import sys
from datetime import datetime

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from relay_common.constants import ServerResponses
from relay_common.errors import MalformedMessage
from relay_common.protocol_definitions import (
    Message, create_chat_message, create_login_message, create_register_message, parse_message
)
from relay_client.utils.logger import logger


def format_timestamp(timestamp: int) -> str:
    """Render an epoch-milliseconds timestamp, or the raw value if it is out of range."""
    try:
        return datetime.fromtimestamp(timestamp / 1000).strftime('%H:%M:%S')
    except (OverflowError, OSError, ValueError):
        return str(timestamp)


class RelayClient:
    """Client-side chat functionality."""

    def __init__(self, uri: str, username: str, password: str):
        self.uri = uri
        self.username = username
        self.password = password
        self.websocket = None
        self.authenticated = False

    async def connect(self) -> bool:
        """Open the WebSocket connection."""
        try:
            self.websocket = await connect(self.uri)
        except (OSError, InvalidHandshake) as e:
            logger.log_connection(self.uri, False)
            logger.log_error("connect", e)
            return False
        logger.log_connection(self.uri, True)
        return True

    async def authenticate(self, register: bool = False) -> bool:
        """Send the register/login envelope and wait for the server's answer."""
        if register:
            envelope = create_register_message(self.username, self.password)
        else:
            envelope = create_login_message(self.username, self.password)

        await self.websocket.send(json.dumps(envelope))
        response = await self.websocket.recv()
        logger.log_auth(self.username, response)

        self.authenticated = response in ServerResponses.SUCCESSES
        return self.authenticated

    async def send_chat(self, content: str) -> bool:
        """Send a chat message signed with our username."""
        if not self.websocket:
            logger.error("Not connected to server")
            return False

        try:
            await self.websocket.send(json.dumps(create_chat_message(self.username, content)))
        except ConnectionClosed as e:
            logger.log_error("send", e)
            return False
        logger.log_chat_sent(content)
        return True

    async def receive(self) -> Message:
        """Wait for the next message (history first, then live)."""
        return parse_message(await self.websocket.recv())

    async def listen(self):
        """Print incoming messages until the connection closes."""
        while True:
            try:
                message = await self.receive()
            except MalformedMessage as e:
                logger.warning(f"Ignoring unexpected payload: {e}")
                continue
            except ConnectionClosed:
                logger.info("Connection closed by server")
                return
            self.display(message)

    def display(self, message: Message):
        """Show a message on the console."""
        print(f"[{format_timestamp(message.timestamp)}] {message.sender}: {message.content}")

    async def close(self):
        """Close the connection."""
        if self.websocket is not None:
            await self.websocket.close()
            self.websocket = None
        self.authenticated = False

    async def interactive_mode(self, register: bool = False):
        """Authenticate, then relay stdin lines until EOF or disconnect."""
        if not await self.connect():
            return

        try:
            if not await self.authenticate(register):
                return

            logger.show_interactive_mode_info()
            listener = asyncio.create_task(self.listen())
            loop = asyncio.get_running_loop()

            try:
                while not listener.done():
                    line = await loop.run_in_executor(None, sys.stdin.readline)
                    if not line:
                        break
                    text = line.strip()
                    if text and not await self.send_chat(text):
                        break
            finally:
                listener.cancel()
                await asyncio.gather(listener, return_exceptions=True)
        finally:
            await self.close()
