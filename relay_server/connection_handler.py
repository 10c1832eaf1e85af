"""
Connection handler module.

Drives one WebSocket connection through its session:

    AWAITING_AUTH -> AUTHENTICATED -> CLOSED

Any failure before AUTHENTICATED jumps straight to CLOSED. Once
authenticated the handler replays the history, then runs a reader task
(client -> history + bus) and a forwarder task (bus -> client) side by side
until either of them stops.
"""

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Optional

from websockets.exceptions import ConnectionClosed

from relay_common.constants import AuthTypes, ServerResponses
from relay_common.errors import (
    AuthConflict, AuthRejected, MalformedControl, MalformedMessage, SubscriptionLagged,
    TransportFailure
)
from relay_common.protocol_definitions import encode_message, parse_auth_request, parse_message
from relay_server.chat.broadcast_bus import Subscription
from relay_server.utils.logger import logger

if TYPE_CHECKING:
    from relay_server.main_server import RelayServer


class SessionState(Enum):
    AWAITING_AUTH = 'awaiting_auth'
    AUTHENTICATED = 'authenticated'
    CLOSED = 'closed'


class ConnectionHandler:
    """Per-connection session state machine."""

    def __init__(self, server: 'RelayServer', websocket, uid: int):
        self.server = server
        self.websocket = websocket
        self.uid = uid
        self.state = SessionState.AWAITING_AUTH
        self.username: Optional[str] = None
        self.subscription: Optional[Subscription] = None

    async def run(self):
        """Run the session to completion. Never raises for session errors."""
        try:
            if not await self.authenticate():
                return
            await self.replay_history()
            await self.relay()
        except TransportFailure as e:
            logger.debug(f"Transport closed for uid={self.uid}: {e}")
        except asyncio.CancelledError:
            logger.info(f"Connection cancelled for uid={self.uid}")
            raise
        except Exception as e:
            logger.log_error(f"session uid={self.uid}", e)
        finally:
            await self.close()

    async def authenticate(self) -> bool:
        """
        Read the control envelope and register or log in.

        Returns True when the session is authenticated. On failure the client
        has already been told why and the caller should close.
        """
        timeout = self.server.config.auth_timeout
        try:
            raw = await self._recv(timeout)
        except asyncio.TimeoutError:
            logger.warning(f"No authentication from uid={self.uid} within {timeout}s")
            return False

        try:
            request = parse_auth_request(raw)
            if request.type == AuthTypes.REGISTER:
                await self.server.credentials.register(request.username, request.password)
                response = ServerResponses.REGISTRATION_SUCCESSFUL
                action = 'registration'
            else:
                if not await self.server.credentials.authenticate(request.username, request.password):
                    raise AuthRejected(request.username)
                response = ServerResponses.AUTHENTICATION_SUCCESSFUL
                action = 'login'
        except MalformedControl as e:
            logger.warning(f"Invalid control envelope from uid={self.uid}: {e}")
            await self._send(ServerResponses.INVALID_AUTH_TYPE)
            return False
        except AuthConflict as e:
            logger.log_auth('registration', e.username, self.uid, False)
            await self._send(ServerResponses.REGISTRATION_FAILED.format(reason=e.reason))
            return False
        except AuthRejected as e:
            logger.log_auth('login', e.username, self.uid, False)
            await self._send(ServerResponses.AUTHENTICATION_FAILED)
            return False

        await self._send(response)
        self.username = request.username
        self.state = SessionState.AUTHENTICATED
        logger.log_auth(action, request.username, self.uid, True)
        return True

    async def replay_history(self):
        """Subscribe and send the history snapshot before any live traffic."""
        history, self.subscription = await self.server.join()
        for message in history:
            await self._send(encode_message(message))
        logger.log_history_replay(self.uid, len(history))

    async def relay(self):
        """Run the reader and forwarder until one of them stops."""
        tasks = {
            asyncio.create_task(self._read_loop(), name=f"read-uid-{self.uid}"),
            asyncio.create_task(self._forward_loop(), name=f"forward-uid-{self.uid}"),
        }
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()

    async def _read_loop(self):
        """Accept messages from the client until it goes away."""
        idle_timeout = self.server.config.idle_timeout
        while True:
            try:
                raw = await self._recv(idle_timeout)
            except asyncio.TimeoutError:
                logger.info(f"uid={self.uid} idle for {idle_timeout}s, closing")
                return

            try:
                message = parse_message(raw)
            except MalformedMessage as e:
                logger.log_malformed(self.uid, e)
                continue

            # sender is taken as-is from the client
            if message.sender != self.username:
                logger.debug(f"uid={self.uid} ({self.username}) sent as '{message.sender}'")

            await self.server.accept_message(message)
            logger.log_message(message.sender, self.uid, message.content)

    async def _forward_loop(self):
        """Deliver bus messages to the client, own messages included."""
        while True:
            try:
                message = await self.subscription.recv()
            except SubscriptionLagged as e:
                logger.log_lagged(self.uid, e.skipped)
                continue
            await self._send(encode_message(message))

    async def _recv(self, timeout: Optional[float] = None):
        try:
            return await asyncio.wait_for(self.websocket.recv(), timeout=timeout)
        except ConnectionClosed as e:
            raise TransportFailure(f"receive failed: {e}") from e

    async def _send(self, data: str):
        try:
            await self.websocket.send(data)
        except ConnectionClosed as e:
            raise TransportFailure(f"send failed: {e}") from e

    async def close(self):
        """Release the subscription and the transport. Idempotent."""
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        if self.subscription is not None:
            self.subscription.close()
        try:
            await self.websocket.close()
        except (ConnectionClosed, OSError) as e:
            logger.debug(f"Error closing connection for uid={self.uid}: {e}")
