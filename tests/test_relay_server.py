#!/usr/bin/env python3
"""
End-to-end tests for the relay server.

Runs RelayServer behind a real WebSocket listener on an ephemeral port and
talks to it with the websockets client and with RelayClient.
"""

import asyncio
import contextlib
import io
import json
import tempfile
import unittest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from websockets.asyncio.client import connect
from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosed

from relay_client.chat_client import RelayClient, format_timestamp
from relay_common.protocol_definitions import (
    Message, create_chat_message, create_login_message, create_register_message, parse_message
)
from relay_server.main_server import RelayServer, build_parser, config_from_args, parse_args
from relay_server.utils.config import ServerConfig
from relay_server.utils.logger import ServerLogger


class TestRelayServerEndToEnd(unittest.IsolatedAsyncioTestCase):
    """Scenario tests over real WebSocket connections."""

    async def asyncSetUp(self):
        """Start a listener on an ephemeral port."""
        self.relay = RelayServer(ServerConfig(logs_dir=None))
        self.ws_server = await serve(self.relay.handle_client, '127.0.0.1', 0)
        port = next(iter(self.ws_server.sockets)).getsockname()[1]
        self.uri = f"ws://127.0.0.1:{port}"

    async def asyncTearDown(self):
        """Stop the listener."""
        self.ws_server.close()
        await self.ws_server.wait_closed()

    async def auth(self, ws, envelope) -> str:
        await ws.send(json.dumps(envelope))
        return await asyncio.wait_for(ws.recv(), 1)

    async def test_alice_and_bob_scenario(self):
        """Test register, conflict, login, bad login and history replay for a new joiner."""
        async with connect(self.uri) as ws:
            self.assertEqual(await self.auth(ws, create_register_message("alice", "pw1")),
                             "Registration successful")

        async with connect(self.uri) as ws:
            self.assertEqual(await self.auth(ws, create_register_message("alice", "pw2")),
                             "Registration failed: Username already exists")
            with self.assertRaises(ConnectionClosed):
                await asyncio.wait_for(ws.recv(), 1)

        async with connect(self.uri) as ws:
            self.assertEqual(await self.auth(ws, create_login_message("alice", "wrong")),
                             "Authentication failed")

        async with connect(self.uri) as alice:
            self.assertEqual(await self.auth(alice, create_login_message("alice", "pw1")),
                             "Authentication successful")
            await alice.send(json.dumps(create_chat_message("alice", "hi", timestamp=1000)))

            # Own message comes back once it has been accepted
            echo = parse_message(await asyncio.wait_for(alice.recv(), 1))
            hi = Message(sender="alice", content="hi", timestamp=1000)
            self.assertEqual(echo, hi)

            async with connect(self.uri) as bob:
                self.assertEqual(await self.auth(bob, create_register_message("bob", "pw")),
                                 "Registration successful")
                self.assertEqual(parse_message(await asyncio.wait_for(bob.recv(), 1)), hi)

                await alice.send(json.dumps(create_chat_message("alice", "live", timestamp=1001)))
                live = Message(sender="alice", content="live", timestamp=1001)
                self.assertEqual(parse_message(await asyncio.wait_for(bob.recv(), 1)), live)
                self.assertEqual(parse_message(await asyncio.wait_for(alice.recv(), 1)), live)

        self.assertEqual(await self.relay.history.snapshot(), [hi, live])

    async def test_invalid_auth_type(self):
        """Test that an unknown control type is answered and the connection dropped."""
        async with connect(self.uri) as ws:
            response = await self.auth(ws, {"type": "admin", "username": "x", "password": "y"})
            self.assertEqual(response, "Invalid authentication type")
            with self.assertRaises(ConnectionClosed):
                await asyncio.wait_for(ws.recv(), 1)

    async def test_sessions_are_tracked_and_released(self):
        """Test that the live-session registry and bus follow connections."""
        async with connect(self.uri) as ws:
            await self.auth(ws, create_register_message("carol", "pw"))
            await asyncio.sleep(0.05)
            self.assertEqual(self.relay.get_session_count(), 1)
            self.assertEqual(self.relay.bus.subscriber_count, 1)

        for _ in range(100):
            if self.relay.get_session_count() == 0:
                break
            await asyncio.sleep(0.01)
        self.assertEqual(self.relay.get_session_count(), 0)
        self.assertEqual(self.relay.bus.subscriber_count, 0)

    async def test_relay_client_round_trip(self):
        """Test that RelayClient registers, sends and receives its own message."""
        client = RelayClient(self.uri, "dave", "pw")
        self.assertTrue(await client.connect())
        try:
            self.assertTrue(await client.authenticate(register=True))
            self.assertTrue(await client.send_chat("hello"))
            message = await asyncio.wait_for(client.receive(), 1)
            self.assertEqual(message.sender, "dave")
            self.assertEqual(message.content, "hello")
        finally:
            await client.close()

        again = RelayClient(self.uri, "dave", "nope")
        self.assertTrue(await again.connect())
        try:
            self.assertFalse(await again.authenticate())
        finally:
            await again.close()


class TestServerSetup(unittest.TestCase):
    """Test cases for configuration and logging helpers."""

    def test_defaults(self):
        """Test the default bind address and limits."""
        config = config_from_args(build_parser().parse_args([]))
        self.assertEqual(config.get_connection_info()['uri'], "ws://127.0.0.1:8100")
        self.assertIsNone(config.history_limit)
        self.assertEqual(config.bus_capacity, 100)
        self.assertEqual(config.auth_timeout, 30)
        self.assertIsNone(config.idle_timeout)

    def test_flags_override_defaults(self):
        """Test that command-line flags land in the config."""
        args = build_parser().parse_args([
            '--host', '0.0.0.0', '--port', '9001', '--history-limit', '50',
            '--auth-timeout', '0', '--idle-timeout', '120', '--no-chat-log'
        ])
        config = config_from_args(args)
        self.assertEqual((config.host, config.port), ('0.0.0.0', 9001))
        self.assertEqual(config.history_limit, 50)
        self.assertIsNone(config.auth_timeout)
        self.assertEqual(config.idle_timeout, 120)
        self.assertIsNone(config.logs_dir)

        server = RelayServer(config)
        self.assertEqual(server.history.limit, 50)

    def test_out_of_range_flags_rejected(self):
        """Test that negative limits and timeouts are refused at the command line."""
        bad_argv = [
            ['--history-limit', '-1'],
            ['--history-limit', '0'],
            ['--idle-timeout', '-5'],
            ['--auth-timeout', '-1'],
        ]
        for argv in bad_argv:
            with self.subTest(argv=argv):
                stderr = io.StringIO()
                with contextlib.redirect_stderr(stderr), self.assertRaises(SystemExit) as cm:
                    parse_args(argv)
                self.assertEqual(cm.exception.code, 2)
                self.assertIn(argv[0], stderr.getvalue())

        args = parse_args(['--history-limit', '1', '--idle-timeout', '0'])
        config = config_from_args(args)
        self.assertEqual(config.history_limit, 1)
        self.assertIsNone(config.idle_timeout)

    def test_unencodable_content_in_chat_log(self):
        """Test that a lone surrogate is written escaped instead of failing the write."""
        server_logger = ServerLogger()
        with tempfile.TemporaryDirectory() as tmp:
            server_logger.configure(logs_dir=tmp)
            server_logger.log_message("alice", 1, "\ud800")
            contents = (Path(tmp) / "chat_history.log").read_text(encoding='utf-8')
            self.assertIn("alice (uid=1) | \\ud800", contents)
            server_logger.configure(logs_dir=None)

    def test_chat_log_file(self):
        """Test that accepted messages are appended to the chat log when enabled."""
        server_logger = ServerLogger()
        with tempfile.TemporaryDirectory() as tmp:
            server_logger.configure(logs_dir=tmp)
            server_logger.log_message("alice", 1, "hi there")
            contents = (Path(tmp) / "chat_history.log").read_text(encoding='utf-8')
            self.assertIn("alice (uid=1) | hi there", contents)

            server_logger.configure(logs_dir=None)
            self.assertIsNone(server_logger.chat_log_path)

    def test_format_timestamp_out_of_range(self):
        """Test that unvalidated timestamps still render."""
        self.assertEqual(format_timestamp(10 ** 30), str(10 ** 30))


if __name__ == '__main__':
    unittest.main()
