"""
Protocol definitions for the chat relay.

This module defines the message structures and data formats used in communication
between client and server components.

Two envelopes travel over a connection:
- the control envelope, sent once by the client right after connecting:
  {"type": "register" | "login", "username": "...", "password": "..."}
- the message envelope, sent in both directions once authenticated:
  {"sender": "...", "content": "...", "timestamp": 1700000000000}
"""

import json
import time
from dataclasses import dataclass, asdict
from typing import Any, Dict, Union

from relay_common.constants import AuthTypes
from relay_common.errors import MalformedControl, MalformedMessage


@dataclass(frozen=True)
class User:
    """Registered user."""
    username: str
    password: str


@dataclass(frozen=True)
class Message:
    """Chat message. Never mutated once accepted."""
    sender: str
    content: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AuthRequest:
    """First envelope of a connection."""
    type: str
    username: str
    password: str


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def _load_object(raw: Union[str, bytes]) -> Dict[str, Any]:
    if isinstance(raw, bytes):
        raw = raw.decode('utf-8')
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def parse_auth_request(raw: Union[str, bytes]) -> AuthRequest:
    """
    Parse the control envelope.

    Raises:
        MalformedControl: invalid JSON, unknown type, empty username or
            non-text credentials.
    """
    try:
        data = _load_object(raw)
    except (UnicodeDecodeError, ValueError, RecursionError) as e:
        raise MalformedControl(f"Unparseable control envelope: {e}") from e

    auth_type = data.get('type')
    if auth_type not in (AuthTypes.REGISTER, AuthTypes.LOGIN):
        raise MalformedControl(f"Unknown authentication type: {auth_type!r}")

    username = data.get('username')
    password = data.get('password')
    if not isinstance(username, str) or not username:
        raise MalformedControl("Missing or empty username")
    if not isinstance(password, str):
        raise MalformedControl("Missing password")

    return AuthRequest(type=auth_type, username=username, password=password)


def parse_message(raw: Union[str, bytes]) -> Message:
    """
    Parse a message envelope. Extra keys are ignored.

    Raises:
        MalformedMessage: invalid JSON or missing/mistyped fields.
    """
    try:
        data = _load_object(raw)
    except (UnicodeDecodeError, ValueError, RecursionError) as e:
        raise MalformedMessage(f"Unparseable message: {e}") from e

    sender = data.get('sender')
    content = data.get('content')
    timestamp = data.get('timestamp')

    if not isinstance(sender, str):
        raise MalformedMessage("Field 'sender' must be a string")
    if not isinstance(content, str):
        raise MalformedMessage("Field 'content' must be a string")
    # bool is a subclass of int
    if not isinstance(timestamp, int) or isinstance(timestamp, bool):
        raise MalformedMessage("Field 'timestamp' must be an integer")

    return Message(sender=sender, content=content, timestamp=timestamp)


def encode_message(message: Message) -> str:
    """Serialize a message envelope for the wire."""
    return json.dumps(message.to_dict())


def create_register_message(username: str, password: str) -> Dict[str, Any]:
    """Create a registration control envelope."""
    return {
        "type": AuthTypes.REGISTER,
        "username": username,
        "password": password
    }


def create_login_message(username: str, password: str) -> Dict[str, Any]:
    """Create a login control envelope."""
    return {
        "type": AuthTypes.LOGIN,
        "username": username,
        "password": password
    }


def create_chat_message(sender: str, content: str, timestamp: int = None) -> Dict[str, Any]:
    """Create a message envelope stamped with the current time."""
    return {
        "sender": sender,
        "content": content,
        "timestamp": now_ms() if timestamp is None else timestamp
    }
