"""
Error taxonomy for the chat relay.

Authentication-phase errors end the session once the client has been told.
MalformedMessage is logged and skipped. TransportFailure ends the session
quietly.
"""


class RelayError(Exception):
    """Base class for relay errors."""


class AuthConflict(RelayError):
    """Registration of a username that already exists."""

    def __init__(self, username: str, reason: str = "Username already exists"):
        super().__init__(reason)
        self.username = username
        self.reason = reason


class AuthRejected(RelayError):
    """Login with unknown username or wrong password."""

    def __init__(self, username: str):
        super().__init__(f"Authentication rejected for '{username}'")
        self.username = username


class MalformedControl(RelayError):
    """First message of a connection is not a usable control envelope."""


class MalformedMessage(RelayError):
    """Post-auth payload that does not parse as a message envelope."""


class TransportFailure(RelayError):
    """Read or write on the connection failed, or the peer went away."""


class SubscriptionLagged(RelayError):
    """A subscriber fell behind and older messages were dropped for it."""

    def __init__(self, skipped: int):
        super().__init__(f"Subscriber lagged, {skipped} message(s) skipped")
        self.skipped = skipped


class SubscriptionClosed(RelayError):
    """recv() on a subscription that has been released."""
