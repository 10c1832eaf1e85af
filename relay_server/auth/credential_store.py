"""
Credential store module.

Shared username -> password registry. Passwords are stored and compared
as plain text.
"""

import asyncio
from typing import Dict

from relay_common.errors import AuthConflict
from relay_common.protocol_definitions import User


class CredentialStore:
    """In-memory user registry shared by every connection."""
    
    def __init__(self):
        self._users: Dict[str, User] = {}  # username -> user
        self.lock = asyncio.Lock()  # Protect shared state
    
    async def register(self, username: str, password: str) -> None:
        """
        Insert a new user.

        Raises:
            AuthConflict: the username is already registered. The stored
                password is left untouched.
        """
        async with self.lock:
            if username in self._users:
                raise AuthConflict(username)
            self._users[username] = User(username=username, password=password)
    
    async def authenticate(self, username: str, password: str) -> bool:
        """Return True iff the user exists and the password matches exactly."""
        async with self.lock:
            user = self._users.get(username)
        return user is not None and user.password == password
    
    async def contains(self, username: str) -> bool:
        async with self.lock:
            return username in self._users
    
    def __len__(self) -> int:
        return len(self._users)
