"""
History log module.

Append-only record of accepted messages, replayed in full to every newly
authenticated session.
"""

import asyncio
from collections import deque
from typing import List, Optional

from relay_common.protocol_definitions import Message


class HistoryLog:
    """Ordered, shared message history."""
    
    def __init__(self, limit: Optional[int] = None):
        # limit=None keeps everything; otherwise the oldest entries fall off
        self._messages = deque(maxlen=limit)
        self.lock = asyncio.Lock()  # Protect shared state
    
    @property
    def limit(self) -> Optional[int]:
        return self._messages.maxlen
    
    async def append(self, message: Message) -> None:
        """Add a message at the end of the history."""
        async with self.lock:
            self.append_locked(message)
    
    async def snapshot(self) -> List[Message]:
        """Point-in-time copy of the history, oldest first."""
        async with self.lock:
            return self.snapshot_locked()
    
    def append_locked(self, message: Message) -> None:
        """append() for callers already holding ``lock``."""
        self._messages.append(message)
    
    def snapshot_locked(self) -> List[Message]:
        """snapshot() for callers already holding ``lock``."""
        return list(self._messages)
    
    def __len__(self) -> int:
        return len(self._messages)
