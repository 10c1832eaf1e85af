"""
Broadcast bus module.

Multi-producer, multi-consumer fan-out channel. The bus keeps one bounded
backlog of recent messages, shared by all subscribers; each subscription
only holds a cursor into it.

Slow-consumer policy: when the backlog is full the oldest entry is evicted.
A subscriber whose next entry was evicted gets a single SubscriptionLagged
from recv() reporting how many messages it missed, then resumes from the
oldest entry still retained.

All operations run on the event loop thread; publish() never awaits, so a
publish is observed by every subscriber or by none.
"""

import asyncio
from collections import deque
from typing import Set

from relay_common.constants import BROADCAST_CAPACITY
from relay_common.errors import SubscriptionClosed, SubscriptionLagged
from relay_common.protocol_definitions import Message


class Subscription:
    """Receive handle returned by BroadcastBus.subscribe()."""
    
    def __init__(self, bus: 'BroadcastBus', cursor: int):
        self._bus = bus
        self._cursor = cursor  # sequence number of the next message to read
        self._ready = asyncio.Event()
        self.closed = False
    
    @property
    def pending(self) -> int:
        """Messages published but not yet received (lagged ones included)."""
        return self._bus._next_seq - self._cursor
    
    async def recv(self) -> Message:
        """
        Wait for the next message in publish order.

        Raises:
            SubscriptionLagged: older messages were dropped for this subscriber.
            SubscriptionClosed: the subscription has been released.
        """
        while True:
            if self.closed:
                raise SubscriptionClosed("Subscription is closed")
            
            oldest = self._bus._oldest_seq()
            if self._cursor < oldest:
                skipped = oldest - self._cursor
                self._cursor = oldest
                raise SubscriptionLagged(skipped)
            
            if self._cursor < self._bus._next_seq:
                message = self._bus._backlog[self._cursor - oldest]
                self._cursor += 1
                return message
            
            self._ready.clear()
            await self._ready.wait()
    
    def close(self):
        """Release the subscription. Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        self._bus._unsubscribe(self)
        # Wake a pending recv() so it sees the close
        self._ready.set()
    
    def _notify(self):
        self._ready.set()
    
    async def __aenter__(self):
        return self
    
    async def __aexit__(self, exc_type, exc, tb):
        self.close()


class BroadcastBus:
    """Publish/subscribe channel with a bounded, bus-wide backlog."""
    
    def __init__(self, capacity: int = BROADCAST_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._backlog = deque(maxlen=capacity)
        self._next_seq = 0  # sequence number the next publish gets
        self._subscribers: Set[Subscription] = set()
    
    def _oldest_seq(self) -> int:
        return self._next_seq - len(self._backlog)
    
    def subscribe(self) -> Subscription:
        """New handle observing every message published after this call."""
        subscription = Subscription(self, self._next_seq)
        self._subscribers.add(subscription)
        return subscription
    
    def publish(self, message: Message) -> int:
        """
        Append a message to the backlog and wake all subscribers.

        Returns the number of live subscribers at publish time.
        """
        self._backlog.append(message)
        self._next_seq += 1
        for subscription in self._subscribers:
            subscription._notify()
        return len(self._subscribers)
    
    def _unsubscribe(self, subscription: Subscription):
        self._subscribers.discard(subscription)
    
    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
