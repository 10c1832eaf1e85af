#!/usr/bin/env python3
"""
Unit tests for the broadcast bus.

Tests:
- Subscribers only see messages published after subscribing
- Fan-out to every subscriber in publish order
- Drop-oldest policy for lagging subscribers
- Releasing subscriptions
"""

import asyncio
import unittest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from relay_common.errors import SubscriptionClosed, SubscriptionLagged
from relay_common.protocol_definitions import Message
from relay_server.chat.broadcast_bus import BroadcastBus


def make_message(i: int) -> Message:
    return Message(sender="alice", content=f"msg {i}", timestamp=1000 + i)


class TestBroadcastBus(unittest.IsolatedAsyncioTestCase):
    """Test cases for BroadcastBus and Subscription."""
    
    async def test_subscriber_skips_earlier_messages(self):
        """Test that a subscription starts at the next publish."""
        bus = BroadcastBus()
        bus.publish(make_message(0))
        
        subscription = bus.subscribe()
        bus.publish(make_message(1))
        
        self.assertEqual(await subscription.recv(), make_message(1))
        self.assertEqual(subscription.pending, 0)
    
    async def test_fan_out_in_publish_order(self):
        """Test that every subscriber receives every message, in order."""
        bus = BroadcastBus()
        subscriptions = [bus.subscribe() for _ in range(3)]
        
        for i in range(5):
            self.assertEqual(bus.publish(make_message(i)), 3)
        
        for subscription in subscriptions:
            received = [await subscription.recv() for _ in range(5)]
            self.assertEqual(received, [make_message(i) for i in range(5)])
    
    async def test_recv_waits_for_publish(self):
        """Test that recv() suspends until something is published."""
        bus = BroadcastBus()
        subscription = bus.subscribe()
        
        waiter = asyncio.create_task(subscription.recv())
        await asyncio.sleep(0.01)
        self.assertFalse(waiter.done())
        
        bus.publish(make_message(7))
        self.assertEqual(await asyncio.wait_for(waiter, 1), make_message(7))
    
    async def test_lagging_subscriber_loses_oldest(self):
        """Test that a slow subscriber is told how many messages it missed, then resumes."""
        bus = BroadcastBus(capacity=3)
        slow = bus.subscribe()
        
        for i in range(5):
            bus.publish(make_message(i))
        
        with self.assertRaises(SubscriptionLagged) as ctx:
            await slow.recv()
        self.assertEqual(ctx.exception.skipped, 2)
        
        received = [await slow.recv() for _ in range(3)]
        self.assertEqual(received, [make_message(i) for i in (2, 3, 4)])
    
    async def test_lag_is_per_subscriber(self):
        """Test that a subscriber keeping pace is unaffected by a slow one."""
        bus = BroadcastBus(capacity=2)
        fast = bus.subscribe()
        slow = bus.subscribe()
        
        received = []
        for i in range(4):
            bus.publish(make_message(i))
            received.append(await fast.recv())
        
        self.assertEqual(received, [make_message(i) for i in range(4)])
        with self.assertRaises(SubscriptionLagged):
            await slow.recv()
    
    async def test_close_releases_subscription(self):
        """Test that closing unsubscribes and makes recv() fail."""
        bus = BroadcastBus()
        subscription = bus.subscribe()
        self.assertEqual(bus.subscriber_count, 1)
        
        subscription.close()
        subscription.close()
        
        self.assertEqual(bus.subscriber_count, 0)
        self.assertEqual(bus.publish(make_message(1)), 0)
        with self.assertRaises(SubscriptionClosed):
            await subscription.recv()
    
    async def test_close_wakes_pending_recv(self):
        """Test that a recv() blocked on an empty bus ends when the subscription closes."""
        bus = BroadcastBus()
        subscription = bus.subscribe()
        waiter = asyncio.create_task(subscription.recv())
        await asyncio.sleep(0.01)
        
        subscription.close()
        
        with self.assertRaises(SubscriptionClosed):
            await asyncio.wait_for(waiter, 1)
    
    async def test_context_manager_closes(self):
        """Test that leaving the async with block releases the subscription."""
        bus = BroadcastBus()
        async with bus.subscribe() as subscription:
            self.assertEqual(bus.subscriber_count, 1)
        self.assertTrue(subscription.closed)
        self.assertEqual(bus.subscriber_count, 0)
    
    def test_capacity_must_be_positive(self):
        """Test that a zero-capacity bus is rejected."""
        with self.assertRaises(ValueError):
            BroadcastBus(capacity=0)


if __name__ == '__main__':
    unittest.main()
