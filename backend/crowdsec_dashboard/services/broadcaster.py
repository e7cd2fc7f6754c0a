"""
In-memory fan-out of live updates to server-sent event subscribers.

Each subscription owns a bounded asyncio queue living on the event loop of
the request that opened it. ``broadcast`` may be called from any thread
(the sync runs on the scheduler's worker thread) and hands the frame to
each loop with ``call_soon_threadsafe``, so it never blocks on a client.
"""

import asyncio
import json
import logging
import threading
import uuid
from typing import Any, Dict, Optional

from crowdsec_dashboard.metrics import record_sse_subscriber_dropped, update_sse_subscribers

logger = logging.getLogger(__name__)

CONNECTED_COMMENT = ": connected\n\n"
DEFAULT_QUEUE_SIZE = 16


class SubscriptionClosed(Exception):
    """Raised when writing to a subscription that can no longer receive"""


class Subscription:
    """One open event stream on one channel"""

    def __init__(self, channel: str, loop: asyncio.AbstractEventLoop, max_queue_size: int = DEFAULT_QUEUE_SIZE):
        self.id = str(uuid.uuid4())
        self.channel = channel
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self.closed = False

    def send(self, frame: str) -> None:
        """Queue a frame for delivery; raises SubscriptionClosed if that is impossible"""
        if self.closed or self.loop.is_closed():
            raise SubscriptionClosed(self.id)
        try:
            self.loop.call_soon_threadsafe(self._put, frame)
        except RuntimeError as e:
            raise SubscriptionClosed(self.id) from e

    def _put(self, frame: str) -> None:
        # Runs on the subscriber's loop; a full queue means the client stopped reading
        try:
            self.queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(f"Live update queue full for subscriber {self.id} on '{self.channel}', closing")
            self.closed = True

    async def frames(self):
        """Yield queued frames until the subscription is closed"""
        while not self.closed:
            yield await self.queue.get()


class Broadcaster:
    """Per-channel registry of subscriptions"""

    def __init__(self, max_queue_size: int = DEFAULT_QUEUE_SIZE):
        self.max_queue_size = max_queue_size
        self._channels: Dict[str, Dict[str, Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, channel: str, loop: Optional[asyncio.AbstractEventLoop] = None) -> Subscription:
        """Register a subscription on the current (or given) event loop"""
        subscription = Subscription(channel, loop or asyncio.get_running_loop(), self.max_queue_size)
        # Keep proxies that buffer small responses from holding the stream back
        subscription.queue.put_nowait(CONNECTED_COMMENT)

        with self._lock:
            self._channels.setdefault(channel, {})[subscription.id] = subscription
            count = len(self._channels[channel])

        update_sse_subscribers(channel, count)
        logger.debug(f"Subscriber {subscription.id} joined '{channel}' ({count} open)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.closed = True
        with self._lock:
            subscribers = self._channels.get(subscription.channel)
            if not subscribers:
                return
            subscribers.pop(subscription.id, None)
            count = len(subscribers)
            if count == 0:
                del self._channels[subscription.channel]

        update_sse_subscribers(subscription.channel, count)
        logger.debug(f"Subscriber {subscription.id} left '{subscription.channel}'")

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._channels.get(channel, {}))

    def broadcast(self, channel: str, payload: Any) -> int:
        """
        Push ``payload`` to every subscriber of ``channel``.

        The payload is serialized once. Subscribers whose write fails are
        dropped without retry; clients are expected to reconnect.

        Returns:
            Number of subscribers the frame was handed to
        """
        with self._lock:
            subscribers = list(self._channels.get(channel, {}).values())
        if not subscribers:
            return 0

        frame = f"data: {json.dumps(payload, default=str)}\n\n"

        delivered = 0
        for subscription in subscribers:
            try:
                subscription.send(frame)
                delivered += 1
            except SubscriptionClosed:
                self.unsubscribe(subscription)
                record_sse_subscriber_dropped(channel)

        return delivered


# Global broadcaster instance
_broadcaster: Optional[Broadcaster] = None


def get_broadcaster() -> Broadcaster:
    """Get or create the global broadcaster"""
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = Broadcaster()
    return _broadcaster
