"""Unit tests for the live update broadcaster (services/broadcaster.py)"""
import asyncio
import json
import pytest
from unittest.mock import MagicMock

from crowdsec_dashboard.services.broadcaster import (
    CONNECTED_COMMENT,
    Broadcaster,
    Subscription,
    SubscriptionClosed,
)


def _drain(subscription):
    frames = []
    while not subscription.queue.empty():
        frames.append(subscription.queue.get_nowait())
    return frames


@pytest.mark.unit
class TestBroadcaster:
    """Channel fan-out"""

    @pytest.mark.asyncio
    async def test_new_subscriber_gets_connected_comment(self):
        broadcaster = Broadcaster()

        subscription = broadcaster.subscribe("decisions")

        assert _drain(subscription) == [CONNECTED_COMMENT]
        assert broadcaster.subscriber_count("decisions") == 1

    @pytest.mark.asyncio
    async def test_broadcast_serializes_once_per_channel(self):
        broadcaster = Broadcaster()
        first = broadcaster.subscribe("decisions")
        second = broadcaster.subscribe("decisions")
        other = broadcaster.subscribe("hosts")
        for s in (first, second, other):
            _drain(s)

        delivered = broadcaster.broadcast("decisions", [{"id": 1, "host_ip": "1.2.3.4"}])
        await asyncio.sleep(0)  # let call_soon_threadsafe callbacks run

        assert delivered == 2
        expected = 'data: [{"id": 1, "host_ip": "1.2.3.4"}]\n\n'
        assert _drain(first) == [expected]
        assert _drain(second) == [expected]
        assert _drain(other) == []

    @pytest.mark.asyncio
    async def test_frame_is_valid_sse_json(self):
        broadcaster = Broadcaster()
        subscription = broadcaster.subscribe("hosts")
        _drain(subscription)

        broadcaster.broadcast("hosts", [{"ip": "1.2.3.4", "active_decisions": 2}])
        await asyncio.sleep(0)

        frame = _drain(subscription)[0]
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        assert json.loads(frame[len("data: "):]) == [{"ip": "1.2.3.4", "active_decisions": 2}]

    def test_broadcast_without_subscribers(self):
        assert Broadcaster().broadcast("decisions", []) == 0

    @pytest.mark.asyncio
    async def test_failed_subscriber_dropped(self):
        broadcaster = Broadcaster()
        healthy = broadcaster.subscribe("decisions")
        broken = broadcaster.subscribe("decisions")
        broken.send = MagicMock(side_effect=SubscriptionClosed(broken.id))

        delivered = broadcaster.broadcast("decisions", [])

        assert delivered == 1
        assert broadcaster.subscriber_count("decisions") == 1
        assert broken.closed is True

        # Dropped subscribers are not retried
        broadcaster.broadcast("decisions", [])
        assert broken.send.call_count == 1
        assert healthy.closed is False

    @pytest.mark.asyncio
    async def test_full_queue_closes_subscription(self):
        broadcaster = Broadcaster(max_queue_size=2)
        subscription = broadcaster.subscribe("decisions")  # connected comment uses one slot

        broadcaster.broadcast("decisions", [1])
        broadcaster.broadcast("decisions", [2])
        await asyncio.sleep(0)

        assert subscription.closed is True
        broadcaster.broadcast("decisions", [3])
        assert broadcaster.subscriber_count("decisions") == 0

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        broadcaster = Broadcaster()
        subscription = broadcaster.subscribe("decisions")

        broadcaster.unsubscribe(subscription)
        broadcaster.unsubscribe(subscription)

        assert broadcaster.subscriber_count("decisions") == 0
        assert broadcaster.broadcast("decisions", []) == 0

    @pytest.mark.asyncio
    async def test_broadcast_from_another_thread(self):
        broadcaster = Broadcaster()
        subscription = broadcaster.subscribe("decisions")
        _drain(subscription)

        await asyncio.to_thread(broadcaster.broadcast, "decisions", {"n": 1})
        frame = await asyncio.wait_for(subscription.queue.get(), timeout=1)

        assert frame == 'data: {"n": 1}\n\n'


@pytest.mark.unit
class TestSubscription:
    """Single subscriber queue"""

    def test_send_on_closed_loop_raises(self):
        loop = asyncio.new_event_loop()
        subscription = Subscription("decisions", loop)
        loop.close()

        with pytest.raises(SubscriptionClosed):
            subscription.send("data: []\n\n")

    @pytest.mark.asyncio
    async def test_frames_yields_until_closed(self):
        subscription = Subscription("decisions", asyncio.get_running_loop())
        subscription.queue.put_nowait("a")
        subscription.queue.put_nowait("b")

        received = []
        async for frame in subscription.frames():
            received.append(frame)
            if frame == "b":
                subscription.closed = True

        assert received == ["a", "b"]
