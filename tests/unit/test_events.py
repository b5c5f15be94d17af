"""Unit tests for the deployment event stream."""

import asyncio
import json

import pytest

from pushdeploy.core.events import COMPLETE, ERROR, LOG, Event, EventBus


class TestEvent:
    """Tests for Event serialization."""

    def test_to_json_is_one_line(self):
        event = Event(event_type=LOG, data={"message": "$ npm install"})

        line = event.to_json()

        assert line.endswith("\n")
        assert line.count("\n") == 1
        payload = json.loads(line)
        assert payload["type"] == "log"
        assert payload["message"] == "$ npm install"
        assert "timestamp" in payload

    def test_to_sse(self):
        event = Event(event_type=COMPLETE, data={"url": "https://example.com/x/index.html"})

        message = event.to_sse()

        assert message["event"] == "complete"
        payload = json.loads(message["data"])
        assert payload["type"] == "complete"
        assert payload["url"].endswith("index.html")

    def test_terminal_flags(self):
        assert not Event(event_type=LOG, data={}).is_terminal
        assert Event(event_type=COMPLETE, data={}).is_terminal
        assert Event(event_type=ERROR, data={}).is_terminal


class TestEventBus:
    """Tests for EventBus."""

    @pytest.mark.asyncio
    async def test_events_arrive_in_order(self):
        bus = EventBus()
        queue = bus.subscribe("dep-1")

        await bus.publish_log("dep-1", "one")
        await bus.publish_log("dep-1", "two")
        await bus.publish_complete("dep-1", "https://example.com")

        received = [queue.get_nowait() for _ in range(3)]
        assert [e.event_type for e in received] == ["log", "log", "complete"]
        assert received[1].data == {"message": "two"}

    @pytest.mark.asyncio
    async def test_streams_are_isolated(self):
        bus = EventBus()
        first = bus.subscribe("a")
        second = bus.subscribe("b")

        await bus.publish_error("a", "boom")

        assert first.qsize() == 1
        assert second.empty()

    @pytest.mark.asyncio
    async def test_publish_without_subscriber_is_dropped(self):
        bus = EventBus()

        await bus.publish_log("nobody", "hello")

        assert not bus.is_subscribed("nobody")

    def test_unsubscribe(self):
        bus = EventBus()
        bus.subscribe("a")
        bus.unsubscribe("a")
        bus.unsubscribe("a")

        assert not bus.is_subscribed("a")


class TestUnclaimedBuffers:
    """Buffers opened ahead of a consumer do not outlive their deployment."""

    @pytest.mark.asyncio
    async def test_unclaimed_buffer_expires_after_terminal_event(self):
        bus = EventBus(unclaimed_ttl=0.01)
        bus.open("dep-1")

        await bus.publish_log("dep-1", "building")
        await asyncio.sleep(0.05)
        assert bus.is_subscribed("dep-1")

        await bus.publish_complete("dep-1", "https://example.com")
        assert bus.is_subscribed("dep-1")

        await asyncio.sleep(0.05)
        assert not bus.is_subscribed("dep-1")

    @pytest.mark.asyncio
    async def test_attached_buffer_is_kept(self):
        bus = EventBus(unclaimed_ttl=0.01)
        queue = bus.subscribe("dep-1")

        await bus.publish_error("dep-1", "boom")
        await asyncio.sleep(0.05)

        assert bus.is_subscribed("dep-1")
        assert queue.qsize() == 1

    @pytest.mark.asyncio
    async def test_consumer_attaching_before_expiry_keeps_buffer(self):
        bus = EventBus(unclaimed_ttl=0.01)
        bus.open("dep-1")
        await bus.publish_complete("dep-1", "https://example.com")

        queue = bus.subscribe("dep-1")
        await asyncio.sleep(0.05)

        assert bus.is_attached("dep-1")
        assert queue.get_nowait().event_type == COMPLETE

    @pytest.mark.asyncio
    async def test_reopened_buffer_is_not_dropped_by_old_timer(self):
        bus = EventBus(unclaimed_ttl=0.01)
        bus.open("dep-1")
        await bus.publish_complete("dep-1", "https://example.com")
        bus.unsubscribe("dep-1")

        bus.subscribe("dep-1")
        bus.unsubscribe("dep-1")
        fresh = bus.open("dep-1")
        await asyncio.sleep(0.05)

        assert bus.is_subscribed("dep-1")
        assert fresh.empty()
