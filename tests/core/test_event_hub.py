"""Unit tests for the EventHub class.

Covers subscription management, synchronous and asynchronous delivery,
error isolation between subscribers and thread safety.
"""

import asyncio
import threading
from typing import Any

import pytest

from order_engine.core.event_hub import EventHub, EventHubInterface, EventType


class TestEventHubInitialization:
    """Test cases for EventHub initialization and interface compliance."""

    def test_implements_interface(self) -> None:
        """Test that EventHub implements EventHubInterface."""
        assert isinstance(EventHub(), EventHubInterface)

    def test_initial_state(self) -> None:
        """Test that EventHub starts with an empty subscriber registry."""
        event_hub = EventHub()
        assert event_hub.get_subscriber_count(EventType.ORDER_ADMITTED) == 0
        assert isinstance(event_hub._lock, type(threading.RLock()))


class TestEventHubSubscription:
    """Test cases for subscribe and unsubscribe."""

    def setup_method(self) -> None:
        """Set up test fixtures before each test method."""
        self.event_hub = EventHub()
        self.received = []

        def callback(data: Any) -> None:
            self.received.append(data)

        self.callback = callback

    def test_subscriber_receives_event(self) -> None:
        """Test that a subscriber receives published data."""
        self.event_hub.subscribe(EventType.JOB_STARTED, self.callback)

        self.event_hub.publish(EventType.JOB_STARTED, {"order_id": "o-1"})

        assert self.received == [{"order_id": "o-1"}]

    def test_duplicate_subscription_is_ignored(self) -> None:
        """Test that subscribing the same callback twice delivers once."""
        self.event_hub.subscribe(EventType.JOB_STARTED, self.callback)
        self.event_hub.subscribe(EventType.JOB_STARTED, self.callback)

        self.event_hub.publish(EventType.JOB_STARTED, "x")

        assert self.received == ["x"]
        assert self.event_hub.get_subscriber_count(EventType.JOB_STARTED) == 1

    def test_events_are_routed_by_type(self) -> None:
        """Test that subscribers only receive their own event type."""
        self.event_hub.subscribe(EventType.JOB_COMPLETED, self.callback)

        self.event_hub.publish(EventType.JOB_FAILED, "failed")
        self.event_hub.publish(EventType.JOB_COMPLETED, "completed")

        assert self.received == ["completed"]

    def test_unsubscribe(self) -> None:
        """Test that unsubscribed callbacks stop receiving events."""
        self.event_hub.subscribe(EventType.QUEUE_PAUSED, self.callback)
        self.event_hub.unsubscribe(EventType.QUEUE_PAUSED, self.callback)

        self.event_hub.publish(EventType.QUEUE_PAUSED, {})

        assert self.received == []
        assert self.event_hub.get_subscriber_count(EventType.QUEUE_PAUSED) == 0

    def test_unsubscribe_unknown_callback_raises(self) -> None:
        """Test that removing an unknown callback raises KeyError."""
        with pytest.raises(KeyError):
            self.event_hub.unsubscribe(EventType.QUEUE_PAUSED, self.callback)

    def test_invalid_arguments(self) -> None:
        """Test validation of event type and callback."""
        with pytest.raises(ValueError):
            self.event_hub.subscribe("", self.callback)
        with pytest.raises(TypeError):
            self.event_hub.subscribe(EventType.JOB_STARTED, "not callable")
        with pytest.raises(ValueError):
            self.event_hub.publish("", {})

    def test_clear_subscribers(self) -> None:
        """Test clearing one event type and all event types."""
        self.event_hub.subscribe(EventType.JOB_STARTED, self.callback)
        self.event_hub.subscribe(EventType.JOB_FAILED, self.callback)

        self.event_hub.clear_subscribers(EventType.JOB_STARTED)
        assert self.event_hub.get_subscriber_count(EventType.JOB_STARTED) == 0
        assert self.event_hub.get_subscriber_count(EventType.JOB_FAILED) == 1

        self.event_hub.clear_subscribers()
        assert self.event_hub.get_subscriber_count(EventType.JOB_FAILED) == 0


class TestEventHubErrorIsolation:
    """Test cases for subscriber failure isolation."""

    def test_failing_callback_does_not_block_others(self) -> None:
        """Test that one raising subscriber does not stop delivery."""
        event_hub = EventHub()
        received = []

        def failing(_data: Any) -> None:
            raise RuntimeError("boom")

        event_hub.subscribe(EventType.JOB_FAILED, failing)
        event_hub.subscribe(EventType.JOB_FAILED, received.append)

        event_hub.publish(EventType.JOB_FAILED, "payload")

        assert received == ["payload"]


class TestEventHubAsync:
    """Test cases for coroutine subscribers."""

    @pytest.mark.asyncio
    async def test_async_callback_is_scheduled(self) -> None:
        """Test that async callbacks run on the running loop."""
        event_hub = EventHub()
        received = []

        async def callback(data: Any) -> None:
            received.append(data)

        event_hub.subscribe(EventType.SYSTEM_STARTUP, callback)
        event_hub.publish(EventType.SYSTEM_STARTUP, {"ok": True})

        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert received == [{"ok": True}]
        assert not event_hub._pending_tasks

    def test_async_callback_without_loop_is_dropped(self) -> None:
        """Test that async callbacks are skipped when no loop is running."""
        event_hub = EventHub()
        called = []

        async def callback(data: Any) -> None:
            called.append(data)

        event_hub.subscribe(EventType.SYSTEM_SHUTDOWN, callback)
        event_hub.publish(EventType.SYSTEM_SHUTDOWN, {})

        assert called == []


class TestEventHubThreadSafety:
    """Test cases for concurrent publishing."""

    def test_concurrent_publish(self) -> None:
        """Test that concurrent publishers deliver every event."""
        event_hub = EventHub()
        received = []
        lock = threading.Lock()

        def callback(data: Any) -> None:
            with lock:
                received.append(data)

        event_hub.subscribe(EventType.ORDER_ADMITTED, callback)

        def publisher(offset: int) -> None:
            for index in range(50):
                event_hub.publish(EventType.ORDER_ADMITTED, offset + index)

        threads = [threading.Thread(target=publisher, args=(n * 100,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(received) == 200
