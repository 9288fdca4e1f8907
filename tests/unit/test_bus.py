"""
Unit tests for the event bus.
"""

import logging
from unittest.mock import Mock

import pytest

from locky.bus import EventBus
from locky.constants import LockEventType
from locky.types.events import LockEvent


class TestEventBus:
    """Tests for EventBus."""

    @pytest.fixture
    def bus(self) -> EventBus:
        """Create an event bus."""
        return EventBus()

    async def test_emit_is_asynchronous(self, bus: EventBus):
        """Test listeners are not called inside emit."""
        listener = Mock()
        bus.on(LockEventType.LOCK, listener)

        bus.emit(LockEvent.lock("article", "john"))

        assert listener.call_count == 0
        assert bus.pending == 1

        await bus.drain()

        listener.assert_called_once()
        event = listener.call_args.args[0]
        assert event.event_type == LockEventType.LOCK
        assert event.resource == "article"
        assert event.locker == "john"
        assert bus.pending == 0

    async def test_listener_filtered_by_type(self, bus: EventBus):
        """Test listeners only receive their event type."""
        on_lock = Mock()
        on_unlock = Mock()
        bus.on("lock", on_lock)
        bus.on("unlock", on_unlock)

        bus.emit(LockEvent.unlock("article"))
        await bus.drain()

        on_lock.assert_not_called()
        on_unlock.assert_called_once()

    async def test_coroutine_listener(self, bus: EventBus):
        """Test coroutine functions are awaited."""
        received: list[str] = []

        async def listener(event: LockEvent) -> None:
            received.append(event.resource)

        bus.on(LockEventType.EXPIRE, listener)
        bus.emit(LockEvent.expire("article"))
        await bus.drain()

        assert received == ["article"]

    async def test_off(self, bus: EventBus):
        """Test removing a listener."""
        listener = Mock()
        bus.on(LockEventType.LOCK, listener)
        bus.off(LockEventType.LOCK, listener)
        bus.off(LockEventType.LOCK, listener)

        bus.emit(LockEvent.lock("article", "john"))
        await bus.drain()

        listener.assert_not_called()
        assert bus.listener_count(LockEventType.LOCK) == 0

    async def test_failing_listener_is_isolated(self, bus: EventBus):
        """Test a raising listener does not prevent delivery to others."""
        failing = Mock(side_effect=RuntimeError("boom"))
        healthy = Mock()
        bus.on(LockEventType.LOCK, failing)
        bus.on(LockEventType.LOCK, healthy)

        bus.emit(LockEvent.lock("article", "john"))
        await bus.drain()

        failing.assert_called_once()
        healthy.assert_called_once()

    async def test_unhandled_error_is_logged(
        self,
        bus: EventBus,
        caplog: pytest.LogCaptureFixture,
    ):
        """Test error events without listeners are logged."""
        with caplog.at_level(logging.ERROR, logger="locky.bus"):
            bus.emit(LockEvent.failure(ConnectionError("down")))

        assert bus.pending == 0
        assert "ConnectionError: down" in caplog.text

    def test_listener_count(self, bus: EventBus):
        """Test counting listeners."""
        bus.on(LockEventType.LOCK, Mock())
        bus.on(LockEventType.EXPIRE, Mock())
        bus.on(LockEventType.EXPIRE, Mock())

        assert bus.listener_count() == 3
        assert bus.listener_count(LockEventType.EXPIRE) == 2

    def test_unknown_event_type(self, bus: EventBus):
        """Test registering on an unknown event type fails."""
        with pytest.raises(ValueError):
            bus.on("explode", Mock())


class TestLockEvent:
    """Tests for LockEvent constructors."""

    def test_failure_keeps_exception(self):
        """Test error events carry the original exception."""
        exc = ConnectionError("down")
        event = LockEvent.failure(exc)

        assert event.event_type == LockEventType.ERROR
        assert event.exception is exc
        assert event.error == "ConnectionError: down"
        assert "exception" not in event.model_dump()

    def test_timestamp_is_set(self):
        """Test events are timestamped."""
        assert LockEvent.unlock("article").timestamp is not None
