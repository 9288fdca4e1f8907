"""
In-process notification channel for lock events.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable

from locky.constants import LockEventType
from locky.types.events import LockEvent

logger = logging.getLogger(__name__)

Listener = Callable[[LockEvent], Awaitable[None] | None]


class EventBus:
    """
    Observer channel owned by a single Locky client.

    Listeners are plain callables or coroutine functions taking a LockEvent.
    Delivery is always asynchronous: ``emit`` schedules a task on the running
    loop and returns immediately, so a listener can never interfere with the
    Redis round trip that produced the event.
    """

    def __init__(self):
        """Initialize the event bus."""
        self._listeners: dict[LockEventType, list[Listener]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def on(self, event_type: LockEventType | str, listener: Listener) -> None:
        """
        Register a listener for an event type.

        Args:
            event_type: One of lock, unlock, expire, error.
            listener: Callable receiving the event.
        """
        self._listeners[LockEventType(event_type)].append(listener)

    def off(self, event_type: LockEventType | str, listener: Listener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        listeners = self._listeners[LockEventType(event_type)]
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event_type: LockEventType | str | None = None) -> int:
        """
        Get the number of registered listeners.

        Args:
            event_type: Optional event type filter.
        """
        if event_type is not None:
            return len(self._listeners.get(LockEventType(event_type), []))
        return sum(len(listeners) for listeners in self._listeners.values())

    def emit(self, event: LockEvent) -> None:
        """
        Schedule delivery of an event to its listeners.

        Must be called from a coroutine running on the event loop.
        """
        listeners = list(self._listeners.get(event.event_type, []))
        if not listeners:
            if event.event_type == LockEventType.ERROR:
                logger.error(
                    f"Unhandled locky error: {event.error}",
                    exc_info=event.exception,
                )
            return

        task = asyncio.get_running_loop().create_task(
            self._dispatch(event, listeners)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _dispatch(self, event: LockEvent, listeners: list[Listener]) -> None:
        """Deliver one event, isolating listener failures."""
        for listener in listeners:
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(
                    f"Listener failed for {event.event_type} event: {e}",
                    extra={"event_type": str(event.event_type), "resource": event.resource},
                    exc_info=True,
                )

    async def drain(self) -> None:
        """Wait until every scheduled delivery has completed."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending(self) -> int:
        """Number of deliveries not yet completed."""
        return len(self._pending)
