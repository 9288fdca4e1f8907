"""
Lock client.

Grants mutually-exclusive locks on named resources through a shared Redis.
Every mutation is a single atomic round trip; contention between clients is
arbitrated by Redis alone (SET NX), so there is no in-process locking.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from redis.asyncio import Redis

from locky.bus import EventBus, Listener
from locky.config import Settings, get_settings
from locky.constants import (
    SPAN_GET_LOCKER,
    SPAN_LOCK,
    SPAN_REFRESH,
    SPAN_UNLOCK,
    LockEventType,
    WorkerState,
)
from locky.exceptions import ClientClosingError, ConfigurationError
from locky.expiration.main import ExpirationWorker
from locky.keys import ResourceKey, to_str
from locky.observability.metrics import get_metrics
from locky.observability.tracing import get_tracer
from locky.store.connection import close_redis, create_redis
from locky.store.registry import ActiveLockRegistry
from locky.types.events import LockEvent

logger = logging.getLogger(__name__)


def _missing(resource: str | int | None) -> bool:
    return resource is None or resource == ""


class Locky:
    """
    Client granting locks on resources.

    Features:
    - Conditional (first writer wins) or forced lock acquisition
    - Optional native expiry of every lock, refreshed on demand
    - Active-lock registry maintained in the same transaction as each lock
    - lock, unlock, expire and error notifications through an EventBus
    - Graceful close draining in-flight operations
    """

    def __init__(
        self,
        redis: Redis,
        ttl: int | None = None,
        prefix: str | None = None,
        bus: EventBus | None = None,
    ):
        """
        Initialize the client.

        Args:
            redis: A constructed async Redis client. Closed by ``close``.
            ttl: Lock ttl in milliseconds. None disables expiry.
            prefix: Key namespace prefix. Defaults to the configured one.
            bus: Event bus to publish on. A private one is created if omitted.
        """
        if ttl is not None and ttl <= 0:
            raise ConfigurationError(f"ttl must be a positive number of milliseconds, got {ttl}")

        settings = get_settings()

        self.ttl = ttl
        self.keys = ResourceKey(prefix if prefix is not None else settings.lock_prefix)
        self.events = bus or EventBus()

        self._redis = redis
        self._registry = ActiveLockRegistry(redis, self.keys.registry_key)
        self._metrics = get_metrics()
        self._worker: ExpirationWorker | None = None
        self._worker_task: asyncio.Task | None = None
        self._closing = False
        self._closed = False
        self._close_task: asyncio.Task | None = None
        self._inflight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "Locky":
        """
        Build a client and its Redis connection from settings.

        Args:
            settings: Settings to use. Defaults to the process settings.
        """
        settings = settings or get_settings()
        return cls(
            create_redis(settings.redis_url),
            ttl=settings.lock_ttl_ms,
            prefix=settings.lock_prefix,
        )

    async def __aenter__(self) -> "Locky":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def registry(self) -> ActiveLockRegistry:
        return self._registry

    @property
    def closing(self) -> bool:
        return self._closing

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def expiration_state(self) -> WorkerState:
        """State of the embedded expiration worker."""
        if not self.ttl:
            return WorkerState.IDLE
        if self._worker is None:
            return WorkerState.STOPPED
        return self._worker.state

    def on(self, event_type: LockEventType | str, listener: Listener) -> None:
        """Register a listener on this client's events."""
        self.events.on(event_type, listener)

    def off(self, event_type: LockEventType | str, listener: Listener) -> None:
        """Remove a listener from this client's events."""
        self.events.off(event_type, listener)

    @asynccontextmanager
    async def _admit(self, operation: str) -> AsyncGenerator[None]:
        """Track an operation so ``close`` can wait for it."""
        if self._closing:
            raise ClientClosingError(operation)

        self._inflight += 1
        self._idle.clear()
        try:
            yield
        finally:
            self._inflight -= 1
            if self._inflight == 0:
                self._idle.set()

    async def lock(
        self,
        resource: str | int | None,
        locker: str | None,
        force: bool = False,
    ) -> bool:
        """
        Try to lock a resource on behalf of a locker.

        A missing resource or locker is accepted as a no-op success.

        Args:
            resource: Resource identifier to lock.
            locker: Locker identifier stored as the lock value.
            force: Take the lock even if another locker holds it.

        Returns:
            True if the lock is now held by ``locker``.
        """
        async with self._admit("lock"):
            if _missing(resource) or not locker:
                logger.debug(
                    "Ignoring lock without resource or locker",
                    extra={"resource": resource, "locker": locker},
                )
                return True

            resource = str(resource)
            key = self.keys.format(resource)

            with get_tracer().start_as_current_span(SPAN_LOCK) as span:
                span.set_attribute("resource", resource)
                span.set_attribute("force", force)

                async with self._redis.pipeline(transaction=True) as pipe:
                    self._registry.stage_add(pipe, key)
                    pipe.set(key, locker, nx=not force, px=self.ttl)
                    _, acquired = await pipe.execute()

                acquired = bool(acquired)
                span.set_attribute("acquired", acquired)

            self._metrics.record_lock(acquired, force)

            if acquired:
                logger.info(
                    "Lock acquired",
                    extra={"resource": resource, "locker": locker, "force": force},
                )
                self.events.emit(LockEvent.lock(resource, locker))
            else:
                logger.debug(
                    "Resource already locked",
                    extra={"resource": resource, "locker": locker},
                )

            return acquired

    async def refresh(self, resource: str | int | None) -> bool:
        """
        Extend the ttl of a lock.

        Without a configured ttl this is a no-op returning True. A missing
        resource returns False. The registry is left untouched.

        Returns:
            True if the lock existed and was refreshed.
        """
        async with self._admit("refresh"):
            if _missing(resource):
                return False
            if not self.ttl:
                return True

            resource = str(resource)

            with get_tracer().start_as_current_span(SPAN_REFRESH) as span:
                span.set_attribute("resource", resource)
                refreshed = bool(await self._redis.pexpire(self.keys.format(resource), self.ttl))

            self._metrics.record_refresh(refreshed)

            if not refreshed:
                logger.debug(
                    "Refresh of a resource that is not locked",
                    extra={"resource": resource},
                )
            return refreshed

    async def unlock(self, resource: str | int | None) -> bool:
        """
        Unlock a resource. A missing resource returns False.

        Returns:
            True if a lock existed and was removed.
        """
        async with self._admit("unlock"):
            if _missing(resource):
                return False

            resource = str(resource)
            key = self.keys.format(resource)

            with get_tracer().start_as_current_span(SPAN_UNLOCK) as span:
                span.set_attribute("resource", resource)

                async with self._redis.pipeline(transaction=True) as pipe:
                    self._registry.stage_remove(pipe, key)
                    pipe.delete(key)
                    _, deleted = await pipe.execute()

                released = deleted > 0
                span.set_attribute("released", released)

            self._metrics.record_unlock(released)

            if released:
                logger.info("Lock released", extra={"resource": resource})
                self.events.emit(LockEvent.unlock(resource))

            return released

    async def get_locker(self, resource: str | int | None) -> str | None:
        """
        Return the locker currently holding a resource.

        Returns:
            The locker identifier, or None if the resource is not locked.
        """
        async with self._admit("get_locker"):
            if _missing(resource):
                return None

            with get_tracer().start_as_current_span(SPAN_GET_LOCKER):
                value = await self._redis.get(self.keys.format(str(resource)))
            return to_str(value)

    def start_expiration_worker(
        self,
        poll_ratio: float | None = None,
        token_ttl: int | None = None,
        worker_id: str | None = None,
    ) -> ExpirationWorker:
        """
        Start an expiration worker sharing this client's store and events.

        Must be called from a running event loop.

        Raises:
            ConfigurationError: If no ttl is configured.
            ClientClosingError: If the client is closing.
        """
        if self._closing:
            raise ClientClosingError("start the expiration worker")
        if self._worker is not None:
            return self._worker

        self._worker = ExpirationWorker(
            self._redis,
            ttl=self.ttl,
            bus=self.events,
            prefix=self.keys.prefix,
            poll_ratio=poll_ratio,
            token_ttl=token_ttl,
            worker_id=worker_id,
        )
        self._worker_task = asyncio.get_running_loop().create_task(self._worker.start())
        return self._worker

    async def close(self) -> None:
        """
        Close the client.

        Rejects new operations, stops the expiration worker after its current
        cycle, waits for admitted operations and pending notifications, then
        closes the Redis connection. Concurrent calls all wait for the same
        shutdown.
        """
        if self._close_task is None:
            self._closing = True
            self._close_task = asyncio.get_running_loop().create_task(self._shutdown())
        await self._close_task

    async def _shutdown(self) -> None:
        logger.info("Closing locky client", extra={"inflight": self._inflight})

        if self._worker is not None:
            await self._worker.stop()
            if self._worker_task is not None:
                await self._worker_task

        await self._idle.wait()
        await self.events.drain()
        await close_redis(self._redis)
        self._closed = True
