"""
Expiration worker for detecting locks that lapsed without an unlock.

Any number of workers may share a Redis instance. Each poll cycle they race
for a self-expiring leader token; the winner sweeps the active-lock registry,
removes keys whose lock no longer exists and raises one ``expire`` event per
key. The token is released at the end of the cycle so the next one re-elects.
"""

import asyncio
import logging
import os
import signal
import time
import uuid

from prometheus_client import start_http_server
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from locky.bus import EventBus
from locky.config import Settings, get_settings
from locky.constants import PTTL_MISSING, SPAN_SWEEP, LockEventType, WorkerState
from locky.exceptions import ConfigurationError, LeaseLostError
from locky.keys import ResourceKey, to_str
from locky.observability.logging import setup_logging
from locky.observability.metrics import get_metrics
from locky.observability.tracing import get_tracer, setup_tracing
from locky.store.connection import close_redis, create_redis
from locky.store.registry import ActiveLockRegistry
from locky.types.events import LockEvent

logger = logging.getLogger(__name__)


class ExpirationWorker:
    """
    Leader-elected sweeper of the active-lock registry.

    Each cycle:
    1. ELECTING: try to create the leader token (SET NX PX)
    2. SWEEPING: PTTL every registered key, then atomically drop vanished
       keys from the registry while watching them and the token
    3. COOLDOWN: release the token and wait for the next tick
    """

    def __init__(
        self,
        redis: Redis,
        ttl: int | None,
        bus: EventBus,
        prefix: str | None = None,
        poll_ratio: float | None = None,
        token_ttl: int | None = None,
        worker_id: str | None = None,
    ):
        """
        Initialize the worker.

        Args:
            redis: The async Redis client shared with lock clients.
            ttl: Lock ttl in milliseconds. Required.
            bus: Event bus receiving expire and error events.
            prefix: Key namespace prefix.
            poll_ratio: Poll interval as a fraction of ttl.
            token_ttl: Leader token ttl in milliseconds. Defaults to ttl.
            worker_id: Unique worker identifier. Defaults to hostname + PID.

        Raises:
            ConfigurationError: If no ttl is configured.
        """
        if not ttl:
            raise ConfigurationError(
                "Expiration worker requires a lock ttl; locks never expire without one"
            )

        settings = get_settings()

        self.ttl = ttl
        self.keys = ResourceKey(prefix if prefix is not None else settings.lock_prefix)
        self.poll_ratio = poll_ratio or settings.expiration_poll_ratio
        self.poll_interval = ttl * self.poll_ratio / 1000
        self.token_ttl = token_ttl or settings.expiration_token_ttl_ms or ttl
        self.worker_id = (
            worker_id
            or settings.worker_id
            or f"{os.uname().nodename}-{os.getpid()}-{uuid.uuid4().hex[:8]}"
        )

        self._redis = redis
        self._bus = bus
        self._registry = ActiveLockRegistry(redis, self.keys.registry_key)
        self._metrics = get_metrics()
        self._state = WorkerState.STOPPED
        self._running = False
        self._wakeup = asyncio.Event()

    @property
    def state(self) -> WorkerState:
        """Current state of the worker."""
        return self._state

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run the poll loop until ``stop`` is called."""
        logger.info(
            f"Expiration worker starting with interval {self.poll_interval:.3f}s",
            extra={"worker_id": self.worker_id, "ttl_ms": self.ttl},
        )
        self._running = True
        self._wakeup.clear()

        while self._running:
            try:
                expired = await self.run_once()

                if expired:
                    logger.info(
                        f"Detected {len(expired)} expired locks",
                        extra={"worker_id": self.worker_id},
                    )

            except Exception as e:
                logger.exception(
                    f"Error in expiration worker loop: {e}",
                    extra={"worker_id": self.worker_id},
                )

            if not self._running:
                break

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
            except TimeoutError:
                pass

        self._state = WorkerState.STOPPED
        logger.info("Expiration worker stopped", extra={"worker_id": self.worker_id})

    async def stop(self) -> None:
        """Stop the worker. The cycle in progress, if any, completes first."""
        logger.info("Expiration worker stopping", extra={"worker_id": self.worker_id})
        self._running = False
        self._wakeup.set()

    async def run_once(self) -> list[str]:
        """
        Run a single election and sweep cycle.

        Redis errors are reported as ``error`` events and never escape.

        Returns:
            Resources whose expiration was detected in this cycle.
        """
        leader = False
        expired: list[str] = []
        self._state = WorkerState.ELECTING

        try:
            leader = await self._elect()
            if leader:
                self._state = WorkerState.SWEEPING
                expired = await self._sweep()

        except LeaseLostError as e:
            logger.warning(
                f"Sweep aborted: {e}",
                extra={"worker_id": self.worker_id, "owner": e.owner},
            )
        except RedisError as e:
            self._report_error(e)

        finally:
            self._state = WorkerState.COOLDOWN
            if leader:
                await self._release()

        for resource in expired:
            self._bus.emit(LockEvent.expire(resource))

        return expired

    async def _elect(self) -> bool:
        """Try to become the cycle leader."""
        elected = await self._redis.set(
            self.keys.worker_token_key,
            self.worker_id,
            nx=True,
            px=self.token_ttl,
        )
        elected = bool(elected)
        self._metrics.record_election(elected)

        if not elected:
            logger.debug(
                "Leader token held by another worker",
                extra={"worker_id": self.worker_id},
            )
        return elected

    async def _release(self) -> None:
        """Delete the leader token if this worker still owns it."""
        token_key = self.keys.worker_token_key
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                await pipe.watch(token_key)
                owner = to_str(await pipe.get(token_key))
                if owner != self.worker_id:
                    await pipe.unwatch()
                    return
                pipe.multi()
                pipe.delete(token_key)
                await pipe.execute()
        except WatchError:
            logger.debug(
                "Leader token changed during release",
                extra={"worker_id": self.worker_id},
            )
        except RedisError as e:
            self._report_error(e)

    async def _find_vanished(self) -> tuple[int, list[str]]:
        """
        Scan the registry for keys whose lock no longer exists.

        Returns:
            Tuple of (registry size, vanished keys).
        """
        keys = await self._registry.members()
        if not keys:
            return 0, []

        async with self._redis.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.pttl(key)
            ttls = await pipe.execute()

        vanished = [key for key, ttl in zip(keys, ttls) if ttl == PTTL_MISSING]
        return len(keys), vanished

    async def _sweep(self) -> list[str]:
        """
        Remove vanished keys from the registry.

        Returns:
            Resources removed by this sweep.
        """
        start_time = time.time()

        with get_tracer().start_as_current_span(SPAN_SWEEP) as span:
            span.set_attribute("worker_id", self.worker_id)

            size, vanished = await self._find_vanished()
            span.set_attribute("registry_size", size)

            removed: list[str] = []
            if vanished:
                try:
                    removed = await self._remove(vanished)
                except WatchError:
                    logger.info(
                        "Sweep contended, retrying next cycle",
                        extra={"worker_id": self.worker_id, "keys": len(vanished)},
                    )
                    self._metrics.sweep_contention.inc()

            span.set_attribute("expired", len(removed))

        self._metrics.record_sweep(
            registry_size=size - len(removed),
            expired=len(removed),
            duration_seconds=time.time() - start_time,
        )
        return [self.keys.parse(key) for key in removed]

    async def _remove(self, vanished: list[str]) -> list[str]:
        """
        Atomically drop vanished keys from the registry.

        Watches the leader token and every candidate key. Keys re-locked since
        the scan are left registered.

        Raises:
            LeaseLostError: If the leader token is no longer ours.
            WatchError: If a watched key changed before commit.
        """
        token_key = self.keys.worker_token_key

        async with self._redis.pipeline(transaction=True) as pipe:
            await pipe.watch(token_key, *vanished)

            owner = to_str(await pipe.get(token_key))
            if owner != self.worker_id:
                raise LeaseLostError(self.worker_id, owner)

            still_gone = [key for key in vanished if not await pipe.exists(key)]
            if not still_gone:
                return []

            pipe.multi()
            for key in still_gone:
                self._registry.stage_remove(pipe, key)
            results = await pipe.execute()

        return [key for key, removed in zip(still_gone, results) if removed]

    def _report_error(self, exc: Exception) -> None:
        """Surface a store failure through the event bus."""
        logger.error(
            f"Expiration cycle failed: {exc}",
            extra={"worker_id": self.worker_id},
        )
        self._metrics.sweep_errors.inc()
        self._bus.emit(LockEvent.failure(exc))


def _log_event(event: LockEvent) -> None:
    """Log listener used by the standalone worker process."""
    logger.info(
        f"Lock {event.event_type}",
        extra={"resource": event.resource, "error": event.error},
    )


async def run_async(settings: Settings | None = None) -> None:
    """Run a standalone expiration worker asynchronously."""
    settings = settings or get_settings()
    setup_logging(settings)

    if not settings.lock_ttl_ms:
        raise ConfigurationError("LOCK_TTL_MS must be set to run the expiration worker")

    setup_tracing(settings)
    start_http_server(settings.prometheus_port)

    redis = create_redis(settings.redis_url)
    bus = EventBus()
    bus.on(LockEventType.EXPIRE, _log_event)
    bus.on(LockEventType.ERROR, _log_event)

    worker = ExpirationWorker(
        redis,
        ttl=settings.lock_ttl_ms,
        bus=bus,
        prefix=settings.lock_prefix,
        poll_ratio=settings.expiration_poll_ratio,
        token_ttl=settings.expiration_token_ttl_ms,
        worker_id=settings.worker_id,
    )

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(worker.stop())
        )

    try:
        await worker.start()
    finally:
        await bus.drain()
        await close_redis(redis)


def run() -> None:
    """Run the expiration worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
