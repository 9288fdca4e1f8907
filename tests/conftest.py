"""
Pytest configuration and shared fixtures.

Tests run against fakeredis by default. Set TEST_REDIS_URL to run the same
suite against a real Redis (the database is flushed before each test).
"""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from unittest.mock import Mock

import fakeredis
import pytest
import pytest_asyncio
from redis.asyncio import Redis

from locky import Locky, LockEventType
from locky.config import Settings

TEST_REDIS_URL = os.getenv("TEST_REDIS_URL")


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    """Create an isolated in-memory Redis server."""
    return fakeredis.FakeServer()


@pytest_asyncio.fixture
async def make_redis(
    redis_server: fakeredis.FakeServer,
) -> AsyncGenerator[Callable[[], Redis]]:
    """Factory for Redis clients sharing the same store."""
    clients: list[Redis] = []

    def factory() -> Redis:
        if TEST_REDIS_URL:
            client = Redis.from_url(TEST_REDIS_URL, decode_responses=True)
        else:
            client = fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)
        clients.append(client)
        return client

    yield factory

    for client in clients:
        await client.aclose()


@pytest_asyncio.fixture
async def redis(make_redis: Callable[[], Redis]) -> Redis:
    """Redis client used by tests to inspect and seed the store."""
    client = make_redis()
    await client.flushdb()
    return client


@pytest_asyncio.fixture
async def make_locky(
    redis: Redis,
    make_redis: Callable[[], Redis],
) -> AsyncGenerator[Callable[..., Locky]]:
    """Factory for Locky clients, closed at teardown."""
    clients: list[Locky] = []

    def factory(**kwargs) -> Locky:
        client = Locky(make_redis(), **kwargs)
        clients.append(client)
        return client

    yield factory

    for client in clients:
        await client.close()


@pytest.fixture
def locky(make_locky: Callable[..., Locky]) -> Locky:
    """A Locky client without ttl."""
    return make_locky()


@pytest.fixture
def listen() -> Callable[[Locky, LockEventType], Mock]:
    """Attach a mock listener to a client event."""

    def attach(client: Locky, event_type: LockEventType) -> Mock:
        listener = Mock()
        client.on(event_type, listener)
        return listener

    return attach


@pytest.fixture
def wait_events() -> Callable[[Locky], Awaitable[None]]:
    """Wait for every pending notification of a client."""

    async def wait(client: Locky) -> None:
        await client.events.drain()

    return wait


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        redis_url=TEST_REDIS_URL or "redis://localhost:6379/15",
        lock_ttl_ms=100,
        lock_prefix="locky:",
        log_level="DEBUG",
        log_format="console",
    )
