"""
Redis connection management.
Creates and closes the async Redis clients used by lock clients and workers.
"""

import logging

from redis.asyncio import Redis

from locky.config import get_settings

logger = logging.getLogger(__name__)


def create_redis(url: str | None = None, **kwargs) -> Redis:
    """
    Create an async Redis client.

    Args:
        url: Redis URL. Defaults to the configured ``redis_url``.
        **kwargs: Extra client options, passed through to redis-py.

    Returns:
        Redis: A client returning decoded strings.
    """
    settings = get_settings()
    kwargs.setdefault("decode_responses", True)
    client = Redis.from_url(url or settings.redis_url, **kwargs)
    logger.info("Redis client created")
    return client


async def close_redis(client: Redis) -> None:
    """
    Close a Redis client and its connection pool.

    Args:
        client: The client to close.
    """
    await client.aclose()
    logger.info("Redis connection closed")
