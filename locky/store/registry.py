"""
Active-lock registry.

A Redis set holding the key of every lock believed to be held, so that
expiration sweeps never scan the keyspace. Mutations are staged onto a
caller-owned pipeline so they commit in the same transaction as the lock key.
"""

import logging

from redis.asyncio import Redis
from redis.asyncio.client import Pipeline

from locky.keys import to_str

logger = logging.getLogger(__name__)


class ActiveLockRegistry:
    """
    Repository for the active-lock set.

    The set may transiently contain keys whose lock already expired; the
    expiration worker removes them.
    """

    def __init__(self, redis: Redis, key: str):
        """
        Initialize the registry.

        Args:
            redis: The async Redis client.
            key: Key of the registry set.
        """
        self._redis = redis
        self.key = key

    def stage_add(self, pipe: Pipeline, lock_key: str) -> None:
        """Queue the insertion of a lock key on a pipeline."""
        pipe.sadd(self.key, lock_key)

    def stage_remove(self, pipe: Pipeline, lock_key: str) -> None:
        """Queue the removal of a lock key on a pipeline."""
        pipe.srem(self.key, lock_key)

    async def members(self) -> list[str]:
        """
        Get every registered lock key.

        Returns:
            Registered keys, sorted for deterministic sweeps.
        """
        members = await self._redis.smembers(self.key)
        return sorted(to_str(member) for member in members)

    async def contains(self, lock_key: str) -> bool:
        """Check whether a lock key is registered."""
        return bool(await self._redis.sismember(self.key, lock_key))

    async def size(self) -> int:
        """Number of registered lock keys."""
        return await self._redis.scard(self.key)
