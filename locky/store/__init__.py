"""
Store module.
Contains the Redis connection helpers and the active-lock registry.
"""

from locky.store.connection import close_redis, create_redis
from locky.store.registry import ActiveLockRegistry

__all__ = [
    "create_redis",
    "close_redis",
    "ActiveLockRegistry",
]
