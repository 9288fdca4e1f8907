"""
Exception hierarchy.

Redis transport errors are not wrapped: they reach the caller as
``redis.exceptions.RedisError`` subclasses.
"""


class LockyError(Exception):
    """Base class for all Locky errors."""


class ConfigurationError(LockyError):
    """Invalid usage or configuration, e.g. starting the worker without a ttl."""


class ClientClosingError(LockyError):
    """Raised for operations submitted after the client started closing."""

    def __init__(self, operation: str):
        super().__init__(f"Cannot {operation}: client is closing")
        self.operation = operation


class LeaseLostError(LockyError):
    """The expiration worker no longer owns the leader token."""

    def __init__(self, worker_id: str, owner: str | None):
        super().__init__(
            f"Worker {worker_id} lost the leader token (owner: {owner})"
        )
        self.worker_id = worker_id
        self.owner = owner
