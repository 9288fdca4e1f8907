"""
Resource key codec.

Maps resource identifiers to namespaced Redis keys and back:
``<prefix>lock:<resource>``. Only the leading namespace is ever stripped, so
identifiers containing ``:`` survive a round trip.
"""

from locky.constants import (
    DEFAULT_PREFIX,
    LOCK_SEGMENT,
    REGISTRY_SEGMENT,
    WORKER_TOKEN_SEGMENT,
)


def format_key(prefix: str, resource: str | int) -> str:
    """
    Format the lock key of a resource.

    Args:
        prefix: Key namespace prefix.
        resource: Resource identifier. Integers are stringified.

    Returns:
        The namespaced lock key.
    """
    return f"{prefix}{LOCK_SEGMENT}{resource}"


def parse_key(prefix: str, key: str) -> str:
    """
    Parse a lock key back into its resource identifier.

    Keys outside the namespace are returned unchanged.
    """
    namespace = f"{prefix}{LOCK_SEGMENT}"
    if key.startswith(namespace):
        return key[len(namespace):]
    return key


def to_str(value: str | bytes | None) -> str | None:
    """Normalize a Redis reply, whether or not responses are decoded."""
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class ResourceKey:
    """Key codec bound to a prefix."""

    def __init__(self, prefix: str = DEFAULT_PREFIX):
        self.prefix = prefix

    def format(self, resource: str | int) -> str:
        return format_key(self.prefix, resource)

    def parse(self, key: str | bytes) -> str:
        return parse_key(self.prefix, to_str(key))

    @property
    def registry_key(self) -> str:
        """Key of the active-lock registry set."""
        return f"{self.prefix}{REGISTRY_SEGMENT}"

    @property
    def worker_token_key(self) -> str:
        """Key of the expiration worker leader token."""
        return f"{self.prefix}{WORKER_TOKEN_SEGMENT}"

    def __repr__(self) -> str:
        return f"ResourceKey(prefix={self.prefix!r})"
