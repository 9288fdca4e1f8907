"""
Locky

Distributed resource locks over Redis, with optional expiration and
cluster-wide notification when a lock lapses without being released.
"""

__version__ = "1.0.0"

from locky.bus import EventBus
from locky.client import Locky
from locky.constants import LockEventType, WorkerState
from locky.exceptions import (
    ClientClosingError,
    ConfigurationError,
    LeaseLostError,
    LockyError,
)
from locky.expiration import ExpirationWorker
from locky.keys import ResourceKey, format_key, parse_key
from locky.types.events import LockEvent

__all__ = [
    "Locky",
    "ExpirationWorker",
    "EventBus",
    "LockEvent",
    "LockEventType",
    "WorkerState",
    "ResourceKey",
    "format_key",
    "parse_key",
    "LockyError",
    "ConfigurationError",
    "ClientClosingError",
    "LeaseLostError",
]
