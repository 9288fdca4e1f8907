"""
Type definitions for Locky.
"""

from locky.types.events import LockEvent

__all__ = [
    "LockEvent",
]
