"""
Event type definitions for lock notifications.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from locky.constants import LockEventType


def _now() -> datetime:
    return datetime.now(timezone.utc)


class LockEvent(BaseModel):
    """
    Event emitted when a lock changes state.
    Delivered to listeners registered on a client's EventBus.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    event_type: LockEventType
    resource: str | None = None
    locker: str | None = None
    error: str | None = None
    exception: BaseException | None = Field(default=None, exclude=True)
    timestamp: datetime = Field(default_factory=_now)

    @classmethod
    def lock(cls, resource: str, locker: str) -> "LockEvent":
        """Create a lock acquired event."""
        return cls(event_type=LockEventType.LOCK, resource=resource, locker=locker)

    @classmethod
    def unlock(cls, resource: str) -> "LockEvent":
        """Create a lock released event."""
        return cls(event_type=LockEventType.UNLOCK, resource=resource)

    @classmethod
    def expire(cls, resource: str) -> "LockEvent":
        """Create a lock expired event."""
        return cls(event_type=LockEventType.EXPIRE, resource=resource)

    @classmethod
    def failure(cls, exc: BaseException) -> "LockEvent":
        """Create an error event from an exception."""
        return cls(
            event_type=LockEventType.ERROR,
            error=f"{type(exc).__name__}: {exc}",
            exception=exc,
        )
