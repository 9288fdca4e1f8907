"""
Application constants.
Centralized location for all constant values used across the library.
"""

from enum import StrEnum


class LockEventType(StrEnum):
    """Notifications raised by a Locky client."""

    LOCK = "lock"
    UNLOCK = "unlock"
    EXPIRE = "expire"
    ERROR = "error"


class WorkerState(StrEnum):
    """
    Expiration worker states.

    State transitions:
    - STOPPED -> ELECTING (cycle starts)
    - ELECTING -> SWEEPING (leader token acquired)
    - ELECTING -> COOLDOWN (another worker holds the token)
    - SWEEPING -> COOLDOWN (always, token released)
    - COOLDOWN -> ELECTING (next poll tick)

    IDLE is reported when no ttl is configured: the worker never runs.
    """

    IDLE = "idle"
    STOPPED = "stopped"
    ELECTING = "electing"
    SWEEPING = "sweeping"
    COOLDOWN = "cooldown"


# Key namespace
DEFAULT_PREFIX = "locky:"
LOCK_SEGMENT = "lock:"
REGISTRY_SEGMENT = "current:locks"
WORKER_TOKEN_SEGMENT = "expirate:worker"

# Default values
DEFAULT_POLL_RATIO = 0.1

# PTTL reply for a key that does not exist
PTTL_MISSING = -2

# Metrics names
METRIC_LOCKS_ACQUIRED = "locky_locks_acquired_total"
METRIC_LOCKS_CONTENDED = "locky_locks_contended_total"
METRIC_UNLOCKS = "locky_unlocks_total"
METRIC_REFRESHES = "locky_refreshes_total"
METRIC_EXPIRATIONS = "locky_expirations_total"
METRIC_ELECTIONS = "locky_worker_elections_total"
METRIC_SWEEP_ERRORS = "locky_sweep_errors_total"
METRIC_SWEEP_CONTENTION = "locky_sweep_contention_total"
METRIC_SWEEP_DURATION = "locky_sweep_duration_seconds"
METRIC_REGISTRY_SIZE = "locky_registry_size"

# Trace span names
SPAN_LOCK = "locky.lock"
SPAN_REFRESH = "locky.refresh"
SPAN_UNLOCK = "locky.unlock"
SPAN_GET_LOCKER = "locky.get_locker"
SPAN_SWEEP = "locky.sweep"
