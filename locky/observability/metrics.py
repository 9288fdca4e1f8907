"""
Prometheus metrics collection.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
)

from locky.constants import (
    METRIC_ELECTIONS,
    METRIC_EXPIRATIONS,
    METRIC_LOCKS_ACQUIRED,
    METRIC_LOCKS_CONTENDED,
    METRIC_REFRESHES,
    METRIC_REGISTRY_SIZE,
    METRIC_SWEEP_CONTENTION,
    METRIC_SWEEP_DURATION,
    METRIC_SWEEP_ERRORS,
    METRIC_UNLOCKS,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for lock clients and expiration workers.

    Collects metrics for:
    - Lock acquisitions, contention, refreshes and releases
    - Expirations detected by sweeps
    - Leader elections, sweep errors and sweep duration
    - Registry size
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.locks_acquired = Counter(
            METRIC_LOCKS_ACQUIRED,
            "Total number of locks acquired",
            ["forced"],
            registry=self._registry,
        )

        self.locks_contended = Counter(
            METRIC_LOCKS_CONTENDED,
            "Total number of lock attempts on an already held resource",
            registry=self._registry,
        )

        self.unlocks = Counter(
            METRIC_UNLOCKS,
            "Total number of unlock calls",
            ["released"],
            registry=self._registry,
        )

        self.refreshes = Counter(
            METRIC_REFRESHES,
            "Total number of refresh calls",
            ["refreshed"],
            registry=self._registry,
        )

        self.expirations = Counter(
            METRIC_EXPIRATIONS,
            "Total number of expired locks detected",
            registry=self._registry,
        )

        self.elections = Counter(
            METRIC_ELECTIONS,
            "Total number of leader election attempts",
            ["outcome"],
            registry=self._registry,
        )

        self.sweep_errors = Counter(
            METRIC_SWEEP_ERRORS,
            "Total number of failed sweep cycles",
            registry=self._registry,
        )

        self.sweep_contention = Counter(
            METRIC_SWEEP_CONTENTION,
            "Total number of sweeps aborted by concurrent modification",
            registry=self._registry,
        )

        self.sweep_duration = Histogram(
            METRIC_SWEEP_DURATION,
            "Sweep duration in seconds",
            buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
            registry=self._registry,
        )

        self.registry_size = Gauge(
            METRIC_REGISTRY_SIZE,
            "Number of keys in the active-lock registry at the last sweep",
            registry=self._registry,
        )

    def record_lock(self, acquired: bool, forced: bool) -> None:
        """Record a lock attempt."""
        if acquired:
            self.locks_acquired.labels(forced=str(forced).lower()).inc()
        else:
            self.locks_contended.inc()

    def record_unlock(self, released: bool) -> None:
        """Record an unlock call."""
        self.unlocks.labels(released=str(released).lower()).inc()

    def record_refresh(self, refreshed: bool) -> None:
        """Record a refresh call."""
        self.refreshes.labels(refreshed=str(refreshed).lower()).inc()

    def record_election(self, elected: bool) -> None:
        """Record a leader election attempt."""
        outcome = "elected" if elected else "follower"
        self.elections.labels(outcome=outcome).inc()

    def record_sweep(
        self,
        registry_size: int,
        expired: int,
        duration_seconds: float,
    ) -> None:
        """Record a completed sweep."""
        self.registry_size.set(registry_size)
        self.expirations.inc(expired)
        self.sweep_duration.observe(duration_seconds)


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
