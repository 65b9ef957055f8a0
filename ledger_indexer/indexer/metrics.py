"""
Process-wide counters for processor and connection-pool activity.

Counters are shared by every task and thread, so increments take a lock.
Tests can swap in `IndexerMetrics(enabled=False)` through `set_metrics`.
"""

import threading
from typing import Dict, Optional, Tuple


class Counter:
    """Monotonic counter, optionally partitioned by label values."""

    def __init__(self, name: str, description: str, label_names: Tuple[str, ...] = (), enabled: bool = True):
        self.name = name
        self.description = description
        self.label_names = label_names
        self.enabled = enabled
        self._values: Dict[Tuple[str, ...], int] = {}
        self._lock = threading.Lock()

    def labels(self, *values: str) -> "_BoundCounter":
        if len(values) != len(self.label_names):
            raise ValueError(f"{self.name} expects labels {self.label_names}, got {values}")
        return _BoundCounter(self, tuple(values))

    def inc(self, amount: int = 1):
        self._inc((), amount)

    def _inc(self, key: Tuple[str, ...], amount: int):
        if not self.enabled:
            return
        with self._lock:
            self._values[key] = self._values.get(key, 0) + amount

    def value(self, *values: str) -> int:
        with self._lock:
            return self._values.get(tuple(values), 0)


class _BoundCounter:
    def __init__(self, counter: Counter, key: Tuple[str, ...]):
        self._counter = counter
        self._key = key

    def inc(self, amount: int = 1):
        self._counter._inc(self._key, amount)


class IndexerMetrics:
    """The set of counters the indexer reports."""

    def __init__(self, enabled: bool = True):
        self.processor_invocations = Counter(
            "indexer_processor_invocation_count",
            "Number of times a given processor has been invoked",
            ("processor_name",),
            enabled,
        )
        self.processor_successes = Counter(
            "indexer_processor_success_count",
            "Number of times a given processor has completed successfully",
            ("processor_name",),
            enabled,
        )
        self.processor_errors = Counter(
            "indexer_processor_errors",
            "Number of times any given processor has raised an error",
            ("processor_name",),
            enabled,
        )
        self.got_connection = Counter(
            "indexer_got_connection_count",
            "Number of times a connection was acquired from the pool",
            enabled=enabled,
        )
        self.unable_to_get_connection = Counter(
            "indexer_unable_to_get_connection_count",
            "Number of times a connection could not be acquired from the pool",
            enabled=enabled,
        )


# Global metrics instance
_metrics: Optional[IndexerMetrics] = None


def get_metrics() -> IndexerMetrics:
    """Get the global metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = IndexerMetrics()
    return _metrics


def set_metrics(metrics: IndexerMetrics) -> IndexerMetrics:
    """Replace the global metrics instance, returning the previous one."""
    global _metrics
    previous = get_metrics()
    _metrics = metrics
    return previous
