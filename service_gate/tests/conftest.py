"""
Shared fixtures for gate unit tests.
"""

import pytest

from shared.jitter import JitteredDispatcher
from service_gate.app.caching.cache_manager import GateCacheManager


class DummyMetrics:
    """Minimal metrics collector stub."""

    def __init__(self):
        self.counters = []
        self.histograms = []

    def increment_counter(self, metric_name: str, **labels):
        self.counters.append((metric_name, labels))

    def observe_histogram(self, metric_name: str, value: float, **labels):
        self.histograms.append((metric_name, value, labels))

    def count(self, metric_name: str, **labels) -> int:
        return sum(
            1 for name, recorded in self.counters
            if name == metric_name and all(recorded.get(k) == v for k, v in labels.items())
        )


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def metrics():
    """Recording metrics stub."""
    return DummyMetrics()


@pytest.fixture
def clock():
    """Monotonic clock for cache expiry."""
    return FakeClock(1000.0)


@pytest.fixture
def dispatcher():
    """Dispatcher with jitter disabled."""
    return JitteredDispatcher(max_jitter_ms=0)


@pytest.fixture
def cache_manager(clock, metrics):
    """Cache manager on the fake clock."""
    return GateCacheManager(clock=clock, metrics=metrics)
