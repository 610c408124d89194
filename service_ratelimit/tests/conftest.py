"""
Shared fixtures for the rate limiter test suite.

Every test gets an in-process store driven by a manual clock, so refill
timing is deterministic, and a private metrics registry.
"""

import pytest
from prometheus_client import CollectorRegistry

from shared.config import ServiceConfig
from shared.metrics import RateLimitMetrics
from service_ratelimit.app.store import InMemoryStore


class ManualClock:
    """Wall clock stand-in that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store(clock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(registry) -> RateLimitMetrics:
    return RateLimitMetrics(registry)


@pytest.fixture
def config() -> ServiceConfig:
    """Config with no backoff so retry loops run without sleeping."""
    return ServiceConfig(backoff_base=0.0, backoff_max=0.0)


@pytest.fixture
def make_bucket(store, clock, metrics, config):
    """Factory for buckets wired to the test store, clock and metrics."""
    from service_ratelimit.app.ratelimit import TokenBucket

    def _make(name: str = "api", rate: float = 5, burst: int = 10, **kwargs):
        kwargs.setdefault("store", store)
        return TokenBucket(name=name, rate=rate, burst=burst, clock=clock,
                           metrics=metrics, config=config, **kwargs)

    return _make
