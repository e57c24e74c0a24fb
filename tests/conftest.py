import threading

import pytest

from yieldrisk.cache.metrics_cache import MetricsCache
from yieldrisk.market_metrics_service import MarketMetricsService


class FakeClock:
    def __init__(self, t=1000.0):
        self.t = t

    def __call__(self):
        return self.t

    def advance(self, seconds):
        self.t += seconds


class FakeProvider:
    """Counts calls; returns a fixed series or raises `error` if set."""

    def __init__(self, prices=None, tvl=None, apy=None, error=None):
        self.prices = prices if prices is not None else [100.0, 120.0, 60.0, 90.0]
        self.tvl = tvl if tvl is not None else [2_500_000.0]
        self.apy = apy if apy is not None else [16.8]
        self.error = error
        self.calls = []
        self._lock = threading.Lock()

    def fetch_series(self, pool_id, range_days, timeout=None):
        with self._lock:
            self.calls.append((pool_id, range_days, timeout))
        if self.error is not None:
            raise self.error
        return {"pool_id": pool_id, "prices": list(self.prices), "tvl": list(self.tvl), "apy": list(self.apy)}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def service(provider, clock):
    cache = MetricsCache(default_ttl=60, max_entries=100, clock=clock)
    return MarketMetricsService(provider=provider, cache=cache, ttl=60, range_days=30, provider_timeout=5)
