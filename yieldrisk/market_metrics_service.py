# PURPOSE: Orchestrates provider fetch -> risk calculation -> metrics cache for one pool.
# CONTEXT: The only place caching happens; RiskCalculator stays pure and MetricsCache
#          knows nothing about providers. Handlers call get_market_metrics().

from __future__ import annotations
import os
import random
import re
import string
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

from yieldrisk.analytics import risk_calculator as rc
from yieldrisk.cache.metrics_cache import DEFAULT_TTL_SEC, MetricsCache
from yieldrisk.errors import InvalidInputError, ProviderError
from yieldrisk.model_interface.types import CacheStats, MarketMetrics, MarketMetricsResult, PoolSeries
from yieldrisk.observability import xray_segment
from yieldrisk.providers.base import SeriesProvider

log = structlog.get_logger(__name__)

DEFAULT_RANGE_DAYS = int(os.getenv("METRICS_RANGE_DAYS", "30"))
DEFAULT_PROVIDER_TIMEOUT_SEC = float(os.getenv("PROVIDER_TIMEOUT_SEC", "10"))
DEFAULT_RISK_FREE_RATE = float(os.getenv("RISK_FREE_RATE", "0"))

# DefiLlama UUIDs, protocol slugs and "chain:address" style ids all fit this.
POOL_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:\-]{0,127}$")

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_request_id(prefix: str = "market") -> str:
    """
    Opaque per-request id for log correlation.
    Example: 'market_1792224000000_k3j9x0q2a'
    """
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def validate_pool_id(pool_id: Any) -> str:
    """Return the stripped pool id or raise InvalidInputError."""
    if not isinstance(pool_id, str) or not pool_id.strip():
        raise InvalidInputError("Pool ID is required")
    pool_id = pool_id.strip()
    if not POOL_ID_PATTERN.match(pool_id):
        raise InvalidInputError(f"Malformed pool ID: {pool_id!r}")
    return pool_id


class MarketMetricsService:
    """Computes and caches MarketMetrics per pool id."""

    def __init__(self, provider: SeriesProvider, cache: Optional[MetricsCache] = None,
                 ttl: float = DEFAULT_TTL_SEC, range_days: int = DEFAULT_RANGE_DAYS,
                 provider_timeout: Optional[float] = DEFAULT_PROVIDER_TIMEOUT_SEC,
                 risk_free_rate: float = DEFAULT_RISK_FREE_RATE):
        self.provider = provider
        self.cache = cache if cache is not None else MetricsCache(default_ttl=ttl)
        self.ttl = ttl
        self.range_days = range_days
        self.provider_timeout = provider_timeout
        self.risk_free_rate = risk_free_rate
        # Per-key locks so concurrent cold requests for one pool share a single fetch.
        self._inflight: Dict[str, threading.Lock] = {}
        self._inflight_guard = threading.Lock()

    def get_market_metrics(self, pool_id: str) -> MarketMetricsResult:
        """
        Return metrics for a pool, from cache when fresh.

        steps:
        1) Validate pool_id (InvalidInputError before any provider call).
        2) Cache hit -> return with cache_status "cached".
        3) Miss -> fetch series from the provider (errors propagate, no stale fallback).
        4) Run the risk calculator over the series.
        5) Write back to the cache -> cache_status "computed".
        6) Attach request id, processing time and timestamp.

        raises:
        - InvalidInputError – empty or malformed pool id.
        - ProviderError / ProviderTimeoutError – upstream failure.
        """
        t0 = time.perf_counter()
        request_id = generate_request_id()
        bound = log.bind(request_id=request_id)

        # 1) Validate. Rejected input is not a served request, so it is not recorded.
        pool_id = validate_pool_id(pool_id)
        bound = bound.bind(pool_id=pool_id)

        try:
            # 2) Fast path
            metrics = self.cache.get(pool_id)
            status = "cached"
            if metrics is None:
                # 3-5) Slow path, one computation per key at a time
                metrics, status = self._compute_once(pool_id, bound)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - t0) * 1000
            self.cache.record_request(elapsed_ms, failed=True)
            bound.error("metrics.failed", error=str(e), error_type=type(e).__name__,
                        processing_time_ms=round(elapsed_ms, 1))
            raise

        # 6) Envelope
        elapsed_ms = (time.perf_counter() - t0) * 1000
        self.cache.record_request(elapsed_ms)
        bound.info("metrics.cache_hit" if status == "cached" else "metrics.computed",
                   processing_time_ms=round(elapsed_ms, 1))
        return {
            "metrics": metrics,
            "request_id": request_id,
            "processing_time_ms": round(elapsed_ms, 3),
            "cache_status": status,
            "timestamp": int(time.time() * 1000),
        }

    def _compute_once(self, pool_id: str, bound):
        with self._inflight_guard:
            key_lock = self._inflight.setdefault(pool_id, threading.Lock())
        waited = not key_lock.acquire(blocking=False)
        if waited:
            key_lock.acquire()
        try:
            if waited:
                # The request we waited on has usually filled the cache by now; our
                # fast-path miss becomes a hit when it has.
                metrics = self.cache.get_shared(pool_id)
                if metrics is not None:
                    bound.debug("metrics.singleflight_shared")
                    return metrics, "cached"
            series = self._fetch(pool_id, bound)
            metrics = self.compute_metrics(pool_id, series)
            self.cache.set(pool_id, metrics, self.ttl)
            return metrics, "computed"
        finally:
            with self._inflight_guard:
                if self._inflight.get(pool_id) is key_lock:
                    del self._inflight[pool_id]
            key_lock.release()

    def _fetch(self, pool_id: str, bound) -> PoolSeries:
        try:
            with xray_segment("provider.fetch_series"):
                return self.provider.fetch_series(pool_id, self.range_days, timeout=self.provider_timeout)
        except ProviderError:
            raise
        except Exception as e:
            bound.warning("provider.failed", error=str(e), error_type=type(e).__name__)
            raise ProviderError(str(e)) from e

    def compute_metrics(self, pool_id: str, series: PoolSeries) -> MarketMetrics:
        """
        Derive MarketMetrics from raw series. Pure apart from the asOf timestamp.

        parameters:
        - pool_id: str – passed through into the payload.
        - series: PoolSeries – prices plus optional tvl/apy.

        returns:
        - MarketMetrics – volatility, ratios, drawdown, VaR, score, level, factors.
        """
        prices = list(series.get("prices") or [])
        tvl = list(series.get("tvl") or [])
        apy = list(series.get("apy") or [])
        returns = rc.calculate_returns(prices)

        factors = rc.derive_risk_factors(prices, tvl, apy)
        score = round(rc.calculate_risk_score(factors), 2)
        return {
            "poolId": pool_id,
            "volatility": rc.calculate_volatility(prices),
            "sharpeRatio": rc.calculate_sharpe_ratio(returns, self.risk_free_rate),
            "sortinoRatio": rc.calculate_sortino_ratio(returns, self.risk_free_rate),
            "maxDrawdown": rc.calculate_max_drawdown(prices),
            "valueAtRisk95": rc.calculate_value_at_risk(returns, 0.95),
            "riskScore": score,
            "riskLevel": rc.get_risk_level(score),
            "riskFactors": factors,
            "dataPoints": len(prices),
            "asOf": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        }

    # -------------------- Cache administration -------------------- #

    def get_cache_stats(self) -> CacheStats:
        return self.cache.get_cache_stats()

    def clear_cache(self) -> None:
        self.cache.clear_cache()
        log.info("cache.cleared")

    def reset_stats(self) -> None:
        self.cache.reset_stats()
        log.info("cache.stats_reset")

    def get_metrics(self) -> Dict[str, Any]:
        return self.cache.get_metrics()
