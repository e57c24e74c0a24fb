# PURPOSE: SeriesProvider backed by the DefiLlama yields chart endpoint.
# CONTEXT: Default provider for MarketMetricsService. The chart has no token price,
#          so the TVL curve doubles as the price-like series for returns/drawdown.

from __future__ import annotations
import math
import os
from typing import Any, Dict, List, Optional

import requests
import structlog

from yieldrisk.errors import ProviderError, ProviderTimeoutError
from yieldrisk.model_interface.types import PoolSeries
from yieldrisk.providers.base import SeriesProvider

log = structlog.get_logger(__name__)

DEFAULT_BASE_URL = os.getenv("DEFILLAMA_YIELDS_URL", "https://yields.llama.fi")


def _to_float(value: Any) -> Optional[float]:
    """None for null, non-numeric or non-finite values; a gap is not a zero."""
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if math.isfinite(out) else None


def _first_present(point: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if point.get(key) is not None:
            return point[key]
    return None


def _extract_points(raw: Any) -> List[Dict[str, Any]]:
    """
    Accept the response shapes the chart endpoint has been seen to return:
    a bare list, {"data": [...]}, {"status": "success", "data": [...]} or {"points": [...]}.
    """
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict):
        for key in ("data", "points"):
            if isinstance(raw.get(key), list):
                return raw[key]
    raise ProviderError("Invalid response format from DefiLlama chart API")


class DefiLlamaProvider(SeriesProvider):
    """Fetches daily TVL/APY points for a pool from yields.llama.fi."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()

    def fetch_series(self, pool_id: str, range_days: int, timeout: Optional[float] = None) -> PoolSeries:
        """
        Download the chart for `pool_id` and keep the last `range_days` points.

        parameters:
        - pool_id: str – DefiLlama pool UUID.
        - range_days: int – number of most recent daily points to keep.
        - timeout: float (optional) – request timeout in seconds.

        returns:
        - PoolSeries – prices (TVL curve), tvl and apy, oldest first.

        raises:
        - ProviderTimeoutError – when the request exceeds `timeout`.
        - ProviderError – on HTTP errors, bad JSON, an empty chart or a chart
          with no numeric TVL values.
        """
        url = f"{self.base_url}/chart/{pool_id}"
        try:
            r = self.session.get(url, timeout=timeout)
            r.raise_for_status()
            raw = r.json()
        except requests.exceptions.Timeout as e:
            log.warning("provider.timeout", pool_id=pool_id, timeout=timeout)
            raise ProviderTimeoutError(f"DefiLlama request timed out after {timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"DefiLlama request failed: {e}") from e
        except ValueError as e:
            raise ProviderError(f"DefiLlama returned invalid JSON: {e}") from e

        points = _extract_points(raw)
        if range_days > 0:
            points = points[-range_days:]
        if not points:
            raise ProviderError(f"No chart data for pool {pool_id}")

        # Points with a null or non-numeric value are dropped, never zero-filled.
        tvl = [v for v in (_to_float(_first_present(p, "tvlUsd", "tvl_usd")) for p in points) if v is not None]
        apy = [v for v in (_to_float(_first_present(p, "apy", "apyBase")) for p in points) if v is not None]
        if not tvl:
            raise ProviderError(f"No usable TVL points for pool {pool_id}")
        dropped = len(points) - len(tvl)
        if dropped:
            log.warning("provider.points_dropped", pool_id=pool_id, dropped=dropped)
        log.debug("provider.fetched", pool_id=pool_id, points=len(tvl))
        return {"pool_id": pool_id, "prices": list(tvl), "tvl": tvl, "apy": apy}
