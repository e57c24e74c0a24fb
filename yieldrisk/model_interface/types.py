from typing import TypedDict, Literal, List, Optional

RiskLevel = Literal["low", "medium", "high"]
CacheStatus = Literal["cached", "computed"]

# "yield" is a keyword, so the functional form is required here.
RiskFactors = TypedDict("RiskFactors", {
    "liquidity": float,
    "stability": float,
    "yield": float,
    "concentration": float,
    "momentum": float,
})

class PoolSeries(TypedDict):
    pool_id: str
    prices: List[float]
    tvl: List[float]
    apy: List[float]

class MarketMetrics(TypedDict):
    poolId: str
    volatility: float
    sharpeRatio: float
    sortinoRatio: float
    maxDrawdown: float
    valueAtRisk95: float
    riskScore: float
    riskLevel: RiskLevel
    riskFactors: RiskFactors
    dataPoints: int
    asOf: str

class MarketMetricsResult(TypedDict):
    metrics: MarketMetrics
    request_id: str
    processing_time_ms: float
    cache_status: CacheStatus
    timestamp: int

class CacheStats(TypedDict):
    hits: int
    misses: int
    entries: int
    hitRate: float
    evictions: int
    maxEntries: Optional[int]
    totalSize: int
    oldestEntry: Optional[int]
    newestEntry: Optional[int]
