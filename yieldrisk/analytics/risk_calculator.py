# PURPOSE: Pure risk/performance functions over numeric series (volatility, Sharpe,
#          Sortino, VaR, max drawdown) and the composite risk score/level.
# CONTEXT: Called by MarketMetricsService. Nothing here caches or keeps state, so
#          every function is safe to call concurrently and repeatedly.

from __future__ import annotations
import math
from typing import List, Mapping, Sequence

import numpy as np

from yieldrisk.constants.risk_policy import (
    APY_CEILING,
    LIQUIDITY_LOG10_CEILING,
    LOW_RISK_CUTOFF,
    MEDIUM_RISK_CUTOFF,
    RISK_REDUCING_FACTORS,
    RISK_WEIGHTS,
    VOLATILITY_CEILING,
    ZERO_STD_EPSILON,
)
from yieldrisk.errors import InvalidInputError
from yieldrisk.model_interface.types import RiskFactors, RiskLevel


def _clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    """Clamp x to [lo, hi]; non-finite input collapses to lo."""
    if not math.isfinite(x):
        return lo
    return min(hi, max(lo, x))


def _std(arr: np.ndarray) -> float:
    # Huge-but-finite returns overflow when squared; the caller treats inf as degenerate.
    with np.errstate(over="ignore", invalid="ignore"):
        return float(np.std(arr))


def _finite_or_zero(x: float) -> float:
    return x if math.isfinite(x) else 0.0


def calculate_risk_score(factors: Mapping[str, float]) -> float:
    """
    Weighted composite risk score in [0, 100].

    parameters:
    - factors: RiskFactors – liquidity, stability, yield, concentration, momentum,
      each expected in [0, 1]. Out-of-range values are clamped, not rejected.

    returns:
    - float – 0 is the safest possible pool, 100 the riskiest.

    raises:
    - InvalidInputError – if any of the five factors is missing.

    notes:
    - Higher liquidity, stability or momentum lowers the score; higher yield or
      concentration raises it. Weights live in constants/risk_policy.py.
    """
    missing = [name for name in RISK_WEIGHTS if name not in factors]
    if missing:
        raise InvalidInputError(f"Missing risk factors: {', '.join(missing)}")

    score = 0.0
    for name, weight in RISK_WEIGHTS.items():
        value = _clamp(float(factors[name]))
        contribution = 1.0 - value if name in RISK_REDUCING_FACTORS else value
        score += weight * contribution
    return _clamp(score * 100.0, 0.0, 100.0)


def get_risk_level(score: float) -> RiskLevel:
    """Bucket a risk score; a score equal to a cut point belongs to the higher band."""
    if score < LOW_RISK_CUTOFF:
        return "low"
    if score < MEDIUM_RISK_CUTOFF:
        return "medium"
    return "high"


def calculate_returns(prices: Sequence[float]) -> List[float]:
    """
    Period-over-period simple returns, (p[i] - p[i-1]) / p[i-1].

    Periods whose previous price is zero or non-finite, or whose return overflows,
    have no defined return and are skipped rather than raising.
    """
    out: List[float] = []
    for prev, cur in zip(prices, prices[1:]):
        prev, cur = float(prev), float(cur)
        if prev == 0 or not math.isfinite(prev) or not math.isfinite(cur):
            continue
        r = (cur - prev) / prev
        if math.isfinite(r):
            out.append(r)
    return out


def calculate_volatility(prices: Sequence[float]) -> float:
    """
    Population standard deviation of period returns.

    returns:
    - float – 0.0 when fewer than 2 prices are supplied (no return exists).
    """
    if len(prices) < 2:
        return 0.0
    returns = calculate_returns(prices)
    if not returns:
        return 0.0
    std = _std(np.asarray(returns, dtype=float))
    return std if math.isfinite(std) else 0.0


def calculate_sharpe_ratio(returns: Sequence[float], risk_free_rate: float = 0.0) -> float:
    """
    Excess return per unit of return volatility: (mean - rf) / stdev.

    parameters:
    - returns: Series – per-period returns.
    - risk_free_rate: float – per-period risk-free rate (default 0).

    returns:
    - float – 0.0 (never NaN) for an empty series or a zero or overflowing standard deviation.
    """
    if len(returns) == 0:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    std = _std(arr)
    if not math.isfinite(std) or std <= ZERO_STD_EPSILON:
        return 0.0
    return _finite_or_zero((float(np.mean(arr)) - risk_free_rate) / std)


def calculate_sortino_ratio(returns: Sequence[float], risk_free_rate: float = 0.0,
                            target: float = 0.0) -> float:
    """Like Sharpe, but divides by downside deviation below `target`; 0.0 when there is no downside."""
    if len(returns) == 0:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    downside = np.minimum(arr - target, 0.0)
    with np.errstate(over="ignore", invalid="ignore"):
        downside_dev = float(np.sqrt(np.mean(downside ** 2)))
    if not math.isfinite(downside_dev) or downside_dev <= ZERO_STD_EPSILON:
        return 0.0
    return _finite_or_zero((float(np.mean(arr)) - risk_free_rate) / downside_dev)


def calculate_value_at_risk(returns: Sequence[float], confidence: float = 0.95) -> float:
    """
    Historical value-at-risk as a non-negative loss fraction.

    Takes the floor((1 - confidence) * n)-th smallest return; a sample with no
    losses in the tail yields 0.0.
    """
    if not 0.0 < confidence < 1.0:
        raise InvalidInputError(f"confidence must be in (0, 1), got {confidence}")
    if len(returns) == 0:
        return 0.0
    ordered = sorted(float(r) for r in returns)
    idx = min(int(math.floor((1.0 - confidence) * len(ordered))), len(ordered) - 1)
    return max(0.0, -ordered[idx])


def calculate_max_drawdown(prices: Sequence[float]) -> float:
    """
    Largest peak-to-trough decline, scanning left to right.

    returns:
    - float – non-negative fraction, e.g. 0.5 for a fall from 120 to 60.
      0.0 for series of length <= 1.
    """
    if len(prices) <= 1:
        return 0.0
    peak = float(prices[0])
    max_dd = 0.0
    for price in prices[1:]:
        price = float(price)
        if price > peak:
            peak = price
            continue
        if peak <= 0:
            # Drawdown is undefined against a non-positive peak.
            continue
        max_dd = max(max_dd, (peak - price) / peak)
    return max_dd


def derive_risk_factors(prices: Sequence[float], tvl: Sequence[float],
                        apy: Sequence[float]) -> RiskFactors:
    """
    Normalise raw pool series into the five [0, 1] risk factors.

    parameters:
    - prices: Series – price-like series used for returns and momentum.
    - tvl: Series – TVL in USD; only the latest point is used.
    - apy: Series – APY in percent; only the latest point is used.

    returns:
    - RiskFactors – every field populated, each within [0, 1].
    """
    last_tvl = float(tvl[-1]) if len(tvl) else 0.0
    liquidity = _clamp(math.log10(last_tvl) / LIQUIDITY_LOG10_CEILING) if last_tvl > 1 else 0.0

    stability = _clamp(1.0 - calculate_volatility(prices) / VOLATILITY_CEILING)

    last_apy = float(apy[-1]) if len(apy) else 0.0
    yield_factor = _clamp(last_apy / APY_CEILING)

    returns = calculate_returns(prices)
    total_move = sum(abs(r) for r in returns)
    concentration = _clamp(max(abs(r) for r in returns) / total_move) if total_move > 0 else 0.0

    momentum = 0.5
    if len(prices) >= 2 and float(prices[0]) > 0:
        total_return = float(prices[-1]) / float(prices[0]) - 1.0
        momentum = _clamp(0.5 + total_return / 2.0)

    return {
        "liquidity": liquidity,
        "stability": stability,
        "yield": yield_factor,
        "concentration": concentration,
        "momentum": momentum,
    }


class RiskCalculator:
    """Namespace over the module functions for callers that prefer RiskCalculator.x(...)."""

    calculate_risk_score = staticmethod(calculate_risk_score)
    get_risk_level = staticmethod(get_risk_level)
    calculate_returns = staticmethod(calculate_returns)
    calculate_volatility = staticmethod(calculate_volatility)
    calculate_sharpe_ratio = staticmethod(calculate_sharpe_ratio)
    calculate_sortino_ratio = staticmethod(calculate_sortino_ratio)
    calculate_value_at_risk = staticmethod(calculate_value_at_risk)
    calculate_max_drawdown = staticmethod(calculate_max_drawdown)
    derive_risk_factors = staticmethod(derive_risk_factors)
