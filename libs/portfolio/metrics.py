"""
Portfolio statistics shared by the selector, the assembler and the sampler.

Annualization is linear for returns (x periods_per_year) and square-root for
volatility, mirroring the linear de-annualization applied to inputs.
"""

import math
from typing import Any

import numpy as np
from numpy.typing import NDArray

NORMALIZATION_EPSILON = 1e-9
DEGENERATE_DENOMINATOR = 1e-12


def normalize_weights(weights: NDArray[np.floating[Any]]) -> NDArray[np.floating[Any]]:
    """Divide by the weight sum unless it is (numerically) zero."""
    vector = np.asarray(weights, dtype=np.float64).copy()
    total = vector.sum()
    if abs(total) > NORMALIZATION_EPSILON:
        vector = vector / total
    return vector


def portfolio_variance(weights: NDArray[np.floating[Any]], sigma: NDArray[np.floating[Any]]) -> float:
    return float(weights @ sigma @ weights)


def annualize_return(period_return: float, periods_per_year: float) -> float:
    return period_return * periods_per_year


def annualize_volatility(period_variance: float, periods_per_year: float) -> float:
    return math.sqrt(max(period_variance, 0.0) * periods_per_year)


def sharpe_ratio(expected_annual: float, risk_free_annual: float, volatility_annual: float) -> float:
    """(E[r] - rf) / vol; +/-inf by the sign of the excess return when vol ~ 0."""
    excess = expected_annual - risk_free_annual
    if volatility_annual < DEGENERATE_DENOMINATOR:
        return math.inf if excess > 0 else -math.inf
    return excess / volatility_annual


def downside_deviation(
    weights: NDArray[np.floating[Any]],
    scenarios: NDArray[np.floating[Any]],
    threshold: float,
) -> float:
    """Root mean square of per-scenario shortfalls below ``threshold``."""
    if scenarios.size == 0:
        return 0.0
    portfolio_returns = scenarios @ weights
    shortfall = np.minimum(0.0, portfolio_returns - threshold)
    return float(np.sqrt(np.mean(shortfall**2)))


def sortino_ratio(
    weights: NDArray[np.floating[Any]],
    scenarios: NDArray[np.floating[Any]],
    risk_free_period: float,
    periods_per_year: float,
    expected_period: float,
) -> float:
    """
    Annualized Sortino ratio.

    The per-period ratio (E[r] - rf) / downside_deviation is scaled by
    sqrt(periods_per_year). With no downside at all the ratio is +/-inf
    depending on the sign of the excess return.
    """
    downside = downside_deviation(weights, scenarios, risk_free_period)
    if downside < DEGENERATE_DENOMINATOR:
        return math.inf if expected_period > risk_free_period else -math.inf
    return (expected_period - risk_free_period) / downside * math.sqrt(periods_per_year)
