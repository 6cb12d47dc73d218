"""
Immutable optimization problem and its construction from a request.

All quantities on OptimizationProblem are per-period: annual rates are
de-annualized by straight division by periods_per_year (linear, not
compounded), matching how results are annualized again on the way out.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import Any

import numpy as np
from numpy.typing import NDArray

from libs.common.exceptions import ConfigError
from libs.portfolio.moments import MomentEstimate
from libs.portfolio.models import OptimizationMethod, OptimizationRequest
from libs.portfolio.returns import ReturnData

logger = logging.getLogger(__name__)

BOUND_TOLERANCE = 1e-9
DEFAULT_CVAR_ALPHA = 0.95


@dataclass(frozen=True, eq=False)
class OptimizationProblem:
    """Solver-agnostic problem handed to every strategy.

    lower_bounds/upper_bounds are None only when short sales are allowed and
    the request carries no custom bounds; that is the single configuration
    the closed-form strategy accepts.
    """

    tickers: tuple[str, ...]
    mu: NDArray[np.floating[Any]]
    sigma: NDArray[np.floating[Any]]
    target_return: float | None  # Per-period
    risk_free_rate: float  # Per-period
    lower_bounds: NDArray[np.floating[Any]] | None
    upper_bounds: NDArray[np.floating[Any]] | None
    allow_short: bool
    scenario_returns: NDArray[np.floating[Any]] | None  # scenarios x assets
    cvar_alpha: float
    method: OptimizationMethod
    periods_per_year: float

    @property
    def n_assets(self) -> int:
        return len(self.tickers)

    @property
    def has_bounds(self) -> bool:
        return self.lower_bounds is not None or self.upper_bounds is not None

    def with_target_return(self, target_return: float | None) -> "OptimizationProblem":
        """Copy of this problem with only the target return replaced."""
        return replace(self, target_return=target_return)

    def with_method(self, method: OptimizationMethod) -> "OptimizationProblem":
        """Copy of this problem dispatched to another strategy."""
        return replace(self, method=method)

    def box(self) -> tuple[NDArray[np.floating[Any]], NDArray[np.floating[Any]]]:
        """Finite box for strategies that need one; unbounded short sales map to [-1, 1]."""
        default_lower = -1.0 if self.allow_short else 0.0
        lower = (
            np.full(self.n_assets, default_lower)
            if self.lower_bounds is None
            else np.asarray(self.lower_bounds, dtype=np.float64).copy()
        )
        upper = (
            np.ones(self.n_assets)
            if self.upper_bounds is None
            else np.asarray(self.upper_bounds, dtype=np.float64).copy()
        )
        lower = np.where(np.isneginf(lower), -1.0, lower)
        upper = np.where(np.isposinf(upper), 1.0, upper)
        return lower, upper


def annual_to_periodic(annual_rate: float, periods_per_year: float) -> float:
    """Linear de-annualization: annual_rate / periods_per_year."""
    if periods_per_year <= 0:
        raise ConfigError("Periods per year must be positive.")
    return annual_rate / periods_per_year


class ProblemBuilder:
    """Converts a request plus estimated moments into an OptimizationProblem."""

    def __init__(self, default_cvar_alpha: float = DEFAULT_CVAR_ALPHA):
        self.default_cvar_alpha = default_cvar_alpha

    def build(
        self,
        request: OptimizationRequest,
        return_data: ReturnData,
        moments: MomentEstimate,
    ) -> OptimizationProblem:
        """
        Build the per-period problem for a request.

        Raises:
            ConfigError: Inconsistent or non-finite bounds, scenario rows whose
                length differs from the asset count
        """
        tickers = return_data.tickers
        periods_per_year = return_data.periods_per_year

        risk_free = annual_to_periodic(request.risk_free_annual, periods_per_year)
        target = (
            annual_to_periodic(request.target_return_annual, periods_per_year)
            if request.target_return_annual is not None
            else None
        )

        lower, upper = build_bounds(request, tickers)
        scenarios = build_scenarios(request.scenario_returns, return_data.returns, len(tickers))

        return OptimizationProblem(
            tickers=tuple(tickers),
            mu=moments.mu.copy(),
            sigma=moments.sigma.copy(),
            target_return=target,
            risk_free_rate=risk_free,
            lower_bounds=lower,
            upper_bounds=upper,
            allow_short=request.allow_short,
            scenario_returns=scenarios,
            cvar_alpha=request.cvar_alpha if request.cvar_alpha is not None else self.default_cvar_alpha,
            method=request.method,
            periods_per_year=periods_per_year,
        )


def build_bounds(
    request: OptimizationRequest, tickers: list[str]
) -> tuple[NDArray[np.floating[Any]] | None, NDArray[np.floating[Any]] | None]:
    """
    Per-asset weight bounds.

    Long-only: defaults [0, 1] and every override is clamped into [0, 1].
    Short allowed: defaults [-1, 1] narrowed by global then per-asset
    overrides; with no override at all, no bounds are returned.

    Ticker lookups in lower_bounds/upper_bounds are case-insensitive.
    """
    global_min = request.global_min_weight
    global_max = request.global_max_weight
    lower_map = {k.casefold(): v for k, v in (request.lower_bounds or {}).items()}
    upper_map = {k.casefold(): v for k, v in (request.upper_bounds or {}).items()}

    has_custom = (
        global_min is not None or global_max is not None or bool(lower_map) or bool(upper_map)
    )
    if request.allow_short and not has_custom:
        return None, None

    if global_min is not None and not math.isfinite(global_min):
        raise ConfigError("Global min weight must be a finite number.")
    if global_max is not None and not math.isfinite(global_max):
        raise ConfigError("Global max weight must be a finite number.")
    if global_min is not None and global_max is not None and global_min > global_max + BOUND_TOLERANCE:
        raise ConfigError("Global min weight cannot exceed global max weight.")

    n = len(tickers)
    lower = np.empty(n)
    upper = np.empty(n)

    for i, ticker in enumerate(tickers):
        if request.allow_short:
            lo = global_min if global_min is not None else -1.0
            hi = global_max if global_max is not None else 1.0
        else:
            lo = max(global_min if global_min is not None else 0.0, 0.0)
            hi = min(global_max if global_max is not None else 1.0, 1.0)

        per_min = lower_map.get(ticker.casefold())
        if per_min is not None:
            if not math.isfinite(per_min):
                raise ConfigError(f"Lower bound for '{ticker}' must be a finite number.")
            lo = max(lo, per_min)

        per_max = upper_map.get(ticker.casefold())
        if per_max is not None:
            if not math.isfinite(per_max):
                raise ConfigError(f"Upper bound for '{ticker}' must be a finite number.")
            hi = min(hi, per_max)

        if not request.allow_short:
            lo = max(lo, 0.0)
            hi = min(hi, 1.0)

        if lo > hi + BOUND_TOLERANCE:
            raise ConfigError(
                f"Bounds for '{ticker}' are inconsistent (min {lo:.4g} exceeds max {hi:.4g})."
            )

        lower[i] = lo
        upper[i] = hi

    if lower.sum() > 1.0 + BOUND_TOLERANCE or upper.sum() < 1.0 - BOUND_TOLERANCE:
        logger.warning(
            "Weight bounds cannot sum to one",
            extra={"lower_sum": float(lower.sum()), "upper_sum": float(upper.sum())},
        )

    return lower, upper


def build_scenarios(
    scenario_rows: list[list[float]] | None,
    historical: NDArray[np.floating[Any]],
    n_assets: int,
) -> NDArray[np.floating[Any]]:
    """Supplied scenario matrix, or a copy of the historical returns when absent/empty."""
    if not scenario_rows:
        return np.array(historical, dtype=np.float64, copy=True)

    for i, row in enumerate(scenario_rows):
        if len(row) != n_assets:
            raise ConfigError(
                f"Scenario vector {i} has length {len(row)}, expected {n_assets} (asset count)."
            )

    return np.asarray(scenario_rows, dtype=np.float64)
