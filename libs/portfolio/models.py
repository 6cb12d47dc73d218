"""
Pydantic schemas for the optimization engine boundary.

Defines the request/response contracts exchanged with the (external) parsing
and rendering layers:
- PriceBar and OptimizationRequest (inbound)
- OptimizationResult and PortfolioVisualization (outbound)

All models serialize to plain JSON via ``model_dump(mode="json")``.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# ==============================================================================
# Enumerations
# ==============================================================================


class OptimizationMethod(str, Enum):
    """Optimizer strategy selected by the request."""

    CLOSED_FORM = "closed_form"
    QUADRATIC_PROGRAMMING = "quadratic_programming"
    CVAR_LINEAR_PROGRAMMING = "cvar_linear_programming"
    HEURISTIC = "heuristic"


class OptimizationObjective(str, Enum):
    """Portfolio objective; only the QP method searches across objectives."""

    MIN_VOLATILITY = "min_volatility"
    TARGET_RETURN = "target_return"
    MAX_RETURN = "max_return"
    MAX_SHARPE = "max_sharpe"
    MAX_SORTINO = "max_sortino"


# ==============================================================================
# Inbound
# ==============================================================================


class PriceBar(BaseModel):
    """One OHLC bar. The engine reads only ``timestamp`` and ``close``."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float


class OptimizationRequest(BaseModel):
    """Request to optimize a portfolio over a set of price histories.

    Annualized inputs (target return/volatility, risk-free rate) are
    de-annualized by the engine using the inferred sampling frequency.
    """

    prices_by_ticker: dict[str, list[PriceBar]] = Field(
        ..., description="Ticker -> price bars (any order, duplicates allowed)"
    )
    lookback_periods: int | None = Field(
        None, ge=1, description="Keep only the last N aligned timestamps"
    )
    start: datetime | None = Field(None, description="Drop aligned timestamps before this")
    end: datetime | None = Field(None, description="Drop aligned timestamps after this")
    periods_per_year_override: float | None = Field(
        None, description="Explicit sampling frequency instead of inferring it"
    )

    target_return_annual: float | None = None
    target_volatility_annual: float | None = Field(None, ge=0.0)
    risk_free_annual: float = 0.0

    global_min_weight: float | None = None
    global_max_weight: float | None = None
    lower_bounds: dict[str, float] | None = None
    upper_bounds: dict[str, float] | None = None
    allow_short: bool = False

    method: OptimizationMethod = OptimizationMethod.QUADRATIC_PROGRAMMING
    objective: OptimizationObjective = OptimizationObjective.MIN_VOLATILITY

    cvar_alpha: float | None = Field(None, gt=0.0, lt=1.0)
    scenario_returns: list[list[float]] | None = Field(
        None, description="Scenario return vectors in sorted-ticker order"
    )
    random_seed: int | None = Field(
        None, description="Seed for the heuristic optimizer and visualization sampler"
    )


# ==============================================================================
# Outbound
# ==============================================================================


class OptimizationResult(BaseModel):
    """Final normalized allocation."""

    weights: dict[str, float]
    expected_return_annual: float
    volatility_annual: float
    observations: int
    method: OptimizationMethod
    objective: OptimizationObjective | None = None
    notes: str | None = None


class PortfolioPoint(BaseModel):
    """A sampled feasible portfolio in annualized risk/return space."""

    expected_return_annual: float
    variance_annual: float
    volatility_annual: float


class FrontierPoint(BaseModel):
    """A point on the efficient frontier with the weights that produce it."""

    expected_return_annual: float
    volatility_annual: float
    variance_annual: float
    weights: dict[str, float]


class PortfolioVisualization(BaseModel):
    """Dataset for the risk/return chart."""

    portfolio_space: list[PortfolioPoint] = Field(default_factory=list)
    efficient_frontier: list[FrontierPoint] = Field(default_factory=list)
    selected_frontier_index: int | None = None
