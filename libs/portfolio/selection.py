"""
Objective selection over quadratic-programming candidates.

The QP strategy itself only minimizes variance (optionally at a pinned
return). Return-seeking objectives are answered by sweeping a grid of target
returns, scoring every feasible solution and keeping the best one:

    grid = linspace(min(mu) - buffer, max(mu) + buffer, steps)
           U {mu_i} U {explicit target}

Every solved candidate is also registered on the efficient frontier, keyed by
its rounded annual return and keeping the lowest volatility per key.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from numpy.typing import NDArray

from libs.common.exceptions import ConfigError, SelectionError, SolverError
from libs.portfolio.metrics import (
    annualize_return,
    annualize_volatility,
    normalize_weights,
    portfolio_variance,
    sharpe_ratio,
    sortino_ratio,
)
from libs.portfolio.models import OptimizationObjective
from libs.portfolio.optimizers.base import PortfolioStrategy
from libs.portfolio.problem import OptimizationProblem

logger = logging.getLogger(__name__)

DEFAULT_GRID_STEPS = 21
DEFAULT_BUFFER_FRACTION = 0.25
MIN_GRID_BUFFER = 1e-4
FRONTIER_KEY_DECIMALS = 10
FRONTIER_VOL_TOLERANCE = 1e-9
SCORE_TOLERANCE = 1e-12


@dataclass(frozen=True, eq=False)
class PortfolioCandidate:
    """A solved, normalized QP portfolio with its annualized statistics."""

    weights: NDArray[np.floating[Any]]  # Normalized, problem.tickers order
    notes: str | None
    expected_return_annual: float
    volatility_annual: float
    sharpe: float
    sortino: float
    target_return: float | None  # Per-period target the solve was pinned at


@dataclass(frozen=True, eq=False)
class SelectionOutcome:
    """Chosen candidate plus every frontier point discovered on the way."""

    weights: NDArray[np.floating[Any]]
    notes: str | None
    objective: OptimizationObjective
    frontier: list[PortfolioCandidate] = field(default_factory=list)  # Ascending return


def build_target_grid(
    mu: NDArray[np.floating[Any]],
    explicit_target: float | None = None,
    steps: int = DEFAULT_GRID_STEPS,
    buffer_fraction: float = DEFAULT_BUFFER_FRACTION,
) -> list[float]:
    """
    Sorted, deduplicated per-period target returns to sweep.

    The buffer extends the range past the asset means so that leveraged
    (short-allowed) portfolios appear on the frontier. When all means are
    (nearly) equal the span collapses, and the buffer falls back to a
    fraction of the mean magnitude plus 1e-4.
    """
    if mu.size == 0:
        return []

    low_mu = float(np.min(mu))
    high_mu = float(np.max(mu))
    buffer = (high_mu - low_mu) * buffer_fraction
    if buffer < MIN_GRID_BUFFER:
        buffer = max(abs(low_mu), abs(high_mu)) * buffer_fraction + MIN_GRID_BUFFER

    low = low_mu - buffer
    high = high_mu + buffer

    targets: set[float] = set()
    for i in range(steps):
        targets.add(low if steps == 1 else low + (high - low) * i / (steps - 1))
    targets.update(float(m) for m in mu)
    if explicit_target is not None:
        targets.add(float(explicit_target))

    return sorted(targets)


def compose_notes(candidate: PortfolioCandidate, periods_per_year: float) -> str | None:
    """Append the pinned target return (as an annual percentage) to the notes."""
    if candidate.target_return is None:
        return candidate.notes
    target_annual = candidate.target_return * periods_per_year
    addition = f"Target return constraint: {target_annual:.2%}"
    if not candidate.notes or not candidate.notes.strip():
        return addition
    return f"{candidate.notes}; {addition}"


class ObjectiveSelector:
    """Runs the QP strategy across targets and applies an objective policy."""

    def __init__(
        self,
        strategy: PortfolioStrategy,
        grid_steps: int = DEFAULT_GRID_STEPS,
        buffer_fraction: float = DEFAULT_BUFFER_FRACTION,
    ):
        self.strategy = strategy
        self.grid_steps = grid_steps
        self.buffer_fraction = buffer_fraction

    def select(
        self,
        problem: OptimizationProblem,
        objective: OptimizationObjective,
        returns: NDArray[np.floating[Any]],
    ) -> SelectionOutcome:
        """
        Choose a portfolio for ``objective``.

        Args:
            problem: QP problem; its target return (if any) is the explicit target
            objective: Requested objective. MIN_VOLATILITY with a target
                return is escalated to TARGET_RETURN.
            returns: Historical per-period returns used for Sortino scoring

        Returns:
            SelectionOutcome with normalized weights and the frontier

        Raises:
            ConfigError: Strategy cannot handle the problem, or TARGET_RETURN
                without a target
            SelectionError: No feasible candidate for the objective
        """
        if not self.strategy.supports(problem.with_target_return(None)):
            raise ConfigError(
                f"Optimizer {problem.method.value} does not support the provided problem configuration."
            )

        explicit_target = problem.target_return
        if objective == OptimizationObjective.MIN_VOLATILITY and explicit_target is not None:
            objective = OptimizationObjective.TARGET_RETURN

        run = _SelectionRun(self, problem, returns)

        if objective == OptimizationObjective.TARGET_RETURN:
            if explicit_target is None:
                raise ConfigError("Provide a target return to use the 'target_return' objective.")
            chosen = run.require(
                explicit_target,
                "Quadratic solver could not find a portfolio for the requested target return.",
            )
        elif objective == OptimizationObjective.MAX_RETURN:
            chosen = run.select_by(lambda c: c.expected_return_annual, explicit_target)
        elif objective == OptimizationObjective.MAX_SHARPE:
            chosen = run.select_by(lambda c: c.sharpe, explicit_target)
        elif objective == OptimizationObjective.MAX_SORTINO:
            chosen = run.select_by(lambda c: c.sortino, explicit_target)
        else:
            chosen = run.require(
                None, "Quadratic solver failed to compute the global minimum variance portfolio."
            )

        frontier = sorted(run.frontier.values(), key=lambda c: c.expected_return_annual)

        logger.info(
            "Objective selected",
            extra={
                "objective": objective.value,
                "expected_return_annual": chosen.expected_return_annual,
                "volatility_annual": chosen.volatility_annual,
                "frontier_points": len(frontier),
            },
        )

        return SelectionOutcome(
            weights=chosen.weights,
            notes=compose_notes(chosen, problem.periods_per_year),
            objective=objective,
            frontier=frontier,
        )


class _SelectionRun:
    """Per-call state: the frontier registry shared by all solves of one select()."""

    def __init__(
        self,
        selector: ObjectiveSelector,
        problem: OptimizationProblem,
        returns: NDArray[np.floating[Any]],
    ):
        self.selector = selector
        self.problem = problem
        self.returns = returns
        self.frontier: dict[float, PortfolioCandidate] = {}

    def solve(self, target_return: float | None) -> PortfolioCandidate | None:
        """Solve one point; None when the solver rejects it."""
        problem = self.problem
        try:
            output = self.selector.strategy.optimize(problem.with_target_return(target_return))
        except SolverError as e:
            logger.debug(
                "Skipping infeasible target",
                extra={"target_return": target_return, "status": e.status, "error": str(e)},
            )
            return None

        if output.weights.size == 0:
            return None

        weights = normalize_weights(output.weights)
        ppy = problem.periods_per_year
        expected_period = float(problem.mu @ weights)
        expected_annual = annualize_return(expected_period, ppy)
        volatility_annual = annualize_volatility(portfolio_variance(weights, problem.sigma), ppy)
        risk_free_annual = problem.risk_free_rate * ppy

        candidate = PortfolioCandidate(
            weights=weights,
            notes=output.notes,
            expected_return_annual=expected_annual,
            volatility_annual=volatility_annual,
            sharpe=sharpe_ratio(expected_annual, risk_free_annual, volatility_annual),
            sortino=sortino_ratio(weights, self.returns, problem.risk_free_rate, ppy, expected_period),
            target_return=target_return,
        )
        self._register(candidate)
        return candidate

    def require(self, target_return: float | None, failure_message: str) -> PortfolioCandidate:
        candidate = self.solve(target_return)
        if candidate is None:
            raise SelectionError(failure_message)
        return candidate

    def select_by(
        self,
        score: Callable[[PortfolioCandidate], float],
        explicit_target: float | None,
    ) -> PortfolioCandidate:
        """Highest finite score over the unconstrained solve and the grid."""
        best: PortfolioCandidate | None = None
        best_score = -np.inf

        grid = build_target_grid(
            self.problem.mu,
            explicit_target,
            self.selector.grid_steps,
            self.selector.buffer_fraction,
        )
        for target in [None, *grid]:
            candidate = self.solve(target)
            if candidate is None:
                continue
            value = score(candidate)
            if not np.isfinite(value):
                continue
            if best is None or value > best_score + SCORE_TOLERANCE:
                best, best_score = candidate, value
            elif (
                abs(value - best_score) <= SCORE_TOLERANCE
                and candidate.volatility_annual < best.volatility_annual
            ):
                best = candidate

        if best is None:
            raise SelectionError(
                "Quadratic solver could not produce a feasible portfolio for the requested objective."
            )
        return best

    def _register(self, candidate: PortfolioCandidate) -> None:
        key = round(candidate.expected_return_annual, FRONTIER_KEY_DECIMALS)
        existing = self.frontier.get(key)
        if existing is None or candidate.volatility_annual < existing.volatility_annual - FRONTIER_VOL_TOLERANCE:
            self.frontier[key] = candidate
