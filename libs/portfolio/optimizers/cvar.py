"""
Conditional Value-at-Risk minimization as a linear program.

Rockafellar-Uryasev formulation over S scenarios r_1..r_S:

    minimize    t + 1 / ((1 - alpha) * S) * sum(u)
    subject to  sum(w) = 1
                -r_i' w - t - u_i <= 0,  u_i >= 0   for every scenario
                mu' w >= target                      (when a target return is set)
                lower <= w <= upper                  (when bounds are set)

At the optimum t is the alpha-VaR of the portfolio loss and the objective is
its CVaR.
"""

import logging

import cvxpy as cp
import numpy as np

from libs.common.exceptions import ConfigError, SolverError
from libs.portfolio.models import OptimizationMethod
from libs.portfolio.optimizers.base import SolverOptions, StrategyOutput, solve_with_fallback
from libs.portfolio.problem import DEFAULT_CVAR_ALPHA, OptimizationProblem

logger = logging.getLogger(__name__)


class CvarOptimizer:
    """Minimum-CVaR portfolio over a scenario matrix."""

    def __init__(self, options: SolverOptions | None = None):
        self.options = options or SolverOptions()

    @property
    def method(self) -> OptimizationMethod:
        return OptimizationMethod.CVAR_LINEAR_PROGRAMMING

    def supports(self, problem: OptimizationProblem) -> bool:
        return problem.method == self.method and problem.scenario_returns is not None

    def optimize(
        self, problem: OptimizationProblem, rng: np.random.Generator | None = None
    ) -> StrategyOutput:
        if problem.method != self.method:
            raise ConfigError(f"CVaR optimizer cannot solve a {problem.method.value} problem.")

        scenarios = problem.scenario_returns
        if scenarios is None or scenarios.size == 0:
            raise ConfigError("Scenario matrix is required for CVaR optimization.")
        if scenarios.ndim != 2 or scenarios.shape[1] != problem.n_assets:
            raise ConfigError("Scenario size does not match number of assets.")

        alpha = problem.cvar_alpha if problem.cvar_alpha is not None else DEFAULT_CVAR_ALPHA
        n_scenarios = scenarios.shape[0]
        normalization = 1.0 / ((1.0 - alpha) * n_scenarios)

        w = cp.Variable(problem.n_assets)
        t = cp.Variable()
        losses = cp.Variable(n_scenarios, nonneg=True)

        constraints: list[cp.Constraint] = [
            cp.sum(w) == 1.0,  # type: ignore[attr-defined]
            -scenarios @ w - t - losses <= 0,
        ]

        if problem.target_return is not None:
            constraints.append(problem.mu @ w >= problem.target_return)

        # Short sales without explicit bounds leave the weights free.
        if problem.lower_bounds is not None:
            constraints.append(w >= problem.lower_bounds)
        elif not problem.allow_short:
            constraints.append(w >= 0.0)
        if problem.upper_bounds is not None:
            constraints.append(w <= problem.upper_bounds)
        elif not problem.allow_short:
            constraints.append(w <= 1.0)

        objective = t + normalization * cp.sum(losses)  # type: ignore[attr-defined]
        lp = cp.Problem(cp.Minimize(objective), constraints)
        solver = solve_with_fallback(lp, self.options, "CVaR")

        if w.value is None:
            raise SolverError("CVaR solver reported success without a solution.", status=str(lp.status))
        weights = np.asarray(w.value, dtype=np.float64).reshape(problem.n_assets)

        logger.debug(
            "CVaR LP solved",
            extra={
                "solver": solver,
                "alpha": alpha,
                "scenarios": n_scenarios,
                "cvar": float(lp.value) if lp.value is not None else None,
            },
        )

        return StrategyOutput(weights=weights, notes=f"CVaR alpha={alpha:.2f}")
