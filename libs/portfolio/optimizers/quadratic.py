"""
Mean-variance quadratic program solved with cvxpy.

    minimize    1/2 w' (2 Sigma) w
    subject to  sum(w) = 1
                mu' w = target          (when a target return is set)
                lower <= w <= upper     (when bounds are set)

Per-period variances of daily data are around 1e-4..1e-8, well inside the
solvers' absolute tolerances. The covariance and the return constraint are
therefore rescaled to unit magnitude before solving; both rescalings leave
the minimizer unchanged.
"""

import logging
from typing import Any

import cvxpy as cp
import numpy as np
from numpy.typing import NDArray

from libs.common.exceptions import ConfigError, SolverError
from libs.portfolio.models import OptimizationMethod
from libs.portfolio.optimizers.base import SolverOptions, StrategyOutput, solve_with_fallback
from libs.portfolio.problem import OptimizationProblem

logger = logging.getLogger(__name__)


class QuadraticOptimizer:
    """Minimum-variance (optionally target-return) portfolio via cvxpy."""

    def __init__(self, options: SolverOptions | None = None):
        self.options = options or SolverOptions()

    @property
    def method(self) -> OptimizationMethod:
        return OptimizationMethod.QUADRATIC_PROGRAMMING

    def supports(self, problem: OptimizationProblem) -> bool:
        return problem.method == self.method

    def optimize(
        self, problem: OptimizationProblem, rng: np.random.Generator | None = None
    ) -> StrategyOutput:
        if not self.supports(problem):
            raise ConfigError(f"Quadratic optimizer cannot solve a {problem.method.value} problem.")

        n = problem.n_assets
        w = cp.Variable(n)

        # Objective: 1/2 w' Q w with Q = 2 Sigma, i.e. w' Sigma w
        q_matrix = self._scaled_hessian(problem.sigma)
        objective = 0.5 * cp.quad_form(w, cp.psd_wrap(q_matrix))  # type: ignore[attr-defined]

        constraints: list[cp.Constraint] = [cp.sum(w) == 1.0]  # type: ignore[attr-defined]

        if problem.target_return is not None:
            mu_scale = float(np.max(np.abs(problem.mu)))
            if mu_scale < 1e-12:
                mu_scale = 1.0
            constraints.append((problem.mu / mu_scale) @ w == problem.target_return / mu_scale)

        if problem.lower_bounds is not None:
            constraints.append(w >= problem.lower_bounds)
        if problem.upper_bounds is not None:
            constraints.append(w <= problem.upper_bounds)

        qp = cp.Problem(cp.Minimize(objective), constraints)
        solver = solve_with_fallback(qp, self.options, "QP")

        if w.value is None:
            raise SolverError("QP solver reported success without a solution.", status=str(qp.status))
        weights = np.asarray(w.value, dtype=np.float64).reshape(n)
        if not np.all(np.isfinite(weights)):
            raise SolverError("QP solution contains non-finite weights.", status=str(qp.status))

        logger.debug(
            "QP solved",
            extra={
                "solver": solver,
                "status": qp.status,
                "target_return": problem.target_return,
            },
        )

        return StrategyOutput(weights=weights)

    @staticmethod
    def _scaled_hessian(sigma: NDArray[np.floating[Any]]) -> NDArray[np.floating[Any]]:
        q_matrix = 2.0 * np.asarray(sigma, dtype=np.float64)
        q_matrix = (q_matrix + q_matrix.T) / 2.0
        scale = float(np.mean(np.diag(q_matrix)))
        if scale > 0 and np.isfinite(scale):
            q_matrix = q_matrix / scale
        return q_matrix
