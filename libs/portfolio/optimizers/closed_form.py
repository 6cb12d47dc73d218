"""
Analytic Markowitz solution for problems without weight bounds.

GMV:           w = Sigma^-1 1 / (1' Sigma^-1 1)
Target return: solve [[A, B], [B, C]] [l1, l2]' = [1, R]'
               with A = 1'S^-1 1, B = 1'S^-1 mu, C = mu'S^-1 mu,
               then w = Sigma^-1 (l1 * 1 + l2 * mu)

One O(n^3) inversion, no iteration. Bounds cannot be expressed in this
solution, so requests with bounds (including the long-only default) must use
another method; the caller forces short-allowed mode for closed form.
"""

import logging
from typing import Any

import numpy as np
from numpy.typing import NDArray

from libs.common.exceptions import ConfigError, SolverError
from libs.portfolio.models import OptimizationMethod
from libs.portfolio.optimizers.base import StrategyOutput
from libs.portfolio.problem import OptimizationProblem

logger = logging.getLogger(__name__)


class ClosedFormOptimizer:
    """Two-fund separation solution of the equality-constrained problem."""

    @property
    def method(self) -> OptimizationMethod:
        return OptimizationMethod.CLOSED_FORM

    def supports(self, problem: OptimizationProblem) -> bool:
        return problem.method == self.method and not problem.has_bounds

    def optimize(
        self, problem: OptimizationProblem, rng: np.random.Generator | None = None
    ) -> StrategyOutput:
        if not self.supports(problem):
            raise ConfigError(
                "Closed-form optimizer supports only problems without weight bounds "
                "(allow short sales and leave bounds unset)."
            )

        sigma_inv = self._invert(problem.sigma)
        ones = np.ones(problem.n_assets)
        mu = problem.mu

        inv_ones = sigma_inv @ ones
        a = float(ones @ inv_ones)

        if problem.target_return is None:
            if abs(a) < 1e-300:
                raise SolverError("Closed-form GMV is undefined: 1'Sigma^-1 1 is zero.")
            weights = inv_ones / a
        else:
            inv_mu = sigma_inv @ mu
            b = float(ones @ inv_mu)
            c = float(mu @ inv_mu)
            system = np.array([[a, b], [b, c]])
            rhs = np.array([1.0, problem.target_return])
            try:
                lambdas = np.linalg.solve(system, rhs)
            except np.linalg.LinAlgError:
                # Equal means make the system singular; least squares picks the GMV.
                lambdas = np.linalg.lstsq(system, rhs, rcond=None)[0]
            weights = sigma_inv @ (lambdas[0] * ones + lambdas[1] * mu)

        if not np.all(np.isfinite(weights)):
            raise SolverError("Closed-form solution produced non-finite weights.")

        return StrategyOutput(weights=weights)

    @staticmethod
    def _invert(sigma: NDArray[np.floating[Any]]) -> NDArray[np.floating[Any]]:
        try:
            inverse = np.linalg.inv(sigma)
            if np.all(np.isfinite(inverse)):
                return inverse
        except np.linalg.LinAlgError:
            pass

        logger.warning("Covariance matrix is singular, falling back to pseudo-inverse")
        try:
            inverse = np.linalg.pinv(sigma)
        except np.linalg.LinAlgError as e:
            raise SolverError(f"Covariance inversion failed: {e}") from e
        if not np.all(np.isfinite(inverse)):
            raise SolverError("Covariance pseudo-inverse is not finite.")
        return inverse
