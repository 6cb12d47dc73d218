"""
Strategy protocol and shared cvxpy plumbing for the optimizers.

Every strategy is stateless apart from its configuration and therefore safe
to share across concurrent calls; randomness is passed in explicitly.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import cvxpy as cp
import numpy as np
from numpy.typing import NDArray

from libs.common.exceptions import SolverError
from libs.portfolio.models import OptimizationMethod, OptimizationObjective
from libs.portfolio.problem import OptimizationProblem

logger = logging.getLogger(__name__)

OPTIMAL_STATUSES = (cp.OPTIMAL, cp.OPTIMAL_INACCURATE)
INFEASIBLE_STATUSES = (
    cp.INFEASIBLE,
    cp.INFEASIBLE_INACCURATE,
    cp.UNBOUNDED,
    cp.UNBOUNDED_INACCURATE,
)


@dataclass(frozen=True, eq=False)
class StrategyOutput:
    """Raw (not necessarily normalized) weights in problem.tickers order."""

    weights: NDArray[np.floating[Any]]
    notes: str | None = None
    objective: OptimizationObjective | None = None


class PortfolioStrategy(Protocol):
    """Capability shared by all optimizer strategies."""

    @property
    def method(self) -> OptimizationMethod: ...

    def supports(self, problem: OptimizationProblem) -> bool: ...

    def optimize(
        self, problem: OptimizationProblem, rng: np.random.Generator | None = None
    ) -> StrategyOutput: ...


@dataclass
class SolverOptions:
    """cvxpy solver chain: primary solver first, then fallbacks in order."""

    solver: str = "CLARABEL"
    fallback_solvers: Sequence[str] = ("OSQP", "SCS")
    verbose: bool = False

    @property
    def chain(self) -> list[str]:
        solvers = [self.solver]
        solvers.extend(s for s in self.fallback_solvers if s not in solvers)
        return solvers


def solve_with_fallback(problem: cp.Problem, options: SolverOptions, label: str) -> str:
    """Try the primary solver, falling back to the next one on solver errors.

    An infeasible/unbounded verdict is final: another solver would only
    confirm it.

    Returns:
        Name of the solver that reached an optimal status.

    Raises:
        SolverError: Problem infeasible/unbounded, or every solver failed.
    """
    errors: list[str] = []

    for solver in options.chain:
        try:
            problem.solve(solver=solver, verbose=options.verbose)  # type: ignore[no-untyped-call]
        except (cp.SolverError, ValueError) as e:
            # ValueError: solver not installed / does not support this problem class
            logger.warning(f"{label}: solver {solver} failed: {e}, trying next")
            errors.append(f"{solver}: {e}")
            continue

        if problem.status in OPTIMAL_STATUSES:
            return solver
        if problem.status in INFEASIBLE_STATUSES:
            logger.info(f"{label}: solver {solver} determined problem is {problem.status}")
            raise SolverError(
                f"{label} solver failed with status {problem.status}.",
                status=str(problem.status),
            )
        errors.append(f"{solver}: status={problem.status}")

    raise SolverError(
        f"{label}: all solvers failed. Errors: {'; '.join(errors)}",
        status=str(problem.status) if problem.status else None,
    )
