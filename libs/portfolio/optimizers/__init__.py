"""
Optimizer strategies keyed by OptimizationMethod.

Each strategy consumes an OptimizationProblem and returns raw weights in
problem.tickers order; normalization and annualization happen in the engine.
"""

from libs.portfolio.models import OptimizationMethod
from libs.portfolio.optimizers.base import (
    PortfolioStrategy,
    SolverOptions,
    StrategyOutput,
    solve_with_fallback,
)
from libs.portfolio.optimizers.closed_form import ClosedFormOptimizer
from libs.portfolio.optimizers.cvar import CvarOptimizer
from libs.portfolio.optimizers.heuristic import DifferentialEvolutionConfig, HeuristicOptimizer
from libs.portfolio.optimizers.quadratic import QuadraticOptimizer


def build_strategy_registry(
    solver_options: SolverOptions | None = None,
    de_config: DifferentialEvolutionConfig | None = None,
) -> dict[OptimizationMethod, PortfolioStrategy]:
    """One instance of every strategy, keyed by the method it serves."""
    strategies: list[PortfolioStrategy] = [
        ClosedFormOptimizer(),
        QuadraticOptimizer(solver_options),
        CvarOptimizer(solver_options),
        HeuristicOptimizer(de_config),
    ]
    return {strategy.method: strategy for strategy in strategies}


__all__ = [
    "ClosedFormOptimizer",
    "CvarOptimizer",
    "DifferentialEvolutionConfig",
    "HeuristicOptimizer",
    "PortfolioStrategy",
    "QuadraticOptimizer",
    "SolverOptions",
    "StrategyOutput",
    "build_strategy_registry",
    "solve_with_fallback",
]
