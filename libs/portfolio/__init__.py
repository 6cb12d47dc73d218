"""
Markowitz portfolio optimization.

This module provides:
- MarkowitzEngine: Entry point (optimize, generate_visualization)
- configure_engine_logging: JSON logging at the configured level
- ReturnAligner: Intersect price histories into a return matrix
- estimate_moments: Mean vector and ridge-regularized covariance
- ProblemBuilder: Per-period, solver-agnostic OptimizationProblem
- Optimizer strategies: closed form, QP, CVaR LP, differential evolution
- ObjectiveSelector: Target-return grid sweep and efficient frontier

Inputs and outputs are pydantic models (OptimizationRequest,
OptimizationResult, PortfolioVisualization).
"""

from libs.portfolio.engine import MarkowitzEngine, configure_engine_logging
from libs.portfolio.models import (
    FrontierPoint,
    OptimizationMethod,
    OptimizationObjective,
    OptimizationRequest,
    OptimizationResult,
    PortfolioPoint,
    PortfolioVisualization,
    PriceBar,
)
from libs.portfolio.moments import MomentEstimate, estimate_moments
from libs.portfolio.optimizers import (
    ClosedFormOptimizer,
    CvarOptimizer,
    DifferentialEvolutionConfig,
    HeuristicOptimizer,
    PortfolioStrategy,
    QuadraticOptimizer,
    SolverOptions,
    StrategyOutput,
)
from libs.portfolio.problem import OptimizationProblem, ProblemBuilder
from libs.portfolio.returns import ReturnAligner, ReturnData, infer_periods_per_year
from libs.portfolio.selection import (
    ObjectiveSelector,
    PortfolioCandidate,
    SelectionOutcome,
    build_target_grid,
)

__all__ = [
    # Engine
    "MarkowitzEngine",
    "configure_engine_logging",
    # Models
    "FrontierPoint",
    "OptimizationMethod",
    "OptimizationObjective",
    "OptimizationRequest",
    "OptimizationResult",
    "PortfolioPoint",
    "PortfolioVisualization",
    "PriceBar",
    # Pipeline
    "MomentEstimate",
    "OptimizationProblem",
    "ProblemBuilder",
    "ReturnAligner",
    "ReturnData",
    "estimate_moments",
    "infer_periods_per_year",
    # Strategies
    "ClosedFormOptimizer",
    "CvarOptimizer",
    "DifferentialEvolutionConfig",
    "HeuristicOptimizer",
    "PortfolioStrategy",
    "QuadraticOptimizer",
    "SolverOptions",
    "StrategyOutput",
    # Selection
    "ObjectiveSelector",
    "PortfolioCandidate",
    "SelectionOutcome",
    "build_target_grid",
]
