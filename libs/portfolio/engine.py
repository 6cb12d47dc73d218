"""
Markowitz optimization engine: the single entry point of the package.

Pipeline per call:
    ReturnAligner -> estimate_moments -> ProblemBuilder -> strategy
    (-> ObjectiveSelector for QP) -> normalize + annualize

Each call builds its own problem, RNG and candidate set, so one engine
instance can serve concurrent callers.
"""

import logging
from typing import Any

import numpy as np
from numpy.typing import NDArray

from config.settings import EngineSettings, get_settings
from libs.common.exceptions import ConfigError, SelectionError, SolverError
from libs.common.logging import RequestScope, configure_logging
from libs.portfolio.metrics import (
    annualize_return,
    annualize_volatility,
    normalize_weights,
    portfolio_variance,
)
from libs.portfolio.models import (
    OptimizationMethod,
    OptimizationObjective,
    OptimizationRequest,
    OptimizationResult,
    PortfolioVisualization,
)
from libs.portfolio.moments import estimate_moments
from libs.portfolio.optimizers import (
    DifferentialEvolutionConfig,
    PortfolioStrategy,
    SolverOptions,
    build_strategy_registry,
)
from libs.portfolio.problem import OptimizationProblem, ProblemBuilder
from libs.portfolio.returns import ReturnAligner, ReturnData
from libs.portfolio.selection import ObjectiveSelector, PortfolioCandidate
from libs.portfolio.visualization import build_visualization

logger = logging.getLogger(__name__)

# Seed of the visualization cloud when the request does not carry one, so
# repeated renders of the same request draw the same cloud.
DEFAULT_VISUALIZATION_SEED = 12345

SERVICE_NAME = "markowitz_engine"


def configure_engine_logging(settings: EngineSettings | None = None) -> logging.Logger:
    """
    Install JSON logging at the configured level. Call once at process startup.

    Example:
        >>> configure_engine_logging()  # honours MARKOWITZ_LOG_LEVEL
        >>> engine = MarkowitzEngine()
    """
    settings = settings or get_settings()
    return configure_logging(service_name=SERVICE_NAME, log_level=settings.log_level)


class MarkowitzEngine:
    """
    Portfolio optimizer over aligned price histories.

    Example:
        >>> engine = MarkowitzEngine()
        >>> result = engine.optimize(request)
        >>> result.weights
        {'AAA': 0.8, 'BBB': 0.2}
    """

    def __init__(self, settings: EngineSettings | None = None):
        self.settings = settings or get_settings()
        self.aligner = ReturnAligner()
        self.problem_builder = ProblemBuilder(default_cvar_alpha=self.settings.default_cvar_alpha)
        self.strategies: dict[OptimizationMethod, PortfolioStrategy] = build_strategy_registry(
            solver_options=SolverOptions(
                solver=self.settings.qp_solver,
                fallback_solvers=tuple(self.settings.fallback_solvers),
                verbose=self.settings.solver_verbose,
            ),
            de_config=DifferentialEvolutionConfig(
                min_population=self.settings.de_min_population,
                population_multiplier=self.settings.de_population_multiplier,
                generations=self.settings.de_generations,
                mutation_factor=self.settings.de_mutation_factor,
                crossover_rate=self.settings.de_crossover_rate,
                repair_iterations=self.settings.de_repair_iterations,
            ),
        )
        self.selector = ObjectiveSelector(
            self.strategies[OptimizationMethod.QUADRATIC_PROGRAMMING],
            grid_steps=self.settings.grid_steps,
            buffer_fraction=self.settings.grid_buffer_fraction,
        )

    def optimize(self, request: OptimizationRequest) -> OptimizationResult:
        """
        Optimize a portfolio for the request's method and objective.

        Returns:
            OptimizationResult with weights summing to 1 in sorted-ticker order

        Raises:
            DataError: Unusable price histories
            ConfigError: Inconsistent bounds/scenarios, missing target return,
                or a problem the requested strategy cannot handle
            SolverError: Solver failure for a non-QP method
            SelectionError: QP found no feasible portfolio for the objective
        """
        with RequestScope():
            return_data, problem = self._prepare(request)
            strategy = self._strategy(request.method)

            objective: OptimizationObjective | None
            if request.method == OptimizationMethod.QUADRATIC_PROGRAMMING:
                outcome = self.selector.select(problem, request.objective, return_data.returns)
                raw_weights, notes, objective = outcome.weights, outcome.notes, outcome.objective
            else:
                if not strategy.supports(problem):
                    raise ConfigError(
                        f"Optimizer {request.method.value} does not support the provided problem configuration."
                    )
                output = strategy.optimize(problem, np.random.default_rng(request.random_seed))
                if output.weights.size == 0:
                    raise SolverError("Optimizer returned empty weights.")
                raw_weights, notes, objective = output.weights, output.notes, output.objective
                if objective is None:
                    objective = request.objective

            weights = normalize_weights(raw_weights)
            if request.target_volatility_annual is not None:
                notes = _append_note(
                    notes, f"Target volatility (not enforced): {request.target_volatility_annual:.2%}"
                )

            result = self._assemble(request, return_data, problem, weights, notes, objective)

            logger.info(
                "Portfolio optimized",
                extra={
                    "method": request.method.value,
                    "objective": objective.value if objective else None,
                    "assets": problem.n_assets,
                    "observations": return_data.observations,
                    "expected_return_annual": result.expected_return_annual,
                    "volatility_annual": result.volatility_annual,
                },
            )
            return result

    def generate_visualization(
        self,
        request: OptimizationRequest,
        chosen: OptimizationResult | None = None,
    ) -> PortfolioVisualization:
        """
        Build the risk/return chart dataset for a request.

        The frontier always comes from a QP max-return sweep, whatever method
        the request uses. ``chosen`` is the portfolio to highlight; when
        omitted it is computed with :meth:`optimize`.
        """
        with RequestScope():
            return_data, problem = self._prepare(request)
            sweep_problem = problem.with_method(
                OptimizationMethod.QUADRATIC_PROGRAMMING
            ).with_target_return(None)

            frontier: list[PortfolioCandidate]
            try:
                outcome = self.selector.select(
                    sweep_problem, OptimizationObjective.MAX_RETURN, return_data.returns
                )
                frontier = outcome.frontier
            except SelectionError as e:
                logger.warning("No feasible frontier portfolio", extra={"error": str(e)})
                frontier = []

            if chosen is None:
                chosen = self.optimize(request)
            chosen_weights = normalize_weights(
                np.array([chosen.weights.get(t, 0.0) for t in problem.tickers], dtype=np.float64)
            )

            seed = request.random_seed if request.random_seed is not None else DEFAULT_VISUALIZATION_SEED
            visualization = build_visualization(
                problem,
                frontier,
                chosen_weights,
                np.random.default_rng(seed),
                samples=self.settings.visualization_samples,
            )

            logger.info(
                "Visualization generated",
                extra={
                    "portfolio_space": len(visualization.portfolio_space),
                    "frontier_points": len(visualization.efficient_frontier),
                    "selected_frontier_index": visualization.selected_frontier_index,
                },
            )
            return visualization

    # ==========================================================================
    # Private Helper Methods
    # ==========================================================================

    def _prepare(self, request: OptimizationRequest) -> tuple[ReturnData, OptimizationProblem]:
        return_data = self.aligner.build(request)
        moments = estimate_moments(return_data.returns, ridge=self.settings.covariance_ridge)
        problem = self.problem_builder.build(request, return_data, moments)
        return return_data, problem

    def _strategy(self, method: OptimizationMethod) -> PortfolioStrategy:
        strategy = self.strategies.get(method)
        if strategy is None:
            raise ConfigError(f"Optimizer for method {method.value} is not registered.")
        return strategy

    @staticmethod
    def _assemble(
        request: OptimizationRequest,
        return_data: ReturnData,
        problem: OptimizationProblem,
        weights: NDArray[np.floating[Any]],
        notes: str | None,
        objective: OptimizationObjective | None,
    ) -> OptimizationResult:
        ppy = problem.periods_per_year
        return OptimizationResult(
            weights={t: float(w) for t, w in zip(problem.tickers, weights, strict=True)},
            expected_return_annual=annualize_return(float(problem.mu @ weights), ppy),
            volatility_annual=annualize_volatility(portfolio_variance(weights, problem.sigma), ppy),
            observations=return_data.observations,
            method=request.method,
            objective=objective,
            notes=notes,
        )


def _append_note(notes: str | None, addition: str) -> str:
    if not notes:
        return addition
    return f"{notes}; {addition}"
