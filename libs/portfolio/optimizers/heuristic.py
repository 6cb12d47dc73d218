"""
Differential-evolution search maximizing the annualized Sortino ratio.

Classic DE/rand/1/bin:
- mutant  = x_r1 + F * (x_r2 - x_r3), r1, r2, r3 distinct and != i
- trial   = binomial crossover of target and mutant (rate CR, one forced index)
- repair  = project the trial back into the weight box with sum(w) = 1
- select  = trial replaces the target only on strictly greater fitness

The search is derivative-free, so it handles the non-smooth downside
deviation directly. Determinism comes from the injected numpy Generator.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from libs.common.exceptions import ConfigError
from libs.portfolio.models import OptimizationMethod, OptimizationObjective
from libs.portfolio.optimizers.base import StrategyOutput
from libs.portfolio.problem import OptimizationProblem

logger = logging.getLogger(__name__)

SUM_TOLERANCE = 1e-6
ZERO_SUM = 1e-9
MIN_DOWNSIDE = 1e-6
INVALID_FITNESS = -1e6


@dataclass
class DifferentialEvolutionConfig:
    """Search parameters for the heuristic optimizer."""

    min_population: int = 30
    population_multiplier: int = 10  # Population = max(min, multiplier * n_assets)
    generations: int = 300
    mutation_factor: float = 0.6  # F
    crossover_rate: float = 0.7  # CR
    repair_iterations: int = 4

    def population_size(self, n_assets: int) -> int:
        # rand/1 needs four distinct members.
        return max(self.min_population, self.population_multiplier * n_assets, 4)


class HeuristicOptimizer:
    """Bound-respecting portfolio search that maximizes Sortino."""

    def __init__(self, config: DifferentialEvolutionConfig | None = None):
        self.config = config or DifferentialEvolutionConfig()

    @property
    def method(self) -> OptimizationMethod:
        return OptimizationMethod.HEURISTIC

    def supports(self, problem: OptimizationProblem) -> bool:
        return problem.method == self.method and problem.scenario_returns is not None

    def optimize(
        self, problem: OptimizationProblem, rng: np.random.Generator | None = None
    ) -> StrategyOutput:
        if problem.method != self.method:
            raise ConfigError(f"Heuristic optimizer cannot solve a {problem.method.value} problem.")
        if problem.scenario_returns is None or problem.scenario_returns.size == 0:
            raise ConfigError("Scenario returns required for heuristic optimizer.")
        if problem.n_assets == 0:
            raise ConfigError("Problem has no assets.")

        rng = rng if rng is not None else np.random.default_rng()
        lower, upper = problem.box()
        if lower.sum() > 1.0 + SUM_TOLERANCE or upper.sum() < 1.0 - SUM_TOLERANCE:
            logger.warning(
                "Weight box cannot hold a fully invested portfolio; returning best in-bounds weights",
                extra={"lower_sum": float(lower.sum()), "upper_sum": float(upper.sum())},
            )

        size = self.config.population_size(problem.n_assets)
        population = np.vstack(
            [self._random_candidate(rng, lower, upper) for _ in range(size)]
        )
        scores = np.array([self._fitness(member, problem) for member in population])
        best_index = int(np.argmax(scores))

        for _ in range(self.config.generations):
            for i in range(size):
                trial = self._mutate_and_cross(rng, i, population)
                trial = self._repair(trial, lower, upper)
                score = self._fitness(trial, problem)

                if score > scores[i]:
                    population[i] = trial
                    scores[i] = score
                    if score > scores[best_index]:
                        best_index = i

        best_score = float(scores[best_index])
        logger.debug(
            "Differential evolution finished",
            extra={
                "population": size,
                "generations": self.config.generations,
                "best_sortino": best_score,
            },
        )

        return StrategyOutput(
            weights=population[best_index].copy(),
            notes=f"DE heuristic | Sortino ratio: {best_score:.3f}",
            objective=OptimizationObjective.MAX_SORTINO,
        )

    # ==========================================================================
    # Private Helper Methods
    # ==========================================================================

    def _random_candidate(
        self,
        rng: np.random.Generator,
        lower: NDArray[np.floating[Any]],
        upper: NDArray[np.floating[Any]],
    ) -> NDArray[np.floating[Any]]:
        """Uniform draw inside the box, normalized, then repaired."""
        span = upper - lower
        candidate = np.where(span > 0, lower + rng.random(lower.shape[0]) * span, lower)

        total = candidate.sum()
        if abs(total) < ZERO_SUM:
            candidate = np.full(lower.shape[0], 1.0 / lower.shape[0])
        else:
            candidate = candidate / total

        return self._repair(candidate, lower, upper)

    def _mutate_and_cross(
        self, rng: np.random.Generator, index: int, population: NDArray[np.floating[Any]]
    ) -> NDArray[np.floating[Any]]:
        size, n_assets = population.shape
        others = np.delete(np.arange(size), index)
        r1, r2, r3 = rng.choice(others, size=3, replace=False)

        target = population[index]
        mutant = population[r1] + self.config.mutation_factor * (population[r2] - population[r3])

        cross = rng.random(n_assets) < self.config.crossover_rate
        cross[rng.integers(n_assets)] = True

        return np.where(cross & ~np.isnan(mutant), mutant, target)

    def _repair(
        self,
        weights: NDArray[np.floating[Any]],
        lower: NDArray[np.floating[Any]],
        upper: NDArray[np.floating[Any]],
    ) -> NDArray[np.floating[Any]]:
        """
        Project onto {lower <= w <= upper, sum(w) = 1} as far as the box allows.

        A few clamp-and-rescale rounds get close; the remaining gap is then
        spread over the slack left below the upper (or above the lower)
        bounds, so the result never leaves the box.
        """
        n = weights.shape[0]
        w = np.asarray(weights, dtype=np.float64).copy()

        for _ in range(self.config.repair_iterations):
            w = np.clip(w, lower, upper)
            total = w.sum()
            if abs(total - 1.0) < SUM_TOLERANCE:
                break
            if abs(total) < ZERO_SUM:
                w = np.full(n, 1.0 / n)
                continue
            w = w / total

        w = np.clip(w, lower, upper)
        gap = 1.0 - w.sum()
        if gap > 0:
            slack = upper - w
        else:
            slack = w - lower
        available = slack.sum()
        if available > 0:
            w = w + np.sign(gap) * slack * min(abs(gap) / available, 1.0)

        return np.clip(w, lower, upper)

    @staticmethod
    def _fitness(weights: NDArray[np.floating[Any]], problem: OptimizationProblem) -> float:
        """Annualized Sortino with the downside deviation floored at 1e-6."""
        scenarios = problem.scenario_returns
        assert scenarios is not None

        periods_per_year = problem.periods_per_year
        risk_free = problem.risk_free_rate

        portfolio_returns = scenarios @ weights
        shortfall = np.minimum(0.0, portfolio_returns - risk_free)
        downside = math.sqrt(float(np.mean(shortfall**2))) * math.sqrt(periods_per_year)

        excess_annual = (float(problem.mu @ weights) - risk_free) * periods_per_year
        score = excess_annual / max(downside, MIN_DOWNSIDE)

        if not math.isfinite(score):
            return INVALID_FITNESS
        return score
