"""
Risk/return chart dataset: a random feasible-portfolio cloud plus the frontier.

Random weights are drawn in batches:
- long-only: i.i.d. Exp(1) draws normalized by their sum, i.e. uniform on
  the simplex
- short allowed: standard normal draws normalized by their sum; draws whose
  sum is (nearly) zero are discarded

Draws outside the weight box (1e-6 tolerance) are discarded as well, and the
total number of draws is capped so that a tight box cannot loop forever.
"""

import logging
from typing import Any

import numpy as np
from numpy.typing import NDArray

from libs.portfolio.metrics import annualize_return
from libs.portfolio.models import FrontierPoint, PortfolioPoint, PortfolioVisualization
from libs.portfolio.problem import OptimizationProblem
from libs.portfolio.selection import PortfolioCandidate

logger = logging.getLogger(__name__)

DEFAULT_SAMPLES = 5000
MIN_ATTEMPTS = 20_000
ATTEMPTS_PER_SAMPLE = 40
BOUND_TOLERANCE = 1e-6
ZERO_SUM = 1e-9
FRONTIER_DEDUP_DECIMALS = 8
DISTANCE_TOLERANCE = 1e-12


def sample_portfolio_space(
    problem: OptimizationProblem,
    rng: np.random.Generator,
    samples: int = DEFAULT_SAMPLES,
) -> list[PortfolioPoint]:
    """Up to ``samples`` random in-bounds portfolios in annualized risk/return space."""
    n = problem.n_assets
    if n == 0 or samples <= 0:
        return []

    lower, upper = problem.box()
    ppy = problem.periods_per_year
    attempt_limit = max(samples * ATTEMPTS_PER_SAMPLE, MIN_ATTEMPTS)

    accepted: list[NDArray[np.floating[Any]]] = []
    found = 0
    attempts = 0
    while found < samples and attempts < attempt_limit:
        batch = min(samples, attempt_limit - attempts)
        attempts += batch

        if problem.allow_short:
            draws = rng.standard_normal((batch, n))
        else:
            draws = rng.exponential(1.0, (batch, n))

        sums = draws.sum(axis=1)
        usable = np.abs(sums) >= ZERO_SUM
        weights = draws[usable] / sums[usable, None]

        in_box = np.all(
            (weights >= lower - BOUND_TOLERANCE) & (weights <= upper + BOUND_TOLERANCE), axis=1
        )
        weights = weights[in_box]

        variances = np.einsum("ij,jk,ik->i", weights, problem.sigma, weights)
        weights = weights[np.isfinite(variances)]

        take = weights[: samples - found]
        accepted.append(take)
        found += take.shape[0]

    if not accepted or found == 0:
        logger.warning(
            "No random portfolio satisfied the weight bounds",
            extra={"attempts": attempts, "assets": n},
        )
        return []

    weights = np.vstack(accepted)
    variances_annual = np.maximum(np.einsum("ij,jk,ik->i", weights, problem.sigma, weights), 0.0) * ppy
    returns_annual = (weights @ problem.mu) * ppy

    logger.debug(
        "Sampled portfolio space",
        extra={"requested": samples, "accepted": found, "attempts": attempts},
    )

    return [
        PortfolioPoint(
            expected_return_annual=float(r),
            variance_annual=float(v),
            volatility_annual=float(np.sqrt(v)),
        )
        for r, v in zip(returns_annual, variances_annual, strict=True)
    ]


def build_frontier_points(
    candidates: list[PortfolioCandidate], tickers: tuple[str, ...]
) -> list[FrontierPoint]:
    """Frontier deduplicated by return (8 decimals, lowest volatility wins), ascending."""
    best: dict[float, PortfolioCandidate] = {}
    for candidate in candidates:
        key = round(candidate.expected_return_annual, FRONTIER_DEDUP_DECIMALS)
        existing = best.get(key)
        if existing is None or candidate.volatility_annual < existing.volatility_annual:
            best[key] = candidate

    ordered = sorted(best.values(), key=lambda c: c.expected_return_annual)
    return [
        FrontierPoint(
            expected_return_annual=c.expected_return_annual,
            volatility_annual=c.volatility_annual,
            variance_annual=c.volatility_annual**2,
            weights={t: float(w) for t, w in zip(tickers, c.weights, strict=True)},
        )
        for c in ordered
    ]


def select_frontier_index(
    points: list[FrontierPoint],
    tickers: tuple[str, ...],
    chosen_weights: NDArray[np.floating[Any]],
    chosen_return_annual: float,
) -> int | None:
    """Frontier point closest to the chosen portfolio.

    Closest return first; ties (within 1e-12) go to the smallest squared
    Euclidean distance between weight vectors.
    """
    if not points:
        return None

    selected = 0
    best_return_distance = np.inf
    best_weight_distance = np.inf
    for i, point in enumerate(points):
        return_distance = abs(point.expected_return_annual - chosen_return_annual)
        point_weights = np.array([point.weights.get(t, 0.0) for t in tickers])
        weight_distance = float(np.sum((point_weights - chosen_weights) ** 2))

        if return_distance < best_return_distance - DISTANCE_TOLERANCE or (
            abs(return_distance - best_return_distance) <= DISTANCE_TOLERANCE
            and weight_distance < best_weight_distance - DISTANCE_TOLERANCE
        ):
            best_return_distance = return_distance
            best_weight_distance = weight_distance
            selected = i

    return selected


def build_visualization(
    problem: OptimizationProblem,
    frontier: list[PortfolioCandidate],
    chosen_weights: NDArray[np.floating[Any]],
    rng: np.random.Generator,
    samples: int = DEFAULT_SAMPLES,
) -> PortfolioVisualization:
    """Assemble the cloud, the frontier and the highlighted frontier index."""
    portfolio_space = sample_portfolio_space(problem, rng, samples)
    points = build_frontier_points(frontier, problem.tickers)

    chosen_return_annual = annualize_return(float(problem.mu @ chosen_weights), problem.periods_per_year)
    selected = select_frontier_index(points, problem.tickers, chosen_weights, chosen_return_annual)

    return PortfolioVisualization(
        portfolio_space=portfolio_space,
        efficient_frontier=points,
        selected_frontier_index=selected,
    )
