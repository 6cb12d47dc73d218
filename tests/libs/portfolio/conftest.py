"""
Shared fixtures and price-series builders for portfolio tests.
"""

import math
from datetime import datetime, timedelta
from typing import Any

import numpy as np
import pytest

from config.settings import EngineSettings
from libs.portfolio import MarkowitzEngine, OptimizationMethod, OptimizationProblem, PriceBar

START = datetime(2024, 1, 1)


def make_bars(
    closes: list[float],
    start: datetime = START,
    step: timedelta = timedelta(days=1),
) -> list[PriceBar]:
    """Bars with open/high/low equal to close at regular timestamps."""
    return [
        PriceBar(timestamp=start + i * step, open=c, high=c, low=c, close=c)
        for i, c in enumerate(closes)
    ]


def bars_at(days: list[int], closes: list[float], start: datetime = START) -> list[PriceBar]:
    """Bars on explicit day offsets from ``start``."""
    return [
        PriceBar(timestamp=start + timedelta(days=d), open=c, high=c, low=c, close=c)
        for d, c in zip(days, closes, strict=True)
    ]


def closes_from_log_returns(log_returns: list[float], initial: float = 100.0) -> list[float]:
    closes = [initial]
    for r in log_returns:
        closes.append(closes[-1] * math.exp(r))
    return closes


def create_diagonal_prices() -> dict[str, list[PriceBar]]:
    """
    Two assets with uncorrelated returns and a 1:4 variance ratio.

    AAA log returns alternate +/-0.1, BBB moves +0.2, +0.2, -0.2, -0.2, so the
    centered return patterns are orthogonal. The minimum-variance weight of
    AAA is therefore about 4 / (4 + 1) = 0.8.
    """
    return {
        "AAA": make_bars(closes_from_log_returns([0.1, -0.1, 0.1, -0.1])),
        "BBB": make_bars(closes_from_log_returns([0.2, 0.2, -0.2, -0.2])),
    }


def create_three_asset_prices(periods: int = 60) -> dict[str, list[PriceBar]]:
    """Deterministic, non-degenerate daily series for three assets."""
    a = [0.004 * math.sin(0.7 * t) + 0.0008 for t in range(periods)]
    b = [0.009 * math.cos(1.3 * t) + 0.0012 for t in range(periods)]
    c = [0.015 * math.sin(2.1 * t + 0.5) + 0.0002 for t in range(periods)]
    return {
        "AAA": make_bars(closes_from_log_returns(a)),
        "BBB": make_bars(closes_from_log_returns(b)),
        "CCC": make_bars(closes_from_log_returns(c)),
    }


def crash_scenarios(n_scenarios: int = 20, crash_row: int = 4) -> np.ndarray:
    """
    AAA and BBB hedge each other exactly; CCC earns 2% except for one -50% crash.

    With 20 scenarios and alpha = 0.95 the CVaR tail is the single worst
    scenario, so any CCC exposure raises the objective.
    """
    rows = []
    for i in range(n_scenarios):
        a = 0.01 if i % 2 == 0 else -0.01
        rows.append([a, -a, -0.5 if i == crash_row else 0.02])
    return np.array(rows)


def create_problem(
    mu: list[float],
    sigma: list[list[float]],
    method: OptimizationMethod,
    **overrides: Any,
) -> OptimizationProblem:
    """OptimizationProblem over synthetic moments; tickers are A0, A1, ..."""
    n = len(mu)
    fields: dict[str, Any] = {
        "tickers": tuple(f"A{i}" for i in range(n)),
        "mu": np.asarray(mu, dtype=np.float64),
        "sigma": np.asarray(sigma, dtype=np.float64),
        "target_return": None,
        "risk_free_rate": 0.0,
        "lower_bounds": np.zeros(n),
        "upper_bounds": np.ones(n),
        "allow_short": False,
        "scenario_returns": None,
        "cvar_alpha": 0.95,
        "method": method,
        "periods_per_year": 252.0,
    }
    fields.update(overrides)
    return OptimizationProblem(**fields)


@pytest.fixture()
def fast_settings() -> EngineSettings:
    """Settings with a small DE search and visualization cloud."""
    return EngineSettings(
        _env_file=None,
        de_min_population=12,
        de_population_multiplier=4,
        de_generations=40,
        visualization_samples=300,
    )


@pytest.fixture()
def engine(fast_settings: EngineSettings) -> MarkowitzEngine:
    return MarkowitzEngine(settings=fast_settings)


@pytest.fixture()
def diagonal_prices() -> dict[str, list[PriceBar]]:
    return create_diagonal_prices()


@pytest.fixture()
def three_asset_prices() -> dict[str, list[PriceBar]]:
    return create_three_asset_prices()
