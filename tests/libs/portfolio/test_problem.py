"""
Tests for problem construction: bounds, scenarios and de-annualization.
"""

import numpy as np
import pytest

from libs.common.exceptions import ConfigError
from libs.portfolio import (
    OptimizationMethod,
    OptimizationRequest,
    ProblemBuilder,
    ReturnAligner,
    estimate_moments,
)
from libs.portfolio.problem import annual_to_periodic, build_bounds, build_scenarios
from tests.libs.portfolio.conftest import create_diagonal_prices

TICKERS = ["AAA", "BBB"]


def _request(**kwargs) -> OptimizationRequest:
    return OptimizationRequest(prices_by_ticker=create_diagonal_prices(), **kwargs)


def _problem(**kwargs):
    request = _request(**kwargs)
    data = ReturnAligner().build(request)
    return ProblemBuilder().build(request, data, estimate_moments(data.returns)), data


class TestBuildBounds:
    def test_long_only_defaults(self):
        lower, upper = build_bounds(_request(), TICKERS)

        np.testing.assert_array_equal(lower, [0.0, 0.0])
        np.testing.assert_array_equal(upper, [1.0, 1.0])

    def test_short_without_overrides_has_no_bounds(self):
        assert build_bounds(_request(allow_short=True), TICKERS) == (None, None)

    def test_short_with_global_override(self):
        lower, upper = build_bounds(_request(allow_short=True, global_min_weight=-0.5), TICKERS)

        np.testing.assert_array_equal(lower, [-0.5, -0.5])
        np.testing.assert_array_equal(upper, [1.0, 1.0])

    def test_long_only_clamps_overrides(self):
        lower, upper = build_bounds(
            _request(global_min_weight=-0.3, global_max_weight=1.5, upper_bounds={"aaa": 0.4}),
            TICKERS,
        )

        np.testing.assert_array_equal(lower, [0.0, 0.0])
        np.testing.assert_array_equal(upper, [0.4, 1.0])

    def test_per_asset_bounds_tighten_globals(self):
        lower, upper = build_bounds(
            _request(
                allow_short=True,
                global_min_weight=-0.2,
                global_max_weight=0.9,
                lower_bounds={"BBB": 0.1},
                upper_bounds={"AAA": 0.7},
            ),
            TICKERS,
        )

        np.testing.assert_array_equal(lower, [-0.2, 0.1])
        np.testing.assert_array_equal(upper, [0.7, 0.9])

    def test_global_min_above_max(self):
        with pytest.raises(ConfigError, match="Global min weight cannot exceed"):
            build_bounds(_request(global_min_weight=0.6, global_max_weight=0.4), TICKERS)

    def test_inconsistent_per_asset_bounds(self):
        with pytest.raises(ConfigError, match="Bounds for 'AAA' are inconsistent"):
            build_bounds(_request(lower_bounds={"AAA": 0.8}, upper_bounds={"AAA": 0.2}), TICKERS)

    def test_non_finite_bound(self):
        with pytest.raises(ConfigError, match="must be a finite number"):
            build_bounds(_request(upper_bounds={"AAA": float("nan")}), TICKERS)


class TestBuildScenarios:
    def test_absent_scenarios_copy_history(self):
        history = np.array([[0.1, 0.2], [0.3, 0.4]])
        scenarios = build_scenarios(None, history, 2)

        np.testing.assert_array_equal(scenarios, history)
        assert scenarios is not history

    def test_empty_scenarios_treated_as_absent(self):
        history = np.array([[0.1, 0.2]])
        np.testing.assert_array_equal(build_scenarios([], history, 2), history)

    def test_row_length_mismatch(self):
        with pytest.raises(ConfigError, match="Scenario vector 1"):
            build_scenarios([[0.1, 0.2], [0.3]], np.zeros((1, 2)), 2)


class TestProblemBuilder:
    def test_annual_rates_are_de_annualized_linearly(self):
        problem, data = _problem(target_return_annual=0.73, risk_free_annual=0.0365)

        assert problem.target_return == pytest.approx(0.73 / data.periods_per_year)
        assert problem.risk_free_rate == pytest.approx(0.0365 / data.periods_per_year)

    def test_cvar_alpha_defaults(self):
        problem, _ = _problem()
        assert problem.cvar_alpha == pytest.approx(0.95)

    def test_problem_carries_method_and_tickers(self):
        problem, _ = _problem(method=OptimizationMethod.HEURISTIC)

        assert problem.method == OptimizationMethod.HEURISTIC
        assert problem.tickers == ("AAA", "BBB")
        assert problem.n_assets == 2

    def test_with_target_return_only_changes_target(self):
        problem, _ = _problem()
        derived = problem.with_target_return(0.01)

        assert derived.target_return == 0.01
        assert problem.target_return is None
        assert derived.sigma is problem.sigma

    def test_box_for_unbounded_shorts(self):
        problem, _ = _problem(allow_short=True)
        lower, upper = problem.box()

        assert not problem.has_bounds
        np.testing.assert_array_equal(lower, [-1.0, -1.0])
        np.testing.assert_array_equal(upper, [1.0, 1.0])

    def test_annual_to_periodic_rejects_non_positive_frequency(self):
        with pytest.raises(ConfigError):
            annual_to_periodic(0.05, 0.0)
