"""
Tests for return alignment and frequency inference.
"""

import math
from datetime import UTC, datetime, timedelta, timezone

import numpy as np
import pytest

from libs.common.exceptions import ConfigError, DataError
from libs.portfolio import OptimizationRequest, ReturnAligner, infer_periods_per_year
from libs.portfolio.returns import sort_tickers
from tests.libs.portfolio.conftest import START, bars_at, make_bars


def _build(prices, **kwargs):
    return ReturnAligner().build(OptimizationRequest(prices_by_ticker=prices, **kwargs))


class TestAlignment:
    """Timestamp intersection and filtering."""

    def test_intersection_keeps_common_timestamps_only(self):
        """A on days {1,2,3} and B on {2,3,4} yield one return dated day 3."""
        data = _build(
            {
                "A": bars_at([1, 2, 3], [100.0, 110.0, 121.0]),
                "B": bars_at([2, 3, 4], [50.0, 55.0, 60.0]),
            }
        )

        assert data.observations == 1
        assert data.return_dates == [START + timedelta(days=3)]
        np.testing.assert_allclose(data.returns[0], [0.1, 0.1])

    def test_unsorted_bars_with_duplicates_keep_last_close(self):
        bars = bars_at([2, 0, 1, 1], [130.0, 100.0, 999.0, 120.0])
        data = _build({"A": bars, "B": bars_at([0, 1, 2], [10.0, 10.0, 10.0])})

        assert data.observations == 2
        np.testing.assert_allclose(data.returns[:, 0], [0.2, 130.0 / 120.0 - 1.0])

    def test_tickers_sorted_case_insensitively(self):
        bars = make_bars([1.0, 2.0, 3.0])
        data = _build({"bbb": bars, "Ccc": bars, "AAA": bars})

        assert data.tickers == ["AAA", "bbb", "Ccc"]

    def test_lookback_keeps_last_aligned_timestamps(self):
        closes = [100.0 + i for i in range(10)]
        data = _build({"A": make_bars(closes), "B": make_bars(closes)}, lookback_periods=4)

        assert data.observations == 3
        assert data.return_dates[-1] == START + timedelta(days=9)

    def test_start_and_end_filters_are_inclusive(self):
        closes = [100.0 + i for i in range(10)]
        data = _build(
            {"A": make_bars(closes)},
            start=START + timedelta(days=2),
            end=START + timedelta(days=5),
        )

        assert data.observations == 3
        assert data.return_dates[0] == START + timedelta(days=3)
        assert data.return_dates[-1] == START + timedelta(days=5)

    def test_filters_apply_before_lookback(self):
        closes = [100.0 + i for i in range(10)]
        data = _build(
            {"A": make_bars(closes)},
            end=START + timedelta(days=5),
            lookback_periods=3,
        )

        assert data.return_dates == [START + timedelta(days=4), START + timedelta(days=5)]

    def test_aware_and_naive_bars_align_in_utc(self):
        """Bars stamped 02:00 at UTC+2 are the same instants as naive UTC midnight."""
        plus_two = timezone(timedelta(hours=2))
        aware_start = START.replace(tzinfo=plus_two) + timedelta(hours=2)
        data = _build(
            {
                "A": make_bars([100.0, 110.0, 121.0], start=aware_start),
                "B": make_bars([50.0, 55.0, 60.5]),
            }
        )

        assert data.observations == 2
        assert data.return_dates == [START + timedelta(days=1), START + timedelta(days=2)]
        np.testing.assert_allclose(data.returns, [[0.1, 0.1], [0.1, 0.1]])

    def test_aware_filters_against_naive_bars(self):
        closes = [100.0 + i for i in range(10)]
        data = _build(
            {"A": make_bars(closes)},
            start=START.replace(tzinfo=UTC) + timedelta(days=2),
            end=START.replace(tzinfo=UTC) + timedelta(days=5),
        )

        assert data.observations == 3
        assert data.return_dates[0] == START + timedelta(days=3)
        assert data.return_dates[-1] == START + timedelta(days=5)

    def test_non_finite_return_is_zeroed(self):
        data = _build({"A": make_bars([100.0, 110.0, math.inf])})

        np.testing.assert_allclose(data.returns[:, 0], [0.1, 0.0])
        assert np.isfinite(data.returns).all()


class TestAlignmentErrors:
    """Unusable inputs raise DataError/ConfigError."""

    def test_empty_ticker_map(self):
        with pytest.raises(DataError):
            _build({})

    def test_single_price_point(self):
        with pytest.raises(DataError, match="at least two price points"):
            _build({"A": make_bars([100.0]), "B": make_bars([1.0, 2.0])})

    def test_duplicates_collapsing_to_one_point(self):
        with pytest.raises(DataError, match="at least two price points"):
            _build({"A": bars_at([0, 0], [1.0, 2.0])})

    def test_disjoint_timestamps(self):
        with pytest.raises(DataError, match="Not enough aligned timestamps"):
            _build({"A": bars_at([0, 1], [1.0, 2.0]), "B": bars_at([2, 3], [1.0, 2.0])})

    def test_zero_price_denominator(self):
        with pytest.raises(DataError, match="Invalid price for 'A'"):
            _build({"A": make_bars([100.0, 0.0, 50.0])})

    def test_zero_final_price_is_allowed(self):
        data = _build({"A": make_bars([100.0, 50.0, 0.0])})
        np.testing.assert_allclose(data.returns[:, 0], [-0.5, -1.0])

    def test_case_insensitive_duplicate_tickers(self):
        bars = make_bars([1.0, 2.0])
        with pytest.raises(ConfigError, match="differ only by case"):
            _build({"abc": bars, "ABC": bars})

    def test_sort_tickers_rejects_case_duplicates(self):
        with pytest.raises(ConfigError):
            sort_tickers(["X", "x"])


class TestPeriodsPerYear:
    """Sampling-frequency inference."""

    def test_daily_calendar_bars_over_a_year(self):
        timestamps = [START + timedelta(days=i) for i in range(366)]
        assert 300 <= infer_periods_per_year(timestamps) <= 400

    def test_weekly_bars(self):
        timestamps = [START + timedelta(weeks=i) for i in range(53)]
        assert infer_periods_per_year(timestamps) == pytest.approx(365.25 / 7)

    def test_aligner_reports_inferred_frequency(self):
        data = _build({"A": make_bars([1.0, 2.0, 3.0, 4.0, 5.0])})
        assert data.periods_per_year == pytest.approx(365.25)

    def test_override_wins(self):
        timestamps = [START, START + timedelta(days=1)]
        assert infer_periods_per_year(timestamps, override=252.0) == 252.0

    @pytest.mark.parametrize("override", [0.0, -1.0, float("inf"), float("nan")])
    def test_invalid_override(self, override):
        with pytest.raises(DataError):
            infer_periods_per_year([START, START + timedelta(days=1)], override=override)

    def test_non_advancing_timestamps(self):
        with pytest.raises(DataError):
            infer_periods_per_year([START, START])

    def test_too_few_timestamps(self):
        with pytest.raises(DataError):
            infer_periods_per_year([datetime(2024, 1, 1)])
