"""
Tests for moment estimation.
"""

import numpy as np
import pytest

from libs.common.exceptions import DataError
from libs.portfolio import estimate_moments


class TestEstimateMoments:
    def test_mean_and_unbiased_covariance(self):
        returns = np.array([[0.01, 0.02], [0.03, -0.01], [-0.01, 0.00], [0.05, 0.03]])

        moments = estimate_moments(returns, ridge=0.0)

        np.testing.assert_allclose(moments.mu, returns.mean(axis=0))
        np.testing.assert_allclose(moments.sigma, np.cov(returns, rowvar=False, ddof=1))
        assert moments.observations == 4

    def test_ridge_added_to_diagonal_only(self):
        returns = np.array([[0.01, 0.02], [0.03, -0.01], [-0.01, 0.00]])

        plain = estimate_moments(returns, ridge=0.0)
        ridged = estimate_moments(returns, ridge=1e-4)

        np.testing.assert_allclose(ridged.sigma - plain.sigma, 1e-4 * np.eye(2), atol=1e-15)

    def test_sigma_is_symmetric(self):
        rng = np.random.default_rng(7)
        moments = estimate_moments(rng.normal(0.0, 0.01, size=(50, 5)))

        np.testing.assert_array_equal(moments.sigma, moments.sigma.T)

    def test_identical_series_remain_positive_definite(self):
        column = np.array([0.01, -0.02, 0.015, 0.003])
        returns = np.column_stack([column, column])

        moments = estimate_moments(returns)

        assert np.linalg.eigvalsh(moments.sigma).min() > 0

    def test_single_observation_rejected(self):
        with pytest.raises(DataError, match="Not enough observations"):
            estimate_moments(np.array([[0.01, 0.02]]))
