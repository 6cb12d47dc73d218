"""
First and second moment estimation from an aligned return matrix.

Sigma = unbiased sample covariance (n - 1) + ridge * I

The ridge keeps Sigma positive definite when assets are perfectly
collinear (e.g. two identical series), which both the closed-form inverse and
the QP solvers rely on. It is applied regardless of the strategy used later.
"""

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from libs.common.exceptions import DataError

logger = logging.getLogger(__name__)

DEFAULT_RIDGE = 1e-8


@dataclass(frozen=True, eq=False)
class MomentEstimate:
    """Per-period mean vector and regularized covariance matrix."""

    mu: NDArray[np.floating[Any]]  # (N,)
    sigma: NDArray[np.floating[Any]]  # (N, N), symmetric
    observations: int


def estimate_moments(
    returns: NDArray[np.floating[Any]], ridge: float = DEFAULT_RIDGE
) -> MomentEstimate:
    """
    Estimate per-period mean returns and ridge-regularized covariance.

    Args:
        returns: periods x assets simple returns
        ridge: Constant added to every diagonal entry

    Returns:
        MomentEstimate with symmetric sigma

    Raises:
        DataError: If fewer than two observations are available
    """
    matrix = np.asarray(returns, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[1] == 0:
        raise DataError(f"Return matrix must be 2-D with at least one asset, got {matrix.shape}")

    n_obs = matrix.shape[0]
    if n_obs < 2:
        raise DataError("Not enough observations.")

    mu = matrix.mean(axis=0)
    centered = matrix - mu
    sigma = centered.T @ centered / (n_obs - 1)
    # Symmetrize explicitly; the matmul is symmetric only up to rounding.
    sigma = (sigma + sigma.T) / 2.0
    sigma = sigma + ridge * np.eye(sigma.shape[0])

    logger.debug(
        "Estimated moments",
        extra={"assets": int(mu.shape[0]), "observations": n_obs, "ridge": ridge},
    )

    return MomentEstimate(mu=mu, sigma=sigma, observations=n_obs)
