"""
Exception hierarchy for the portfolio optimization engine.

Every failure raised by the engine derives from PortfolioEngineError so that
callers (the web layer, notebooks, batch jobs) can surface the message as a
validation error without catching unrelated exceptions.

Propagation rules:
- DataError and ConfigError abort the optimization immediately.
- SolverError is caught per grid point by the objective selector only.
- SelectionError means the whole candidate search came up empty.
"""


class PortfolioEngineError(Exception):
    """
    Base exception for all engine errors.

    Example:
        >>> try:
        ...     engine.optimize(request)
        ... except PortfolioEngineError as e:
        ...     logger.error(f"Optimization failed: {e}")
    """

    pass


class DataError(PortfolioEngineError):
    """
    Raised when price data cannot produce a usable return matrix.

    This includes tickers with fewer than two price points, fewer than two
    aligned timestamps after filtering, a non-positive inferred sampling
    frequency, or a zero/non-finite price used as a return denominator.

    Example:
        >>> if len(closes) < 2:
        ...     raise DataError(f"Ticker '{ticker}' must contain at least two price points.")
    """

    pass


class ConfigError(PortfolioEngineError):
    """
    Raised when the request is internally inconsistent.

    Examples are min weight above max weight, a scenario row whose length does
    not match the asset count, or an objective that needs a target return
    when none was supplied.

    Example:
        >>> if lower > upper:
        ...     raise ConfigError(f"Bounds for '{ticker}' are inconsistent")
    """

    pass


class SolverError(PortfolioEngineError):
    """
    Raised when a numerical solver does not reach an optimal solution.

    The solver status is kept on the exception so callers can distinguish an
    infeasible problem from a numerical breakdown.

    Example:
        >>> if problem.status not in OPTIMAL_STATUSES:
        ...     raise SolverError("QP solver failed", status=problem.status)
    """

    def __init__(self, message: str, status: str | None = None) -> None:
        super().__init__(message)
        self.status = status


class SelectionError(PortfolioEngineError):
    """
    Raised when no feasible candidate exists for the requested objective.

    Example:
        >>> if best is None:
        ...     raise SelectionError("No feasible portfolio for objective max_sharpe")
    """

    pass
