"""Common utilities and exceptions."""

from libs.common.exceptions import (
    ConfigError,
    DataError,
    PortfolioEngineError,
    SelectionError,
    SolverError,
)

__all__ = [
    "PortfolioEngineError",
    "DataError",
    "ConfigError",
    "SolverError",
    "SelectionError",
]
