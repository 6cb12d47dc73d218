"""Tests for the engine exception hierarchy."""

import pytest

from libs.common import ConfigError, DataError, PortfolioEngineError, SelectionError, SolverError


class TestExceptionHierarchy:
    @pytest.mark.parametrize("error_cls", [DataError, ConfigError, SolverError, SelectionError])
    def test_all_errors_share_base(self, error_cls) -> None:
        with pytest.raises(PortfolioEngineError):
            raise error_cls("failure")

    def test_solver_error_keeps_status(self) -> None:
        error = SolverError("QP solver failed", status="infeasible")

        assert error.status == "infeasible"
        assert str(error) == "QP solver failed"

    def test_solver_error_status_optional(self) -> None:
        assert SolverError("inversion failed").status is None

    def test_errors_are_distinct(self) -> None:
        assert not issubclass(SolverError, ConfigError)
        assert not issubclass(DataError, ConfigError)
