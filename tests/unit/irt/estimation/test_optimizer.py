"""
Tests for the scipy-backed minimizer contract.
"""

import numpy as np
import pytest
from scipy.optimize import OptimizeResult

from calibration_service.irt.estimation import optimizer
from calibration_service.irt.estimation.config import OptimizerConfig
from calibration_service.irt.estimation.enums import TerminationCode
from calibration_service.irt.estimation.optimizer import (
    OptimizerFailure,
    OptimizerResult,
    ScipyMinimizer,
)


def quadratic(x: np.ndarray) -> float:
    return float((x[0] - 1.0) ** 2 + 2.0 * (x[1] + 0.5) ** 2)


def rosenbrock(x: np.ndarray) -> float:
    return float(100.0 * (x[1] - x[0] ** 2) ** 2 + (1.0 - x[0]) ** 2)


class TestScipyMinimizer:
    @pytest.mark.parametrize("method", ["BFGS", "L-BFGS-B"])
    def test_finds_minimum(self, method: str) -> None:
        """Should converge on a smooth quadratic."""
        minimizer = ScipyMinimizer(method=method)

        outcome = minimizer.minimize(quadratic, np.array([5.0, 5.0]), 500)

        assert isinstance(outcome, OptimizerResult)
        np.testing.assert_allclose(outcome.parameters, [1.0, -0.5], atol=1e-4)
        assert outcome.termination_code <= TerminationCode.NO_LOWER_POINT
        assert not outcome.is_hard_failure

    def test_iteration_limit_is_hard_failure(self) -> None:
        """Running out of iterations should report code 4."""
        minimizer = ScipyMinimizer()

        outcome = minimizer.minimize(rosenbrock, np.array([-1.2, 1.0]), 1)

        assert isinstance(outcome, OptimizerResult)
        assert outcome.termination_code == TerminationCode.ITERATION_LIMIT
        assert outcome.is_hard_failure

    def test_non_finite_start_is_failure(self) -> None:
        """A non-finite objective at the start point is a numerical fault."""
        minimizer = ScipyMinimizer()

        outcome = minimizer.minimize(
            lambda x: float("nan"), np.array([0.0, 0.0]), 500
        )

        assert isinstance(outcome, OptimizerFailure)
        assert "initial point" in outcome.reason

    def test_non_finite_initial_point_is_failure(self) -> None:
        """A NaN start vector should not reach scipy."""
        minimizer = ScipyMinimizer()

        outcome = minimizer.minimize(quadratic, np.array([np.nan, 0.0]), 500)

        assert isinstance(outcome, OptimizerFailure)

    def test_numerical_exception_is_failure(self) -> None:
        """Arithmetic errors raised by the objective become failures."""
        calls = {"n": 0}

        def exploding(x: np.ndarray) -> float:
            calls["n"] += 1
            if calls["n"] > 1:
                raise ZeroDivisionError("division by zero")
            return quadratic(x)

        outcome = ScipyMinimizer().minimize(exploding, np.array([1.0, 1.0]), 500)

        assert isinstance(outcome, OptimizerFailure)
        assert "ZeroDivisionError" in outcome.reason

    def test_exception_at_initial_point_is_failure(self) -> None:
        """An objective that raises on its first evaluation becomes a failure."""

        def broken(x: np.ndarray) -> float:
            raise ZeroDivisionError("division by zero at start")

        outcome = ScipyMinimizer().minimize(broken, np.array([1.0]), 500)

        assert isinstance(outcome, OptimizerFailure)
        assert "ZeroDivisionError" in outcome.reason

    @pytest.mark.parametrize("status", [3, 99])
    def test_unmapped_status_is_failure(
        self, monkeypatch: pytest.MonkeyPatch, status: int
    ) -> None:
        """scipy statuses without a termination code are numerical faults."""

        def fake_minimize(**kwargs: object) -> OptimizeResult:
            return OptimizeResult(
                x=np.array([1.0, -0.5]),
                fun=0.0,
                status=status,
                message="Desired error not necessarily achieved",
                nit=4,
            )

        monkeypatch.setattr(optimizer, "minimize", fake_minimize)

        outcome = ScipyMinimizer().minimize(quadratic, np.array([5.0, 5.0]), 500)

        assert isinstance(outcome, OptimizerFailure)
        assert f"status {status}" in outcome.reason

    @pytest.mark.parametrize(
        ("status", "code"),
        [
            (0, TerminationCode.GRADIENT_CLOSE_TO_ZERO),
            (2, TerminationCode.NO_LOWER_POINT),
            (1, TerminationCode.ITERATION_LIMIT),
        ],
    )
    def test_mapped_status(
        self,
        monkeypatch: pytest.MonkeyPatch,
        status: int,
        code: TerminationCode,
    ) -> None:
        """Known scipy statuses map to termination codes."""

        def fake_minimize(**kwargs: object) -> OptimizeResult:
            return OptimizeResult(
                x=np.array([1.0, -0.5]), fun=0.0, status=status, message="", nit=4
            )

        monkeypatch.setattr(optimizer, "minimize", fake_minimize)

        outcome = ScipyMinimizer().minimize(quadratic, np.array([5.0, 5.0]), 500)

        assert isinstance(outcome, OptimizerResult)
        assert outcome.termination_code == code
        assert outcome.n_iterations == 4

    def test_from_config(self) -> None:
        """Settings should come from OptimizerConfig."""
        minimizer = ScipyMinimizer.from_config(
            OptimizerConfig(method="L-BFGS-B", gradient_tolerance=1e-8)
        )

        assert minimizer.method == "L-BFGS-B"
        assert minimizer.gradient_tolerance == 1e-8
