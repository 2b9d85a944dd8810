"""
Numerical minimizer used by the M-step.

The M-step treats the minimizer as a black box:

    minimize(objective, initial_point, max_iterations)
        -> OptimizerResult | OptimizerFailure

OptimizerResult carries the optimum and a termination code (see
TerminationCode). Codes above HARD_FAILURE_CODE mark fits the M-step must
not use. OptimizerFailure is returned, never raised, when the minimizer
breaks down numerically.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import minimize

from calibration_service.irt.estimation.config import (
    DEFAULT_GRADIENT_TOLERANCE,
    DEFAULT_OPTIMIZER_METHOD,
    OptimizerConfig,
)
from calibration_service.irt.estimation.enums import TerminationCode

# Termination codes above this value are hard failures
HARD_FAILURE_CODE = TerminationCode.NO_LOWER_POINT

# scipy.optimize status values shared by BFGS and L-BFGS-B
_SCIPY_SUCCESS = 0
_SCIPY_MAX_ITERATIONS = 1
_SCIPY_PRECISION_LOSS = 2

Objective = Callable[[NDArray[np.float64]], float]


@dataclass(frozen=True)
class OptimizerResult:
    """
    Outcome of a minimization that produced a parameter vector.

    Attributes:
        parameters: Optimized parameter vector.
        termination_code: How the minimizer stopped.
        n_iterations: Iterations used.
        objective_value: Objective at the optimum.
    """

    parameters: NDArray[np.float64]
    termination_code: TerminationCode
    n_iterations: int
    objective_value: float

    @property
    def is_hard_failure(self) -> bool:
        return self.termination_code > HARD_FAILURE_CODE


@dataclass(frozen=True)
class OptimizerFailure:
    """
    Numerical breakdown of the minimizer.

    Attributes:
        reason: Human readable description of the fault.
    """

    reason: str


MinimizeOutcome = OptimizerResult | OptimizerFailure


class Minimizer(Protocol):
    def minimize(
        self,
        objective: Objective,
        initial_point: NDArray[np.float64],
        max_iterations: int,
    ) -> MinimizeOutcome: ...


class ScipyMinimizer:
    """
    Unconstrained quasi-Newton minimizer backed by scipy.optimize.minimize.

    Gradients are approximated by finite differences. Boundary handling is
    left to the caller.
    """

    def __init__(
        self,
        method: str = DEFAULT_OPTIMIZER_METHOD,
        gradient_tolerance: float = DEFAULT_GRADIENT_TOLERANCE,
    ):
        self.method = method
        self.gradient_tolerance = gradient_tolerance

    @classmethod
    def from_config(cls, config: OptimizerConfig) -> "ScipyMinimizer":
        return cls(
            method=config.method, gradient_tolerance=config.gradient_tolerance
        )

    def minimize(
        self,
        objective: Objective,
        initial_point: NDArray[np.float64],
        max_iterations: int,
    ) -> MinimizeOutcome:
        """
        Minimize objective starting from initial_point.

        Args:
            objective: Function to minimize.
            initial_point: Start vector.
            max_iterations: Iteration budget.

        Returns:
            OptimizerResult, or OptimizerFailure on numerical breakdown.
        """
        x0 = np.asarray(initial_point, dtype=np.float64)
        if not np.isfinite(x0).all():
            return OptimizerFailure("initial point is not finite")

        # BFGS and L-BFGS-B share the option names
        options = {"maxiter": max_iterations, "gtol": self.gradient_tolerance}

        try:
            with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
                if not np.isfinite(objective(x0)):
                    return OptimizerFailure(
                        "objective is not finite at initial point"
                    )
                result = minimize(
                    fun=objective,
                    x0=x0,
                    method=self.method,
                    options=options,
                )
        except (ArithmeticError, ValueError, np.linalg.LinAlgError) as e:
            return OptimizerFailure(f"{type(e).__name__}: {e}")

        if not np.isfinite(result.x).all() or not np.isfinite(result.fun):
            return OptimizerFailure(
                f"non-finite optimum (status {result.status}: {result.message})"
            )

        code = _termination_code(result.status)
        if code is None:
            return OptimizerFailure(
                f"status {result.status}: {result.message}"
            )

        return OptimizerResult(
            parameters=np.asarray(result.x, dtype=np.float64),
            termination_code=code,
            n_iterations=int(result.get("nit", 0)),
            objective_value=float(result.fun),
        )


def _termination_code(status: int) -> TerminationCode | None:
    """Map a scipy status to a termination code; None for a fault."""
    if status == _SCIPY_SUCCESS:
        return TerminationCode.GRADIENT_CLOSE_TO_ZERO
    if status == _SCIPY_PRECISION_LOSS:
        return TerminationCode.NO_LOWER_POINT
    if status == _SCIPY_MAX_ITERATIONS:
        return TerminationCode.ITERATION_LIMIT
    return None
