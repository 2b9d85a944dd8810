"""
Marginal log-likelihood of a single item for M-step optimization.

Given the expected response counts r_ck (category c, quadrature point k)
from the E-step, the objective for one item is

    -log L(params) = -Σ_k Σ_c r_ck * log P(Y=c | θ_k, params)

The probability kernels are compiled with numba; the item models in
parameters.py call them for both current and candidate parameter vectors.
"""

from typing import TYPE_CHECKING

import numpy as np
from numba import njit  # type: ignore
from numpy.typing import NDArray

from calibration_service.irt.estimation.quadrature import (
    DistributionApproximation,
)

if TYPE_CHECKING:
    from calibration_service.irt.estimation.parameters import (
        ItemResponseModel,
    )

# Exponent clipping bounds to prevent overflow
EXPONENT_CLIP_MIN = -30.0
EXPONENT_CLIP_MAX = 30.0

# Floor applied to probabilities before taking logs
PROBABILITY_FLOOR = 1e-300


@njit  # type: ignore
def compute_logistic_probabilities(
    theta: NDArray[np.float64],
    discrimination: float,
    difficulty: float,
    guessing: float,
    slipping: float,
    scaling: float,
) -> NDArray[np.float64]:
    """
    Compute 4PL response probabilities at given theta values.

    P(Y=1 | θ) = c + (s - c) / (1 + exp(-D * a * (θ - b)))

    The 1PL, 2PL and 3PL are the special cases with c = 0 and/or s = 1.

    Args:
        theta: Ability values, shape (n_theta,).
        discrimination: Slope a.
        difficulty: Location b.
        guessing: Lower asymptote c.
        slipping: Upper asymptote s.
        scaling: Scaling constant D.

    Returns:
        Probabilities, shape (n_theta, 2). Column 0 is incorrect,
        column 1 is correct.
    """
    n_theta = theta.shape[0]
    probs = np.empty((n_theta, 2), dtype=np.float64)

    for i in range(n_theta):
        z = -scaling * discrimination * (theta[i] - difficulty)
        z = min(max(z, EXPONENT_CLIP_MIN), EXPONENT_CLIP_MAX)
        p = guessing + (slipping - guessing) / (1.0 + np.exp(z))
        probs[i, 0] = 1.0 - p
        probs[i, 1] = p

    return probs


@njit  # type: ignore
def compute_partial_credit_probabilities(
    theta: NDArray[np.float64],
    discrimination: float,
    steps: NDArray[np.float64],
    scaling: float,
) -> NDArray[np.float64]:
    """
    Compute generalized partial credit probabilities at given theta values.

    P(Y=k | θ) = exp(Σ_{v<=k} D * a * (θ - b_v)) / Σ_h exp(Σ_{v<=h} D * a * (θ - b_v))

    Args:
        theta: Ability values, shape (n_theta,).
        discrimination: Slope a.
        steps: Step parameters (b_1, ..., b_m), shape (m,).
        scaling: Scaling constant D.

    Returns:
        Probabilities, shape (n_theta, m + 1).
    """
    n_theta = theta.shape[0]
    n_steps = steps.shape[0]
    probs = np.empty((n_theta, n_steps + 1), dtype=np.float64)
    numerators = np.empty(n_steps + 1, dtype=np.float64)

    for i in range(n_theta):
        # Cumulative step sums, category 0 is the reference
        numerators[0] = 0.0
        cumulative = 0.0
        for v in range(n_steps):
            cumulative += scaling * discrimination * (theta[i] - steps[v])
            numerators[v + 1] = cumulative

        # Log-sum-exp shift for stability
        largest = numerators[0]
        for k in range(1, n_steps + 1):
            if numerators[k] > largest:
                largest = numerators[k]

        total = 0.0
        for k in range(n_steps + 1):
            e = np.exp(numerators[k] - largest)
            probs[i, k] = e
            total += e
        for k in range(n_steps + 1):
            probs[i, k] /= total

    return probs


@njit  # type: ignore
def negative_marginal_log_likelihood(
    probs: NDArray[np.float64],
    rjk: NDArray[np.float64],
) -> float:
    """
    Negative expected log-likelihood of one item.

    Args:
        probs: Category probabilities, shape (n_points, n_categories).
        rjk: Expected counts, shape (n_categories, n_points).

    Returns:
        -Σ_k Σ_c rjk[c, k] * log P(c | θ_k)
    """
    n_categories, n_points = rjk.shape
    total = 0.0

    for k in range(n_points):
        for c in range(n_categories):
            r = rjk[c, k]
            if r > 0.0:
                total -= r * np.log(max(probs[k, c], PROBABILITY_FLOOR))

    return total


class ItemLogLikelihood:
    """
    Objective function for one item's M-step fit.

    Calling the objective with a parameter vector (laid out like
    item.to_array()) returns the negative marginal log-likelihood of the
    item's expected response table at the distribution's quadrature points.
    """

    def __init__(
        self,
        item: "ItemResponseModel",
        latent_distribution: DistributionApproximation,
        rjk: NDArray[np.float64],
    ):
        """
        Initialize objective.

        Args:
            item: Item whose parameters are being optimized.
            latent_distribution: Quadrature points of the ability scale.
            rjk: Expected counts, shape (n_categories, n_points).

        Raises:
            ValueError: If rjk does not match the item and distribution.
        """
        expected_shape = (item.n_categories, latent_distribution.n_points)
        if rjk.shape != expected_shape:
            raise ValueError(
                f"Expected counts for item {item.item_id} must have shape "
                f"{expected_shape}, got {rjk.shape}"
            )

        self.item = item
        self._theta = np.array(latent_distribution.points, dtype=np.float64)
        self._rjk = np.ascontiguousarray(rjk, dtype=np.float64)

    def __call__(self, params: NDArray[np.float64]) -> float:
        probs = self.item.probabilities_from_array(
            np.asarray(params, dtype=np.float64), self._theta
        )
        return float(negative_marginal_log_likelihood(probs, self._rjk))
