"""
Synthetic E-step statistics for known item parameters.

These tables stand in for the output of an E-step when testing or
demonstrating the M-step:
- expected_estep_estimates: exact expected counts under the true model
- sample_estep_estimates: counts tallied from simulated respondents placed
  on the quadrature grid
"""

from collections.abc import Sequence

import numpy as np

from calibration_service.core.utils import get_rng
from calibration_service.irt.estimation.data_models import EstepEstimates
from calibration_service.irt.estimation.parameters import ItemResponseModel
from calibration_service.irt.estimation.quadrature import (
    DistributionApproximation,
)


def expected_estep_estimates(
    items: Sequence[ItemResponseModel],
    latent_distribution: DistributionApproximation,
    n_examinees: float = 1000.0,
) -> EstepEstimates:
    """
    Exact expected counts r_ck = N * w_k * P(Y=c | θ_k).

    Args:
        items: Items with their true (current) parameters.
        latent_distribution: Grid and densities of the ability distribution.
        n_examinees: Total expected number of respondents.

    Returns:
        EstepEstimates with nt = N * w.
    """
    theta = latent_distribution.points
    weights = latent_distribution.densities / latent_distribution.densities.sum()
    nt = n_examinees * weights

    rjk = []
    for item in items:
        # probabilities: (n_points, n_categories) -> table (n_categories, n_points)
        probs = item.probabilities(theta)
        rjk.append((probs * nt[:, np.newaxis]).T)

    return EstepEstimates(rjk=tuple(rjk), nt=nt)


def sample_estep_estimates(
    items: Sequence[ItemResponseModel],
    latent_distribution: DistributionApproximation,
    n_examinees: int,
    seed: int | None = None,
) -> EstepEstimates:
    """
    Counts from simulated respondents with abilities drawn from the grid.

    Each respondent is assigned a quadrature point with probability equal to
    its density, then answers every item according to the item's current
    parameters.

    Args:
        items: Items with their true (current) parameters.
        latent_distribution: Grid and densities of the ability distribution.
        n_examinees: Number of simulated respondents.
        seed: Random seed for reproducibility.

    Returns:
        EstepEstimates holding the tallied counts.
    """
    rng = get_rng(seed)
    theta = latent_distribution.points
    weights = latent_distribution.densities / latent_distribution.densities.sum()
    n_points = latent_distribution.n_points

    point_idx = rng.choice(n_points, size=n_examinees, p=weights)
    nt = np.bincount(point_idx, minlength=n_points).astype(np.int64)

    rjk = []
    for item in items:
        probs = item.probabilities(theta)
        table = np.zeros((item.n_categories, n_points), dtype=np.float64)
        for k in range(n_points):
            if nt[k] > 0:
                p = probs[k] / probs[k].sum()
                table[:, k] = rng.multinomial(nt[k], p)
        rjk.append(table)

    return EstepEstimates(rjk=tuple(rjk), nt=nt.astype(np.float64))
