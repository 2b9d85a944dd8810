"""
Discrete approximations of the latent ability distribution.

This module provides the (point, density) grid the M-step integrates over,
and factories for the usual starting grids:
- Gauss-Hermite quadrature scaled to N(mean, std^2)
- Evenly spaced points with normal densities
- Evenly spaced points with uniform densities

The grid is mutable: the latent distribution update re-estimates the
densities and rescales the points in place.
"""

from collections.abc import Iterator
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from scipy import stats

DEFAULT_QUADRATURE_POINTS = 41
DEFAULT_GRID_MINIMUM = -4.5
DEFAULT_GRID_MAXIMUM = 4.5


@dataclass
class DistributionApproximation:
    """
    Ordered (ability point, density) pairs approximating a distribution.

    Mean and standard deviation are always derived from the pairs, weighting
    by density normalized to its total.

    Attributes:
        points: Quadrature points (theta values), shape (n_points,).
        densities: Density at each point, shape (n_points,).
    """

    points: NDArray[np.float64]
    densities: NDArray[np.float64]

    def __post_init__(self) -> None:
        """Validate and take ownership of the arrays."""
        self.points = np.array(self.points, dtype=np.float64)
        self.densities = np.array(self.densities, dtype=np.float64)

        if self.points.ndim != 1:
            raise ValueError(
                f"points must be 1D, got shape {self.points.shape}"
            )
        if self.points.shape != self.densities.shape:
            raise ValueError(
                f"points and densities must have same length, "
                f"got {len(self.points)} and {len(self.densities)}"
            )
        if len(self.points) < 2:
            raise ValueError(
                f"Must have at least 2 points, got {len(self.points)}"
            )
        if (self.densities < 0).any():
            raise ValueError("densities must be >= 0")

    @property
    def n_points(self) -> int:
        """Number of quadrature points."""
        return len(self.points)

    def __len__(self) -> int:
        return self.n_points

    def __iter__(self) -> Iterator[tuple[float, float]]:
        for point, density in zip(self.points, self.densities, strict=True):
            yield float(point), float(density)

    def point_at(self, k: int) -> float:
        return float(self.points[k])

    def density_at(self, k: int) -> float:
        return float(self.densities[k])

    def set_point_at(self, k: int, value: float) -> None:
        self.points[k] = value

    def set_density_at(self, k: int, value: float) -> None:
        self.densities[k] = value

    def mean(self) -> float:
        """Density-weighted mean of the points."""
        weights = self.densities / self.densities.sum()
        return float(np.sum(weights * self.points))

    def standard_deviation(self) -> float:
        """Density-weighted (population) standard deviation of the points."""
        weights = self.densities / self.densities.sum()
        mean = np.sum(weights * self.points)
        variance = np.sum(weights * (self.points - mean) ** 2)
        return float(np.sqrt(variance))

    def copy(self) -> "DistributionApproximation":
        return DistributionApproximation(
            points=self.points.copy(), densities=self.densities.copy()
        )


def get_quadrature(
    n_points: int = DEFAULT_QUADRATURE_POINTS,
    mean: float = 0.0,
    std: float = 1.0,
) -> DistributionApproximation:
    """
    Gauss-Hermite grid for N(mean, std^2) as a starting latent distribution.

    Uses the probabilists' rule (weight exp(-x^2 / 2)), so the nodes only
    need the location-scale shift; densities are the normalized weights.
    """
    nodes, weights = np.polynomial.hermite_e.hermegauss(n_points)
    return DistributionApproximation(
        points=mean + std * nodes, densities=weights / weights.sum()
    )


def normal_approximation(
    minimum: float = DEFAULT_GRID_MINIMUM,
    maximum: float = DEFAULT_GRID_MAXIMUM,
    n_points: int = DEFAULT_QUADRATURE_POINTS,
    mean: float = 0.0,
    std: float = 1.0,
) -> DistributionApproximation:
    """
    Evenly spaced points weighted by the N(mean, std^2) density.

    Args:
        minimum: Smallest point.
        maximum: Largest point.
        n_points: Number of points.
        mean: Mean of the normal density.
        std: Standard deviation of the normal density.

    Returns:
        DistributionApproximation with densities summing to 1.
    """
    points = np.linspace(minimum, maximum, n_points)
    densities = stats.norm.pdf(points, loc=mean, scale=std)
    return DistributionApproximation(
        points=points, densities=densities / densities.sum()
    )


def uniform_approximation(
    minimum: float = DEFAULT_GRID_MINIMUM,
    maximum: float = DEFAULT_GRID_MAXIMUM,
    n_points: int = DEFAULT_QUADRATURE_POINTS,
) -> DistributionApproximation:
    """Evenly spaced points with equal densities summing to 1."""
    points = np.linspace(minimum, maximum, n_points)
    densities = np.full(n_points, 1.0 / n_points)
    return DistributionApproximation(points=points, densities=densities)
