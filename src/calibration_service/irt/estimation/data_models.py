"""
Data models exchanged between the E-step, the M-step and the EM driver.

This module defines:
- EstepEstimates: Expected sufficient statistics consumed by the M-step
- MStepDiagnostics: Per-pass tallies of optimizer and boundary events
- ScaleTransformation: Linear identification transform of the ability scale
"""

from collections.abc import Sequence
from dataclasses import dataclass, fields

import numpy as np
from numpy.typing import NDArray

from calibration_service.irt.estimation.parameters import ItemResponseModel
from calibration_service.irt.estimation.quadrature import (
    DistributionApproximation,
)


@dataclass(frozen=True)
class EstepEstimates:
    """
    Expected counts produced by the E-step. Never mutated by the M-step.

    Attributes:
        rjk: Per item, expected counts of each response category at each
            quadrature point, shape (n_categories_j, n_points). A 1D row of
            length n_points is accepted for a dichotomous item and read as
            the expected number of correct responses; the incorrect row is
            then nt - row.
        nt: Marginal expected counts per quadrature point, shape (n_points,).
    """

    rjk: tuple[NDArray[np.float64], ...]
    nt: NDArray[np.float64]

    def __post_init__(self) -> None:
        """Validate and normalize the count tables."""
        nt = np.array(self.nt, dtype=np.float64)
        if nt.ndim != 1:
            raise ValueError(f"nt must be 1D, got shape {nt.shape}")
        if not np.isfinite(nt).all() or (nt < 0).any():
            raise ValueError("nt must contain finite counts >= 0")

        tables = []
        for j, row in enumerate(self.rjk):
            table = np.asarray(row, dtype=np.float64)
            if table.ndim == 1:
                # Dichotomous shorthand: expected correct counts only
                table = np.vstack([nt - table, table])
            if table.ndim != 2 or table.shape[1] != len(nt):
                raise ValueError(
                    f"rjk for item {j} must have {len(nt)} columns, "
                    f"got shape {table.shape}"
                )
            if not np.isfinite(table).all():
                raise ValueError(f"rjk for item {j} must be finite")
            if (table < -1e-9).any():
                raise ValueError(f"rjk for item {j} must be >= 0")
            tables.append(np.ascontiguousarray(np.clip(table, 0.0, None)))

        # Frozen dataclass: bypass __setattr__ to store normalized arrays
        object.__setattr__(self, "nt", nt)
        object.__setattr__(self, "rjk", tuple(tables))

    @property
    def n_items(self) -> int:
        return len(self.rjk)

    @property
    def n_points(self) -> int:
        return len(self.nt)

    @property
    def sum_nt(self) -> float:
        """Sum of the marginal expected counts."""
        return float(self.nt.sum())

    def rjk_at(self, item_idx: int) -> NDArray[np.float64]:
        """Expected counts for one item, shape (n_categories, n_points)."""
        return self.rjk[item_idx]

    def validate_against(
        self,
        items: Sequence[ItemResponseModel],
        latent_distribution: DistributionApproximation,
    ) -> None:
        """
        Check that these estimates describe the given items and grid.

        Raises:
            ValueError: If item counts, category counts or point counts
                disagree.
        """
        if self.n_items != len(items):
            raise ValueError(
                f"Estimates cover {self.n_items} items, got {len(items)} items"
            )
        if self.n_points != latent_distribution.n_points:
            raise ValueError(
                f"Estimates have {self.n_points} quadrature points, "
                f"distribution has {latent_distribution.n_points}"
            )
        for j, item in enumerate(items):
            n_rows = self.rjk[j].shape[0]
            if n_rows != item.n_categories:
                raise ValueError(
                    f"Item {item.item_id} has {item.n_categories} categories, "
                    f"estimates have {n_rows}"
                )


@dataclass
class MStepDiagnostics:
    """
    Tallies collected during one maximization pass.

    Attributes:
        hard_failures: Items whose fit faulted or terminated with a code
            greater than 3. Their proposals were left unchanged.
        negative_discrimination: Raw discrimination estimates below 0.
        negative_guessing: Raw guessing estimates below 0 (clamped).
        slipping_out_of_range: Raw slipping estimates above 1 (clamped).
    """

    hard_failures: int = 0
    negative_discrimination: int = 0
    negative_guessing: int = 0
    slipping_out_of_range: int = 0

    def __add__(self, other: "MStepDiagnostics") -> "MStepDiagnostics":
        return MStepDiagnostics(
            hard_failures=self.hard_failures + other.hard_failures,
            negative_discrimination=(
                self.negative_discrimination + other.negative_discrimination
            ),
            negative_guessing=self.negative_guessing + other.negative_guessing,
            slipping_out_of_range=(
                self.slipping_out_of_range + other.slipping_out_of_range
            ),
        )

    @property
    def total(self) -> int:
        """Total number of recorded events."""
        return sum(self.to_array())

    def to_array(self) -> list[int]:
        """Counters in slot order: failures, discrimination, guessing, slipping."""
        return [getattr(self, f.name) for f in fields(self)]


@dataclass(frozen=True)
class ScaleTransformation:
    """
    Linear map of the ability scale, θ* = slope * θ + intercept.

    Attributes:
        intercept: Additive term.
        slope: Multiplicative term, always positive.
    """

    intercept: float
    slope: float

    def apply(self, value: float) -> float:
        return value * self.slope + self.intercept
