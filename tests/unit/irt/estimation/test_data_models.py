"""
Tests for E-step estimates and M-step diagnostics.
"""

import numpy as np
import pytest

from calibration_service.irt.estimation.data_models import (
    EstepEstimates,
    MStepDiagnostics,
    ScaleTransformation,
)
from calibration_service.irt.estimation.parameters import GPCMItem, LogisticItem
from calibration_service.irt.estimation.quadrature import uniform_approximation


class TestEstepEstimates:
    def test_basic_construction(self) -> None:
        """Should expose per-item tables and marginal counts."""
        nt = np.array([10.0, 20.0, 10.0])
        rjk = (np.array([[4.0, 8.0, 2.0], [6.0, 12.0, 8.0]]),)
        estimates = EstepEstimates(rjk=rjk, nt=nt)

        assert estimates.n_items == 1
        assert estimates.n_points == 3
        assert estimates.sum_nt == 40.0
        np.testing.assert_array_equal(estimates.rjk_at(0), rjk[0])

    def test_dichotomous_row_shorthand(self) -> None:
        """A 1D row should be read as correct counts, with nt - row incorrect."""
        nt = np.array([10.0, 20.0, 10.0])
        estimates = EstepEstimates(rjk=(np.array([3.0, 15.0, 9.0]),), nt=nt)

        np.testing.assert_array_equal(
            estimates.rjk_at(0), [[7.0, 5.0, 1.0], [3.0, 15.0, 9.0]]
        )

    def test_accepts_list_of_rows(self) -> None:
        """Plain sequences should be converted to arrays."""
        estimates = EstepEstimates(
            rjk=[[1.0, 2.0], [0.5, 0.5]],  # type: ignore[arg-type]
            nt=[2.0, 2.0],  # type: ignore[arg-type]
        )

        assert estimates.n_items == 2
        assert estimates.rjk_at(1).shape == (2, 2)

    def test_validation_column_mismatch(self) -> None:
        """Tables must have one column per quadrature point."""
        with pytest.raises(ValueError, match="must have 3 columns"):
            EstepEstimates(rjk=(np.ones((2, 4)),), nt=np.ones(3))

    def test_validation_negative_counts(self) -> None:
        """Negative marginal counts should be rejected."""
        with pytest.raises(ValueError, match="nt must contain finite counts"):
            EstepEstimates(rjk=(), nt=np.array([1.0, -1.0]))

    def test_validation_non_finite_table(self) -> None:
        """Tables must be finite."""
        with pytest.raises(ValueError, match="must be finite"):
            EstepEstimates(
                rjk=(np.array([[1.0, np.nan], [1.0, 1.0]]),), nt=np.ones(2)
            )

    def test_validate_against_items(self) -> None:
        """Category counts must match each item."""
        dist = uniform_approximation(n_points=3)
        items = [
            LogisticItem(item_id=0),
            GPCMItem(item_id=1, step_parameters=(0.0, 1.0)),
        ]
        estimates = EstepEstimates(
            rjk=(np.ones((2, 3)), np.ones((2, 3))), nt=np.full(3, 2.0)
        )

        with pytest.raises(ValueError, match="Item 1 has 3 categories"):
            estimates.validate_against(items, dist)

    def test_validate_against_item_count(self) -> None:
        """Number of tables must equal the number of items."""
        dist = uniform_approximation(n_points=3)
        estimates = EstepEstimates(rjk=(np.ones((2, 3)),), nt=np.ones(3))

        with pytest.raises(ValueError, match="cover 1 items"):
            estimates.validate_against([], dist)

    def test_validate_against_point_count(self) -> None:
        """Point counts must equal the distribution's."""
        dist = uniform_approximation(n_points=5)
        estimates = EstepEstimates(rjk=(np.ones((2, 3)),), nt=np.ones(3))

        with pytest.raises(ValueError, match="3 quadrature points"):
            estimates.validate_against([LogisticItem(item_id=0)], dist)


class TestMStepDiagnostics:
    def test_starts_at_zero(self) -> None:
        """New diagnostics should have all counters at zero."""
        diagnostics = MStepDiagnostics()

        assert diagnostics.to_array() == [0, 0, 0, 0]
        assert diagnostics.total == 0

    def test_addition_sums_slots(self) -> None:
        """Reduction should add every slot independently."""
        left = MStepDiagnostics(1, 2, 0, 1)
        right = MStepDiagnostics(0, 1, 3, 0)

        combined = left + right

        assert combined.to_array() == [1, 3, 3, 1]
        assert combined.total == 8
        # Operands are unchanged
        assert left.to_array() == [1, 2, 0, 1]


class TestScaleTransformation:
    def test_apply(self) -> None:
        """Should map θ to slope * θ + intercept."""
        transform = ScaleTransformation(intercept=-0.5, slope=2.0)

        assert transform.apply(1.0) == 1.5
