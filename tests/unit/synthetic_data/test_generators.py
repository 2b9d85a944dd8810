import numpy as np
import pytest

from calibration_service.irt.estimation.enums import IrmType
from calibration_service.irt.estimation.parameters import (
    GPCMItem,
    ItemResponseModel,
    LogisticItem,
)
from calibration_service.irt.estimation.quadrature import normal_approximation
from calibration_service.synthetic_data.generators import (
    expected_estep_estimates,
    sample_estep_estimates,
)


@pytest.fixture
def items() -> list[ItemResponseModel]:
    return [
        LogisticItem(item_id=0, discrimination=1.0, difficulty=0.0),
        LogisticItem(
            item_id=1,
            irm_type=IrmType.L3,
            discrimination=1.4,
            difficulty=0.5,
            guessing=0.2,
        ),
        GPCMItem(item_id=2, discrimination=0.9, step_parameters=(-1.0, 0.0, 1.0)),
    ]


def test_expected_estimates_shapes(items: list[ItemResponseModel]) -> None:
    dist = normal_approximation(n_points=21)
    estimates = expected_estep_estimates(items, dist, n_examinees=500.0)

    assert estimates.n_items == 3
    assert estimates.n_points == 21
    assert estimates.rjk_at(2).shape == (4, 21)
    np.testing.assert_allclose(estimates.sum_nt, 500.0)


def test_expected_estimates_columns_sum_to_nt(
    items: list[ItemResponseModel],
) -> None:
    dist = normal_approximation(n_points=21)
    estimates = expected_estep_estimates(items, dist)

    for j in range(estimates.n_items):
        np.testing.assert_allclose(
            estimates.rjk_at(j).sum(axis=0), estimates.nt, rtol=1e-10
        )


def test_sampled_estimates_are_counts(items: list[ItemResponseModel]) -> None:
    dist = normal_approximation(n_points=11)
    estimates = sample_estep_estimates(items, dist, n_examinees=300, seed=7)

    assert estimates.sum_nt == 300.0
    for j in range(estimates.n_items):
        table = estimates.rjk_at(j)
        np.testing.assert_array_equal(table, np.round(table))
        np.testing.assert_array_equal(table.sum(axis=0), estimates.nt)

    estimates.validate_against(items, dist)


def test_sampled_estimates_reproducible(items: list[ItemResponseModel]) -> None:
    dist = normal_approximation(n_points=11)
    first = sample_estep_estimates(items, dist, n_examinees=200, seed=3)
    second = sample_estep_estimates(items, dist, n_examinees=200, seed=3)

    np.testing.assert_array_equal(first.nt, second.nt)
    for j in range(first.n_items):
        np.testing.assert_array_equal(first.rjk_at(j), second.rjk_at(j))
