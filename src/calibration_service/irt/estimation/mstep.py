"""
Maximization step of the EM algorithm for IRT item calibration.

One pass re-estimates every item independently by minimizing the negative
marginal log-likelihood of its expected response table:

1. run_m_step splits the item range in halves until a range holds at most
   parallel_threshold items, optimizes those ranges directly and sums the
   diagnostics of both halves at every join.
2. The EM driver commits the proposals (accept_all_proposals).
3. update_latent_distribution re-estimates the quadrature densities from
   the expected marginal counts and rescales the grid and all items back to
   mean 0 and standard deviation 1.

Items are only ever written through their proposal slot during a pass, and
split ranges never overlap, so the result does not depend on scheduling.
"""

import logging
from collections.abc import Sequence
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import cast

import numpy as np
from numpy.typing import NDArray

from calibration_service.core.utils import clamp
from calibration_service.irt.estimation.config import (
    BoundsConfig,
    MStepConfig,
)
from calibration_service.irt.estimation.data_models import (
    EstepEstimates,
    MStepDiagnostics,
    ScaleTransformation,
)
from calibration_service.irt.estimation.enums import IrmType
from calibration_service.irt.estimation.exceptions import (
    DegenerateDistributionError,
)
from calibration_service.irt.estimation.likelihood import ItemLogLikelihood
from calibration_service.irt.estimation.optimizer import (
    Minimizer,
    OptimizerFailure,
    ScipyMinimizer,
)
from calibration_service.irt.estimation.parameters import (
    GPCMItem,
    ItemResponseModel,
    LogisticItem,
    PartialCreditItem,
)
from calibration_service.irt.estimation.quadrature import (
    DistributionApproximation,
)

logger = logging.getLogger(__name__)


class MStepTask:
    """
    M-step work over the item range [start, start + length).

    Ranges longer than the configured threshold are split in two halves that
    run as separate tasks; shorter ranges are optimized directly.
    """

    def __init__(
        self,
        items: Sequence[ItemResponseModel],
        latent_distribution: DistributionApproximation,
        estep_estimates: EstepEstimates,
        start: int,
        length: int,
        config: MStepConfig,
        minimizer: Minimizer,
        executor: Executor | None = None,
    ):
        """
        Initialize task.

        Args:
            items: Full item collection. Only items in the range are touched.
            latent_distribution: Quadrature grid, read-only during the pass.
            estep_estimates: Expected counts, read-only.
            start: First item index of the range.
            length: Number of items in the range.
            config: M-step configuration.
            minimizer: Numerical minimizer used for every item.
            executor: Pool for forked halves. None runs sequentially.
        """
        self.items = items
        self.latent_distribution = latent_distribution
        self.estep_estimates = estep_estimates
        self.start = start
        self.length = length
        self.config = config
        self.minimizer = minimizer
        self.executor = executor

    def compute(self) -> MStepDiagnostics:
        """
        Optimize every item in the range.

        Returns:
            Diagnostics summed over the whole range.
        """
        if self.length <= self.config.parallel_threshold:
            return self.compute_directly()

        first, second = self._split()
        return _invoke_all(first, second, self.executor)

    def leaf_ranges(self) -> list[tuple[int, int]]:
        """(start, length) of every directly optimized range, in order."""
        if self.length <= self.config.parallel_threshold:
            return [(self.start, self.length)]
        first, second = self._split()
        return first.leaf_ranges() + second.leaf_ranges()

    def _split(self) -> tuple["MStepTask", "MStepTask"]:
        split = self.length // 2
        return (
            self._subtask(self.start, split),
            self._subtask(self.start + split, self.length - split),
        )

    def _subtask(self, start: int, length: int) -> "MStepTask":
        return MStepTask(
            self.items,
            self.latent_distribution,
            self.estep_estimates,
            start,
            length,
            self.config,
            self.minimizer,
            self.executor,
        )

    def compute_directly(self) -> MStepDiagnostics:
        """
        Fit each item of the range and write its proposal parameters.

        A fault or a hard-failure termination code leaves the item's
        proposal untouched; the next EM iteration retries it.

        Returns:
            Diagnostics for this range.
        """
        diagnostics = MStepDiagnostics()
        end = self.start + self.length
        logger.debug(f"Optimizing items {self.start} to {end - 1}")

        for j in range(self.start, end):
            item = self.items[j]
            n_par = item.n_parameters

            objective = ItemLogLikelihood(
                item,
                self.latent_distribution,
                self.estep_estimates.rjk_at(j),
            )
            initial_value = item.to_array()

            outcome = self.minimizer.minimize(
                objective, initial_value, self.config.max_iterations
            )

            if isinstance(outcome, OptimizerFailure):
                diagnostics.hard_failures += 1
                logger.warning(
                    f"Item {item.item_id}: optimizer failed: {outcome.reason}"
                )
                continue

            if outcome.is_hard_failure:
                diagnostics.hard_failures += 1
                logger.warning(
                    f"Item {item.item_id}: optimizer stopped with code "
                    f"{int(outcome.termination_code)}, proposal not updated"
                )
                continue

            param = np.asarray(outcome.parameters, dtype=np.float64)
            if param.shape != (n_par,):
                diagnostics.hard_failures += 1
                logger.warning(
                    f"Item {item.item_id}: optimizer returned "
                    f"{param.size} parameters, expected {n_par}"
                )
                continue

            _apply_boundary_policy(
                item, param, self.config.bounds, diagnostics
            )

        return diagnostics


def _invoke_all(
    first: MStepTask, second: MStepTask, executor: Executor | None
) -> MStepDiagnostics:
    """Run both halves and wait for both; sum their diagnostics."""
    if executor is None:
        return first.compute() + second.compute()

    forked = executor.submit(second.compute)
    diagnostics = first.compute()

    if forked.cancel():
        # No worker picked it up yet; run it here rather than block on it
        return diagnostics + second.compute()
    return diagnostics + forked.result()


def _apply_boundary_policy(
    item: ItemResponseModel,
    param: NDArray[np.float64],
    bounds: BoundsConfig,
    diagnostics: MStepDiagnostics,
) -> None:
    """Write optimized values into the item's proposal slot."""
    family = item.family

    if family.is_logistic:
        logistic = cast(LogisticItem, item)
        n_par = item.n_parameters

        if n_par == 4:
            if param[0] < 0:
                diagnostics.negative_discrimination += 1
            if param[2] < 0:
                diagnostics.negative_guessing += 1
            if param[3] > 1:
                diagnostics.slipping_out_of_range += 1
            logistic.set_proposal_discrimination(param[0])
            logistic.set_proposal_difficulty(param[1])
            logistic.set_proposal_guessing(
                clamp(param[2], bounds.guessing_lower, bounds.guessing_upper)
            )
            logistic.set_proposal_slipping(
                clamp(param[3], bounds.slipping_lower, bounds.slipping_upper)
            )
        elif n_par == 3:
            if param[0] < 0:
                diagnostics.negative_discrimination += 1
            if param[2] < 0:
                diagnostics.negative_guessing += 1
            logistic.set_proposal_discrimination(param[0])
            logistic.set_proposal_difficulty(param[1])
            logistic.set_proposal_guessing(
                clamp(param[2], bounds.guessing_lower, bounds.guessing_upper)
            )
        elif n_par == 2:
            if param[0] < 0:
                diagnostics.negative_discrimination += 1
            logistic.set_proposal_discrimination(param[0])
            logistic.set_proposal_difficulty(param[1])
        else:
            logistic.set_proposal_difficulty(param[0])

    elif family == IrmType.GPCM:
        gpcm = cast(GPCMItem, item)
        gpcm.set_proposal_discrimination(param[0])
        gpcm.set_proposal_step_parameters(param[1:])

    elif family == IrmType.PCM2:
        cast(PartialCreditItem, item).set_proposal_step_parameters(param)


def run_m_step(
    items: Sequence[ItemResponseModel],
    latent_distribution: DistributionApproximation,
    estep_estimates: EstepEstimates,
    config: MStepConfig | None = None,
    minimizer: Minimizer | None = None,
) -> MStepDiagnostics:
    """
    Re-estimate the proposal parameters of every item.

    Args:
        items: Item collection; proposals are updated in place.
        latent_distribution: Current quadrature grid.
        estep_estimates: Expected counts from the E-step.
        config: M-step configuration. If None, uses defaults.
        minimizer: Numerical minimizer. If None, a ScipyMinimizer built from
            config.optimizer.

    Returns:
        Diagnostics summed over all items.

    Raises:
        ValueError: If the estimates do not match items or distribution.
    """
    config = config or MStepConfig()
    minimizer = minimizer or ScipyMinimizer.from_config(config.optimizer)
    estep_estimates.validate_against(items, latent_distribution)

    n_items = len(items)
    if n_items == 0:
        return MStepDiagnostics()

    if config.parallel and n_items > config.parallel_threshold:
        # Leaving the pool context joins every forked task
        with ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="mstep"
        ) as executor:
            task = MStepTask(
                items,
                latent_distribution,
                estep_estimates,
                0,
                n_items,
                config,
                minimizer,
                executor,
            )
            diagnostics = task.compute()
    else:
        task = MStepTask(
            items,
            latent_distribution,
            estep_estimates,
            0,
            n_items,
            config,
            minimizer,
        )
        diagnostics = task.compute()

    logger.info(
        f"M-step over {n_items} items: "
        f"{diagnostics.hard_failures} hard failures, "
        f"{diagnostics.negative_discrimination} negative discriminations, "
        f"{diagnostics.negative_guessing} negative guessing, "
        f"{diagnostics.slipping_out_of_range} slipping above 1"
    )
    return diagnostics


def compute_identification_transform(
    latent_distribution: DistributionApproximation,
    config: MStepConfig | None = None,
) -> ScaleTransformation:
    """
    Linear transform that gives the distribution mean 0 and SD 1.

    Args:
        latent_distribution: Distribution to standardize.
        config: M-step configuration. If None, uses defaults.

    Returns:
        ScaleTransformation with slope 1/SD and intercept -mean/SD.

    Raises:
        DegenerateDistributionError: If the SD is not finite or too small.
    """
    config = config or MStepConfig()
    mean = latent_distribution.mean()
    sd = latent_distribution.standard_deviation()

    if not (np.isfinite(mean) and np.isfinite(sd)):
        raise DegenerateDistributionError(
            f"Latent distribution moments are not finite: mean={mean}, sd={sd}"
        )
    if sd < config.min_standard_deviation:
        raise DegenerateDistributionError(
            f"Latent standard deviation {sd} is below "
            f"{config.min_standard_deviation}"
        )

    slope = 1.0 / sd
    return ScaleTransformation(intercept=-slope * mean, slope=slope)


def update_latent_distribution(
    items: Sequence[ItemResponseModel],
    latent_distribution: DistributionApproximation,
    estep_estimates: EstepEstimates,
    config: MStepConfig | None = None,
) -> DistributionApproximation:
    """
    Re-estimate the latent densities and restore the identification.

    Densities become nt / sum(nt). The grid is then moved to mean 0 and
    SD 1 and every item is rescaled with the same transform. Nothing is
    modified when the transform cannot be computed.

    Must only run after the whole item collection finished the M-step.

    Args:
        items: Item collection; rescaled in place.
        latent_distribution: Grid; updated in place.
        estep_estimates: Expected counts from the E-step.
        config: M-step configuration. If None, uses defaults.

    Returns:
        The updated latent_distribution.

    Raises:
        ValueError: If the estimates and the grid differ in size.
        DegenerateDistributionError: If the counts or the re-estimated
            distribution cannot be standardized.
    """
    nk = estep_estimates.nt
    if len(nk) != latent_distribution.n_points:
        raise ValueError(
            f"Estimates have {len(nk)} quadrature points, "
            f"distribution has {latent_distribution.n_points}"
        )

    sum_nk = estep_estimates.sum_nt
    if not np.isfinite(sum_nk) or sum_nk <= 0:
        raise DegenerateDistributionError(
            f"Sum of marginal expected counts must be positive, got {sum_nk}"
        )

    # Update posterior probabilities on a copy and check the transform first
    updated = latent_distribution.copy()
    for k in range(len(nk)):
        updated.set_density_at(k, nk[k] / sum_nk)
    transform = compute_identification_transform(updated, config)

    for k in range(len(nk)):
        latent_distribution.set_density_at(k, updated.density_at(k))
        latent_distribution.set_point_at(
            k, transform.apply(latent_distribution.point_at(k))
        )

    for item in items:
        item.rescale(transform.intercept, transform.slope)

    logger.debug(
        f"Latent distribution rescaled with intercept "
        f"{transform.intercept:.6f}, slope {transform.slope:.6f}"
    )
    return latent_distribution


def accept_all_proposals(items: Sequence[ItemResponseModel]) -> float:
    """
    Commit the proposal parameters of every item.

    Returns:
        Largest absolute parameter change over all items, 0.0 when empty.
    """
    max_change = 0.0
    for item in items:
        max_change = max(max_change, item.accept_proposal())
    return max_change
