"""
IRT item calibration M-step module.

This module provides the maximization step of Marginal Maximum Likelihood
estimation via the EM algorithm.

Key components:
- MStepConfig: Configuration for the maximization pass
- ItemResponseModel: Item families (1PL-4PL, GPCM, PCM2) with proposal slots
- DistributionApproximation: Discrete latent ability distribution
- EstepEstimates: Expected counts consumed by the M-step
- run_m_step: Parallel re-estimation of all items
- update_latent_distribution: Density update and scale identification
"""

from calibration_service.irt.estimation.config import (
    BoundsConfig,
    MStepConfig,
    OptimizerConfig,
    default_config,
    load_config,
)
from calibration_service.irt.estimation.data_models import (
    EstepEstimates,
    MStepDiagnostics,
    ScaleTransformation,
)
from calibration_service.irt.estimation.enums import IrmType, TerminationCode
from calibration_service.irt.estimation.exceptions import (
    DegenerateDistributionError,
)
from calibration_service.irt.estimation.likelihood import ItemLogLikelihood
from calibration_service.irt.estimation.mstep import (
    MStepTask,
    accept_all_proposals,
    compute_identification_transform,
    run_m_step,
    update_latent_distribution,
)
from calibration_service.irt.estimation.optimizer import (
    Minimizer,
    OptimizerFailure,
    OptimizerResult,
    ScipyMinimizer,
)
from calibration_service.irt.estimation.parameters import (
    GPCMItem,
    ItemResponseModel,
    LogisticItem,
    PCM2Item,
)
from calibration_service.irt.estimation.quadrature import (
    DistributionApproximation,
    get_quadrature,
    normal_approximation,
    uniform_approximation,
)

__all__ = [
    "BoundsConfig",
    "DegenerateDistributionError",
    "DistributionApproximation",
    "EstepEstimates",
    "GPCMItem",
    "IrmType",
    "ItemLogLikelihood",
    "ItemResponseModel",
    "LogisticItem",
    "MStepConfig",
    "MStepDiagnostics",
    "MStepTask",
    "Minimizer",
    "OptimizerConfig",
    "OptimizerFailure",
    "OptimizerResult",
    "PCM2Item",
    "ScaleTransformation",
    "ScipyMinimizer",
    "TerminationCode",
    "accept_all_proposals",
    "compute_identification_transform",
    "default_config",
    "get_quadrature",
    "load_config",
    "normal_approximation",
    "run_m_step",
    "uniform_approximation",
    "update_latent_distribution",
]
