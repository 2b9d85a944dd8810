"""
IRT (Item Response Theory) calibration module.

This module provides:
- Item response models with current and proposal parameter slots
- The M-step of MML-EM item calibration
- Latent distribution re-estimation and scale identification
"""

from calibration_service.irt.estimation import (
    DistributionApproximation,
    EstepEstimates,
    GPCMItem,
    IrmType,
    LogisticItem,
    MStepConfig,
    MStepDiagnostics,
    PCM2Item,
    accept_all_proposals,
    run_m_step,
    update_latent_distribution,
)

__all__ = [
    "DistributionApproximation",
    "EstepEstimates",
    "GPCMItem",
    "IrmType",
    "LogisticItem",
    "MStepConfig",
    "MStepDiagnostics",
    "PCM2Item",
    "accept_all_proposals",
    "run_m_step",
    "update_latent_distribution",
]
