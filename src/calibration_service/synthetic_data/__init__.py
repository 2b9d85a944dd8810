"""
Synthetic expected-count generation for item calibration.

This module produces E-step style count tables from known item parameters
for offline testing of the maximization step.

It is NOT intended for production calibration.
"""

from calibration_service.synthetic_data.generators import (
    expected_estep_estimates,
    sample_estep_estimates,
)

__all__ = [
    "expected_estep_estimates",
    "sample_estep_estimates",
]
