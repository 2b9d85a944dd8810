"""
Core shared utilities for the calibration service.

This module provides foundational helpers used by both the IRT estimation
code and the synthetic statistics layer.
"""

from calibration_service.core.utils import clamp, get_rng

__all__ = [
    "clamp",
    "get_rng",
]
