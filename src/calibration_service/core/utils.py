"""
Core utility functions shared across calibration service modules.

This module provides foundational utilities used by both the IRT
estimation code and the synthetic statistics layer.
"""

import numpy as np
from numpy.random import Generator


def get_rng(seed: int | None = None) -> Generator:
    """
    Create a numpy random Generator with optional seed.

    Args:
        seed: Random seed for reproducibility. If None, uses entropy.

    Returns:
        A numpy random Generator instance.
    """
    return np.random.default_rng(seed)


def clamp(value: float, lower: float, upper: float) -> float:
    """
    Restrict a value to the closed interval [lower, upper].

    Args:
        value: Value to restrict.
        lower: Lower bound.
        upper: Upper bound, must be >= lower.

    Returns:
        lower if value < lower, upper if value > upper, else value.
    """
    return float(min(upper, max(value, lower)))
