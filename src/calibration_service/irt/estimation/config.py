"""
Configuration dataclasses for the EM maximization step.

This module defines the configuration parameters for:
- The numerical minimizer used to fit each item
- Boundary policy for guessing and slipping parameters
- Scheduling and identification settings of the M-step
"""

from dataclasses import dataclass, field
from pathlib import Path

from omegaconf import OmegaConf

# Default scheduling settings
# Item ranges at or below this length are optimized directly
DEFAULT_PARALLEL_THRESHOLD = 100
DEFAULT_MAX_ITERATIONS = 500

# Default minimizer settings
DEFAULT_OPTIMIZER_METHOD = "BFGS"
DEFAULT_GRADIENT_TOLERANCE = 1e-6
SUPPORTED_OPTIMIZER_METHODS = ("BFGS", "L-BFGS-B")

# Default boundary policy
# Negative guessing estimates are set to just above zero
DEFAULT_GUESSING_BOUNDS = (0.001, 1.000)
# Slipping estimates above 1 are set to just below one
DEFAULT_SLIPPING_BOUNDS = (0.60, 0.999)

# Standard deviations below this make the identification transform undefined
DEFAULT_MIN_STANDARD_DEVIATION = 1e-10


@dataclass
class OptimizerConfig:
    """
    Configuration for the per-item numerical minimizer.

    Attributes:
        method: scipy.optimize.minimize method, one of
            SUPPORTED_OPTIMIZER_METHODS.
        gradient_tolerance: Gradient norm below which a fit counts as
            converged.
    """

    method: str = DEFAULT_OPTIMIZER_METHOD
    gradient_tolerance: float = DEFAULT_GRADIENT_TOLERANCE


@dataclass
class BoundsConfig:
    """
    Clamping bounds applied to raw optimizer output.

    Attributes:
        guessing_lower: Floor for the lower asymptote (3PL, 4PL).
        guessing_upper: Ceiling for the lower asymptote.
        slipping_lower: Floor for the upper asymptote (4PL).
        slipping_upper: Ceiling for the upper asymptote.
    """

    guessing_lower: float = DEFAULT_GUESSING_BOUNDS[0]
    guessing_upper: float = DEFAULT_GUESSING_BOUNDS[1]
    slipping_lower: float = DEFAULT_SLIPPING_BOUNDS[0]
    slipping_upper: float = DEFAULT_SLIPPING_BOUNDS[1]


@dataclass
class MStepConfig:
    """
    Master configuration for one maximization pass.

    Attributes:
        parallel_threshold: Largest item range optimized without splitting.
        max_iterations: Iteration budget of the minimizer for each item.
        parallel: Whether split ranges run on a thread pool. When False the
            task tree is walked sequentially on the calling thread.
        max_workers: Thread pool size. None lets concurrent.futures decide.
        min_standard_deviation: Smallest latent standard deviation accepted
            by the identification transform.
        optimizer: Settings for the numerical minimizer.
        bounds: Boundary policy for constrained parameters.
    """

    parallel_threshold: int = DEFAULT_PARALLEL_THRESHOLD
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    parallel: bool = True
    max_workers: int | None = None
    min_standard_deviation: float = DEFAULT_MIN_STANDARD_DEVIATION
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    bounds: BoundsConfig = field(default_factory=BoundsConfig)

    def __post_init__(self) -> None:
        if self.parallel_threshold < 1:
            raise ValueError(
                f"parallel_threshold must be >= 1, got {self.parallel_threshold}"
            )
        if self.max_iterations < 1:
            raise ValueError(
                f"max_iterations must be >= 1, got {self.max_iterations}"
            )
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(
                f"max_workers must be >= 1, got {self.max_workers}"
            )
        if self.min_standard_deviation <= 0:
            raise ValueError(
                "min_standard_deviation must be positive, "
                f"got {self.min_standard_deviation}"
            )
        if self.optimizer.method not in SUPPORTED_OPTIMIZER_METHODS:
            raise ValueError(
                f"Unknown optimizer method: {self.optimizer.method}. "
                f"Supported methods: {list(SUPPORTED_OPTIMIZER_METHODS)}"
            )

        bounds = self.bounds
        if bounds.guessing_lower > bounds.guessing_upper:
            raise ValueError(
                "guessing bounds are inverted: "
                f"({bounds.guessing_lower}, {bounds.guessing_upper})"
            )
        if bounds.slipping_lower > bounds.slipping_upper:
            raise ValueError(
                "slipping bounds are inverted: "
                f"({bounds.slipping_lower}, {bounds.slipping_upper})"
            )


def default_config() -> MStepConfig:
    """Create a default M-step configuration."""
    return MStepConfig()


def load_config(yaml_path: Path) -> MStepConfig:
    """Load and validate M-step settings from YAML.

    Keys missing from the file keep their defaults.

    Args:
        yaml_path: Path to YAML config file

    Returns:
        Validated MStepConfig

    Raises:
        ValueError: If a setting is out of range
        FileNotFoundError: If yaml_path doesn't exist
    """
    if not yaml_path.exists():
        raise FileNotFoundError(f"Config file not found: {yaml_path}")

    # Create schema from dataclass
    schema = OmegaConf.structured(MStepConfig)
    user_config = OmegaConf.load(yaml_path)
    config = OmegaConf.merge(schema, user_config)

    # Convert to typed dataclass; __post_init__ validates the merged values
    result = OmegaConf.to_object(config)
    assert isinstance(result, MStepConfig)

    return result
