"""
Tests for M-step configuration.
"""

from pathlib import Path

import pytest

from calibration_service.irt.estimation.config import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PARALLEL_THRESHOLD,
    BoundsConfig,
    MStepConfig,
    OptimizerConfig,
    default_config,
    load_config,
)


class TestMStepConfig:
    def test_defaults(self) -> None:
        """Defaults should match the standard M-step settings."""
        config = default_config()

        assert config.parallel_threshold == DEFAULT_PARALLEL_THRESHOLD == 100
        assert config.max_iterations == DEFAULT_MAX_ITERATIONS == 500
        assert config.optimizer.method == "BFGS"
        assert config.bounds.guessing_lower == 0.001
        assert config.bounds.guessing_upper == 1.0
        assert config.bounds.slipping_lower == 0.60
        assert config.bounds.slipping_upper == 0.999

    def test_rejects_zero_threshold(self) -> None:
        """Threshold must be at least one item."""
        with pytest.raises(ValueError, match="parallel_threshold"):
            MStepConfig(parallel_threshold=0)

    def test_rejects_unknown_method(self) -> None:
        """Only supported scipy methods are accepted."""
        with pytest.raises(ValueError, match="Unknown optimizer method"):
            MStepConfig(optimizer=OptimizerConfig(method="Powell"))

    def test_rejects_inverted_bounds(self) -> None:
        """Lower bounds must not exceed upper bounds."""
        with pytest.raises(ValueError, match="slipping bounds are inverted"):
            MStepConfig(
                bounds=BoundsConfig(slipping_lower=0.9, slipping_upper=0.8)
            )


class TestLoadConfig:
    def test_yaml_overrides_defaults(self, tmp_path: Path) -> None:
        """Values in YAML should override defaults; others keep defaults."""
        path = tmp_path / "mstep.yaml"
        path.write_text(
            "parallel_threshold: 25\n"
            "max_workers: 2\n"
            "optimizer:\n"
            "  method: L-BFGS-B\n"
            "bounds:\n"
            "  guessing_lower: 0.01\n"
        )

        config = load_config(path)

        assert isinstance(config, MStepConfig)
        assert config.parallel_threshold == 25
        assert config.max_workers == 2
        assert config.optimizer.method == "L-BFGS-B"
        assert config.bounds.guessing_lower == 0.01
        assert config.bounds.slipping_upper == 0.999
        assert config.max_iterations == 500

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing file should raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config(tmp_path / "absent.yaml")

    def test_invalid_value(self, tmp_path: Path) -> None:
        """Out of range values should be rejected after merging."""
        path = tmp_path / "bad.yaml"
        path.write_text("max_iterations: 0\n")

        with pytest.raises(ValueError, match="max_iterations"):
            load_config(path)
