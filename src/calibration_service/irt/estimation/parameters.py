"""
Item response model representation.

Every item carries two parameter slots:
- current: the values used by the E-step and as the optimizer start point
- proposal: the values written by the M-step

The M-step only ever writes proposals. The EM driver commits them with
accept_proposal() once a pass has finished.

Families:
    Logistic (1PL to 4PL):
        P(Y=1 | θ) = c + (s - c) / (1 + exp(-D * a * (θ - b)))
    Generalized partial credit (GPCM):
        P(Y=k | θ) ∝ exp(Σ_{v<=k} D * a * (θ - b_v)), empty sum for k = 0
    Partial credit without discrimination (PCM2):
        GPCM with a fixed discrimination; only steps are estimated.
"""

from abc import ABC, abstractmethod
from typing import Self

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, model_validator

from calibration_service.irt.estimation.enums import IrmType
from calibration_service.irt.estimation.likelihood import (
    compute_logistic_probabilities,
    compute_partial_credit_probabilities,
)

# Number of estimated parameters per logistic family
LOGISTIC_PARAMETER_COUNTS = {
    IrmType.L1: 1,
    IrmType.L2: 2,
    IrmType.L3: 3,
    IrmType.L4: 4,
}


def _max_abs_change(
    current: NDArray[np.float64], proposal: NDArray[np.float64]
) -> float:
    return float(np.max(np.abs(proposal - current)))


class ItemResponseModel(BaseModel, ABC):
    """
    Abstract base for one item's response model.

    Attributes:
        item_id: Unique identifier for the item.
        scaling: Logistic scaling constant D. Use 1.0 for the logistic
            metric and 1.7 to approximate the normal ogive.
    """

    item_id: int
    scaling: float = 1.0

    @property
    @abstractmethod
    def family(self) -> IrmType: ...

    @property
    @abstractmethod
    def n_parameters(self) -> int:
        """Number of estimated parameters, fixed by the family."""
        ...

    @property
    @abstractmethod
    def n_categories(self) -> int: ...

    @abstractmethod
    def to_array(self) -> NDArray[np.float64]:
        """Current estimated parameters as a flat vector."""
        ...

    @abstractmethod
    def proposal_array(self) -> NDArray[np.float64]:
        """Proposal parameters as a flat vector, same layout as to_array()."""
        ...

    @abstractmethod
    def probabilities_from_array(
        self, params: NDArray[np.float64], theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        """
        Category probabilities for a candidate parameter vector.

        Parameters not in the vector (fixed discriminations, the scaling
        constant) are taken from this item.

        Args:
            params: Parameter vector laid out like to_array().
            theta: Ability values, shape (n_theta,).

        Returns:
            Probabilities, shape (n_theta, n_categories).
        """
        ...

    @abstractmethod
    def rescale(self, intercept: float, slope: float) -> None:
        """
        Move current and proposal parameters to the scale θ* = slope * θ + intercept.

        Response probabilities at θ* under the rescaled parameters equal
        those at θ under the original parameters.
        """
        ...

    @abstractmethod
    def accept_proposal(self) -> float:
        """
        Copy proposal values into the current slot.

        Returns:
            Largest absolute change over the estimated parameters.
        """
        ...

    def probabilities(self, theta: NDArray[np.float64]) -> NDArray[np.float64]:
        """Category probabilities under the current parameters."""
        return self.probabilities_from_array(self.to_array(), theta)


class LogisticItem(ItemResponseModel):
    """
    Dichotomous item under the 1PL, 2PL, 3PL or 4PL model.

    The estimated vector holds the first n_parameters entries of
    (discrimination, difficulty, guessing, slipping), except for the 1PL
    whose vector is (difficulty,) and whose discrimination stays fixed.

    The 0 <= guessing < slipping <= 1 check runs at construction only.
    The M-step clamps guessing to [0.001, 1.0] and slipping to [0.60, 0.999]
    independently, so a committed 4PL proposal may have guessing >= slipping.

    Attributes:
        irm_type: One of IrmType.L1 to IrmType.L4.
        discrimination: Slope (a).
        difficulty: Location (b).
        guessing: Lower asymptote (c).
        slipping: Upper asymptote (s).
    """

    irm_type: IrmType = IrmType.L2
    discrimination: float = 1.0
    difficulty: float = 0.0
    guessing: float = 0.0
    slipping: float = 1.0

    proposal_discrimination: float | None = None
    proposal_difficulty: float | None = None
    proposal_guessing: float | None = None
    proposal_slipping: float | None = None

    @model_validator(mode="after")
    def _validate_family(self) -> Self:
        if not self.irm_type.is_logistic:
            raise ValueError(
                f"LogisticItem requires a logistic family, got {self.irm_type}"
            )
        return self

    @model_validator(mode="after")
    def _validate_asymptotes(self) -> Self:
        if not (0.0 <= self.guessing < self.slipping <= 1.0):
            raise ValueError(
                "Must have 0 <= guessing < slipping <= 1, "
                f"got guessing={self.guessing}, slipping={self.slipping}"
            )
        return self

    @model_validator(mode="after")
    def _initialize_proposals(self) -> Self:
        if self.proposal_discrimination is None:
            self.proposal_discrimination = self.discrimination
        if self.proposal_difficulty is None:
            self.proposal_difficulty = self.difficulty
        if self.proposal_guessing is None:
            self.proposal_guessing = self.guessing
        if self.proposal_slipping is None:
            self.proposal_slipping = self.slipping
        return self

    @property
    def family(self) -> IrmType:
        return self.irm_type

    @property
    def n_parameters(self) -> int:
        return LOGISTIC_PARAMETER_COUNTS[self.irm_type]

    @property
    def n_categories(self) -> int:
        return 2

    def _pack(
        self, a: float, b: float, c: float, s: float
    ) -> NDArray[np.float64]:
        if self.irm_type == IrmType.L1:
            return np.array([b], dtype=np.float64)
        return np.array([a, b, c, s][: self.n_parameters], dtype=np.float64)

    def to_array(self) -> NDArray[np.float64]:
        return self._pack(
            self.discrimination, self.difficulty, self.guessing, self.slipping
        )

    def proposal_array(self) -> NDArray[np.float64]:
        return self._pack(
            self.proposal_discrimination,  # type: ignore[arg-type]
            self.proposal_difficulty,  # type: ignore[arg-type]
            self.proposal_guessing,  # type: ignore[arg-type]
            self.proposal_slipping,  # type: ignore[arg-type]
        )

    def probabilities_from_array(
        self, params: NDArray[np.float64], theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        a, b, c, s = (
            self.discrimination,
            self.difficulty,
            self.guessing,
            self.slipping,
        )
        n_par = self.n_parameters
        if self.irm_type == IrmType.L1:
            b = params[0]
        else:
            a, b = params[0], params[1]
            if n_par >= 3:
                c = params[2]
            if n_par == 4:
                s = params[3]

        return compute_logistic_probabilities(
            np.asarray(theta, dtype=np.float64),
            float(a),
            float(b),
            float(c),
            float(s),
            self.scaling,
        )

    def set_proposal_discrimination(self, value: float) -> None:
        self.proposal_discrimination = float(value)

    def set_proposal_difficulty(self, value: float) -> None:
        self.proposal_difficulty = float(value)

    def set_proposal_guessing(self, value: float) -> None:
        self.proposal_guessing = float(value)

    def set_proposal_slipping(self, value: float) -> None:
        self.proposal_slipping = float(value)

    def rescale(self, intercept: float, slope: float) -> None:
        self.difficulty = self.difficulty * slope + intercept
        self.discrimination = self.discrimination / slope
        self.proposal_difficulty = (
            self.proposal_difficulty * slope + intercept  # type: ignore[operator]
        )
        self.proposal_discrimination = (
            self.proposal_discrimination / slope  # type: ignore[operator]
        )

    def accept_proposal(self) -> float:
        change = _max_abs_change(self.to_array(), self.proposal_array())
        self.discrimination = self.proposal_discrimination  # type: ignore[assignment]
        self.difficulty = self.proposal_difficulty  # type: ignore[assignment]
        self.guessing = self.proposal_guessing  # type: ignore[assignment]
        self.slipping = self.proposal_slipping  # type: ignore[assignment]
        return change


class PartialCreditItem(ItemResponseModel, ABC):
    """
    Shared behaviour of the polytomous partial credit families.

    With m step parameters the item has m + 1 ordered score categories.

    Attributes:
        discrimination: Slope (a).
        step_parameters: Ordered step locations (b_1, ..., b_m).
    """

    discrimination: float = 1.0
    step_parameters: tuple[float, ...]

    proposal_discrimination: float | None = None
    proposal_step_parameters: tuple[float, ...] | None = None

    @model_validator(mode="after")
    def _validate_steps(self) -> Self:
        if len(self.step_parameters) < 1:
            raise ValueError("Must have at least 1 step parameter, got 0")
        if (
            self.proposal_step_parameters is not None
            and len(self.proposal_step_parameters)
            != len(self.step_parameters)
        ):
            raise ValueError(
                "step_parameters and proposal_step_parameters must have same "
                f"length, got {len(self.step_parameters)} and "
                f"{len(self.proposal_step_parameters)}"
            )
        return self

    @model_validator(mode="after")
    def _initialize_proposals(self) -> Self:
        if self.proposal_discrimination is None:
            self.proposal_discrimination = self.discrimination
        if self.proposal_step_parameters is None:
            self.proposal_step_parameters = self.step_parameters
        return self

    @property
    def n_steps(self) -> int:
        return len(self.step_parameters)

    @property
    def n_categories(self) -> int:
        return self.n_steps + 1

    def set_proposal_step_parameters(self, values: NDArray[np.float64]) -> None:
        self.proposal_step_parameters = tuple(float(v) for v in values)

    def rescale(self, intercept: float, slope: float) -> None:
        self.discrimination = self.discrimination / slope
        self.step_parameters = tuple(
            b * slope + intercept for b in self.step_parameters
        )
        self.proposal_discrimination = (
            self.proposal_discrimination / slope  # type: ignore[operator]
        )
        self.proposal_step_parameters = tuple(
            b * slope + intercept
            for b in self.proposal_step_parameters  # type: ignore[union-attr]
        )

    def accept_proposal(self) -> float:
        change = _max_abs_change(self.to_array(), self.proposal_array())
        self.discrimination = self.proposal_discrimination  # type: ignore[assignment]
        self.step_parameters = self.proposal_step_parameters  # type: ignore[assignment]
        return change

    def _probabilities(
        self,
        discrimination: float,
        steps: NDArray[np.float64],
        theta: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        return compute_partial_credit_probabilities(
            np.asarray(theta, dtype=np.float64),
            float(discrimination),
            np.ascontiguousarray(steps, dtype=np.float64),
            self.scaling,
        )


class GPCMItem(PartialCreditItem):
    """
    Generalized partial credit item.

    Estimated vector: (a, b_1, ..., b_m).
    """

    @property
    def family(self) -> IrmType:
        return IrmType.GPCM

    @property
    def n_parameters(self) -> int:
        return 1 + self.n_steps

    def to_array(self) -> NDArray[np.float64]:
        return np.array(
            (self.discrimination,) + self.step_parameters, dtype=np.float64
        )

    def proposal_array(self) -> NDArray[np.float64]:
        return np.array(
            (self.proposal_discrimination,)
            + self.proposal_step_parameters,  # type: ignore[operator]
            dtype=np.float64,
        )

    def probabilities_from_array(
        self, params: NDArray[np.float64], theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        return self._probabilities(params[0], params[1:], theta)

    def set_proposal_discrimination(self, value: float) -> None:
        self.proposal_discrimination = float(value)


class PCM2Item(PartialCreditItem):
    """
    Partial credit item without an estimated discrimination.

    Estimated vector: (b_1, ..., b_m). The discrimination is a fixed
    constant; it only changes when the ability scale is rescaled.
    """

    @property
    def family(self) -> IrmType:
        return IrmType.PCM2

    @property
    def n_parameters(self) -> int:
        return self.n_steps

    def to_array(self) -> NDArray[np.float64]:
        return np.array(self.step_parameters, dtype=np.float64)

    def proposal_array(self) -> NDArray[np.float64]:
        return np.array(self.proposal_step_parameters, dtype=np.float64)

    def probabilities_from_array(
        self, params: NDArray[np.float64], theta: NDArray[np.float64]
    ) -> NDArray[np.float64]:
        return self._probabilities(self.discrimination, params, theta)
