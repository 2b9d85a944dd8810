from enum import Enum, IntEnum


class IrmType(str, Enum):
    L1 = "1pl"
    L2 = "2pl"
    L3 = "3pl"
    L4 = "4pl"
    GPCM = "gpcm"
    PCM2 = "pcm2"

    @property
    def is_logistic(self) -> bool:
        return self in LOGISTIC_TYPES


LOGISTIC_TYPES = frozenset({IrmType.L1, IrmType.L2, IrmType.L3, IrmType.L4})


class TerminationCode(IntEnum):
    """Termination codes reported by the minimizer, best first."""

    GRADIENT_CLOSE_TO_ZERO = 1
    STEP_BELOW_TOLERANCE = 2
    NO_LOWER_POINT = 3
    ITERATION_LIMIT = 4
    TOO_MANY_LARGE_STEPS = 5
