from dataclasses import dataclass
import numpy as np

from .errors import (
    InvalidContaminationError,
    InvalidProbabilityRangeError,
    OutOfDomainError,
)


# Continued fraction (modified Lentz)
MAXIT = 100
EPS = 3.0e-7
FPMIN = 1.0e-30

# Phred conversion
PVAL_FLOOR = 1.0e-30
QUAL_MAX = 255

_DEFAULT_ERROR = 0.001
_DEFAULT_MU = 0.001
_DEFAULT_MU_SOMATIC = 0.001
_DEFAULT_CONTAM = 0.0


def check_error_rate(error: float) -> None:
    """Raise if the sequencing error rate is outside [0, 0.5)."""
    if not (0.0 <= error < 0.5):
        raise InvalidProbabilityRangeError(
            f"error rate must lie in [0, 0.5), got {error!r}"
        )


def check_probability(value: float, name: str) -> None:
    """Raise if a prior probability is outside [0, 1]."""
    if not (0.0 <= value <= 1.0):
        raise InvalidProbabilityRangeError(f"{name} must lie in [0, 1], got {value!r}")


def check_counts(*counts: int) -> None:
    """Raise if any read count is negative."""
    for k in counts:
        if k < 0:
            raise OutOfDomainError(f"read counts must be non-negative, got {counts!r}")


def as_count_arrays(*arrays) -> list[np.ndarray]:
    """Convert read-count arrays to equal-length, non-negative int arrays."""
    raw = [np.atleast_1d(np.asarray(x)) for x in arrays]
    shape = raw[0].shape
    out = []
    for arr in raw:
        if arr.ndim != 1 or arr.shape != shape:
            raise OutOfDomainError("count arrays must be one-dimensional and equal length")
        if arr.dtype.kind == "f" and not (
            np.all(np.isfinite(arr)) and np.all(arr == np.round(arr))
        ):
            raise OutOfDomainError(f"read counts must be integers, got {arr!r}")
        arr = arr.astype(int)
        if np.any(arr < 0):
            raise OutOfDomainError("read counts must be non-negative")
        out.append(arr)
    return out


def check_contamination(contam: float) -> None:
    if np.isnan(contam) or contam < 0.0:
        raise InvalidContaminationError(
            f"Contamination extent cannot be negative (contam={contam!r})"
        )


@dataclass
class CallerSpec:
    """
    Model parameters shared by the germline and somatic callers.
    Owns *all* statistical defaults used by the batch front-ends.
    """

    # Sequencing error rate
    error: float = _DEFAULT_ERROR

    # Priors
    mu: float = _DEFAULT_MU
    mu_somatic: float = _DEFAULT_MU_SOMATIC

    # Contamination extent (0 selects the exact binomial branch)
    contam: float = _DEFAULT_CONTAM

    def __post_init__(self):
        self.error = float(self.error)
        self.mu = float(self.mu)
        self.mu_somatic = float(self.mu_somatic)
        self.contam = float(self.contam)
        check_error_rate(self.error)
        check_probability(self.mu, "mu")
        check_probability(self.mu_somatic, "mu_somatic")
        check_contamination(self.contam)
