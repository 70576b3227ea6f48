"""
Domain errors raised by the likelihood machinery.

Every failure is a caller-side precondition violation or a numerical
breakdown; none of them is retried. Callers running a per-site loop can
catch ``StatsDomainError`` and decide whether to skip the site or halt.
"""


class StatsDomainError(ValueError):
    """Base class for out-of-domain inputs and numerical failures."""


class InvalidContaminationError(StatsDomainError):
    """Contamination fraction is negative."""


class InvalidProbabilityRangeError(StatsDomainError):
    """A probability argument lies outside its admissible interval."""


class OutOfDomainError(StatsDomainError):
    """Unrecognized genotype tag, negative count or malformed input."""


class NonConvergenceError(StatsDomainError, ArithmeticError):
    """Continued fraction did not converge within the iteration limit."""
