import logging
import math

import numpy as np
from scipy.special import gammaln, betaln, logsumexp

from .errors import InvalidProbabilityRangeError, NonConvergenceError
from .params import MAXIT, EPS, FPMIN

logger = logging.getLogger(__name__)


# =============================================================================
# Log-domain arithmetic
# =============================================================================


def ln_sum(*terms: float) -> float:
    """
    Sum of numbers held as natural logarithms.

        ln_sum(ln(a), ln(b), ...) = ln(a + b + ...)

    The largest term is factored out before exponentiating, so arbitrarily
    large or small finite inputs neither overflow nor underflow. Terms equal
    to -inf contribute nothing.

    Parameters
    ----------
    *terms : float
        Log-values to combine.

    Returns
    -------
    float
        Log of the sum.
    """
    with np.errstate(divide="ignore"):
        return float(logsumexp(terms))


def ln_sum2(ln1: float, ln2: float) -> float:
    """ln(exp(ln1) + exp(ln2))."""
    return ln_sum(ln1, ln2)


def ln_sum3(ln1: float, ln2: float, ln3: float) -> float:
    """ln(exp(ln1) + exp(ln2) + exp(ln3))."""
    return ln_sum(ln1, ln2, ln3)


def ln_sum4(ln1: float, ln2: float, ln3: float, ln4: float) -> float:
    """ln(exp(ln1) + exp(ln2) + exp(ln3) + exp(ln4))."""
    return ln_sum(ln1, ln2, ln3, ln4)


def ln_subtract(ln1: float, ln2: float) -> float:
    """
    Difference of numbers held as natural logarithms.

        ln_subtract(ln(a), ln(b)) = ln(a - b)

    The caller guarantees ``ln1 >= ln2``. Equal arguments give -inf; a
    reversed pair gives NaN, it is not checked.

    Parameters
    ----------
    ln1 : float
        Log of the minuend.
    ln2 : float
        Log of the subtrahend.

    Returns
    -------
    float
        Log of the difference.
    """
    if ln2 == -np.inf:
        return float(ln1)
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(ln1 + np.log1p(-np.exp(ln2 - ln1)))


def safe_log(x: float) -> float:
    """Natural log mapping 0 to -inf instead of raising."""
    with np.errstate(divide="ignore"):
        return float(np.log(x))


# =============================================================================
# Incomplete beta function
# =============================================================================


def beta_cf(
    a: float, b: float, x: float, max_iter: int = MAXIT, eps: float = EPS
) -> float:
    """
    Continued fraction for the incomplete beta function.

    Evaluated with the modified Lentz method; any denominator smaller than
    ``FPMIN`` in magnitude is floored to it.

    Parameters
    ----------
    a, b : float
        Shape parameters (> 0).
    x : float
        Evaluation point in [0, 1].
    max_iter : int
        Maximum number of iterations.
    eps : float
        Convergence threshold on |delta - 1|.

    Returns
    -------
    float
        Value of the continued fraction.

    Raises
    ------
    NonConvergenceError
        If the fraction does not converge within ``max_iter`` iterations.
    """
    a = float(a)
    b = float(b)
    x = float(x)

    qab = a + b
    qap = a + 1.0
    qam = a - 1.0
    c = 1.0
    d = 1.0 - qab * x / qap
    if abs(d) < FPMIN:
        d = FPMIN
    d = 1.0 / d
    h = d

    for m in range(1, max_iter + 1):
        m2 = 2 * m

        # even step
        aa = m * (b - m) * x / ((qam + m2) * (a + m2))
        d = 1.0 + aa * d
        if abs(d) < FPMIN:
            d = FPMIN
        c = 1.0 + aa / c
        if abs(c) < FPMIN:
            c = FPMIN
        d = 1.0 / d
        h *= d * c

        # odd step
        aa = -(a + m) * (qab + m) * x / ((a + m2) * (qap + m2))
        d = 1.0 + aa * d
        if abs(d) < FPMIN:
            d = FPMIN
        c = 1.0 + aa / c
        if abs(c) < FPMIN:
            c = FPMIN
        d = 1.0 / d
        delta = d * c
        h *= delta

        if abs(delta - 1.0) < eps:
            return h

    logger.error(
        "a=%.4g b=%.4g x=%.4g: continued fraction did not converge in %d iterations",
        a,
        b,
        x,
        max_iter,
    )
    raise NonConvergenceError(
        f"a or b too big, or max_iter too small in beta_cf "
        f"(a={a:.4g}, b={b:.4g}, x={x:.4g}, max_iter={max_iter})"
    )


def symmetry_threshold(a: float, b: float) -> float:
    """Point past which the continued fraction converges faster at 1 - x."""
    return (a + 1.0) / (a + b + 2.0)


def _beta_inc_eval(a: float, b: float, x: float, log: bool) -> float:
    """
    Regularized incomplete beta for 0 < x < 1, in direct or log form.

    Below the symmetry threshold the continued fraction is used as is;
    above it, I_x(a, b) = 1 - I_{1-x}(b, a).
    """
    ln_front = a * math.log(x) + b * math.log1p(-x) - float(betaln(a, b))

    if x < symmetry_threshold(a, b):
        ln_val = ln_front + math.log(beta_cf(a, b, x)) - math.log(a)
        return ln_val if log else math.exp(ln_val)

    ln_tail = ln_front + math.log(beta_cf(b, a, 1.0 - x)) - math.log(b)
    if log:
        return ln_subtract(0.0, ln_tail)
    return 1.0 - math.exp(ln_tail)


def beta_inc(a: float, b: float, x: float) -> float:
    """
    Regularized incomplete beta function I_x(a, b).

    Returns exactly 0.0 at both x = 0 and x = 1.

    Parameters
    ----------
    a, b : float
        Shape parameters (> 0).
    x : float
        Evaluation point in [0, 1].

    Returns
    -------
    float
        I_x(a, b).

    Raises
    ------
    InvalidProbabilityRangeError
        If x lies outside [0, 1].
    """
    if not (0.0 <= x <= 1.0):
        raise InvalidProbabilityRangeError(
            f"Bad x in beta_inc (a={a:.4g}, b={b:.4g}, x={x:.4g})"
        )
    if x == 0.0 or x == 1.0:
        return 0.0
    return _beta_inc_eval(a, b, x, log=False)


def ln_beta_inc(a: float, b: float, x: float) -> float:
    """
    Natural log of the regularized incomplete beta function I_x(a, b).

    Parameters
    ----------
    a, b : float
        Shape parameters (> 0).
    x : float
        Evaluation point, strictly inside (0, 1).

    Returns
    -------
    float
        ln I_x(a, b).

    Raises
    ------
    InvalidProbabilityRangeError
        If x is not strictly between 0 and 1.
    """
    if not (0.0 < x < 1.0):
        raise InvalidProbabilityRangeError(
            f"Bad x in ln_beta_inc (a={a:.4g}, b={b:.4g}, x={x:.4g})"
        )
    return _beta_inc_eval(a, b, x, log=True)


# =============================================================================
# Binomial / beta kernels
# =============================================================================


def expected_vaf(f: float, error: float) -> float:
    """Variant read fraction at allele fraction ``f`` after sequencing error."""
    return f * (1.0 - error) + (1.0 - f) * error


def ln_binom_coeff(kr: int, kv: int) -> float:
    """ln C(kr + kv, kv)."""
    return float(gammaln(kr + kv + 1.0) - gammaln(kv + 1.0) - gammaln(kr + 1.0))


def ln_binom_kernel(p: float, a: int, b: int) -> float:
    """
    Unnormalized binomial log-density a*ln(p) + b*ln(1-p).

    ``p`` and ``1 - p`` are floored at ``FPMIN`` so the result stays finite.
    """
    p = max(p, FPMIN)
    q = max(1.0 - p, FPMIN)
    return a * math.log(p) + b * math.log(q)


def ln_beta_incdiff_kernel(p1: float, p2: float, a: float, b: float) -> float:
    """
    Log of the binomial kernel integrated over an interval.

        ln ∫_{p1}^{p2} t^(a-1) (1-t)^(b-1) dt
            = ln B(a, b) + ln(I_{p2}(a, b) - I_{p1}(a, b))

    With a = kv + 1 and b = kr + 1 this is the kernel ``ln_binom_kernel``
    integrated over variant fractions in [p1, p2]. When both bounds sit past
    the symmetry threshold the integral is evaluated on the mirrored interval
    [1 - p2, 1 - p1] with a and b swapped, which keeps both incomplete-beta
    evaluations on the directly convergent side.

    The closed ends are allowed: ln I_1 = 0 and ln I_0 = -inf, which is
    where a zero error rate puts the HOMOREF and HOMOVAR bounds.

    Parameters
    ----------
    p1, p2 : float
        Interval bounds, 0 <= p1 < p2 <= 1.
    a, b : float
        Shape parameters (> 0).

    Returns
    -------
    float
        Log of the integral.
    """
    threshold = symmetry_threshold(a, b)
    if p1 > threshold and p2 > threshold:
        p1, p2 = 1.0 - p2, 1.0 - p1
        a, b = b, a

    ln_upper = 0.0 if p2 >= 1.0 else ln_beta_inc(a, b, p2)
    ln_lower = -np.inf if p1 <= 0.0 else ln_beta_inc(a, b, p1)
    return float(betaln(a, b)) + ln_subtract(ln_upper, ln_lower)
