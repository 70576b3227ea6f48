"""
P-values and Phred-scaled qualities.

- binom_pval: exact binomial survival function for error-driven read counts
- pval2qual: saturating Phred transform used for every reported quality
- fisher_exact: 2x2 contingency test on read counts (allele or strand tables)
"""

import math

import numpy as np
from scipy import stats
from scipy.special import gammaln, xlogy, xlog1py

from .errors import OutOfDomainError
from .params import PVAL_FLOOR, QUAL_MAX, check_counts, check_probability


def binom_pval(s: int, n: int, p: float) -> float:
    """
    Survival p-value of the binomial distribution, P(X >= s).

    Computed as one minus the lower CDF mass, summing the exact terms
    C(n, i) p^i (1-p)^(n-i) for i < s. Direct (non-log) summation, meant for
    moderate ``n``.

    Parameters
    ----------
    s : int
        Number of successes (e.g. variant reads).
    n : int
        Number of trials (depth).
    p : float
        Success probability (e.g. sequencing error rate).

    Returns
    -------
    float
        P(X >= s) for X ~ Binomial(n, p).
    """
    check_counts(n)
    check_probability(p, "p")

    if s <= 0:
        return 1.0

    i = np.arange(s, dtype=float)
    ln_terms = (
        gammaln(n + 1.0)
        - gammaln(i + 1.0)
        - gammaln(n - i + 1.0)
        + xlogy(i, p)
        + xlog1py(n - i, -p)
    )
    cdf = float(np.exp(ln_terms).sum())
    return max(1.0 - cdf, 0.0)


def pval2qual(pval: float) -> int:
    """
    Phred-scaled quality of a p-value.

    The p-value is floored at 1e-30 before the transform and the result is
    clamped to [0, 255].
    """
    if math.isnan(pval):
        raise OutOfDomainError("cannot convert a NaN p-value to a quality")
    qual = int(-10.0 * math.log10(max(pval, PVAL_FLOOR)) + 0.499)
    return min(max(qual, 0), QUAL_MAX)


def fisher_exact(n11: int, n12: int, n21: int, n22: int) -> tuple[float, float, float]:
    """
    Fisher exact test on the 2x2 table [[n11, n12], [n21, n22]].

    With the margins fixed, n11 follows a hypergeometric distribution. Each
    tail comes from ``scipy.stats.fisher_exact``; a table with an empty row or
    column has all three p-values equal to 1.

    Parameters
    ----------
    n11, n12, n21, n22 : int
        Cell counts (non-negative).

    Returns
    -------
    tuple[float, float, float]
        (left, right, two) - P(X <= n11), P(X >= n11) and the two-tailed
        p-value summing every table no more probable than the observed one.
    """
    if min(n11, n12, n21, n22) < 0:
        raise OutOfDomainError(
            f"table cells must be non-negative, got {(n11, n12, n21, n22)!r}"
        )

    table = [[n11, n12], [n21, n22]]
    left = stats.fisher_exact(table, alternative="less")[1]
    right = stats.fisher_exact(table, alternative="greater")[1]
    two = stats.fisher_exact(table, alternative="two-sided")[1]

    return float(min(left, 1.0)), float(min(right, 1.0)), float(min(two, 1.0))
