"""
Germline genotype likelihoods and variant-call p-values.

Each site is summarised by its reference and variant read counts (kr, kv).
A genotype fixes the allele fraction f of the variant allele:

    HOMOREF: f = 0      HET: f = 0.5      HOMOVAR: f = 1

Sequencing error shifts the expected variant read fraction to
pv(f) = f(1 - e) + (1 - f)e. Without contamination the reads follow a
binomial at pv(f). With contamination extent c the allele fraction is spread
uniformly over an interval of width c (2c for HET) around f, and the binomial
kernel is integrated over that interval.
"""

from dataclasses import dataclass, field
from enum import IntEnum
import logging
import math

import numpy as np
from scipy.special import logsumexp
from typing import Optional

from .errors import OutOfDomainError
from .params import (
    CallerSpec,
    as_count_arrays,
    check_contamination,
    check_counts,
    check_error_rate,
    check_probability,
)
from .pvalue import pval2qual
from .utils import (
    beta_inc,
    expected_vaf,
    ln_beta_incdiff_kernel,
    ln_binom_coeff,
    ln_binom_kernel,
    safe_log,
)

logger = logging.getLogger(__name__)


class Genotype(IntEnum):
    """Diploid genotype at a biallelic site."""

    HOMOREF = 0
    HET = 1
    HOMOVAR = 2

    @property
    def allele_fraction(self) -> float:
        """Fraction of variant alleles carried by the genotype."""
        return _ALLELE_FRACTION[self]


_ALLELE_FRACTION = {
    Genotype.HOMOREF: 0.0,
    Genotype.HET: 0.5,
    Genotype.HOMOVAR: 1.0,
}


def as_genotype(genotype) -> Genotype:
    """Coerce a genotype tag (member or 0/1/2) to ``Genotype``."""
    try:
        return Genotype(genotype)
    except (ValueError, TypeError) as exc:
        raise OutOfDomainError(f"Genotype not recognized: {genotype!r}") from exc


def _contamination_interval(
    genotype: Genotype, contam: float
) -> tuple[float, float, float]:
    """Allele-fraction interval (lower, upper, width) blurred by contamination."""
    if genotype is Genotype.HOMOREF:
        return 0.0, contam, contam
    if genotype is Genotype.HET:
        return 0.5 - contam, 0.5 + contam, 2.0 * contam
    if genotype is Genotype.HOMOVAR:
        return 1.0 - contam, 1.0, contam
    raise OutOfDomainError(f"Genotype not recognized: {genotype!r}")


def genotype_lnlik(
    genotype: Genotype, kr: int, kv: int, error: float, contam: float
) -> float:
    """
    Log-likelihood of the read counts under one genotype.

    Parameters
    ----------
    genotype : Genotype
        HOMOREF, HET or HOMOVAR.
    kr : int
        Reference-supporting reads.
    kv : int
        Variant-supporting reads.
    error : float
        Sequencing error rate in [0, 0.5).
    contam : float
        Contamination extent (>= 0). Zero selects the exact binomial.

    Returns
    -------
    float
        ln P(kr, kv | genotype), including the binomial coefficient.

    Raises
    ------
    InvalidContaminationError
        If ``contam`` is negative.
    OutOfDomainError
        If ``genotype`` is not a recognised tag.
    """
    genotype = as_genotype(genotype)
    check_counts(kr, kv)
    check_error_rate(error)
    check_contamination(contam)

    if contam == 0.0:
        lnlik = ln_binom_kernel(expected_vaf(genotype.allele_fraction, error), kv, kr)
    else:
        f_lo, f_hi, width = _contamination_interval(genotype, contam)
        lnlik = (
            ln_beta_incdiff_kernel(
                expected_vaf(f_lo, error), expected_vaf(f_hi, error), kv + 1, kr + 1
            )
            - math.log(width)
            - math.log1p(-2.0 * error)
        )

    return lnlik + ln_binom_coeff(kr, kv)


def genotype_prior_HWE(genotype: Genotype, allele_freq: float) -> float:
    """Hardy-Weinberg prior of a genotype given the variant allele frequency."""
    genotype = as_genotype(genotype)
    check_probability(allele_freq, "allele_freq")

    p = allele_freq
    if genotype is Genotype.HOMOVAR:
        return p * p
    if genotype is Genotype.HET:
        return 2.0 * p * (1.0 - p)
    return 1.0 - 2.0 * p * (1.0 - p) - p * p


def _beta_mass(a: float, b: float, x: float) -> float:
    """Regularized incomplete beta with I_1 = 1; ``beta_inc`` keeps 0 there."""
    return 1.0 if x >= 1.0 else beta_inc(a, b, x)


def varcall_pval(kr: int, kv: int, error: float, mu: float, contam: float) -> float:
    """
    Posterior probability that a site carries no variant.

    Works in direct probability space. With U = P(data | ref) P(ref) and
    V = P(data | variant) P(variant), returns U / (U + V). The variant
    hypothesis integrates the allele fraction over [pv(0), pv(1)]; with
    contamination the reference hypothesis integrates over [pv(0), pv(c)].
    A prior of 0 or 1 settles the answer before any mass is computed.

    Parameters
    ----------
    kr, kv : int
        Reference and variant read counts.
    error : float
        Sequencing error rate in [0, 0.5).
    mu : float
        Prior probability of a variant.
    contam : float
        Contamination extent (>= 0).

    Returns
    -------
    float
        P(no variant | kr, kv).
    """
    check_counts(kr, kv)
    check_error_rate(error)
    check_probability(mu, "mu")
    check_contamination(contam)

    if mu == 0.0:
        return 1.0
    if mu == 1.0:
        return 0.0

    a, b = kv + 1, kr + 1
    p_ref = expected_vaf(0.0, error)
    p_alt = expected_vaf(1.0, error)
    alt_mass = _beta_mass(a, b, p_alt) - beta_inc(a, b, p_ref)

    if contam == 0.0:
        u = p_ref**kv * (1.0 - p_ref) ** kr * (1.0 - mu)
        v = alt_mass * mu
    else:
        u = (_beta_mass(a, b, expected_vaf(contam, error)) - beta_inc(a, b, p_ref)) * (
            1.0 - mu
        )
        v = alt_mass * mu * contam

    if u + v == 0.0:
        raise OutOfDomainError(
            f"both hypotheses underflow (kr={kr}, kv={kv}, error={error}, mu={mu})"
        )
    return u / (u + v)


# =============================================================================
# Batch genotyping
# =============================================================================


@dataclass
class GenotypeCallResult:
    """
    Per-site germline calls for a batch of read-count pairs.
    """

    kr: np.ndarray
    kv: np.ndarray

    # Log-likelihoods and posteriors (N x 3, columns ordered as Genotype)
    lnlik: np.ndarray = field(repr=False)
    posteriors: np.ndarray = field(repr=False)

    # Best genotype and its Phred-scaled confidence
    genotypes: np.ndarray
    gq: np.ndarray

    # Variant-call p-value (P(no variant)) and its quality
    pval: np.ndarray
    qual: np.ndarray

    @property
    def n_sites(self) -> int:
        return len(self.kr)

    def is_variant(self, min_qual: int = 20) -> np.ndarray:
        """Sites called non-reference with quality at least ``min_qual``."""
        return (self.genotypes != Genotype.HOMOREF) & (self.qual >= min_qual)

    def genotype_names(self) -> list[str]:
        return [Genotype(g).name for g in self.genotypes]


class GenotypeCaller:
    """
    Genotype a batch of sites from reference / variant read counts.

    Combines ``genotype_lnlik`` with a Hardy-Weinberg prior to obtain
    per-genotype posteriors, and ``varcall_pval`` for the variant quality.

    Parameters
    ----------
    spec : CallerSpec, optional
        Error rate, variant prior and contamination extent.
    allele_freq : float
        Population frequency of the variant allele for the HWE prior.

    Attributes
    ----------
    lnlik : np.ndarray
        Per-genotype log-likelihoods (N x 3).
    posteriors : np.ndarray
        Per-genotype posterior probabilities (N x 3).
    genotypes : np.ndarray
        Maximum a posteriori genotype per site.
    gq : np.ndarray
        Phred-scaled probability that the called genotype is wrong.
    pval, qual : np.ndarray
        Variant-call p-values and their qualities.
    """

    GENOTYPES = (Genotype.HOMOREF, Genotype.HET, Genotype.HOMOVAR)

    def __init__(
        self,
        spec: Optional[CallerSpec] = None,
        allele_freq: float = 0.001,
    ):
        check_probability(allele_freq, "allele_freq")
        self.spec = spec if spec is not None else CallerSpec()
        self.allele_freq = allele_freq

        # Set after calling
        self.kr: Optional[np.ndarray] = None
        self.kv: Optional[np.ndarray] = None
        self.lnlik: Optional[np.ndarray] = None
        self.posteriors: Optional[np.ndarray] = None
        self.genotypes: Optional[np.ndarray] = None
        self.gq: Optional[np.ndarray] = None
        self.pval: Optional[np.ndarray] = None
        self.qual: Optional[np.ndarray] = None

    @property
    def ln_prior(self) -> np.ndarray:
        """Log HWE prior for each genotype."""
        return np.array(
            [safe_log(genotype_prior_HWE(g, self.allele_freq)) for g in self.GENOTYPES]
        )

    def call(self, kr: np.ndarray, kv: np.ndarray) -> "GenotypeCaller":
        """
        Genotype every site.

        Parameters
        ----------
        kr : np.ndarray
            Reference read counts.
        kv : np.ndarray
            Variant read counts, same length as ``kr``.

        Returns
        -------
        GenotypeCaller
            Self, for method chaining.
        """
        kr, kv = as_count_arrays(kr, kv)
        self.kr = kr
        self.kv = kv
        N = len(kr)
        spec = self.spec
        logger.debug("Genotyping %d sites (error=%g, contam=%g)", N, spec.error, spec.contam)

        if N == 0:
            self._set_empty_call()
            return self

        lnlik = np.zeros((N, 3))
        pval = np.zeros(N)
        for i in range(N):
            r, v = int(kr[i]), int(kv[i])
            for k, g in enumerate(self.GENOTYPES):
                lnlik[i, k] = genotype_lnlik(g, r, v, spec.error, spec.contam)
            pval[i] = varcall_pval(r, v, spec.error, spec.mu, spec.contam)

        log_post = lnlik + self.ln_prior[None, :]
        log_norm = logsumexp(log_post, axis=1)
        posteriors = np.exp(log_post - log_norm[:, None])

        self.lnlik = lnlik
        self.posteriors = posteriors
        self.genotypes = posteriors.argmax(axis=1)
        self.gq = np.array([pval2qual(1.0 - p) for p in posteriors.max(axis=1)])
        self.pval = pval
        self.qual = np.array([pval2qual(p) for p in pval])

        return self

    def _set_empty_call(self):
        """Set outputs for empty input."""
        self.lnlik = np.array([]).reshape(0, 3)
        self.posteriors = np.array([]).reshape(0, 3)
        self.genotypes = np.array([], dtype=int)
        self.gq = np.array([], dtype=int)
        self.pval = np.array([])
        self.qual = np.array([], dtype=int)

    def get_result(self) -> GenotypeCallResult:
        """
        Package results into GenotypeCallResult.

        Returns
        -------
        GenotypeCallResult
            Structured per-site results.
        """
        if self.genotypes is None:
            raise ValueError("Must call call() before get_result()")

        return GenotypeCallResult(
            kr=self.kr.copy(),
            kv=self.kv.copy(),
            lnlik=self.lnlik.copy(),
            posteriors=self.posteriors.copy(),
            genotypes=self.genotypes.copy(),
            gq=self.gq.copy(),
            pval=self.pval.copy(),
            qual=self.qual.copy(),
        )

    def __repr__(self) -> str:
        status = "called" if self.genotypes is not None else "not called"
        n_sites = 0 if self.kr is None else len(self.kr)
        return (
            f"GenotypeCaller(error={self.spec.error}, contam={self.spec.contam}, "
            f"allele_freq={self.allele_freq}, n_sites={n_sites}, status={status})"
        )


# =============================================================================
# Convenience Functions
# =============================================================================


def call_genotypes(
    kr: np.ndarray,
    kv: np.ndarray,
    spec: Optional[CallerSpec] = None,
    allele_freq: float = 0.001,
) -> GenotypeCallResult:
    """
    Convenience function to genotype a batch of sites and return results.

    Parameters
    ----------
    kr : np.ndarray
        Reference read counts.
    kv : np.ndarray
        Variant read counts.
    spec : CallerSpec, optional
        Model parameters.
    allele_freq : float
        Variant allele frequency for the HWE prior.

    Returns
    -------
    GenotypeCallResult
        Per-site calls.
    """
    caller = GenotypeCaller(spec, allele_freq)
    caller.call(kr, kv)
    return caller.get_result()
