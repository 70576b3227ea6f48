"""
Somatic calling from matched tumor / normal read counts.

Each sample is explained either by the reference model (variant reads come
from sequencing error, optionally blurred by contamination) or by the
variant model (allele fraction anywhere in [pv(0), pv(1)]). The joint
(normal, tumor) states give four hypotheses:

    m00: ref / ref          (prior weight 1)
    m01: ref / alt          somatic mutation, prior mu_somatic
    m10: alt / ref          normal-only artifact, prior mu_somatic
    m11: alt / alt          germline variant, prior mu

The somatic posterior is the complement of the m01 posterior mass.
"""

from dataclasses import dataclass, field
import logging
import math

import numpy as np
from typing import Optional

from .params import (
    CallerSpec,
    as_count_arrays,
    check_contamination,
    check_counts,
    check_error_rate,
    check_probability,
)
from .pvalue import fisher_exact, pval2qual
from .utils import (
    expected_vaf,
    ln_beta_incdiff_kernel,
    ln_binom_coeff,
    ln_binom_kernel,
    ln_sum2,
    ln_sum4,
    safe_log,
)

logger = logging.getLogger(__name__)


def ref_lnlik(kr: int, kv: int, error: float, contam: float) -> float:
    """
    Log-likelihood of a sample under the reference (no variant) model.

    Parameters
    ----------
    kr, kv : int
        Reference and variant read counts.
    error : float
        Sequencing error rate in [0, 0.5).
    contam : float
        Contamination extent (>= 0).

    Returns
    -------
    float
        ln P(kr, kv | reference).
    """
    check_counts(kr, kv)
    check_error_rate(error)
    check_contamination(contam)

    ln_norm = math.log1p(-2.0 * error)
    if contam == 0.0:
        lnlik = ln_binom_kernel(expected_vaf(0.0, error), kv, kr) - ln_norm
    else:
        lnlik = (
            ln_beta_incdiff_kernel(
                expected_vaf(0.0, error), expected_vaf(contam, error), kv + 1, kr + 1
            )
            - ln_norm
            - math.log(contam)
        )
    return lnlik + ln_binom_coeff(kr, kv)


def alt_lnlik(kr: int, kv: int, error: float) -> float:
    """
    Log-likelihood of a sample under the variant-present model.

    The allele fraction is integrated over the whole [pv(0), pv(1)] range;
    contamination does not enter.
    """
    check_counts(kr, kv)
    check_error_rate(error)

    return (
        ln_beta_incdiff_kernel(
            expected_vaf(0.0, error), expected_vaf(1.0, error), kv + 1, kr + 1
        )
        - math.log1p(-2.0 * error)
        + ln_binom_coeff(kr, kv)
    )


def somatic_lnlik(kr: int, kv: int, error: float) -> float:
    """Per-sample variant log-likelihood used by ``inconsist_score``."""
    return alt_lnlik(kr, kv, error)


def somatic_posterior(
    kr_t: int,
    kv_t: int,
    kr_n: int,
    kv_n: int,
    error: float,
    mu: float,
    mu_somatic: float,
    contam: float,
) -> float:
    """
    Probability that a site is *not* a somatic mutation.

    Parameters
    ----------
    kr_t, kv_t : int
        Tumor reference and variant read counts.
    kr_n, kv_n : int
        Normal reference and variant read counts.
    error : float
        Sequencing error rate in (0, 0.5).
    mu : float
        Prior of a germline variant present in both samples.
    mu_somatic : float
        Prior of a variant present in one sample only.
    contam : float
        Contamination extent (>= 0).

    Returns
    -------
    float
        1 - P(m01 | data), in [0, 1].
    """
    check_probability(mu, "mu")
    check_probability(mu_somatic, "mu_somatic")

    ref_t = ref_lnlik(kr_t, kv_t, error, contam)
    ref_n = ref_lnlik(kr_n, kv_n, error, contam)
    alt_t = alt_lnlik(kr_t, kv_t, error)
    alt_n = alt_lnlik(kr_n, kv_n, error)
    ln_mu_somatic = safe_log(mu_somatic)

    m00 = ref_n + ref_t
    m01 = ref_n + alt_t + ln_mu_somatic
    m10 = alt_n + ref_t + ln_mu_somatic
    m11 = alt_n + alt_t + safe_log(mu)
    d = ln_sum4(m00, m01, m10, m11)

    logger.debug(
        "tumor %d/%d normal %d/%d: m00=%.7f m01=%.7f m10=%.7f m11=%.7f d=%.7f",
        kr_t,
        kv_t,
        kr_n,
        kv_n,
        m00,
        m01,
        m10,
        m11,
        d,
    )

    return max(1.0 - math.exp(m01 - d), 0.0)


def inconsist_score(
    kr_tumor: int,
    kv_tumor: int,
    kr_normal: int,
    kv_normal: int,
    mu: float,
    error: float,
) -> float:
    """
    Log-space evidence that tumor and normal carry different allele fractions.

    The consistent hypothesis pools both samples under one shared allele
    fraction; the inconsistent hypothesis combines the per-sample variant
    likelihoods. ``mu`` is the prior weight of inconsistency.

    Returns
    -------
    float
        ln(1 + mu L_i / ((1-mu) L_c)); non-negative, growing with the
        evidence for disagreement.
    """
    check_counts(kr_tumor, kv_tumor, kr_normal, kv_normal)
    check_error_rate(error)
    check_probability(mu, "mu")

    kv = kv_normal + kv_tumor
    kr = kr_normal + kr_tumor

    consist_lnlik = (
        ln_beta_incdiff_kernel(
            expected_vaf(0.0, error), expected_vaf(1.0, error), kv + 1, kr + 1
        )
        - math.log1p(-2.0 * error)
        + ln_binom_coeff(kr_tumor, kv_tumor)
        + ln_binom_coeff(kr_normal, kv_normal)
    )
    inconsist_lnlik = ln_sum2(
        somatic_lnlik(kr_tumor, kv_tumor, error),
        somatic_lnlik(kr_normal, kv_normal, error),
    )

    ln_consistent = safe_log(1.0 - mu)
    return (
        -consist_lnlik
        - ln_consistent
        + ln_sum2(consist_lnlik + ln_consistent, inconsist_lnlik + safe_log(mu))
    )


# =============================================================================
# Batch somatic calling
# =============================================================================


@dataclass
class SomaticCallResult:
    """
    Per-site somatic calls for matched tumor / normal counts.
    """

    kr_tumor: np.ndarray
    kv_tumor: np.ndarray
    kr_normal: np.ndarray
    kv_normal: np.ndarray

    # P(not somatic) and its Phred quality
    posterior: np.ndarray
    qual: np.ndarray

    # Tumor / normal disagreement
    inconsistency: np.ndarray = field(repr=False)
    fisher_pval: np.ndarray = field(repr=False)

    @property
    def n_sites(self) -> int:
        return len(self.posterior)

    def passed(self, min_qual: int = 20) -> np.ndarray:
        """Sites whose somatic quality reaches ``min_qual``."""
        return self.qual >= min_qual


class SomaticCaller:
    """
    Score a batch of tumor / normal sites for somatic mutations.

    Parameters
    ----------
    spec : CallerSpec, optional
        Error rate, priors and contamination extent.

    Attributes
    ----------
    posterior : np.ndarray
        ``somatic_posterior`` per site (probability of *not* somatic).
    qual : np.ndarray
        Phred-scaled somatic quality.
    inconsistency : np.ndarray
        ``inconsist_score`` per site, weighted by ``spec.mu``.
    fisher_pval : np.ndarray
        Two-tailed Fisher p-value of the tumor vs normal allele table.
    """

    def __init__(self, spec: Optional[CallerSpec] = None):
        self.spec = spec if spec is not None else CallerSpec()

        # Set after calling
        self.counts: Optional[list[np.ndarray]] = None
        self.posterior: Optional[np.ndarray] = None
        self.qual: Optional[np.ndarray] = None
        self.inconsistency: Optional[np.ndarray] = None
        self.fisher_pval: Optional[np.ndarray] = None

    def call(
        self,
        kr_tumor: np.ndarray,
        kv_tumor: np.ndarray,
        kr_normal: np.ndarray,
        kv_normal: np.ndarray,
    ) -> "SomaticCaller":
        """
        Score every site.

        Parameters
        ----------
        kr_tumor, kv_tumor : np.ndarray
            Tumor reference and variant read counts.
        kr_normal, kv_normal : np.ndarray
            Normal reference and variant read counts.

        Returns
        -------
        SomaticCaller
            Self, for method chaining.
        """
        self.counts = as_count_arrays(kr_tumor, kv_tumor, kr_normal, kv_normal)
        spec = self.spec
        N = len(self.counts[0])
        logger.debug(
            "Scoring %d tumor/normal sites (error=%g, mu_somatic=%g, contam=%g)",
            N,
            spec.error,
            spec.mu_somatic,
            spec.contam,
        )

        posterior = np.zeros(N)
        inconsistency = np.zeros(N)
        fisher_pval = np.zeros(N)
        for i, (rt, vt, rn, vn) in enumerate(zip(*self.counts)):
            rt, vt, rn, vn = int(rt), int(vt), int(rn), int(vn)
            posterior[i] = somatic_posterior(
                rt, vt, rn, vn, spec.error, spec.mu, spec.mu_somatic, spec.contam
            )
            inconsistency[i] = inconsist_score(rt, vt, rn, vn, spec.mu, spec.error)
            fisher_pval[i] = fisher_exact(rt, vt, rn, vn)[2]

        self.posterior = posterior
        self.qual = np.array([pval2qual(p) for p in posterior], dtype=int)
        self.inconsistency = inconsistency
        self.fisher_pval = fisher_pval

        return self

    def get_result(self) -> SomaticCallResult:
        """
        Package results into SomaticCallResult.

        Returns
        -------
        SomaticCallResult
            Structured per-site results.
        """
        if self.posterior is None:
            raise ValueError("Must call call() before get_result()")

        kr_t, kv_t, kr_n, kv_n = (c.copy() for c in self.counts)
        return SomaticCallResult(
            kr_tumor=kr_t,
            kv_tumor=kv_t,
            kr_normal=kr_n,
            kv_normal=kv_n,
            posterior=self.posterior.copy(),
            qual=self.qual.copy(),
            inconsistency=self.inconsistency.copy(),
            fisher_pval=self.fisher_pval.copy(),
        )

    def __repr__(self) -> str:
        status = "called" if self.posterior is not None else "not called"
        n_sites = 0 if self.posterior is None else len(self.posterior)
        return (
            f"SomaticCaller(error={self.spec.error}, mu_somatic={self.spec.mu_somatic}, "
            f"contam={self.spec.contam}, n_sites={n_sites}, status={status})"
        )


# =============================================================================
# Convenience Functions
# =============================================================================


def call_somatic(
    kr_tumor: np.ndarray,
    kv_tumor: np.ndarray,
    kr_normal: np.ndarray,
    kv_normal: np.ndarray,
    spec: Optional[CallerSpec] = None,
) -> SomaticCallResult:
    """
    Convenience function to score tumor / normal sites and return results.

    Parameters
    ----------
    kr_tumor, kv_tumor : np.ndarray
        Tumor reference and variant read counts.
    kr_normal, kv_normal : np.ndarray
        Normal reference and variant read counts.
    spec : CallerSpec, optional
        Model parameters.

    Returns
    -------
    SomaticCallResult
        Per-site results.
    """
    caller = SomaticCaller(spec)
    caller.call(kr_tumor, kv_tumor, kr_normal, kv_normal)
    return caller.get_result()
