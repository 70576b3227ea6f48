"""
Log-domain likelihoods and p-values for germline and somatic variant calling.

Everything is computed from reference / variant read counts, a sequencing
error rate and model priors; reading alignments or VCFs is left to callers.
"""

from .errors import (
    StatsDomainError,
    InvalidContaminationError,
    InvalidProbabilityRangeError,
    OutOfDomainError,
    NonConvergenceError,
)

from .params import CallerSpec

from .utils import (
    # Log-domain arithmetic
    ln_sum,
    ln_sum2,
    ln_sum3,
    ln_sum4,
    ln_subtract,
    # Incomplete beta
    beta_cf,
    beta_inc,
    ln_beta_inc,
    # Kernels
    ln_binom_kernel,
    ln_beta_incdiff_kernel,
    ln_binom_coeff,
    expected_vaf,
)

from .pvalue import (
    binom_pval,
    pval2qual,
    fisher_exact,
)

from .germline import (
    Genotype,
    GenotypeCaller,
    GenotypeCallResult,
    genotype_lnlik,
    genotype_prior_HWE,
    varcall_pval,
    call_genotypes,
)

from .somatic import (
    SomaticCaller,
    SomaticCallResult,
    ref_lnlik,
    alt_lnlik,
    somatic_lnlik,
    somatic_posterior,
    inconsist_score,
    call_somatic,
)

__all__ = [
    # Classes
    "Genotype",
    "GenotypeCaller",
    "SomaticCaller",
    # Convenience functions
    "call_genotypes",
    "call_somatic",
    # Data classes
    "CallerSpec",
    "GenotypeCallResult",
    "SomaticCallResult",
    # Errors
    "StatsDomainError",
    "InvalidContaminationError",
    "InvalidProbabilityRangeError",
    "OutOfDomainError",
    "NonConvergenceError",
    # Likelihoods and decisions
    "genotype_lnlik",
    "genotype_prior_HWE",
    "varcall_pval",
    "ref_lnlik",
    "alt_lnlik",
    "somatic_lnlik",
    "somatic_posterior",
    "inconsist_score",
    # P-values
    "binom_pval",
    "pval2qual",
    "fisher_exact",
    # Utilities
    "ln_sum",
    "ln_sum2",
    "ln_sum3",
    "ln_sum4",
    "ln_subtract",
    "beta_cf",
    "beta_inc",
    "ln_beta_inc",
    "ln_binom_kernel",
    "ln_beta_incdiff_kernel",
    "ln_binom_coeff",
    "expected_vaf",
]

__version__ = "0.1.0"
