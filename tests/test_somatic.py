import logging
import math

import numpy as np
import pytest
from scipy.stats import binom
from scipy.stats import fisher_exact as scipy_fisher_exact

from varstats.errors import InvalidContaminationError, InvalidProbabilityRangeError
from varstats.params import CallerSpec
from varstats.pvalue import pval2qual
from varstats.somatic import (
    SomaticCaller,
    SomaticCallResult,
    alt_lnlik,
    call_somatic,
    inconsist_score,
    ref_lnlik,
    somatic_lnlik,
    somatic_posterior,
)


class TestSampleLikelihoods:
    """Tests for per-sample reference and variant log-likelihoods."""

    @pytest.mark.parametrize("kr, kv", [(100, 0), (40, 2), (10, 10)])
    def test_ref_without_contamination(self, kr, kv):
        error = 0.001
        expected = binom.logpmf(kv, kr + kv, error) - math.log1p(-2 * error)
        assert ref_lnlik(kr, kv, error, 0.0) == pytest.approx(expected)

    def test_ref_small_contamination_near_exact(self):
        exact = ref_lnlik(50, 1, 0.01, 0.0)
        blurred = ref_lnlik(50, 1, 0.01, 1e-4)
        assert blurred == pytest.approx(exact, abs=0.01)

    def test_ref_contamination_favours_low_fraction_variants(self):
        """Contamination makes a few variant reads more plausible."""
        assert ref_lnlik(80, 8, 0.001, 0.2) > ref_lnlik(80, 8, 0.001, 0.0)

    def test_ref_negative_contamination(self):
        with pytest.raises(InvalidContaminationError):
            ref_lnlik(10, 0, 0.001, -0.05)

    def test_alt_integrates_to_uniform(self):
        """Across the whole fraction range every split is nearly equally likely."""
        value = alt_lnlik(20, 10, 0.001)
        assert value == pytest.approx(-math.log(31) - math.log1p(-0.002), abs=1e-4)

    def test_alt_ignores_split(self):
        a = alt_lnlik(25, 5, 0.001)
        b = alt_lnlik(5, 25, 0.001)
        assert a == pytest.approx(b, abs=1e-6)

    def test_somatic_lnlik_is_alt_lnlik(self):
        assert somatic_lnlik(12, 7, 0.01) == alt_lnlik(12, 7, 0.01)

    def test_bad_error_rate(self):
        with pytest.raises(InvalidProbabilityRangeError):
            alt_lnlik(10, 10, 0.5)

    def test_zero_error_rate(self):
        """With error 0 the variant model integrates over the closed [0, 1]."""
        assert alt_lnlik(10, 10, 0.0) == pytest.approx(-math.log(21))
        assert np.isfinite(ref_lnlik(30, 0, 0.0, 0.02))


class TestSomaticPosterior:
    """Tests for the probability that a site is not somatic."""

    def test_somatic_site(self):
        """Variant reads in tumor only."""
        post = somatic_posterior(10, 90, 100, 0, 0.001, 0.001, 0.1, 0.0)
        assert 0.0 <= post < 0.01

    def test_germline_site(self):
        """Variant reads in both samples."""
        post = somatic_posterior(50, 50, 50, 50, 0.001, 0.001, 0.1, 0.0)
        assert post > 0.99

    def test_reference_site(self):
        post = somatic_posterior(100, 0, 100, 0, 0.001, 0.001, 0.1, 0.0)
        assert post > 0.99
        assert pval2qual(post) == 0

    def test_range(self):
        for counts in [(0, 0, 0, 0), (3, 1, 0, 5), (200, 4, 150, 0), (0, 30, 0, 30)]:
            post = somatic_posterior(*counts, 0.01, 0.001, 0.01, 0.02)
            assert 0.0 <= post <= 1.0

    def test_zero_somatic_prior(self):
        """Without a somatic prior nothing is somatic."""
        post = somatic_posterior(10, 90, 100, 0, 0.001, 0.001, 0.0, 0.0)
        assert post == 1.0

    def test_contamination_lowers_confidence(self):
        """A contaminated normal explains low-fraction tumor reads."""
        clean = somatic_posterior(90, 10, 100, 0, 0.001, 0.001, 0.01, 0.0)
        dirty = somatic_posterior(90, 10, 100, 0, 0.001, 0.001, 0.01, 0.2)
        assert dirty > clean

    def test_logs_hypotheses(self, caplog):
        caplog.set_level(logging.DEBUG, logger="varstats.somatic")
        somatic_posterior(10, 90, 100, 0, 0.001, 0.001, 0.1, 0.0)
        assert "m01=" in caplog.text
        assert "tumor 10/90 normal 100/0" in caplog.text

    def test_invalid_prior(self):
        with pytest.raises(InvalidProbabilityRangeError, match="mu_somatic"):
            somatic_posterior(10, 90, 100, 0, 0.001, 0.001, 1.5, 0.0)

    def test_zero_error_rate(self):
        post = somatic_posterior(10, 90, 100, 0, 0.0, 0.001, 0.1, 0.0)
        assert 0.0 <= post < 0.01

        score = inconsist_score(0, 100, 100, 0, 0.1, 0.0)
        assert np.isfinite(score)
        assert score > 0.0


class TestInconsistScore:
    """Tests for tumor / normal inconsistency."""

    def test_consistent_samples(self):
        score = inconsist_score(50, 50, 50, 50, 0.001, 0.001)
        assert 0.0 <= score < 0.1

    def test_inconsistent_samples(self):
        score = inconsist_score(0, 100, 100, 0, 0.1, 0.001)
        assert score > 50.0

    def test_ordering(self):
        same = inconsist_score(40, 60, 45, 55, 0.1, 0.001)
        different = inconsist_score(10, 90, 90, 10, 0.1, 0.001)
        assert different > same

    def test_zero_prior(self):
        """With no prior weight on inconsistency the score vanishes."""
        assert inconsist_score(0, 100, 100, 0, 0.0, 0.001) == pytest.approx(0.0, abs=1e-9)

    def test_invalid_prior(self):
        with pytest.raises(InvalidProbabilityRangeError):
            inconsist_score(1, 1, 1, 1, -0.1, 0.001)


class TestSomaticCaller:
    """Tests for SomaticCaller."""

    # somatic, germline, reference
    kr_tumor = np.array([10, 50, 100])
    kv_tumor = np.array([90, 50, 0])
    kr_normal = np.array([100, 50, 100])
    kv_normal = np.array([0, 50, 0])

    def _call(self, spec=None):
        spec = spec if spec is not None else CallerSpec(mu_somatic=0.1)
        return SomaticCaller(spec).call(
            self.kr_tumor, self.kv_tumor, self.kr_normal, self.kv_normal
        )

    def test_call_basic(self):
        caller = self._call()

        assert caller.posterior.shape == (3,)
        assert caller.qual[0] >= 30
        assert caller.qual[1] == 0
        assert caller.qual[2] == 0

    def test_get_result(self):
        result = self._call().get_result()

        assert isinstance(result, SomaticCallResult)
        assert result.n_sites == 3
        np.testing.assert_array_equal(result.passed(20), [True, False, False])
        np.testing.assert_array_equal(result.kv_tumor, self.kv_tumor)

    def test_inconsistency_and_fisher(self):
        result = self._call().get_result()

        assert result.inconsistency[0] > result.inconsistency[1]
        assert result.fisher_pval[0] < 1e-10
        assert result.fisher_pval[2] == pytest.approx(1.0)
        np.testing.assert_allclose(
            result.fisher_pval[0],
            scipy_fisher_exact([[10, 90], [100, 0]], alternative="two-sided")[1],
        )

    def test_matches_scalar_functions(self):
        spec = CallerSpec(error=0.01, mu_somatic=0.05, contam=0.02)
        caller = self._call(spec)

        for i in range(3):
            expected = somatic_posterior(
                int(self.kr_tumor[i]),
                int(self.kv_tumor[i]),
                int(self.kr_normal[i]),
                int(self.kv_normal[i]),
                spec.error,
                spec.mu,
                spec.mu_somatic,
                spec.contam,
            )
            assert caller.posterior[i] == pytest.approx(expected)

    def test_empty_input(self):
        result = SomaticCaller().call([], [], [], []).get_result()
        assert result.n_sites == 0
        assert len(result.qual) == 0

    def test_get_result_before_call(self):
        with pytest.raises(ValueError, match="Must call"):
            SomaticCaller().get_result()

    def test_repr(self):
        caller = SomaticCaller()
        assert "not called" in repr(caller)
        assert "status=called" in repr(self._call())


class TestConvenienceFunctions:
    def test_call_somatic(self):
        result = call_somatic([10], [90], [100], [0], spec=CallerSpec(mu_somatic=0.1))

        assert result.n_sites == 1
        assert result.passed(20)[0]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
