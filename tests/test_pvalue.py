import numpy as np
import pytest
from scipy.stats import binom
from scipy.stats import fisher_exact as scipy_fisher_exact

from varstats.errors import InvalidProbabilityRangeError, OutOfDomainError
from varstats.pvalue import binom_pval, fisher_exact, pval2qual


class TestBinomPval:
    """Tests for the binomial survival p-value."""

    @pytest.mark.parametrize("n, p", [(0, 0.1), (10, 0.0), (100, 0.001), (1000, 0.5)])
    def test_zero_successes(self, n, p):
        """P(X >= 0) is exactly 1."""
        assert binom_pval(0, n, p) == 1.0

    @pytest.mark.parametrize(
        "s, n, p", [(5, 100, 0.01), (1, 10, 0.1), (3, 20, 0.5), (12, 40, 0.2)]
    )
    def test_matches_scipy(self, s, n, p):
        """Verify implementation matches scipy's binomial survival function."""
        np.testing.assert_allclose(binom_pval(s, n, p), binom.sf(s - 1, n, p), rtol=1e-9)

    def test_more_successes_than_trials(self):
        assert binom_pval(12, 10, 0.3) == pytest.approx(0.0, abs=1e-12)

    def test_zero_error_rate(self):
        """With p = 0, observing any success has probability 0."""
        assert binom_pval(1, 10, 0.0) == pytest.approx(0.0, abs=1e-15)

    def test_decreasing_in_s(self):
        values = [binom_pval(s, 50, 0.05) for s in range(0, 15)]
        assert np.all(np.diff(values) <= 0)

    def test_invalid_probability(self):
        with pytest.raises(InvalidProbabilityRangeError):
            binom_pval(2, 10, 1.5)


class TestPval2Qual:
    """Tests for the Phred transform."""

    def test_certain_pvalue(self):
        assert pval2qual(1.0) == 0

    def test_known_values(self):
        assert pval2qual(0.1) == 10
        assert pval2qual(0.01) == 20
        assert pval2qual(0.05) == 13
        assert pval2qual(1e-25) == 250

    def test_saturation(self):
        """Qualities saturate at 255 once the p-value hits the 1e-30 floor."""
        assert pval2qual(1e-30) == 255
        assert pval2qual(1e-100) == 255
        assert pval2qual(0.0) == 255

    def test_returns_int(self):
        assert isinstance(pval2qual(0.3), int)

    def test_monotonic(self):
        pvals = np.logspace(-40, 0, 200)
        quals = [pval2qual(p) for p in pvals]
        assert np.all(np.diff(quals) <= 0)
        assert all(0 <= q <= 255 for q in quals)

    def test_nan_raises(self):
        with pytest.raises(OutOfDomainError, match="NaN"):
            pval2qual(float("nan"))


class TestFisherExact:
    """Tests for the 2x2 Fisher exact test."""

    @pytest.mark.parametrize(
        "table",
        [
            [[8, 2], [1, 5]],
            [[3, 5], [7, 2]],
            [[12, 5], [29, 2]],
            [[1, 9], [11, 3]],
            [[10, 90], [100, 0]],
        ],
    )
    def test_matches_scipy(self, table):
        """Verify the three tails against scipy."""
        (n11, n12), (n21, n22) = table
        left, right, two = fisher_exact(n11, n12, n21, n22)

        np.testing.assert_allclose(
            left, scipy_fisher_exact(table, alternative="less")[1], rtol=1e-6
        )
        np.testing.assert_allclose(
            right, scipy_fisher_exact(table, alternative="greater")[1], rtol=1e-6
        )
        np.testing.assert_allclose(
            two, scipy_fisher_exact(table, alternative="two-sided")[1], rtol=1e-6
        )

    def test_empty_table(self):
        assert fisher_exact(0, 0, 0, 0) == (1.0, 1.0, 1.0)

    def test_degenerate_margin(self):
        """A single admissible table has all tails equal to 1."""
        left, right, two = fisher_exact(100, 0, 100, 0)
        assert left == pytest.approx(1.0)
        assert right == pytest.approx(1.0)
        assert two == pytest.approx(1.0)

    def test_tails_cover_observed(self):
        """left + right = 1 + P(observed)."""
        left, right, two = fisher_exact(3, 5, 7, 2)
        assert left + right > 1.0
        assert two <= 1.0

    def test_negative_cell_raises(self):
        with pytest.raises(OutOfDomainError, match="non-negative"):
            fisher_exact(1, -1, 2, 3)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
