"""
tests/test_stats.py

Unit tests for abxcomm.stats.

Replicate tables come from simulate_replicates with low and high noise so
the ordering of R² values is known in advance.
"""

import pytest
import numpy as np
import pandas as pd
from abxcomm import simulate
from abxcomm.errors import UndefinedResultError
from abxcomm.preprocess import relative_abundance
from abxcomm.stats import fit_line, informative_pairs, replicate_correlation, replicate_r2

REPLICATE_KEYS = ["community", "passage", "dose", "replicate"]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def df_tight():
    """Replicates that agree closely."""
    df = simulate.simulate_replicates(n_otus=25, depth=50_000, noise_sd=0.05, seed=0)
    return relative_abundance(df, keys=REPLICATE_KEYS)


@pytest.fixture(scope="module")
def df_loose():
    """Replicates with heavy culture-to-culture noise."""
    df = simulate.simulate_replicates(n_otus=25, depth=50_000, noise_sd=1.5, seed=0)
    return relative_abundance(df, keys=REPLICATE_KEYS)


# ---------------------------------------------------------------------------
# informative_pairs / fit_line / replicate_r2
# ---------------------------------------------------------------------------

class TestInformativePairs:

    def test_drops_double_zeros_only(self):
        x, y = informative_pairs([0.0, 0.2, 0.0, 0.1], [0.0, 0.25, 0.3, 0.0])
        np.testing.assert_array_equal(x, [0.2, 0.0, 0.1])
        np.testing.assert_array_equal(y, [0.25, 0.3, 0.0])

    def test_shape_mismatch(self):
        with pytest.raises(ValueError, match="same shape"):
            informative_pairs([0.1, 0.2], [0.1])

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError, match="finite"):
            informative_pairs([0.1, np.nan], [0.1, 0.2])


class TestFitLine:

    def test_perfect_line(self):
        fit = fit_line([0.1, 0.2, 0.3], [0.2, 0.4, 0.6])
        assert fit["slope"] == pytest.approx(2.0)
        assert fit["intercept"] == pytest.approx(0.0, abs=1e-12)
        assert fit["r_squared"] == pytest.approx(1.0)
        assert fit["n_points"] == 3

    def test_r_squared_in_unit_interval(self):
        rng = np.random.default_rng(0)
        x = rng.random(50)
        fit = fit_line(x, x + rng.normal(0, 0.3, 50))
        assert 0.0 <= fit["r_squared"] <= 1.0

    @pytest.mark.parametrize("x, y", [([], []), ([0.1], [0.2])])
    def test_too_few_points(self, x, y):
        with pytest.raises(UndefinedResultError, match="at least 2"):
            fit_line(x, y)

    def test_constant_x(self):
        with pytest.raises(UndefinedResultError, match="constant"):
            fit_line([0.1, 0.1, 0.1], [0.1, 0.2, 0.3])


class TestReplicateR2:

    def test_concrete_pairs_leave_two_points(self):
        fit = replicate_r2([0.0, 0.2, 0.1], [0.0, 0.25, 0.05])
        assert fit["n_points"] == 2
        assert fit["slope"] == pytest.approx(2.0)
        assert fit["r_squared"] == pytest.approx(1.0)

    def test_only_zero_pairs_undefined(self):
        with pytest.raises(UndefinedResultError):
            replicate_r2([0.0, 0.0, 0.3], [0.0, 0.0, 0.3])


# ---------------------------------------------------------------------------
# replicate_correlation
# ---------------------------------------------------------------------------

class TestReplicateCorrelation:

    def test_one_row_per_community(self, df_tight):
        result = replicate_correlation(df_tight, passage=7, dose=2)
        assert result["community"].tolist() == ["A", "B", "C", "D"]
        assert list(result.columns) == [
            "community", "slope", "intercept", "r_squared", "n_points", "defined",
        ]

    def test_full_grouping_when_unfixed(self, df_tight):
        result = replicate_correlation(df_tight)
        assert len(result) == 4 * 3 * 3
        assert {"passage", "dose"} <= set(result.columns)

    def test_tight_replicates_agree(self, df_tight):
        result = replicate_correlation(df_tight, passage=1, dose=0)
        assert result["defined"].all()
        assert (result["r_squared"] > 0.9).all()

    def test_tight_beats_loose(self, df_tight, df_loose):
        tight = replicate_correlation(df_tight, passage=2, dose=0)["r_squared"].mean()
        loose = replicate_correlation(df_loose, passage=2, dose=0)["r_squared"].mean()
        assert tight > loose

    def test_undefined_group_flagged(self):
        df = pd.DataFrame([
            {"community": "A", "passage": 1, "dose": 0, "otu_id": "O1", "replicate": 1, "relative_abundance": 0.4},
            {"community": "A", "passage": 1, "dose": 0, "otu_id": "O1", "replicate": 2, "relative_abundance": 0.5},
            {"community": "B", "passage": 1, "dose": 0, "otu_id": "O1", "replicate": 1, "relative_abundance": 0.2},
            {"community": "B", "passage": 1, "dose": 0, "otu_id": "O2", "replicate": 2, "relative_abundance": 0.6},
            {"community": "B", "passage": 1, "dose": 0, "otu_id": "O3", "replicate": 1, "relative_abundance": 0.1},
            {"community": "B", "passage": 1, "dose": 0, "otu_id": "O3", "replicate": 2, "relative_abundance": 0.3},
        ])
        result = replicate_correlation(df, passage=1, dose=0).set_index("community")
        assert not result.loc["A", "defined"]
        assert np.isnan(result.loc["A", "r_squared"])
        assert result.loc["A", "n_points"] == 1
        assert result.loc["B", "defined"]
        assert result.loc["B", "n_points"] == 3

    def test_strict_raises(self):
        df = pd.DataFrame([
            {"community": "A", "passage": 1, "dose": 0, "otu_id": "O1", "replicate": 1, "relative_abundance": 0.4},
            {"community": "A", "passage": 1, "dose": 0, "otu_id": "O1", "replicate": 2, "relative_abundance": 0.5},
        ])
        with pytest.raises(UndefinedResultError):
            replicate_correlation(df, passage=1, dose=0, strict=True)

    def test_missing_replicate_counts_as_absent(self):
        df = pd.DataFrame([
            {"community": "A", "passage": 1, "dose": 0, "otu_id": "O1", "replicate": 1, "relative_abundance": 0.4},
            {"community": "A", "passage": 1, "dose": 0, "otu_id": "O2", "replicate": 1, "relative_abundance": 0.6},
        ])
        result = replicate_correlation(df, passage=1, dose=0)
        # replicate 2 is all zeros: constant y, so the fit is undefined
        assert not result["defined"].iloc[0]
        assert result["n_points"].iloc[0] == 2
