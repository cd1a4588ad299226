"""
tests/test_diversity.py

Unit tests for abxcomm.diversity.
"""

import pytest
import pandas as pd
from abxcomm import simulate
from abxcomm.diversity import limited_richness, otu_richness, raw_richness, richness_table
from abxcomm.preprocess import relative_abundance


@pytest.fixture
def df_counts():
    return simulate.simulate_counts(n_otus=25, depth=10_000, seed=11)


@pytest.fixture
def df_rare():
    """One sample with two abundant OTUs and two below 1e-3, one sample all rare-free."""
    return pd.DataFrame([
        {"community": "A", "passage": 1, "dose": 0, "otu_id": "O1", "family": "F", "count": 6000},
        {"community": "A", "passage": 1, "dose": 0, "otu_id": "O2", "family": "F", "count": 3990},
        {"community": "A", "passage": 1, "dose": 0, "otu_id": "O3", "family": "F", "count": 5},
        {"community": "A", "passage": 1, "dose": 0, "otu_id": "O4", "family": "F", "count": 5},
        {"community": "A", "passage": 1, "dose": 0, "otu_id": "O5", "family": "F", "count": 0},
        {"community": "B", "passage": 1, "dose": 0, "otu_id": "O1", "family": "F", "count": 100},
    ])


class TestOtuRichness:

    def test_counts_distinct_otus(self, df_rare):
        result = otu_richness(df_rare).set_index("community")
        assert result.loc["A", "otu_count"] == 5
        assert result.loc["B", "otu_count"] == 1


class TestRawRichness:

    def test_drops_zero_counts(self, df_rare):
        result = raw_richness(df_rare).set_index("community")
        assert result.loc["A", "otu_count_raw"] == 4


class TestLimitedRichness:

    def test_excludes_sub_limit_otus(self, df_rare):
        result = limited_richness(df_rare).set_index("community")
        assert result.loc["A", "otu_count_limited"] == 2
        assert result.loc["B", "otu_count_limited"] == 1

    def test_sample_with_nothing_detected_reports_zero(self):
        df = pd.DataFrame([
            {"community": "A", "passage": 1, "dose": 0, "otu_id": "O1", "family": "F", "count": 0},
            {"community": "A", "passage": 1, "dose": 0, "otu_id": "O2", "family": "F", "count": 10},
        ])
        # O2 holds 100% of the sample, so a limit of 1.0 leaves nothing strictly above it
        result = limited_richness(df, limit=1.0)
        assert result["otu_count_limited"].tolist() == [0]

    def test_uses_existing_relative_abundance(self, df_rare):
        rel = relative_abundance(df_rare)
        pd.testing.assert_frame_equal(limited_richness(rel), limited_richness(df_rare))

    def test_lower_limit_counts_more(self, df_rare):
        strict = limited_richness(df_rare, limit=1e-3)["otu_count_limited"].sum()
        loose = limited_richness(df_rare, limit=1e-4)["otu_count_limited"].sum()
        assert loose >= strict


class TestRichnessTable:

    def test_columns(self, df_counts):
        result = richness_table(df_counts)
        assert list(result.columns) == [
            "community", "passage", "dose", "otu_count_raw", "otu_count_limited", "spurious",
        ]

    def test_one_row_per_sample(self, df_counts):
        assert len(richness_table(df_counts)) == 36

    def test_raw_at_least_limited(self, df_counts):
        result = richness_table(df_counts)
        assert (result["otu_count_raw"] >= result["otu_count_limited"]).all()

    def test_spurious_is_difference(self, df_rare):
        result = richness_table(df_rare).set_index("community")
        assert result.loc["A", "spurious"] == 2
        assert result.loc["B", "spurious"] == 0
