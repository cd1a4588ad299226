"""
tests/test_simulate.py

Unit tests for the abxcomm simulation framework.
These tests verify that simulated tables have the right structure, exact
sequencing depth, and the embedded dose response.
"""

import pytest
import numpy as np
import pandas as pd
from abxcomm import simulate
from abxcomm.preprocess import relative_abundance


# ---------------------------------------------------------------------------
# simulate_counts
# ---------------------------------------------------------------------------

class TestSimulateCounts:

    def test_columns(self):
        df = simulate.simulate_counts(n_otus=10, seed=0)
        assert list(df.columns) == ["community", "passage", "dose", "otu_id", "family", "count"]

    def test_all_samples_present(self):
        df = simulate.simulate_counts(n_otus=10, seed=0)
        assert df[["community", "passage", "dose"]].drop_duplicates().shape[0] == 36

    def test_exact_depth(self):
        df = simulate.simulate_counts(n_otus=15, depth=12_345, seed=1)
        depth = df.groupby(["community", "passage", "dose"])["count"].sum()
        assert (depth == 12_345).all()

    def test_no_zero_rows(self):
        df = simulate.simulate_counts(n_otus=15, seed=2)
        assert (df["count"] > 0).all()

    def test_unique_otu_per_sample(self):
        df = simulate.simulate_counts(n_otus=15, seed=3)
        assert not df.duplicated(["community", "passage", "dose", "otu_id"]).any()

    def test_family_invariant_per_otu(self):
        df = simulate.simulate_counts(n_otus=20, seed=4)
        assert (df.groupby("otu_id")["family"].nunique() == 1).all()

    def test_reproducible(self):
        a = simulate.simulate_counts(n_otus=10, seed=7)
        b = simulate.simulate_counts(n_otus=10, seed=7)
        pd.testing.assert_frame_equal(a, b)

    def test_custom_domains(self):
        df = simulate.simulate_counts(communities=("X",), passages=(1, 3), doses=(0,), n_otus=5, seed=0)
        assert set(df["community"]) == {"X"}
        assert set(df["passage"]) == {1, 3}
        assert set(df["dose"]) == {0}

    def test_sensitive_otus_suppressed_by_dose(self):
        df = simulate.simulate_counts(
            n_otus=20, depth=50_000, dose_effect=1.0, recovery_rate=0.0,
            absence_rate=0.0, seed=5,
        )
        sensitive = simulate.get_ground_truth(df)["sensitive_otus"]
        rel = relative_abundance(df)
        share = (
            rel[rel["otu_id"].isin(sensitive)]
            .groupby("dose")["relative_abundance"].sum()
        )
        assert share.loc[8] < share.loc[0]

    def test_invalid_n_otus(self):
        with pytest.raises(ValueError, match="n_otus"):
            simulate.simulate_counts(n_otus=0)


# ---------------------------------------------------------------------------
# simulate_replicates
# ---------------------------------------------------------------------------

class TestSimulateReplicates:

    def test_replicate_column(self):
        df = simulate.simulate_replicates(n_otus=10, n_replicates=3, seed=0)
        assert set(df["replicate"]) == {1, 2, 3}

    def test_depth_per_replicate(self):
        df = simulate.simulate_replicates(n_otus=10, depth=8_000, seed=0)
        depth = df.groupby(["community", "passage", "dose", "replicate"])["count"].sum()
        assert (depth == 8_000).all()

    def test_noise_recorded(self):
        df = simulate.simulate_replicates(n_otus=10, noise_sd=0.05, seed=0)
        assert df.attrs["noise_sd"] == 0.05
        assert df.attrs["n_replicates"] == 2


# ---------------------------------------------------------------------------
# get_ground_truth
# ---------------------------------------------------------------------------

class TestGroundTruth:

    def test_keys(self):
        df = simulate.simulate_counts(n_otus=10, sensitive_fraction=0.3, seed=0)
        truth = simulate.get_ground_truth(df)
        assert set(truth) == {"sensitive_otus", "families", "depth", "n_otus"}
        assert len(truth["sensitive_otus"]) == 3
        assert len(truth["families"]) == 10

    def test_missing_metadata_raises(self):
        with pytest.raises(ValueError, match="simulation metadata"):
            simulate.get_ground_truth(pd.DataFrame({"a": [1]}))
