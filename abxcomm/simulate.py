"""
abxcomm/simulate.py

Synthetic passage experiments with known structure.

Generates counts tables shaped like a real 16S export from a serial-transfer
antibiotic experiment, so every pipeline stage can be exercised against a
known ground truth.

Core design:
    - Each source community draws its own membership and baseline
      composition (Dirichlet sample)
    - A fixed subset of "sensitive" OTUs is suppressed in proportion to the
      antibiotic dose, with the suppression easing over passages
    - Reads are drawn by multinomial sampling at a fixed sequencing depth
    - OTUs with zero reads in a sample are omitted, as in a real export
"""

import numpy as np
import pandas as pd
from typing import Optional

from abxcomm.config import COMMUNITIES, DOSES, PASSAGES


FAMILY_NAMES = [
    "Enterobacteriaceae",
    "Bacteroidaceae",
    "Lachnospiraceae",
    "Ruminococcaceae",
    "Enterococcaceae",
    "Tannerellaceae",
    "Erysipelotrichaceae",
    "Akkermansiaceae",
]


# ---------------------------------------------------------------------------
# Primary simulation entry points
# ---------------------------------------------------------------------------

def simulate_counts(
    communities: tuple = COMMUNITIES,
    passages: tuple = PASSAGES,
    doses: tuple = DOSES,
    n_otus: int = 30,
    depth: int = 20_000,
    sensitive_fraction: float = 0.3,
    dose_effect: float = 0.5,
    recovery_rate: float = 0.5,
    absence_rate: float = 0.2,
    seed: Optional[int] = 42,
) -> pd.DataFrame:
    """
    Simulate a long-format counts table for one passage experiment.

    Parameters
    ----------
    communities, passages, doses : tuple
        Levels of each sample dimension.
    n_otus : int
        Size of the global OTU pool shared by all communities.
    depth : int
        Reads per sample. Every sample sums to exactly this many reads.
    sensitive_fraction : float
        Fraction of OTUs suppressed by the antibiotic.
    dose_effect : float
        Log-scale suppression per µg/mL for sensitive OTUs at passage 1.
    recovery_rate : float
        How quickly suppression eases with passage number. 0 = no recovery.
    absence_rate : float
        Probability that an OTU is missing entirely from a source community.
    seed : int, optional
        Random seed for reproducibility.

    Returns
    -------
    pd.DataFrame
        Columns: community, passage, dose, otu_id, family, count. Only rows
        with count > 0 are present. Ground truth is stored in df.attrs.

    Examples
    --------
    >>> df = simulate_counts(n_otus=20, seed=0)
    >>> df.groupby(["community", "passage", "dose"])["count"].sum().unique()
    array([20000])
    """
    rng = np.random.default_rng(seed)
    sensitive_idx = _sensitive_indices(n_otus, sensitive_fraction, rng)
    records = [
        {**key, "count": n}
        for key, n in _sample_reads(
            communities, passages, doses, n_otus, depth, sensitive_idx,
            dose_effect, recovery_rate, absence_rate, 1, 0.0, False, rng,
        )
    ]
    return _finish(records, n_otus, depth, sensitive_idx)


def simulate_replicates(
    communities: tuple = COMMUNITIES,
    passages: tuple = PASSAGES,
    doses: tuple = DOSES,
    n_otus: int = 30,
    depth: int = 20_000,
    n_replicates: int = 2,
    noise_sd: float = 0.2,
    sensitive_fraction: float = 0.3,
    dose_effect: float = 0.5,
    recovery_rate: float = 0.5,
    absence_rate: float = 0.2,
    seed: Optional[int] = 42,
) -> pd.DataFrame:
    """
    Simulate replicate cultures of the same passage experiment.

    Every replicate of a sample shares the same underlying composition,
    perturbed by log-normal noise with standard deviation ``noise_sd`` before
    read sampling. Smaller noise gives higher replicate agreement.

    Returns
    -------
    pd.DataFrame
        Columns: community, passage, dose, otu_id, family, replicate, count.
        Replicates are numbered from 1.
    """
    rng = np.random.default_rng(seed)
    sensitive_idx = _sensitive_indices(n_otus, sensitive_fraction, rng)
    records = []
    for key, n in _sample_reads(
        communities, passages, doses, n_otus, depth, sensitive_idx,
        dose_effect, recovery_rate, absence_rate, n_replicates, noise_sd, True, rng,
    ):
        records.append({**key, "count": n})

    df = _finish(records, n_otus, depth, sensitive_idx)
    df.attrs["n_replicates"] = n_replicates
    df.attrs["noise_sd"] = noise_sd
    return df


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def get_ground_truth(df: pd.DataFrame) -> dict:
    """
    Extract ground truth metadata from a simulated counts table.

    Returns
    -------
    dict
        sensitive_otus, families (otu_id -> family), depth, n_otus.
    """
    if "sensitive_otus" not in df.attrs:
        raise ValueError(
            "This dataframe does not have simulation metadata. "
            "Make sure it was generated by simulate_counts or simulate_replicates."
        )
    return {
        "sensitive_otus": list(df.attrs["sensitive_otus"]),
        "families": dict(df.attrs["families"]),
        "depth": df.attrs["depth"],
        "n_otus": df.attrs["n_otus"],
    }


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _otu_ids(n_otus):
    return [f"Otu{i + 1:03d}" for i in range(n_otus)]


def _otu_families(n_otus):
    return {otu: FAMILY_NAMES[i % len(FAMILY_NAMES)] for i, otu in enumerate(_otu_ids(n_otus))}


def _sensitive_indices(n_otus, sensitive_fraction, rng):
    n_sensitive = int(round(n_otus * sensitive_fraction))
    return sorted(rng.choice(n_otus, size=n_sensitive, replace=False).tolist())


def _sample_reads(
    communities, passages, doses, n_otus, depth, sensitive_idx,
    dose_effect, recovery_rate, absence_rate, n_replicates, noise_sd,
    with_replicate, rng,
):
    """Yield (key dict, read count) for every non-zero observation."""
    if n_otus < 1:
        raise ValueError("n_otus must be at least 1.")
    if depth < 1:
        raise ValueError("depth must be at least 1.")

    otus = _otu_ids(n_otus)
    families = _otu_families(n_otus)
    sensitive = np.zeros(n_otus, dtype=bool)
    sensitive[sensitive_idx] = True

    for community in communities:
        present = rng.random(n_otus) >= absence_rate
        if not present.any():
            present[rng.integers(n_otus)] = True
        baseline = rng.dirichlet(np.ones(n_otus) * 0.8) * present

        for passage in passages:
            for dose in doses:
                suppression = dose_effect * dose / (1.0 + recovery_rate * (passage - 1))
                composition = baseline * np.where(sensitive, np.exp(-suppression), 1.0)

                for rep in range(1, n_replicates + 1):
                    weights = composition * np.exp(rng.normal(0, noise_sd, n_otus))
                    weights /= weights.sum()
                    reads = rng.multinomial(depth, weights)

                    for idx in np.flatnonzero(reads):
                        key = {
                            "community": community,
                            "passage": int(passage),
                            "dose": int(dose),
                            "otu_id": otus[idx],
                            "family": families[otus[idx]],
                        }
                        if with_replicate:
                            key["replicate"] = rep
                        yield key, int(reads[idx])


def _finish(records, n_otus, depth, sensitive_idx):
    df = pd.DataFrame(records)
    df["count"] = df["count"].astype("int64")
    otus = _otu_ids(n_otus)
    df.attrs["sensitive_otus"] = [otus[i] for i in sensitive_idx]
    df.attrs["families"] = _otu_families(n_otus)
    df.attrs["depth"] = depth
    df.attrs["n_otus"] = n_otus
    return df
