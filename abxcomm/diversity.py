"""
abxcomm/diversity.py

OTU richness per sample, raw and detection-limited.

Raw richness counts every OTU with at least one read, so it includes the
spurious rare detections that a 10⁴-read sample cannot resolve. Limited
richness counts only OTUs whose relative abundance is distinctly above the
detection limit, and is the policy-correct diversity estimate. The two are
kept as separate named outputs so they can be compared.
"""

import pandas as pd
from typing import Optional

from abxcomm.config import DETECTION_LIMIT, SAMPLE_KEYS
from abxcomm.preprocess import (
    above_detection_limit,
    drop_absent,
    floor_detection_limit,
    relative_abundance,
)


def otu_richness(
    df: pd.DataFrame,
    keys: Optional[list] = None,
    name: str = "otu_count",
) -> pd.DataFrame:
    """Number of distinct otu_id values per sample."""
    keys = SAMPLE_KEYS if keys is None else list(keys)
    return (
        df.groupby(keys)["otu_id"].nunique()
        .rename(name)
        .reset_index()
    )


def raw_richness(df: pd.DataFrame, keys: Optional[list] = None) -> pd.DataFrame:
    """Richness over drop-mode input: every OTU with count > 0."""
    return otu_richness(drop_absent(df), keys=keys, name="otu_count_raw")


def limited_richness(
    df: pd.DataFrame,
    limit: float = DETECTION_LIMIT,
    keys: Optional[list] = None,
) -> pd.DataFrame:
    """
    Richness counting only OTUs above the detection limit.

    Relative abundances are computed if ``df`` does not carry them yet, then
    floored at ``limit`` and filtered to values strictly above it. Samples in
    which nothing clears the limit are reported with a count of 0.
    """
    keys = SAMPLE_KEYS if keys is None else list(keys)
    if "relative_abundance" not in df.columns:
        df = relative_abundance(df, keys=keys)

    detected = above_detection_limit(floor_detection_limit(df, limit), limit)
    counts = otu_richness(detected, keys=keys, name="otu_count_limited")

    samples = df[keys].drop_duplicates()
    result = samples.merge(counts, on=keys, how="left")
    result["otu_count_limited"] = result["otu_count_limited"].fillna(0).astype("int64")
    return result.sort_values(keys).reset_index(drop=True)


def richness_table(
    df: pd.DataFrame,
    limit: float = DETECTION_LIMIT,
    keys: Optional[list] = None,
) -> pd.DataFrame:
    """
    Raw and limited richness side by side.

    Returns
    -------
    pd.DataFrame
        One row per sample with columns otu_count_raw, otu_count_limited and
        spurious (raw − limited, the OTUs only seen below the limit).
        otu_count_raw ≥ otu_count_limited for every sample.
    """
    keys = SAMPLE_KEYS if keys is None else list(keys)
    limited = limited_richness(df, limit=limit, keys=keys)
    raw = raw_richness(df, keys=keys)

    result = limited.merge(raw, on=keys, how="left")
    result["otu_count_raw"] = result["otu_count_raw"].fillna(0).astype("int64")
    result["spurious"] = result["otu_count_raw"] - result["otu_count_limited"]
    return result[keys + ["otu_count_raw", "otu_count_limited", "spurious"]]
