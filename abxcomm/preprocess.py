"""
abxcomm/preprocess.py

Per-sample normalisation, detection-limit handling and table completion.

A counts table enters as one row per (community, passage, dose, otu_id).
The functions here derive the tables the workbook plots from:

    relative_abundance     — count / sample depth, per (community, passage, dose)
    drop_absent            — drop mode: remove rows with count == 0
    floor_detection_limit  — floor mode: raise sub-limit abundances to the limit
    above_detection_limit  — keep only rows distinctly above the limit
    complete_table         — every community × passage × dose × OTU combination,
                             missing ones filled at the detection floor
    family_abundance       — relative abundance summed per family

Every function returns a new DataFrame and leaves its input untouched.
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd

from abxcomm.config import (
    DEFAULT_DOMAINS,
    DETECTION_LIMIT,
    MAX_COMPLETED_ROWS,
    OBSERVATION_KEYS,
    SAMPLE_KEYS,
    Domains,
    check_limit,
)
from abxcomm.errors import (
    CompletionTooLargeError,
    FamilyLookupError,
    SchemaError,
    UndefinedResultError,
)

logger = logging.getLogger(__name__)


def relative_abundance(
    df: pd.DataFrame,
    keys: Optional[list] = None,
    on_zero_depth: str = "raise",
    keep_depth: bool = False,
) -> pd.DataFrame:
    """
    Add a relative_abundance column normalised within each sample.

    Parameters
    ----------
    df : pd.DataFrame
        Counts table with a ``count`` column and the sample key columns.
    keys : list of str, optional
        Columns defining a sample. Defaults to community, passage, dose; add
        ``replicate`` for replicate tables.
    on_zero_depth : str
        What to do with a sample whose counts sum to zero:
        "raise" → UndefinedResultError naming the sample(s)
        "nan"   → relative_abundance is NaN for that sample's rows
    keep_depth : bool
        If True, also keep the per-sample ``depth`` column.

    Returns
    -------
    pd.DataFrame
        Input rows with ``relative_abundance = count / depth``. Within each
        sample the values sum to 1.

    Raises
    ------
    UndefinedResultError
        If a sample has zero depth and on_zero_depth="raise".
    """
    if on_zero_depth not in ("raise", "nan"):
        raise ValueError(
            f"Unknown on_zero_depth '{on_zero_depth}'. Choose from: 'raise', 'nan'."
        )
    keys = SAMPLE_KEYS if keys is None else list(keys)

    result = df.copy()
    depth = result.groupby(keys, sort=False)["count"].transform("sum")

    zero = depth == 0
    if zero.any():
        samples = result.loc[zero, keys].drop_duplicates().to_dict("records")
        if on_zero_depth == "raise":
            raise UndefinedResultError(
                f"Relative abundance is undefined for {len(samples)} sample(s) "
                f"with zero sequencing depth: {samples}"
            )
        logger.warning("Zero-depth sample(s) set to NaN: %s", samples)

    result["relative_abundance"] = result["count"] / depth.where(~zero)
    if keep_depth:
        result["depth"] = depth
    result.attrs = df.attrs.copy()
    return result


def sample_depth(df: pd.DataFrame, keys: Optional[list] = None) -> pd.DataFrame:
    """Total reads per sample, one row per sample with a ``depth`` column."""
    keys = SAMPLE_KEYS if keys is None else list(keys)
    return (
        df.groupby(keys)["count"].sum()
        .rename("depth")
        .reset_index()
    )


def drop_absent(df: pd.DataFrame) -> pd.DataFrame:
    """Drop mode: remove rows with zero reads."""
    result = df[df["count"] > 0].reset_index(drop=True)
    result.attrs = df.attrs.copy()
    return result


def floor_detection_limit(
    df: pd.DataFrame,
    limit: float = DETECTION_LIMIT,
) -> pd.DataFrame:
    """
    Floor mode: replace relative abundances below ``limit`` with ``limit``.

    No rows are dropped. A value at the floor means "at or below what the
    assay can see", never a true zero, so trajectories never dip to 0.
    Applying the floor twice is the same as applying it once.
    """
    limit = check_limit(limit)
    result = df.copy()
    result["relative_abundance"] = result["relative_abundance"].clip(lower=limit)
    result.attrs = df.attrs.copy()
    return result


def above_detection_limit(
    df: pd.DataFrame,
    limit: float = DETECTION_LIMIT,
) -> pd.DataFrame:
    """Keep rows whose relative abundance is strictly above ``limit``."""
    limit = check_limit(limit)
    result = df[df["relative_abundance"] > limit].reset_index(drop=True)
    result.attrs = df.attrs.copy()
    return result


def family_lookup(df: pd.DataFrame) -> pd.Series:
    """
    Map each otu_id to its single family.

    Raises
    ------
    FamilyLookupError
        If an OTU has a missing family or more than one family.
    """
    pairs = df[["otu_id", "family"]].drop_duplicates()

    missing = pairs["family"].isna()
    if missing.any():
        raise FamilyLookupError(
            f"OTU '{pairs.loc[missing, 'otu_id'].iloc[0]}' has no family."
        )

    conflicting = pairs["otu_id"].duplicated(keep=False)
    if conflicting.any():
        otu = pairs.loc[conflicting, "otu_id"].iloc[0]
        found = sorted(pairs.loc[pairs["otu_id"] == otu, "family"])
        raise FamilyLookupError(f"OTU '{otu}' is assigned to several families: {found}")

    return pairs.set_index("otu_id")["family"]


def complete_table(
    df: pd.DataFrame,
    domains: Domains = DEFAULT_DOMAINS,
    limit: float = DETECTION_LIMIT,
    max_rows: int = MAX_COMPLETED_ROWS,
) -> pd.DataFrame:
    """
    Fill in every community × passage × dose × OTU combination.

    The OTU set is global: every otu_id with a non-zero total count anywhere
    in ``df``. Combinations absent from ``df`` are added with count = 0 and
    relative_abundance = ``limit`` ("present but undetected"), carrying the
    OTU's family from the rows where it was observed.

    Parameters
    ----------
    df : pd.DataFrame
        Detection-limited observations (output of floor_detection_limit).
    domains : Domains
        Communities, passages and doses to enumerate.
    limit : float
        Relative abundance assigned to filled combinations.
    max_rows : int
        Upper bound on the size of the completed table.

    Returns
    -------
    pd.DataFrame
        Exactly ``domains.n_samples × n_otus`` rows, sorted by community,
        passage, dose, otu_id, with a boolean ``filled`` column marking the
        added combinations. Observed rows outside ``domains`` are excluded.

    Raises
    ------
    CompletionTooLargeError
        If the cross product exceeds ``max_rows``.
    FamilyLookupError
        If an OTU's family is missing or ambiguous.
    SchemaError
        If an OTU appears twice in one sample.
    """
    limit = check_limit(limit)
    if "relative_abundance" not in df.columns:
        raise SchemaError("<table>", "relative_abundance", "missing; run relative_abundance() first")

    totals = df.groupby("otu_id")["count"].sum()
    otus = sorted(totals.index[totals > 0])

    n_rows = domains.n_samples * len(otus)
    if n_rows > max_rows:
        raise CompletionTooLargeError(
            f"Completed table would have {n_rows} rows "
            f"({domains.n_samples} samples × {len(otus)} OTUs), above max_rows={max_rows}."
        )

    # families come from every row of the table, including samples outside domains
    families = family_lookup(df[df["otu_id"].isin(otus)])

    observed = df[
        df["community"].isin(domains.communities)
        & df["passage"].isin(domains.passages)
        & df["dose"].isin(domains.doses)
        & df["otu_id"].isin(otus)
    ].copy()

    observed_keys = pd.MultiIndex.from_frame(observed[OBSERVATION_KEYS])
    if observed_keys.has_duplicates:
        raise SchemaError("<table>", "otu_id", "an OTU appears more than once within a sample")

    full = pd.MultiIndex.from_product(
        [list(domains.communities), list(domains.passages), list(domains.doses), otus],
        names=OBSERVATION_KEYS,
    )
    missing = full.difference(observed_keys)

    fill = missing.to_frame(index=False)
    fill["family"] = fill["otu_id"].map(families)
    if fill["family"].isna().any():
        raise FamilyLookupError(
            f"OTU '{fill.loc[fill['family'].isna(), 'otu_id'].iloc[0]}' has no family."
        )
    fill["count"] = 0
    fill["relative_abundance"] = limit
    fill["filled"] = True
    observed["filled"] = False

    result = (
        pd.concat([observed, fill], ignore_index=True)
        .sort_values(OBSERVATION_KEYS)
        .reset_index(drop=True)
    )
    result["count"] = result["count"].astype("int64")
    result["filled"] = result["filled"].astype(bool)

    logger.info(
        "Completed table: %d observed + %d filled rows (%d samples × %d OTUs)",
        len(observed), len(fill), domains.n_samples, len(otus),
    )
    result.attrs = df.attrs.copy()
    return result


def family_abundance(
    df: pd.DataFrame,
    domains: Optional[Domains] = None,
    limit: Optional[float] = DETECTION_LIMIT,
) -> pd.DataFrame:
    """
    Sum relative abundance per family within each sample.

    Families absent from a sample are filled with 0 before flooring, so every
    sample in ``domains`` has one row per family seen anywhere.

    Parameters
    ----------
    df : pd.DataFrame
        Derived observations (output of relative_abundance), not floored.
    domains : Domains, optional
        Samples to enumerate. Defaults to the samples present in ``df``.
    limit : float, optional
        If given, family totals below it are floored to it.

    Returns
    -------
    pd.DataFrame
        Columns: community, passage, dose, family, relative_abundance.
    """
    if domains is None:
        domains = Domains.from_table(df)

    sums = df.groupby(SAMPLE_KEYS + ["family"])["relative_abundance"].sum()
    full = pd.MultiIndex.from_product(
        [list(domains.communities), list(domains.passages), list(domains.doses),
         sorted(df["family"].unique())],
        names=SAMPLE_KEYS + ["family"],
    )
    result = sums.reindex(full, fill_value=0.0).reset_index()
    if limit is not None:
        result["relative_abundance"] = np.maximum(result["relative_abundance"], check_limit(limit))
    result.attrs = df.attrs.copy()
    return result
