"""
abxcomm/stats.py

Replicate agreement: how well does replicate 2 track replicate 1?

    informative_pairs      — drop OTUs absent from both replicates
    fit_line               — ordinary least squares via scipy.stats.linregress
    replicate_r2           — the two combined, for one pair of aligned vectors
    replicate_correlation  — R² per community (and passage/dose) from a
                             long-format replicate table
"""

import logging

import numpy as np
import pandas as pd
from scipy.stats import linregress
from typing import Optional

from abxcomm.errors import UndefinedResultError
from abxcomm.reshape import pivot_wide

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def informative_pairs(x, y) -> tuple:
    """
    Remove pairs where both values are exactly zero.

    An OTU missing from both replicates says nothing about their agreement,
    and a cloud of (0, 0) points would inflate R².

    Returns
    -------
    tuple of np.ndarray
        Filtered (x, y).
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.shape != y.shape:
        raise ValueError(f"x and y must have the same shape, got {x.shape} and {y.shape}.")
    if not (np.isfinite(x).all() and np.isfinite(y).all()):
        raise ValueError("x and y must be finite; fill absent values before fitting.")

    keep = ~((x == 0) & (y == 0))
    return x[keep], y[keep]


def fit_line(x, y) -> dict:
    """
    Least-squares fit of y against x.

    Returns
    -------
    dict
        slope, intercept, r_squared, n_points

    Raises
    ------
    UndefinedResultError
        With fewer than two points, or when x or y is constant (R² is 0/0).
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    n = len(x)
    if n < 2:
        raise UndefinedResultError(f"Need at least 2 points to fit a line, got {n}.")
    if np.all(x == x[0]) or np.all(y == y[0]):
        raise UndefinedResultError("Cannot fit a line when x or y is constant.")

    res = linregress(x, y)
    return {
        "slope": float(res.slope),
        "intercept": float(res.intercept),
        "r_squared": float(res.rvalue ** 2),
        "n_points": n,
    }


def replicate_r2(x, y) -> dict:
    """Fit replicate 2 (y) against replicate 1 (x) on informative pairs only."""
    return fit_line(*informative_pairs(x, y))


def replicate_correlation(
    df: pd.DataFrame,
    passage: Optional[int] = None,
    dose: Optional[int] = None,
    replicates: tuple = (1, 2),
    value: str = "relative_abundance",
    strict: bool = False,
) -> pd.DataFrame:
    """
    Coefficient of determination between two replicates, per community.

    Within each group the replicates are aligned by otu_id; an OTU seen in
    only one replicate counts as 0 in the other.

    Parameters
    ----------
    df : pd.DataFrame
        Long-format replicate table with community, passage, dose, otu_id,
        replicate and ``value`` columns.
    passage, dose : int, optional
        Restrict to one passage / dose. Dimensions left as None become part of
        the grouping key, giving one fit per community × passage × dose.
    replicates : tuple of (int, int)
        Replicate indices to compare, (x, y).
    value : str
        Column to compare. Relative abundance by default.
    strict : bool
        If True, an undefined fit raises UndefinedResultError instead of
        being reported with defined=False.

    Returns
    -------
    pd.DataFrame
        One row per group with columns: community [, passage][, dose],
        slope, intercept, r_squared, n_points, defined. Undefined fits carry
        NaN slope/intercept/r_squared and defined=False.
    """
    rep_x, rep_y = replicates
    data = df[df["replicate"].isin([rep_x, rep_y])]
    if passage is not None:
        data = data[data["passage"] == passage]
    if dose is not None:
        data = data[data["dose"] == dose]

    group_keys = ["community"]
    if passage is None:
        group_keys.append("passage")
    if dose is None:
        group_keys.append("dose")

    records = []
    for key, grp in data.groupby(group_keys):
        key = key if isinstance(key, tuple) else (key,)
        record = dict(zip(group_keys, key))

        wide = pivot_wide(grp, index="otu_id", columns="replicate", values=value,
                          require_any=False)
        x = wide[rep_x] if rep_x in wide.columns else np.zeros(len(wide))
        y = wide[rep_y] if rep_y in wide.columns else np.zeros(len(wide))

        try:
            record.update(replicate_r2(x, y))
            record["defined"] = True
        except UndefinedResultError as exc:
            if strict:
                raise
            logger.warning("Replicate fit undefined for %s: %s", record, exc)
            record.update(
                slope=np.nan, intercept=np.nan, r_squared=np.nan,
                n_points=len(informative_pairs(x, y)[0]), defined=False,
            )
        records.append(record)

    columns = group_keys + ["slope", "intercept", "r_squared", "n_points", "defined"]
    return pd.DataFrame(records, columns=columns)
