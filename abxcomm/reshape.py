"""
abxcomm/reshape.py

Long ↔ wide reshaping for paired, cross-condition comparisons.

pivot_wide turns one grouping dimension (dose, passage, replicate) into
columns so that, for example, an OTU's abundance without antibiotic and at
8 µg/mL sit on the same row. melt_wide is its inverse.
"""

import numpy as np
import pandas as pd
from typing import Optional, Sequence, Union

from abxcomm.config import DETECTION_LIMIT, REFERENCE_DOSE, check_limit
from abxcomm.errors import AmbiguousPivotError


def pivot_wide(
    df: pd.DataFrame,
    index: Union[str, Sequence[str]],
    columns: str,
    values: str = "relative_abundance",
    fill_value: float = 0.0,
    require_any: bool = True,
) -> pd.DataFrame:
    """
    Pivot ``columns`` into one column per value.

    Parameters
    ----------
    df : pd.DataFrame
        Long-format table, already filtered to the slice of interest
        (e.g. one community and passage).
    index : str or list of str
        Identifying columns preserved per output row (e.g. otu_id, family).
    columns : str
        Pivot dimension; each of its values becomes a column.
    values : str
        Column holding the values to spread.
    fill_value : float
        Value used where an index combination is absent for a pivot value.
    require_any : bool
        If True, drop rows whose pivoted values are all ≤ fill_value, so the
        row set is exactly the OTUs present in at least one pivoted column.
        Pass False to keep OTUs whose observed values are all zero.

    Returns
    -------
    pd.DataFrame
        Identifying columns followed by one column per pivot value, sorted.
        ``attrs["filled_cells"]`` lists the (index..., pivot value) cells that
        were absent from ``df`` and hold ``fill_value``.

    Raises
    ------
    AmbiguousPivotError
        If ``index`` + ``columns`` does not uniquely identify rows of ``df``.
    """
    index = [index] if isinstance(index, str) else list(index)
    key = index + [columns]

    dups = df.duplicated(subset=key, keep=False)
    if dups.any():
        offending = df.loc[dups, key].drop_duplicates().head(5).to_dict("records")
        raise AmbiguousPivotError(
            f"{int(dups.sum())} rows share the same {key}; pivoting would "
            f"overwrite values. First duplicated keys: {offending}"
        )

    pivoted = df.pivot(index=index, columns=columns, values=values).sort_index(axis=1)
    absent = pivoted.isna().to_numpy()
    rows, cols = np.nonzero(absent)
    filled_cells = [
        _as_tuple(pivoted.index[r]) + (pivoted.columns[c],) for r, c in zip(rows, cols)
    ]

    wide = pivoted.fillna(fill_value)
    wide.columns.name = None
    pivot_cols = list(wide.columns)
    wide = wide.reset_index()

    if require_any and pivot_cols:
        keep = (wide[pivot_cols] > fill_value).any(axis=1)
        wide = wide[keep]

    result = wide.sort_values(index).reset_index(drop=True)
    result.attrs = df.attrs.copy()
    result.attrs["filled_cells"] = filled_cells
    return result


def melt_wide(
    wide: pd.DataFrame,
    index: Union[str, Sequence[str]],
    var_name: str,
    value_name: str = "relative_abundance",
    fill_value: Optional[float] = 0.0,
) -> pd.DataFrame:
    """
    Inverse of pivot_wide: one row per (index, pivot value).

    Cells pivot_wide filled in for absent combinations (its
    ``attrs["filled_cells"]``) are dropped, so an observed value equal to
    ``fill_value`` survives. For a wide table without that record, cells equal
    to ``fill_value`` are dropped instead. Pass ``fill_value=None`` to keep
    every cell.
    """
    index = [index] if isinstance(index, str) else list(index)
    long = wide.melt(id_vars=index, var_name=var_name, value_name=value_name)

    # pivot values come back as object dtype when the header mixes str and int
    if pd.api.types.infer_dtype(long[var_name], skipna=True) == "integer":
        long[var_name] = long[var_name].astype("int64")

    filled_cells = wide.attrs.get("filled_cells")
    if fill_value is not None:
        if filled_cells is None:
            long = long[long[value_name] != fill_value]
        elif filled_cells and len(long):
            keys = pd.MultiIndex.from_frame(long[index + [var_name]])
            long = long[~keys.isin(filled_cells)]
    return long.sort_values(index + [var_name]).reset_index(drop=True)


def dose_comparison(
    df: pd.DataFrame,
    community: str,
    passage: int,
    reference_dose: int = REFERENCE_DOSE,
    limit: float = DETECTION_LIMIT,
    index: Sequence[str] = ("otu_id", "family"),
) -> pd.DataFrame:
    """
    Relative abundance per OTU at each dose, for one community and passage.

    Each non-reference dose also gets a ``log2fc_<dose>`` column: the log₂
    ratio of its abundance to the reference dose, with both sides floored at
    ``limit`` so an absent OTU gives a finite fold change.

    Returns
    -------
    pd.DataFrame
        otu_id, family, one column per dose, and log2fc_<dose> columns.
        Only OTUs present at one dose or more are included.
    """
    limit = check_limit(limit)
    subset = df[(df["community"] == community) & (df["passage"] == passage)]
    wide = pivot_wide(subset, index=list(index), columns="dose")

    if reference_dose not in wide.columns:
        raise ValueError(
            f"Reference dose {reference_dose} not found for community "
            f"{community}, passage {passage}."
        )

    reference = np.maximum(wide[reference_dose], limit)
    for dose in [c for c in wide.columns if c not in index and c != reference_dose]:
        wide[f"log2fc_{dose}"] = np.log2(np.maximum(wide[dose], limit) / reference)
    return wide


def passage_trajectory(
    df: pd.DataFrame,
    community: str,
    dose: int,
    index: Sequence[str] = ("otu_id", "family"),
) -> pd.DataFrame:
    """Relative abundance per OTU at each passage, for one community and dose."""
    subset = df[(df["community"] == community) & (df["dose"] == dose)]
    return pivot_wide(subset, index=list(index), columns="passage")


def _as_tuple(key):
    return key if isinstance(key, tuple) else (key,)
