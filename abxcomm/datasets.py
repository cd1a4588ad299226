"""
abxcomm/datasets.py

Loading and validation of counts tables and the family colour palette.

Counts files are tab-separated with a header row naming the columns
src_community, passage, abxConcentration, OTU, Family and count (plus
replicate for the replicate-comparison file). Loaders rename them to the
canonical names used throughout the package (community, passage, dose,
otu_id, family, count) and fail fast with a SchemaError naming the file and
column when the table cannot be trusted.
"""

import logging
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from abxcomm.config import (
    COLUMN_MAP,
    OBSERVATION_KEYS,
    PALETTE_COLUMNS,
    REPLICATE_COLUMN,
    REQUIRED_COLUMNS,
    Domains,
)
from abxcomm.errors import SchemaError

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).parent / "data"
_HEX_PATTERN = r"#[0-9A-Fa-f]{6}"
_FILE_COLUMNS = {canonical: name for name, canonical in COLUMN_MAP.items()}


def load_counts(
    path,
    sep: str = "\t",
    domains: Optional[Domains] = None,
) -> pd.DataFrame:
    """
    Load a long-format counts table.

    Parameters
    ----------
    path : str or Path
        Tab-separated file with columns src_community, passage,
        abxConcentration, OTU, Family, count.
    sep : str
        Field delimiter.
    domains : Domains, optional
        If given, every community, passage and dose must belong to it.

    Returns
    -------
    pd.DataFrame
        Canonical columns: community, passage, dose, otu_id, family, count.

    Raises
    ------
    SchemaError
        If a column is missing, a value cannot be parsed, a value lies outside
        ``domains``, or an OTU appears twice within one sample.
    """
    return _load(path, sep=sep, domains=domains, replicate=False)


def load_replicate_counts(
    path,
    sep: str = "\t",
    domains: Optional[Domains] = None,
) -> pd.DataFrame:
    """
    Load a counts table that carries an integer ``replicate`` column.

    Same schema and checks as load_counts(); OTU uniqueness is enforced per
    (sample, replicate).
    """
    return _load(path, sep=sep, domains=domains, replicate=True)


def validate_counts(
    df: pd.DataFrame,
    source: str = "<table>",
    replicate: bool = False,
    domains: Optional[Domains] = None,
) -> pd.DataFrame:
    """
    Validate and coerce a counts table that already uses canonical column names.

    Returns a new frame with string community/otu_id/family columns and
    integer passage/dose/count (and replicate) columns. The input is not
    modified.
    """
    required = list(COLUMN_MAP.values())
    if replicate:
        required.append(REPLICATE_COLUMN)
    for col in required:
        if col not in df.columns:
            raise SchemaError(source, col, "missing")

    result = df.copy()
    for col in ["community", "otu_id", "family"]:
        if result[col].isna().any():
            raise SchemaError(source, col, f"{int(result[col].isna().sum())} missing value(s)")
        result[col] = result[col].astype(str)

    int_cols = ["passage", "dose", "count"] + ([REPLICATE_COLUMN] if replicate else [])
    for col in int_cols:
        result[col] = _coerce_integer(result[col], source, col)

    if (result["count"] < 0).any():
        raise SchemaError(source, "count", "negative counts are not allowed")

    if domains is not None:
        for col, allowed in domains.as_dict().items():
            outside = sorted(set(result[col].unique()) - set(allowed))
            if outside:
                raise SchemaError(source, col, f"values {outside} not in {list(allowed)}")

    key = OBSERVATION_KEYS + ([REPLICATE_COLUMN] if replicate else [])
    dups = result.duplicated(subset=key, keep=False)
    if dups.any():
        example = result.loc[dups, key].iloc[0].to_dict()
        raise SchemaError(
            source, "otu_id",
            f"{int(dups.sum())} rows repeat an OTU within one sample, e.g. {example}",
        )

    result.attrs = df.attrs.copy()
    return result


def load_palette(path, sep: str = "\t") -> dict:
    """
    Load a Family → hex colour mapping.

    The file has a header row with columns Family and hex. Family names are
    the join key against the ``family`` column of counts tables.
    """
    source = str(path)
    raw = _read_table(path, sep)
    for col in PALETTE_COLUMNS:
        if col not in raw.columns:
            raise SchemaError(source, col, "missing")

    bad = raw[~raw["hex"].astype(str).str.fullmatch(_HEX_PATTERN)]
    if not bad.empty:
        raise SchemaError(source, "hex", f"invalid colour code '{bad['hex'].iloc[0]}'")
    if raw["Family"].duplicated().any():
        dup = raw.loc[raw["Family"].duplicated(), "Family"].iloc[0]
        raise SchemaError(source, "Family", f"'{dup}' listed more than once")

    return dict(zip(raw["Family"].astype(str), raw["hex"].astype(str)))


def load_example_data(replicates: bool = False) -> pd.DataFrame:
    """
    Load the bundled example passage experiment.

    Four source communities (A-D) passaged three times (1, 2, 7) under three
    ciprofloxacin-like doses (0, 2, 8 µg/mL), with about 10⁴ reads per sample.
    OTUs below the sequencer's reach are simply absent, as in a real export.

    Parameters
    ----------
    replicates : bool
        If True, load the two-replicate table used for replicate agreement.
    """
    name = "example_replicates.tsv" if replicates else "example_counts.tsv"
    df = _load(_DATA_DIR / name, sep="\t", domains=None, replicate=replicates)
    df.attrs = {"source": name}
    return df


def example_palette() -> dict:
    """Load the bundled family colour palette."""
    return load_palette(_DATA_DIR / "family_palette.tsv")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _read_table(path, sep):
    try:
        return pd.read_csv(path, sep=sep, dtype=str, keep_default_na=True)
    except pd.errors.EmptyDataError:
        raise SchemaError(str(path), "<header>", "file is empty or has no header row")


def _load(path, sep, domains, replicate):
    source = str(path)
    raw = _read_table(path, sep)

    required = REQUIRED_COLUMNS + ([REPLICATE_COLUMN] if replicate else [])
    for col in required:
        if col not in raw.columns:
            raise SchemaError(source, col, "missing")

    df = raw[required].rename(columns=COLUMN_MAP)
    try:
        df = validate_counts(df, source=source, replicate=replicate, domains=domains)
    except SchemaError as exc:
        # report the column as it is spelled in the file header
        raise SchemaError(source, _FILE_COLUMNS.get(exc.column, exc.column), exc.reason) from None
    logger.info(
        "Loaded %d rows (%d samples, %d OTUs) from %s",
        len(df),
        len(df.drop_duplicates(subset=["community", "passage", "dose"])),
        df["otu_id"].nunique(),
        source,
    )
    return df


def _coerce_integer(series: pd.Series, source: str, col: str) -> pd.Series:
    """Parse a column as integers; integral floats such as '2.0' are accepted."""
    numeric = pd.to_numeric(series, errors="coerce")
    bad = ~np.isfinite(numeric) | (numeric != numeric.round())
    if bad.any():
        raise SchemaError(
            source, col, f"unparseable integer value '{series[bad].iloc[0]}'"
        )
    return numeric.astype("int64")
