"""
abxcomm/config.py

Experimental design constants and the detection-limit policy.

The passage experiment crosses four source communities with three passages
and three antibiotic doses (µg/mL). Every pipeline stage takes its domain or
threshold as a keyword argument defaulting to the values defined here, so
alternative designs and sequencing-depth assumptions can be swapped in
without touching the stages themselves.
"""

from dataclasses import dataclass
from typing import Tuple

import pandas as pd


COMMUNITIES = ("A", "B", "C", "D")
PASSAGES = (1, 2, 7)
DOSES = (0, 2, 8)

# no-antibiotic control, the baseline for dose comparisons
REFERENCE_DOSE = 0

SAMPLE_KEYS = ["community", "passage", "dose"]
OBSERVATION_KEYS = SAMPLE_KEYS + ["otu_id"]

# File header -> canonical column name
COLUMN_MAP = {
    "src_community": "community",
    "passage": "passage",
    "abxConcentration": "dose",
    "OTU": "otu_id",
    "Family": "family",
    "count": "count",
}
REPLICATE_COLUMN = "replicate"
REQUIRED_COLUMNS = list(COLUMN_MAP)

PALETTE_COLUMNS = ["Family", "hex"]

# Upper bound on communities × passages × doses × OTUs for complete_table().
MAX_COMPLETED_ROWS = 5_000_000


@dataclass(frozen=True)
class DetectionPolicy:
    """
    Minimum relative abundance distinguishable from sequencing noise.

    A species is only trusted when it accounts for at least ``min_reads``
    reads in a sample sequenced to at least ``min_depth`` reads, giving a
    detection limit of ``min_reads / min_depth``. The defaults (10 reads at
    10⁴ depth) give 1e-3.
    """

    min_reads: int = 10
    min_depth: int = 10_000

    def __post_init__(self):
        if self.min_reads <= 0 or self.min_depth <= 0:
            raise ValueError(
                f"min_reads and min_depth must be positive "
                f"(got {self.min_reads}, {self.min_depth})."
            )
        if self.min_reads > self.min_depth:
            raise ValueError("min_reads cannot exceed min_depth.")

    @property
    def detection_limit(self) -> float:
        return self.min_reads / self.min_depth


DEFAULT_POLICY = DetectionPolicy()
DETECTION_LIMIT = DEFAULT_POLICY.detection_limit


@dataclass(frozen=True)
class Domains:
    """Enumerated values of each sample dimension."""

    communities: Tuple = COMMUNITIES
    passages: Tuple = PASSAGES
    doses: Tuple = DOSES

    @property
    def n_samples(self) -> int:
        return len(self.communities) * len(self.passages) * len(self.doses)

    def as_dict(self) -> dict:
        return {
            "community": self.communities,
            "passage": self.passages,
            "dose": self.doses,
        }

    @classmethod
    def from_table(cls, df: pd.DataFrame) -> "Domains":
        """Domains spanned by the sample keys actually present in ``df``."""
        return cls(
            communities=tuple(sorted(df["community"].unique())),
            passages=tuple(sorted(int(p) for p in df["passage"].unique())),
            doses=tuple(sorted(int(d) for d in df["dose"].unique())),
        )


DEFAULT_DOMAINS = Domains()


def check_limit(limit: float) -> float:
    """Validate a detection limit and return it as a float."""
    limit = float(limit)
    if not 0.0 < limit <= 1.0:
        raise ValueError(f"Detection limit must lie in (0, 1], got {limit}.")
    return limit
