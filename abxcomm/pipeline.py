"""
abxcomm/pipeline.py

Stage composition for one run over a counts table.

run_pipeline threads the table through the named stages and returns every
intermediate as a field of an immutable PipelineResult, so each plot knows
exactly which stage's output it reads:

    observations  → validated input
    relative      → relative_abundance()
    present       → drop_absent(relative)            (drop mode)
    floored       → floor_detection_limit(relative)  (floor mode)
    completed     → complete_table(floored)
    richness      → richness_table(relative)

iter_plot_requests turns a result into a lazy sequence of PlotRequest
objects, one per image, for a renderer such as abxcomm.viz.save_requests.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

import pandas as pd

from abxcomm.config import (
    DEFAULT_POLICY,
    MAX_COMPLETED_ROWS,
    REFERENCE_DOSE,
    SAMPLE_KEYS,
    DetectionPolicy,
    Domains,
)
from abxcomm.datasets import validate_counts
from abxcomm.diversity import richness_table
from abxcomm.preprocess import (
    complete_table,
    drop_absent,
    family_abundance,
    floor_detection_limit,
    relative_abundance,
)
from abxcomm.reshape import dose_comparison

logger = logging.getLogger(__name__)

PLOT_KINDS = (
    "otu_trajectory",
    "family_trajectory",
    "richness",
    "dose_comparison",
    "family_composition",
)


@dataclass(frozen=True, eq=False)
class PipelineResult:
    """Every table derived in one pipeline run."""

    observations: pd.DataFrame
    relative: pd.DataFrame
    present: pd.DataFrame
    floored: pd.DataFrame
    completed: pd.DataFrame
    richness: pd.DataFrame
    policy: DetectionPolicy
    domains: Domains

    @property
    def detection_limit(self) -> float:
        return self.policy.detection_limit

    @property
    def richness_raw(self) -> pd.DataFrame:
        return self.richness[SAMPLE_KEYS + ["otu_count_raw"]].copy()

    @property
    def richness_limited(self) -> pd.DataFrame:
        return self.richness[SAMPLE_KEYS + ["otu_count_limited"]].copy()


@dataclass(frozen=True)
class PlotRequest:
    """One image to render: what to draw, what to call it, and from which data."""

    kind: str
    name: str
    data: pd.DataFrame = field(repr=False, compare=False)
    params: dict = field(default_factory=dict, compare=False)


def run_pipeline(
    counts: pd.DataFrame,
    policy: DetectionPolicy = DEFAULT_POLICY,
    domains: Optional[Domains] = None,
    max_rows: int = MAX_COMPLETED_ROWS,
    source: str = "<table>",
) -> PipelineResult:
    """
    Run every stage over a counts table.

    Parameters
    ----------
    counts : pd.DataFrame
        Canonical counts table (output of load_counts or simulate_counts).
    policy : DetectionPolicy
        Sequencing-depth assumptions that set the detection limit.
    domains : Domains, optional
        Communities, passages and doses to complete over. Defaults to those
        present in ``counts``. When given, values outside it are rejected.
    max_rows : int
        Bound on the completed table size.
    source : str
        Name used in schema error messages.

    Returns
    -------
    PipelineResult
    """
    observations = validate_counts(counts, source=source, domains=domains)
    if domains is None:
        domains = Domains.from_table(observations)
    limit = policy.detection_limit

    logger.info(
        "Running pipeline on %d rows, %d samples, detection limit %g",
        len(observations), domains.n_samples, limit,
    )
    relative = relative_abundance(observations)
    present = drop_absent(relative)
    floored = floor_detection_limit(relative, limit)
    completed = complete_table(floored, domains=domains, limit=limit, max_rows=max_rows)
    richness = richness_table(relative, limit=limit)

    return PipelineResult(
        observations=observations,
        relative=relative,
        present=present,
        floored=floored,
        completed=completed,
        richness=richness,
        policy=policy,
        domains=domains,
    )


def iter_plot_requests(
    result: PipelineResult,
    kind: str,
    otus: Optional[list] = None,
    families: Optional[list] = None,
) -> Iterator[PlotRequest]:
    """
    Lazily yield the plot requests of one kind.

    Parameters
    ----------
    result : PipelineResult
    kind : str
        "otu_trajectory"     → one per OTU, from the completed table
        "family_trajectory"  → one per family, summed relative abundance
        "richness"           → a single raw vs limited richness plot
        "dose_comparison"    → one per community × passage, against the
                               0 µg/mL control (the lowest dose when the
                               domains have no 0)
        "family_composition" → a single stacked-bar composition plot
    otus, families : list, optional
        Restrict trajectory requests to these OTUs / families.

    Raises
    ------
    ValueError
        If kind is not one of PLOT_KINDS.
    """
    if kind not in PLOT_KINDS:
        raise ValueError(f"Unknown kind '{kind}'. Choose from: {', '.join(PLOT_KINDS)}.")

    limit = result.detection_limit

    if kind == "otu_trajectory":
        for otu, grp in result.completed.groupby("otu_id"):
            if otus is not None and otu not in otus:
                continue
            family = grp["family"].iloc[0]
            if families is not None and family not in families:
                continue
            yield PlotRequest(kind, otu, grp.reset_index(drop=True),
                              {"family": family, "limit": limit})

    elif kind == "family_trajectory":
        fam = family_abundance(result.relative, domains=result.domains, limit=limit)
        for family, grp in fam.groupby("family"):
            if families is not None and family not in families:
                continue
            yield PlotRequest(kind, family, grp.reset_index(drop=True),
                              {"family": family, "limit": limit})

    elif kind == "richness":
        yield PlotRequest(kind, "otu_richness", result.richness, {"limit": limit})

    elif kind == "dose_comparison":
        doses = result.domains.doses
        reference = REFERENCE_DOSE if REFERENCE_DOSE in doses else min(doses)
        for community in result.domains.communities:
            for passage in result.domains.passages:
                subset = result.relative[
                    (result.relative["community"] == community)
                    & (result.relative["passage"] == passage)
                ]
                if reference not in set(subset["dose"]):
                    logger.debug("No reference dose for %s passage %s", community, passage)
                    continue
                wide = dose_comparison(subset, community, passage,
                                       reference_dose=reference, limit=limit)
                yield PlotRequest(kind, f"{community}_passage{passage}", wide, {
                    "community": community,
                    "passage": passage,
                    "reference_dose": reference,
                    "limit": limit,
                })

    elif kind == "family_composition":
        fam = family_abundance(result.relative, domains=result.domains, limit=None)
        yield PlotRequest(kind, "family_composition", fam, {})
