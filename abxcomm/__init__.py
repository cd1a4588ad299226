"""
abxcomm — abundance workbook for antibiotic-perturbed microbial communities

Top-level package exposing the abxcomm public API.
"""

from abxcomm import simulate
from abxcomm.config import (
    DETECTION_LIMIT,
    DEFAULT_DOMAINS,
    DEFAULT_POLICY,
    REFERENCE_DOSE,
    DetectionPolicy,
    Domains,
)
from abxcomm.errors import (
    AbxcommError,
    SchemaError,
    UndefinedResultError,
    AmbiguousPivotError,
    FamilyLookupError,
    CompletionTooLargeError,
)
from abxcomm.datasets import (
    load_counts,
    load_replicate_counts,
    load_palette,
    load_example_data,
    example_palette,
)
from abxcomm.preprocess import (
    relative_abundance,
    drop_absent,
    floor_detection_limit,
    above_detection_limit,
    complete_table,
    family_abundance,
)
from abxcomm.diversity import otu_richness, raw_richness, limited_richness, richness_table
from abxcomm.reshape import pivot_wide, melt_wide, dose_comparison, passage_trajectory
from abxcomm.stats import fit_line, informative_pairs, replicate_r2, replicate_correlation
from abxcomm.pipeline import PipelineResult, PlotRequest, run_pipeline, iter_plot_requests
from abxcomm.viz import (
    plot_trajectory,
    plot_richness,
    plot_dose_comparison,
    plot_replicates,
    plot_family_composition,
    save_requests,
)

__version__ = "0.1.0"
__all__ = [
    "simulate",
    "DETECTION_LIMIT",
    "DEFAULT_DOMAINS",
    "DEFAULT_POLICY",
    "REFERENCE_DOSE",
    "DetectionPolicy",
    "Domains",
    "AbxcommError",
    "SchemaError",
    "UndefinedResultError",
    "AmbiguousPivotError",
    "FamilyLookupError",
    "CompletionTooLargeError",
    "load_counts",
    "load_replicate_counts",
    "load_palette",
    "load_example_data",
    "example_palette",
    "relative_abundance",
    "drop_absent",
    "floor_detection_limit",
    "above_detection_limit",
    "complete_table",
    "family_abundance",
    "otu_richness",
    "raw_richness",
    "limited_richness",
    "richness_table",
    "pivot_wide",
    "melt_wide",
    "dose_comparison",
    "passage_trajectory",
    "fit_line",
    "informative_pairs",
    "replicate_r2",
    "replicate_correlation",
    "PipelineResult",
    "PlotRequest",
    "run_pipeline",
    "iter_plot_requests",
    "plot_trajectory",
    "plot_richness",
    "plot_dose_comparison",
    "plot_replicates",
    "plot_family_composition",
    "save_requests",
]
