"""
abxcomm/viz.py

Rendering for pipeline outputs.

    plot_trajectory          — relative abundance across passages, one line per
                               dose, on a log axis bounded by the detection limit.
    plot_richness            — raw vs detection-limited OTU counts per sample.
    plot_dose_comparison     — untreated vs treated abundance per OTU (log-log),
                               coloured by family.
    plot_replicates          — replicate 1 vs replicate 2 with the fitted line.
    plot_family_composition  — stacked family composition per sample.

    render / save_requests   — draw PlotRequest objects from
                               abxcomm.pipeline.iter_plot_requests and write PNGs.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, Optional

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

from abxcomm.config import DETECTION_LIMIT

logger = logging.getLogger(__name__)

# Dose colours: untreated grey, increasing dose in warmer tones
_DOSE_COLORS = ["#7f7f7f", "#f28e2b", "#c0392b", "#8e44ad", "#2c3e50"]
_LIMIT_COLOR = "#aaaaaa"
_RAW_COLOR = "#bbbbbb"
_LIMITED_COLOR = "#4e79a7"
_FALLBACK_COLOR = "#cccccc"


def plot_trajectory(
    data: pd.DataFrame,
    title: str = "",
    limit: float = DETECTION_LIMIT,
    ax=None,
    figsize: tuple = (10, 3.5),
) -> plt.Figure:
    """
    Plot relative abundance over passages, one panel per community.

    Parameters
    ----------
    data : pd.DataFrame
        Rows for one OTU (completed table) or one family (family_abundance
        output), with columns community, passage, dose, relative_abundance.
    title : str
        Figure title, usually the OTU id or family name.
    limit : float
        Detection limit, drawn as a dashed line and used as the y-axis floor.
    ax : matplotlib.axes.Axes, optional
        Draw into this axes; only valid when ``data`` holds one community.
    figsize : tuple
        (width, height) in inches. Applies only when ax is None.

    Returns
    -------
    matplotlib.figure.Figure
    """
    communities = sorted(data["community"].unique())
    doses = sorted(data["dose"].unique())

    if ax is not None:
        if len(communities) > 1:
            raise ValueError("An external ax can only hold one community.")
        fig = ax.get_figure()
        axes = [ax]
    else:
        fig, axes_arr = plt.subplots(1, max(len(communities), 1), figsize=figsize,
                                     sharey=True, squeeze=False)
        axes = axes_arr[0].tolist()

    for ax_, community in zip(axes, communities):
        comm = data[data["community"] == community]
        for i, dose in enumerate(doses):
            line = comm[comm["dose"] == dose].sort_values("passage")
            ax_.plot(line["passage"], line["relative_abundance"], marker="o",
                     color=_DOSE_COLORS[i % len(_DOSE_COLORS)], lw=1.8,
                     label=f"{dose} µg/mL")
        ax_.axhline(limit, color=_LIMIT_COLOR, lw=1.0, ls="--")
        ax_.set_yscale("log")
        ax_.set_ylim(limit / 2, 1.5)
        ax_.set_xticks(sorted(data["passage"].unique()))
        ax_.set_xlabel("Passage")
        ax_.set_title(f"Community {community}", fontsize=10)

    axes[0].set_ylabel("Relative abundance")
    axes[-1].legend(title="Dose", fontsize=8, title_fontsize=8, loc="lower right")
    if title:
        fig.suptitle(title)
    fig.tight_layout()
    return fig


def plot_richness(
    richness: pd.DataFrame,
    ax=None,
    figsize: tuple = (12, 4),
) -> plt.Figure:
    """
    Grouped bars of raw and detection-limited OTU counts per sample.

    Parameters
    ----------
    richness : pd.DataFrame
        Output of richness_table(): community, passage, dose, otu_count_raw,
        otu_count_limited.
    """
    plot_df = richness.sort_values(["community", "passage", "dose"]).reset_index(drop=True)
    labels = (
        plot_df["community"].astype(str) + "/p" + plot_df["passage"].astype(str)
        + "/" + plot_df["dose"].astype(str)
    )

    if ax is not None:
        fig = ax.get_figure()
    else:
        fig, ax = plt.subplots(figsize=figsize)

    x = np.arange(len(plot_df))
    ax.bar(x - 0.2, plot_df["otu_count_raw"], width=0.4, color=_RAW_COLOR, label="Raw")
    ax.bar(x + 0.2, plot_df["otu_count_limited"], width=0.4, color=_LIMITED_COLOR,
           label="Above detection limit")
    ax.set_xticks(x)
    ax.set_xticklabels(labels, rotation=90, fontsize=7)
    ax.set_ylabel("Number of OTUs")
    ax.set_xlabel("Community / passage / dose (µg/mL)")
    ax.legend(fontsize=8)
    fig.tight_layout()
    return fig


def plot_dose_comparison(
    wide: pd.DataFrame,
    reference_dose=0,
    dose=None,
    limit: float = DETECTION_LIMIT,
    palette: Optional[dict] = None,
    ax=None,
    figsize: tuple = (5, 5),
) -> plt.Figure:
    """
    Scatter each OTU's abundance at ``reference_dose`` against ``dose``.

    Values are floored at the detection limit so absent OTUs sit on the axes
    boundary rather than disappearing from a log plot. Points above the 1:1
    line grew under treatment.

    Parameters
    ----------
    wide : pd.DataFrame
        Output of dose_comparison(): otu_id, family and one column per dose.
    dose : optional
        Treated dose to compare. Defaults to the highest dose column.
    palette : dict, optional
        Family → hex colour. Unlisted families are drawn grey.
    """
    dose_cols = [c for c in wide.columns if isinstance(c, (int, np.integer))]
    if dose is None:
        dose = max(c for c in dose_cols if c != reference_dose)

    if ax is not None:
        fig = ax.get_figure()
    else:
        fig, ax = plt.subplots(figsize=figsize)

    x = np.maximum(wide[reference_dose], limit)
    y = np.maximum(wide[dose], limit)
    colors = _family_colors(wide["family"], palette)
    ax.scatter(x, y, c=colors, s=40, edgecolor="black", linewidth=0.4, zorder=3)

    ax.plot([limit, 1], [limit, 1], color="black", lw=0.8, ls="--", zorder=2)
    ax.set_xscale("log")
    ax.set_yscale("log")
    ax.set_xlim(limit / 2, 1.5)
    ax.set_ylim(limit / 2, 1.5)
    ax.set_xlabel(f"Relative abundance, {reference_dose} µg/mL")
    ax.set_ylabel(f"Relative abundance, {dose} µg/mL")
    fig.tight_layout()
    return fig


def plot_replicates(
    x,
    y,
    fit: Optional[dict] = None,
    ax=None,
    figsize: tuple = (5, 5),
) -> plt.Figure:
    """
    Replicate 1 vs replicate 2, with the fitted line and R² when available.

    Parameters
    ----------
    x, y : array-like
        Aligned relative abundances for the two replicates.
    fit : dict, optional
        Output of replicate_r2() with slope, intercept, r_squared.
    """
    if ax is not None:
        fig = ax.get_figure()
    else:
        fig, ax = plt.subplots(figsize=figsize)

    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    ax.scatter(x, y, color=_LIMITED_COLOR, s=30, alpha=0.8, zorder=3)

    if fit is not None:
        xs = np.linspace(0, max(x.max(), y.max()) if len(x) else 1.0, 50)
        ax.plot(xs, fit["intercept"] + fit["slope"] * xs, color="black", lw=1.2)
        ax.text(0.05, 0.92, f"R² = {fit['r_squared']:.3f}", transform=ax.transAxes)

    ax.set_xlabel("Replicate 1 relative abundance")
    ax.set_ylabel("Replicate 2 relative abundance")
    fig.tight_layout()
    return fig


def plot_family_composition(
    df: pd.DataFrame,
    palette: Optional[dict] = None,
    ax=None,
    figsize: tuple = (12, 4),
) -> plt.Figure:
    """
    Stacked bars of family relative abundance, one bar per sample.

    Parameters
    ----------
    df : pd.DataFrame
        Output of family_abundance(limit=None).
    """
    wide = df.pivot_table(index=["community", "passage", "dose"], columns="family",
                          values="relative_abundance", aggfunc="sum", fill_value=0.0)

    if ax is not None:
        fig = ax.get_figure()
    else:
        fig, ax = plt.subplots(figsize=figsize)

    colors = _family_colors(pd.Series(wide.columns), palette)
    bottom = np.zeros(len(wide))
    x = np.arange(len(wide))
    for family, color in zip(wide.columns, colors):
        ax.bar(x, wide[family].values, bottom=bottom, color=color, width=0.85, label=family)
        bottom += wide[family].values

    ax.set_xticks(x)
    ax.set_xticklabels([f"{c}/p{p}/{d}" for c, p, d in wide.index], rotation=90, fontsize=7)
    ax.set_ylabel("Relative abundance")
    ax.set_ylim(0, 1)
    ax.legend(fontsize=7, bbox_to_anchor=(1.01, 1.0), loc="upper left")
    fig.tight_layout()
    return fig


def render(request, palette: Optional[dict] = None) -> plt.Figure:
    """Draw one PlotRequest and return the figure."""
    limit = request.params.get("limit", DETECTION_LIMIT)

    if request.kind in ("otu_trajectory", "family_trajectory"):
        title = request.name
        if request.kind == "otu_trajectory":
            title = f"{request.name} ({request.params.get('family', '')})"
        return plot_trajectory(request.data, title=title, limit=limit)
    if request.kind == "richness":
        return plot_richness(request.data)
    if request.kind == "dose_comparison":
        fig = plot_dose_comparison(request.data,
                                   reference_dose=request.params.get("reference_dose", 0),
                                   limit=limit, palette=palette)
        fig.axes[0].set_title(request.name)
        return fig
    if request.kind == "family_composition":
        return plot_family_composition(request.data, palette=palette)
    raise ValueError(f"Cannot render plot kind '{request.kind}'.")


def save_requests(
    requests: Iterable,
    outdir,
    palette: Optional[dict] = None,
    dpi: int = 150,
) -> list:
    """
    Render each request and save it as ``<outdir>/<kind>/<name>.png``.

    Figures are closed as soon as they are written, so arbitrarily long
    request sequences can be streamed through.

    Returns
    -------
    list of Path
        Paths of the written images, in request order.
    """
    outdir = Path(outdir)
    written = []
    for request in requests:
        target = outdir / request.kind / f"{_safe_name(request.name)}.png"
        target.parent.mkdir(parents=True, exist_ok=True)
        fig = render(request, palette=palette)
        try:
            fig.savefig(target, dpi=dpi)
        finally:
            plt.close(fig)
        logger.debug("Wrote %s", target)
        written.append(target)
    logger.info("Wrote %d image(s) under %s", len(written), outdir)
    return written


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _family_colors(families: pd.Series, palette: Optional[dict]) -> list:
    """Colour per family: palette entry, else a seaborn colour, else grey."""
    names = list(families)
    if palette is None:
        unique = sorted(set(names))
        auto = dict(zip(unique, sns.color_palette("tab10", len(unique)).as_hex()))
        return [auto[n] for n in names]
    return [palette.get(n, _FALLBACK_COLOR) for n in names]


def _safe_name(name) -> str:
    """File-system safe version of an OTU or family name."""
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", str(name)).strip("_") or "unnamed"
