"""
tests/test_viz.py

Unit tests for abxcomm.viz.

All tests use matplotlib's Agg backend (non-interactive) and close figures
after each check to prevent resource leaks.
"""

import pytest
import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import matplotlib.figure

from abxcomm import simulate
from abxcomm.config import DETECTION_LIMIT
from abxcomm.pipeline import PlotRequest, iter_plot_requests, run_pipeline
from abxcomm.simulate import FAMILY_NAMES
from abxcomm.stats import replicate_r2
from abxcomm.viz import (
    _safe_name,
    plot_dose_comparison,
    plot_family_composition,
    plot_replicates,
    plot_richness,
    plot_trajectory,
    render,
    save_requests,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def result():
    return run_pipeline(simulate.simulate_counts(n_otus=10, depth=10_000, seed=42))


@pytest.fixture(scope="module")
def palette():
    return {family: "#336699" for family in FAMILY_NAMES[:4]}


# ---------------------------------------------------------------------------
# plot_trajectory
# ---------------------------------------------------------------------------

class TestPlotTrajectory:

    def test_returns_figure(self, result):
        request = next(iter_plot_requests(result, "otu_trajectory"))
        fig = plot_trajectory(request.data, title=request.name)
        assert isinstance(fig, matplotlib.figure.Figure)
        plt.close(fig)

    def test_one_panel_per_community(self, result):
        request = next(iter_plot_requests(result, "otu_trajectory"))
        fig = plot_trajectory(request.data)
        assert len(fig.axes) == 4
        plt.close(fig)

    def test_one_line_per_dose(self, result):
        request = next(iter_plot_requests(result, "otu_trajectory"))
        fig = plot_trajectory(request.data)
        # three dose lines plus the detection-limit line
        assert len(fig.axes[0].get_lines()) == 4
        plt.close(fig)

    def test_log_scale_floor(self, result):
        request = next(iter_plot_requests(result, "family_trajectory"))
        fig = plot_trajectory(request.data, limit=DETECTION_LIMIT)
        ax = fig.axes[0]
        assert ax.get_yscale() == "log"
        assert ax.get_ylim()[0] == pytest.approx(DETECTION_LIMIT / 2)
        plt.close(fig)

    def test_external_ax_single_community(self, result):
        request = next(iter_plot_requests(result, "otu_trajectory"))
        data = request.data[request.data["community"] == "A"]
        fig, ax = plt.subplots()
        returned = plot_trajectory(data, ax=ax)
        assert returned is fig
        plt.close(fig)

    def test_external_ax_rejects_many_communities(self, result):
        request = next(iter_plot_requests(result, "otu_trajectory"))
        fig, ax = plt.subplots()
        with pytest.raises(ValueError, match="one community"):
            plot_trajectory(request.data, ax=ax)
        plt.close(fig)


# ---------------------------------------------------------------------------
# Other plots
# ---------------------------------------------------------------------------

class TestPlotRichness:

    def test_bar_count(self, result):
        fig = plot_richness(result.richness)
        n_samples = len(result.richness)
        assert len(fig.axes[0].patches) == 2 * n_samples
        plt.close(fig)


class TestPlotDoseComparison:

    def test_returns_figure(self, result, palette):
        request = next(iter_plot_requests(result, "dose_comparison"))
        fig = plot_dose_comparison(request.data, palette=palette)
        assert isinstance(fig, matplotlib.figure.Figure)
        assert fig.axes[0].get_xscale() == "log"
        plt.close(fig)

    def test_default_dose_is_highest(self, result):
        request = next(iter_plot_requests(result, "dose_comparison"))
        fig = plot_dose_comparison(request.data)
        assert "8" in fig.axes[0].get_ylabel()
        plt.close(fig)


class TestPlotReplicates:

    def test_with_fit(self):
        x = [0.0, 0.2, 0.1, 0.4]
        y = [0.0, 0.25, 0.05, 0.35]
        fit = replicate_r2(x, y)
        fig = plot_replicates(x, y, fit=fit)
        texts = [t.get_text() for t in fig.axes[0].texts]
        assert any(t.startswith("R²") for t in texts)
        plt.close(fig)

    def test_without_fit(self):
        fig = plot_replicates([0.1, 0.2], [0.1, 0.3])
        assert len(fig.axes[0].texts) == 0
        plt.close(fig)


class TestPlotFamilyComposition:

    def test_stacks_sum_to_one(self, result):
        request = next(iter_plot_requests(result, "family_composition"))
        fig = plot_family_composition(request.data)
        ax = fig.axes[0]
        tops = {}
        for patch in ax.patches:
            x = round(patch.get_x(), 6)
            tops[x] = max(tops.get(x, 0.0), patch.get_y() + patch.get_height())
        np.testing.assert_allclose(list(tops.values()), 1.0, atol=1e-9)
        plt.close(fig)


# ---------------------------------------------------------------------------
# render / save_requests
# ---------------------------------------------------------------------------

class TestRender:

    def test_unknown_kind(self):
        request = PlotRequest("heatmap", "x", pd.DataFrame())
        with pytest.raises(ValueError, match="Cannot render"):
            render(request)


class TestSaveRequests:

    def test_writes_one_png_per_request(self, result, tmp_path):
        requests = iter_plot_requests(result, "otu_trajectory")
        paths = save_requests(requests, tmp_path)
        n_otus = result.completed["otu_id"].nunique()
        assert len(paths) == n_otus
        assert all(p.exists() and p.suffix == ".png" for p in paths)
        assert all(p.parent.name == "otu_trajectory" for p in paths)

    def test_single_plots(self, result, tmp_path, palette):
        for kind in ["richness", "family_composition"]:
            paths = save_requests(iter_plot_requests(result, kind), tmp_path, palette=palette)
            assert len(paths) == 1
            assert paths[0].exists()

    def test_figures_closed(self, result, tmp_path):
        before = len(plt.get_fignums())
        save_requests(iter_plot_requests(result, "dose_comparison"), tmp_path)
        assert len(plt.get_fignums()) == before


class TestSafeName:

    def test_replaces_separators(self):
        assert _safe_name("Enterobacteriaceae/unclassified sp.") == "Enterobacteriaceae_unclassified_sp."

    def test_empty(self):
        assert _safe_name("///") == "unnamed"
