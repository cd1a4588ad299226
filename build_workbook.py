"""Rebuild workbook.ipynb, the guided antibiotic-passage workbook, using nbformat."""
import nbformat

nb = nbformat.v4.new_notebook()

def md(src):
    return nbformat.v4.new_markdown_cell(src)

def code(src):
    return nbformat.v4.new_code_cell(src)

nb.cells = [

# ── Header ───────────────────────────────────────────────────────────────────
md("""\
# Community recovery after antibiotic exposure

Four gut communities (**A**–**D**) were passaged in vitro at three antibiotic doses \
(0, 2 and 8 µg/mL) and sequenced (16S) at passages 1, 2 and 7. \
This workbook walks through the tables behind every figure: \
relative abundance, the detection limit, OTU richness, table completion, \
dose comparisons and replicate agreement. \
Each section ends with questions to answer in your own words.

| Stage | Function | Output |
|-------|----------|--------|
| Load | `load_counts` | one row per sample × OTU |
| Normalise | `relative_abundance` | count / sample depth |
| Detection limit | `drop_absent`, `floor_detection_limit` | drop mode, floor mode |
| Richness | `richness_table` | raw vs limited OTU counts |
| Completion | `complete_table` | every community × passage × dose × OTU |
| Reshape | `pivot_wide`, `dose_comparison` | one column per dose |
| Replicates | `replicate_correlation` | R² per community |\
"""),

# ── Setup ─────────────────────────────────────────────────────────────────────
md("""\
---
## Setup

`seaborn` theme is applied globally so all matplotlib figures pick it up automatically. \
Figures are also written under `output/` so they can be pasted into a report.\
"""),

code("""\
import logging
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

import abxcomm
from abxcomm import DetectionPolicy

logging.basicConfig(level=logging.INFO, format='%(levelname)s %(name)s: %(message)s')
sns.set_theme(style='whitegrid', palette='muted')
palette = abxcomm.example_palette()
print('abxcomm imported OK')\
"""),

# ═════════════════════════════════════════════════════════════════════════════
# §1  Loading
# ═════════════════════════════════════════════════════════════════════════════
md("""\
---
## 1  The counts table

Each row is one OTU in one sample. A *sample* is a unique combination of \
source community, passage and dose. OTUs with no reads in a sample are simply \
not listed.\
"""),

code("""\
data = abxcomm.load_example_data()
print(f'{len(data)} rows, {data.otu_id.nunique()} OTUs, '
      f'{data.family.nunique()} families')
data.head(8)\
"""),

md("""\
**Questions**

1. How many samples are there? Is every community × passage × dose combination present?
2. Why does the number of rows differ from samples × OTUs?\
"""),

# ═════════════════════════════════════════════════════════════════════════════
# §2  Relative abundance
# ═════════════════════════════════════════════════════════════════════════════
md("""\
---
## 2  Relative abundance

Samples are sequenced to different depths, so raw counts are not comparable \
across samples. Dividing each count by its sample's total gives the fraction \
of the community that OTU represents.\
"""),

code("""\
rel = abxcomm.relative_abundance(data, keep_depth=True)
sums = rel.groupby(['community', 'passage', 'dose'])['relative_abundance'].sum()
print(f'Per-sample sums — min {sums.min():.6f}, max {sums.max():.6f}')
print(f'Depth range: {rel.depth.min()} – {rel.depth.max()} reads')
rel.head()\
"""),

# ═════════════════════════════════════════════════════════════════════════════
# §3  Detection limit
# ═════════════════════════════════════════════════════════════════════════════
md("""\
---
## 3  The detection limit

With about 10⁴ reads per sample, and asking for at least 10 reads before we \
believe an OTU is really there, the smallest abundance we can trust is \
10 / 10⁴ = 10⁻³. Below that, we cannot tell a rare OTU from sequencing noise.

* **Drop mode** removes OTUs with zero reads (for counting and histograms).
* **Floor mode** raises everything below the limit up to the limit, so a \
trajectory never claims an OTU was "detected at zero".\
"""),

code("""\
policy = DetectionPolicy(min_reads=10, min_depth=10_000)
limit = policy.detection_limit
below = (rel.relative_abundance < limit).mean()
print(f'Detection limit: {limit:g}')
print(f'{below:.1%} of observations fall below it')

fig, ax = plt.subplots(figsize=(6, 3.5))
ax.hist(np.log10(abxcomm.drop_absent(rel).relative_abundance), bins=40, color='#4e79a7')
ax.axvline(np.log10(limit), color='black', ls='--')
ax.set_xlabel('log10 relative abundance')
ax.set_ylabel('Observations')
plt.show()\
"""),

md("""\
**Questions**

3. What would the detection limit be with 10⁵ reads per sample?
4. Why floor values at the limit instead of setting them to zero?\
"""),

# ═════════════════════════════════════════════════════════════════════════════
# §4  Pipeline + richness
# ═════════════════════════════════════════════════════════════════════════════
md("""\
---
## 4  OTU richness

`run_pipeline` derives every table used below in one call. \
Richness is counted twice: once over every OTU with a read (*raw*), and once \
over OTUs distinctly above the detection limit (*limited*).\
"""),

code("""\
result = abxcomm.run_pipeline(data, policy=policy)
result.richness.head(9)\
"""),

code("""\
abxcomm.plot_richness(result.richness)
plt.show()\
"""),

md("""\
**Questions**

5. Which doses reduce richness the most? Does richness recover by passage 7?
6. Why is the raw count always at least the limited count? \
What are the "spurious" OTUs?\
"""),

# ═════════════════════════════════════════════════════════════════════════════
# §5  Completion and trajectories
# ═════════════════════════════════════════════════════════════════════════════
md("""\
---
## 5  Filling in missing combinations

To draw an OTU's trajectory across passages and doses, it needs a value in \
every sample. The completed table adds every missing community × passage × \
dose × OTU combination at the detection floor.\
"""),

code("""\
completed = result.completed
print(f'{completed.filled.sum()} of {len(completed)} rows were filled')
print(f'Expected rows: {result.domains.n_samples} samples × '
      f'{completed.otu_id.nunique()} OTUs = '
      f'{result.domains.n_samples * completed.otu_id.nunique()}')\
"""),

code("""\
requests = list(abxcomm.iter_plot_requests(result, 'family_trajectory'))
for request in requests[:3]:
    abxcomm.plot_trajectory(request.data, title=request.name, limit=limit)
plt.show()

paths = abxcomm.save_requests(abxcomm.iter_plot_requests(result, 'otu_trajectory'),
                              'output', palette=palette)
print(f'Wrote {len(paths)} OTU trajectory plots')\
"""),

md("""\
**Questions**

7. Pick one family that collapses at 8 µg/mL. Does it recover by passage 7 in every community?
8. Which communities look most resilient?\
"""),

# ═════════════════════════════════════════════════════════════════════════════
# §6  Dose comparison
# ═════════════════════════════════════════════════════════════════════════════
md("""\
---
## 6  Paired comparison across doses

Pivoting dose into columns puts each OTU's untreated and treated abundance on \
the same row. Points below the 1:1 line lost ground under the antibiotic.\
"""),

code("""\
wide = abxcomm.dose_comparison(result.relative, 'A', 7, reference_dose=0, limit=limit)
abxcomm.plot_dose_comparison(wide, reference_dose=0, dose=8, limit=limit, palette=palette)
plt.show()
wide.sort_values('log2fc_8').head(10)\
"""),

md("""\
**Questions**

9. Which families lose the most at 8 µg/mL? Which gain?
10. Why are fold changes computed on floored values?\
"""),

# ═════════════════════════════════════════════════════════════════════════════
# §7  Replicates
# ═════════════════════════════════════════════════════════════════════════════
md("""\
---
## 7  Replicate agreement

Two replicate cultures were sequenced for every sample. If the experiment is \
reproducible, replicate 2 should track replicate 1 closely. OTUs absent from \
both replicates are left out of the fit.\
"""),

code("""\
reps = abxcomm.load_example_data(replicates=True)
reps = abxcomm.relative_abundance(reps, keys=['community', 'passage', 'dose', 'replicate'])
r2 = abxcomm.replicate_correlation(reps, passage=7, dose=2)
r2\
"""),

code("""\
sub = reps[(reps.community == 'A') & (reps.passage == 7) & (reps.dose == 2)]
pair = abxcomm.pivot_wide(sub, index='otu_id', columns='replicate', require_any=False)
fit = abxcomm.replicate_r2(pair[1], pair[2])
abxcomm.plot_replicates(pair[1], pair[2], fit=fit)
plt.show()\
"""),

md("""\
**Questions**

11. Which community has the least reproducible replicates?
12. Why would including OTUs absent from both replicates inflate R²?\
"""),

]  # end nb.cells

nbformat.write(nb, 'workbook.ipynb')
print(f'Written {len(nb.cells)} cells.')
