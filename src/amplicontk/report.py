from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Template

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>amplicon-tk {{ command }} report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>amplicon-tk {{ command }} report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>Reads</th><td><code>{{ inputs.reads }}</code></td></tr>
      <tr><th>Primer BED</th><td><code>{{ inputs.bed }}</code></td></tr>
      <tr><th>Reference</th><td><code>{{ inputs.reference }}</code></td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Amplicon scheme</h3>
    <table>
      <tr><th>Amplicons</th><td>{{ scheme.amplicons }}</td></tr>
      <tr><th>Fingerprint</th><td><code>{{ scheme.fingerprint }}</code></td></tr>
      <tr><th>Primer suffixes</th><td><code>{{ scheme.fwd_suffix }}</code> / <code>{{ scheme.rev_suffix }}</code></td></tr>
    </table>
  </div>
</div>

<h2>Filtering</h2>
{% if filters %}
<table>
  <tr><th>Minimum frequency</th><td>{{ filters.min_freq }}</td></tr>
  <tr><th>Maximum length</th><td>{{ filters.max_len }}</td></tr>
  <tr><th>Indexed sequences</th><td>{{ filters.indexed_sequences }}</td></tr>
</table>
{% else %}
<p>No prevalence filter applied.</p>
{% endif %}

<h2>Reads</h2>
<table>
  <tr><th>Total reads seen</th><td>{{ counts.reads_total }}</td></tr>
  <tr><th>Written</th><td>{{ counts.written }}</td></tr>
  <tr><th>No unique amplicon</th><td>{{ counts.no_match }}</td></tr>
  <tr><th>Filtered out</th><td>{{ counts.filtered_out }}</td></tr>
  <tr><th>Trim faults</th><td>{{ counts.faulted }}</td></tr>
</table>

<h2>Plots</h2>
<div class="grid">
  <div class="card">
    <h3>Outcomes</h3>
    <img src="{{ plots.outcome_counts }}" alt="outcome counts">
  </div>
  <div class="card">
    <h3>Written read lengths</h3>
    <img src="{{ plots.length_hist }}" alt="length histogram">
  </div>
</div>

<h2>Outputs</h2>
<ul>
  <li><code>{{ output }}</code> ({{ command }}ed reads)</li>
  <li><code>{{ summary_json }}</code> (machine-readable summary)</li>
</ul>

<h2>Interpretation notes</h2>
<ul>
  <li>Reads containing primers from more than one amplicon, or a primer together with its reverse complement, are dropped as ambiguous.</li>
  <li>Output read order follows completion order, not input order.</li>
</ul>

<hr>
<p class="small">amplicon-tk {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    command: str,
    run: Dict[str, Any],
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        command=command,
        inputs=run.get("inputs", {}),
        scheme=run.get("scheme", {}),
        filters=run.get("filters"),
        counts=run.get("counts", {}),
        output=run.get("output"),
        summary_json=run.get("summary_json"),
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    logger.info("Report written: %s", out_path)
    return out_path
