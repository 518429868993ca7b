from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Mapping

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

logger = logging.getLogger(__name__)


def plot_outcome_counts(
    *,
    counts: Mapping[str, int],
    out_png: str | Path,
    title: str = "Read outcomes",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = ["Written", "No unique amplicon", "Filtered out", "Trim fault"]
    values = [
        int(counts.get("written", 0)),
        int(counts.get("no_match", 0)),
        int(counts.get("filtered_out", 0)),
        int(counts.get("faulted", 0)),
    ]

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Read count")
    plt.title(title)
    plt.xticks(rotation=15, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_length_hist(
    *,
    length_counts: Dict[int, int],
    out_png: str | Path,
    title: str = "Length of written reads",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    xs = sorted(length_counts)
    ys = [int(length_counts[x]) for x in xs]

    plt.figure()
    if xs:
        plt.bar(xs, ys, width=1.0, align="center")
    plt.xlabel("Read length (bases)")
    plt.ylabel("Read count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
