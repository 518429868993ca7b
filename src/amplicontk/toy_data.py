from __future__ import annotations

import gzip
import random
from pathlib import Path
from typing import Dict, List, Tuple

from .scheme import reverse_complement
from .utils import ensure_outdir, write_json

TOY_CONTIG = "toy_ref"

# Two 200 bp amplicons separated by spacer; primers are 20 bp.
_AMPLICONS = (
    ("toy_1", 20, 220),
    ("toy_2", 300, 500),
)
_PRIMER_LEN = 20


def _write_fasta(path: Path, contig: str, seq: str) -> None:
    lines = [f">{contig}"]
    for i in range(0, len(seq), 60):
        lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _mutate_base(base: str) -> str:
    for alt in ["A", "C", "G", "T"]:
        if alt != base:
            return alt
    return "A"


def _random_seq(rng: random.Random, n: int) -> str:
    return "".join(rng.choice("ACGT") for _ in range(n))


def make_toy_data(*, outdir: str | Path, n_reads: int = 40, seed: int = 7) -> Dict[str, str]:
    """Create a tiny reference, primer BED and FASTQ suitable for quick demos/tests.

    The outputs include:
    - toy_ref.fa
    - primers.bed (``_LEFT``/``_RIGHT`` suffixes)
    - reads.fastq.gz (a mix of forward, reverse-complemented, variant,
      primer-less and chimeric reads)

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)
    rng = random.Random(seed)

    ref_seq = _random_seq(rng, 560)
    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, TOY_CONTIG, ref_seq)

    bed_rows: List[str] = []
    for name, start, stop in _AMPLICONS:
        bed_rows.append(f"{TOY_CONTIG}\t{start}\t{start + _PRIMER_LEN}\t{name}_LEFT\t1\t+")
        bed_rows.append(f"{TOY_CONTIG}\t{stop - _PRIMER_LEN}\t{stop}\t{name}_RIGHT\t1\t-")
    bed = outdir_p / "primers.bed"
    bed.write_text("\n".join(bed_rows) + "\n", encoding="utf-8")

    reads: List[Tuple[str, str]] = []
    for i in range(n_reads):
        name, start, stop = _AMPLICONS[i % len(_AMPLICONS)]
        amplicon = list(ref_seq[start:stop])
        kind = i % 5
        if kind == 3:
            # interior variant, keeps primers intact
            rel = _PRIMER_LEN + 10 + (i % 50)
            amplicon[rel] = _mutate_base(amplicon[rel])
        seq = "".join(amplicon)
        if kind == 1:
            seq = reverse_complement(seq)
        seq = _random_seq(rng, 5) + seq + _random_seq(rng, 5)
        reads.append((f"{name}_read{i}", seq))

    # reads that must never be written
    reads.append(("no_primers", _random_seq(rng, 150)))
    first, second = _AMPLICONS
    chimera = ref_seq[first[1] : first[1] + 100] + ref_seq[second[2] - 100 : second[2]]
    reads.append(("chimera", chimera))

    fastq = outdir_p / "reads.fastq.gz"
    with gzip.open(fastq, "wt") as fh:
        for read_name, seq in reads:
            qual = "".join(chr(33 + rng.randint(20, 40)) for _ in seq)
            fh.write(f"@{read_name}\n{seq}\n+\n{qual}\n")

    summary = {
        "ref_fa": str(ref_fa),
        "primers_bed": str(bed),
        "reads_fastq": str(fastq),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
