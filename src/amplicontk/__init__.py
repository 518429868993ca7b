"""amplicon-tk: amplicon-aware trimming and filtering of sequencing reads.

Public API is intentionally small; most users should use the CLI:

    amplicon-tk trim -i reads.fastq.gz -b primers.bed -f ref.fa

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
