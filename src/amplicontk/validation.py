from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


class UnsupportedFormatError(ValueError):
    """Raised for read inputs that are recognised but not handled yet."""


class ReadFormat(Enum):
    FASTQ_GZ = (".fastq.gz", True, True)
    FASTQ = (".fastq", True, False)
    FASTA_GZ = (".fasta.gz", False, True)
    FASTA = (".fasta", False, False)
    BAM = (".bam", False, False)

    def __init__(self, extension: str, has_quality: bool, compressed: bool) -> None:
        self.extension = extension
        self.has_quality = has_quality
        self.compressed = compressed


_SUFFIXES = {
    (".fastq", ".gz"): ReadFormat.FASTQ_GZ,
    (".fq", ".gz"): ReadFormat.FASTQ_GZ,
    (".fasta", ".gz"): ReadFormat.FASTA_GZ,
    (".fa", ".gz"): ReadFormat.FASTA_GZ,
    (".fna", ".gz"): ReadFormat.FASTA_GZ,
}

_SINGLE_SUFFIXES = {
    ".fastq": ReadFormat.FASTQ,
    ".fq": ReadFormat.FASTQ,
    ".fasta": ReadFormat.FASTA,
    ".fa": ReadFormat.FASTA,
    ".fna": ReadFormat.FASTA,
    ".bam": ReadFormat.BAM,
}


def check_input_exists(path: str | Path, *, what: str = "Input") -> Path:
    """Return ``path`` as a Path; raise FileNotFoundError naming it if absent."""
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"{what} file does not exist: {p}")
    return p


def detect_read_format(path: str | Path) -> ReadFormat:
    """Infer the read format from the file name."""
    p = Path(path)
    suffixes = tuple(s.lower() for s in p.suffixes[-2:])
    if len(suffixes) == 2 and suffixes in _SUFFIXES:
        return _SUFFIXES[suffixes]
    if suffixes and suffixes[-1] in _SINGLE_SUFFIXES:
        return _SINGLE_SUFFIXES[suffixes[-1]]
    if suffixes and suffixes[-1] == ".gz":
        raise ValueError(
            f"Could not tell which records the gzip file {p} holds; "
            "name it .fastq.gz/.fq.gz or .fasta.gz/.fa.gz"
        )
    raise ValueError(f"Unsupported read file type: {p}")


def require_supported(fmt: ReadFormat, path: str | Path) -> ReadFormat:
    """Reject formats that cannot be trimmed yet."""
    if fmt is ReadFormat.BAM:
        raise UnsupportedFormatError(
            f"Unaligned BAM inputs ({path}) are not yet supported. "
            "Convert to FASTQ first, e.g.: samtools fastq " + str(path) + " > reads.fastq"
        )
    return fmt


def output_path_for(stem: str | Path, fmt: ReadFormat) -> Path:
    """Output file named after ``stem`` with the same record type and compression as the input."""
    return Path(f"{stem}{fmt.extension}")
