"""Read sources and output sinks.

Sinks are shared by every pipeline worker, so each one serialises access to its
underlying handle with a lock held for a single record.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from pathlib import Path
from typing import Dict, Iterator, Optional

import pysam

from .models import Read
from .utils import open_textmaybe_gzip
from .validation import ReadFormat, check_input_exists, detect_read_format, require_supported

logger = logging.getLogger(__name__)


def iter_reads(path: str | Path, fmt: Optional[ReadFormat] = None) -> Iterator[Read]:
    """Lazily yield reads from a FASTQ/FASTA file (optionally gzipped)."""
    path = check_input_exists(path, what="Read")
    fmt = require_supported(fmt or detect_read_format(path), path)
    with pysam.FastxFile(str(path)) as fh:
        for entry in fh:
            quality = entry.quality.encode("ascii") if entry.quality is not None else None
            if fmt.has_quality and quality is None:
                raise ValueError(f"FASTQ record {entry.name} in {path} has no quality line")
            yield Read(
                name=entry.name,
                sequence=entry.sequence.encode("ascii"),
                quality=quality,
                comment=entry.comment,
            )


def format_record(read: Read) -> str:
    header = read.name if not read.comment else f"{read.name} {read.comment}"
    seq = read.sequence.decode("ascii")
    if read.quality is None:
        return f">{header}\n{seq}\n"
    return f"@{header}\n{seq}\n+\n{read.quality.decode('ascii')}\n"


class ReadSink:
    """Write reads to a FASTQ/FASTA file, gzip-compressed when the name ends in .gz.

    ``close()`` must run for gzip outputs to receive their trailer; use the sink
    as a context manager.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open_textmaybe_gzip(self.path, "wt")
        self._lock = threading.Lock()
        self.written = 0
        self.closed = False

    def write(self, read: Read) -> None:
        text = format_record(read)
        with self._lock:
            if self.closed:
                raise ValueError(f"Sink {self.path} is already closed")
            self._fh.write(text)
            self.written += 1

    def close(self) -> None:
        with self._lock:
            if self.closed:
                return
            self._fh.flush()
            self._fh.close()
            self.closed = True
        logger.info("Wrote %d read(s) to %s", self.written, self.path)

    def __enter__(self) -> "ReadSink":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class CountingSink:
    """Tally trimmed sequences instead of writing them (index building)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Counter[bytes] = Counter()
        self.written = 0
        self.closed = False

    def write(self, read: Read) -> None:
        with self._lock:
            self._counts[read.sequence] += 1
            self.written += 1

    def counts(self) -> Dict[bytes, int]:
        with self._lock:
            return dict(self._counts)

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "CountingSink":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
