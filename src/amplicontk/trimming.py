from __future__ import annotations

import logging
from typing import Optional

from .models import AmpliconBounds, FilterSettings, Read

logger = logging.getLogger(__name__)


class TrimInvariantError(RuntimeError):
    """Sequence and quality lengths disagree after trimming a read."""

    def __init__(self, message: str, *, read_name: str, sequence: bytes, quality: Optional[bytes]) -> None:
        super().__init__(message)
        self.read_name = read_name
        self.sequence = sequence
        self.quality = quality


def to_bounds(read: Read, bounds: AmpliconBounds) -> Read:
    """Return a new read cut to ``[bounds.start, bounds.stop)``.

    The sequence and quality are sliced identically; the original read is left
    untouched.
    """
    new_seq = read.sequence[bounds.start : bounds.stop]
    new_qual = read.quality[bounds.start : bounds.stop] if read.quality is not None else None
    if new_qual is not None and len(new_qual) != len(new_seq):
        raise TrimInvariantError(
            f"Read {read.name}: trimming to [{bounds.start}, {bounds.stop}) left "
            f"{len(new_seq)} bases but {len(new_qual)} quality scores.\n"
            f"Original sequence: {read.sequence.decode('ascii', errors='replace')}\n"
            f"Original quality:  {read.quality.decode('ascii', errors='replace') if read.quality else ''}",
            read_name=read.name,
            sequence=read.sequence,
            quality=read.quality,
        )
    return Read(name=read.name, sequence=new_seq, quality=new_qual, comment=read.comment)


def whether_to_write(read: Read, filters: Optional[FilterSettings]) -> bool:
    """Apply the prevalence/length filter to a trimmed read.

    Sequences missing from the prevalence table are rejected.
    """
    if filters is None:
        return True
    freq = filters.unique_seqs.get(read.sequence)
    if freq is None:
        return False
    return freq >= filters.min_freq and len(read.sequence) <= filters.max_len
