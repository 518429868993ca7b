from __future__ import annotations

import hashlib
import json
import logging
import sys
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrimerCoordinate:
    """One primer position from a BED file.

    Coordinates are 0-based half-open, as in BED.

    Attributes
    ----------
    label:
        Primer name, e.g. ``nCoV-2019_1_LEFT``.
    reference_name:
        Contig name as present in the reference FASTA.
    start, stop:
        ``[start, stop)`` offsets into the reference sequence.
    """

    label: str
    reference_name: bytes
    start: int
    stop: int


@dataclass(frozen=True)
class AmpliconDefinition:
    """A primer pair plus the reverse complement of each primer."""

    name: str
    fwd: str
    fwd_rc: str
    rev: str
    rev_rc: str

    def __post_init__(self) -> None:
        if not self.fwd or not self.rev:
            raise ValueError(f"Amplicon '{self.name}' needs non-empty forward and reverse primers")

    def as_row(self) -> list[str]:
        return [self.name, self.fwd, self.fwd_rc, self.rev, self.rev_rc]


@dataclass(frozen=True)
class AmpliconScheme:
    """Ordered collection of amplicon definitions.

    Order does not matter for matching, only for the fingerprint.
    """

    definitions: Tuple[AmpliconDefinition, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "definitions", tuple(self.definitions))
        dupes = [n for n, c in Counter(d.name for d in self.definitions).items() if c > 1]
        if dupes:
            logger.warning("Amplicon names used more than once in scheme: %s", ", ".join(sorted(dupes)))

    def __len__(self) -> int:
        return len(self.definitions)

    def __iter__(self):
        return iter(self.definitions)

    def canonical_bytes(self) -> bytes:
        rows = [d.as_row() for d in self.definitions]
        return json.dumps(rows, separators=(",", ":"), ensure_ascii=True).encode("utf-8")

    def fingerprint(self) -> str:
        """SHA-256 hex digest of the canonical serialization."""
        return hashlib.sha256(self.canonical_bytes()).hexdigest()


@dataclass(frozen=True)
class AmpliconBounds:
    """Half-open ``[start, stop)`` range into one read's sequence."""

    start: int
    stop: int


@dataclass(frozen=True)
class Read:
    """A sequencing read. ``quality`` is None for FASTA input."""

    name: str
    sequence: bytes
    quality: Optional[bytes] = None
    comment: Optional[str] = None

    def __len__(self) -> int:
        return len(self.sequence)


@dataclass(frozen=True)
class FrequencyIndex:
    """Prevalence of each trimmed sequence.

    Tagged with the scheme fingerprint and the boundary mode the reads were
    trimmed with.
    """

    scheme_fingerprint: str
    unique_seqs: Mapping[bytes, float] = field(default_factory=dict)
    legacy_boundaries: bool = False

    def __len__(self) -> int:
        return len(self.unique_seqs)

    @classmethod
    def from_counts(
        cls,
        scheme_fingerprint: str,
        counts: Mapping[bytes, int],
        *,
        legacy_boundaries: bool = False,
    ) -> "FrequencyIndex":
        total = sum(counts.values())
        freqs = {seq: n / float(total) for seq, n in counts.items()} if total else {}
        return cls(scheme_fingerprint=scheme_fingerprint, unique_seqs=freqs, legacy_boundaries=legacy_boundaries)


@dataclass(frozen=True)
class FilterSettings:
    """Thresholds for the prevalence/length filter."""

    min_freq: float
    max_len: int
    unique_seqs: Mapping[bytes, float]

    @classmethod
    def from_index(
        cls,
        index: Optional[FrequencyIndex],
        *,
        min_freq: Optional[float] = None,
        max_len: Optional[int] = None,
    ) -> Optional["FilterSettings"]:
        """Return settings, or None when there is nothing to filter with."""
        if index is None or (min_freq is None and max_len is None):
            return None
        return cls(
            min_freq=float(min_freq) if min_freq is not None else 0.0,
            max_len=int(max_len) if max_len is not None else sys.maxsize,
            unique_seqs=index.unique_seqs,
        )


class ReadOutcome(str, Enum):
    """Terminal state of one read in the pipeline."""

    WRITTEN = "written"
    NO_MATCH = "no_match"
    FILTERED_OUT = "filtered_out"
    FAULTED = "faulted"
