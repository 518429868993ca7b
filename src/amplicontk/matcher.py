"""Locate amplicon primers in individual reads.

Matching is exact: a primer hits a read when the read contains the primer (or
its reverse complement) as a contiguous window. A read is assigned to an
amplicon only when exactly one distinct set of trim bounds survives across the
whole scheme; anything ambiguous is dropped rather than guessed.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Iterable, Optional, Set

from .models import AmpliconBounds, AmpliconDefinition, Read

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def _primer_bytes(primer: str) -> bytes:
    return primer.encode("ascii")


def _match_oriented(sequence: bytes, primer: str, primer_rc: str) -> Optional[int]:
    pos = sequence.find(_primer_bytes(primer))
    pos_rc = sequence.find(_primer_bytes(primer_rc))
    if pos >= 0 and pos_rc >= 0:
        # both orientations present: ambiguous
        return None
    if pos >= 0:
        return pos
    if pos_rc >= 0:
        return pos_rc
    return None


def match_forward(read: Read, definition: AmpliconDefinition) -> Optional[int]:
    """Start offset of the forward primer (or its reverse complement) in the read."""
    return _match_oriented(read.sequence, definition.fwd, definition.fwd_rc)


def match_reverse(read: Read, definition: AmpliconDefinition) -> Optional[int]:
    """Start offset of the reverse primer (or its reverse complement) in the read."""
    return _match_oriented(read.sequence, definition.rev, definition.rev_rc)


def candidate_bounds(
    fwd_pos: int,
    rev_pos: int,
    definition: AmpliconDefinition,
    *,
    legacy: bool = False,
) -> Optional[AmpliconBounds]:
    """Region strictly between the two primer hits.

    With ``legacy=True`` the region starts one base earlier (on the last base of
    the leading primer), reproducing outputs and indices of older releases.
    """
    offset = 1 if legacy else 0
    fwd_len, rev_len = len(definition.fwd), len(definition.rev)
    if fwd_pos < rev_pos:
        start, stop = fwd_pos + fwd_len - offset, rev_pos
    else:
        start, stop = rev_pos + rev_len - offset, fwd_pos
    if stop == start or stop - start <= fwd_len or stop - start <= rev_len:
        return None
    return AmpliconBounds(start=start, stop=stop)


def find_amplicon(
    read: Read,
    scheme: Iterable[AmpliconDefinition],
    *,
    legacy: bool = False,
) -> Optional[AmpliconBounds]:
    """Trim bounds for the single amplicon found in ``read``, or None."""
    candidates: Set[AmpliconBounds] = set()
    for definition in scheme:
        fwd_pos = match_forward(read, definition)
        if fwd_pos is None:
            continue
        rev_pos = match_reverse(read, definition)
        if rev_pos is None:
            continue
        bounds = candidate_bounds(fwd_pos, rev_pos, definition, legacy=legacy)
        if bounds is not None:
            candidates.add(bounds)
            if len(candidates) > 1:
                return None
    if len(candidates) != 1:
        return None
    return next(iter(candidates))
