from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Mapping

import pysam

from .models import AmpliconDefinition, AmpliconScheme, PrimerCoordinate
from .validation import check_input_exists

logger = logging.getLogger(__name__)

DEFAULT_FWD_SUFFIX = "_LEFT"
DEFAULT_REV_SUFFIX = "_RIGHT"

_COMPLEMENT = {"A": "T", "T": "A", "G": "C", "C": "G", "U": "A"}
_BED_SKIP_PREFIXES = ("#", "track", "browser")


class CoordinateError(ValueError):
    """A primer coordinate that cannot be resolved against the reference."""


def reverse_complement(seq: str) -> str:
    """Reverse complement of a DNA/RNA string.

    U is complemented to A, so RNA input does not round-trip. Characters outside
    ACGTU are dropped rather than substituted.
    """
    return "".join(_COMPLEMENT[b] for b in reversed(seq) if b in _COMPLEMENT)


def load_reference(path: str | Path) -> Dict[bytes, bytes]:
    """Read a FASTA into ``{name: sequence}``; sequences are upper-cased."""
    path = check_input_exists(path, what="Reference FASTA")
    refs: Dict[bytes, bytes] = {}
    with pysam.FastxFile(str(path)) as fh:
        for entry in fh:
            if entry.sequence is None:
                continue
            refs[entry.name.encode("ascii")] = entry.sequence.upper().encode("ascii")
    if not refs:
        raise ValueError(f"No sequences found in reference FASTA: {path}")
    logger.info("Loaded %d reference sequence(s) from %s", len(refs), path)
    return refs


def load_primer_coordinates(path: str | Path) -> List[PrimerCoordinate]:
    """Parse primer rows ``chrom start stop name [...]`` from a BED file."""
    path = check_input_exists(path, what="Primer BED")
    coords: List[PrimerCoordinate] = []
    with open(path, "rt", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.rstrip("\r\n")
            if not line.strip() or line.startswith(_BED_SKIP_PREFIXES):
                continue
            fields = line.split("\t")
            if len(fields) < 4:
                raise ValueError(
                    f"{path}:{lineno}: expected at least 4 tab-separated columns "
                    f"(chrom, start, stop, name), found {len(fields)}"
                )
            chrom, start_s, stop_s, label = fields[:4]
            try:
                start, stop = int(start_s), int(stop_s)
            except ValueError:
                raise ValueError(
                    f"{path}:{lineno}: start/stop must be integers, got {start_s!r} and {stop_s!r}"
                ) from None
            if start < 0 or stop < start:
                raise ValueError(f"{path}:{lineno}: invalid interval [{start}, {stop}) for {label}")
            coords.append(
                PrimerCoordinate(
                    label=label.strip(),
                    reference_name=chrom.encode("ascii"),
                    start=start,
                    stop=stop,
                )
            )
    if not coords:
        raise ValueError(f"No primer rows found in BED file: {path}")
    logger.info("Loaded %d primer coordinates from %s", len(coords), path)
    return coords


def slice_primer(coord: PrimerCoordinate, references: Mapping[bytes, bytes]) -> str:
    """Return the primer sequence for one coordinate."""
    ref_name = coord.reference_name.decode("ascii", errors="replace")
    seq = references.get(coord.reference_name)
    if seq is None:
        raise CoordinateError(
            f"Reference '{ref_name}' for primer {coord.label} "
            f"(positions {coord.start} and {coord.stop}) is not in the reference FASTA"
        )
    if coord.stop > len(seq):
        logger.debug("Reference sequence %s:\n%s", ref_name, seq.decode("ascii", errors="replace"))
        raise CoordinateError(
            f"Positions {coord.start} and {coord.stop} for {coord.label} are not present in the "
            f"reference sequence {ref_name}, which is {len(seq)} bases long"
        )
    primer = seq[coord.start : coord.stop].decode("ascii")
    if not primer:
        raise CoordinateError(f"Primer {coord.label} has an empty interval [{coord.start}, {coord.stop})")
    return primer


def amplicon_name(label: str, fwd_suffix: str, rev_suffix: str) -> str:
    return label.replace(fwd_suffix, "").replace(rev_suffix, "")


def build_scheme(
    coordinates: Iterable[PrimerCoordinate],
    references: Mapping[bytes, bytes],
    fwd_suffix: str = DEFAULT_FWD_SUFFIX,
    rev_suffix: str = DEFAULT_REV_SUFFIX,
) -> AmpliconScheme:
    """Pair primers into amplicon definitions.

    Coordinates that cannot be resolved are logged and skipped. An amplicon is
    kept only when exactly two primers share its name, one labelled with
    ``fwd_suffix`` and the other with ``rev_suffix``.
    """
    if not fwd_suffix or not rev_suffix:
        raise ValueError("Forward and reverse primer suffixes must be non-empty")

    groups: Dict[str, List[tuple[str, str]]] = {}
    skipped = 0
    for coord in coordinates:
        try:
            primer = slice_primer(coord, references)
        except CoordinateError as e:
            logger.error("%s; skipping this primer.", e)
            skipped += 1
            continue
        name = amplicon_name(coord.label, fwd_suffix, rev_suffix)
        groups.setdefault(name, []).append((coord.label, primer))

    definitions: List[AmpliconDefinition] = []
    for name, members in groups.items():
        if len(members) != 2:
            logger.debug("Dropping amplicon %s: %d primers share its name", name, len(members))
            continue
        fwd_hits = [m for m in members if fwd_suffix in m[0]]
        rev_hits = [m for m in members if rev_suffix in m[0]]
        if len(fwd_hits) != 1 or len(rev_hits) != 1 or fwd_hits[0] is rev_hits[0]:
            logger.debug("Dropping amplicon %s: primers %s do not form one pair", name, [m[0] for m in members])
            continue
        fwd, rev = fwd_hits[0][1], rev_hits[0][1]
        definitions.append(
            AmpliconDefinition(
                name=name,
                fwd=fwd,
                fwd_rc=reverse_complement(fwd),
                rev=rev,
                rev_rc=reverse_complement(rev),
            )
        )

    if skipped:
        logger.warning("%d primer coordinate(s) could not be resolved against the reference", skipped)
    if not definitions:
        logger.warning("No amplicons could be defined; check the primer suffixes (%s/%s)", fwd_suffix, rev_suffix)
    else:
        logger.info("Defined %d amplicon(s) from %d primer name group(s)", len(definitions), len(groups))

    return AmpliconScheme(definitions=tuple(definitions))


def scheme_from_files(
    bed_path: str | Path,
    fasta_path: str | Path,
    fwd_suffix: str = DEFAULT_FWD_SUFFIX,
    rev_suffix: str = DEFAULT_REV_SUFFIX,
) -> AmpliconScheme:
    references = load_reference(fasta_path)
    coordinates = load_primer_coordinates(bed_path)
    return build_scheme(coordinates, references, fwd_suffix, rev_suffix)
