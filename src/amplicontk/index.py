"""Per-sample prevalence index cached next to the read file.

The sidecar records which amplicon scheme produced it. A sidecar built with a
different scheme is ignored with a warning, so filtering never runs against
stale prevalences.
"""

from __future__ import annotations

import gzip
import json
import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from .models import AmpliconScheme, FrequencyIndex, Read
from .pipeline import PipelineConfig, run_pipeline
from .records import CountingSink

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".ampidx"
FORMAT_TAG = "amplicon-tk-index"
FORMAT_VERSION = 1


class IndexFormatError(ValueError):
    """The sidecar exists but cannot be read as an index."""


def _boundary_mode(legacy: bool) -> str:
    return "legacy" if legacy else "default"


def sidecar_path(input_path: str | Path) -> Path:
    """``<input-file-name>.ampidx`` in the input's directory."""
    p = Path(input_path)
    return p.with_name(p.name + SIDECAR_SUFFIX)


def build_index(
    reads: Iterable[Read],
    scheme: AmpliconScheme,
    *,
    workers: Optional[int] = None,
    legacy: bool = False,
    progress: bool = False,
) -> FrequencyIndex:
    """Trim every read (no filtering) and record each trimmed sequence's prevalence."""
    config = PipelineConfig(
        workers=workers,
        trim=True,
        legacy_boundaries=legacy,
        progress=progress,
    )
    with CountingSink() as sink:
        result = run_pipeline(reads, scheme, sink, filters=None, config=config)
        counts = sink.counts()
    index = FrequencyIndex.from_counts(scheme.fingerprint(), counts, legacy_boundaries=legacy)
    logger.info(
        "Indexed %d unique trimmed sequence(s) from %d trimmed read(s) (%d read(s) seen)",
        len(index),
        sink.written,
        result.reads_total,
    )
    return index


def persist(index: FrequencyIndex, path: str | Path) -> Path:
    """Write the index as a gzip-compressed, tagged JSON blob."""
    path = Path(path)
    payload = {
        "format": FORMAT_TAG,
        "version": FORMAT_VERSION,
        "fingerprint": index.scheme_fingerprint,
        "boundaries": _boundary_mode(index.legacy_boundaries),
        "unique_seqs": {seq.decode("ascii"): freq for seq, freq in index.unique_seqs.items()},
    }
    tmp = path.with_name(path.name + ".tmp")
    try:
        with gzip.open(tmp, "wt", encoding="utf-8") as fh:
            json.dump(payload, fh, sort_keys=True, separators=(",", ":"))
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    logger.info("Wrote index with %d sequence(s) to %s", len(index), path)
    return path


def _read_payload(path: Path) -> dict:
    try:
        with gzip.open(path, "rt", encoding="utf-8") as fh:
            payload = json.load(fh)
    except (OSError, EOFError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise IndexFormatError(
            f"Could not read index file {path}: {e}. Delete it and rebuild with `amplicon-tk index`."
        ) from e
    if not isinstance(payload, dict) or payload.get("format") != FORMAT_TAG:
        raise IndexFormatError(f"{path} is not an amplicon-tk index file")
    if payload.get("version") != FORMAT_VERSION:
        raise IndexFormatError(
            f"{path} has index format version {payload.get('version')}, expected {FORMAT_VERSION}. "
            "Rebuild it with `amplicon-tk index`."
        )
    return payload


def load(path: str | Path, current_fingerprint: str, *, legacy: bool = False) -> Optional[FrequencyIndex]:
    """Load a sidecar if it exists and matches the current scheme and boundary mode.

    Returns None when the file is absent (first run), was built from a
    different amplicon scheme, or was trimmed with the other boundary mode.
    """
    path = Path(path)
    if not path.exists():
        logger.debug("No index found at %s", path)
        return None

    payload = _read_payload(path)
    stored = payload.get("fingerprint")
    if stored != current_fingerprint:
        logger.warning(
            "The index at %s was built with a different amplicon scheme and will not be used. "
            "Rebuild it by running `amplicon-tk index` with the current primer BED and reference.",
            path,
        )
        return None

    stored_mode = payload.get("boundaries")
    if stored_mode != _boundary_mode(legacy):
        logger.warning(
            "The index at %s was built with %s trim boundaries but this run uses %s boundaries, "
            "so it will not be used. Rebuild it by running `amplicon-tk index`%s.",
            path,
            stored_mode or "unrecorded",
            _boundary_mode(legacy),
            " --legacy-boundaries" if legacy else " without --legacy-boundaries",
        )
        return None

    try:
        unique_seqs = {seq.encode("ascii"): float(freq) for seq, freq in payload["unique_seqs"].items()}
    except (KeyError, AttributeError, TypeError, ValueError, UnicodeEncodeError) as e:
        raise IndexFormatError(f"Index file {path} has a malformed prevalence table: {e}") from e

    logger.info("Loaded index with %d sequence(s) from %s", len(unique_seqs), path)
    return FrequencyIndex(scheme_fingerprint=stored, unique_seqs=unique_seqs, legacy_boundaries=legacy)
