from __future__ import annotations

import logging
import time
from collections import Counter
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Protocol, Set, Tuple

import numpy as np
from tqdm import tqdm

from .matcher import find_amplicon
from .models import AmpliconScheme, FilterSettings, Read, ReadOutcome
from .trimming import TrimInvariantError, to_bounds, whether_to_write
from .utils import default_workers

logger = logging.getLogger(__name__)


class Sink(Protocol):
    written: int

    def write(self, read: Read) -> None: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class PipelineConfig:
    """Knobs for one pipeline run.

    workers:
        Thread pool width; None means one worker per CPU.
    trim:
        Cut matched reads to their amplicon bounds. When False (``extract``),
        matched reads are written untouched and no filter is applied.
    legacy_boundaries:
        Start trimmed reads on the last base of the leading primer, as older
        releases did.
    fail_fast:
        Abort the whole run on the first trim fault instead of skipping the record.
    inflight_factor:
        At most ``workers * inflight_factor`` reads are submitted but unfinished.
    progress:
        Show a tqdm progress bar.
    """

    workers: Optional[int] = None
    trim: bool = True
    legacy_boundaries: bool = False
    fail_fast: bool = False
    inflight_factor: int = 4
    progress: bool = False


@dataclass
class PipelineResult:
    counts: Dict[str, int]
    length_counts: Dict[int, int] = field(default_factory=dict)
    workers: int = 1
    runtime_seconds: float = 0.0

    @property
    def reads_total(self) -> int:
        return sum(self.counts.values())

    def length_summary(self) -> Dict[str, Optional[float]]:
        if not self.length_counts:
            return {"min": None, "max": None, "mean": None, "median": None}
        lengths = np.array(sorted(self.length_counts), dtype=np.int64)
        weights = np.array([self.length_counts[n] for n in lengths], dtype=np.int64)
        median = np.median(np.repeat(lengths, weights))
        return {
            "min": float(lengths[0]),
            "max": float(lengths[-1]),
            "mean": float(np.average(lengths, weights=weights)),
            "median": float(median),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "counts": dict(self.counts, reads_total=self.reads_total),
            "written_length_hist": {str(k): v for k, v in sorted(self.length_counts.items())},
            "written_length_summary": self.length_summary(),
            "workers": self.workers,
            "runtime_seconds": float(self.runtime_seconds),
        }


def process_read(
    read: Read,
    scheme: AmpliconScheme,
    *,
    filters: Optional[FilterSettings] = None,
    trim: bool = True,
    legacy: bool = False,
) -> Tuple[ReadOutcome, Optional[Read]]:
    """Match, trim and filter one read.

    Returns the terminal outcome and, for ``WRITTEN``, the read to write.
    Raises TrimInvariantError if trimming breaks the sequence/quality pairing.
    """
    bounds = find_amplicon(read, scheme, legacy=legacy)
    if bounds is None:
        return ReadOutcome.NO_MATCH, None
    if not trim:
        return ReadOutcome.WRITTEN, read
    trimmed = to_bounds(read, bounds)
    if not whether_to_write(trimmed, filters):
        return ReadOutcome.FILTERED_OUT, None
    return ReadOutcome.WRITTEN, trimmed


def _handle_read(
    read: Read,
    scheme: AmpliconScheme,
    sink: Sink,
    filters: Optional[FilterSettings],
    config: PipelineConfig,
) -> Tuple[ReadOutcome, int]:
    try:
        outcome, out = process_read(
            read,
            scheme,
            filters=filters,
            trim=config.trim,
            legacy=config.legacy_boundaries,
        )
    except TrimInvariantError as e:
        if config.fail_fast:
            raise
        logger.error("Skipping read after trim fault: %s", e)
        return ReadOutcome.FAULTED, -1

    if outcome is ReadOutcome.WRITTEN and out is not None:
        sink.write(out)
        return outcome, len(out)
    return outcome, -1


def run_pipeline(
    reads: Iterable[Read],
    scheme: AmpliconScheme,
    sink: Sink,
    *,
    filters: Optional[FilterSettings] = None,
    config: PipelineConfig = PipelineConfig(),
) -> PipelineResult:
    """Stream ``reads`` through match/trim/filter on a thread pool, writing into ``sink``.

    The scheme and filters are shared read-only by every worker. Reads reach the
    sink in completion order, which need not match input order. The sink is not
    closed here; its owner closes it.
    """
    t0 = time.time()
    workers = default_workers(config.workers)
    max_inflight = workers * max(1, int(config.inflight_factor))
    logger.info("%d worker thread(s) allocated for processing records.", workers)

    counts = {o.value: 0 for o in ReadOutcome}
    length_counts: Counter[int] = Counter()

    def collect(done: Iterable[Future]) -> None:
        for fut in done:
            outcome, length = fut.result()
            counts[outcome.value] += 1
            if length >= 0:
                length_counts[length] += 1

    it: Iterable[Read] = reads
    if config.progress:
        it = tqdm(it, unit="read", desc="Trimming reads" if config.trim else "Extracting reads")

    pending: Set[Future] = set()
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="amplicontk") as pool:
        try:
            for read in it:
                if len(pending) >= max_inflight:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    collect(done)
                pending.add(pool.submit(_handle_read, read, scheme, sink, filters, config))
            done, pending = wait(pending)
            collect(done)
        except BaseException:
            for fut in pending:
                fut.cancel()
            raise

    result = PipelineResult(
        counts=counts,
        length_counts=dict(length_counts),
        workers=workers,
        runtime_seconds=time.time() - t0,
    )
    logger.info(
        "Processed %d read(s): %d written, %d without a unique amplicon, %d filtered, %d faulted",
        result.reads_total,
        counts[ReadOutcome.WRITTEN.value],
        counts[ReadOutcome.NO_MATCH.value],
        counts[ReadOutcome.FILTERED_OUT.value],
        counts[ReadOutcome.FAULTED.value],
    )
    if counts[ReadOutcome.FAULTED.value]:
        logger.warning("%d read(s) hit a trim fault; see errors above", counts[ReadOutcome.FAULTED.value])
    return result
