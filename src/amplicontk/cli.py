from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from . import __version__
from .index import build_index, load as load_index, persist, sidecar_path
from .models import AmpliconScheme, FilterSettings
from .pipeline import PipelineConfig, PipelineResult, run_pipeline
from .plotting import plot_length_hist, plot_outcome_counts
from .records import ReadSink, iter_reads
from .report import render_report
from .scheme import DEFAULT_FWD_SUFFIX, DEFAULT_REV_SUFFIX, scheme_from_files
from .toy_data import make_toy_data
from .utils import write_json
from .validation import (
    ReadFormat,
    UnsupportedFormatError,
    check_input_exists,
    detect_read_format,
    output_path_for,
    require_supported,
)

INFO = """\
amplicon-tk: amplicon-aware FASTQ operations

Every read kept by amplicon-tk contains both primers of exactly one amplicon,
so PCR chimeras and other artifacts are removed from the output.
"""


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _positive_int(v: str) -> int:
    n = int(v)
    if n < 1:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got {v}")
    return n


def _fraction(v: str) -> float:
    x = float(v)
    if not 0.0 <= x <= 1.0:
        raise argparse.ArgumentTypeError(f"Expected a frequency between 0 and 1, got {v}")
    return x


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _unsupported(err: UnsupportedFormatError) -> int:
    sys.stderr.write(f"{err}\n")
    return 0


def _add_scheme_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-i",
        "--input-file",
        required=True,
        type=_path_exists,
        help="Input FASTQ/FASTA file (optionally gzip-compressed).",
    )
    p.add_argument("-b", "--bed-file", required=True, type=_path_exists, help="BED file of primer coordinates.")
    p.add_argument("-f", "--fasta-ref", required=True, type=_path_exists, help="Reference sequence in FASTA format.")
    p.add_argument(
        "-l",
        "--left-suffix",
        default=DEFAULT_FWD_SUFFIX,
        help="Suffix identifying forward primers in the BED file.",
    )
    p.add_argument(
        "-r",
        "--right-suffix",
        default=DEFAULT_REV_SUFFIX,
        help="Suffix identifying reverse primers in the BED file.",
    )
    p.add_argument(
        "--threads",
        type=_positive_int,
        default=None,
        help="Worker threads for processing reads (default: number of CPUs).",
    )
    p.add_argument(
        "--legacy-boundaries",
        action="store_true",
        help="Keep the last base of the leading primer, matching outputs of older releases.",
    )
    p.add_argument("--no-progress", action="store_true", help="Do not show a progress bar.")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")


def _add_placeholder_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("-i", "--input-file", help="Input FASTQ file (optionally gzip-compressed).")
    p.add_argument("-b", "--bed-file", help="BED file of primer coordinates.")
    p.add_argument("-p", "--primer-file", help="Primer sequences in FASTA format.")
    p.add_argument("-f", "--ref-file", help="Reference sequence in FASTA format.")
    p.add_argument("-m", "--min-freq", type=float, default=0.0, help="Minimum frequency for amplicon variants.")
    p.add_argument("-k", "--keep-multi", action="store_true", help="Keep reads with several primer pairs.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="amplicon-tk",
        description=INFO,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--version", action="version", version=f"amplicon-tk {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # index
    # -----------------
    ix = sub.add_parser(
        "index",
        aliases=["id", "ind", "idx", "ix"],
        help=(
            "Index reads and record the prevalence of each unique trimmed amplicon sequence. "
            "Indexing finds and trims primers before counting sequences."
        ),
    )
    _add_scheme_args(ix)
    ix.set_defaults(cmd="index")

    # -----------------
    # extract
    # -----------------
    x = sub.add_parser(
        "extract",
        aliases=["x", "xtr", "extra", "demux", "demultiplex", "d"],
        help=(
            "Keep only reads that contain one complete amplicon, without trimming off the primers."
        ),
    )
    _add_scheme_args(x)
    x.add_argument(
        "-o",
        "--output",
        default="extracted_amplicons",
        help="Output name stem; the input's extension is appended.",
    )
    x.set_defaults(cmd="extract")

    # -----------------
    # trim
    # -----------------
    t = sub.add_parser(
        "trim",
        aliases=["tr", "tirm", "trm", "tri", "tm"],
        help="Trim reads down to the region between the primers of exactly one amplicon.",
    )
    _add_scheme_args(t)
    t.add_argument(
        "-m",
        "--min-freq",
        type=_fraction,
        default=None,
        help="Minimum prevalence of a trimmed sequence (needs an index from `amplicon-tk index`).",
    )
    t.add_argument(
        "-e",
        "--expected-len",
        type=_positive_int,
        default=None,
        help="Maximum trimmed length to keep (needs an index from `amplicon-tk index`).",
    )
    t.add_argument(
        "-o",
        "--output",
        default="trimmed",
        help="Output name stem; the input's extension is appended.",
    )
    t.add_argument(
        "--fail-fast",
        action="store_true",
        help="Abort the run on the first read that cannot be trimmed consistently.",
    )
    t.add_argument("--report", default=None, help="Directory for an HTML report with plots.")
    t.set_defaults(cmd="trim")

    # -----------------
    # sort / consensus (not yet available)
    # -----------------
    s = sub.add_parser(
        "sort",
        aliases=["so", "srt", "st", "srot"],
        help="Sort reads for each amplicon into their own FASTQs (not yet available).",
    )
    _add_placeholder_args(s)
    s.set_defaults(cmd="sort")

    c = sub.add_parser(
        "consensus",
        aliases=["cons", "co", "cd", "consseq", "cseq", "cnsns"],
        help="Call a consensus sequence for each amplicon (not yet available).",
    )
    _add_placeholder_args(c)
    c.add_argument("-o", "--output", default="amplicons.fasta", help="Output FASTA.")
    c.set_defaults(cmd="consensus")

    # -----------------
    # make-toy-data
    # -----------------
    td = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny reference, primer BED, and FASTQ for demos/tests.",
    )
    td.add_argument("--outdir", required=True, help="Output directory for toy data.")
    td.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    return p


# -----------------
# Command handlers
# -----------------


def _load_scheme(args: argparse.Namespace) -> AmpliconScheme:
    scheme = scheme_from_files(args.bed_file, args.fasta_ref, args.left_suffix, args.right_suffix)
    if len(scheme) == 0:
        raise ValueError(
            f"No amplicons could be defined from {args.bed_file}. Check that primer names end in "
            f"'{args.left_suffix}'/'{args.right_suffix}' and that every primer lies within the reference."
        )
    return scheme


def _input_format(path: str) -> ReadFormat:
    check_input_exists(path, what="Read")
    return require_supported(detect_read_format(path), path)


def _output_path(stem: Path, fmt: ReadFormat, input_file: str) -> Path:
    output = output_path_for(stem, fmt)
    if output.resolve() == Path(input_file).expanduser().resolve():
        raise ValueError(
            f"Output {output} would overwrite the input file {input_file}; choose a different -o/--output stem."
        )
    return output


def _pipeline_config(args: argparse.Namespace, *, trim: bool) -> PipelineConfig:
    return PipelineConfig(
        workers=args.threads,
        trim=trim,
        legacy_boundaries=bool(args.legacy_boundaries),
        fail_fast=bool(getattr(args, "fail_fast", False)),
        progress=not bool(args.no_progress),
    )


def _run_summary(
    args: argparse.Namespace,
    *,
    scheme: AmpliconScheme,
    result: PipelineResult,
    output: Path,
    summary_json: Path,
    filters: Optional[FilterSettings],
) -> Dict[str, Any]:
    summary: Dict[str, Any] = {
        "inputs": {
            "reads": str(args.input_file),
            "bed": str(args.bed_file),
            "reference": str(args.fasta_ref),
        },
        "scheme": {
            "amplicons": len(scheme),
            "fingerprint": scheme.fingerprint(),
            "fwd_suffix": args.left_suffix,
            "rev_suffix": args.right_suffix,
        },
        "filters": None,
        "legacy_boundaries": bool(args.legacy_boundaries),
        "output": str(output),
        "summary_json": str(summary_json),
    }
    if filters is not None:
        summary["filters"] = {
            "min_freq": filters.min_freq,
            "max_len": args.expected_len,
            "indexed_sequences": len(filters.unique_seqs),
        }
    summary.update(result.to_dict())
    return summary


def _write_report(report_dir: str, command: str, summary: Dict[str, Any], result: PipelineResult) -> Path:
    outdir = Path(report_dir).expanduser().resolve()
    plots_dir = outdir / "plots"
    counts_png = plots_dir / "outcome_counts.png"
    lengths_png = plots_dir / "length_hist.png"

    plot_outcome_counts(counts=result.counts, out_png=counts_png)
    plot_length_hist(length_counts=result.length_counts, out_png=lengths_png)

    plots_rel = {
        "outcome_counts": str(Path("plots") / counts_png.name),
        "length_hist": str(Path("plots") / lengths_png.name),
    }
    return render_report(outdir=outdir, version=__version__, command=command, run=summary, plots=plots_rel)


def cmd_index(args: argparse.Namespace) -> int:
    log_path = _log_path(sidecar_path(args.input_file).resolve().parent, "index.log")
    _setup_logging(args.verbose, logfile=log_path)
    logger = logging.getLogger("amplicontk")
    logger.info("amplicon-tk %s", __version__)

    try:
        fmt = _input_format(args.input_file)
        scheme = _load_scheme(args)
        index = build_index(
            iter_reads(args.input_file, fmt),
            scheme,
            workers=args.threads,
            legacy=bool(args.legacy_boundaries),
            progress=not bool(args.no_progress),
        )
        out = persist(index, sidecar_path(args.input_file))
        print(str(out))
        return 0
    except UnsupportedFormatError as e:
        return _unsupported(e)
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_extract(args: argparse.Namespace) -> int:
    stem = Path(args.output).expanduser().resolve()
    log_path = _log_path(stem.parent, "extract.log")
    _setup_logging(args.verbose, logfile=log_path)
    logger = logging.getLogger("amplicontk")
    logger.info("amplicon-tk %s", __version__)

    try:
        fmt = _input_format(args.input_file)
        scheme = _load_scheme(args)
        output = _output_path(stem, fmt, args.input_file)
        with ReadSink(output) as sink:
            result = run_pipeline(
                iter_reads(args.input_file, fmt),
                scheme,
                sink,
                config=_pipeline_config(args, trim=False),
            )

        summary_json = Path(f"{stem}.summary.json")
        summary = _run_summary(
            args, scheme=scheme, result=result, output=output, summary_json=summary_json, filters=None
        )
        write_json(summary_json, summary)
        print(str(output))
        return 0
    except UnsupportedFormatError as e:
        return _unsupported(e)
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_trim(args: argparse.Namespace) -> int:
    stem = Path(args.output).expanduser().resolve()
    log_path = _log_path(stem.parent, "trim.log")
    _setup_logging(args.verbose, logfile=log_path)
    logger = logging.getLogger("amplicontk")
    logger.info("amplicon-tk %s", __version__)

    try:
        fmt = _input_format(args.input_file)
        scheme = _load_scheme(args)

        # a stale or missing index leaves filters unset
        index = load_index(
            sidecar_path(args.input_file),
            scheme.fingerprint(),
            legacy=bool(args.legacy_boundaries),
        )
        filters = FilterSettings.from_index(index, min_freq=args.min_freq, max_len=args.expected_len)
        if filters is None and (args.min_freq is not None or args.expected_len is not None):
            logger.warning(
                "No usable index for %s; frequency/length filtering is disabled. "
                "Run `amplicon-tk index` on this input first.",
                args.input_file,
            )

        output = _output_path(stem, fmt, args.input_file)
        with ReadSink(output) as sink:
            result = run_pipeline(
                iter_reads(args.input_file, fmt),
                scheme,
                sink,
                filters=filters,
                config=_pipeline_config(args, trim=True),
            )

        summary_json = Path(f"{stem}.summary.json")
        summary = _run_summary(
            args, scheme=scheme, result=result, output=output, summary_json=summary_json, filters=filters
        )
        write_json(summary_json, summary)

        if args.report is not None:
            report_path = _write_report(args.report, "trim", summary, result)
            logger.info("Report written: %s", report_path)

        print(str(output))
        return 0
    except UnsupportedFormatError as e:
        return _unsupported(e)
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_not_yet_available(what: str) -> int:
    sys.stderr.write(INFO + "\n")
    sys.stderr.write(f"{what} is not yet available, but it will be soon!\n")
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "index":
        return cmd_index(args)
    if args.cmd == "extract":
        return cmd_extract(args)
    if args.cmd == "trim":
        return cmd_trim(args)
    if args.cmd == "sort":
        return cmd_not_yet_available("Sorting reads by amplicon")
    if args.cmd == "consensus":
        return cmd_not_yet_available("Amplicon consensus calling")
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
