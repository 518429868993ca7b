import logging
from pathlib import Path

import pytest

from amplicontk.models import AmpliconDefinition, AmpliconScheme, PrimerCoordinate
from amplicontk.scheme import (
    CoordinateError,
    build_scheme,
    load_primer_coordinates,
    load_reference,
    scheme_from_files,
    slice_primer,
)

from conftest import SCENARIO_REF


def _coord(label: str, start: int, stop: int, ref: bytes = b"ref1") -> PrimerCoordinate:
    return PrimerCoordinate(label=label, reference_name=ref, start=start, stop=stop)


def test_build_scheme_pairs_primers(scenario_scheme):
    assert len(scenario_scheme) == 1
    d = scenario_scheme.definitions[0]
    assert d.name == "AMP1"
    assert d.fwd == "TGGAGGAT"
    assert d.fwd_rc == "ATCCTCCA"
    assert d.rev == "TACTATGG"
    assert d.rev_rc == "CCATAGTA"


def test_two_forward_primers_produce_no_definition(scenario_refs):
    coords = [_coord("AMP1_LEFT", 0, 8), _coord("AMP1_LEFT", 70, 78)]
    scheme = build_scheme(coords, scenario_refs, "_LEFT", "_RIGHT")
    assert len(scheme) == 0


def test_groups_of_wrong_size_are_dropped(scenario_refs):
    coords = [
        _coord("AMP1_LEFT", 0, 8),
        _coord("AMP1_RIGHT", 70, 78),
        _coord("AMP1_RIGHT", 60, 68),
        _coord("AMP2_LEFT", 0, 8),
        _coord("AMP3_LEFT", 0, 8),
        _coord("AMP3_RIGHT", 70, 78),
    ]
    scheme = build_scheme(coords, scenario_refs, "_LEFT", "_RIGHT")
    assert [d.name for d in scheme] == ["AMP3"]


def test_custom_suffixes(scenario_refs):
    coords = [_coord("amp1-F", 0, 8), _coord("amp1-R", 70, 78)]
    scheme = build_scheme(coords, scenario_refs, "-F", "-R")
    assert [d.name for d in scheme] == ["amp1"]
    assert len(build_scheme(coords, scenario_refs, "_LEFT", "_RIGHT")) == 0


def test_out_of_range_coordinate_is_skipped(scenario_refs, caplog):
    coords = [
        _coord("AMP1_LEFT", 0, 8),
        _coord("AMP1_RIGHT", 70, 78),
        _coord("AMP2_LEFT", 0, 8),
        _coord("AMP2_RIGHT", 95, 103),
    ]
    with caplog.at_level(logging.ERROR):
        scheme = build_scheme(coords, scenario_refs, "_LEFT", "_RIGHT")
    assert [d.name for d in scheme] == ["AMP1"]
    assert "95" in caplog.text and "103" in caplog.text
    assert str(len(SCENARIO_REF)) in caplog.text


def test_slice_primer_errors(scenario_refs):
    with pytest.raises(CoordinateError, match="not in the reference"):
        slice_primer(_coord("X_LEFT", 0, 8, ref=b"missing"), scenario_refs)
    with pytest.raises(CoordinateError, match="88 bases long"):
        slice_primer(_coord("X_LEFT", 80, 200), scenario_refs)
    with pytest.raises(CoordinateError):
        slice_primer(_coord("X_LEFT", 5, 5), scenario_refs)


def test_fingerprint_is_stable_and_content_sensitive(scenario_refs):
    coords = [_coord("AMP1_LEFT", 0, 8), _coord("AMP1_RIGHT", 70, 78)]
    a = build_scheme(coords, scenario_refs)
    b = build_scheme(list(coords), dict(scenario_refs))
    assert a.fingerprint() == b.fingerprint()
    assert len(a.fingerprint()) == 64

    changed = build_scheme([_coord("AMP1_LEFT", 1, 9), _coord("AMP1_RIGHT", 70, 78)], scenario_refs)
    assert changed.fingerprint() != a.fingerprint()

    renamed = AmpliconScheme(
        tuple(
            AmpliconDefinition(name="other", fwd=d.fwd, fwd_rc=d.fwd_rc, rev=d.rev, rev_rc=d.rev_rc)
            for d in a
        )
    )
    assert renamed.fingerprint() != a.fingerprint()


def test_duplicate_names_warn(caplog):
    d = AmpliconDefinition(name="dup", fwd="AAAA", fwd_rc="TTTT", rev="CCCC", rev_rc="GGGG")
    with caplog.at_level(logging.WARNING):
        scheme = AmpliconScheme((d, d))
    assert len(scheme) == 2
    assert "dup" in caplog.text


def test_load_primer_coordinates(tmp_path: Path):
    bed = tmp_path / "p.bed"
    bed.write_text(
        "# comment\ntrack name=primers\nref1\t0\t8\tAMP1_LEFT\t1\t+\n\nref1\t70\t78\tAMP1_RIGHT\n",
        encoding="utf-8",
    )
    coords = load_primer_coordinates(bed)
    assert coords == [_coord("AMP1_LEFT", 0, 8), _coord("AMP1_RIGHT", 70, 78)]


@pytest.mark.parametrize(
    "row, message",
    [
        ("ref1\t0\t8\n", "at least 4"),
        ("ref1\tzero\t8\tAMP1_LEFT\n", "integers"),
        ("ref1\t10\t8\tAMP1_LEFT\n", "invalid interval"),
    ],
)
def test_malformed_bed_rows(tmp_path: Path, row: str, message: str):
    bed = tmp_path / "bad.bed"
    bed.write_text(row, encoding="utf-8")
    with pytest.raises(ValueError, match=message):
        load_primer_coordinates(bed)


def test_missing_files_are_reported(tmp_path: Path):
    with pytest.raises(FileNotFoundError, match="missing.bed"):
        load_primer_coordinates(tmp_path / "missing.bed")
    with pytest.raises(FileNotFoundError, match="missing.fa"):
        load_reference(tmp_path / "missing.fa")


def test_load_reference_uppercases(tmp_path: Path):
    fa = tmp_path / "ref.fa"
    fa.write_text(">chrA desc\nacgtNN\nGGCC\n>chrB\nTTTT\n", encoding="utf-8")
    refs = load_reference(fa)
    assert refs == {b"chrA": b"ACGTNNGGCC", b"chrB": b"TTTT"}


def test_scheme_from_files(scenario_files):
    scheme = scheme_from_files(scenario_files["bed"], scenario_files["ref"])
    assert [d.name for d in scheme] == ["AMP1"]
