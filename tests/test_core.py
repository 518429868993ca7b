import pytest

from amplicontk.matcher import candidate_bounds, find_amplicon, match_forward, match_reverse
from amplicontk.models import (
    AmpliconBounds,
    AmpliconDefinition,
    AmpliconScheme,
    FilterSettings,
    FrequencyIndex,
    Read,
)
from amplicontk.scheme import reverse_complement
from amplicontk.trimming import TrimInvariantError, to_bounds, whether_to_write

from conftest import SCENARIO_READ, SCENARIO_TRIMMED, make_read


def _definition(name: str, fwd: str, rev: str) -> AmpliconDefinition:
    return AmpliconDefinition(
        name=name,
        fwd=fwd,
        fwd_rc=reverse_complement(fwd),
        rev=rev,
        rev_rc=reverse_complement(rev),
    )


def test_reverse_complement_round_trip():
    for s in ["", "A", "ACGT", "TGGAGGAT", "GATTACAGATTACA", "CCCCGGGGAATT"]:
        assert reverse_complement(reverse_complement(s)) == s
    assert reverse_complement("TGGAGGAT") == "ATCCTCCA"


def test_reverse_complement_uracil_and_unknown_bases():
    # U complements to A and does not round-trip back to U
    assert reverse_complement("U") == "A"
    assert reverse_complement(reverse_complement("U")) == "T"
    # non-ACGTU characters are dropped, not substituted
    assert reverse_complement("ANCGT") == "ACGT"
    assert reverse_complement("acgt") == ""


def test_scenario_trim(scenario_scheme):
    read = make_read(SCENARIO_READ)
    bounds = find_amplicon(read, scenario_scheme)
    assert bounds == AmpliconBounds(start=17, stop=58)

    trimmed = to_bounds(read, bounds)
    assert trimmed.sequence.decode() == SCENARIO_TRIMMED
    assert trimmed.quality == read.quality[17:58]
    assert len(trimmed.sequence) == len(trimmed.quality)
    assert b"TGGAGGAT" not in trimmed.sequence
    assert b"TACTATGG" not in trimmed.sequence


def test_legacy_boundary_keeps_last_primer_base(scenario_scheme):
    read = make_read(SCENARIO_READ)
    bounds = find_amplicon(read, scenario_scheme, legacy=True)
    assert bounds == AmpliconBounds(start=16, stop=58)
    trimmed = to_bounds(read, bounds)
    assert trimmed.sequence.decode() == "T" + SCENARIO_TRIMMED


def test_reverse_complemented_read_matches(scenario_scheme):
    read = make_read(reverse_complement(SCENARIO_READ))
    bounds = find_amplicon(read, scenario_scheme)
    assert bounds is not None
    trimmed = to_bounds(read, bounds)
    assert trimmed.sequence.decode() == reverse_complement(SCENARIO_TRIMMED)


def test_read_without_primers_has_no_match(scenario_scheme):
    read = make_read("ACGT" * 20)
    assert find_amplicon(read, scenario_scheme) is None


def test_primer_and_its_reverse_complement_is_ambiguous():
    d = _definition("a", "TGGAGGAT", "TACTATGG")
    seq = "TGGAGGAT" + "C" * 30 + "ATCCTCCA" + "C" * 30 + "TACTATGG"
    read = make_read(seq)
    assert match_forward(read, d) is None
    assert match_reverse(read, d) == seq.index("TACTATGG")
    assert find_amplicon(read, AmpliconScheme((d,))) is None


def test_two_distinct_candidates_are_rejected():
    d1 = _definition("a", "TGGAGGAT", "TACTATGG")
    d2 = _definition("b", "GATTACAG", "CCGGAAGT")
    seq = "TGGAGGAT" + "C" * 20 + "GATTACAG" + "C" * 20 + "CCGGAAGT" + "C" * 20 + "TACTATGG"
    read = make_read(seq)
    assert find_amplicon(read, AmpliconScheme((d1,))) is not None
    assert find_amplicon(read, AmpliconScheme((d2,))) is not None
    assert find_amplicon(read, AmpliconScheme((d1, d2))) is None


def test_identical_candidates_are_deduplicated():
    d1 = _definition("a", "TGGAGGAT", "TACTATGG")
    d2 = _definition("a_copy", "TGGAGGAT", "TACTATGG")
    read = make_read(SCENARIO_READ)
    assert find_amplicon(read, AmpliconScheme((d1, d2))) == AmpliconBounds(start=17, stop=58)


def test_candidate_must_be_longer_than_primers():
    d = _definition("a", "TGGAGGAT", "TACTATGG")
    # interior of 8 bases is not longer than the 8 base primers
    assert candidate_bounds(0, 16, d) is None
    assert candidate_bounds(0, 17, d) == AmpliconBounds(start=8, stop=17)
    # reverse primer first
    assert candidate_bounds(40, 0, d) == AmpliconBounds(start=8, stop=40)
    # overlapping hits never produce bounds
    assert candidate_bounds(5, 3, d) is None


def test_only_forward_primer_present():
    d = _definition("a", "TGGAGGAT", "TACTATGG")
    read = make_read("TGGAGGAT" + "C" * 40)
    assert find_amplicon(read, AmpliconScheme((d,))) is None


def test_to_bounds_without_quality():
    read = Read(name="r", sequence=SCENARIO_READ.encode(), quality=None)
    trimmed = to_bounds(read, AmpliconBounds(start=17, stop=58))
    assert trimmed.quality is None
    assert trimmed.sequence.decode() == SCENARIO_TRIMMED


def test_to_bounds_length_mismatch_raises_with_context():
    read = Read(name="bad", sequence=SCENARIO_READ.encode(), quality=b"I" * 30)
    with pytest.raises(TrimInvariantError) as excinfo:
        to_bounds(read, AmpliconBounds(start=17, stop=58))
    err = excinfo.value
    assert err.read_name == "bad"
    assert err.sequence == read.sequence
    assert err.quality == read.quality
    assert SCENARIO_READ in str(err)


def test_to_bounds_does_not_modify_original():
    read = make_read(SCENARIO_READ)
    to_bounds(read, AmpliconBounds(start=17, stop=58))
    assert read.sequence.decode() == SCENARIO_READ


def test_whether_to_write_without_filters():
    assert whether_to_write(make_read("ACGT"), None)


def test_whether_to_write_with_filters():
    index = FrequencyIndex(
        scheme_fingerprint="x",
        unique_seqs={b"AAAA": 0.05, b"CCCC": 0.5, b"GGGGGGGG": 0.45},
    )
    filters = FilterSettings.from_index(index, min_freq=0.1, max_len=6)
    assert filters is not None

    assert not whether_to_write(make_read("AAAA"), filters)  # below min_freq
    assert whether_to_write(make_read("CCCC"), filters)
    assert not whether_to_write(make_read("GGGGGGGG"), filters)  # longer than max_len
    assert not whether_to_write(make_read("TTTT"), filters)  # absent from index


def test_filter_settings_need_an_index_and_a_threshold():
    index = FrequencyIndex(scheme_fingerprint="x", unique_seqs={b"AAAA": 1.0})
    assert FilterSettings.from_index(None, min_freq=0.1) is None
    assert FilterSettings.from_index(index) is None

    only_freq = FilterSettings.from_index(index, min_freq=0.2)
    assert only_freq is not None and only_freq.max_len > 10**9

    only_len = FilterSettings.from_index(index, max_len=10)
    assert only_len is not None and only_len.min_freq == 0.0


def test_definition_requires_primers():
    with pytest.raises(ValueError):
        AmpliconDefinition(name="x", fwd="", fwd_rc="", rev="ACGT", rev_rc="ACGT")
