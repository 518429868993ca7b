from pathlib import Path

import pytest

from amplicontk.models import AmpliconScheme, PrimerCoordinate, Read
from amplicontk.scheme import build_scheme

SCENARIO_READ = "TGTTTCCACTGGAGGATACTCACCCCTCTTGCACTCAAGTTAAACAGTTTCCAAAGCGTACTATGGTTAAGCCACAGCCT"
SCENARIO_TRIMMED = "ACTCACCCCTCTTGCACTCAAGTTAAACAGTTTCCAAAGCG"
SCENARIO_REF = "TGGAGGAT" + "C" * 62 + "TACTATGG" + "C" * 10


def make_read(seq: str, name: str = "r1", qual: str | None = None) -> Read:
    if qual is None:
        # distinct quality characters so slicing mistakes show up
        qual = "".join(chr(33 + (i % 41)) for i in range(len(seq)))
    return Read(name=name, sequence=seq.encode("ascii"), quality=qual.encode("ascii"))


@pytest.fixture
def scenario_refs() -> dict:
    return {b"ref1": SCENARIO_REF.encode("ascii")}


@pytest.fixture
def scenario_scheme(scenario_refs: dict) -> AmpliconScheme:
    coords = [
        PrimerCoordinate(label="AMP1_LEFT", reference_name=b"ref1", start=0, stop=8),
        PrimerCoordinate(label="AMP1_RIGHT", reference_name=b"ref1", start=70, stop=78),
    ]
    return build_scheme(coords, scenario_refs, "_LEFT", "_RIGHT")


@pytest.fixture
def scenario_files(tmp_path: Path) -> dict:
    ref = tmp_path / "ref.fa"
    ref.write_text(f">ref1\n{SCENARIO_REF}\n", encoding="utf-8")
    bed = tmp_path / "primers.bed"
    bed.write_text("ref1\t0\t8\tAMP1_LEFT\t1\t+\nref1\t70\t78\tAMP1_RIGHT\t1\t-\n", encoding="utf-8")
    return {"ref": ref, "bed": bed}
