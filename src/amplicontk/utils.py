from __future__ import annotations

import gzip
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional, TextIO

logger = logging.getLogger(__name__)


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True)


def default_workers(requested: Optional[int] = None) -> int:
    """Worker count for the read pool: the request, else the CPU count."""
    if requested is not None:
        if requested < 1:
            raise ValueError(f"Worker count must be >= 1, got {requested}")
        return int(requested)
    return os.cpu_count() or 1
