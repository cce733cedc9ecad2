"""pmt_gain.io.table

Reader for the calibration measurement table.

One measurement per line, whitespace separated, no header::

    PMT#  Voltage  Gain  GainError
    1     1100     0.52  0.01

Blank lines and lines starting with ``#`` are ignored. Any other line that
does not hold exactly four numeric fields makes the whole table invalid.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import List, Optional, Union

from pmt_gain.api.errors import InputTableError
from pmt_gain.api.types import Measurement

logger = logging.getLogger(__name__)

N_COLUMNS = 4


def parse_line(line: str, lineno: int, path: Optional[str] = None) -> Optional[Measurement]:
    """Parse one table line; returns None for blank and comment lines."""
    text = line.strip()
    if not text or text.startswith("#"):
        return None

    fields = text.split()
    if len(fields) != N_COLUMNS:
        raise InputTableError(
            f"expected {N_COLUMNS} fields (channel voltage gain gain_error), got {len(fields)}",
            path=path, line=lineno,
        )
    try:
        p, v, g, ge = (float(x) for x in fields)
    except ValueError as e:
        raise InputTableError(f"non-numeric field: {e}", path=path, line=lineno) from e

    if not all(math.isfinite(x) for x in (p, v, g, ge)):
        raise InputTableError("non-finite value", path=path, line=lineno)
    if p != int(p) or p < 1:
        raise InputTableError(f"channel id must be a positive integer, got {fields[0]}", path=path, line=lineno)
    if v <= 0.0:
        raise InputTableError(f"voltage must be positive, got {fields[1]}", path=path, line=lineno)
    if g <= 0.0:
        raise InputTableError(f"gain must be positive, got {fields[2]}", path=path, line=lineno)
    if ge < 0.0:
        raise InputTableError(f"gain uncertainty must be non-negative, got {fields[3]}", path=path, line=lineno)

    return Measurement(channel_id=int(p), voltage=v, gain=g, gain_uncertainty=ge)


def parse_table(text: str, path: Optional[str] = None) -> List[Measurement]:
    rows: List[Measurement] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        m = parse_line(line, lineno, path=path)
        if m is not None:
            rows.append(m)
    return rows


def read_table(path: Union[str, Path]) -> List[Measurement]:
    """Read the whole measurement table. Raises InputTableError on any problem."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise InputTableError("input table not found", path=str(p)) from e
    except (OSError, UnicodeDecodeError) as e:
        raise InputTableError(f"cannot read input table: {e}", path=str(p)) from e

    rows = parse_table(text, path=str(p))
    if not rows:
        logger.warning(f"Input table {p} holds no measurements")
    logger.info(f"Read {len(rows)} measurements from {p}")
    return rows
