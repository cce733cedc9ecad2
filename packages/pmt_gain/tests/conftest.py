"""Shared pytest fixtures for pmt_gain tests."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import numpy as np
import pytest

from pmt_gain.api.types import ChannelDataset, Measurement

CONTRIB = Path(__file__).resolve().parent.parent / "contrib"
EXAMPLES = CONTRIB / "examples"

LONG_RUN_VOLTAGES = (1000.0, 1200.0, 1400.0, 1600.0, 1800.0, 2000.0)
SHORT_RUN_VOLTAGES = (1200.0, 1600.0, 2000.0)


def power_law_measurements(
    channel_id: int,
    voltages: Sequence[float] = LONG_RUN_VOLTAGES,
    amplitude: float = 2e-8,
    exponent: float = 7.0,
    rel_err: float = 0.01,
    noise: Optional[np.random.Generator] = None,
) -> List[Measurement]:
    """Measurements following gain = amplitude * V**exponent (optionally smeared)."""
    rows = []
    for v in voltages:
        g = amplitude * v ** exponent
        if noise is not None:
            g *= 1.0 + rel_err * noise.normal()
        rows.append(Measurement(channel_id=channel_id, voltage=v, gain=g, gain_uncertainty=rel_err * g))
    return rows


def make_dataset(channel_id: int = 1, **kwargs) -> ChannelDataset:
    return ChannelDataset(channel_id=channel_id, measurements=power_law_measurements(channel_id, **kwargs))


def format_table(rows: Iterable[Measurement]) -> str:
    return "".join(f"{m.channel_id} {m.voltage!r} {m.gain!r} {m.gain_uncertainty!r}\n" for m in rows)


@pytest.fixture
def write_table(tmp_path):
    """Write measurements (or raw text) to ``tmp_path/<name>.txt`` and return the path."""

    def _write(rows, name: str = "TEST") -> Path:
        path = tmp_path / f"{name}.txt"
        text = rows if isinstance(rows, str) else format_table(rows)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def mixed_rows():
    """10 channels: 2 has 2 points and 7 has 5 points (both skipped), the rest fit."""
    rng = np.random.default_rng(42)
    rows: List[Measurement] = []
    for cid in range(1, 11):
        if cid == 2:
            voltages = (1000.0, 1500.0)
        elif cid == 7:
            voltages = LONG_RUN_VOLTAGES[:5]
        elif cid % 3 == 0:
            voltages = SHORT_RUN_VOLTAGES
        else:
            voltages = LONG_RUN_VOLTAGES
        rows.extend(power_law_measurements(cid, voltages, amplitude=2e-8 * (1 + 0.05 * cid), noise=rng))
    # interleave channels the way real tables are often written
    return sorted(rows, key=lambda m: (m.voltage, m.channel_id))


@pytest.fixture
def demo_table():
    return EXAMPLES / "DEMO.txt"
