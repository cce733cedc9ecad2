"""pmt_gain.analysis.report

Comma-separated fit report, one block of rows per channel in ascending
channel order (row position encodes the channel number downstream).

Each block starts with two placeholder rows. A fitted channel then gets its
data row::

    constant,constant_stderr,exponent,exponent_stderr,chi_square,ndf,p_value

A skipped channel gets a third placeholder row when ``pad_skipped`` is set
(every block is 3 rows), or nothing (legacy 2-row block) otherwise.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Union

from pmt_gain.api.errors import ExportError
from pmt_gain.api.types import ChannelOutcome, FitStatus, OutcomeKind

logger = logging.getLogger(__name__)

N_FIELDS = 7
PLACEHOLDER = "--"
PLACEHOLDER_ROW = ",".join([PLACEHOLDER] * N_FIELDS)
LEADING_PLACEHOLDER_ROWS = 2


def format_value(x: Union[int, float]) -> str:
    if isinstance(x, int):
        return str(x)
    return f"{x:g}"


def data_row(outcome: ChannelOutcome) -> str:
    if outcome.fit is None:
        raise ValueError(f"PMT {outcome.channel_id} has no fit result")
    return ",".join(format_value(v) for v in outcome.fit.report_values())


class ReportBuilder:
    """Collects one outcome per channel in any order; serialises in channel order."""

    def __init__(self, channel_ids: Iterable[int], pad_skipped: bool = True):
        self.channel_ids = sorted(channel_ids)
        self.pad_skipped = pad_skipped
        self._outcomes: Dict[int, ChannelOutcome] = {}

    def add(self, outcome: ChannelOutcome) -> None:
        cid = outcome.channel_id
        if cid not in self.channel_ids:
            raise ValueError(f"Unknown channel {cid}")
        if cid in self._outcomes:
            raise ValueError(f"Channel {cid} already reported")
        self._outcomes[cid] = outcome

    def outcomes(self) -> List[ChannelOutcome]:
        return [self._outcomes[cid] for cid in self.channel_ids if cid in self._outcomes]

    def block(self, channel_id: int) -> List[str]:
        rows = [PLACEHOLDER_ROW] * LEADING_PLACEHOLDER_ROWS
        outcome = self._outcomes.get(channel_id)
        if outcome is not None and outcome.fitted:
            rows.append(data_row(outcome))
        elif self.pad_skipped:
            rows.append(PLACEHOLDER_ROW)
        return rows

    def rows(self) -> List[str]:
        out: List[str] = []
        for cid in self.channel_ids:
            out.extend(self.block(cid))
        return out

    def to_csv(self) -> str:
        return "".join(row + "\n" for row in self.rows())

    def write(self, path: Union[str, Path]) -> str:
        p = Path(path)
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(self.to_csv(), encoding="utf-8")
        except OSError as e:
            raise ExportError(f"Cannot write report {p}: {e}") from e
        logger.info(f"Wrote fit report: {p}")
        return str(p)


def make_summary_md(name: str, outcomes: Iterable[ChannelOutcome]) -> str:
    """Human-readable markdown summary of a run."""
    ts = datetime.now(timezone.utc).isoformat()
    lines: List[str] = [f"# Gain vs voltage: {name}\n", f"Generated: `{ts}`\n"]
    lines.append("| PMT | points | status | exponent | amplitude | chi2/ndf | p-value |")
    lines.append("|---|---|---|---|---|---|---|")
    for o in outcomes:
        if o.fitted:
            f = o.fit
            status = f.status.value if f.status != FitStatus.ok else "fitted"
            lines.append(
                f"| {o.channel_id} | {o.n_points} | {status} | "
                f"{f.exponent:.4g} ± {f.exponent_stderr:.2g} | {f.physical_amplitude:.4g} | "
                f"{f.reduced_chi_square:.3g} | {f.p_value:.3g} |"
            )
        else:
            label = "skipped" if o.kind == OutcomeKind.skipped else "error"
            lines.append(f"| {o.channel_id} | {o.n_points} | {label} | | | | |")
    lines.append("")
    return "\n".join(lines)
