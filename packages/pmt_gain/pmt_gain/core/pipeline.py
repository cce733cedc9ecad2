"""pmt_gain.core.pipeline

Per-channel calibration pipeline:

    read table -> select channel -> validity gate -> log transform -> fit -> report

Channels are processed one at a time in ascending id. A failure inside one
channel is logged and recorded as an ``error`` outcome; it never stops the
remaining channels. Only an unreadable input table aborts a run, and it does
so before any output file is written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from pmt_gain.api.errors import ExportError, UnsupportedDatasetSize
from pmt_gain.api.types import ChannelDataset, ChannelOutcome, FitStatus, Measurement, OutcomeKind
from pmt_gain.analysis.report import ReportBuilder
from pmt_gain.core.config import DEFAULT_CONFIG, GainVoltageConfig
from pmt_gain.core.fitting import fit_power_law
from pmt_gain.core.selection import check_dataset_size, select_channels
from pmt_gain.core.transform import log_transform
from pmt_gain.io.archive import write_archive
from pmt_gain.io.table import read_table

logger = logging.getLogger(__name__)


def report_path(out_dir: Union[str, Path], name: str) -> Path:
    return Path(out_dir) / f"{name}_gainvsvoltage.txt"


def archive_path(out_dir: Union[str, Path], name: str) -> Path:
    return Path(out_dir) / f"{name}_gainvsvoltage.json"


def figure_path(out_dir: Union[str, Path], name: str, channel_id: int) -> Path:
    return Path(out_dir) / f"{name}_{channel_id}_gainvsvoltage.pdf"


@dataclass
class RunResult:
    name: str
    config: GainVoltageConfig
    outcomes: List[ChannelOutcome]
    report: ReportBuilder
    files: Dict[str, str] = field(default_factory=dict)

    @property
    def fitted(self) -> List[ChannelOutcome]:
        return [o for o in self.outcomes if o.fitted]

    @property
    def skipped(self) -> List[int]:
        return [o.channel_id for o in self.outcomes if o.kind == OutcomeKind.skipped]


def analyze_channel(dataset: ChannelDataset, config: GainVoltageConfig = DEFAULT_CONFIG) -> ChannelOutcome:
    cid = dataset.channel_id
    try:
        check_dataset_size(dataset, config.valid_dataset_sizes)
    except UnsupportedDatasetSize as e:
        logger.warning(f"Improper number of data points for PMT {cid} ({e.n_points} points). SKIPPING")
        return ChannelOutcome(
            channel_id=cid,
            kind=OutcomeKind.skipped,
            n_points=e.n_points,
            message=f"unsupported calibration-set size {e.n_points}",
        )

    data = log_transform(dataset, config)
    logger.info(f"Fitting {cid}")
    fit = fit_power_law(data, config)
    if fit.status == FitStatus.degenerate:
        logger.warning(f"PMT {cid}: degenerate fit ({fit.message})")
    else:
        logger.info(
            f"PMT {cid}: exponent={fit.exponent:.4f}±{fit.exponent_stderr:.2g} "
            f"constant={fit.constant:.4f}±{fit.constant_stderr:.2g} "
            f"chi2/ndf={fit.chi_square:.3g}/{fit.ndf}"
        )
    return ChannelOutcome(
        channel_id=cid,
        kind=OutcomeKind.fitted,
        n_points=len(dataset),
        fit=fit,
        data=data,
        message=fit.message or "",
    )


def analyze_measurements(measurements: Iterable[Measurement],
                         config: GainVoltageConfig = DEFAULT_CONFIG) -> List[ChannelOutcome]:
    """Run every configured channel; outcomes come back in ascending channel id."""
    datasets = select_channels(measurements, config.channel_ids)
    outcomes: List[ChannelOutcome] = []
    for cid in config.channel_ids:
        dataset = datasets[cid]
        try:
            outcome = analyze_channel(dataset, config)
        except Exception as e:
            logger.exception(f"PMT {cid}: analysis failed")
            outcome = ChannelOutcome(
                channel_id=cid,
                kind=OutcomeKind.error,
                n_points=len(dataset),
                message=f"{type(e).__name__}: {e}",
            )
        outcomes.append(outcome)
    return outcomes


def build_report(outcomes: Iterable[ChannelOutcome], config: GainVoltageConfig = DEFAULT_CONFIG) -> ReportBuilder:
    report = ReportBuilder(config.channel_ids, pad_skipped=config.pad_skipped_channels)
    for o in outcomes:
        report.add(o)
    return report


def write_figures(out_dir: Union[str, Path], name: str, outcomes: Iterable[ChannelOutcome]) -> Dict[int, str]:
    from pmt_gain.viewer.plots import save_channel_pdf

    written: Dict[int, str] = {}
    for o in outcomes:
        if not o.fitted or o.data is None:
            continue
        if o.fit.status == FitStatus.degenerate:
            logger.warning(f"PMT {o.channel_id}: degenerate fit, no figure")
            continue
        try:
            written[o.channel_id] = save_channel_pdf(figure_path(out_dir, name, o.channel_id), name, o.data, o.fit)
        except ExportError as e:
            logger.error(f"PMT {o.channel_id}: {e}")
    return written


def run_calibration(
    name: str,
    input_path: Optional[Union[str, Path]] = None,
    out_dir: Union[str, Path] = ".",
    config: GainVoltageConfig = DEFAULT_CONFIG,
    make_plots: bool = True,
    make_archive: bool = True,
) -> RunResult:
    """Full run for one input table.

    Args:
        name: Run name (chimney id); prefixes every output file.
        input_path: Measurement table; defaults to ``<name>.txt``.
        out_dir: Directory for the report, archive and figures.
        config: Calibration constants.
        make_plots: Render one PDF per fitted channel.
        make_archive: Write the JSON archive of all fits.

    Returns:
        RunResult with per-channel outcomes and the paths written.

    Raises:
        InputTableError: the table is missing or malformed. Nothing is written.
    """
    src = Path(input_path) if input_path is not None else Path(f"{name}.txt")
    measurements = read_table(src)

    outcomes = analyze_measurements(measurements, config)
    report = build_report(outcomes, config)
    result = RunResult(name=name, config=config, outcomes=outcomes, report=report)

    result.files["report"] = report.write(report_path(out_dir, name))
    if make_archive:
        result.files["archive"] = write_archive(archive_path(out_dir, name), name, config, outcomes)
    if make_plots:
        for cid, p in write_figures(out_dir, name, outcomes).items():
            result.files[f"figure_{cid}"] = p

    logger.info(
        f"{name}: fitted {len(result.fitted)}/{config.n_channels} channels"
        + (f", skipped {result.skipped}" if result.skipped else "")
    )
    return result
