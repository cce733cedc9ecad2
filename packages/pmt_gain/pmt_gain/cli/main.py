"""pmt_gain.cli.main

Entry point for `pmtgain` CLI.

Commands:
- pmtgain fit CHIMNEY [--input CHIMNEY.txt] [--out-dir .] [--config cfg.yaml] [--no-plots]
- pmtgain inspect CHIMNEY [--input CHIMNEY.txt]
- pmtgain doctor [--config cfg.yaml]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from pmt_gain.api.errors import ConfigError, ExportError, InputTableError
from pmt_gain.core.config import DEFAULT_CONFIG, GainVoltageConfig, load_config, make_config

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(message)s",
    )


def _config_from_args(args) -> GainVoltageConfig:
    base = load_config(args.config) if args.config else DEFAULT_CONFIG
    overrides = {
        "n_channels": getattr(args, "channels", None),
        "refinement_passes": getattr(args, "passes", None),
    }
    if getattr(args, "legacy_rows", False):
        overrides["pad_skipped_channels"] = False
    if getattr(args, "early_exit", False):
        overrides["early_exit"] = True
    return make_config(overrides, base=base)


def cmd_fit(args):
    from pmt_gain.analysis.report import make_summary_md
    from pmt_gain.core.pipeline import run_calibration

    try:
        config = _config_from_args(args)
        result = run_calibration(
            args.name,
            input_path=args.input,
            out_dir=args.out_dir,
            config=config,
            make_plots=not args.no_plots,
            make_archive=not args.no_archive,
        )
    except (InputTableError, ConfigError, ExportError) as e:
        logger.error(str(e))
        raise SystemExit(1)

    if args.summary:
        print(make_summary_md(args.name, result.outcomes))
    else:
        print(json.dumps(result.files, indent=2))


def cmd_inspect(args):
    """Print the calibration-set size found for every channel."""
    from pmt_gain.core.selection import is_supported, select_channels
    from pmt_gain.io.table import read_table

    try:
        config = _config_from_args(args)
        measurements = read_table(args.input or f"{args.name}.txt")
    except (InputTableError, ConfigError) as e:
        logger.error(str(e))
        raise SystemExit(1)

    datasets = select_channels(measurements, config.channel_ids)
    for cid in config.channel_ids:
        ds = datasets[cid]
        state = "ok" if is_supported(ds, config.valid_dataset_sizes) else "SKIP"
        voltages = ", ".join(f"{m.voltage:g}" for m in ds.measurements)
        print(f"PMT {cid:>3}: {len(ds):>2} points [{state}]  {voltages}")


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("name", help="Run name (chimney id); output files are prefixed with it")
    p.add_argument("--input", type=str, default=None, help="Measurement table (default: NAME.txt)")
    p.add_argument("--config", type=str, default=None, help="YAML config file")
    p.add_argument("--channels", type=int, default=None, help="Number of channels (default 10)")


def build_parser():
    p = argparse.ArgumentParser(prog="pmtgain", description="PMT gain vs voltage power-law calibration.")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_fit = sub.add_parser("fit", help="Fit every channel and write report, archive and figures")
    _add_common(p_fit)
    p_fit.add_argument("--out-dir", type=str, default=".", help="Output directory")
    p_fit.add_argument("--passes", type=int, default=None, help="Refinement passes after the first fit")
    p_fit.add_argument("--early-exit", action="store_true", help="Stop refining once parameters converge")
    p_fit.add_argument("--legacy-rows", action="store_true",
                       help="Write only two placeholder rows for skipped channels")
    p_fit.add_argument("--no-plots", action="store_true", help="Do not render PDF figures")
    p_fit.add_argument("--no-archive", action="store_true", help="Do not write the JSON archive")
    p_fit.add_argument("--summary", action="store_true", help="Print a markdown summary instead of file paths")
    p_fit.set_defaults(func=cmd_fit)

    p_ins = sub.add_parser("inspect", help="Show per-channel calibration-set sizes")
    _add_common(p_ins)
    p_ins.set_defaults(func=cmd_inspect)

    from pmt_gain.cli.doctor import add_doctor_subparser
    add_doctor_subparser(sub)

    return p


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)
    args.func(args)


if __name__ == "__main__":
    main(sys.argv[1:])
