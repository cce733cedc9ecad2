"""pmt_gain.cli.doctor
======================

``pmtgain doctor``: green/red checklist before a calibration run.

Checks:
1. Python version >= 3.10
2. Core deps (numpy, scipy, pydantic, pyyaml, matplotlib)
3. Configuration (defaults, or ``--config`` file) validates
4. Fitter self-test on a noiseless synthetic power law
5. Disk/write (tmp dir writable)

Exit code 0 if all critical checks pass, 1 otherwise.
"""
from __future__ import annotations

import importlib
import sys
import tempfile
from dataclasses import dataclass, field
from typing import Callable, List, Optional

# ANSI color codes with fallback
_SUPPORTS_COLOR: Optional[bool] = None


def _color_supported() -> bool:
    global _SUPPORTS_COLOR
    if _SUPPORTS_COLOR is not None:
        return _SUPPORTS_COLOR
    _SUPPORTS_COLOR = hasattr(sys.stdout, "isatty") and sys.stdout.isatty()
    return _SUPPORTS_COLOR


def _green(text: str) -> str:
    return f"\033[32m{text}\033[0m" if _color_supported() else text


def _red(text: str) -> str:
    return f"\033[31m{text}\033[0m" if _color_supported() else text


def _yellow(text: str) -> str:
    return f"\033[33m{text}\033[0m" if _color_supported() else text


def _bold(text: str) -> str:
    return f"\033[1m{text}\033[0m" if _color_supported() else text


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class CheckResult:
    """Result of a single doctor check."""
    name: str
    passed: bool
    critical: bool = True
    message: str = ""
    details: List[str] = field(default_factory=list)

    @property
    def status_str(self) -> str:
        if self.passed:
            return _green("PASS")
        elif self.critical:
            return _red("FAIL")
        else:
            return _yellow("WARN")


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------

CORE_DEPS = ["numpy", "scipy", "pydantic", "yaml", "matplotlib"]

# Synthetic calibration used by the self-test: gain = 2e-8 * V**7
_SELFTEST_VOLTAGES = (1000.0, 1200.0, 1400.0, 1600.0, 1800.0, 2000.0)
_SELFTEST_AMPLITUDE = 2e-8
_SELFTEST_EXPONENT = 7.0


def check_python_version() -> CheckResult:
    """Check Python >= 3.10."""
    vi = sys.version_info
    ok = vi >= (3, 10)
    return CheckResult(
        name="Python version",
        passed=ok,
        critical=True,
        message=f"{vi.major}.{vi.minor}.{vi.micro}",
        details=[] if ok else ["Requires Python >= 3.10"],
    )


def check_core_deps() -> CheckResult:
    """Check core dependencies are importable."""
    missing = []
    for mod in CORE_DEPS:
        try:
            importlib.import_module(mod)
        except ImportError:
            missing.append(mod)
    ok = len(missing) == 0
    return CheckResult(
        name="Core dependencies",
        passed=ok,
        critical=True,
        message=f"{len(CORE_DEPS) - len(missing)}/{len(CORE_DEPS)} available",
        details=[f"Missing: {', '.join(missing)}"] if missing else [],
    )


def check_config(config_path: Optional[str] = None) -> CheckResult:
    """Check that the configuration validates."""
    from pmt_gain.api.errors import ConfigError
    from pmt_gain.core.config import DEFAULT_CONFIG, load_config

    try:
        cfg = load_config(config_path) if config_path else DEFAULT_CONFIG
    except ConfigError as exc:
        return CheckResult(
            name="Configuration",
            passed=False,
            critical=True,
            message=str(exc),
            details=[str(e.get("msg", e)) for e in exc.details.get("errors", [])][:5],
        )
    return CheckResult(
        name="Configuration",
        passed=True,
        critical=True,
        message=(
            f"{cfg.n_channels} channels, sizes {sorted(cfg.valid_dataset_sizes)}, "
            f"{1 + cfg.refinement_passes} passes"
        ),
    )


def check_fit_selftest() -> CheckResult:
    """Fit a noiseless power law and compare with the truth."""
    from pmt_gain.api.types import ChannelDataset, Measurement
    from pmt_gain.core.fitting import fit_power_law
    from pmt_gain.core.transform import log_transform

    ds = ChannelDataset(channel_id=1)
    for v in _SELFTEST_VOLTAGES:
        g = _SELFTEST_AMPLITUDE * v ** _SELFTEST_EXPONENT
        ds.measurements.append(Measurement(channel_id=1, voltage=v, gain=g, gain_uncertainty=0.01 * g))
    fit = fit_power_law(log_transform(ds))

    exp_err = abs(fit.exponent - _SELFTEST_EXPONENT) / _SELFTEST_EXPONENT
    amp_err = abs(fit.physical_amplitude - _SELFTEST_AMPLITUDE) / _SELFTEST_AMPLITUDE
    ok = exp_err < 1e-3 and amp_err < 1e-2
    return CheckResult(
        name="Fitter self-test",
        passed=ok,
        critical=True,
        message=f"exponent {fit.exponent:.6g}, amplitude {fit.physical_amplitude:.6g}",
        details=[] if ok else [f"relative errors: exponent {exp_err:.2e}, amplitude {amp_err:.2e}"],
    )


def check_disk_write() -> CheckResult:
    """Check that a tmp directory is writable."""
    try:
        with tempfile.NamedTemporaryFile(delete=True, suffix=".pmtgain_doctor") as f:
            f.write(b"pmtgain doctor check")
        return CheckResult(
            name="Disk/write",
            passed=True,
            critical=True,
            message="tmp writable",
        )
    except OSError as exc:
        return CheckResult(
            name="Disk/write",
            passed=False,
            critical=True,
            message=str(exc),
        )


# ---------------------------------------------------------------------------
# Run all checks
# ---------------------------------------------------------------------------

def run_doctor(config_path: Optional[str] = None) -> List[CheckResult]:
    """Run all doctor checks and return results."""
    def check_configuration() -> CheckResult:
        return check_config(config_path)

    checks: List[Callable[[], CheckResult]] = [
        check_python_version,
        check_core_deps,
        check_configuration,
        check_fit_selftest,
        check_disk_write,
    ]
    results = []
    for check_fn in checks:
        try:
            results.append(check_fn())
        except Exception as exc:
            results.append(CheckResult(
                name=check_fn.__name__.replace("check_", "").replace("_", " ").capitalize(),
                passed=False,
                critical=True,
                message=f"Unexpected error: {exc}",
            ))
    return results


def print_report(results: List[CheckResult]) -> int:
    """Print a formatted report and return exit code (0=ok, 1=fail)."""
    print()
    print(_bold("PMT Gain Doctor"))
    print(_bold("=" * 50))
    print()

    any_critical_fail = False
    for r in results:
        tag = r.status_str
        print(f"  [{tag}] {r.name}: {r.message}")
        for d in r.details:
            print(f"         {d}")
        if not r.passed and r.critical:
            any_critical_fail = True

    print()
    if any_critical_fail:
        print(_red("Some critical checks failed. Fix the issues above."))
        return 1
    else:
        print(_green("All critical checks passed. Ready to go!"))
        return 0


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def cmd_doctor(args):
    """Entry point for ``pmtgain doctor``."""
    results = run_doctor(getattr(args, "config", None))
    exit_code = print_report(results)
    raise SystemExit(exit_code)


def add_doctor_subparser(subparsers):
    """Add the doctor subcommand to the CLI parser."""
    p_doc = subparsers.add_parser(
        "doctor",
        help="Check environment, dependencies, and configuration",
    )
    p_doc.add_argument("--config", type=str, default=None, help="YAML config file to validate")
    p_doc.set_defaults(func=cmd_doctor)
    return p_doc
