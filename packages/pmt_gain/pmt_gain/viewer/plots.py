"""pmt_gain.viewer.plots

Per-channel gain/voltage figure, two stacked panels:

1. log-log data with error bars and the fitted straight line
2. linear-scale data (gain in scaled units) with the power law
   ``exp(constant) * V**exponent`` drawn over the fit domain
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import numpy as np

from pmt_gain.api.errors import ExportError
from pmt_gain.api.types import FitResult, LogSpaceData

logger = logging.getLogger(__name__)

N_CURVE_POINTS = 200


def _fit_label(fit: FitResult) -> str:
    return (
        f"Constant = {fit.constant:.4g} ± {fit.constant_stderr:.2g}\n"
        f"Exponent = {fit.exponent:.4g} ± {fit.exponent_stderr:.2g}\n"
        f"$\\chi^2$/ndf = {fit.chi_square:.3g} / {fit.ndf}\n"
        f"Prob = {fit.p_value:.3g}"
    )


def render_channel_figure(name: str, data: LogSpaceData, fit: FitResult):
    """Build the two-panel matplotlib figure for one fitted channel."""
    import matplotlib
    matplotlib.use("Agg")  # Non-interactive backend
    import matplotlib.pyplot as plt

    title = f"PMT {name}_{data.channel_id} gain vs voltage"
    fig, (ax_log, ax_lin) = plt.subplots(2, 1, figsize=(6, 7))

    # Log-log view
    ax_log.errorbar(
        data.log_voltage, data.log_gain,
        xerr=data.log_voltage_error, yerr=data.log_gain_error,
        fmt="s", mfc="none", color="black", capsize=2,
    )
    lo, hi = float(np.min(data.log_voltage)), float(np.max(data.log_voltage))
    xs = np.linspace(lo, hi, N_CURVE_POINTS)
    ax_log.plot(xs, fit.constant + fit.exponent * xs, color="red", label=_fit_label(fit))
    ax_log.set_title(f"{title} (log)")
    ax_log.set_xlabel("log(voltage [V])")
    ax_log.set_ylabel("log(gain)")
    ax_log.grid(True)
    ax_log.legend(loc="upper left", fontsize=8)

    # Linear view
    ax_lin.errorbar(
        data.voltage, data.gain,
        xerr=data.voltage_error, yerr=data.gain_error,
        fmt="s", mfc="none", color="black", capsize=2,
    )
    v = np.linspace(fit.fit_domain[0], fit.fit_domain[1], N_CURVE_POINTS)
    ax_lin.plot(v, fit.predict(v), color="red")
    ax_lin.set_title(f"{title} (linear)")
    ax_lin.set_xlabel("voltage [V]")
    ax_lin.set_ylabel("gain")
    ax_lin.grid(True)

    fig.tight_layout()
    return fig


def save_channel_pdf(path: Union[str, Path], name: str, data: LogSpaceData, fit: FitResult) -> str:
    import matplotlib.pyplot as plt

    p = Path(path)
    fig = render_channel_figure(name, data, fit)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(str(p), format="pdf")
    except OSError as e:
        raise ExportError(f"Cannot write figure {p}: {e}") from e
    finally:
        plt.close(fig)
    logger.info(f"Wrote figure: {p}")
    return str(p)
