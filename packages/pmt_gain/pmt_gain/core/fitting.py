"""pmt_gain.core.fitting

Iterative weighted power-law fitter.

The power law ``G = A * V**b`` is fitted as the straight line

    ln G = c + b ln V,      A = exp(c)

with errors on both axes folded in by the effective-variance method:

    chi2(c, b) = sum_i (y_i - c - b x_i)**2 / (sy_i**2 + b**2 sx_i**2)

Because the weights depend on the slope the problem is non-linear. Each
pass minimises chi2 with ``scipy.optimize.least_squares`` starting from the
previous pass's parameters; the first pass starts from the configured seed.
The number of passes is fixed (1 + ``refinement_passes``) unless
``early_exit`` is set.

Parameter errors come from ``inv(J^T J)`` at the minimum and are not scaled
by chi2/ndf.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np
from scipy import stats
from scipy.optimize import least_squares

from pmt_gain.api.errors import FitError
from pmt_gain.api.types import FitResult, FitStatus, LogSpaceData
from pmt_gain.core.config import DEFAULT_CONFIG, N_PARAMS, GainVoltageConfig
from pmt_gain.core.transform import in_domain

logger = logging.getLogger(__name__)

_TOL = 1e-12


@dataclass
class PassResult:
    params: np.ndarray      # (constant, exponent)
    cov: np.ndarray         # 2x2 covariance
    chi_square: float
    nfev: int
    success: bool


def _sigma(b: float, sx: np.ndarray, sy: np.ndarray) -> np.ndarray:
    return np.sqrt(sy * sy + (b * sx) ** 2)


def effective_sigma(data: LogSpaceData, exponent: float) -> np.ndarray:
    """Combined log-gain error for a line of slope ``exponent``."""
    return _sigma(exponent, data.log_voltage_error, data.log_gain_error)


def _residuals(params: np.ndarray, x: np.ndarray, y: np.ndarray, sx: np.ndarray, sy: np.ndarray) -> np.ndarray:
    c, b = params
    return (y - c - b * x) / _sigma(b, sx, sy)


def chi_square(params: Sequence[float], data: LogSpaceData) -> float:
    """Effective-variance chi-square of the line ``params`` against ``data``."""
    with np.errstate(divide="ignore", invalid="ignore"):
        r = _residuals(
            np.asarray(params, dtype=np.float64),
            data.log_voltage, data.log_gain, data.log_voltage_error, data.log_gain_error,
        )
    return float(np.sum(r * r))


def fit_pass(data: LogSpaceData, seed: Sequence[float]) -> PassResult:
    """One weighted least-squares fit of the log-log line, seeded at ``seed``."""
    x0 = np.asarray(seed, dtype=np.float64)
    args = (data.log_voltage, data.log_gain, data.log_voltage_error, data.log_gain_error)
    try:
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            res = least_squares(_residuals, x0, args=args, ftol=_TOL, xtol=_TOL, gtol=_TOL)
    except ValueError as e:
        # least_squares refuses non-finite residuals, e.g. all-zero uncertainties
        raise FitError(f"minimisation failed: {e}") from e

    jac = np.asarray(res.jac, dtype=np.float64)
    try:
        cov = np.linalg.inv(jac.T @ jac)
    except np.linalg.LinAlgError:
        cov = np.full((N_PARAMS, N_PARAMS), np.nan)

    return PassResult(
        params=np.asarray(res.x, dtype=np.float64),
        cov=cov,
        chi_square=float(2.0 * res.cost),
        nfev=int(res.nfev),
        success=bool(res.success),
    )


def _converged(prev: np.ndarray, cur: np.ndarray, tol: float) -> bool:
    return bool(np.all(np.abs(cur - prev) <= tol * (1.0 + np.abs(prev))))


def _degenerate(channel_id: int, ndf: int, config: GainVoltageConfig, passes: int, message: str) -> FitResult:
    nan = float("nan")
    return FitResult(
        channel_id=channel_id,
        constant=nan,
        constant_stderr=nan,
        exponent=nan,
        exponent_stderr=nan,
        chi_square=nan,
        ndf=ndf,
        p_value=nan,
        gain_scale=config.gain_scale,
        passes_run=passes,
        status=FitStatus.degenerate,
        fit_domain=config.fit_domain,
        message=message,
    )


def fit_power_law(data: LogSpaceData, config: GainVoltageConfig = DEFAULT_CONFIG) -> FitResult:
    """Fit ``data`` and return constant, exponent, their errors, chi2, ndf and p-value."""
    if config.restrict_fit_range:
        data = data.subset(in_domain(data, config.fit_domain))

    n = len(data)
    ndf = n - N_PARAMS
    if ndf <= 0:
        return _degenerate(data.channel_id, ndf, config, 0, f"{n} points leave no degrees of freedom")

    passes = 0
    seed: Tuple[float, float] = config.initial_parameters
    try:
        result = fit_pass(data, seed)
        passes = 1
        for _ in range(config.refinement_passes):
            prev = result.params
            result = fit_pass(data, prev)
            passes += 1
            logger.debug(
                f"PMT {data.channel_id} pass {passes}: c={result.params[0]:.6g} "
                f"b={result.params[1]:.6g} chi2={result.chi_square:.6g}"
            )
            if config.early_exit and _converged(prev, result.params, config.convergence_tol):
                logger.debug(f"PMT {data.channel_id} converged after {passes} passes")
                break
    except FitError as e:
        return _degenerate(data.channel_id, ndf, config, passes, str(e))

    with np.errstate(invalid="ignore"):
        errors = np.sqrt(np.diag(result.cov))
    fit = FitResult(
        channel_id=data.channel_id,
        constant=float(result.params[0]),
        constant_stderr=float(errors[0]),
        exponent=float(result.params[1]),
        exponent_stderr=float(errors[1]),
        chi_square=result.chi_square,
        ndf=ndf,
        p_value=float(stats.chi2.sf(result.chi_square, ndf)),
        gain_scale=config.gain_scale,
        passes_run=passes,
        fit_domain=config.fit_domain,
    )
    if not fit.is_finite:
        fit.status = FitStatus.degenerate
        fit.message = "non-finite parameters, errors, chi-square or amplitude"
    elif not result.success:
        fit.message = "minimiser did not report success"
    return fit
