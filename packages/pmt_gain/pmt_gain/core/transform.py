"""pmt_gain.core.transform

Error-propagating log transform.

For each measurement (V, G, sG) with fixed voltage error sV and gain scale k:

    x  = ln V             sx = sV / V
    y  = ln(k G)          sy = k sG / (k G)

The relative errors are first-order propagated uncertainties of the logs.
The scaled linear values (V, sV, kG, k sG) are kept for the linear view.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from pmt_gain.api.types import ChannelDataset, LogSpaceData
from pmt_gain.core.config import DEFAULT_CONFIG, GainVoltageConfig


def log_transform(dataset: ChannelDataset, config: GainVoltageConfig = DEFAULT_CONFIG) -> LogSpaceData:
    voltage = dataset.voltage
    gain = dataset.gain * config.gain_scale
    gain_error = dataset.gain_uncertainty * config.gain_scale
    voltage_error = np.full_like(voltage, config.voltage_uncertainty)

    return LogSpaceData(
        channel_id=dataset.channel_id,
        log_voltage=np.log(voltage),
        log_gain=np.log(gain),
        log_voltage_error=voltage_error / voltage,
        log_gain_error=gain_error / gain,
        voltage=voltage,
        voltage_error=voltage_error,
        gain=gain,
        gain_error=gain_error,
        gain_scale=float(config.gain_scale),
    )


def inverse_transform(log_voltage: np.ndarray, log_gain: np.ndarray, gain_scale: float) -> Tuple[np.ndarray, np.ndarray]:
    """Map log-space coordinates back to (voltage, unscaled gain)."""
    return np.exp(log_voltage), np.exp(log_gain) / gain_scale


def in_domain(data: LogSpaceData, domain: Tuple[float, float]) -> np.ndarray:
    lo, hi = domain
    return (data.voltage >= lo) & (data.voltage <= hi)
