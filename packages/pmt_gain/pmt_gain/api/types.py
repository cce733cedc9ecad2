"""
pmt_gain.api.types

Data model for per-channel gain/voltage calibration.

- Measurement     one (channel, voltage, gain, gain uncertainty) row of the input table
- ChannelDataset  ordered measurements sharing one channel id
- LogSpaceData    log-log coordinates with propagated errors, plus the raw arrays
- FitResult       fitted power law, its errors and goodness-of-fit statistics
- ChannelOutcome  what happened to one channel (fitted, skipped, error)

FitResult is a pydantic model so it can be persisted in the JSON archive;
the array-carrying containers are plain dataclasses.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class Measurement:
    channel_id: int
    voltage: float
    gain: float
    gain_uncertainty: float


@dataclass
class ChannelDataset:
    """Measurements of one channel, in input order."""

    channel_id: int
    measurements: List[Measurement] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.measurements)

    @property
    def voltage(self) -> np.ndarray:
        return np.array([m.voltage for m in self.measurements], dtype=np.float64)

    @property
    def gain(self) -> np.ndarray:
        return np.array([m.gain for m in self.measurements], dtype=np.float64)

    @property
    def gain_uncertainty(self) -> np.ndarray:
        return np.array([m.gain_uncertainty for m in self.measurements], dtype=np.float64)


@dataclass
class LogSpaceData:
    """Log-log fit coordinates alongside the linear-scale display values.

    ``gain``/``gain_error`` are already multiplied by the gain scale, so the
    linear arrays are exactly what the linear view draws.
    """

    channel_id: int
    log_voltage: np.ndarray
    log_gain: np.ndarray
    log_voltage_error: np.ndarray
    log_gain_error: np.ndarray
    voltage: np.ndarray
    voltage_error: np.ndarray
    gain: np.ndarray
    gain_error: np.ndarray
    gain_scale: float

    def __len__(self) -> int:
        return int(self.log_voltage.size)

    def subset(self, mask: np.ndarray) -> "LogSpaceData":
        return LogSpaceData(
            channel_id=self.channel_id,
            log_voltage=self.log_voltage[mask],
            log_gain=self.log_gain[mask],
            log_voltage_error=self.log_voltage_error[mask],
            log_gain_error=self.log_gain_error[mask],
            voltage=self.voltage[mask],
            voltage_error=self.voltage_error[mask],
            gain=self.gain[mask],
            gain_error=self.gain_error[mask],
            gain_scale=self.gain_scale,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "log_voltage": self.log_voltage.tolist(),
            "log_gain": self.log_gain.tolist(),
            "log_voltage_error": self.log_voltage_error.tolist(),
            "log_gain_error": self.log_gain_error.tolist(),
            "voltage": self.voltage.tolist(),
            "voltage_error": self.voltage_error.tolist(),
            "gain": self.gain.tolist(),
            "gain_error": self.gain_error.tolist(),
            "gain_scale": self.gain_scale,
        }


class FitStatus(str, Enum):
    ok = "ok"
    degenerate = "degenerate"   # NaN/Inf in parameters, errors, chi-square or amplitude


class FitResult(BaseModel):
    """Power law ``gain * gain_scale = exp(constant) * voltage ** exponent``."""

    model_config = ConfigDict(ser_json_inf_nan="constants")

    channel_id: int
    constant: float
    constant_stderr: float
    exponent: float
    exponent_stderr: float
    chi_square: float
    ndf: int
    p_value: float
    gain_scale: float = 1e7
    passes_run: int = 1
    status: FitStatus = FitStatus.ok
    fit_domain: Tuple[float, float] = (1000.0, 2000.0)
    message: Optional[str] = Field(default=None, description="Reason for a degenerate status.")

    @property
    def amplitude(self) -> float:
        """Amplitude in scaled-gain units, as drawn on the linear view."""
        if math.isnan(self.constant):
            return float("nan")
        with np.errstate(over="ignore"):
            return float(np.exp(self.constant))

    @property
    def physical_amplitude(self) -> float:
        """Amplitude in the units of the input gain column."""
        return self.amplitude / self.gain_scale

    @property
    def reduced_chi_square(self) -> float:
        if self.ndf <= 0:
            return float("nan")
        return self.chi_square / self.ndf

    @property
    def is_finite(self) -> bool:
        values = (
            self.constant,
            self.constant_stderr,
            self.exponent,
            self.exponent_stderr,
            self.chi_square,
            self.amplitude,
        )
        return all(math.isfinite(v) for v in values)

    def predict(self, voltage: Any) -> np.ndarray:
        """Scaled gain predicted at ``voltage``."""
        v = np.asarray(voltage, dtype=np.float64)
        with np.errstate(over="ignore", invalid="ignore"):
            return self.amplitude * np.power(v, self.exponent)

    def report_values(self) -> Tuple[float, float, float, float, float, int, float]:
        return (
            self.constant,
            self.constant_stderr,
            self.exponent,
            self.exponent_stderr,
            self.chi_square,
            self.ndf,
            self.p_value,
        )


class OutcomeKind(str, Enum):
    fitted = "fitted"
    skipped = "skipped"     # unsupported calibration-set size
    error = "error"         # unexpected failure confined to this channel


@dataclass
class ChannelOutcome:
    channel_id: int
    kind: OutcomeKind
    n_points: int
    fit: Optional[FitResult] = None
    data: Optional[LogSpaceData] = None
    message: str = ""

    @property
    def fitted(self) -> bool:
        return self.kind == OutcomeKind.fitted and self.fit is not None
