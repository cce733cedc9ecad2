"""pmt_gain -- per-channel PMT gain vs voltage power-law calibration.

Pipeline: read table -> select channel -> validity gate -> log transform
-> iterative both-axis weighted fit -> ordered CSV report.
"""

from pmt_gain.api.types import ChannelDataset, ChannelOutcome, FitResult, FitStatus, LogSpaceData, Measurement
from pmt_gain.core.config import DEFAULT_CONFIG, GainVoltageConfig, load_config
from pmt_gain.core.fitting import fit_power_law
from pmt_gain.core.pipeline import analyze_measurements, run_calibration

__version__ = "0.1.0"

__all__ = [
    "ChannelDataset",
    "ChannelOutcome",
    "DEFAULT_CONFIG",
    "FitResult",
    "FitStatus",
    "GainVoltageConfig",
    "LogSpaceData",
    "Measurement",
    "analyze_measurements",
    "fit_power_law",
    "load_config",
    "run_calibration",
]
