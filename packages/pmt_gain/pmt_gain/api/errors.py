"""
pmt_gain.api.errors

Typed exceptions for the gain/voltage calibration pipeline.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PMTGainError(Exception):
    """Base pmt_gain error."""


class InputTableError(PMTGainError):
    """The measurement table is missing or cannot be parsed. Fatal to a run."""

    def __init__(self, message: str, path: Optional[str] = None, line: Optional[int] = None):
        where = ""
        if path is not None:
            where = f"{path}:{line}: " if line is not None else f"{path}: "
        super().__init__(where + message)
        self.path = path
        self.line = line


class ConfigError(PMTGainError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class UnsupportedDatasetSize(PMTGainError):
    """A channel's point count is not one of the supported calibration-set sizes."""

    def __init__(self, channel_id: int, n_points: int):
        super().__init__(f"PMT {channel_id} has {n_points} data points")
        self.channel_id = channel_id
        self.n_points = n_points


class FitError(PMTGainError):
    pass


class ExportError(PMTGainError):
    pass
