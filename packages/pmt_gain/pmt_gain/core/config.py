"""pmt_gain.core.config

Run configuration for the gain/voltage calibration.

Defaults reproduce the calibration procedure used for the PMT chimneys:
10 channels, fit domain 1000-2000 V, voltage error 2 V, gains rescaled by
1e7, 9 refinement passes after the first fit, and calibration sets of 3 or
6 points. A YAML file can override any field::

    n_channels: 8
    refinement_passes: 4
    valid_dataset_sizes: [3, 6, 9]
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Set, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pmt_gain.api.errors import ConfigError

logger = logging.getLogger(__name__)

# Number of fitted parameters (constant, exponent).
N_PARAMS = 2


class GainVoltageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    n_channels: int = Field(10, ge=1, description="Channels are numbered 1..n_channels.")
    fit_domain: Tuple[float, float] = Field((1000.0, 2000.0), description="Voltage range of the fit model [V].")
    voltage_uncertainty: float = Field(2.0, ge=0.0, description="Error attached to every voltage [V].")
    gain_scale: float = Field(1e7, gt=0.0, description="Gains are multiplied by this before fitting.")
    refinement_passes: int = Field(9, ge=0, description="Re-seeded fits after the first one.")
    valid_dataset_sizes: Set[int] = Field(default_factory=lambda: {3, 6})
    initial_constant: float = -30.0
    initial_exponent: float = 7.0

    early_exit: bool = Field(False, description="Stop refining once parameters stop moving.")
    convergence_tol: float = Field(1e-10, gt=0.0)
    restrict_fit_range: bool = Field(False, description="Drop points outside fit_domain before fitting.")
    pad_skipped_channels: bool = Field(True, description="Write a third placeholder row for skipped channels.")

    @field_validator("fit_domain")
    @classmethod
    def _check_domain(cls, v: Tuple[float, float]) -> Tuple[float, float]:
        lo, hi = v
        if not (0.0 < lo < hi):
            raise ValueError(f"fit_domain must satisfy 0 < low < high, got {v}")
        return (float(lo), float(hi))

    @field_validator("valid_dataset_sizes")
    @classmethod
    def _check_sizes(cls, v: Set[int]) -> Set[int]:
        if not v:
            raise ValueError("valid_dataset_sizes must not be empty")
        too_small = sorted(s for s in v if s <= N_PARAMS)
        if too_small:
            raise ValueError(f"dataset sizes {too_small} leave no degrees of freedom")
        return set(v)

    @property
    def channel_ids(self) -> range:
        return range(1, self.n_channels + 1)

    @property
    def initial_parameters(self) -> Tuple[float, float]:
        return (self.initial_constant, self.initial_exponent)


DEFAULT_CONFIG = GainVoltageConfig()


def make_config(overrides: Optional[Dict[str, Any]] = None, base: Optional[GainVoltageConfig] = None) -> GainVoltageConfig:
    """Return ``base`` (or the defaults) with ``overrides`` applied and validated."""
    data = (base or DEFAULT_CONFIG).model_dump()
    data.update({k: v for k, v in (overrides or {}).items() if v is not None})
    try:
        return GainVoltageConfig(**data)
    except ValidationError as e:
        raise ConfigError("Invalid configuration", details={"errors": e.errors()}) from e


def load_config(path: Union[str, Path]) -> GainVoltageConfig:
    """Load a GainVoltageConfig from a YAML mapping."""
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")
    with open(p, "r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse config file {p}: {e}") from e
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {p} must contain a mapping, got {type(raw).__name__}")
    logger.info(f"Loaded config: {p}")
    return make_config(raw)
