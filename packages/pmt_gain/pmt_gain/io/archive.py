"""pmt_gain.io.archive

JSON archive of a calibration run: configuration, and for every channel its
outcome, fit result and both data representations (log-log and linear).

Layout::

    {
      "name": "...",
      "created": "...",
      "config": {...},
      "channels": [
        {"channel_id": 1, "outcome": "fitted", "n_points": 6,
         "fit": {...}, "data": {...}, "message": ""},
        ...
      ]
    }
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Union

from pmt_gain.api.errors import ExportError
from pmt_gain.api.types import ChannelOutcome
from pmt_gain.core.config import GainVoltageConfig

logger = logging.getLogger(__name__)


def outcome_to_dict(outcome: ChannelOutcome) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "channel_id": outcome.channel_id,
        "outcome": outcome.kind.value,
        "n_points": outcome.n_points,
        "message": outcome.message,
    }
    if outcome.fit is not None:
        fit = outcome.fit.model_dump(mode="json")
        fit["amplitude"] = outcome.fit.amplitude
        fit["physical_amplitude"] = outcome.fit.physical_amplitude
        d["fit"] = fit
    if outcome.data is not None:
        d["data"] = outcome.data.to_dict()
    return d


def build_archive(name: str, config: GainVoltageConfig, outcomes: Iterable[ChannelOutcome]) -> Dict[str, Any]:
    return {
        "name": name,
        "created": datetime.now(timezone.utc).isoformat(),
        "config": config.model_dump(mode="json"),
        "channels": [outcome_to_dict(o) for o in outcomes],
    }


def write_archive(path: Union[str, Path], name: str, config: GainVoltageConfig,
                  outcomes: Iterable[ChannelOutcome]) -> str:
    p = Path(path)
    archive = build_archive(name, config, outcomes)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        with open(p, "w", encoding="utf-8") as f:
            json.dump(archive, f, indent=2, default=str)
    except OSError as e:
        raise ExportError(f"Cannot write archive {p}: {e}") from e
    logger.info(f"Wrote fit archive: {p}")
    return str(p)


def read_archive(path: Union[str, Path]) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
