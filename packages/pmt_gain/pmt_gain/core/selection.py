"""pmt_gain.core.selection

Partition the measurement table into per-channel datasets and gate them on
calibration-set size.
"""

from __future__ import annotations

import logging
from typing import Collection, Dict, Iterable, List

from pmt_gain.api.errors import UnsupportedDatasetSize
from pmt_gain.api.types import ChannelDataset, Measurement

logger = logging.getLogger(__name__)


def select_channels(measurements: Iterable[Measurement], channel_ids: Iterable[int]) -> Dict[int, ChannelDataset]:
    """Split ``measurements`` by channel id, keeping input order within a channel.

    Every id in ``channel_ids`` gets an entry, empty if nothing matched.
    Rows for channels outside ``channel_ids`` are ignored.
    """
    datasets: Dict[int, ChannelDataset] = {cid: ChannelDataset(channel_id=cid) for cid in channel_ids}
    ignored: List[int] = []
    for m in measurements:
        ds = datasets.get(m.channel_id)
        if ds is None:
            ignored.append(m.channel_id)
            continue
        ds.measurements.append(m)

    if ignored:
        logger.warning(
            f"Ignored {len(ignored)} measurements for unknown channels {sorted(set(ignored))}"
        )
    return datasets


def check_dataset_size(dataset: ChannelDataset, valid_sizes: Collection[int]) -> ChannelDataset:
    """Validity gate: return ``dataset`` unchanged or raise UnsupportedDatasetSize."""
    if len(dataset) not in valid_sizes:
        raise UnsupportedDatasetSize(dataset.channel_id, len(dataset))
    return dataset


def is_supported(dataset: ChannelDataset, valid_sizes: Collection[int]) -> bool:
    return len(dataset) in valid_sizes
