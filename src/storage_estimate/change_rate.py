"""
Change-rate estimation from a backup chain.

The rate is the mean size of the most recent incrementals relative to the
most recent full, in percent.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List

import numpy as np

from src.common.vbr_models import BackupPoint

logger = logging.getLogger(__name__)

MAX_INCREMENTALS = 5


@dataclass
class ChangeRateSample:
    entity_id: str
    full_size: int = 0
    incremental_sizes: List[int] = field(default_factory=list)
    change_rate_pct: float = 0.0

    @property
    def daily_change_bytes(self) -> int:
        return int(round(self.full_size * self.change_rate_pct / 100))


def estimate_change_rate(entity_id: str, points: Iterable[BackupPoint],
                         is_virtual_appliance: bool = False,
                         max_incrementals: int = MAX_INCREMENTALS) -> ChangeRateSample:
    """
    Args:
        entity_id: backup or workload the points belong to
        points: restore points in any order
        is_virtual_appliance: appliance incrementals are not comparable to one full, rate is 0
        max_incrementals: how many of the newest incrementals to average

    Returns:
        ChangeRateSample, with change_rate_pct 0 when there is no full,
        no incremental, or the full has size 0.
    """
    ordered = sorted(points, key=lambda p: p.creation_time, reverse=True)
    full = next((p for p in ordered if p.is_full), None)
    if full is None:
        logger.debug(f"{entity_id}: no full backup, change rate 0")
        return ChangeRateSample(entity_id=entity_id)

    incrementals = [p.size_bytes for p in ordered if not p.is_full][:max_incrementals]
    sample = ChangeRateSample(entity_id=entity_id, full_size=full.size_bytes, incremental_sizes=incrementals)
    if is_virtual_appliance:
        logger.debug(f"{entity_id}: virtual appliance, change rate 0")
        return sample
    if not incrementals or full.size_bytes == 0:
        return sample

    ratios = np.array(incrementals, dtype=float) / full.size_bytes
    sample.change_rate_pct = round(float(np.mean(ratios)) * 100, 2)
    return sample
