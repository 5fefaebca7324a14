"""Shared pieces of the peak combiners.

Both combiners share the same outer loop: seeds in descending intensity,
a scan/m-z neighbourhood of still-available peaks around each seed, a set of
charge hypotheses scored into candidates, one winning feature per seed, and
exclusion of the winner's peaks in the arena.
"""

from __future__ import annotations

import math
from typing import List, Optional, Protocol, Sequence

from ..cancellation import CancellationToken
from ..extraction.spatial_index import SpatialIndex2D
from ..features.model import Feature, Peak, PeakArena
from ..run.scans import Run


class PeakCombiner(Protocol):
    """Turns single elution peaks into charge-resolved isotope features.

    Peaks without a retention time (``time == 0``) are timed through
    ``run``, so their ``scan`` must be a scan number of ``run``. The windowed
    finder sets every peak's time from its window before combining.
    """

    def create_features_from_peaks(
        self,
        run: Run,
        peaks: Sequence[Peak],
        arena: Optional[PeakArena] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> List[Feature]:
        ...


def distance_nearest_fraction(x: float, denom: float) -> float:
    """Distance of ``x * denom`` from the nearest integer, divided by ``denom``.

    Examples:
        >>> distance_nearest_fraction(0.5, 2)
        0.0
        >>> round(distance_nearest_fraction(0.4, 2), 3)
        0.1
    """
    t = x * denom
    return abs(t - math.floor(t + 0.5)) / denom


def gather_neighborhood(
    index: SpatialIndex2D,
    arena: PeakArena,
    seed: Peak,
    scan_lo: float,
    mz_lo: float,
    scan_hi: float,
    mz_hi: float,
) -> List[Peak]:
    """Available peaks around ``seed``, sorted by m/z, one per distinct m/z.

    Among peaks sharing an m/z the one closest in scan to the seed is kept;
    on ties the more intense one wins.
    """
    near = [p for p in index.query(scan_lo, mz_lo, scan_hi, mz_hi) if not arena.is_excluded(p)]
    near.sort(key=lambda p: p.intensity, reverse=True)
    near.sort(key=lambda p: p.mz)

    unique: List[Peak] = []
    for p in near:
        if unique and unique[-1].mz == p.mz:
            if abs(p.scan - seed.scan) < abs(unique[-1].scan - seed.scan):
                unique[-1] = p
        else:
            unique.append(p)
    return unique


def assign_time(feature: Feature, seed: Peak, run: Run) -> None:
    """Retention time of the seed, or of the run scan nearest to ``seed.scan``.

    ``seed.scan`` is a scan number of ``run``, not a scan index.
    """
    if seed.time != 0:
        feature.time = seed.time
        return
    index = run.get_index_for_scan_num(seed.scan, nearest=True)
    if index >= 0:
        feature.time = run.get_scan(index).retention_time


def by_intensity_desc(peaks: Sequence[Peak]) -> List[Peak]:
    """Seed processing order (stable)."""
    return sorted(peaks, key=lambda p: p.intensity, reverse=True)
