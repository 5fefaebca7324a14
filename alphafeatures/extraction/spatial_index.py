"""Static 2D (scan, m/z) index for rectangular neighbourhood queries.

Items are sorted by m/z once; a query binary-searches the m/z bounds and
filters the slice on scan. Bounds are inclusive on both axes. Peak densities
in one window are far below the point where a tree pays off.

Examples
--------
>>> index = SpatialIndex2D(peaks)
>>> index.query(scan - 5, mz - 1.1, scan + 5, mz + 1.1)
[Peak(...), ...]
"""

from typing import Generic, List, Sequence, TypeVar

import numpy as np
from numba import njit

T = TypeVar('T')


@njit
def window_indexes(
    mz_sorted: np.ndarray,
    scans: np.ndarray,
    scan_lo: float,
    mz_lo: float,
    scan_hi: float,
    mz_hi: float,
) -> np.ndarray:
    """Positions (into the m/z-sorted arrays) inside an inclusive rectangle."""
    start = np.searchsorted(mz_sorted, mz_lo, side='left')
    end = np.searchsorted(mz_sorted, mz_hi, side='right')
    out = np.empty(max(0, end - start), dtype=np.int64)
    count = 0
    for i in range(start, end):
        if scans[i] >= scan_lo and scans[i] <= scan_hi:
            out[count] = i
            count += 1
    return out[:count]


class SpatialIndex2D(Generic[T]):
    """Index of items exposing ``scan`` and ``mz`` attributes.

    Parameters
    ----------
    items : sequence
        Items to index; the index keeps its own m/z-sorted copy of the list
    """

    def __init__(self, items: Sequence[T]):
        order = sorted(range(len(items)), key=lambda i: items[i].mz)
        self.items: List[T] = [items[i] for i in order]
        self._mz = np.array([it.mz for it in self.items], dtype=np.float64)
        self._scan = np.array([it.scan for it in self.items], dtype=np.float64)

    def __len__(self) -> int:
        return len(self.items)

    def query(self, scan_lo: float, mz_lo: float, scan_hi: float, mz_hi: float) -> List[T]:
        """Items with ``scan_lo <= scan <= scan_hi`` and ``mz_lo <= mz <= mz_hi``, by m/z."""
        if not self.items:
            return []
        idx = window_indexes(self._mz, self._scan, float(scan_lo), float(mz_lo),
                             float(scan_hi), float(mz_hi))
        return [self.items[i] for i in idx]
