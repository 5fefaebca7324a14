"""2D local maxima of a (scan x m/z) surface.

Local maxima are picked per scan with run-length peak picking (walk up a
rising run, record its top, walk down the falling run), then kept only if
they are at least as high as the three neighbouring bins of the previous
and the next scan. The first and last scan are never reported.
"""

import numpy as np
from numba import njit

# Negative float32 closest to zero; a leading zero still counts as a rise
_START_LEVEL = -1.401298464324817e-45


@njit
def pick_peak_indexes(signal: np.ndarray, min_filter: float = 0.0) -> np.ndarray:
    """Indexes of the tops of rising runs whose height exceeds ``min_filter``.

    Plateaus are walked over; the last index of a plateau is reported.

    Examples:
        >>> pick_peak_indexes(np.array([0.0, 1.0, 3.0, 2.0, 0.0, 4.0, 0.0]))
        array([2, 5])
    """
    n = len(signal)
    out = np.empty(n, dtype=np.int64)
    count = 0
    prev = _START_LEVEL
    i = 0
    while i < n:
        while i < n and prev <= signal[i]:
            prev = signal[i]
            i += 1
        if prev > min_filter:
            out[count] = i - 1
            count += 1
        while i < n and prev >= signal[i]:
            prev = signal[i]
            i += 1
    return out[:count]


@njit
def extract_maxima_2d(grid: np.ndarray, min_filter: float = 0.0):
    """Find 2D local maxima.

    Args:
        grid: Surface of shape (n_scans, n_bins)
        min_filter: Minimum height of a per-scan peak

    Returns:
        (scan_indexes, bin_indexes, intensities) as parallel arrays, in scan
        order then m/z order
    """
    n_scans, n_bins = grid.shape
    capacity = 16
    scans = np.empty(capacity, dtype=np.int64)
    bins = np.empty(capacity, dtype=np.int64)
    values = np.empty(capacity, dtype=np.float64)
    count = 0

    for s in range(1, n_scans - 1):
        row = grid[s]
        prev_row = grid[s - 1]
        next_row = grid[s + 1]
        for imz in pick_peak_indexes(row, min_filter):
            if imz < 1 or imz >= n_bins - 1:
                continue
            v = row[imz]
            if (v < prev_row[imz - 1] or v < prev_row[imz] or v < prev_row[imz + 1]
                    or v < next_row[imz - 1] or v < next_row[imz] or v < next_row[imz + 1]):
                continue
            if count == capacity:
                capacity *= 2
                scans_new = np.empty(capacity, dtype=np.int64)
                bins_new = np.empty(capacity, dtype=np.int64)
                values_new = np.empty(capacity, dtype=np.float64)
                scans_new[:count] = scans[:count]
                bins_new[:count] = bins[:count]
                values_new[:count] = values[:count]
                scans, bins, values = scans_new, bins_new, values_new
            scans[count] = s
            bins[count] = imz
            values[count] = v
            count += 1

    return scans[:count], bins[:count], values[:count]
