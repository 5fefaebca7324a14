"""Local background and median surfaces of the resampled grid.

Chemical background varies across both retention time and m/z, so the peak
extractor uses two adaptive surfaces instead of a single noise floor:

background
    Long-window minima: per scan along m/z (72 bins), then per m/z bin along
    time (15 scans). The signal grid is background-subtracted in place.
median
    Windowed medians of the background-subtracted grid: per scan along m/z
    (``2 * frequency`` bins) and per m/z bin along time (``frequency`` scans),
    combined with a pointwise maximum.

Both window statistics share the same post-processing: each bucket is
lowered to the minimum of itself and its neighbours, smoothed 1-2-1 and then
linearly interpolated back to full length.
"""

import logging

import numpy as np
from numba import njit

from ..constants import (
    BACKGROUND_MZ_WINDOW,
    BACKGROUND_SCAN_WINDOW,
    DEFAULT_RESAMPLE_FREQUENCY,
    MIN_RESAMPLE_FREQUENCY,
)
from .smoothing import smooth_a_little

logger = logging.getLogger(__name__)


@njit
def interpolate_windows(buckets: np.ndarray, n: int, window_size: int) -> np.ndarray:
    """Expand per-window values to a length-``n`` signal.

    The first and last window are flat; in between, values are interpolated
    linearly from one bucket to the next, offset by half a window.
    """
    out = np.zeros(n, dtype=np.float64)
    window_size = min(n, window_size)
    n_buckets = len(buckets)

    for i in range(window_size):
        out[i] = buckets[0]
    for i in range(n - window_size, n):
        out[i] = buckets[n_buckets - 1]

    for w in range(n_buckets - 1):
        start = (n * w) // n_buckets + window_size // 2
        end = (n * (w + 1)) // n_buckets + window_size // 2
        length = end - start
        if length <= 0:
            continue
        v = buckets[w]
        d = (buckets[w + 1] - buckets[w]) / length
        for i in range(length):
            if start + i < n:
                out[start + i] = v + d * i
    return out


@njit
def _spread_minimum(buckets: np.ndarray) -> np.ndarray:
    nb = len(buckets)
    for b in range(nb - 1):
        buckets[b] = min(buckets[b], buckets[b + 1])
    for b in range(nb - 1, 0, -1):
        buckets[b] = min(buckets[b - 1], buckets[b])
    return smooth_a_little(buckets)


@njit
def minima_window(x: np.ndarray, window_size: int) -> np.ndarray:
    """Smooth lower envelope from per-window minima.

    Args:
        x: 1D signal
        window_size: Samples per window

    Returns:
        Envelope with the same length as ``x``
    """
    n = len(x)
    n_buckets = (n - 1) // window_size + 1
    buckets = np.empty(n_buckets, dtype=np.float64)
    for b in range(n_buckets):
        start = b * window_size
        end = min(n, (b + 1) * window_size)
        m = np.inf
        for i in range(start, end):
            if x[i] < m:
                m = x[i]
            if m <= 0.0:
                break
        buckets[b] = m
    return interpolate_windows(_spread_minimum(buckets), n, window_size)


@njit
def median_window(x: np.ndarray, window_size: int) -> np.ndarray:
    """Smooth envelope from per-window medians (upper median, ``sorted[len // 2]``)."""
    n = len(x)
    n_buckets = (n - 1) // window_size + 1
    buckets = np.empty(n_buckets, dtype=np.float64)
    for b in range(n_buckets):
        start = b * window_size
        end = min(n, (b + 1) * window_size)
        window = np.sort(x[start:end])
        buckets[b] = window[(end - start) // 2]
    return interpolate_windows(_spread_minimum(buckets), n, window_size)


@njit
def remove_background(
    grid: np.ndarray,
    mz_window: int = BACKGROUND_MZ_WINDOW,
    scan_window: int = BACKGROUND_SCAN_WINDOW,
) -> np.ndarray:
    """Estimate and subtract the background of a (scan x m/z) grid.

    ``grid`` is modified in place and holds the (non-negative) signal
    afterwards.

    Args:
        grid: Resampled intensities, shape (n_scans, n_bins)
        mz_window: Window (bins) of the per-scan pass
        scan_window: Window (scans) of the per-bin pass

    Returns:
        Background surface, same shape as ``grid``
    """
    n_scans, n_bins = grid.shape
    background = np.zeros((n_scans, n_bins), dtype=np.float64)

    for s in range(n_scans):
        bg = minima_window(grid[s], mz_window)
        for i in range(n_bins):
            background[s, i] = bg[i]
            grid[s, i] = max(0.0, grid[s, i] - bg[i])

    if n_scans == 1:
        return background

    column = np.empty(n_scans, dtype=np.float64)
    for i in range(n_bins):
        for s in range(n_scans):
            column[s] = grid[s, i]
        bg = minima_window(column, scan_window)
        for s in range(n_scans):
            background[s, i] += bg[s]
            grid[s, i] = max(0.0, grid[s, i] - bg[s])

    return background


@njit
def calculate_median(grid: np.ndarray, frequency: int = DEFAULT_RESAMPLE_FREQUENCY) -> np.ndarray:
    """Local median surface of a (scan x m/z) grid.

    Pointwise maximum of the per-scan median envelope (window ``2*frequency``
    bins) and the per-bin median envelope along time (window ``frequency``
    scans).
    """
    n_scans, n_bins = grid.shape
    median = np.zeros((n_scans, n_bins), dtype=np.float64)

    for s in range(n_scans):
        m = median_window(grid[s], 2 * frequency)
        for i in range(n_bins):
            median[s, i] = m[i]

    column = np.empty(n_scans, dtype=np.float64)
    for i in range(n_bins):
        for s in range(n_scans):
            column[s] = grid[s, i]
        m = median_window(column, frequency)
        for s in range(n_scans):
            median[s, i] = max(median[s, i], m[s])

    return median


class BackgroundRemover:
    """Background/median estimation for one resampled window.

    Parameters
    ----------
    frequency : int
        Resampling frequency; sets the median window sizes
    """

    def __init__(self, frequency: int = DEFAULT_RESAMPLE_FREQUENCY,
                 mz_window: int = BACKGROUND_MZ_WINDOW,
                 scan_window: int = BACKGROUND_SCAN_WINDOW):
        if frequency < MIN_RESAMPLE_FREQUENCY:
            raise ValueError(
                f"frequency must be >= {MIN_RESAMPLE_FREQUENCY}, got {frequency}"
            )
        if mz_window < 1 or scan_window < 1:
            raise ValueError("window sizes must be >= 1")
        self.frequency = frequency
        self.mz_window = mz_window
        self.scan_window = scan_window

    def remove_background(self, grid: np.ndarray) -> np.ndarray:
        """Subtract background from ``grid`` in place; return the background."""
        background = remove_background(grid, self.mz_window, self.scan_window)
        logger.debug(f"Background removed from {grid.shape[0]} x {grid.shape[1]} grid")
        return background

    def calculate_median(self, grid: np.ndarray) -> np.ndarray:
        return calculate_median(grid, self.frequency)
