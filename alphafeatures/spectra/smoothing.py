"""Short smoothing kernels for resampled spectra and elution profiles.

High-performance implementations of:
- 1-2-1 moving average ("smooth a little"), edge values replicated
- 3-point running median (removes single-scan lock-spray spikes)
- Column-wise (elution axis) variants for 2D scan x m/z grids

All kernels are numba-compiled and return new arrays; inputs are not modified.
"""

import numpy as np
from numba import njit


@njit
def smooth_a_little(x: np.ndarray) -> np.ndarray:
    """Apply the 1-2-1 kernel ``(prev + 2*cur + next) / 4``.

    The first and last values are treated as their own outside neighbour.

    Args:
        x: 1D signal

    Returns:
        Smoothed signal (same length as input)

    Examples:
        >>> smooth_a_little(np.array([0.0, 4.0, 0.0]))
        array([1., 2., 1.])
    """
    n = len(x)
    out = np.empty(n, dtype=np.float64)
    if n == 0:
        return out
    last = x[0]
    cur = x[0]
    for i in range(n - 1):
        nxt = x[i + 1]
        out[i] = (last + cur + cur + nxt) / 4.0
        last = cur
        cur = nxt
    out[n - 1] = (last + cur + cur + x[n - 1]) / 4.0
    return out


@njit
def _median3(a: float, b: float, c: float) -> float:
    if a < b:
        if c < a:
            return a
        return b if b < c else c
    if a < c:
        return a
    return b if c < b else c


@njit
def median_smooth(x: np.ndarray) -> np.ndarray:
    """3-point running median; endpoints copy their inner neighbour.

    Signals shorter than 3 samples are returned unchanged (as a copy).
    """
    n = len(x)
    out = np.empty(n, dtype=np.float64)
    if n < 3:
        for i in range(n):
            out[i] = x[i]
        return out
    for i in range(1, n - 1):
        out[i] = _median3(x[i - 1], x[i], x[i + 1])
    out[0] = out[1]
    out[n - 1] = out[n - 2]
    return out


@njit
def smooth_columns_a_little(grid: np.ndarray) -> np.ndarray:
    """Apply ``smooth_a_little`` along axis 0 (scans) for every m/z column."""
    n_scans, n_bins = grid.shape
    out = np.empty((n_scans, n_bins), dtype=np.float64)
    column = np.empty(n_scans, dtype=np.float64)
    for j in range(n_bins):
        for s in range(n_scans):
            column[s] = grid[s, j]
        smoothed = smooth_a_little(column)
        for s in range(n_scans):
            out[s, j] = smoothed[s]
    return out


@njit
def median_smooth_columns(grid: np.ndarray) -> np.ndarray:
    """3-point median then 1-2-1 smoothing along axis 0 for every m/z column."""
    n_scans, n_bins = grid.shape
    out = np.empty((n_scans, n_bins), dtype=np.float64)
    column = np.empty(n_scans, dtype=np.float64)
    for j in range(n_bins):
        for s in range(n_scans):
            column[s] = grid[s, j]
        smoothed = smooth_a_little(median_smooth(column))
        for s in range(n_scans):
            out[s, j] = smoothed[s]
    return out
