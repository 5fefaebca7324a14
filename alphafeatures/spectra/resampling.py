"""Resampling of irregular spectra onto a uniform m/z grid.

Each raw (m/z, intensity) point is split between the two grid bins that
bracket it, in proportion to its distance from each; every bin is then
divided by its accumulated weight (when that exceeds 1), so dense profile
data is averaged while sparse centroid data keeps its height. A light 1-2-1
smoothing is applied along m/z per scan, then along the elution axis for
every m/z bin (optionally preceded by a 3-point median to suppress periodic
lock-spray scans).

Grid convention: ``grid[scan_index, bin]`` is the intensity at
``mz_min + bin / frequency``. Grid length is
``frequency * (int(mz_max) - int(mz_min)) + 1``.

Examples
--------
>>> resampler = SpectrumResampler((400.0, 1600.0), ResamplingParams(frequency=36))
>>> grid = resampler.resample_spectra([run.get_spectrum(i) for i in range(20)])
>>> grid.shape
(20, 43201)
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from numba import njit

from ..cancellation import CancellationToken, ensure_token
from ..constants import DEFAULT_RESAMPLE_FREQUENCY, MIN_RESAMPLE_FREQUENCY
from .smoothing import median_smooth_columns, smooth_a_little, smooth_columns_a_little

logger = logging.getLogger(__name__)


@dataclass
class ResamplingParams:
    """Parameters for spectrum resampling.

    frequency is load-bearing: isotope tolerances and the wavelet level are
    derived from it (see ``alphafeatures.constants``).
    """

    frequency: int = DEFAULT_RESAMPLE_FREQUENCY  # bins per Da
    use_median_smooth: bool = False  # suppress lock-spray scans

    def __post_init__(self):
        if self.frequency < MIN_RESAMPLE_FREQUENCY:
            raise ValueError(
                f"Resampling frequency must be >= {MIN_RESAMPLE_FREQUENCY}, got {self.frequency}"
            )


def grid_length(mz_min: float, mz_max: float, frequency: int) -> int:
    """Number of bins of the resampled grid for an m/z range."""
    return frequency * (int(mz_max) - int(mz_min)) + 1


@njit
def resample_spectrum(
    mz: np.ndarray,
    intensity: np.ndarray,
    mz_min: float,
    mz_max: float,
    frequency: int,
    n_bins: int,
) -> np.ndarray:
    """Redistribute one spectrum onto the uniform grid (numba-optimized).

    Args:
        mz: m/z values, ascending
        intensity: Intensities, same length as ``mz``
        mz_min, mz_max: Grid range
        frequency: Bins per Da
        n_bins: Grid length (``grid_length(mz_min, mz_max, frequency)``)

    Returns:
        Resampled, lightly smoothed intensity row of length ``n_bins``
    """
    out = np.zeros(n_bins, dtype=np.float64)
    weights = np.zeros(n_bins, dtype=np.float64)

    start = np.searchsorted(mz, mz_min - 1.0 / frequency)
    end = np.searchsorted(mz, mz_max + 1.0 / frequency)

    for i in range(start, end):
        bucket = (mz[i] - mz_min) * frequency
        index = int(np.floor(bucket))
        frac = bucket - index
        x = intensity[i]
        if index >= 0 and index < n_bins:
            out[index] += x * (1.0 - frac)
            weights[index] += 1.0 - frac
        if index + 1 >= 0 and index + 1 < n_bins:
            out[index + 1] += x * frac
            weights[index + 1] += frac

    for i in range(n_bins):
        out[i] /= max(1.0, weights[i])

    return smooth_a_little(out)


class SpectrumResampler:
    """Resample a window of scans into a 2D (scan x m/z) grid.

    Parameters
    ----------
    mz_range : tuple of float
        (min, max) m/z of the grid
    params : ResamplingParams, optional
        Frequency and smoothing mode
    """

    def __init__(self, mz_range: Tuple[float, float], params: Optional[ResamplingParams] = None):
        self.mz_min, self.mz_max = float(mz_range[0]), float(mz_range[1])
        if not self.mz_min < self.mz_max:
            raise ValueError(f"Empty m/z range: {mz_range}")
        self.params = params if params is not None else ResamplingParams()
        self.n_bins = grid_length(self.mz_min, self.mz_max, self.params.frequency)

    @property
    def frequency(self) -> int:
        return self.params.frequency

    @property
    def interval(self) -> float:
        return 1.0 / self.params.frequency

    def bin_mz(self, index: int) -> float:
        return self.mz_min + index * self.interval

    def resample_spectra(
        self,
        spectra: Sequence[Tuple[np.ndarray, np.ndarray]],
        cancel: Optional[CancellationToken] = None,
    ) -> np.ndarray:
        """Resample and smooth a sequence of (m/z, intensity) spectra.

        Args:
            spectra: One (m/z, intensity) pair per scan, in scan order
            cancel: Checked before each scan

        Returns:
            Grid of shape ``(len(spectra), n_bins)``

        Raises:
            ExtractionCancelled: if ``cancel`` is triggered
        """
        cancel = ensure_token(cancel)
        grid = np.zeros((len(spectra), self.n_bins), dtype=np.float64)
        for i, (mz, intensity) in enumerate(spectra):
            cancel.raise_if_cancelled()
            grid[i] = resample_spectrum(
                np.asarray(mz, dtype=np.float64),
                np.asarray(intensity, dtype=np.float64),
                self.mz_min, self.mz_max, self.params.frequency, self.n_bins,
            )

        if len(spectra) == 0:
            return grid
        if self.params.use_median_smooth:
            grid = median_smooth_columns(grid)
        else:
            grid = smooth_columns_a_little(grid)

        logger.debug(
            f"Resampled {len(spectra)} scans onto {self.n_bins} bins "
            f"({self.mz_min:.2f}-{self.mz_max:.2f} m/z, f={self.params.frequency})"
        )
        return grid
