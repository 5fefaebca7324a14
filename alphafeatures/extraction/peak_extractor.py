"""Wavelet ridge peak extraction.

Turns one resampled (scan x m/z) window into single elution peaks, each with
its scan extent, before any charge or isotope assignment.

Pipeline
--------
1. Background and local-median surfaces; the grid is background-subtracted.
2. Level-K Haar MRA detail of every scan (ridge surface). K=3 by default:
   2**3 = 8 bins is close to the isotope spacing ``36 / 6`` at max charge.
3. Level-3 MRA smooth of the ridge surface along time, then 2D maxima.
4. For each maximum (tallest first), walk backward and forward in time at
   fixed m/z while the signal clears an adaptive threshold and the ridge is
   still a local maximum two bins to either side. A rise of more than 10%
   (plus threshold) after a minimum marks a valley and ends the walk there.
5. Peaks shorter than ``min_peak_scans`` are dropped; the rest are
   time-integrated using retention-time deltas.
6. Correlation filter: a peak survives only if a neighbour within +-5 scans
   and +-1.1 m/z overlaps it in time and, together with it, clears a length
   and intensity bar.

Examples
--------
>>> extractor = WaveletPeakExtractor(PeakExtractionParams())
>>> peaks = extractor.extract_peak_features(scan_times, grid, (400.0, 1600.0))
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from numba import njit

from ..cancellation import CancellationToken, ensure_token
from ..constants import (
    DEFAULT_PEAK_LENGTH_REQUIREMENT,
    DEFAULT_RESAMPLE_FREQUENCY,
    MIN_RESAMPLE_FREQUENCY,
    DEFAULT_WAVELET_LEVEL,
    VALLEY_RISE_FACTOR,
    same_peak_distance,
)
from ..features.model import Peak
from ..spectra.background import calculate_median, remove_background
from ..spectra.wavelet import wavelet_detail_rows, wavelet_smooth_columns
from .maxima import extract_maxima_2d
from .spatial_index import SpatialIndex2D

logger = logging.getLogger(__name__)

# Level of the elution smoother applied to the ridge surface
ELUTION_SMOOTH_LEVEL = 3

# Correlation filter neighbourhood
NEIGHBOR_SCAN_RANGE = 5
NEIGHBOR_MZ_RANGE = 1.1

# Constant added to the walk threshold, per ridge surface
THRESHOLD_OFFSET_WAVELET = 1.0
THRESHOLD_OFFSET_SMOOTHED = 0.0


@dataclass
class PeakExtractionParams:
    """Parameters for wavelet peak extraction.

    Attributes:
        wavelet_level: MRA detail level of the ridge surface
        min_peak_scans: Minimum elution length of a peak (scans)
        ridge_walk_smoothed: Walk the time-smoothed surface instead of the
            raw wavelet ridge (threshold offset 0 instead of 1)
        min_ridge_proportion_of_max: Walk threshold floor as a fraction of
            the apex intensity
        frequency: Resampling frequency of the grid (bins per Da)
    """

    wavelet_level: int = DEFAULT_WAVELET_LEVEL
    min_peak_scans: int = DEFAULT_PEAK_LENGTH_REQUIREMENT
    ridge_walk_smoothed: bool = False
    min_ridge_proportion_of_max: float = 0.05
    frequency: int = DEFAULT_RESAMPLE_FREQUENCY

    def __post_init__(self):
        if self.wavelet_level < 1:
            raise ValueError(f"wavelet_level must be >= 1, got {self.wavelet_level}")
        if self.min_peak_scans < 1:
            raise ValueError(f"min_peak_scans must be >= 1, got {self.min_peak_scans}")
        if self.frequency < MIN_RESAMPLE_FREQUENCY:
            raise ValueError(
                f"frequency must be >= {MIN_RESAMPLE_FREQUENCY}, got {self.frequency}"
            )


@njit
def walk_peak_extent(
    signal: np.ndarray,
    ridge: np.ndarray,
    smoothed: np.ndarray,
    scan: int,
    imz: int,
    threshold: float,
    valley_factor: float = VALLEY_RISE_FACTOR,
) -> Tuple[int, int]:
    """Elution extent of the ridge through (``scan``, ``imz``).

    Args:
        signal: Background-subtracted grid
        ridge: Surface whose local maximum along m/z must persist
        smoothed: Time-smoothed surface used for valley detection
        scan: Apex scan index
        imz: Apex bin; must satisfy ``2 <= imz < n_bins - 2``
        threshold: Minimum signal intensity

    Returns:
        (scan_start, scan_end), inclusive. ``scan_end < scan_start`` when the
        apex itself is below threshold.
    """
    n_scans = signal.shape[0]

    start = scan
    min_in = np.inf
    scan_min = scan
    while start > 0:
        v = signal[start, imz]
        r = ridge[start, imz]
        if v < threshold or r < ridge[start, imz - 2] or r < ridge[start, imz + 2]:
            start += 1
            break
        s = smoothed[start, imz]
        if s < min_in:
            min_in = v
            scan_min = start
        elif s > min_in * valley_factor + threshold:
            start = scan_min
            break
        start -= 1

    end = scan
    min_in = np.inf
    scan_min = scan
    while end < n_scans - 1:
        v = signal[end, imz]
        r = ridge[end, imz]
        if v < threshold or r < ridge[end, imz - 2] or r < ridge[end, imz + 2]:
            end -= 1
            break
        s = smoothed[end, imz]
        if s < min_in:
            min_in = v
            scan_min = end
        elif s > min_in * valley_factor + threshold:
            end = scan_min
            break
        end += 1

    return start, end


@njit
def integrate_over_time(signal: np.ndarray, scan_times: np.ndarray,
                        imz: int, start: int, end: int) -> float:
    """Sum of intensity times the local scan spacing over ``[start, end]``.

    The spacing of scan ``s`` is ``(t[s+1] - t[s-1]) / 2``; edge scans use 1.
    """
    n = len(scan_times)
    total = 0.0
    for s in range(start, end + 1):
        dt = 1.0
        if s > 0 and s + 1 < n:
            dt = (scan_times[s + 1] - scan_times[s - 1]) / 2.0
        total += dt * signal[s, imz]
    return total


class WaveletPeakExtractor:
    """Extract single elution peaks from a resampled window.

    Parameters
    ----------
    params : PeakExtractionParams, optional
        Extraction parameters
    """

    def __init__(self, params: Optional[PeakExtractionParams] = None):
        self.params = params if params is not None else PeakExtractionParams()

    def extract_peak_features(
        self,
        scan_times: Sequence[float],
        grid: np.ndarray,
        mz_range: Tuple[float, float],
        cancel: Optional[CancellationToken] = None,
    ) -> List[Peak]:
        """Extract and filter elution peaks.

        Args:
            scan_times: Retention time of every grid row
            grid: Resampled intensities, shape (n_scans, n_bins). Modified in
                place (background is subtracted).
            mz_range: (min, max) m/z of the grid; bin ``i`` is ``min + i/f``
            cancel: Checked after the maxima walk and after filtering

        Returns:
            Surviving peaks, longest first. ``scan``, ``scan_first`` and
            ``scan_last`` are grid row indexes.
        """
        cancel = ensure_token(cancel)
        params = self.params
        frequency = params.frequency
        n_scans, n_bins = grid.shape
        mz_min = float(mz_range[0])
        times = np.asarray(scan_times, dtype=np.float64)
        if len(times) != n_scans:
            raise ValueError(f"Got {len(times)} scan times for {n_scans} grid rows")
        if n_scans == 0:
            return []

        background = remove_background(grid)
        median = calculate_median(grid, frequency)
        wavelets = wavelet_detail_rows(grid, params.wavelet_level)
        smoothed = wavelet_smooth_columns(wavelets, ELUTION_SMOOTH_LEVEL)

        raw_scans, raw_bins, raw_values = extract_maxima_2d(smoothed, 0.0)
        if len(raw_values) == 0:
            return []
        # Tallest first; stable so ties keep scan/m-z order
        order = np.argsort(-raw_values, kind='stable')
        logger.debug(f"Raw peaks: {len(order)}")

        if params.ridge_walk_smoothed:
            ridge, offset = smoothed, THRESHOLD_OFFSET_SMOOTHED
        else:
            ridge, offset = wavelets, THRESHOLD_OFFSET_WAVELET

        peaks: List[Peak] = []
        too_short = 0
        for k in order:
            scan = int(raw_scans[k])
            mz = mz_min + raw_bins[k] / frequency
            imz = int(round((mz - mz_min) * frequency))
            if imz < 2 or imz >= n_bins - 2:
                continue

            peak_in = grid[scan, imz]
            threshold = offset + 0.5 * background[scan, imz] + 2.0 * median[scan, imz]
            threshold = max(peak_in * params.min_ridge_proportion_of_max, threshold)

            start, end = walk_peak_extent(grid, ridge, smoothed, scan, imz, threshold)
            if end - start + 1 < params.min_peak_scans:
                too_short += 1
                continue

            peaks.append(Peak(
                scan=scan,
                mz=mz,
                intensity=float(peak_in),
                scan_first=start,
                scan_last=end,
                total_intensity=integrate_over_time(grid, times, imz, start, end),
                background=float(background[scan, imz]),
                median=float(median[scan, imz]),
            ))

        cancel.raise_if_cancelled()
        peaks.sort(key=lambda p: p.length, reverse=True)

        kept = self.filter_uncorroborated(peaks, params.min_peak_scans + 1)
        logger.debug(
            f"Peaks: {len(peaks)} walked, {too_short} too short, "
            f"{len(peaks) - len(kept)} uncorroborated, {len(kept)} kept"
        )
        cancel.raise_if_cancelled()
        return kept

    def filter_uncorroborated(self, peaks: List[Peak], min_combined_scans: int) -> List[Peak]:
        """Keep peaks that have a time-overlapping neighbour in m/z.

        Every peak starts excluded. A pair un-excludes both of its members if
        the two are distinct in m/z, each apex lies inside the common scan
        range, and, when neither is already kept, their combined length
        reaches ``min_combined_scans`` and one of them clears the intensity
        bar ``1 + 0.5 * background + 3 * max(1, median)``.

        Args:
            peaks: Candidates, longest first (processing order)
            min_combined_scans: Minimum summed length of an unconfirmed pair

        Returns:
            Surviving peaks in input order
        """
        same_peak = same_peak_distance(self.params.frequency)
        index = SpatialIndex2D(peaks)
        kept = [False] * len(peaks)
        position = {id(p): i for i, p in enumerate(peaks)}

        for i, f in enumerate(peaks):
            len_f = f.length
            for neighbor in index.query(f.scan - NEIGHBOR_SCAN_RANGE, f.mz - NEIGHBOR_MZ_RANGE,
                                        f.scan + NEIGHBOR_SCAN_RANGE, f.mz + NEIGHBOR_MZ_RANGE):
                if abs(neighbor.mz - f.mz) < same_peak:
                    continue
                s = max(f.scan_first, neighbor.scan_first)
                e = min(f.scan_last, neighbor.scan_last)
                if f.scan < s or f.scan > e or neighbor.scan < s or neighbor.scan > e:
                    continue
                j = position[id(neighbor)]
                if not kept[i] and not kept[j]:
                    if len_f + neighbor.length < min_combined_scans:
                        continue
                    # The bar uses the background at f for both peaks
                    bar_f = 1 + 0.5 * f.background + 3 * max(1.0, f.median)
                    bar_n = 1 + 0.5 * f.background + 3 * max(1.0, neighbor.median)
                    if f.intensity < bar_f and neighbor.intensity < bar_n:
                        continue
                kept[i] = True
                kept[j] = True

        return [p for p, k in zip(peaks, kept) if k]
