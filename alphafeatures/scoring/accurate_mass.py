"""Accurate m/z from the raw (unresampled) spectra.

The resampled grid has a resolution of ``1/frequency`` Da, far coarser than
the instrument. After features are built, their m/z is refined from the
raw spectra around the feature's apex scan.

Centroid data
    For the monoisotopic peak and the first isotope, take the tallest raw
    centroid within ``0.66/frequency`` Da of the expected position. The
    intensity-weighted mean of the two (shifted back to the monoisotope) is a
    sanity check only: if it differs from the monoisotopic centroid by more
    than 5 ppm the refinement is abandoned, otherwise the monoisotopic
    centroid is used.
Profile data
    Within ``0.667/frequency`` Da of the feature m/z, compute the
    intensity-weighted centre (CENTER mode) or the m/z of the tallest point
    (MAX mode) in each scan of a small window around the apex, and combine
    the per-scan values. Scans without signal are skipped.

Optionally (profile data) intensities are recalculated from a 3 ppm window
around the refined m/z, and the m/z of the comprised isotope peaks is
refined as well.

Examples
--------
>>> adjuster = AccurateMassAdjuster(AccurateMassParams(scan_window_size=3))
>>> adjuster.adjust_all_masses(run, features)
>>> features[0].accurate_mz
True
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np
from numba import njit

from ..cancellation import CancellationToken, ensure_token
from ..constants import (
    CENTROID_SEARCH_PROPORTION,
    DEFAULT_RESAMPLE_FREQUENCY,
    MIN_RESAMPLE_FREQUENCY,
    ISOTOPE_FACTOR,
    PROFILE_SEARCH_PROPORTION,
)
from ..features.model import Feature, convert_mz_to_mass
from ..run.scans import Run

logger = logging.getLogger(__name__)

# Refinement abandoned if the isotope-averaged m/z disagrees by more than this
MAX_CENTROID_DISAGREEMENT_PPM = 5.0


class ProfileMassMode(Enum):
    """How profile points around a feature are reduced to one m/z."""

    CENTER = "center"  # intensity-weighted mean
    MAX = "max"        # m/z of the tallest point


@dataclass
class AccurateMassParams:
    """Parameters for accurate mass adjustment.

    Attributes:
        scan_window_size: Scans (centred on the apex) used in profile mode;
            0 disables profile refinement
        profile_mass_mode: CENTER or MAX
        resampling_size_proportion: Profile search half-width in bins
        frequency: Resampling frequency the features were found at
        max_used_peaks: Isotopes used for the centroid sanity check
        recalculate_intensities: Profile mode, replace intensities with
            sums over a narrow window around the refined m/z
        intensity_recalc_ppm: Half-width of that window
        adjust_comprised_masses: Profile mode, refine comprised peaks too
    """

    scan_window_size: int = 1
    profile_mass_mode: ProfileMassMode = ProfileMassMode.CENTER
    resampling_size_proportion: float = PROFILE_SEARCH_PROPORTION
    frequency: int = DEFAULT_RESAMPLE_FREQUENCY
    max_used_peaks: int = 2
    recalculate_intensities: bool = False
    intensity_recalc_ppm: float = 3.0
    adjust_comprised_masses: bool = False

    def __post_init__(self):
        if self.scan_window_size < 0:
            raise ValueError(f"scan_window_size must be >= 0, got {self.scan_window_size}")
        if self.frequency < MIN_RESAMPLE_FREQUENCY:
            raise ValueError(
                f"frequency must be >= {MIN_RESAMPLE_FREQUENCY}, got {self.frequency}"
            )


@njit
def tallest_in_window(mz: np.ndarray, intensity: np.ndarray, low: float, high: float):
    """(m/z, intensity) of the tallest point with ``low <= mz <= high``; (0, 0) if none."""
    p = np.searchsorted(mz, low)
    best_mz = 0.0
    best_in = 0.0
    while p < len(mz) and mz[p] <= high:
        if intensity[p] > best_in:
            best_mz = mz[p]
            best_in = intensity[p]
        p += 1
    return best_mz, best_in


@njit
def weighted_center_in_window(mz: np.ndarray, intensity: np.ndarray, low: float, high: float):
    """(intensity-weighted m/z, summed intensity) in ``[low, high]``; m/z is 0 without signal."""
    p = np.searchsorted(mz, low)
    sum_mz = 0.0
    sum_in = 0.0
    while p < len(mz) and mz[p] <= high:
        sum_mz += mz[p] * intensity[p]
        sum_in += intensity[p]
        p += 1
    if sum_in <= 0.0:
        return 0.0, sum_in
    return sum_mz / sum_in, sum_in


@njit
def intensity_in_window(mz: np.ndarray, intensity: np.ndarray, low: float, high: float) -> float:
    p = np.searchsorted(mz, low)
    total = 0.0
    while p < len(mz) and mz[p] <= high:
        total += intensity[p]
        p += 1
    return total


class AccurateMassAdjuster:
    """Refine feature m/z values from the raw spectra of a run.

    Parameters
    ----------
    params : AccurateMassParams, optional
        Adjustment parameters
    """

    def __init__(self, params: Optional[AccurateMassParams] = None):
        self.params = params if params is not None else AccurateMassParams()

    def adjust_all_masses(self, run: Run, features: List[Feature],
                          cancel: Optional[CancellationToken] = None) -> int:
        """Refine ``features`` in place.

        Features are processed (and left) in scan order. A feature whose
        scan is not part of the run, or whose spectrum cannot be read, is
        left unchanged.

        Returns:
            Number of features whose m/z was refined

        Raises:
            ExtractionCancelled: checked after every feature
        """
        cancel = ensure_token(cancel)
        features.sort(key=lambda f: f.scan)
        adjusted = 0
        skipped = 0
        for feature in features:
            index = run.get_index_for_scan_num(feature.scan)
            if index < 0:
                skipped += 1
            else:
                mz = self.calculate_accurate_mz(run, feature, index)
                if mz > 0:
                    feature.mz = mz
                    feature.accurate_mz = True
                    feature.update_mass()
                    adjusted += 1
            cancel.raise_if_cancelled()

        logger.debug(
            f"Accurate mass: {adjusted}/{len(features)} features adjusted "
            f"({'centroid' if run.centroided else 'profile'}), {skipped} without scan"
        )
        return adjusted

    def calculate_accurate_mz(self, run: Run, feature: Feature, index: int) -> float:
        """Refined m/z of ``feature`` (apex at MS1 ``index``), or 0 for no adjustment."""
        if run.centroided:
            return self.calculate_accurate_mz_centroid(run, feature, index)
        return self.calculate_accurate_mz_profile(run, feature, index)

    def calculate_accurate_mz_centroid(self, run: Run, feature: Feature, index: int) -> float:
        mz_array, in_array = run.get_spectrum(index)
        delta = CENTROID_SEARCH_PROPORTION / self.params.frequency
        n_use = min(self.params.max_used_peaks, len(feature.comprised))
        if n_use == 0:
            return 0.0

        mz_p0 = 0.0
        weighted_mz = np.zeros(n_use)
        weights = np.zeros(n_use)
        found_mz = np.zeros(n_use)
        for i in range(n_use):
            known = feature.comprised[i]
            if known is not None:
                expected = known.mz
            else:
                expected = feature.mz + i * ISOTOPE_FACTOR / feature.charge
            mz_biggest, in_biggest = tallest_in_window(
                mz_array, in_array, expected - delta, expected + delta
            )
            if mz_biggest == 0:
                return 0.0
            if feature.charge == 0:
                return float(mz_biggest)
            if i == 0:
                mz_p0 = mz_biggest
            weighted_mz[i] = in_biggest * (mz_biggest - i * ISOTOPE_FACTOR / feature.charge)
            weights[i] = in_biggest
            found_mz[i] = mz_biggest

        avg_mz = weighted_mz.sum() / weights.sum()
        if abs(avg_mz - mz_p0) > mz_p0 * MAX_CENTROID_DISAGREEMENT_PPM / 1e6:
            return 0.0

        for i in range(n_use):
            peak = feature.comprised[i]
            if peak is not None:
                peak.mz = float(found_mz[i])
        return float(mz_p0)

    def scan_window(self, run: Run, index: int) -> Tuple[int, int]:
        """Inclusive scan index range centred on ``index``."""
        w = self.params.scan_window_size
        low = int(max(index - (w - 1) / 2.0 + 0.5, 0))
        high = int(min(index + (w - 1) / 2.0 + 0.5, run.scan_count - 1))
        return low, high

    def calculate_accurate_mz_profile(self, run: Run, feature: Feature, index: int) -> float:
        if self.params.scan_window_size <= 0:
            return 0.0
        low, high = self.scan_window(run, index)
        acc_mz, intensities = self.profile_mz_for_scans(run, feature.mz, feature.charge, low, high)

        if self.params.recalculate_intensities and acc_mz > 0:
            feature.intensity, feature.total_intensity = intensities

        if self.params.adjust_comprised_masses:
            for i, peak in enumerate(feature.comprised):
                if peak is None:
                    continue
                if i == 0:
                    if acc_mz > 0:
                        peak.mz = acc_mz
                    continue
                peak_mz, peak_intensities = self.profile_mz_for_scans(
                    run, peak.mz, feature.charge, low, high
                )
                if peak_mz > 0:
                    peak.mz = peak_mz
                    if self.params.recalculate_intensities:
                        peak.intensity = peak_intensities[0]
        return acc_mz

    def profile_mz_for_scans(self, run: Run, mz: float, charge: int,
                             low: int, high: int) -> Tuple[float, Optional[Tuple[float, float]]]:
        """Combine per-scan profile m/z over scans ``low..high``.

        Returns:
            (m/z or 0, (max scan intensity, time-integrated intensity) or None)
        """
        delta = self.params.resampling_size_proportion / self.params.frequency
        mode = self.params.profile_mass_mode

        mz_values: List[float] = []
        mz_at_max = 0.0
        max_in = 0.0
        for s in range(low, high + 1):
            mz_array, in_array = run.get_spectrum(s)
            if mode is ProfileMassMode.CENTER:
                scan_mz, scan_in = weighted_center_in_window(mz_array, in_array, mz - delta, mz + delta)
            else:
                scan_mz, scan_in = tallest_in_window(mz_array, in_array, mz - delta, mz + delta)
            if scan_mz > 0:
                mz_values.append(scan_mz)
                if scan_in > max_in:
                    max_in = scan_in
                    mz_at_max = scan_mz

        acc_mz = 0.0
        if mz_values:
            acc_mz = float(np.mean(mz_values)) if mode is ProfileMassMode.CENTER else float(mz_at_max)

        if not (self.params.recalculate_intensities and acc_mz > 0):
            return acc_mz, None
        intensities = self.recalculate_intensities(run, mz, acc_mz, charge, low, high)
        if intensities is None:
            return 0.0, None
        return acc_mz, intensities

    def recalculate_intensities(self, run: Run, mz: float, acc_mz: float, charge: int,
                                low: int, high: int) -> Optional[Tuple[float, float]]:
        """(max scan intensity, time-integrated intensity) in a ppm window, None if empty."""
        mass = convert_mz_to_mass(mz, max(abs(charge), 1))
        delta = self.params.intensity_recalc_ppm * mass / 1e6
        n = run.scan_count
        total = 0.0
        max_scan = 0.0
        for i in range(low, high + 1):
            mz_array, in_array = run.get_spectrum(i)
            scan_in = intensity_in_window(mz_array, in_array, acc_mz - delta, acc_mz + delta)
            max_scan = max(max_scan, scan_in)
            if scan_in > 0:
                dt = 1.0
                if i > 0 and i + 1 < n:
                    dt = (run.get_scan(i + 1).retention_time - run.get_scan(i - 1).retention_time) / 2.0
                total += dt * scan_in
        if max_scan == 0:
            return None
        return float(max_scan), float(total)

