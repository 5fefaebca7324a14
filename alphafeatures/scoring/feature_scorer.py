"""Isotope-cluster scoring of candidate features.

Given a candidate (anchor m/z and charge), the scorer walks the expected
isotope positions ``mz + i/z``, matches the closest extracted peak at each,
and records the result on the feature:

- ``comprised``: matched peak per isotope position (``None`` where missing)
- ``mz``: intensity-weighted monoisotopic m/z, ``sum((mz_i - i/z) * I_i) / sum(I_i)``
- ``kl``: KL distance of the first six intensities from the Poisson envelope
- ``peaks``: isotopes above 1/50 of the tallest and twice the local median
- ``skipped_peaks``: a strong peak was jumped over between two isotopes

The returned score is a sum of squares over the first six isotopes that
penalises ~1/6 Da m/z error and ~1/4 relative intensity error equally,
weighted by the theoretical envelope. Lower is better.
"""

from __future__ import annotations

import bisect
import math
from typing import List, Optional, Protocol, Sequence

import numpy as np

from ..constants import (
    DEFAULT_MAX_PEAKS_PER_FEATURE,
    DEFAULT_RESAMPLE_FREQUENCY,
    HYDROGEN_ION_MASS,
    isotope_match_tolerance,
)
from ..features.model import Feature, Peak, PeakArena
from .poisson import ENVELOPE_LENGTH, kl_poisson_distance, poisson_envelope


SUMSQUARES_MZ_WEIGHT = 6.0
SUMSQUARES_SCALED_INTENSITY_WEIGHT = 4.0

# Floor for missing isotope intensities in the KL signal
MISSING_PEAK_SIGNAL = 0.1

# A later isotope taller than 1.33 * previous (+ median) ends the cluster
ISOTOPE_RISE_FACTOR = 1.33


class FeatureScorer(Protocol):
    """Scores a candidate feature against mz-sorted peaks (lower is better)."""

    def score_feature(self, feature: Feature, peaks: Sequence[Peak],
                      arena: Optional[PeakArena] = None) -> float:
        ...


def scoring_mass(mz: float, charge: int) -> float:
    """Mass used to select the theoretical envelope.

    Negative charges use ``mz * |z|`` without a hydrogen correction.
    """
    if charge >= 0:
        return (mz - HYDROGEN_ION_MASS) * charge
    return mz * -charge


def find_closest_peak(peak_mz: Sequence[float], x: float, start: int) -> int:
    """Walk forward from ``start`` while the distance to ``x`` does not grow."""
    dist = abs(x - peak_mz[start])
    i = start + 1
    while i < len(peak_mz):
        d = abs(x - peak_mz[i])
        if d > dist:
            break
        dist = d
        i += 1
    return i - 1


class DefaultFeatureScorer:
    """Poisson-envelope isotope scorer.

    Parameters
    ----------
    frequency : int
        Resampling frequency; sets the isotope match tolerance
        ``2.5 / (frequency - 1)``
    max_peaks : int
        Isotope positions walked per feature
    """

    def __init__(self, frequency: int = DEFAULT_RESAMPLE_FREQUENCY,
                 max_peaks: int = DEFAULT_MAX_PEAKS_PER_FEATURE):
        if max_peaks < 1:
            raise ValueError(f"max_peaks must be >= 1, got {max_peaks}")
        self.frequency = frequency
        self.max_peaks = max_peaks
        self.tolerance = isotope_match_tolerance(frequency)

    def score_feature(self, feature: Feature, peaks: Sequence[Peak],
                      arena: Optional[PeakArena] = None) -> float:
        """Match isotopes for ``feature`` and return its sum-squares score.

        Args:
            feature: Candidate with anchor ``mz`` and non-zero ``charge``;
                updated in place
            peaks: Extracted peaks sorted by m/z (non-empty)
            arena: Ownership of ``peaks``; excluded peaks never match

        Returns:
            Sum-squares distance, ``inf`` when the anchor has no match
        """
        abs_charge = abs(feature.charge)
        inv_charge = 1.0 / abs_charge
        mass = scoring_mass(feature.mz, feature.charge)
        peak_mz = [p.mz for p in peaks]

        matched: List[Optional[Peak]] = [None] * self.max_peaks
        p = bisect.bisect_left(peak_mz, feature.mz)
        p = max(0, p - 1)
        p_last_found = p
        mz_p0 = feature.mz
        intensity_last = 0.0
        intensity_highest = 0.0
        skipped = False
        dist_sum = 0.0
        dist_count = 0

        for i in range(self.max_peaks):
            drift = dist_sum / dist_count if dist_count > 0 else 0.0
            expected = mz_p0 + i * inv_charge + drift
            p = find_closest_peak(peak_mz, expected, p)
            candidate = peaks[p]
            dist = abs(candidate.mz - expected)
            excluded = arena is not None and arena.is_excluded(candidate)
            if excluded or dist >= self.tolerance:
                # Two consecutive misses end the cluster
                if i > 0 and matched[i - 1] is None:
                    break
                continue

            intensity_highest = max(candidate.intensity, intensity_highest)
            if (i > 2 and candidate.intensity != intensity_highest
                    and candidate.intensity > intensity_last * ISOTOPE_RISE_FACTOR + feature.median):
                break
            if candidate.intensity > intensity_highest / 2:
                dist_sum += dist
                dist_count += 1
            for s in range(p_last_found + 1, p):
                if peaks[s].intensity > intensity_last / 2 + feature.median:
                    skipped = True
            matched[i] = candidate
            p_last_found = p
            intensity_last = candidate.intensity

        if matched[0] is None:
            feature.comprised = matched
            feature.peaks = 0
            return math.inf

        weighted = 0.0
        weight = 0.0
        for i, peak in enumerate(matched):
            if peak is None:
                continue
            weighted += (peak.mz - i * inv_charge) * peak.intensity
            weight += peak.intensity
        feature.mz = weighted / weight

        signal_length = min(ENVELOPE_LENGTH, self.max_peaks)
        signal = np.full(signal_length, MISSING_PEAK_SIGNAL, dtype=np.float64)
        count_peaks = 0
        for i, peak in enumerate(matched):
            if peak is not None and (peak.intensity > intensity_highest / 50
                                     and peak.intensity > 2 * feature.median):
                count_peaks += 1
            if i < signal_length and peak is not None:
                signal[i] = max(MISSING_PEAK_SIGNAL, peak.intensity)
        signal /= signal.sum()

        feature.kl = float(kl_poisson_distance(mass, signal))
        feature.peaks = count_peaks
        feature.skipped_peaks = skipped
        feature.comprised = matched
        feature.mz_peak0 = matched[0].mz
        return self.sum_squares_distance(feature, signal, matched)

    def sum_squares_distance(self, feature: Feature, signal: np.ndarray,
                             matched: Sequence[Optional[Peak]]) -> float:
        """2D (m/z, scaled intensity) sum-squares distance from the envelope."""
        expected = poisson_envelope(scoring_mass(feature.mz, feature.charge))
        last_peak = 0
        for i in range(min(len(signal), len(matched))):
            if matched[i] is not None:
                last_peak = i
        last_peak = min(last_peak, len(expected) - 1)

        abs_charge = abs(feature.charge)
        half_bin = 1.0 / (2 * self.frequency)
        total = 0.0
        for i in range(last_peak + 1):
            peak = matched[i]
            if peak is None:
                continue
            theoretical_mz = feature.mz + i / abs_charge
            dist_mz = max(0.0, abs(peak.mz - theoretical_mz) - half_bin) * SUMSQUARES_MZ_WEIGHT
            dist_in = abs(signal[i] - expected[i]) * SUMSQUARES_SCALED_INTENSITY_WEIGHT
            total += (dist_mz * dist_mz + dist_in * dist_in) * expected[i]
        return float(total)
