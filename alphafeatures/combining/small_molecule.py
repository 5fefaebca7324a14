"""Small-molecule isotope-cluster assembly.

Variant of the peptide combiner for metabolites: charges 1..2, at most four
isotope peaks, and a different quality model.

- The seed is taken as the monoisotopic peak; isotopes are walked upward.
- Isotopes must be contiguous, stay within one scan of the seed's elution
  extent, and must not drift further and further from the seed apex.
- The fit score ``kl`` compares ``log(I0/I1)`` with the log ratio expected at
  the mass (quartic fit), in units of its standard deviation.
- Any isotope above half the monoisotope disqualifies a hypothesis; a third
  peak taller than 1.2x the second flags a likely chlorine ("1Cl").
"""

from __future__ import annotations

import bisect
import logging
import math
from typing import List, Optional, Sequence

import numpy as np

from ..cancellation import CancellationToken, ensure_token
from ..constants import DEFAULT_RESAMPLE_FREQUENCY, isotope_match_tolerance
from ..extraction.spatial_index import SpatialIndex2D
from ..features.model import Feature, Peak, PeakArena
from ..run.scans import Run
from ..scoring.feature_scorer import find_closest_peak, scoring_mass
from .base import assign_time, by_intensity_desc, gather_neighborhood

logger = logging.getLogger(__name__)

# log(I0/I1) as a polynomial in mass (ascending powers), and its residual SD
MASS_2PEAK_LOGRATIO_COEFFS = np.array([
    4.260321140289307,
    -0.015644630417227745,
    3.08442504319828e-5,
    -2.9751459962312765e-8,
    1.0629329881550742e-11,
])
MASS_2PEAK_LOGRATIO_ERROR_SD = 0.40649617

MAX_ANY_FIRST_PEAK_PROPORTION = 0.5
CHLORINE_RATIO = 1.2


def kl_small_molecule(mass: float, signal: Sequence[float]) -> float:
    """Deviation of ``log(I0/I1)`` from its expected value at ``mass``, in SDs.

    Returns -1 for single-peak signals.
    """
    if len(signal) < 2:
        return -1.0
    ideal = float(np.polynomial.polynomial.polyval(mass, MASS_2PEAK_LOGRATIO_COEFFS))
    actual = math.log(signal[0] / signal[1])
    return abs(actual - ideal) / MASS_2PEAK_LOGRATIO_ERROR_SD


def determine_best_small_molecule(candidates: List[Feature]) -> Optional[Feature]:
    """Prefer multi-peak candidates, then more peaks (capped at 3), then lower kl."""
    if not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0]
    multi = [c for c in candidates if c.peaks > 1]
    if multi:
        candidates = multi
    return sorted(candidates, key=lambda c: (-min(c.peaks, 3), c.kl))[0]


class SmallMoleculePeakCombiner:
    """Peak combiner for small molecules (charges up to 2, up to 4 peaks).

    Parameters
    ----------
    frequency : int
        Resampling frequency; sets the isotope match tolerance
    negative_charge_mode : bool
        Assign negative charges
    """

    max_charge = 2
    max_peaks = 4
    max_scan_range_dist = 1
    max_apex_scan_dist = 6

    def __init__(self, frequency: int = DEFAULT_RESAMPLE_FREQUENCY,
                 negative_charge_mode: bool = False):
        self.frequency = frequency
        self.negative_charge_mode = negative_charge_mode
        self.tolerance = isotope_match_tolerance(frequency)

    def create_features_from_peaks(
        self,
        run: Run,
        peaks: Sequence[Peak],
        arena: Optional[PeakArena] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> List[Feature]:
        """Build one feature per available, non-zero seed peak."""
        cancel = ensure_token(cancel)
        if arena is None:
            arena = PeakArena(peaks)
        index = SpatialIndex2D(list(peaks))
        single_charge = -1 if self.negative_charge_mode else 1

        features: List[Feature] = []
        for seed in by_intensity_desc(peaks):
            cancel.raise_if_cancelled()
            if arena.is_excluded(seed):
                continue
            if seed.intensity == 0:
                arena.exclude(seed)
                continue

            near = gather_neighborhood(
                index, arena, seed,
                seed.scan_first - self.max_apex_scan_dist, seed.mz - 1.01,
                seed.scan + self.max_apex_scan_dist, seed.mz + (self.max_peaks - 1) + 0.1,
            )

            candidates: List[Feature] = []
            for abs_charge in range(self.max_charge, 0, -1):
                charge = -abs_charge if self.negative_charge_mode else abs_charge
                f = Feature.from_peak(seed, charge=charge)
                self.flesh_out_feature(f, near, arena)
                if abs_charge > 1 and f.peaks == 1:
                    continue
                if not f.comprised or f.comprised[0] is None:
                    continue
                if self._isotopes_consistent(f, abs_charge):
                    candidates.append(f)

            best = determine_best_small_molecule(candidates)
            if best is None:
                best = Feature.from_peak(seed, charge=single_charge)
                best.comprised = [seed]
                best.peaks = 1

            best.total_intensity = seed.total_intensity
            if best.peaks == 1:
                best.charge = single_charge
                best.kl = -1.0
            best.update_mass()
            assign_time(best, seed, run)
            self.annotate_description(best)
            features.append(best)

            arena.exclude_many(best.comprised)

        logger.debug(f"Combined {len(peaks)} peaks into {len(features)} small-molecule features")
        return features

    @staticmethod
    def _isotopes_consistent(f: Feature, abs_charge: int) -> bool:
        mono = f.comprised[0]
        for i in range(1, len(f.comprised)):
            peak = f.comprised[i]
            if math.floor((peak.mz - f.mz) * abs_charge + 0.5) != i:
                return False
            if peak.intensity > MAX_ANY_FIRST_PEAK_PROPORTION * mono.intensity:
                return False
        return True

    @staticmethod
    def annotate_description(feature: Feature) -> None:
        peaks = feature.comprised
        if len(peaks) > 2 and peaks[2].intensity > peaks[1].intensity * CHLORINE_RATIO:
            feature.description = "1Cl"

    def flesh_out_feature(self, f: Feature, peaks: Sequence[Peak], arena: PeakArena) -> None:
        """Walk contiguous isotopes of ``f`` upward from its m/z.

        Sets ``comprised`` (truncated after the last isotope found), the
        recentred ``mz``, ``kl``, ``peaks`` and ``skipped_peaks``.
        """
        abs_charge = abs(f.charge)
        inv_charge = 1.0 / abs_charge
        mass = scoring_mass(f.mz, f.charge)
        peak_mz = [p.mz for p in peaks]

        matched: List[Optional[Peak]] = [None] * self.max_peaks
        p = max(0, bisect.bisect_left(peak_mz, f.mz) - 1)
        p_last_found = p
        last_index_found = 0
        mz_p0 = f.mz
        intensity_last = 0.0
        intensity_highest = 0.0
        skipped = False
        dist_sum = 0.0
        dist_count = 0
        last_scan_offset = 0

        for i in range(self.max_peaks):
            drift = dist_sum / dist_count if dist_count > 0 else 0.0
            expected = mz_p0 + i * inv_charge + drift
            p = find_closest_peak(peak_mz, expected, p)
            candidate = peaks[p]
            dist = abs(candidate.mz - expected)
            found = not arena.is_excluded(candidate) and dist < self.tolerance

            if i > 0:
                scan_dist = 0
                if candidate.scan > f.scan_last:
                    scan_dist = candidate.scan - f.scan_last
                if candidate.scan < f.scan_first:
                    scan_dist = f.scan_first - candidate.scan
                if scan_dist > self.max_scan_range_dist:
                    found = False
            if i > 1:
                offset = abs(candidate.scan - f.scan)
                if (offset >= last_scan_offset + 4
                        or (offset >= last_scan_offset * 2 and offset >= last_scan_offset + 2)):
                    found = False

            if not found:
                if i > 0:
                    break
                continue

            if i > 0 and (candidate.intensity < intensity_highest / 200
                          or candidate.intensity < 2 * f.median):
                break
            if (i == 1 or i >= 3) and candidate.intensity > intensity_last * 1.33 + f.median:
                break
            intensity_highest = max(candidate.intensity, intensity_highest)
            if candidate.intensity > intensity_highest / 2:
                dist_sum += dist
                dist_count += 1
            for s in range(p_last_found + 1, p):
                if peaks[s].intensity > intensity_last / 2 + f.median:
                    skipped = True
            matched[i] = candidate
            p_last_found = p
            last_index_found = i
            intensity_last = candidate.intensity
            if i > 0:
                last_scan_offset = abs(candidate.scan - f.scan)

        comprised = matched[:last_index_found + 1]
        f.comprised = comprised
        f.skipped_peaks = skipped
        if comprised[0] is None:
            f.peaks = 0
            return

        weighted = sum((pk.mz - i * inv_charge) * pk.intensity for i, pk in enumerate(comprised))
        weight = sum(pk.intensity for pk in comprised)
        f.mz = weighted / weight

        signal = [pk.intensity for pk in comprised[:2]]
        total = sum(signal)
        signal = [s / total for s in signal]
        f.kl = kl_small_molecule(mass, signal)
        f.peaks = len(comprised)
        f.mz_peak0 = comprised[0].mz
