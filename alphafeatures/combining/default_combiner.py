"""Peptide isotope-cluster assembly from single elution peaks.

Seeds are processed from most to least intense. For each seed, every
available peak at or below the seed m/z (and at least 1/10 of its intensity)
is tried as the monoisotopic peak at every charge from ``max_charge`` down
to 1 whose isotope spacing fits the m/z distance to the seed. Each hypothesis
is scored with the feature scorer and kept if it explains the seed and has
more than one real isotope peak.

Best-candidate selection
------------------------
1. Drop candidates whose KL is more than 0.5 above the best KL.
2. Drop candidates explained by another one at a multiple of their charge
   (same monoisotope, more peaks or at least 6 peaks).
3. Order the rest by ``0.1 * peaks - kl`` descending.

Seeds without a viable candidate become single-peak charge-0 features, so no
seed is silently dropped. The winner's peaks are excluded in the arena and
cannot seed or join another feature.

Examples
--------
>>> combiner = DefaultPeakCombiner(CombinerParams(max_charge=6))
>>> features = combiner.create_features_from_peaks(run, peaks)
>>> [f.charge for f in features]
[2, 3, 0, ...]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..cancellation import CancellationToken, ensure_token
from ..constants import (
    DEFAULT_MAX_CHARGE,
    DEFAULT_MAX_PEAKS_PER_FEATURE,
    DEFAULT_RESAMPLE_FREQUENCY,
    MIN_RESAMPLE_FREQUENCY,
    charge_match_tolerance,
)
from ..extraction.spatial_index import SpatialIndex2D
from ..features.model import Feature, Peak, PeakArena
from ..run.scans import Run
from ..scoring.feature_scorer import DefaultFeatureScorer, FeatureScorer
from .base import assign_time, by_intensity_desc, distance_nearest_fraction, gather_neighborhood

logger = logging.getLogger(__name__)


@dataclass
class CombinerParams:
    """Parameters for the peptide peak combiner.

    Attributes:
        max_charge: Highest charge hypothesis
        max_peaks_per_feature: Isotope positions walked by the scorer
        frequency: Resampling frequency; sets the charge tolerance
        negative_charge_mode: Assign negative charges
        mz_below / mz_above: Neighbourhood around the seed m/z (Da)
        scan_range: Neighbourhood around the seed scan (+- scans)
        min_relative_intensity: Candidate monoisotopes below this fraction
            of the seed intensity are not tried
        kl_margin: Candidates worse than the best KL by more are dropped
    """

    max_charge: int = DEFAULT_MAX_CHARGE
    max_peaks_per_feature: int = DEFAULT_MAX_PEAKS_PER_FEATURE
    frequency: int = DEFAULT_RESAMPLE_FREQUENCY
    negative_charge_mode: bool = False
    mz_below: float = 2.1
    mz_above: float = 6.1
    scan_range: int = 9
    min_relative_intensity: float = 0.1
    kl_margin: float = 0.5

    def __post_init__(self):
        if self.max_charge < 1:
            raise ValueError(f"max_charge must be >= 1, got {self.max_charge}")
        if self.max_peaks_per_feature < 1:
            raise ValueError(
                f"max_peaks_per_feature must be >= 1, got {self.max_peaks_per_feature}"
            )
        if self.frequency < MIN_RESAMPLE_FREQUENCY:
            raise ValueError(
                f"frequency must be >= {MIN_RESAMPLE_FREQUENCY}, got {self.frequency}"
            )


def determine_best_feature(candidates: List[Feature], kl_margin: float = 0.5) -> Optional[Feature]:
    """Pick the winning charge interpretation among scored candidates.

    Args:
        candidates: Scored candidates in generation order (monoisotope m/z
            ascending, charge descending)
        kl_margin: Candidates with ``kl > min_kl + kl_margin`` are dropped

    Returns:
        Best candidate, or None if there are none
    """
    if not candidates:
        return None
    min_kl = min(c.kl for c in candidates)
    candidates = [c for c in candidates if c.kl <= min_kl + kl_margin]
    if len(candidates) == 1:
        return candidates[0]

    pruned = set()
    for i in range(len(candidates) - 1):
        a = candidates[i]
        for j in range(i + 1, len(candidates)):
            b = candidates[j]
            if abs(a.charge) % abs(b.charge) == 0 and a.contains_peak(b.comprised[0]):
                if a.peaks > b.peaks or a.peaks >= 6:
                    pruned.add(id(b))

    finalists = [c for c in candidates if id(c) not in pruned]
    if len(finalists) == 1:
        return finalists[0]
    finalists.sort(key=lambda f: f.peaks * 0.1 - f.kl, reverse=True)
    return finalists[0]


class DefaultPeakCombiner:
    """Peptide peak combiner (charges 1..max_charge, Poisson envelope scoring).

    Parameters
    ----------
    params : CombinerParams, optional
        Combiner parameters
    scorer : FeatureScorer, optional
        Defaults to ``DefaultFeatureScorer`` at the combiner's frequency
    """

    def __init__(self, params: Optional[CombinerParams] = None,
                 scorer: Optional[FeatureScorer] = None):
        self.params = params if params is not None else CombinerParams()
        self.scorer = scorer if scorer is not None else DefaultFeatureScorer(
            self.params.frequency, self.params.max_peaks_per_feature
        )
        self.charge_tolerance = charge_match_tolerance(self.params.frequency)

    def create_features_from_peaks(
        self,
        run: Run,
        peaks: Sequence[Peak],
        arena: Optional[PeakArena] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> List[Feature]:
        """Build one feature per available seed peak.

        Args:
            run: Run the peaks came from; peaks without a time are looked
                up by scan number
            peaks: Single elution peaks
            arena: Ownership of ``peaks``; created when not given
            cancel: Checked before every seed

        Returns:
            Features in seed order (descending seed intensity)

        Raises:
            ExtractionCancelled: if ``cancel`` is triggered
        """
        cancel = ensure_token(cancel)
        if arena is None:
            arena = PeakArena(peaks)
        params = self.params
        index = SpatialIndex2D(list(peaks))

        features: List[Feature] = []
        n_candidates = 0
        for seed in by_intensity_desc(peaks):
            cancel.raise_if_cancelled()
            if arena.is_excluded(seed):
                continue

            near = gather_neighborhood(
                index, arena, seed,
                seed.scan - params.scan_range, seed.mz - params.mz_below,
                seed.scan + params.scan_range, seed.mz + params.mz_above,
            )
            candidates = self.build_candidates(seed, near, arena)
            n_candidates += len(candidates)

            best = determine_best_feature(candidates, params.kl_margin)
            if best is None:
                best = Feature.from_peak(seed)
                best.comprised = [seed]
                best.peaks = 1

            best.total_intensity = seed.total_intensity
            if best.peaks == 1:
                best.charge = 0
                best.kl = -1.0
            best.update_mass()
            assign_time(best, seed, run)
            features.append(best)

            arena.exclude_many(best.comprised)

        logger.debug(
            f"Combined {len(peaks)} peaks into {len(features)} features "
            f"({n_candidates} candidates scored)"
        )
        return features

    def build_candidates(self, seed: Peak, near: List[Peak], arena: PeakArena) -> List[Feature]:
        """Scored charge hypotheses for ``seed`` over its neighbourhood ``near``."""
        params = self.params
        candidates: List[Feature] = []
        for p in near:
            if p.mz > seed.mz:
                break
            if arena.is_excluded(p):
                continue
            if p.intensity < seed.intensity * params.min_relative_intensity:
                continue
            distance = seed.mz - p.mz
            for abs_charge in range(params.max_charge, 0, -1):
                if distance_nearest_fraction(distance, abs_charge) >= self.charge_tolerance:
                    continue
                charge = -abs_charge if params.negative_charge_mode else abs_charge
                f = Feature.from_peak(seed, mz=p.mz, charge=charge)
                f.dist = self.scorer.score_feature(f, near, arena)
                if f.peaks == 1 or f.comprised[0] is None:
                    continue
                if not f.contains_peak(seed):
                    continue
                candidates.append(f)
        return candidates
