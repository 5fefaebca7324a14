"""Isotope scoring and accurate mass.

This module provides:
- Poisson isotope envelopes by mass and their KL distance
- DefaultFeatureScorer: isotope matching, m/z recentering, envelope fit
- AccurateMassAdjuster: m/z refinement from the raw spectra

Examples
--------
>>> from alphafeatures.scoring import DefaultFeatureScorer
>>> scorer = DefaultFeatureScorer(frequency=36)
>>> score = scorer.score_feature(candidate, peaks_sorted_by_mz, arena)
>>> candidate.kl, candidate.peaks
"""

from .poisson import (
    POISSON_TABLE,
    poisson_envelope,
    kl_poisson_distance,
)
from .feature_scorer import (
    FeatureScorer,
    DefaultFeatureScorer,
    find_closest_peak,
    scoring_mass,
)
from .accurate_mass import (
    ProfileMassMode,
    AccurateMassParams,
    AccurateMassAdjuster,
)

__all__ = [
    # Poisson envelope
    'POISSON_TABLE',
    'poisson_envelope',
    'kl_poisson_distance',
    # Feature scoring
    'FeatureScorer',
    'DefaultFeatureScorer',
    'find_closest_peak',
    'scoring_mass',
    # Accurate mass
    'ProfileMassMode',
    'AccurateMassParams',
    'AccurateMassAdjuster',
]
