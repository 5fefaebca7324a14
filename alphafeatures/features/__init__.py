"""Feature model.

This module provides:
- Peak (single elution peak) and PeakArena (ownership bitset)
- Feature (isotope cluster with charge, mass and fit scores)
- FeatureSet and FeatureSelector (output container and filtering)
"""

from .model import (
    Peak,
    PeakArena,
    Feature,
    FeatureSet,
    FeatureSelector,
    convert_mz_to_mass,
    convert_mass_to_mz,
)

__all__ = [
    'Peak',
    'PeakArena',
    'Feature',
    'FeatureSet',
    'FeatureSelector',
    'convert_mz_to_mass',
    'convert_mass_to_mz',
]
