"""Peak combiners: single elution peaks to charge-resolved features.

This module provides:
- PeakCombiner protocol and shared neighbourhood helpers
- DefaultPeakCombiner: peptides, charges 1..max_charge, Poisson scoring
- SmallMoleculePeakCombiner: charges 1..2, mass-dependent 2-peak ratio model
"""

from .base import (
    PeakCombiner,
    distance_nearest_fraction,
    gather_neighborhood,
    assign_time,
)
from .default_combiner import (
    CombinerParams,
    DefaultPeakCombiner,
    determine_best_feature,
)
from .small_molecule import (
    SmallMoleculePeakCombiner,
    determine_best_small_molecule,
    kl_small_molecule,
)

__all__ = [
    'PeakCombiner',
    'distance_nearest_fraction',
    'gather_neighborhood',
    'assign_time',
    'CombinerParams',
    'DefaultPeakCombiner',
    'determine_best_feature',
    'SmallMoleculePeakCombiner',
    'determine_best_small_molecule',
    'kl_small_molecule',
]
