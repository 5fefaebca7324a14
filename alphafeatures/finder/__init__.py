"""Feature finding driver.

This module provides:
- FeatureFinderParams and StrategyType presets
- Windowed strategies (peak clusters, small molecule) and their registry
- FeatureFinder and the find_features broker function
"""

from .params import FeatureFinderParams, StrategyType
from .strategies import (
    WindowedStrategy,
    PeakClustersStrategy,
    SmallMoleculeStrategy,
    SmallMoleculeNegStrategy,
    STRATEGY_REGISTRY,
    get_strategy,
    dump_intensity_window,
    map_to_scan_numbers,
)
from .feature_finder import FeatureFinder, find_features

__all__ = [
    'FeatureFinderParams',
    'StrategyType',
    'WindowedStrategy',
    'PeakClustersStrategy',
    'SmallMoleculeStrategy',
    'SmallMoleculeNegStrategy',
    'STRATEGY_REGISTRY',
    'get_strategy',
    'dump_intensity_window',
    'map_to_scan_numbers',
    'FeatureFinder',
    'find_features',
]
