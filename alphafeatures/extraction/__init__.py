"""Peak extraction from resampled windows.

This module provides:
- 2D local maxima of a (scan x m/z) surface
- A static 2D (scan, m/z) index for neighbourhood queries
- WaveletPeakExtractor: ridge walking, valley splitting, correlation filter
"""

from .maxima import pick_peak_indexes, extract_maxima_2d
from .spatial_index import SpatialIndex2D
from .peak_extractor import (
    PeakExtractionParams,
    WaveletPeakExtractor,
    walk_peak_extent,
    integrate_over_time,
)

__all__ = [
    'pick_peak_indexes',
    'extract_maxima_2d',
    'SpatialIndex2D',
    'PeakExtractionParams',
    'WaveletPeakExtractor',
    'walk_peak_extent',
    'integrate_over_time',
]
