"""LC-MS run model.

This module provides:
- Scan and Run containers (MS1/MS2 partitions, scan number/time lookups)
- Bounded LRU spectrum cache with locked decoding and bounded I/O retries
- m/z extraction range for feature finding
"""

from .scans import (
    Scan,
    Run,
    SpectrumCache,
    empty_spectrum,
    strip_zero_mz,
    get_mz_extraction_range,
)

__all__ = [
    'Scan',
    'Run',
    'SpectrumCache',
    'empty_spectrum',
    'strip_zero_mz',
    'get_mz_extraction_range',
]
