"""Convenience wrapper functions for easy-to-use API.

This module builds a ``Run`` from plain per-scan arrays and runs feature
finding in one call, for callers that already hold decoded spectra (from
pyteomics, pyopenms, alpharaw or a simulation) and do not want to deal with
``Scan`` objects or loaders.

For large runs, build the ``Run`` with a loader instead so spectra are
decoded lazily through the bounded cache.

Examples
--------
>>> feature_set = find_features_in_arrays(mz_list, intensity_list, rt_list)
>>> feature_set[0].charge, feature_set[0].mass

>>> # Small molecules, centroided data
>>> feature_set = find_features_in_arrays(
...     mz_list, intensity_list, rt_list, centroided=True,
...     strategy=StrategyType.SMALL_MOLECULE)
"""

from typing import Optional, Sequence

import numpy as np

from .cancellation import CancellationToken
from .features.model import FeatureSet
from .finder.feature_finder import find_features
from .finder.params import FeatureFinderParams, StrategyType
from .finder.strategies import ProgressCallback
from .run.scans import Run, Scan


# =============================================================================
# Run construction
# =============================================================================

def run_from_arrays(
    mz_list: Sequence[np.ndarray],
    intensity_list: Sequence[np.ndarray],
    retention_times: Sequence[float],
    scan_nums: Optional[Sequence[int]] = None,
    centroided: bool = False,
    name: str = "",
) -> Run:
    """Build an MS1-only Run from per-scan arrays.

    Parameters
    ----------
    mz_list : sequence of np.ndarray
        m/z values per scan, ascending
    intensity_list : sequence of np.ndarray
        Intensities per scan, same lengths as ``mz_list``
    retention_times : sequence of float
        Retention time per scan
    scan_nums : sequence of int, optional
        Scan numbers; defaults to 1..n
    centroided : bool
        Whether spectra are centroided
    name : str
        Run label

    Returns
    -------
    Run

    Raises
    ------
    ValueError
        If the per-scan sequences differ in length
    """
    n = len(mz_list)
    if len(intensity_list) != n or len(retention_times) != n:
        raise ValueError(
            f"Got {n} m/z arrays, {len(intensity_list)} intensity arrays "
            f"and {len(retention_times)} retention times"
        )
    if scan_nums is None:
        scan_nums = range(1, n + 1)
    elif len(scan_nums) != n:
        raise ValueError(f"Got {len(scan_nums)} scan numbers for {n} scans")

    scans = [
        Scan(
            num=int(num),
            retention_time=float(rt),
            mz_array=np.asarray(mz, dtype=np.float64),
            intensity_array=np.asarray(intensity, dtype=np.float64),
        )
        for num, rt, mz, intensity in zip(scan_nums, retention_times, mz_list, intensity_list)
    ]
    return Run(scans, centroided=centroided, name=name)


# =============================================================================
# One-call feature finding
# =============================================================================

def find_features_in_arrays(
    mz_list: Sequence[np.ndarray],
    intensity_list: Sequence[np.ndarray],
    retention_times: Sequence[float],
    scan_nums: Optional[Sequence[int]] = None,
    centroided: bool = False,
    strategy: StrategyType = StrategyType.PEAK_CLUSTERS,
    progress_callback: Optional[ProgressCallback] = None,
    cancel: Optional[CancellationToken] = None,
    **params,
) -> FeatureSet:
    """Find features in per-scan arrays.

    Extra keyword arguments are passed to ``FeatureFinderParams.for_strategy``
    (e.g. ``max_charge``, ``mz_range``, ``window_width``).

    Examples
    --------
    >>> fs = find_features_in_arrays(mz_list, intensity_list, rts, max_charge=4)
    >>> len(fs)
    12
    """
    run = run_from_arrays(mz_list, intensity_list, retention_times, scan_nums, centroided)
    finder_params = FeatureFinderParams.for_strategy(strategy, **params)
    return find_features(run, finder_params, progress_callback, cancel)
