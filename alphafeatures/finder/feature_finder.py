"""Feature finding driver.

``FeatureFinder`` runs a strategy over a user scan range of a run:

1. Widen the range by window margins (when the run has the scans) so that
   features near the range edges are built from complete elution profiles.
2. Run the strategy's window loop over the widened range.
3. Drop features whose apex scan lies outside the requested range.
4. Refine m/z from the raw spectra (always for centroided runs, for profile
   runs when ``accurate_mass_adjustment_scans > 0``).
5. Sort by intensity, highest first, and record provenance.

Examples
--------
>>> params = FeatureFinderParams.for_strategy(StrategyType.PEAK_CLUSTERS)
>>> feature_set = find_features(run, params)
>>> feature_set.filter(FeatureSelector(min_peaks=2, max_kl=3.0))
"""

import logging
import os
import platform
from dataclasses import asdict
from datetime import datetime
from typing import Optional, Tuple

import numba
import numpy as np

from ..cancellation import CancellationToken, ensure_token
from ..features.model import FeatureSet
from ..run.scans import Run, get_mz_extraction_range
from ..scoring.accurate_mass import AccurateMassAdjuster, AccurateMassParams
from .params import FeatureFinderParams
from .strategies import ProgressCallback, get_strategy

logger = logging.getLogger(__name__)


class FeatureFinder:
    """Find features in one run.

    Parameters
    ----------
    run : Run
        Run to analyse
    params : FeatureFinderParams, optional
        Finder parameters; defaults to the peptide strategy
    progress_callback : callable, optional
        Called with a percentage (0-100) at the start, after each window
        and at the end
    cancel : CancellationToken, optional
        Cooperative cancellation
    """

    def __init__(self, run: Run, params: Optional[FeatureFinderParams] = None,
                 progress_callback: Optional[ProgressCallback] = None,
                 cancel: Optional[CancellationToken] = None):
        self.run = run
        self.params = params if params is not None else FeatureFinderParams()
        self.progress_callback = progress_callback
        self.cancel = ensure_token(cancel)
        self.strategy = get_strategy(self.params.strategy)(self.params)

    def scan_range(self) -> Tuple[int, int]:
        """Requested MS1 index range, inclusive.

        Raises:
            ValueError: if ``start_scan`` is past the end of the run
        """
        n = self.run.scan_count
        start = self.params.start_scan
        if start >= n:
            raise ValueError(f"start_scan {start} is outside the run ({n} MS1 scans)")
        count = self.params.scan_count
        if count is None:
            count = n - start
        end = min(start + max(count, 1) - 1, n - 1)
        return start, end

    def widened_range(self, start: int, end: int) -> Tuple[int, int]:
        """Index range to process, [low, high), with margins around the request."""
        count = end - start + 1
        width = max(self.params.window_width, count + 2 * self.params.window_margin)
        low = max(0, start - (width - count) // 2)
        high = min(low + width, self.run.scan_count)
        return low, high

    def mz_range(self) -> Tuple[float, float]:
        if self.params.mz_range is not None:
            return self.params.mz_range
        return get_mz_extraction_range(self.run)

    def find_features(self) -> FeatureSet:
        """Run the strategy and return the features, most intense first.

        Raises:
            ExtractionCancelled: if the cancellation token is triggered
            ValueError: for an invalid scan or m/z range
        """
        run = self.run
        params = self.params
        if run.scan_count == 0:
            logger.warning(f"Run {run.name!r} has no MS1 scans")
            feature_set = FeatureSet(source=run.name)
            self.add_properties(feature_set)
            return feature_set

        start, end = self.scan_range()
        low, high = self.widened_range(start, end)
        start_num = run.get_scan_num_for_index(start)
        end_num = run.get_scan_num_for_index(end)
        mz_range = self.mz_range()
        logger.info(
            f"Finding features ({self.strategy.name}) in scans {start_num}-{end_num} "
            f"of {run.name or 'run'}, m/z {mz_range[0]:.2f}-{mz_range[1]:.2f}"
        )

        features = self.strategy.find_features(
            run, low, high, mz_range, self.progress_callback, self.cancel
        )
        features = [f for f in features if start_num <= f.scan <= end_num]

        if params.accurate_mass_adjustment_scans > 0 or run.centroided:
            adjuster = AccurateMassAdjuster(AccurateMassParams(
                scan_window_size=params.accurate_mass_adjustment_scans,
                profile_mass_mode=params.profile_mass_mode,
                frequency=params.resample_frequency,
            ))
            adjuster.adjust_all_masses(run, features, self.cancel)

        feature_set = FeatureSet(features, source=run.name)
        feature_set.sort_by_intensity()
        self.add_properties(feature_set)
        logger.info(f"Found {len(feature_set)} features")
        return feature_set

    def add_properties(self, feature_set: FeatureSet) -> None:
        from .. import __version__

        parameters = asdict(self.params)
        parameters['profile_mass_mode'] = self.params.profile_mass_mode.value
        feature_set.properties.update({
            'algorithm': f"{type(self).__module__}.{type(self).__name__}",
            'strategy': self.strategy.name,
            'version': __version__,
            'python.version': platform.python_version(),
            'numpy.version': np.__version__,
            'numba.version': numba.__version__,
            'user.name': os.environ.get('USER', os.environ.get('USERNAME', '')),
            'date': datetime.now().isoformat(timespec='seconds'),
            'parameters': parameters,
        })


def find_features(run: Run, params: Optional[FeatureFinderParams] = None,
                  progress_callback: Optional[ProgressCallback] = None,
                  cancel: Optional[CancellationToken] = None) -> FeatureSet:
    """Find features in ``run`` with ``params`` (peptide defaults when omitted)."""
    return FeatureFinder(run, params, progress_callback, cancel).find_features()
