"""Windowed feature finding strategies.

A strategy pairs the wavelet peak extractor with a peak combiner and runs
them over the run in overlapping windows of scans:

    window k covers scans [k*step, k*step + width), step = width - 2*margin

Each window is resampled and processed on its own. Features are mapped from
window rows back to scan numbers and times, and a feature is kept only when
its apex lies inside the window proper (the margins are left to the
neighbouring windows, except at the run edges).

Registered strategies
---------------------
peak_clusters       peptides, charges 1..max_charge (default)
small_molecule      metabolites, charges 1..2
small_molecule_neg  metabolites, negative charges
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Type

import numpy as np

from ..cancellation import CancellationToken, ensure_token
from ..combining.base import PeakCombiner
from ..combining.default_combiner import CombinerParams, DefaultPeakCombiner
from ..combining.small_molecule import SmallMoleculePeakCombiner
from ..extraction.peak_extractor import PeakExtractionParams, WaveletPeakExtractor
from ..features.model import Feature, Peak, PeakArena
from ..run.scans import Run, Scan
from ..spectra.resampling import ResamplingParams, SpectrumResampler
from .params import FeatureFinderParams, StrategyType

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


def dump_intensity_window(feature: Feature, grid: np.ndarray, mz_min: float,
                          frequency: int, dump_window_size: int) -> None:
    """Store ``2 * dump_window_size * frequency`` grid intensities around the feature.

    ``feature.scan`` must still be a grid row. Bins outside the grid are 0.
    """
    n_samples = dump_window_size * frequency
    mz_index = int((feature.mz - mz_min) * frequency)
    row = grid[feature.scan]
    window = np.zeros(2 * n_samples, dtype=np.float64)
    lo = mz_index - n_samples
    src_lo = max(lo, 0)
    src_hi = min(mz_index + n_samples, len(row))
    if src_hi > src_lo:
        window[src_lo - lo:src_hi - lo] = row[src_lo:src_hi]
    feature.intensity_window = window
    feature.intensity_leading_peaks = dump_window_size
    feature.intensity_trailing_peaks = dump_window_size


def map_to_scan_numbers(features: Sequence[Feature], window_scans: Sequence[Scan]) -> None:
    """Translate window rows into scan numbers and retention times, in place."""
    mapped = set()
    for f in features:
        apex = window_scans[f.scan]
        f.time = apex.retention_time
        f.scan = apex.num
        f.scan_first = window_scans[f.scan_first].num
        f.scan_last = window_scans[f.scan_last].num
        for peak in f.comprised:
            if peak is None or id(peak) in mapped:
                continue
            mapped.add(id(peak))
            peak.time = window_scans[peak.scan].retention_time
            peak.scan = window_scans[peak.scan].num
            peak.scan_first = window_scans[peak.scan_first].num
            peak.scan_last = window_scans[peak.scan_last].num


class WindowedStrategy:
    """Window loop shared by all strategies.

    Subclasses provide the peak combiner through ``build_combiner``.

    Parameters
    ----------
    params : FeatureFinderParams
        Finder parameters
    """

    name = ""

    def __init__(self, params: FeatureFinderParams):
        self.params = params
        self.extractor = WaveletPeakExtractor(PeakExtractionParams(
            wavelet_level=params.wavelet_level,
            min_peak_scans=params.min_peak_scans,
            ridge_walk_smoothed=params.ridge_walk_smoothed,
            frequency=params.resample_frequency,
        ))
        self.combiner = self.build_combiner()

    def build_combiner(self) -> PeakCombiner:
        raise NotImplementedError

    def find_features(
        self,
        run: Run,
        first_index: int,
        last_index: int,
        mz_range: Tuple[float, float],
        progress_callback: Optional[ProgressCallback] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> List[Feature]:
        """Find features over MS1 scans ``first_index..last_index`` (exclusive end).

        Returns:
            Features of all windows, in scan-number coordinates

        Raises:
            ExtractionCancelled: checked after every window
        """
        cancel = ensure_token(cancel)
        params = self.params
        width, margin = params.window_width, params.window_margin
        scans = run.ms1_scans[first_index:last_index]
        n = len(scans)
        if n == 0:
            return []

        resampler = SpectrumResampler(mz_range, ResamplingParams(
            frequency=params.resample_frequency,
            use_median_smooth=params.use_median_smooth,
        ))
        logger.debug(f"Analysing scans {scans[0].num}-{scans[-1].num} in windows of {width}")

        report = progress_callback if progress_callback is not None else (lambda percent: None)
        report(0.0)

        all_features: List[Feature] = []
        scan_index = 0
        while True:
            end = min(n, scan_index + width)
            start = max(0, end - width)
            window_scans = scans[start:end]

            spectra = [run.get_spectrum(first_index + i) for i in range(start, end)]
            grid = resampler.resample_spectra(spectra, cancel)
            features = self.find_features_in_window(run, grid, window_scans, mz_range, cancel)

            if params.dump_window_size > 0:
                for f in features:
                    dump_intensity_window(f, grid, resampler.mz_min,
                                          resampler.frequency, params.dump_window_size)
            map_to_scan_numbers(features, window_scans)

            s = scan_index if scan_index == 0 else scan_index + margin
            e = end if end == n else end - margin
            from_num, to_num = scans[s].num, scans[e - 1].num
            kept = [f for f in features if from_num <= f.scan <= to_num]
            all_features.extend(kept)
            logger.debug(
                f"Window [{window_scans[0].num}-{window_scans[-1].num}] keeps "
                f"{from_num}-{to_num}: {len(kept)}/{len(features)} features"
            )

            report(min(100.0, max(0.0, (end - margin) * 100.0 / n)))
            cancel.raise_if_cancelled()

            scan_index += width - 2 * margin
            if end >= n:
                break

        report(100.0)
        return all_features

    def find_features_in_window(
        self,
        run: Run,
        grid: np.ndarray,
        window_scans: Sequence[Scan],
        mz_range: Tuple[float, float],
        cancel: CancellationToken,
    ) -> List[Feature]:
        """Extract peaks from one resampled window and combine them.

        Scan fields of the returned features are rows of ``grid``.
        """
        times = np.array([s.retention_time for s in window_scans], dtype=np.float64)
        # Extraction subtracts the background in place; keep the grid for dumping
        work = grid.copy() if self.params.dump_window_size > 0 else grid
        peaks: List[Peak] = self.extractor.extract_peak_features(times, work, mz_range, cancel)
        cancel.raise_if_cancelled()
        if not peaks:
            return []

        for p in peaks:
            p.time = float(times[p.scan])
        peaks.sort(key=lambda p: p.mz)
        return self.combiner.create_features_from_peaks(run, peaks, PeakArena(peaks), cancel)


class PeakClustersStrategy(WindowedStrategy):
    """Peptide isotope clusters (wavelet extractor + default combiner)."""

    name = StrategyType.PEAK_CLUSTERS.value

    def build_combiner(self) -> PeakCombiner:
        return DefaultPeakCombiner(CombinerParams(
            max_charge=self.params.max_charge,
            frequency=self.params.resample_frequency,
        ))


class SmallMoleculeStrategy(WindowedStrategy):
    """Small molecules, positive mode."""

    name = StrategyType.SMALL_MOLECULE.value
    negative_charge_mode = False

    def build_combiner(self) -> PeakCombiner:
        return SmallMoleculePeakCombiner(
            frequency=self.params.resample_frequency,
            negative_charge_mode=self.negative_charge_mode,
        )


class SmallMoleculeNegStrategy(SmallMoleculeStrategy):
    """Small molecules, negative mode."""

    name = StrategyType.SMALL_MOLECULE_NEG.value
    negative_charge_mode = True


STRATEGY_REGISTRY: Dict[str, Type[WindowedStrategy]] = {
    PeakClustersStrategy.name: PeakClustersStrategy,
    SmallMoleculeStrategy.name: SmallMoleculeStrategy,
    SmallMoleculeNegStrategy.name: SmallMoleculeNegStrategy,
}


def get_strategy(name: str) -> Type[WindowedStrategy]:
    """Strategy class registered under ``name``.

    Raises:
        ValueError: for unknown names
    """
    try:
        return STRATEGY_REGISTRY[name]
    except KeyError:
        raise ValueError(
            f"Unknown feature strategy {name!r}; choose from {sorted(STRATEGY_REGISTRY)}"
        ) from None
