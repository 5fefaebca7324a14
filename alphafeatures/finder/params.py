"""Feature finder parameters and strategy presets."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ..constants import (
    DEFAULT_ACCURATE_MASS_ADJUSTMENT_SCANS,
    DEFAULT_MAX_CHARGE,
    DEFAULT_PEAK_LENGTH_REQUIREMENT,
    DEFAULT_RESAMPLE_FREQUENCY,
    MIN_RESAMPLE_FREQUENCY,
    DEFAULT_WAVELET_LEVEL,
    DEFAULT_WINDOW_MARGIN,
    DEFAULT_WINDOW_WIDTH,
)
from ..scoring.accurate_mass import ProfileMassMode


class StrategyType(Enum):
    """Feature finding strategies."""
    PEAK_CLUSTERS = "peak_clusters"              # peptides, charges 1..max_charge
    SMALL_MOLECULE = "small_molecule"            # metabolites, charges 1..2
    SMALL_MOLECULE_NEG = "small_molecule_neg"    # metabolites, negative mode


@dataclass
class FeatureFinderParams:
    """Parameters for a feature finding run.

    Attributes:
        strategy: Strategy name or StrategyType
        start_scan: First MS1 scan index to analyse
        scan_count: Number of MS1 scans to analyse (None = to the end)
        max_charge: Highest charge considered by the peptide combiner
        mz_range: (min, max) m/z to resample; None = from the run
        window_width: Scans per processing window
        window_margin: Scans at each window edge whose features are
            left to the neighbouring window
        accurate_mass_adjustment_scans: Scans used for profile accurate
            mass; 0 disables it for profile runs
        dump_window_size: Half-width (Da) of the resampled intensity window
            stored on each feature; 0 disables dumping
        ridge_walk_smoothed: Walk peaks on the time-smoothed ridge
        use_median_smooth: Median elution smoothing (lock-spray data)
        resample_frequency: Resampled bins per Da
        wavelet_level: Ridge detail level
        min_peak_scans: Minimum elution length of a peak
        profile_mass_mode: Accurate mass reduction for profile data
    """

    strategy: str = StrategyType.PEAK_CLUSTERS.value
    start_scan: int = 0
    scan_count: Optional[int] = None
    max_charge: int = DEFAULT_MAX_CHARGE
    mz_range: Optional[Tuple[float, float]] = None

    window_width: int = DEFAULT_WINDOW_WIDTH
    window_margin: int = DEFAULT_WINDOW_MARGIN

    accurate_mass_adjustment_scans: int = DEFAULT_ACCURATE_MASS_ADJUSTMENT_SCANS
    dump_window_size: int = 0

    ridge_walk_smoothed: bool = False
    use_median_smooth: bool = False
    resample_frequency: int = DEFAULT_RESAMPLE_FREQUENCY
    wavelet_level: int = DEFAULT_WAVELET_LEVEL
    min_peak_scans: int = DEFAULT_PEAK_LENGTH_REQUIREMENT
    profile_mass_mode: ProfileMassMode = ProfileMassMode.CENTER

    def __post_init__(self):
        if isinstance(self.strategy, StrategyType):
            self.strategy = self.strategy.value
        if self.start_scan < 0:
            raise ValueError(f"start_scan must be >= 0, got {self.start_scan}")
        if self.scan_count is not None and self.scan_count < 0:
            raise ValueError(f"scan_count must be >= 0, got {self.scan_count}")
        if self.max_charge < 1:
            raise ValueError(f"max_charge must be >= 1, got {self.max_charge}")
        if self.window_margin < 0:
            raise ValueError(f"window_margin must be >= 0, got {self.window_margin}")
        if self.window_width <= 2 * self.window_margin:
            raise ValueError(
                f"window_width ({self.window_width}) must exceed twice the "
                f"margin ({self.window_margin})"
            )
        if self.accurate_mass_adjustment_scans < 0:
            raise ValueError(
                f"accurate_mass_adjustment_scans must be >= 0, "
                f"got {self.accurate_mass_adjustment_scans}"
            )
        if self.dump_window_size < 0:
            raise ValueError(f"dump_window_size must be >= 0, got {self.dump_window_size}")
        if self.resample_frequency < MIN_RESAMPLE_FREQUENCY:
            raise ValueError(
                f"resample_frequency must be >= {MIN_RESAMPLE_FREQUENCY}, got {self.resample_frequency}"
            )
        if self.mz_range is not None and not self.mz_range[0] < self.mz_range[1]:
            raise ValueError(f"Empty m/z range: {self.mz_range}")

    @classmethod
    def for_strategy(cls, strategy: StrategyType, **overrides) -> 'FeatureFinderParams':
        """Create parameters with strategy-specific defaults.

        Args:
            strategy: Strategy type enum
            **overrides: Any other field

        Returns:
            FeatureFinderParams for the strategy
        """
        if strategy == StrategyType.PEAK_CLUSTERS:
            preset = dict(max_charge=DEFAULT_MAX_CHARGE)
        elif strategy in (StrategyType.SMALL_MOLECULE, StrategyType.SMALL_MOLECULE_NEG):
            preset = dict(max_charge=2)
        else:
            raise ValueError(f"Unknown strategy type: {strategy}")
        preset.update(overrides)
        return cls(strategy=strategy.value, **preset)
