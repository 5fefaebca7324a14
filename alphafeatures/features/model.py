"""Peaks, features and feature sets.

Peak
    A single elution peak at one m/z found by the wavelet extractor: apex
    scan, scan extent, intensity, time-integrated intensity and the local
    background/median at its apex.

PeakArena
    Owns the peaks of one extraction pass. Ownership ("this peak has been
    consumed by a feature") is a bitset indexed by ``peak_id`` instead of a
    flag on the peak, so a peak can be claimed by at most one feature.

Feature
    A peptide (or small-molecule) candidate: an isotope cluster with charge,
    m/z, mass, the peaks it comprises (index 0 = monoisotopic) and fit scores.

FeatureSet / FeatureSelector
    The final, ordered output plus provenance properties, and the bounds used
    to filter it.
"""

import copy
from dataclasses import dataclass, field, fields
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from ..constants import HYDROGEN_ION_MASS


def convert_mz_to_mass(mz: float, charge: int) -> float:
    """Neutral mass of an ion.

    charge > 0: ``(mz - H+) * z``; charge 0: 0 (undetermined);
    charge < 0: ``(mz + H+) * |z|`` ([M-H]- ions). Never negative.
    """
    if charge > 0:
        return max(0.0, (mz - HYDROGEN_ION_MASS) * charge)
    if charge == 0:
        return 0.0
    return max(0.0, (mz + HYDROGEN_ION_MASS) * -charge)


def convert_mass_to_mz(mass: float, charge: int) -> float:
    if charge > 0:
        return mass / charge + HYDROGEN_ION_MASS
    if charge == 0:
        return 0.0
    return mass / -charge - HYDROGEN_ION_MASS


@dataclass(eq=False)
class Peak:
    """Single elution peak (identity semantics: two peaks are never equal)."""

    scan: int
    mz: float
    intensity: float
    scan_first: int = -1
    scan_last: int = -1
    total_intensity: float = 0.0
    background: float = 0.0
    median: float = 0.0
    time: float = 0.0
    peak_id: int = -1

    def __post_init__(self):
        if self.scan_first < 0:
            self.scan_first = self.scan
        if self.scan_last < 0:
            self.scan_last = self.scan

    @property
    def length(self) -> int:
        """Number of scans spanned."""
        return self.scan_last - self.scan_first + 1


class PeakArena:
    """Peaks of one extraction pass and the bitset of peaks already consumed.

    Parameters
    ----------
    peaks : sequence of Peak
        Peaks are (re)numbered with ``peak_id`` = position in the arena
    """

    def __init__(self, peaks: Sequence[Peak]):
        self.peaks: List[Peak] = list(peaks)
        for i, p in enumerate(self.peaks):
            p.peak_id = i
        self._owned = np.zeros(len(self.peaks), dtype=np.bool_)

    def __len__(self) -> int:
        return len(self.peaks)

    def __iter__(self):
        return iter(self.peaks)

    def _check(self, peak: Peak) -> int:
        i = peak.peak_id
        if i < 0 or i >= len(self.peaks) or self.peaks[i] is not peak:
            raise ValueError(f"Peak {peak!r} does not belong to this arena")
        return i

    def exclude(self, peak: Peak) -> None:
        self._owned[self._check(peak)] = True

    def exclude_many(self, peaks: Iterable[Optional[Peak]]) -> None:
        for p in peaks:
            if p is not None:
                self.exclude(p)

    def is_excluded(self, peak: Peak) -> bool:
        return bool(self._owned[self._check(peak)])

    @property
    def excluded_mask(self) -> np.ndarray:
        """Read-only view of the ownership bitset, indexed by ``peak_id``."""
        view = self._owned.view()
        view.flags.writeable = False
        return view

    def available(self) -> List[Peak]:
        return [p for p, owned in zip(self.peaks, self._owned) if not owned]


@dataclass(eq=False)
class Feature:
    """Putative peptide ion: an isotope cluster with a charge interpretation."""

    scan: int
    mz: float
    intensity: float
    charge: int = 0
    scan_first: int = -1
    scan_last: int = -1
    time: float = 0.0
    mass: float = 0.0
    total_intensity: float = 0.0

    # Fit scores: kl = isotope envelope distance, dist = sum-squares distance
    kl: float = -1.0
    dist: float = 0.0
    peaks: int = 0
    skipped_peaks: bool = False

    comprised: List[Optional[Peak]] = field(default_factory=list, repr=False)
    mz_peak0: float = 0.0
    background: float = 0.0
    median: float = 0.0

    accurate_mz: bool = False
    description: str = ""

    # Resampled intensities around the feature (dump window)
    intensity_window: Optional[np.ndarray] = field(default=None, repr=False)
    intensity_leading_peaks: int = 0
    intensity_trailing_peaks: int = 0

    def __post_init__(self):
        if self.scan_first < 0:
            self.scan_first = self.scan
        if self.scan_last < 0:
            self.scan_last = self.scan

    @classmethod
    def from_peak(cls, peak: Peak, mz: Optional[float] = None, charge: int = 0) -> 'Feature':
        """Feature seeded by a single peak, optionally re-anchored at ``mz``."""
        return cls(
            scan=peak.scan,
            mz=peak.mz if mz is None else mz,
            intensity=peak.intensity,
            charge=charge,
            scan_first=peak.scan_first,
            scan_last=peak.scan_last,
            time=peak.time,
            total_intensity=peak.total_intensity,
            background=peak.background,
            median=peak.median,
        )

    @property
    def scan_count(self) -> int:
        return self.scan_last - self.scan_first + 1

    def update_mass(self) -> None:
        """Make the mass agree with the m/z and charge."""
        self.mass = convert_mz_to_mass(self.mz, self.charge)

    def contains_peak(self, peak: Optional[Peak]) -> bool:
        """Identity test against the comprised peaks."""
        if peak is None:
            return False
        return any(p is peak for p in self.comprised)

    def comprised_peaks(self) -> List[Peak]:
        return [p for p in self.comprised if p is not None]


@dataclass
class FeatureSelector:
    """Bounds for selecting features from a FeatureSet."""

    min_charge: int = -10
    max_charge: int = 10
    min_mz: float = 0.0
    max_mz: float = 10000.0
    min_mass: float = 0.0
    max_mass: float = float('inf')
    min_intensity: float = 0.0
    min_total_intensity: float = 0.0
    max_kl: float = float('inf')
    min_peaks: int = 0
    max_peaks: int = 2 ** 31 - 1
    scan_first: int = 0
    scan_last: int = 2 ** 31 - 1
    min_time: float = 0.0
    max_time: float = float('inf')
    min_scans: int = 0
    max_sum_squares_dist: float = float('inf')
    accurate_mz_only: bool = False

    def accepts(self, f: Feature) -> bool:
        return (
            f.intensity >= self.min_intensity
            and self.min_charge <= f.charge <= self.max_charge
            and self.min_mz <= f.mz <= self.max_mz
            and self.min_mass <= f.mass <= self.max_mass
            and self.min_peaks <= f.peaks <= self.max_peaks
            and self.scan_first <= f.scan <= self.scan_last
            and f.kl <= self.max_kl
            and f.scan_count >= self.min_scans
            and f.total_intensity >= self.min_total_intensity
            and self.min_time <= f.time <= self.max_time
            and f.dist <= self.max_sum_squares_dist
            and (not self.accurate_mz_only or f.accurate_mz)
        )

    def __str__(self) -> str:
        # Only list bounds that differ from the defaults
        default = FeatureSelector()
        parts = [
            f"{fl.name}={getattr(self, fl.name)}"
            for fl in fields(self)
            if getattr(self, fl.name) != getattr(default, fl.name)
        ]
        return " ".join(parts)


class FeatureSet:
    """Ordered features plus provenance properties."""

    def __init__(self, features: Optional[Sequence[Feature]] = None,
                 properties: Optional[Dict[str, object]] = None,
                 source: str = ""):
        self.features: List[Feature] = list(features) if features is not None else []
        self.properties: Dict[str, object] = dict(properties) if properties else {}
        self.source = source

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self):
        return iter(self.features)

    def __getitem__(self, i):
        return self.features[i]

    def __repr__(self) -> str:
        return f"FeatureSet(source={self.source!r}, features={len(self.features)})"

    def select(self, selector: FeatureSelector) -> List[Feature]:
        return [f for f in self.features if selector.accepts(f)]

    def filter(self, selector: FeatureSelector) -> 'FeatureSet':
        """New FeatureSet holding the selected features (feature objects are shared)."""
        properties = copy.copy(self.properties)
        properties["filter"] = str(selector)
        return FeatureSet(self.select(selector), properties, self.source)

    def sort_by_intensity(self) -> None:
        self.features.sort(key=lambda f: f.intensity, reverse=True)

    def to_arrays(self) -> Dict[str, np.ndarray]:
        """Column arrays of the main feature fields."""
        columns = {
            'scan': np.int64, 'time': np.float64, 'mz': np.float64,
            'mass': np.float64, 'charge': np.int64, 'intensity': np.float64,
            'total_intensity': np.float64, 'kl': np.float64, 'dist': np.float64,
            'peaks': np.int64, 'scan_first': np.int64, 'scan_last': np.int64,
        }
        return {
            name: np.array([getattr(f, name) for f in self.features], dtype=dtype)
            for name, dtype in columns.items()
        }
