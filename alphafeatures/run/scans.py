"""Scans, runs and the bounded spectrum cache.

A ``Run`` is the ordered collection of scans of one LC-MS acquisition. MS1
scans drive feature finding; all index-based accessors (``get_scan``,
``get_index_for_scan_num``, ...) refer to positions in the MS1 sequence.

Spectra are decoded lazily through a loader callable supplied by the file
reader (mzXML/mzML parsing lives outside this package). Decoded spectra are
kept in a bounded LRU cache keyed by scan number. Decoding is serialised per
run with a lock, so several feature-finding windows may share one run across
threads. Loader failures (``OSError``) are retried a bounded number of times,
then logged; the scan is treated as empty rather than aborting the run.

Examples
--------
>>> scans = [Scan(num=i + 1, retention_time=i * 2.0, mz_array=mz, intensity_array=it)
...          for i, (mz, it) in enumerate(spectra)]
>>> run = Run(scans, centroided=False)
>>> mz, intensity = run.get_spectrum(0)
>>> run.get_index_for_scan_num(10)
9
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

Spectrum = Tuple[np.ndarray, np.ndarray]
SpectrumLoader = Callable[[int], Spectrum]

DEFAULT_CACHE_SIZE = 512
DEFAULT_MAX_RETRIES = 2


@dataclass(eq=False)
class Scan:
    """One acquired mass spectrum.

    The m/z and intensity arrays are optional: when a run is built with a
    loader they stay ``None`` and are decoded on demand.
    """

    num: int
    retention_time: float
    ms_level: int = 1
    precursor_mz: float = 0.0
    precursor_charge: int = 0

    # Acquired m/z range (-1 if unknown), and instrument scan range
    low_mz: float = -1.0
    high_mz: float = -1.0
    start_mz: float = -1.0
    end_mz: float = -1.0

    mz_array: Optional[np.ndarray] = field(default=None, repr=False)
    intensity_array: Optional[np.ndarray] = field(default=None, repr=False)


def empty_spectrum() -> Spectrum:
    return np.zeros(0, dtype=np.float64), np.zeros(0, dtype=np.float64)


def strip_zero_mz(mz: np.ndarray, intensity: np.ndarray) -> Spectrum:
    """Drop leading/trailing entries with m/z == 0 (written by some converters)."""
    n = len(mz)
    if n == 0 or (mz[0] != 0.0 and mz[n - 1] != 0.0):
        return mz, intensity
    end = n
    while end > 0 and mz[end - 1] == 0.0:
        end -= 1
    start = 0
    while start < end and mz[start] == 0.0:
        start += 1
    return mz[start:end].copy(), intensity[start:end].copy()


class SpectrumCache:
    """Bounded LRU cache of decoded spectra with locked, retried decoding.

    Parameters
    ----------
    loader : callable
        ``loader(scan_num) -> (mz, intensity)``; may raise ``OSError``
    capacity : int
        Maximum number of spectra held; least recently used are evicted
    max_retries : int
        Decode attempts per request before giving up
    """

    def __init__(self, loader: SpectrumLoader, capacity: int = DEFAULT_CACHE_SIZE,
                 max_retries: int = DEFAULT_MAX_RETRIES):
        if capacity < 1:
            raise ValueError(f"Cache capacity must be >= 1, got {capacity}")
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self._loader = loader
        self.capacity = capacity
        self.max_retries = max_retries
        self._entries = OrderedDict()
        self._lock = threading.Lock()

        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.failures = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, scan_num: int) -> bool:
        return scan_num in self._entries

    def get(self, scan_num: int) -> Spectrum:
        with self._lock:
            spectrum = self._entries.get(scan_num)
            if spectrum is not None:
                self._entries.move_to_end(scan_num)
                self.hits += 1
                return spectrum

            self.misses += 1
            spectrum = self._decode(scan_num)
            if spectrum is None:
                # Not cached, a later request may succeed
                return empty_spectrum()

            self._entries[scan_num] = spectrum
            if len(self._entries) > self.capacity:
                self._entries.popitem(last=False)
                self.evictions += 1
            return spectrum

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _decode(self, scan_num: int) -> Optional[Spectrum]:
        last_error = None
        for attempt in range(1, self.max_retries + 1):
            try:
                mz, intensity = self._loader(scan_num)
            except OSError as e:
                last_error = e
                logger.warning(
                    f"Reading spectrum of scan {scan_num} failed "
                    f"(attempt {attempt}/{self.max_retries}): {e}"
                )
                continue
            mz = np.asarray(mz, dtype=np.float64)
            intensity = np.asarray(intensity, dtype=np.float64)
            if len(mz) != len(intensity):
                raise ValueError(
                    f"Scan {scan_num}: m/z and intensity arrays differ in length "
                    f"({len(mz)} vs {len(intensity)})"
                )
            return strip_zero_mz(mz, intensity)

        self.failures += 1
        logger.error(
            f"Giving up on spectrum of scan {scan_num} after "
            f"{self.max_retries} attempts, treating it as empty: {last_error}"
        )
        return None


class Run:
    """Ordered scans of one LC-MS run plus global metadata.

    Parameters
    ----------
    scans : sequence of Scan
        All scans in acquisition order (any MS level)
    centroided : bool
        Whether spectra are centroided (selects accurate-mass branch)
    loader : callable, optional
        ``loader(scan_num) -> (mz, intensity)``. Defaults to the arrays
        stored on the ``Scan`` objects.
    cache_size, max_retries : int
        Spectrum cache settings
    name : str
        Label used in logs and FeatureSet provenance
    """

    def __init__(self, scans: Sequence[Scan], centroided: bool = False,
                 loader: Optional[SpectrumLoader] = None,
                 cache_size: int = DEFAULT_CACHE_SIZE,
                 max_retries: int = DEFAULT_MAX_RETRIES,
                 name: str = ""):
        self.scans = list(scans)
        self.ms1_scans: List[Scan] = [s for s in self.scans if s.ms_level == 1]
        self.ms2_scans: List[Scan] = [s for s in self.scans if s.ms_level >= 2]
        self.centroided = centroided
        self.name = name

        self._by_num = {s.num: s for s in self.scans}
        self._ms1_nums = np.array([s.num for s in self.ms1_scans], dtype=np.int64)
        self._ms1_times = np.array(
            [s.retention_time for s in self.ms1_scans], dtype=np.float64
        )
        if len(self._ms1_nums) > 1 and np.any(np.diff(self._ms1_nums) <= 0):
            raise ValueError("MS1 scan numbers must be strictly increasing")

        self.cache = SpectrumCache(
            loader if loader is not None else self._stored_spectrum,
            capacity=cache_size,
            max_retries=max_retries,
        )
        self._mz_range = None

    def __len__(self) -> int:
        return len(self.ms1_scans)

    def __repr__(self) -> str:
        return f"Run(name={self.name!r}, ms1_scans={len(self.ms1_scans)}, centroided={self.centroided})"

    @property
    def scan_count(self) -> int:
        return len(self.ms1_scans)

    def get_scan(self, index: int) -> Scan:
        return self.ms1_scans[index]

    def get_scan_num_for_index(self, index: int) -> int:
        return int(self._ms1_nums[index])

    def get_index_for_scan_num(self, num: int, nearest: bool = False) -> int:
        """Map an MS1 scan number to its index.

        Returns -1 when the number is absent, unless ``nearest`` is set, in
        which case the insertion position (clamped to the last scan) is used.
        """
        n = len(self._ms1_nums)
        if n == 0:
            return -1
        i = int(np.searchsorted(self._ms1_nums, num))
        if i < n and self._ms1_nums[i] == num:
            return i
        if not nearest:
            return -1
        return min(i, n - 1)

    def get_index_for_time(self, time: float) -> int:
        """Index of the MS1 scan closest in retention time; -1 for a run without MS1 scans."""
        n = len(self._ms1_times)
        if n == 0:
            return -1
        i = int(np.searchsorted(self._ms1_times, time))
        i = min(i, n - 1)
        if i == 0:
            return 0
        prev = self._ms1_times[i - 1]
        nxt = self._ms1_times[i]
        return i - 1 if time - prev < nxt - time else i

    def get_spectrum(self, index: int) -> Spectrum:
        """Decoded (m/z, intensity) arrays of the MS1 scan at ``index``."""
        return self.cache.get(self.ms1_scans[index].num)

    def get_spectrum_for_scan(self, scan: Scan) -> Spectrum:
        return self.cache.get(scan.num)

    @property
    def mz_range(self) -> Tuple[float, float]:
        """Overall m/z range of the MS1 scans.

        Uses the acquired ranges from scan headers when present, otherwise
        the decoded spectra.
        """
        if self._mz_range is None:
            lows = [s.low_mz for s in self.ms1_scans if s.low_mz >= 0]
            highs = [s.high_mz for s in self.ms1_scans if s.high_mz >= 0]
            if lows and highs:
                self._mz_range = (float(min(lows)), float(max(highs)))
            else:
                low, high = np.inf, -np.inf
                for i in range(self.scan_count):
                    mz, _ = self.get_spectrum(i)
                    if len(mz):
                        low = min(low, mz[0])
                        high = max(high, mz[-1])
                if low > high:
                    low, high = 0.0, 0.0
                self._mz_range = (float(low), float(high))
        return self._mz_range

    def _stored_spectrum(self, scan_num: int) -> Spectrum:
        scan = self._by_num[scan_num]
        if scan.mz_array is None or scan.intensity_array is None:
            return empty_spectrum()
        return scan.mz_array, scan.intensity_array


def get_mz_extraction_range(run: Run) -> Tuple[float, float]:
    """m/z range to resample for feature finding.

    Taken from the first MS1 scan header (acquired range, then instrument scan
    range), widened by 1 Da on both sides. Falls back to the run-wide range.
    """
    if run.scan_count > 0:
        scan = run.get_scan(0)
        if scan.low_mz >= 0 and scan.high_mz >= 0:
            return scan.low_mz - 1, scan.high_mz + 1
        if scan.start_mz >= 0 and scan.end_mz >= 0:
            return scan.start_mz - 1, scan.end_mz + 1
    low, high = run.mz_range
    return low - 1, high + 1
