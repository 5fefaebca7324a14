"""Physical constants and resampling-derived tolerances for feature finding.

This module provides the physical constants used for m/z <-> mass conversion
and the numeric defaults of the feature-finding pipeline. Most tolerances in
the pipeline are not independent numbers: they are fractions or multiples of
the resampled grid spacing (1/frequency Da). They are exposed here as
functions of the resampling frequency so that changing the frequency keeps
every downstream tolerance consistent.

Key Features
------------
- HYDROGEN_ION_MASS (H atom minus electron) used for mass <-> m/z conversion
- Resampling defaults (36 bins per Da, wavelet level 3, max charge 6)
- Tolerance helpers derived from the resampling frequency
- Wavelet level derivation from ``frequency / max_charge``

Sources
-------
- NIST physical constants: https://physics.nist.gov/cgi-bin/cuu/Value
"""

import math

# =============================================================================
# Fundamental Physical Constants (NIST values)
# =============================================================================

# Proton mass
# Source: NIST 2018 CODATA
PROTON_MASS = 1.007276466622  # Da

# Electron mass
# Source: NIST 2018 CODATA
ELECTRON_MASS = 0.000548579909  # Da

# Hydrogen atom mass (1H)
HYDROGEN_ATOM_MASS = 1.0078250  # Da

# Charge carrier used for feature masses: H atom minus electron.
# Differs from PROTON_MASS in the 7th decimal; kept for compatibility with
# existing feature files.
HYDROGEN_ION_MASS = HYDROGEN_ATOM_MASS - 5.485e-4  # Da

# Working isotope spacing for accurate mass: 13C adds 1.00336 Da, 15N 0.99703 Da
ISOTOPE_FACTOR = 1.0013  # Da

# =============================================================================
# Resampling and Extraction Defaults
# =============================================================================

# Bins per Da of the resampled grid
DEFAULT_RESAMPLE_FREQUENCY = 36

# Smallest usable frequency: resampling tolerances divide by (frequency - 1)
MIN_RESAMPLE_FREQUENCY = 2

# Highest charge state considered by the peptide combiner
DEFAULT_MAX_CHARGE = 6

# Wavelet decomposition level: 2**3 = 8 bins ~ frequency / max_charge = 36 / 6
DEFAULT_WAVELET_LEVEL = 3

# Minimum elution length (scans) of a wavelet peak
DEFAULT_PEAK_LENGTH_REQUIREMENT = 5

# Scan window processed at once, and the margin discarded at each window edge
DEFAULT_WINDOW_WIDTH = 256
DEFAULT_WINDOW_MARGIN = 64

# Scans averaged around a feature for profile-mode accurate mass
DEFAULT_ACCURATE_MASS_ADJUSTMENT_SCANS = 3

# Isotope peaks walked per feature by the default scorer
DEFAULT_MAX_PEAKS_PER_FEATURE = 10

# Maximum absolute distance (in grid units) between features tied together
DEFAULT_MAX_ABS_DISTANCE_BETWEEN_PEAKS = 1.0

# Background windows (bins along m/z, scans along time)
BACKGROUND_MZ_WINDOW = 72
BACKGROUND_SCAN_WINDOW = 15

# =============================================================================
# Multipliers applied to the grid spacing
# =============================================================================

# Charge hypothesis accepted if seed/peak distance is within this many spacings
CHARGE_MATCH_FACTOR = 2.0

# Isotope peak accepted if within this many spacings of its expected position
ISOTOPE_MATCH_FACTOR = 2.5

# Two extracted peaks closer than this many bins are the same peak sampled twice
SAME_PEAK_BIN_FACTOR = 1.5

# A smoothed rise above (minimum * factor + threshold) marks an elution valley
VALLEY_RISE_FACTOR = 1.1

# Fraction of the resampling bin searched for raw centroid / profile m/z
CENTROID_SEARCH_PROPORTION = 0.66
PROFILE_SEARCH_PROPORTION = 0.66666667


def resample_interval(frequency: int) -> float:
    """Spacing of the resampled grid in Da."""
    return 1.0 / frequency


def max_resampled_distance(frequency: int) -> float:
    """Largest m/z error attributable to resampling alone.

    Args:
        frequency: Resampling frequency (bins per Da)

    Returns:
        ``DEFAULT_MAX_ABS_DISTANCE_BETWEEN_PEAKS / (frequency - 1)``
    """
    if frequency < MIN_RESAMPLE_FREQUENCY:
        raise ValueError(
            f"Resampling frequency must be >= {MIN_RESAMPLE_FREQUENCY}, got {frequency}"
        )
    return DEFAULT_MAX_ABS_DISTANCE_BETWEEN_PEAKS / (frequency - 1)


def charge_match_tolerance(frequency: int) -> float:
    """Tolerance on the fractional isotope distance for a charge hypothesis."""
    return CHARGE_MATCH_FACTOR * max_resampled_distance(frequency)


def isotope_match_tolerance(frequency: int) -> float:
    """Tolerance for matching an observed peak to an expected isotope m/z."""
    return ISOTOPE_MATCH_FACTOR * max_resampled_distance(frequency)


def same_peak_distance(frequency: int) -> float:
    """m/z distance below which two extracted peaks are considered duplicates."""
    return SAME_PEAK_BIN_FACTOR / frequency


def derive_wavelet_level(frequency: int, max_charge: int) -> int:
    """Wavelet level whose scale (2**level bins) best matches the isotope spacing.

    The isotope spacing at the highest charge is ``frequency / max_charge`` bins.

    Examples:
        >>> derive_wavelet_level(36, 6)
        3
        >>> derive_wavelet_level(72, 6)
        4
    """
    if frequency < 1 or max_charge < 1:
        raise ValueError("frequency and max_charge must be >= 1")
    spacing = frequency / max_charge
    return max(1, int(math.ceil(math.log2(spacing)))) if spacing > 1 else 1
