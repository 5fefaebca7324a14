"""AlphaFeatures - wavelet-based LC-MS feature extraction.

Finds peptide (and small-molecule) features in MS1 data: resampling onto a
regular m/z grid, background removal, Haar wavelet ridge detection, elution
peak walking, isotope clustering with charge inference, and accurate mass
refinement from the raw spectra. Hot loops are Numba-compiled.
"""

__version__ = "0.1.0"

# Import main submodules for convenient access
from alphafeatures import run
from alphafeatures import features
from alphafeatures import spectra
from alphafeatures import extraction
from alphafeatures import scoring
from alphafeatures import combining
from alphafeatures import finder

from alphafeatures.cancellation import CancellationToken, ExtractionCancelled
from alphafeatures.finder import FeatureFinder, FeatureFinderParams, StrategyType, find_features

__all__ = [
    "run",
    "features",
    "spectra",
    "extraction",
    "scoring",
    "combining",
    "finder",
    "CancellationToken",
    "ExtractionCancelled",
    "FeatureFinder",
    "FeatureFinderParams",
    "StrategyType",
    "find_features",
]
