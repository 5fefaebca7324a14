"""Resampled-grid signal processing.

This module provides:
- Resampling of irregular spectra onto a uniform m/z grid
- Short smoothing kernels (1-2-1, 3-point median)
- Background and local-median surfaces
- Haar MODWT and multiresolution analysis
"""

from .smoothing import (
    smooth_a_little,
    median_smooth,
    smooth_columns_a_little,
    median_smooth_columns,
)

from .resampling import (
    ResamplingParams,
    SpectrumResampler,
    grid_length,
    resample_spectrum,
)

from .background import (
    BackgroundRemover,
    minima_window,
    median_window,
    interpolate_windows,
    remove_background,
    calculate_median,
)

from .wavelet import (
    modwt,
    inverse_modwt,
    multiresolution,
    wavelet_detail,
    wavelet_smooth,
    wavelet_detail_rows,
    wavelet_smooth_columns,
)

__all__ = [
    # Smoothing
    'smooth_a_little',
    'median_smooth',
    'smooth_columns_a_little',
    'median_smooth_columns',
    # Resampling
    'ResamplingParams',
    'SpectrumResampler',
    'grid_length',
    'resample_spectrum',
    # Background
    'BackgroundRemover',
    'minima_window',
    'median_window',
    'interpolate_windows',
    'remove_background',
    'calculate_median',
    # Wavelet
    'modwt',
    'inverse_modwt',
    'multiresolution',
    'wavelet_detail',
    'wavelet_smooth',
    'wavelet_detail_rows',
    'wavelet_smooth_columns',
]
