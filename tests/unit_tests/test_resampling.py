"""Tests for spectrum resampling.

Tests:
- Grid geometry (length, bin m/z)
- Intensity conservation for dense profile data
- Height preservation for sparse centroid data
- Median elution smoothing
- Validation and cancellation
"""

import numpy as np
import pytest

from alphafeatures.cancellation import CancellationToken, ExtractionCancelled
from alphafeatures.spectra.resampling import (
    ResamplingParams,
    SpectrumResampler,
    grid_length,
    resample_spectrum,
)


def triangular_spectrum(center=500.5, half_width=0.2, height=100.0, step=0.001):
    """Densely sampled triangle over 500-501 (zero outside the triangle)."""
    mz = np.arange(500.0, 501.0 + step / 2, step)
    intensity = np.maximum(0.0, height * (1.0 - np.abs(mz - center) / half_width))
    return mz, intensity


class TestGridGeometry:
    """Test grid length and bin positions."""

    def test_grid_length(self):
        assert grid_length(499.0, 503.0, 36) == 145
        assert grid_length(400.5, 1600.2, 36) == 36 * 1200 + 1

    def test_bin_mz(self):
        resampler = SpectrumResampler((499.0, 503.0))
        assert resampler.n_bins == 145
        assert resampler.bin_mz(45) == pytest.approx(500.25)
        assert resampler.interval == pytest.approx(1 / 36)


class TestResampleSpectrum:
    """Test resampling of a single spectrum."""

    def test_profile_intensity_conserved(self):
        """Grid sum times bin width approximates the integrated intensity."""
        mz, intensity = triangular_spectrum()
        integral = 0.5 * 0.4 * 100.0

        row = resample_spectrum(mz, intensity, 499.0, 503.0, 36, 145)

        assert row.sum() / 36 == pytest.approx(integral, rel=0.02)

    def test_centroid_height_preserved(self):
        """A single point on a bin keeps its height before smoothing."""
        row = resample_spectrum(np.array([500.25]), np.array([100.0]), 499.0, 503.0, 36, 145)

        np.testing.assert_allclose(row[44:47], [25.0, 50.0, 25.0])
        assert row.sum() == pytest.approx(100.0)

    def test_point_between_bins_split(self):
        """A point halfway between two bins is split evenly."""
        mz = np.array([499.0 + 45.5 / 36])
        row = resample_spectrum(mz, np.array([80.0]), 499.0, 503.0, 36, 145)
        assert row[45] == pytest.approx(row[46])

    def test_points_outside_range_ignored(self):
        row = resample_spectrum(np.array([300.0, 600.0]), np.array([50.0, 50.0]),
                                499.0, 503.0, 36, 145)
        assert row.sum() == 0.0

    def test_empty_spectrum(self):
        row = resample_spectrum(np.zeros(0), np.zeros(0), 499.0, 503.0, 36, 145)
        assert row.shape == (145,)
        assert row.sum() == 0.0


class TestSpectrumResampler:
    """Test window resampling."""

    def test_grid_shape(self):
        spectra = [triangular_spectrum() for _ in range(4)]
        grid = SpectrumResampler((499.0, 503.0)).resample_spectra(spectra)
        assert grid.shape == (4, 145)

    def test_elution_smoothing(self):
        """A signal present in one scan leaks into its neighbours."""
        empty = (np.zeros(0), np.zeros(0))
        spectra = [empty, empty, triangular_spectrum(), empty, empty]

        grid = SpectrumResampler((499.0, 503.0)).resample_spectra(spectra)

        assert grid[1].sum() > 0
        assert grid[2].sum() > grid[1].sum()
        assert grid[0].sum() == 0.0

    def test_median_smoothing_removes_lockspray_scan(self):
        empty = (np.zeros(0), np.zeros(0))
        spectra = [empty, empty, triangular_spectrum(), empty, empty]

        plain = SpectrumResampler((499.0, 503.0)).resample_spectra(spectra)
        median = SpectrumResampler(
            (499.0, 503.0), ResamplingParams(use_median_smooth=True)
        ).resample_spectra(spectra)

        assert plain.sum() > 0
        assert median.sum() == 0.0

    def test_no_spectra(self):
        grid = SpectrumResampler((499.0, 503.0)).resample_spectra([])
        assert grid.shape == (0, 145)

    def test_empty_range_rejected(self):
        with pytest.raises(ValueError):
            SpectrumResampler((500.0, 500.0))

    def test_invalid_frequency_rejected(self):
        with pytest.raises(ValueError):
            ResamplingParams(frequency=0)

    def test_cancellation(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(ExtractionCancelled):
            SpectrumResampler((499.0, 503.0)).resample_spectra([triangular_spectrum()], token)
