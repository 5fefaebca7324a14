"""Tests for the Haar MODWT and its multiresolution analysis."""

import numpy as np
import pytest

from alphafeatures.spectra.wavelet import (
    inverse_modwt,
    modwt,
    multiresolution,
    wavelet_detail,
    wavelet_detail_rows,
    wavelet_smooth,
    wavelet_smooth_columns,
)


class TestTransform:
    """Test forward and inverse transform properties."""

    def test_perfect_reconstruction(self):
        x = np.random.normal(size=64)
        coeffs = modwt(x, 3)
        assert coeffs.shape == (4, 64)
        np.testing.assert_allclose(inverse_modwt(coeffs), x, atol=1e-10)

    def test_energy_preserved(self):
        x = np.random.normal(size=50)
        coeffs = modwt(x, 4)
        assert np.sum(coeffs ** 2) == pytest.approx(np.sum(x ** 2))

    def test_mra_sums_to_signal(self):
        x = np.random.uniform(0, 10, size=37)
        mra = multiresolution(modwt(x, 3))
        np.testing.assert_allclose(mra.sum(axis=0), x, atol=1e-10)


class TestDetailAndSmooth:
    """Test the level-K detail and smooth used by the peak extractor."""

    def test_detail_of_constant_is_zero(self):
        np.testing.assert_allclose(wavelet_detail(np.full(32, 7.0), 3), 0.0, atol=1e-12)

    def test_smooth_of_constant_is_constant(self):
        np.testing.assert_allclose(wavelet_smooth(np.full(32, 7.0), 3), 7.0)

    def test_detail_impulse_response_zero_phase(self):
        """D3 of an impulse is symmetric and centred on the impulse."""
        x = np.zeros(64)
        x[32] = 1.0

        d = wavelet_detail(x, 3)

        assert np.argmax(d) == 32
        assert d[32] == pytest.approx(8 / 64)
        assert d[33] == pytest.approx(5 / 64)
        for k in range(1, 10):
            assert d[32 + k] == pytest.approx(d[32 - k])
        assert d.sum() == pytest.approx(0.0, abs=1e-12)

    def test_smooth_impulse_response_triangular(self):
        """S3 of an impulse is a triangle over +-7 samples with unit area."""
        x = np.zeros(64)
        x[32] = 1.0

        s = wavelet_smooth(x, 3)

        for k in range(-7, 8):
            assert s[32 + k] == pytest.approx((8 - abs(k)) / 64)
        assert s[24] == pytest.approx(0.0, abs=1e-12)
        assert s.sum() == pytest.approx(1.0)

    def test_rows_and_columns(self):
        grid = np.zeros((16, 32))
        grid[8, 16] = 1.0

        rows = wavelet_detail_rows(grid, 3)
        columns = wavelet_smooth_columns(grid, 3)

        np.testing.assert_allclose(rows[8], wavelet_detail(grid[8], 3))
        np.testing.assert_allclose(rows[0], 0.0, atol=1e-12)
        np.testing.assert_allclose(columns[:, 16], wavelet_smooth(grid[:, 16], 3))
        np.testing.assert_allclose(columns[:, 0], 0.0, atol=1e-12)
