"""Pytest configuration for AlphaFeatures tests.

This module provides common fixtures and configuration for all tests:
synthetic profile spectra, synthetic LC-MS runs and peak clusters. No I/O;
every run is built in memory.
"""

import numpy as np
import pytest

from alphafeatures.features.model import Peak
from alphafeatures.run.scans import Run, Scan

# Elution factors around an apex (scan offset -> fraction of apex height)
ELUTION_PROFILE = {-2: 0.3, -1: 0.7, 0: 1.0, 1: 0.7, 2: 0.3}


def profile_peak(center, height, half_width=0.02, step=0.005, sigma=0.008):
    """Gaussian profile points around ``center`` (symmetric, ascending m/z)."""
    n = int(round(half_width / step))
    offsets = np.arange(-n, n + 1) * step
    return center + offsets, height * np.exp(-offsets ** 2 / (2 * sigma ** 2))


def build_profile_run(n_scans, signals, centroided=False, first_num=1, rt_step=2.0):
    """Run of ``n_scans`` MS1 scans.

    ``signals`` holds ``(mz, height, {scan_index: factor})`` tuples; each
    contributes a Gaussian profile peak with ``height * factor`` to the scans
    it lists. Empty scans get a single zero-intensity point.
    """
    scans = []
    for i in range(n_scans):
        mz_parts, in_parts = [], []
        for mz, height, elution in signals:
            factor = elution.get(i, 0.0)
            if factor <= 0:
                continue
            if centroided:
                mz_parts.append(np.array([mz]))
                in_parts.append(np.array([height * factor]))
            else:
                p_mz, p_in = profile_peak(mz, height * factor)
                mz_parts.append(p_mz)
                in_parts.append(p_in)
        if mz_parts:
            mz_arr = np.concatenate(mz_parts)
            in_arr = np.concatenate(in_parts)
            order = np.argsort(mz_arr, kind='stable')
            mz_arr, in_arr = mz_arr[order], in_arr[order]
        else:
            mz_arr, in_arr = np.array([450.0]), np.array([0.0])
        scans.append(Scan(num=first_num + i, retention_time=i * rt_step,
                          mz_array=mz_arr, intensity_array=in_arr))
    return Run(scans, centroided=centroided, name="synthetic")


def elution_at(apex_index):
    """Elution factors by scan index for an apex at ``apex_index``."""
    return {apex_index + k: v for k, v in ELUTION_PROFILE.items()}


@pytest.fixture
def make_run():
    """Factory for synthetic profile runs (see ``build_profile_run``)."""
    return build_profile_run


@pytest.fixture
def elution():
    """Factory for elution factor dictionaries (see ``elution_at``)."""
    return elution_at


@pytest.fixture
def doubly_charged_run():
    """20 scans (numbers 1-20), one 2+ cluster at m/z 500.250/500.752 peaking at scan 10."""
    apex = elution_at(9)
    return build_profile_run(20, [(500.250, 100.0, apex), (500.752, 35.0, apex)])


@pytest.fixture
def noisy_run():
    """The 2+ cluster plus an isolated single-scan spike at m/z 502.0 (scan 4)."""
    apex = elution_at(9)
    return build_profile_run(20, [
        (500.250, 100.0, apex),
        (500.752, 35.0, apex),
        (502.000, 300.0, {3: 1.0}),
    ])


@pytest.fixture
def small_run():
    """Three empty-ish scans, for APIs that only need a Run."""
    return build_profile_run(3, [])


@pytest.fixture
def make_cluster():
    """Factory for isotope clusters of single elution peaks.

    ``make_cluster(mono_mz, charge, intensities)`` returns one Peak per
    intensity at ``mono_mz + i / charge``, all eluting over scans 5-15.
    """
    def _make(mono_mz, charge, intensities, scan=10, time=20.0):
        return [
            Peak(scan=scan, mz=mono_mz + i / charge, intensity=float(x),
                 scan_first=scan - 5, scan_last=scan + 5,
                 total_intensity=float(x) * 10, time=time)
            for i, x in enumerate(intensities)
        ]
    return _make


# Random seed for reproducibility
@pytest.fixture(scope="session", autouse=True)
def set_random_seed():
    """Set random seed for reproducible tests."""
    np.random.seed(42)
