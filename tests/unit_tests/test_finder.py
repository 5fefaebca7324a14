"""Tests for the feature finder: parameters, strategies and the window loop.

Tests:
- Parameter validation and strategy presets
- Strategy registry
- End-to-end peptide and small-molecule runs on synthetic data
- Windowing, margins, scan subsets and progress reporting
- Intensity window dumping
- Provenance properties, empty runs and cancellation
"""

import logging

import numpy as np
import pytest

from alphafeatures import __version__
from alphafeatures.cancellation import CancellationToken, ExtractionCancelled
from alphafeatures.constants import HYDROGEN_ION_MASS
from alphafeatures.features.model import Feature, Peak
from alphafeatures.finder import (
    STRATEGY_REGISTRY,
    FeatureFinder,
    FeatureFinderParams,
    PeakClustersStrategy,
    SmallMoleculeNegStrategy,
    StrategyType,
    dump_intensity_window,
    find_features,
    get_strategy,
    map_to_scan_numbers,
)
from alphafeatures.run.scans import Run, Scan
from alphafeatures.scoring.accurate_mass import ProfileMassMode

MZ_RANGE = (499.0, 503.0)


@pytest.fixture
def two_cluster_run(make_run, elution):
    """40 scans with 2+ clusters peaking at scan numbers 10 and 30."""
    return make_run(40, [
        (500.250, 100.0, elution(9)),
        (500.752, 35.0, elution(9)),
        (501.250, 100.0, elution(29)),
        (501.752, 35.0, elution(29)),
    ])


class TestFeatureFinderParams:
    """Test parameter validation and presets."""

    def test_defaults(self):
        params = FeatureFinderParams()
        assert params.strategy == "peak_clusters"
        assert params.window_width == 256
        assert params.window_margin == 64
        assert params.resample_frequency == 36
        assert params.profile_mass_mode is ProfileMassMode.CENTER

    def test_enum_strategy_normalised(self):
        params = FeatureFinderParams(strategy=StrategyType.SMALL_MOLECULE)
        assert params.strategy == "small_molecule"

    def test_for_strategy(self):
        assert FeatureFinderParams.for_strategy(StrategyType.PEAK_CLUSTERS).max_charge == 6
        small = FeatureFinderParams.for_strategy(StrategyType.SMALL_MOLECULE_NEG)
        assert small.max_charge == 2
        assert small.strategy == "small_molecule_neg"

    def test_for_strategy_overrides(self):
        params = FeatureFinderParams.for_strategy(StrategyType.PEAK_CLUSTERS, max_charge=4,
                                                  window_width=64, window_margin=8)
        assert params.max_charge == 4
        assert params.window_width == 64

    def test_for_strategy_unknown(self):
        with pytest.raises(ValueError):
            FeatureFinderParams.for_strategy("peak_clusters")

    @pytest.mark.parametrize("kwargs", [
        {"start_scan": -1},
        {"scan_count": -1},
        {"max_charge": 0},
        {"window_margin": -1},
        {"window_width": 128, "window_margin": 64},
        {"accurate_mass_adjustment_scans": -1},
        {"dump_window_size": -1},
        {"resample_frequency": 1},
        {"mz_range": (500.0, 500.0)},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            FeatureFinderParams(**kwargs)


class TestStrategyRegistry:
    """Test strategy lookup."""

    def test_registered_names(self):
        assert sorted(STRATEGY_REGISTRY) == ["peak_clusters", "small_molecule", "small_molecule_neg"]

    def test_get_strategy(self):
        assert get_strategy("peak_clusters") is PeakClustersStrategy
        assert get_strategy("small_molecule_neg") is SmallMoleculeNegStrategy

    def test_unknown_strategy(self):
        with pytest.raises(ValueError, match="Unknown feature strategy"):
            get_strategy("fancy")

    def test_unknown_strategy_in_finder(self, small_run):
        with pytest.raises(ValueError):
            FeatureFinder(small_run, FeatureFinderParams(strategy="fancy"))


class TestMapToScanNumbers:
    """Test window row to scan number translation."""

    def test_feature_and_peaks_mapped_once(self):
        window = [Scan(num=100 + 2 * i, retention_time=0.5 * i) for i in range(10)]
        shared = Peak(scan=4, mz=500.0, intensity=1.0, scan_first=2, scan_last=6)
        f1 = Feature(scan=4, mz=500.0, intensity=1.0, scan_first=2, scan_last=6,
                     comprised=[shared, None])
        f2 = Feature(scan=5, mz=600.0, intensity=1.0, comprised=[shared])

        map_to_scan_numbers([f1, f2], window)

        assert (f1.scan, f1.scan_first, f1.scan_last) == (108, 104, 112)
        assert f1.time == 2.0
        assert f2.scan == 110
        assert (shared.scan, shared.scan_first, shared.scan_last) == (108, 104, 112)
        assert shared.time == 2.0


class TestDumpIntensityWindow:
    """Test storage of resampled intensities around a feature."""

    def test_window_inside_grid(self):
        grid = np.arange(2 * 145, dtype=np.float64).reshape(2, 145)
        f = Feature(scan=1, mz=500.25, intensity=1.0)

        dump_intensity_window(f, grid, 499.0, 36, 1)

        assert len(f.intensity_window) == 72
        np.testing.assert_array_equal(f.intensity_window, grid[1, 9:81])
        assert f.intensity_leading_peaks == 1
        assert f.intensity_trailing_peaks == 1

    def test_window_padded_at_grid_edge(self):
        grid = np.ones((1, 145))
        f = Feature(scan=0, mz=500.25, intensity=1.0)

        dump_intensity_window(f, grid, 499.0, 36, 2)

        assert len(f.intensity_window) == 144
        np.testing.assert_array_equal(f.intensity_window[:27], 0.0)
        np.testing.assert_array_equal(f.intensity_window[27:], 1.0)


class TestPeakClustersEndToEnd:
    """Peptide feature finding on synthetic profile runs."""

    def test_single_cluster(self, doubly_charged_run):
        params = FeatureFinderParams(mz_range=MZ_RANGE)

        feature_set = find_features(doubly_charged_run, params)

        assert len(feature_set) == 1
        f = feature_set[0]
        assert f.charge == 2
        assert f.peaks == 2
        assert f.scan == 10
        assert f.time == pytest.approx(18.0)
        assert f.scan_first <= 8 and f.scan_last >= 12
        assert f.accurate_mz
        assert f.mz == pytest.approx(500.25, abs=1e-6)
        assert f.mass == pytest.approx((500.25 - HYDROGEN_ION_MASS) * 2, abs=1e-4)

    def test_comprised_peaks_in_scan_numbers(self, doubly_charged_run):
        feature_set = find_features(doubly_charged_run, FeatureFinderParams(mz_range=MZ_RANGE))
        mono, isotope = feature_set[0].comprised_peaks()[:2]
        assert mono.scan == 10
        assert isotope.scan == 10
        assert mono.time == pytest.approx(18.0)
        assert isotope.mz == pytest.approx(500.75, abs=1 / 36)

    def test_noise_spike_ignored(self, noisy_run):
        feature_set = find_features(noisy_run, FeatureFinderParams(mz_range=MZ_RANGE))
        assert len(feature_set) == 1
        assert feature_set[0].charge == 2

    def test_centroided_run(self, make_run, elution):
        apex = elution(9)
        run = make_run(20, [(500.250, 100.0, apex), (500.752, 35.0, apex)], centroided=True)

        feature_set = find_features(run, FeatureFinderParams(mz_range=MZ_RANGE))

        assert len(feature_set) == 1
        f = feature_set[0]
        assert f.charge == 2
        assert f.accurate_mz
        assert f.mz == pytest.approx(500.25, abs=1e-6)

    def test_accurate_mass_disabled(self, doubly_charged_run):
        params = FeatureFinderParams(mz_range=MZ_RANGE, accurate_mass_adjustment_scans=0)
        f = find_features(doubly_charged_run, params)[0]
        assert not f.accurate_mz

    def test_mz_range_from_run(self, doubly_charged_run):
        finder = FeatureFinder(doubly_charged_run)
        low, high = finder.mz_range()
        assert low < 450.0
        assert high > 500.75


class TestWindowing:
    """Test overlapping windows, scan subsets and progress."""

    def test_features_from_all_windows(self, two_cluster_run):
        progress = []
        params = FeatureFinderParams(mz_range=MZ_RANGE, window_width=16, window_margin=4)

        feature_set = find_features(two_cluster_run, params, progress.append)

        assert sorted(f.scan for f in feature_set) == [10, 30]
        assert all(f.charge == 2 for f in feature_set)
        # Start, four windows, end
        assert len(progress) == 6
        assert progress[0] == 0.0
        assert progress[-1] == 100.0
        assert progress == sorted(progress)

    def test_scan_subset(self, two_cluster_run):
        params = FeatureFinderParams(mz_range=MZ_RANGE, window_width=16, window_margin=4,
                                     start_scan=20, scan_count=20)

        feature_set = find_features(two_cluster_run, params)

        assert [f.scan for f in feature_set] == [30]

    def test_scan_range(self, two_cluster_run):
        finder = FeatureFinder(two_cluster_run, FeatureFinderParams(
            start_scan=20, scan_count=20, window_width=16, window_margin=4))
        assert finder.scan_range() == (20, 39)
        assert finder.widened_range(20, 39) == (16, 40)

    def test_scan_count_clamped(self, two_cluster_run):
        finder = FeatureFinder(two_cluster_run, FeatureFinderParams(start_scan=30, scan_count=100))
        assert finder.scan_range() == (30, 39)

    def test_widened_range_default_width(self, two_cluster_run):
        finder = FeatureFinder(two_cluster_run)
        assert finder.widened_range(0, 39) == (0, 40)

    def test_start_scan_outside_run(self, two_cluster_run):
        finder = FeatureFinder(two_cluster_run, FeatureFinderParams(start_scan=40))
        with pytest.raises(ValueError):
            finder.find_features()

    def test_single_window_progress(self, doubly_charged_run):
        progress = []
        find_features(doubly_charged_run, FeatureFinderParams(mz_range=MZ_RANGE), progress.append)
        assert progress[0] == 0.0
        assert progress[-1] == 100.0
        assert all(0.0 <= p <= 100.0 for p in progress)


class TestDumpWindows:
    """Test intensity windows stored on features."""

    def test_dump_one_da(self, doubly_charged_run):
        params = FeatureFinderParams(mz_range=MZ_RANGE, dump_window_size=1)

        f = find_features(doubly_charged_run, params)[0]

        assert len(f.intensity_window) == 72
        assert abs(int(np.argmax(f.intensity_window)) - 36) <= 1
        assert f.intensity_leading_peaks == 1

    def test_dump_padded(self, doubly_charged_run):
        params = FeatureFinderParams(mz_range=MZ_RANGE, dump_window_size=2)

        f = find_features(doubly_charged_run, params)[0]

        assert len(f.intensity_window) == 144
        np.testing.assert_array_equal(f.intensity_window[:27], 0.0)

    def test_no_dump_by_default(self, doubly_charged_run):
        f = find_features(doubly_charged_run, FeatureFinderParams(mz_range=MZ_RANGE))[0]
        assert f.intensity_window is None


class TestSmallMoleculeEndToEnd:
    """Small-molecule strategies on a synthetic metabolite."""

    @pytest.fixture
    def metabolite_run(self, make_run, elution):
        apex = elution(9)
        return make_run(20, [(300.000, 100.0, apex), (301.003, 35.0, apex)])

    def test_positive_mode(self, metabolite_run):
        params = FeatureFinderParams.for_strategy(StrategyType.SMALL_MOLECULE,
                                                  mz_range=(299.0, 303.0))

        feature_set = find_features(metabolite_run, params)

        assert len(feature_set) == 1
        f = feature_set[0]
        assert f.charge == 1
        assert f.peaks == 2
        assert f.mz == pytest.approx(300.0, abs=1e-3)
        assert feature_set.properties["strategy"] == "small_molecule"

    def test_negative_mode(self, metabolite_run):
        params = FeatureFinderParams.for_strategy(StrategyType.SMALL_MOLECULE_NEG,
                                                  mz_range=(299.0, 303.0))

        f = find_features(metabolite_run, params)[0]

        assert f.charge == -1
        assert f.mass == pytest.approx(f.mz + HYDROGEN_ION_MASS)


class TestProvenanceAndEdgeCases:
    """Test properties, empty runs and cancellation."""

    def test_properties(self, doubly_charged_run):
        feature_set = find_features(doubly_charged_run, FeatureFinderParams(mz_range=MZ_RANGE))

        props = feature_set.properties
        assert props["strategy"] == "peak_clusters"
        assert props["version"] == __version__
        assert props["algorithm"].endswith("FeatureFinder")
        assert props["parameters"]["profile_mass_mode"] == "center"
        assert props["parameters"]["window_width"] == 256
        for key in ("python.version", "numpy.version", "numba.version", "user.name", "date"):
            assert key in props
        assert feature_set.source == "synthetic"

    def test_sorted_by_intensity(self, make_run, elution):
        run = make_run(20, [
            (500.250, 100.0, elution(9)),
            (500.752, 35.0, elution(9)),
            (502.000, 300.0, elution(9)),
            (502.500, 100.0, elution(9)),
        ])

        feature_set = find_features(run, FeatureFinderParams(mz_range=MZ_RANGE))

        intensities = [f.intensity for f in feature_set]
        assert intensities == sorted(intensities, reverse=True)

    def test_empty_run(self, caplog):
        with caplog.at_level(logging.WARNING):
            feature_set = find_features(Run([], name="empty"))

        assert len(feature_set) == 0
        assert "no MS1 scans" in caplog.text
        assert feature_set.properties["strategy"] == "peak_clusters"

    def test_flat_run(self, small_run):
        assert len(find_features(small_run, FeatureFinderParams(mz_range=MZ_RANGE))) == 0

    def test_cancellation(self, doubly_charged_run):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(ExtractionCancelled):
            find_features(doubly_charged_run, FeatureFinderParams(mz_range=MZ_RANGE), cancel=token)

    def test_cancel_from_progress_callback(self, two_cluster_run):
        """Cancelling after the first window stops the loop before the second."""
        token = CancellationToken()
        calls = []

        def on_progress(percent):
            calls.append(percent)
            if len(calls) == 2:
                token.cancel()

        params = FeatureFinderParams(mz_range=MZ_RANGE, window_width=16, window_margin=4)
        with pytest.raises(ExtractionCancelled):
            find_features(two_cluster_run, params, on_progress, token)
        assert len(calls) == 2
