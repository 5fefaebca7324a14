"""Tests for the small-molecule peak combiner."""

import unittest

import pytest

from alphafeatures.combining.small_molecule import (
    SmallMoleculePeakCombiner,
    determine_best_small_molecule,
    kl_small_molecule,
)
from alphafeatures.constants import HYDROGEN_ION_MASS
from alphafeatures.features.model import Feature, Peak


def peak(mz, intensity, scan=10, first=5, last=15):
    return Peak(scan=scan, mz=mz, intensity=intensity, scan_first=first, scan_last=last,
                total_intensity=intensity * 10, time=20.0)


class TestKLSmallMolecule:
    """Test the two-peak log-ratio score."""

    def test_expected_ratio(self):
        # log(I0/I1) expected at ~299 Da is ~1.63
        assert kl_small_molecule(298.993, [1000 / 1200, 200 / 1200]) == pytest.approx(0.05, abs=0.01)

    def test_single_peak(self):
        assert kl_small_molecule(300.0, [1.0]) == -1.0


class TestDetermineBestSmallMolecule(unittest.TestCase):
    """Test candidate ranking."""

    def candidate(self, peaks, kl):
        f = Feature(scan=1, mz=300.0, intensity=1.0, charge=1)
        f.peaks = peaks
        f.kl = kl
        return f

    def test_empty(self):
        self.assertIsNone(determine_best_small_molecule([]))

    def test_more_peaks_preferred(self):
        two = self.candidate(2, 0.1)
        three = self.candidate(3, 1.0)
        self.assertIs(determine_best_small_molecule([two, three]), three)

    def test_peak_count_capped_at_three(self):
        three = self.candidate(3, 0.2)
        four = self.candidate(4, 0.9)
        self.assertIs(determine_best_small_molecule([four, three]), three)

    def test_multi_peak_beats_single(self):
        single = self.candidate(1, -1.0)
        double = self.candidate(2, 2.0)
        self.assertIs(determine_best_small_molecule([single, double]), double)


class TestSmallMoleculePeakCombiner:
    """Test small-molecule clustering."""

    def test_singly_charged_pair(self, small_run):
        mono, isotope = peak(300.0, 1000.0), peak(301.003, 200.0)

        features = SmallMoleculePeakCombiner().create_features_from_peaks(
            small_run, [mono, isotope]
        )

        assert len(features) == 1
        f = features[0]
        assert f.charge == 1
        assert f.peaks == 2
        assert f.comprised == [mono, isotope]
        assert f.kl == pytest.approx(0.05, abs=0.01)
        assert f.mz == pytest.approx(300.0005)
        assert f.mass == pytest.approx(f.mz - HYDROGEN_ION_MASS)
        assert f.description == ""

    def test_chlorine_flag(self, small_run):
        peaks = [peak(300.0, 1000.0), peak(301.003, 200.0), peak(301.997, 300.0)]

        features = SmallMoleculePeakCombiner().create_features_from_peaks(small_run, peaks)

        assert len(features) == 1
        assert features[0].peaks == 3
        assert features[0].description == "1Cl"

    def test_tall_isotope_rejects_hypothesis(self, small_run):
        mono, isotope = peak(300.0, 1000.0), peak(301.003, 600.0)

        features = SmallMoleculePeakCombiner().create_features_from_peaks(
            small_run, [mono, isotope]
        )

        assert len(features) == 2
        assert all(f.peaks == 1 and f.charge == 1 and f.kl == -1.0 for f in features)

    def test_isotope_outside_elution_rejected(self, small_run):
        mono = peak(300.0, 1000.0, scan=10, first=8, last=12)
        late = peak(301.003, 200.0, scan=15, first=13, last=17)

        features = SmallMoleculePeakCombiner().create_features_from_peaks(small_run, [mono, late])

        assert features[0].comprised == [mono]
        assert features[0].peaks == 1

    def test_zero_intensity_seed_dropped(self, small_run):
        features = SmallMoleculePeakCombiner().create_features_from_peaks(
            small_run, [peak(300.0, 0.0)]
        )
        assert features == []

    def test_negative_mode(self, small_run):
        peaks = [peak(300.0, 1000.0), peak(301.003, 200.0)]

        features = SmallMoleculePeakCombiner(negative_charge_mode=True).create_features_from_peaks(
            small_run, peaks
        )

        assert features[0].charge == -1
        assert features[0].mass == pytest.approx(features[0].mz + HYDROGEN_ION_MASS)

    def test_lone_peak_negative_mode(self, small_run):
        features = SmallMoleculePeakCombiner(negative_charge_mode=True).create_features_from_peaks(
            small_run, [peak(300.0, 1000.0)]
        )
        assert features[0].charge == -1
        assert features[0].peaks == 1
