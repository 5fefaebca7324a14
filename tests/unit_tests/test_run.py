"""Tests for scans, runs and the spectrum cache."""

import logging
import threading
import unittest

import numpy as np
import pytest

from alphafeatures.run.scans import (
    Run,
    Scan,
    SpectrumCache,
    get_mz_extraction_range,
    strip_zero_mz,
)


def counting_loader(fail_times=0, error=OSError):
    """Loader returning a one-point spectrum per scan; counts calls per scan."""
    calls = {}

    def load(scan_num):
        calls[scan_num] = calls.get(scan_num, 0) + 1
        if calls[scan_num] <= fail_times:
            raise error(f"read error on scan {scan_num}")
        return np.array([100.0 + scan_num]), np.array([1.0])

    return load, calls


class TestStripZeroMz(unittest.TestCase):
    """Test removal of zero m/z padding."""

    def test_no_zeros(self):
        mz, it = np.array([1.0, 2.0]), np.array([3.0, 4.0])
        out_mz, out_it = strip_zero_mz(mz, it)
        self.assertIs(out_mz, mz)
        self.assertIs(out_it, it)

    def test_leading_and_trailing(self):
        mz = np.array([0.0, 0.0, 400.0, 500.0, 0.0])
        it = np.array([9.0, 9.0, 1.0, 2.0, 9.0])
        out_mz, out_it = strip_zero_mz(mz, it)
        np.testing.assert_array_equal(out_mz, [400.0, 500.0])
        np.testing.assert_array_equal(out_it, [1.0, 2.0])

    def test_all_zero(self):
        out_mz, _ = strip_zero_mz(np.zeros(3), np.ones(3))
        self.assertEqual(len(out_mz), 0)


class TestSpectrumCache:
    """Test the LRU cache and retried decoding."""

    def test_lru_eviction(self):
        load, calls = counting_loader()
        cache = SpectrumCache(load, capacity=2)

        for num in (1, 2, 1, 3, 2):
            cache.get(num)

        assert cache.hits == 1
        assert cache.misses == 4
        assert cache.evictions == 2
        assert 1 not in cache
        assert 2 in cache and 3 in cache
        assert calls == {1: 1, 2: 2, 3: 1}

    def test_retry_then_success(self, caplog):
        load, calls = counting_loader(fail_times=1)
        cache = SpectrumCache(load, max_retries=2)

        with caplog.at_level(logging.WARNING):
            mz, _ = cache.get(5)

        np.testing.assert_array_equal(mz, [105.0])
        assert calls[5] == 2
        assert cache.failures == 0
        assert "attempt 1/2" in caplog.text

    def test_failure_gives_empty_uncached_spectrum(self, caplog):
        load, calls = counting_loader(fail_times=10)
        cache = SpectrumCache(load, max_retries=2)

        with caplog.at_level(logging.ERROR):
            mz, intensity = cache.get(5)

        assert len(mz) == 0 and len(intensity) == 0
        assert cache.failures == 1
        assert 5 not in cache
        assert "Giving up" in caplog.text

        cache.get(5)
        assert calls[5] == 4

    def test_other_errors_propagate(self):
        load, _ = counting_loader(fail_times=1, error=KeyError)
        cache = SpectrumCache(load)
        with pytest.raises(KeyError):
            cache.get(1)

    def test_length_mismatch(self):
        cache = SpectrumCache(lambda num: (np.array([1.0, 2.0]), np.array([1.0])))
        with pytest.raises(ValueError):
            cache.get(1)

    def test_concurrent_readers_decode_once(self):
        load, calls = counting_loader()
        cache = SpectrumCache(load)
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            cache.get(7)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert calls[7] == 1
        assert cache.hits == 7

    def test_clear(self):
        load, _ = counting_loader()
        cache = SpectrumCache(load)
        cache.get(1)
        cache.clear()
        assert len(cache) == 0

    @pytest.mark.parametrize("kwargs", [{"capacity": 0}, {"max_retries": 0}])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            SpectrumCache(lambda num: (np.zeros(0), np.zeros(0)), **kwargs)


def make_scans():
    return [
        Scan(num=1, retention_time=0.0, mz_array=np.array([400.0, 900.0]),
             intensity_array=np.array([1.0, 1.0])),
        Scan(num=2, retention_time=1.0, ms_level=2, precursor_mz=500.0, precursor_charge=2),
        Scan(num=3, retention_time=2.0, mz_array=np.array([350.0, 800.0]),
             intensity_array=np.array([1.0, 1.0])),
        Scan(num=5, retention_time=4.0, mz_array=np.array([0.0, 420.0, 950.0]),
             intensity_array=np.array([5.0, 1.0, 1.0])),
    ]


class TestRun(unittest.TestCase):
    """Test scan lookups and ranges."""

    def setUp(self):
        self.run = Run(make_scans(), name="test")

    def test_ms_levels(self):
        self.assertEqual(self.run.scan_count, 3)
        self.assertEqual(len(self.run), 3)
        self.assertEqual(len(self.run.ms2_scans), 1)
        self.assertEqual(self.run.get_scan_num_for_index(2), 5)

    def test_index_for_scan_num(self):
        self.assertEqual(self.run.get_index_for_scan_num(3), 1)
        self.assertEqual(self.run.get_index_for_scan_num(4), -1)
        self.assertEqual(self.run.get_index_for_scan_num(4, nearest=True), 2)
        self.assertEqual(self.run.get_index_for_scan_num(99, nearest=True), 2)
        self.assertEqual(self.run.get_index_for_scan_num(0, nearest=True), 0)

    def test_index_for_time(self):
        self.assertEqual(self.run.get_index_for_time(2.9), 1)
        self.assertEqual(self.run.get_index_for_time(3.1), 2)
        self.assertEqual(self.run.get_index_for_time(-1.0), 0)
        self.assertEqual(self.run.get_index_for_time(100.0), 2)

    def test_spectrum_strips_zero_mz(self):
        mz, intensity = self.run.get_spectrum(2)
        np.testing.assert_array_equal(mz, [420.0, 950.0])
        np.testing.assert_array_equal(intensity, [1.0, 1.0])

    def test_mz_range_from_spectra(self):
        self.assertEqual(self.run.mz_range, (350.0, 950.0))
        self.assertEqual(get_mz_extraction_range(self.run), (349.0, 951.0))

    def test_mz_range_from_headers(self):
        scans = make_scans()
        for s in scans:
            s.low_mz, s.high_mz = 300.0, 1500.0
        run = Run(scans)
        self.assertEqual(run.mz_range, (300.0, 1500.0))
        self.assertEqual(get_mz_extraction_range(run), (299.0, 1501.0))

    def test_extraction_range_from_scan_range(self):
        scans = make_scans()
        scans[0].start_mz, scans[0].end_mz = 400.0, 1200.0
        self.assertEqual(get_mz_extraction_range(Run(scans)), (399.0, 1201.0))

    def test_scan_numbers_must_increase(self):
        scans = make_scans()
        scans[3].num = 1
        with self.assertRaises(ValueError):
            Run(scans)

    def test_loader_used(self):
        load, calls = counting_loader()
        run = Run([Scan(num=1, retention_time=0.0)], loader=load)
        mz, _ = run.get_spectrum(0)
        np.testing.assert_array_equal(mz, [101.0])
        self.assertEqual(calls, {1: 1})

    def test_lookups_on_run_without_ms1(self):
        run = Run([Scan(num=1, retention_time=0.0, ms_level=2)])
        self.assertEqual(run.scan_count, 0)
        self.assertEqual(run.get_index_for_time(5.0), -1)
        self.assertEqual(run.get_index_for_scan_num(1), -1)
        self.assertEqual(Run([]).get_index_for_time(0.0), -1)

    def test_scan_without_arrays_is_empty(self):
        run = Run([Scan(num=1, retention_time=0.0)])
        mz, _ = run.get_spectrum(0)
        self.assertEqual(len(mz), 0)
        self.assertEqual(run.mz_range, (0.0, 0.0))


if __name__ == '__main__':
    unittest.main()
