"""Tests for mean and nearest-rank percentile."""

import random

import pytest

from chatload.metrics.stats import mean, percentile


class TestMean:
    def test_empty_is_zero(self):
        assert mean([]) == 0.0

    def test_average(self):
        assert mean([10.0, 20.0, 30.0]) == pytest.approx(20.0)


class TestPercentile:
    def test_empty_is_zero(self):
        assert percentile([], 95) == 0.0

    def test_bounds_are_min_and_max(self):
        samples = [42.0, 7.0, 19.0, 3.5, 88.0]
        assert percentile(samples, 0) == 3.5
        assert percentile(samples, 100) == 88.0

    def test_nearest_rank_does_not_interpolate(self):
        samples = [15.0, 20.0, 35.0, 40.0, 50.0]
        # ceil(0.5 * 5) - 1 = 2
        assert percentile(samples, 50) == 35.0
        # ceil(0.9 * 5) - 1 = 4
        assert percentile(samples, 90) == 50.0

    def test_tail_percentiles_on_ten_samples(self):
        samples = [float(v) for v in range(1, 11)]
        assert percentile(samples, 95) == 10.0
        assert percentile(samples, 99) == 10.0
        assert percentile(samples, 25) == 3.0

    def test_median_of_odd_length_is_a_sample(self):
        samples = [9.1, 2.2, 5.5, 7.3, 1.4, 6.6, 3.0]
        result = percentile(samples, 50)
        assert result in samples
        assert result == 5.5

    def test_single_sample(self):
        assert percentile([12.5], 99) == 12.5

    def test_insertion_order_is_irrelevant(self):
        samples = [float(v) for v in range(1, 51)]
        shuffled = samples[:]
        random.Random(7).shuffle(shuffled)
        for pct in (10, 50, 95, 99):
            assert percentile(shuffled, pct) == percentile(samples, pct)

    def test_input_is_not_mutated(self):
        samples = [3.0, 1.0, 2.0]
        percentile(samples, 50)
        assert samples == [3.0, 1.0, 2.0]
