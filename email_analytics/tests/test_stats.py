"""
Test Module for the statistics helpers.

Covers percentiles, dispersion, IQR filtering, winsorizing, robust z-scores
and Pearson correlation, including the empty / degenerate inputs every
analyzer relies on being handled without exceptions.
"""

import math

import numpy as np
import pytest

from email_analytics.services.stats import (
    coefficient_of_variation,
    iqr_filter,
    iqr_filter_mask,
    mean,
    median,
    pearson_correlation,
    percentile,
    robust_z_scores,
    weighted_mean_std,
    winsorize,
)


class TestLocation:
    """Tests for percentile, median and mean."""

    def test_percentile_interpolates(self):
        assert percentile([1, 2, 3, 4], 0.5) == pytest.approx(2.5)
        assert percentile([10, 20, 30, 40, 50], 0.75) == pytest.approx(40.0)

    @pytest.mark.parametrize("func", [percentile, median, mean])
    def test_empty_input_is_zero(self, func):
        args = ([], 0.5) if func is percentile else ([],)
        assert func(*args) == 0.0

    def test_non_finite_values_are_ignored(self):
        assert median([1.0, float("nan"), 3.0, float("inf")]) == pytest.approx(2.0)


class TestDispersion:
    """Tests for coefficient of variation and weighted moments."""

    def test_coefficient_of_variation(self):
        values = [90, 100, 110]
        expected = float(np.std(values)) / 100
        assert coefficient_of_variation(values) == pytest.approx(expected)

    def test_coefficient_of_variation_non_positive_mean(self):
        assert coefficient_of_variation([0, 0, 0]) is None
        assert coefficient_of_variation([]) is None

    def test_weighted_mean_std(self):
        m, s = weighted_mean_std([1.0, 3.0], [1.0, 1.0])
        assert m == pytest.approx(2.0)
        assert s == pytest.approx(1.0)

    def test_weighted_mean_std_zero_weights(self):
        assert weighted_mean_std([1.0, 2.0], [0.0, 0.0]) == (0.0, 0.0)


class TestOutliers:
    """Tests for IQR filtering, winsorizing and robust z-scores."""

    def test_iqr_filter_drops_spike(self):
        values = [100, 102, 98, 101, 99, 500]
        assert 500 not in iqr_filter(values)
        assert len(iqr_filter(values)) == 5

    def test_small_samples_are_not_filtered(self):
        assert iqr_filter_mask([1, 1000, 2]) == [True, True, True]

    def test_winsorize_clamps_to_band(self):
        values = list(range(1, 11))
        clamped = winsorize(values, 0.10, 0.90)
        assert min(clamped) == pytest.approx(percentile(values, 0.10))
        assert max(clamped) == pytest.approx(percentile(values, 0.90))

    def test_robust_z_scores_zero_mad(self):
        assert robust_z_scores([5, 5, 5]) == [None, None, None]

    def test_robust_z_scores_flag_outlier(self):
        scores = robust_z_scores([10, 11, 9, 10, 30])
        assert scores[-1] > 2.5
        assert abs(scores[0]) < 1


class TestPearsonCorrelation:
    """Tests for Pearson correlation."""

    def test_perfect_positive(self):
        assert pearson_correlation([1, 2, 3, 4], [2, 4, 6, 8]) == pytest.approx(1.0)

    def test_perfect_negative(self):
        assert pearson_correlation([1, 2, 3, 4], [8, 6, 4, 2]) == pytest.approx(-1.0)

    @pytest.mark.parametrize("x,y", [
        ([1, 2], [1, 2]),
        ([1, 1, 1], [1, 2, 3]),
        ([1, 2, 3], [1, 2]),
    ])
    def test_undefined_cases(self, x, y):
        assert pearson_correlation(x, y) is None

    def test_random_series_bounded(self):
        np.random.seed(42)
        x = np.random.normal(size=50)
        y = np.random.normal(size=50)
        r = pearson_correlation(x, y)
        assert r is not None and -1.0 <= r <= 1.0
        assert math.isfinite(r)
