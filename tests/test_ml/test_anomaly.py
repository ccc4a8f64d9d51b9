"""
Tests for ml/anomaly.py.

The population standard deviation caps the z-score of any point in an
n-point batch at sqrt(n - 1), so a 5-point batch can never exceed 2.0.
Several tests below pin that behaviour explicitly.
"""

from __future__ import annotations

import math

import pytest

from model_lifecycle.ml.anomaly import detect_outliers, is_anomaly, reconstruction_errors


class TestDetectOutliers:
    def test_short_batch_returns_empty(self):
        assert detect_outliers([1.0, 1.0, 50.0, 1.0]) == []

    def test_five_points_cannot_reach_default_threshold(self):
        # Max |z| for n=5 is sqrt(4) = 2.0 < 2.5.
        assert detect_outliers([10, 11, 9, 10, 100], threshold=2.5) == []

    def test_five_points_flagged_below_bound(self):
        assert detect_outliers([10, 11, 9, 10, 100], threshold=1.9) == [4]

    def test_longer_batch_flags_spike(self):
        data = [10, 11, 9, 10, 12, 10, 11, 9, 10, 11, 100]
        assert detect_outliers(data, threshold=2.5) == [10]

    def test_constant_batch_has_no_outliers(self):
        assert detect_outliers([5.0] * 10) == []

    def test_max_z_bound(self):
        n = 9
        data = [0.0] * (n - 1) + [1.0]
        assert detect_outliers(data, threshold=math.sqrt(n - 1) - 0.01) == [n - 1]
        assert detect_outliers(data, threshold=math.sqrt(n - 1)) == []

    def test_custom_min_points(self):
        assert detect_outliers([1.0, 1.0, 9.0], threshold=1.0, min_points=3) == [2]


class TestIsAnomaly:
    def test_far_value_is_anomalous(self):
        assert is_anomaly(100, [10, 11, 9, 10, 12]) is True

    def test_near_value_is_normal(self):
        assert is_anomaly(11, [10, 11, 9, 10, 12]) is False

    def test_empty_baseline(self):
        assert is_anomaly(1e9, []) is False

    def test_constant_baseline_uses_unit_std(self):
        assert is_anomaly(7.0, [5.0, 5.0, 5.0]) is False
        assert is_anomaly(8.0, [5.0, 5.0, 5.0]) is True

    def test_threshold_is_respected(self):
        assert is_anomaly(14, [10, 11, 9, 10, 12], threshold=10) is False


class TestReconstructionErrors:
    def test_absolute_errors(self):
        assert reconstruction_errors([1.0, -2.0, 3.0], [1.5, -1.0, 3.0]) == pytest.approx(
            [0.5, 1.0, 0.0]
        )

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="Length mismatch"):
            reconstruction_errors([1.0, 2.0], [1.0])
