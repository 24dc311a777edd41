# tests/unit/autoscaler/test_unit_policy.py — v1
"""Tests for autoscaler/policy.py — proportional replica computation."""

from __future__ import annotations

import pytest

from shipyard.autoscaler.policy import clamp, compute_desired_replicas


class TestComputeDesiredReplicas:
    def test_double_utilization_doubles_replicas(self):
        assert compute_desired_replicas(2, 80.0, 40.0, 2, 5) == 4

    def test_clamped_to_max(self):
        assert compute_desired_replicas(4, 400.0, 40.0, 2, 5) == 5

    def test_clamped_to_min(self):
        assert compute_desired_replicas(4, 1.0, 40.0, 2, 5) == 2

    def test_rounds_up(self):
        assert compute_desired_replicas(3, 50.0, 40.0, 1, 10) == 4

    def test_exact_ratio_not_inflated_by_float_noise(self):
        assert compute_desired_replicas(3, 70.0, 70.0, 1, 10) == 3
        assert compute_desired_replicas(10, 0.7 * 100, 70.0, 1, 20) == 10

    def test_zero_current_uses_min(self):
        assert compute_desired_replicas(0, 80.0, 40.0, 2, 10) == 4

    def test_zero_load(self):
        assert compute_desired_replicas(5, 0.0, 50.0, 1, 10) == 1

    def test_invalid_target(self):
        with pytest.raises(ValueError):
            compute_desired_replicas(2, 50.0, 0.0, 1, 5)

    @pytest.mark.parametrize("value,expected", [(0, 2), (3, 3), (9, 5)])
    def test_clamp(self, value, expected):
        assert clamp(value, 2, 5) == expected
