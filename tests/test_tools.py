"""Tests for the evaluation helpers."""

import numpy as np
import pytest

from ctrv_ukf import InvalidInputError, calculate_rmse, nis_consistency


class TestRMSE:
    def test_per_component(self):
        est = [np.array([1.0, 2.0]), np.array([3.0, 4.0])]
        truth = [np.array([1.0, 2.0]), np.array([3.0, 6.0])]
        np.testing.assert_allclose(calculate_rmse(est, truth), [0.0, np.sqrt(2.0)])

    def test_perfect_estimate(self):
        est = np.random.default_rng(0).normal(size=(20, 4))
        np.testing.assert_array_equal(calculate_rmse(est, est.copy()), np.zeros(4))

    def test_empty(self):
        with pytest.raises(InvalidInputError):
            calculate_rmse([], [])

    def test_mismatched_lengths(self):
        with pytest.raises(InvalidInputError):
            calculate_rmse([[1.0, 2.0]], [[1.0, 2.0], [3.0, 4.0]])


class TestNISConsistency:
    def test_fraction_below(self):
        assert nis_consistency([1.0, 2.0, 8.0, 3.0], 5.991) == pytest.approx(0.75)

    def test_threshold_is_inclusive(self):
        assert nis_consistency([7.815], 7.815) == 1.0

    def test_empty(self):
        with pytest.raises(InvalidInputError):
            nis_consistency([], 5.991)
