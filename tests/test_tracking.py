"""End-to-end tracking tests on a target driving a circle.

The target follows the CTRV model exactly, so the filter's motion model
is correct and any error comes from measurement noise and the initial
transient.
"""

import math

import numpy as np
import pytest

from ctrv_ukf import (
    MeasurementPackage,
    NoiseParams,
    SensorType,
    UKFEstimator,
    calculate_rmse,
    nis_consistency,
)
from ctrv_ukf.config import NIS_95_THRESHOLD

PERIOD_US = 50_000


# ---------------------------------------------------------------------------
# Scenario helpers
# ---------------------------------------------------------------------------


def ctrv_truth(t, v, yaw_rate, radius=10.0):
    """State of a target circling the origin counter-clockwise from (radius, 0)."""
    assert math.isclose(v / yaw_rate, radius)
    yaw0 = math.pi / 2
    yaw = yaw0 + yaw_rate * t
    px = radius + v / yaw_rate * (math.sin(yaw) - math.sin(yaw0))
    py = v / yaw_rate * (math.cos(yaw0) - math.cos(yaw))
    return np.array([px, py, v, yaw, yaw_rate])


def measure(truth, sensor, timestamp, rng=None, noise=NoiseParams()):
    """Lidar or radar reading of *truth*, optionally with Gaussian noise."""

    def jitter(std):
        return 0.0 if rng is None else rng.normal(0.0, std)

    px, py, v, yaw, _ = truth
    if sensor is SensorType.LASER:
        return MeasurementPackage.lidar(
            px + jitter(noise.std_laspx), py + jitter(noise.std_laspy), timestamp
        )
    rho = math.hypot(px, py)
    return MeasurementPackage.radar(
        rho + jitter(noise.std_radr),
        math.atan2(py, px) + jitter(noise.std_radphi),
        (px * v * math.cos(yaw) + py * v * math.sin(yaw)) / rho + jitter(noise.std_radrd),
        timestamp,
    )


def alternating(n_steps, v, yaw_rate, rng=None):
    """Yield ``(truth, measurement)`` pairs alternating lidar and radar."""
    for step in range(n_steps):
        timestamp = step * PERIOD_US
        truth = ctrv_truth(timestamp / 1e6, v, yaw_rate)
        sensor = SensorType.LASER if step % 2 == 0 else SensorType.RADAR
        yield truth, measure(truth, sensor, timestamp, rng)


def assert_valid_covariance(P):
    np.testing.assert_array_equal(P, P.T)
    assert np.linalg.eigvalsh(P).min() >= -1e-9


# ---------------------------------------------------------------------------
# Short noise-free run
# ---------------------------------------------------------------------------


class TestShortRun:
    """Five lidar and five radar readings of a slowly circling target."""

    @pytest.fixture
    def run(self):
        ukf = UKFEstimator()
        estimates, truths = [], []
        for truth, meas in alternating(10, v=1.0, yaw_rate=0.1):
            ukf.process_measurement(meas)
            estimates.append(ukf.x[:2])
            truths.append(truth[:2])
        return ukf, estimates, truths

    def test_position_rmse(self, run):
        _, estimates, truths = run
        rmse = calculate_rmse(estimates, truths)
        assert np.all(rmse < 0.3), f"RMSE too large: {rmse}"

    def test_both_sensors_updated(self, run):
        ukf, _, _ = run
        assert ukf.nis_laser > 0.0
        assert ukf.nis_radar > 0.0
        assert ukf.time_us == 9 * PERIOD_US

    def test_covariance_valid(self, run):
        ukf, _, _ = run
        assert_valid_covariance(ukf.P)


# ---------------------------------------------------------------------------
# Long noisy run
# ---------------------------------------------------------------------------


LONG_RUN_STEPS = 300
SETTLE = 20


def velocity(state):
    """Planar velocity ``(vx, vy)`` of a CTRV state."""
    return state[2] * np.array([math.cos(state[3]), math.sin(state[3])])


@pytest.fixture(scope="module")
def long_run():
    """Fifteen seconds of noisy readings of a target circling at 3 m/s."""
    rng = np.random.default_rng(2024)
    ukf = UKFEstimator()
    estimates, truths, velocities, true_velocities = [], [], [], []
    nis = {SensorType.LASER: [], SensorType.RADAR: []}

    for step, (truth, meas) in enumerate(alternating(LONG_RUN_STEPS, v=3.0, yaw_rate=0.3, rng=rng)):
        ukf.process_measurement(meas)
        if step > 0:
            value = ukf.nis_laser if meas.sensor_type is SensorType.LASER else ukf.nis_radar
            nis[meas.sensor_type].append(value)
        estimates.append(ukf.x[:2])
        truths.append(truth[:2])
        velocities.append(velocity(ukf.x))
        true_velocities.append(velocity(truth))

    return {
        "ukf": ukf,
        "estimates": np.array(estimates),
        "truths": np.array(truths),
        "velocities": np.array(velocities),
        "true_velocities": np.array(true_velocities),
        "nis": nis,
    }


class TestLongRun:
    """The bearing crosses +-pi during the run."""

    def test_bearing_crosses_cut(self, long_run):
        angles = np.arctan2(long_run["truths"][:, 1], long_run["truths"][:, 0])
        assert angles.max() > 3.0
        assert angles.min() < -3.0

    def test_position_rmse(self, long_run):
        rmse = calculate_rmse(long_run["estimates"][SETTLE :], long_run["truths"][SETTLE :])
        assert np.all(rmse < 0.3), f"RMSE too large: {rmse}"

    def test_velocity_converges(self, long_run):
        # (v, yaw) and (-v, yaw + pi) describe the same motion, so compare
        # the velocity vector rather than the signed speed.
        error = np.linalg.norm(long_run["velocities"][-100:] - long_run["true_velocities"][-100:], axis=1)
        assert np.mean(error) < 0.5

    def test_speed_magnitude_converges(self, long_run):
        speeds = np.linalg.norm(long_run["velocities"][-100:], axis=1)
        assert abs(np.mean(speeds) - 3.0) < 0.5

    def test_nis_finite_and_non_negative(self, long_run):
        for values in long_run["nis"].values():
            values = np.asarray(values)
            assert np.all(np.isfinite(values))
            assert np.all(values >= 0.0)

    def test_nis_consistent(self, long_run):
        lidar = long_run["nis"][SensorType.LASER][SETTLE :]
        radar = long_run["nis"][SensorType.RADAR][SETTLE :]
        assert nis_consistency(lidar, NIS_95_THRESHOLD["laser"]) > 0.8
        assert nis_consistency(radar, NIS_95_THRESHOLD["radar"]) > 0.8

    def test_final_state_finite(self, long_run):
        ukf = long_run["ukf"]
        assert np.all(np.isfinite(ukf.x))
        assert_valid_covariance(ukf.P)


# ---------------------------------------------------------------------------
# Step-by-step invariants
# ---------------------------------------------------------------------------


class TestInvariants:
    def test_covariance_after_every_step(self):
        """Drive prediction and update separately and check P after each."""
        rng = np.random.default_rng(7)
        ukf = UKFEstimator()
        last_us = None

        for truth, meas in alternating(120, v=3.0, yaw_rate=0.3, rng=rng):
            if last_us is None:
                ukf.process_measurement(meas)
                last_us = meas.timestamp
                continue

            ukf.prediction((meas.timestamp - last_us) / 1e6)
            last_us = meas.timestamp
            assert_valid_covariance(ukf.P)
            np.testing.assert_allclose(ukf.weights.sum(), 1.0, atol=1e-12)

            if meas.sensor_type is SensorType.LASER:
                ukf.update_lidar(meas)
                nis = ukf.nis_laser
            else:
                ukf.update_radar(meas)
                nis = ukf.nis_radar
            assert_valid_covariance(ukf.P)
            assert np.isfinite(nis) and nis >= 0.0

    def test_deterministic(self):
        def final_state(seed):
            ukf = UKFEstimator()
            for _, meas in alternating(60, v=3.0, yaw_rate=0.3, rng=np.random.default_rng(seed)):
                ukf.process_measurement(meas)
            return ukf.x, ukf.P

        x1, P1 = final_state(11)
        x2, P2 = final_state(11)
        np.testing.assert_array_equal(x1, x2)
        np.testing.assert_array_equal(P1, P2)

    def test_near_origin_target(self):
        """A target passing through the sensor origin must not break the filter."""
        ukf = UKFEstimator()
        ukf.process_measurement(MeasurementPackage.lidar(-0.1, 0.0, timestamp=0))
        ukf.x = np.array([-0.1, 0.0, 2.0, 0.0, 0.0])
        for step in range(1, 6):
            t_us = step * PERIOD_US
            px = -0.1 + 2.0 * t_us / 1e6
            ukf.process_measurement(MeasurementPackage.radar(abs(px) + 1e-4, 0.0, 0.0, t_us))
            assert np.all(np.isfinite(ukf.x))
            assert_valid_covariance(ukf.P)
