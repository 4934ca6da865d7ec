#!/usr/bin/env python3
"""Track a target driving a circle with alternating lidar and radar.

Usage:
    python circle.py                  # default 20 s run
    python circle.py --duration 40
    python circle.py --radar-only
"""

import argparse
import logging
import math

import numpy as np

from ctrv_ukf import MeasurementPackage, NoiseParams, UKFEstimator, calculate_rmse, nis_consistency
from ctrv_ukf.config import NIS_95_THRESHOLD

# ---------------------------------------------------------------------------
# Ground truth
# ---------------------------------------------------------------------------


def ctrv_truth(t, px0=10.0, py0=0.0, v=3.0, yaw0=math.pi / 2, yaw_rate=0.3):
    """Exact CTRV state ``[px, py, v, yaw, yaw_rate]`` at time *t*."""
    yaw = yaw0 + yaw_rate * t
    px = px0 + v / yaw_rate * (math.sin(yaw) - math.sin(yaw0))
    py = py0 + v / yaw_rate * (math.cos(yaw0) - math.cos(yaw))
    return np.array([px, py, v, yaw, yaw_rate])


def measure(truth, sensor, timestamp, noise, rng):
    px, py, v, yaw, _ = truth
    if sensor == "laser":
        return MeasurementPackage.lidar(
            px + rng.normal(0, noise.std_laspx),
            py + rng.normal(0, noise.std_laspy),
            timestamp,
        )
    rho = math.hypot(px, py)
    phi = math.atan2(py, px)
    rho_dot = (px * v * math.cos(yaw) + py * v * math.sin(yaw)) / rho
    return MeasurementPackage.radar(
        rho + rng.normal(0, noise.std_radr),
        phi + rng.normal(0, noise.std_radphi),
        rho_dot + rng.normal(0, noise.std_radrd),
        timestamp,
    )


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------


def run(duration=20.0, period_us=50_000, radar_only=False, seed=42):
    rng = np.random.default_rng(seed)
    noise = NoiseParams()
    ukf = UKFEstimator(noise, use_laser=not radar_only)

    n_steps = int(duration * 1e6 / period_us)
    estimates, truths = [], []
    nis = {"laser": [], "radar": []}

    for step in range(n_steps):
        timestamp = step * period_us
        truth = ctrv_truth(timestamp / 1e6)
        sensor = "radar" if radar_only or step % 2 else "laser"
        ukf.process_measurement(measure(truth, sensor, timestamp, noise, rng))

        if step > 0:
            nis[sensor].append(ukf.nis_radar if sensor == "radar" else ukf.nis_laser)
        estimates.append(ukf.x[:2])
        truths.append(truth[:2])

        if step % max(1, n_steps // 10) == 0:
            x = ukf.x
            print(f"  t={timestamp / 1e6:6.2f}  "
                  f"true=({truth[0]:7.3f}, {truth[1]:7.3f})  "
                  f"est=({x[0]:7.3f}, {x[1]:7.3f})  v={x[2]:5.2f}")

    rmse = calculate_rmse(estimates, truths)
    print("\nResults:")
    print(f"  RMSE px={rmse[0]:.4f} m  py={rmse[1]:.4f} m")
    for sensor, values in nis.items():
        if values:
            share = nis_consistency(values, NIS_95_THRESHOLD[sensor])
            print(f"  {sensor} NIS below 95% bound: {share:.1%}")
    print(f"  Final P trace: {np.trace(ukf.P):.6f}")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Circular target tracking with a CTRV UKF")
    parser.add_argument("--duration", type=float, default=20.0)
    parser.add_argument("--radar-only", action="store_true")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    print("Circular tracking with a CTRV UKF")
    print("=" * 45)
    run(duration=args.duration, radar_only=args.radar_only)
