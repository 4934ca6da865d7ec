"""CTRV motion model, sensor models and unscented-transform building blocks.

Everything here is a pure function of its arguments; the estimator in
:mod:`ctrv_ukf.core` owns the state and composes these pieces.

Sigma points are stored column-wise: a set of ``k`` points in an
``n``-dimensional space is an ``(n, k)`` array.  The state layout is
``[px, py, v, yaw, yaw_rate]`` and the augmented layout appends the
longitudinal acceleration noise ``nu_a`` and yaw acceleration noise
``nu_yawdd``.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from .config import (
    LAMBDA,
    N_X,
    NEAR_ZERO_RANGE,
    RANGE_CLAMP,
    YAW_RATE_EPS,
    NoiseParams,
)
from .utils import normalize_angle, robust_cholesky

# ---------------------------------------------------------------------------
# Sigma points
# ---------------------------------------------------------------------------


def augment(x: np.ndarray, P: np.ndarray, noise: NoiseParams) -> tuple[np.ndarray, np.ndarray]:
    """Append the two process-noise components to the state.

    Parameters
    ----------
    x : numpy.ndarray
        State mean of shape ``(5,)``.
    P : numpy.ndarray
        State covariance of shape ``(5, 5)``.
    noise : NoiseParams
        Supplies ``std_a`` and ``std_yawdd``.

    Returns
    -------
    tuple of numpy.ndarray
        ``(x_aug, P_aug)`` with shapes ``(7,)`` and ``(7, 7)``.  The noise
        block of ``P_aug`` is ``diag(std_a**2, std_yawdd**2)``.
    """
    n_x = x.shape[0]
    x_aug = np.zeros(n_x + 2)
    x_aug[:n_x] = x

    P_aug = np.zeros((n_x + 2, n_x + 2))
    P_aug[:n_x, :n_x] = P
    P_aug[n_x, n_x] = noise.std_a**2
    P_aug[n_x + 1, n_x + 1] = noise.std_yawdd**2
    return x_aug, P_aug


def generate_sigma_points(mean: np.ndarray, cov: np.ndarray, lam: float = LAMBDA) -> np.ndarray:
    """Generate ``2n + 1`` sigma points around *mean*.

    The spread is ``sqrt(lam + n)`` times the columns of the lower
    Cholesky factor of *cov*.

    Parameters
    ----------
    mean : numpy.ndarray
        Mean of shape ``(n,)``.
    cov : numpy.ndarray
        Covariance of shape ``(n, n)``.
    lam : float
        Spreading parameter; ``lam + n`` must be positive.

    Returns
    -------
    numpy.ndarray
        Sigma points of shape ``(n, 2n + 1)``: the mean, then
        ``mean + scale * A[:, i]``, then ``mean - scale * A[:, i]``.

    Raises
    ------
    NumericalFailureError
        If *cov* cannot be factorized even after regularization.
    """
    n = mean.shape[0]
    A = robust_cholesky(cov)
    spread = np.sqrt(lam + n) * A

    points = np.empty((n, 2 * n + 1))
    points[:, 0] = mean
    points[:, 1 : n + 1] = mean[:, None] + spread
    points[:, n + 1 :] = mean[:, None] - spread
    return points


def sigma_weights(n_aug: int, lam: float = LAMBDA) -> np.ndarray:
    """Weights for ``2 * n_aug + 1`` sigma points; they sum to one."""
    weights = np.full(2 * n_aug + 1, 0.5 / (lam + n_aug))
    weights[0] = lam / (lam + n_aug)
    return weights


def deviations(points: np.ndarray, mean: np.ndarray, angle_index: Optional[int] = None) -> np.ndarray:
    """Columns of *points* minus *mean*, with one row optionally wrapped."""
    diff = points - mean[:, None]
    if angle_index is not None:
        diff[angle_index] = normalize_angle(diff[angle_index])
    return diff


def angular_mean(angles: np.ndarray, weights: np.ndarray) -> float:
    """Weighted mean of wrapped angles, taken relative to the first one.

    Angles straddling the ``+-pi`` cut are unwrapped around ``angles[0]``
    before averaging, so ``pi - 0.01`` and ``-pi + 0.01`` average to
    ``pi`` rather than ``0``.
    """
    ref = angles[0]
    return normalize_angle(ref + weights @ normalize_angle(angles - ref))


def unscented_mean_cov(
    points: np.ndarray,
    weights: np.ndarray,
    angle_index: Optional[int] = None,
    circular: bool = False,
) -> tuple[np.ndarray, np.ndarray]:
    """Reconstruct a mean and covariance from weighted sigma points.

    Parameters
    ----------
    points : numpy.ndarray
        Sigma points of shape ``(n, k)``.
    weights : numpy.ndarray
        Weights of shape ``(k,)``.
    angle_index : int, optional
        Row holding an angle; its deviations are wrapped into
        ``(-pi, pi]`` before the outer products are summed.
    circular : bool, optional
        If *True*, the mean of the ``angle_index`` row is computed with
        :func:`angular_mean`.  Use it for rows that are themselves wrapped
        (radar bearing); leave it off for the unbounded state yaw.

    Returns
    -------
    tuple of numpy.ndarray
        ``(mean, cov)`` with shapes ``(n,)`` and ``(n, n)``.
    """
    mean = points @ weights
    if circular and angle_index is not None:
        mean[angle_index] = angular_mean(points[angle_index], weights)
    diff = deviations(points, mean, angle_index)
    cov = (diff * weights) @ diff.T
    return mean, cov


# ---------------------------------------------------------------------------
# Process model
# ---------------------------------------------------------------------------


def ctrv_predict(sigma_aug: np.ndarray, dt: float) -> np.ndarray:
    """Propagate augmented sigma points through the CTRV model.

    Parameters
    ----------
    sigma_aug : numpy.ndarray
        Augmented points of shape ``(7, k)`` (or a single ``(7,)`` point).
    dt : float
        Elapsed time in seconds.

    Returns
    -------
    numpy.ndarray
        Predicted state points of shape ``(5, k)`` (or ``(5,)``).

    Notes
    -----
    For ``|yaw_rate| > YAW_RATE_EPS`` the position moves along a circular
    arc; otherwise it moves in a straight line along the heading.  The
    noise terms add ``dt**2 / 2`` scaled acceleration to position and yaw
    and ``dt`` scaled acceleration to speed and yaw rate.
    """
    px, py, v, yaw, yawd, nu_a, nu_yawdd = np.asarray(sigma_aug, dtype=np.float64)

    turning = np.abs(yawd) > YAW_RATE_EPS
    # Placeholder divisor on the straight branch; its result is discarded.
    safe_yawd = np.where(turning, yawd, 1.0)
    yaw_end = yaw + yawd * dt

    px_step = np.where(
        turning,
        v / safe_yawd * (np.sin(yaw_end) - np.sin(yaw)),
        v * np.cos(yaw) * dt,
    )
    py_step = np.where(
        turning,
        v / safe_yawd * (np.cos(yaw) - np.cos(yaw_end)),
        v * np.sin(yaw) * dt,
    )

    half_dt2 = 0.5 * dt * dt
    return np.stack(
        [
            px + px_step + half_dt2 * np.cos(yaw) * nu_a,
            py + py_step + half_dt2 * np.sin(yaw) * nu_a,
            v + dt * nu_a,
            yaw_end + half_dt2 * nu_yawdd,
            yawd + dt * nu_yawdd,
        ]
    )


# ---------------------------------------------------------------------------
# Sensor models
# ---------------------------------------------------------------------------


def radar_measurement(points: np.ndarray) -> np.ndarray:
    """Map state points into radar space ``[rho, phi, rho_dot]``.

    A point whose ``px`` and ``py`` are both within ``NEAR_ZERO_RANGE`` of
    zero is evaluated at ``px = py = RANGE_CLAMP`` instead, so the range
    never vanishes.  The input array is not modified.

    Parameters
    ----------
    points : numpy.ndarray
        State points of shape ``(5, k)`` (or a single ``(5,)`` point).

    Returns
    -------
    numpy.ndarray
        Measurement points of shape ``(3, k)`` (or ``(3,)``).
    """
    px, py, v, yaw = np.asarray(points, dtype=np.float64)[:4]

    near_origin = (np.abs(px) < NEAR_ZERO_RANGE) & (np.abs(py) < NEAR_ZERO_RANGE)
    px = np.where(near_origin, RANGE_CLAMP, px)
    py = np.where(near_origin, RANGE_CLAMP, py)

    rho = np.sqrt(px * px + py * py)
    phi = np.arctan2(py, px)
    rho_dot = (px * np.cos(yaw) * v + py * np.sin(yaw) * v) / rho
    return np.stack([rho, phi, rho_dot])


def lidar_matrix() -> np.ndarray:
    """Observation matrix selecting ``px`` and ``py`` from the state."""
    H = np.zeros((2, N_X))
    H[0, 0] = 1.0
    H[1, 1] = 1.0
    return H


def lidar_noise(noise: NoiseParams) -> np.ndarray:
    """Lidar measurement covariance ``diag(std_laspx**2, std_laspy**2)``."""
    return np.diag([noise.std_laspx**2, noise.std_laspy**2])


def radar_noise(noise: NoiseParams) -> np.ndarray:
    """Radar measurement covariance for ``[rho, phi, rho_dot]``."""
    return np.diag([noise.std_radr**2, noise.std_radphi**2, noise.std_radrd**2])
