"""Tuning constants and noise parameters for the CTRV filter.

The noise standard deviations default to values tuned for a bicycle-like
target observed by a lidar and a radar; pass a different
:class:`NoiseParams` to :class:`~ctrv_ukf.UKFEstimator` to retune without
touching code.
"""

from __future__ import annotations

import math
from typing import NamedTuple

from .exceptions import InvalidInputError

# ---------------------------------------------------------------------------
# Dimensions
# ---------------------------------------------------------------------------

#: State size ``[px, py, v, yaw, yaw_rate]``.
N_X = 5

#: Augmented state size (state plus longitudinal and yaw acceleration noise).
N_AUG = 7

#: Sigma-point spreading parameter.
LAMBDA = 3 - N_AUG

#: Number of sigma points.
N_SIGMA = 2 * N_AUG + 1

#: Index of the yaw angle in the state vector.
YAW_INDEX = 3

#: Index of the bearing in a radar measurement vector.
BEARING_INDEX = 1

# ---------------------------------------------------------------------------
# Edge-case thresholds
# ---------------------------------------------------------------------------

#: Below this absolute yaw rate the straight-line motion branch is used.
YAW_RATE_EPS = 1e-3

#: Sigma points with both ``|px|`` and ``|py|`` below this are clamped.
NEAR_ZERO_RANGE = 1e-3

#: Value substituted for ``px`` and ``py`` of a near-origin sigma point.
RANGE_CLAMP = 0.01

# ---------------------------------------------------------------------------
# Prior and numerics
# ---------------------------------------------------------------------------

#: Diagonal of the covariance prior.
INITIAL_COVARIANCE_DIAG = (1.0, 1.0, 1.0, 100.0, 100.0)

#: First diagonal jitter tried when a Cholesky factorization fails.
CHOLESKY_JITTER = 1e-9

#: Number of regularized retries before giving up on a factorization.
CHOLESKY_MAX_TRIES = 6

#: 95% chi-squared bounds for NIS (2 dof lidar, 3 dof radar).
NIS_95_THRESHOLD = {"laser": 5.991, "radar": 7.815}


class NoiseParams(NamedTuple):
    """Process and measurement noise standard deviations.

    Parameters
    ----------
    std_a : float
        Longitudinal acceleration noise in m/s^2.
    std_yawdd : float
        Yaw acceleration noise in rad/s^2.
    std_laspx, std_laspy : float
        Lidar x and y position noise in m.
    std_radr : float
        Radar range noise in m.
    std_radphi : float
        Radar bearing noise in rad.
    std_radrd : float
        Radar range-rate noise in m/s.
    """

    std_a: float = 0.4
    std_yawdd: float = 0.65
    std_laspx: float = 0.15
    std_laspy: float = 0.15
    std_radr: float = 0.3
    std_radphi: float = 0.03
    std_radrd: float = 0.3

    def validate(self) -> "NoiseParams":
        """Check that every standard deviation is finite and positive.

        Returns
        -------
        NoiseParams
            A copy with every value coerced to ``float``.

        Raises
        ------
        InvalidInputError
            If any value is not numeric, not finite or not positive.
        """
        values = {}
        for name, value in self._asdict().items():
            try:
                value = float(value)
            except (TypeError, ValueError) as exc:
                raise InvalidInputError(f"{name} must be a number, got {value!r}") from exc
            if not math.isfinite(value) or value <= 0.0:
                raise InvalidInputError(f"{name} must be finite and > 0, got {value}")
            values[name] = value
        return NoiseParams(**values)
