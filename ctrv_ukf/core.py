"""Unscented Kalman Filter for lidar/radar fusion under the CTRV model.

Example
-------
>>> from ctrv_ukf import MeasurementPackage, UKFEstimator
>>>
>>> ukf = UKFEstimator()
>>> ukf.process_measurement(MeasurementPackage.lidar(5.0, 3.0, timestamp=0))
>>> ukf.process_measurement(MeasurementPackage.radar(5.9, 0.54, 1.2, timestamp=50_000))
>>> print(ukf.x, ukf.nis_radar)
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from .config import (
    BEARING_INDEX,
    INITIAL_COVARIANCE_DIAG,
    N_AUG,
    N_X,
    YAW_INDEX,
    NoiseParams,
)
from .exceptions import InvalidInputError, NumericalFailureError, UKFError
from .measurement import MeasurementPackage, SensorType
from .models import (
    augment,
    ctrv_predict,
    deviations,
    generate_sigma_points,
    lidar_matrix,
    lidar_noise,
    radar_measurement,
    radar_noise,
    sigma_weights,
    unscented_mean_cov,
)
from .utils import (
    ensure_psd,
    normalize_angle,
    safe_inverse,
    validate_square,
    validate_vector,
)

logger = logging.getLogger(__name__)

__all__ = [
    "UKFEstimator",
    "UKFError",
    "InvalidInputError",
    "NumericalFailureError",
]

_MICROSECONDS = 1_000_000.0


def _require_finite(context: str, *arrays: np.ndarray) -> None:
    """Raise :class:`NumericalFailureError` if any array holds NaN/Inf."""
    for arr in arrays:
        if not np.all(np.isfinite(arr)):
            raise NumericalFailureError(f"{context} produced non-finite values")


# ---------------------------------------------------------------------------
# Main class
# ---------------------------------------------------------------------------


class UKFEstimator:
    """Unscented Kalman Filter tracking ``[px, py, v, yaw, yaw_rate]``.

    The filter is fed one :class:`~ctrv_ukf.MeasurementPackage` at a time
    through :meth:`process_measurement`.  The first measurement seeds the
    state; every later one triggers a CTRV prediction over the elapsed
    time followed by the lidar or radar correction matching the
    measurement's sensor type.

    Parameters
    ----------
    noise : NoiseParams, optional
        Process and measurement noise standard deviations.  Defaults to
        ``NoiseParams()``.
    use_laser : bool, optional
        If *False*, lidar measurements are ignored once the filter is
        initialized (default *True*).
    use_radar : bool, optional
        If *False*, radar measurements are ignored once the filter is
        initialized (default *True*).

    Raises
    ------
    InvalidInputError
        If a noise standard deviation is not finite and positive.

    Examples
    --------
    >>> ukf = UKFEstimator(NoiseParams(std_a=1.0, std_yawdd=0.5))
    >>> ukf.is_initialized
    False
    """

    def __init__(
        self,
        noise: Optional[NoiseParams] = None,
        use_laser: bool = True,
        use_radar: bool = True,
    ) -> None:
        self._noise = (noise if noise is not None else NoiseParams()).validate()
        self.use_laser = use_laser
        self.use_radar = use_radar
        self.n_x = N_X
        self.n_aug = N_AUG
        self._reset_state()

    def _reset_state(self) -> None:
        self._x = np.zeros(N_X)
        self._P = np.diag(INITIAL_COVARIANCE_DIAG).astype(np.float64)
        self._weights: Optional[np.ndarray] = None
        self._sigma_pred: Optional[np.ndarray] = None
        self._sigma_stale = False
        self._time_us = 0
        self._is_initialized = False
        self._nis_laser = 0.0
        self._nis_radar = 0.0

    # -- Properties ---------------------------------------------------------

    @property
    def noise(self) -> NoiseParams:
        """Noise standard deviations in use."""
        return self._noise

    @property
    def is_initialized(self) -> bool:
        """*True* once the first measurement has seeded the state."""
        return self._is_initialized

    @property
    def time_us(self) -> int:
        """Timestamp (microseconds) of the last processed measurement."""
        return self._time_us

    @property
    def x(self) -> np.ndarray:
        """Current state estimate ``[px, py, v, yaw, yaw_rate]`` (a copy).

        Examples
        --------
        >>> ukf.x
        array([0., 0., 0., 0., 0.])
        >>> ukf.x = np.array([1.0, 2.0, 3.0, 0.1, 0.0])
        """
        return self._x.copy()

    @x.setter
    def x(self, value: np.ndarray) -> None:
        self._x = validate_vector(value, N_X, "state")
        self._sigma_stale = True

    @property
    def P(self) -> np.ndarray:
        """Current state covariance, 5 x 5 (a copy)."""
        return self._P.copy()

    @P.setter
    def P(self, value: np.ndarray) -> None:
        value = validate_square(value, N_X, "P")
        if not np.allclose(value, value.T):
            raise InvalidInputError("P must be symmetric")
        self._P = value
        self._sigma_stale = True

    @property
    def weights(self) -> Optional[np.ndarray]:
        """Sigma-point weights from the last prediction, or *None*."""
        return None if self._weights is None else self._weights.copy()

    @property
    def sigma_points_pred(self) -> Optional[np.ndarray]:
        """Predicted sigma points ``(5, 15)`` from the last prediction, or *None*."""
        return None if self._sigma_pred is None else self._sigma_pred.copy()

    @property
    def nis_laser(self) -> float:
        """Normalized innovation squared of the last lidar update."""
        return self._nis_laser

    @property
    def nis_radar(self) -> float:
        """Normalized innovation squared of the last radar update."""
        return self._nis_radar

    # -- Methods ------------------------------------------------------------

    def process_measurement(self, meas: MeasurementPackage) -> "UKFEstimator":
        """Fold one measurement into the estimate.

        The first call seeds the state from the measurement and returns.
        Later calls predict forward to the measurement's timestamp and
        then run the correction for its sensor type.  Measurements from a
        disabled sensor are ignored after initialization.

        A numerical failure is contained to the current cycle: if the
        prediction cannot be computed nothing changes, and if the
        correction cannot be computed the predicted state is kept.

        Parameters
        ----------
        meas : MeasurementPackage
            The measurement; timestamps must be non-decreasing.

        Returns
        -------
        UKFEstimator
            *self*, for method chaining.

        Raises
        ------
        InvalidInputError
            If *meas* is not a measurement package or its timestamp is
            earlier than the previous one.
        """
        if not isinstance(meas, MeasurementPackage):
            raise InvalidInputError(
                f"expected a MeasurementPackage, got {type(meas).__name__}"
            )

        if not self._is_initialized:
            self._bootstrap(meas)
            return self

        if meas.sensor_type is SensorType.LASER and not self.use_laser:
            logger.debug("lidar disabled, ignoring measurement at %d", meas.timestamp)
            return self
        if meas.sensor_type is SensorType.RADAR and not self.use_radar:
            logger.debug("radar disabled, ignoring measurement at %d", meas.timestamp)
            return self

        if meas.timestamp < self._time_us:
            raise InvalidInputError(
                f"timestamp {meas.timestamp} precedes last processed {self._time_us}"
            )
        dt = (meas.timestamp - self._time_us) / _MICROSECONDS

        try:
            self.prediction(dt)
        except NumericalFailureError as exc:
            logger.warning("skipping cycle at %d: prediction failed: %s", meas.timestamp, exc)
            return self
        self._time_us = meas.timestamp

        try:
            if meas.sensor_type is SensorType.LASER:
                self.update_lidar(meas)
            else:
                self.update_radar(meas)
        except NumericalFailureError as exc:
            logger.warning(
                "keeping prediction at %d: %s update failed: %s",
                meas.timestamp,
                meas.sensor_type.value,
                exc,
            )
        return self

    def _bootstrap(self, meas: MeasurementPackage) -> None:
        z = meas.raw_measurements
        if meas.sensor_type is SensorType.RADAR:
            rho, phi, rho_dot = z
            # Range rate stands in for speed and bearing for heading.
            self._x = np.array([rho * np.cos(phi), rho * np.sin(phi), rho_dot, phi, 0.0])
        else:
            self._x = np.array([z[0], z[1], 0.0, 0.0, 0.0])
        self._time_us = meas.timestamp
        self._is_initialized = True
        logger.info("initialized from %s at %d: x=%s", meas.sensor_type.value, meas.timestamp, self._x)

    def prediction(self, dt: float) -> "UKFEstimator":
        """Predict sigma points, state and covariance ``dt`` seconds ahead.

        Parameters
        ----------
        dt : float
            Elapsed time in seconds (must be >= 0).

        Returns
        -------
        UKFEstimator
            *self*, for method chaining.

        Raises
        ------
        InvalidInputError
            If *dt* is negative or not finite.
        NumericalFailureError
            If the augmented covariance cannot be factorized or the
            prediction is not finite.  The filter is left unchanged.
        """
        dt = float(dt)
        if not np.isfinite(dt) or dt < 0.0:
            raise InvalidInputError(f"dt must be finite and >= 0, got {dt}")

        x_aug, P_aug = augment(self._x, self._P, self._noise)
        sigma_aug = generate_sigma_points(x_aug, P_aug)
        sigma_pred = ctrv_predict(sigma_aug, dt)

        weights = sigma_weights(self.n_aug)
        x_pred, P_pred = unscented_mean_cov(sigma_pred, weights, YAW_INDEX)
        _require_finite("prediction", sigma_pred, x_pred, P_pred)

        self._weights = weights
        self._sigma_pred = sigma_pred
        self._sigma_stale = False
        self._x = x_pred
        self._P = ensure_psd(P_pred)
        logger.debug("predicted dt=%.6f x=%s", dt, x_pred)
        return self

    def update_lidar(self, meas: MeasurementPackage) -> "UKFEstimator":
        """Correct the state with a lidar position measurement.

        The lidar model is linear, so a standard Kalman update is used.

        Parameters
        ----------
        meas : MeasurementPackage
            A ``LASER`` measurement ``[px, py]``.

        Returns
        -------
        UKFEstimator
            *self*, for method chaining.

        Raises
        ------
        InvalidInputError
            If *meas* is not a lidar measurement.
        NumericalFailureError
            If the innovation covariance is singular.  The filter is left
            unchanged.
        """
        if meas.sensor_type is not SensorType.LASER:
            raise InvalidInputError(f"update_lidar got a {meas.sensor_type.value} measurement")

        H = lidar_matrix()
        y = meas.raw_measurements - H @ self._x
        S = H @ self._P @ H.T + lidar_noise(self._noise)
        S_inv = safe_inverse(S, "lidar innovation covariance")
        K = self._P @ H.T @ S_inv

        x_new = self._x + K @ y
        P_new = (np.eye(N_X) - K @ H) @ self._P
        nis = float(y @ S_inv @ y)
        _require_finite("lidar update", x_new, P_new)

        self._x = x_new
        self._P = ensure_psd(P_new)
        self._nis_laser = nis
        self._sigma_stale = True
        logger.debug("lidar update NIS=%.4f", nis)
        return self

    def update_radar(self, meas: MeasurementPackage) -> "UKFEstimator":
        """Correct the state with a radar measurement.

        The predicted sigma points from the last :meth:`prediction` are
        mapped into ``[rho, phi, rho_dot]`` space to obtain the predicted
        measurement, its covariance and the state/measurement
        cross-covariance.

        Parameters
        ----------
        meas : MeasurementPackage
            A ``RADAR`` measurement ``[rho, phi, rho_dot]``.

        Returns
        -------
        UKFEstimator
            *self*, for method chaining.

        Raises
        ------
        InvalidInputError
            If *meas* is not a radar measurement.
        UKFError
            If the state has changed since the last :meth:`prediction`,
            either through another update or by assignment to ``x`` or
            ``P``, or no prediction has been run yet.
        NumericalFailureError
            If the innovation covariance is singular.  The filter is left
            unchanged.
        """
        if meas.sensor_type is not SensorType.RADAR:
            raise InvalidInputError(f"update_radar got a {meas.sensor_type.value} measurement")
        if self._sigma_pred is None or self._sigma_stale:
            raise UKFError(
                "update_radar needs sigma points predicted from the current state; "
                "call prediction first"
            )

        weights = self._weights
        z_sigma = radar_measurement(self._sigma_pred)
        z_pred, S = unscented_mean_cov(z_sigma, weights, BEARING_INDEX, circular=True)
        S = S + radar_noise(self._noise)

        x_dev = deviations(self._sigma_pred, self._x, YAW_INDEX)
        z_dev = deviations(z_sigma, z_pred, BEARING_INDEX)
        T = (x_dev * weights) @ z_dev.T

        S_inv = safe_inverse(S, "radar innovation covariance")
        K = T @ S_inv

        z_diff = meas.raw_measurements - z_pred
        z_diff[BEARING_INDEX] = normalize_angle(z_diff[BEARING_INDEX])

        x_new = self._x + K @ z_diff
        P_new = self._P - K @ S @ K.T
        nis = float(z_diff @ S_inv @ z_diff)
        _require_finite("radar update", x_new, P_new)

        self._x = x_new
        self._P = ensure_psd(P_new)
        self._nis_radar = nis
        self._sigma_stale = True
        logger.debug("radar update NIS=%.4f", nis)
        return self

    def reset(self) -> "UKFEstimator":
        """Return to the freshly constructed, uninitialized state.

        Returns
        -------
        UKFEstimator
            *self*, for method chaining.
        """
        self._reset_state()
        return self

    # -- Representation -----------------------------------------------------

    def __repr__(self) -> str:
        return (
            f"UKFEstimator(initialized={self._is_initialized}, "
            f"time_us={self._time_us})"
        )
