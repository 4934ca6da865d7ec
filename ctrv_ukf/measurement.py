"""Measurement records consumed by the estimator."""

from __future__ import annotations

import enum
from dataclasses import dataclass

import numpy as np

from .exceptions import InvalidInputError
from .utils import validate_vector


class SensorType(enum.Enum):
    """Origin of a measurement."""

    LASER = "laser"
    RADAR = "radar"

    @property
    def meas_dim(self) -> int:
        """Length of the raw measurement vector for this sensor."""
        return 2 if self is SensorType.LASER else 3


@dataclass(frozen=True, eq=False)
class MeasurementPackage:
    """One timestamped sensor reading.

    Attributes
    ----------
    sensor_type : SensorType
        ``LASER`` readings are ``[px, py]``; ``RADAR`` readings are
        ``[rho, phi, rho_dot]``.
    raw_measurements : numpy.ndarray
        Measurement vector, stored as a read-only float64 copy.
    timestamp : int
        Time of the reading in microseconds.

    Raises
    ------
    InvalidInputError
        If the vector length does not match the sensor, a value is not
        finite, or the timestamp is not an integer.
    """

    sensor_type: SensorType
    raw_measurements: np.ndarray
    timestamp: int

    def __post_init__(self) -> None:
        if not isinstance(self.sensor_type, SensorType):
            raise InvalidInputError(f"unknown sensor type {self.sensor_type!r}")
        if isinstance(self.timestamp, bool) or not isinstance(
            self.timestamp, (int, np.integer)
        ):
            raise InvalidInputError(
                f"timestamp must be an integer number of microseconds, got {self.timestamp!r}"
            )
        z = validate_vector(
            self.raw_measurements,
            self.sensor_type.meas_dim,
            f"{self.sensor_type.value} measurement",
        )
        z.setflags(write=False)
        object.__setattr__(self, "raw_measurements", z)
        object.__setattr__(self, "timestamp", int(self.timestamp))

    @classmethod
    def lidar(cls, px: float, py: float, timestamp: int) -> "MeasurementPackage":
        """Build a lidar reading of the Cartesian position."""
        return cls(SensorType.LASER, np.array([px, py]), timestamp)

    @classmethod
    def radar(cls, rho: float, phi: float, rho_dot: float, timestamp: int) -> "MeasurementPackage":
        """Build a radar reading of range, bearing and range rate."""
        return cls(SensorType.RADAR, np.array([rho, phi, rho_dot]), timestamp)

    def __repr__(self) -> str:
        values = ", ".join(f"{value:.4g}" for value in self.raw_measurements)
        return (
            f"MeasurementPackage({self.sensor_type.name}, [{values}], "
            f"timestamp={self.timestamp})"
        )
