"""Unscented Kalman Filter fusing lidar and radar under the CTRV model.

Quick start::

    from ctrv_ukf import MeasurementPackage, UKFEstimator

    ukf = UKFEstimator()
    ukf.process_measurement(MeasurementPackage.lidar(0.31, 0.58, timestamp=0))
    ukf.process_measurement(MeasurementPackage.radar(1.01, 0.55, 2.01, timestamp=50_000))
    print(ukf.x, ukf.P, ukf.nis_radar)
"""

from .config import NoiseParams
from .core import (
    InvalidInputError,
    NumericalFailureError,
    UKFError,
    UKFEstimator,
)
from .measurement import MeasurementPackage, SensorType
from .tools import calculate_rmse, nis_consistency
from .version import __version__, __version_info__

__all__ = [
    "UKFEstimator",
    "MeasurementPackage",
    "SensorType",
    "NoiseParams",
    "UKFError",
    "InvalidInputError",
    "NumericalFailureError",
    "calculate_rmse",
    "nis_consistency",
    "__version__",
    "__version_info__",
]
