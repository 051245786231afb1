"""
CTRV-Fusion Measurement Records
===============================

Sensor types:
    LASER : [px, py] Cartesian position (linear model)
    RADAR : [rho, phi, rho_dot] range, bearing, range-rate (nonlinear model)

Timestamps are integer microseconds, monotonically non-decreasing.
"""

from dataclasses import dataclass
from enum import Enum
import numbers

import numpy as np


class SensorType(Enum):
    """Supported sensor measurement types."""
    LASER = "laser"   # [px, py]
    RADAR = "radar"   # [rho, phi, rho_dot]

    @property
    def dim(self) -> int:
        return 2 if self is SensorType.LASER else 3


@dataclass(frozen=True)
class Measurement:
    """A single immutable observation.

    Attributes:
        sensor_type: Which sensor produced this measurement
        timestamp: Measurement time in microseconds
        z: Raw measurement vector (2 entries for LASER, 3 for RADAR)
    """
    sensor_type: SensorType
    timestamp: int
    z: np.ndarray

    def __post_init__(self):
        if not isinstance(self.sensor_type, SensorType):
            raise ValueError(f"Unknown sensor type: {self.sensor_type!r}")
        if isinstance(self.timestamp, bool) or not isinstance(self.timestamp, numbers.Integral):
            raise ValueError(f"timestamp must be an integer (microseconds), got {self.timestamp!r}")

        z = np.array(self.z, dtype=np.float64).reshape(-1)
        if z.shape != (self.sensor_type.dim,):
            raise ValueError(
                f"{self.sensor_type.value} measurement needs {self.sensor_type.dim} "
                f"values, got {z.size}")
        if not np.all(np.isfinite(z)):
            raise ValueError(f"Measurement contains non-finite values: {z}")
        if self.sensor_type is SensorType.RADAR and z[0] < 0.0:
            raise ValueError(f"Radar range must be non-negative, got {z[0]}")

        z.setflags(write=False)
        object.__setattr__(self, "z", z)
        object.__setattr__(self, "timestamp", int(self.timestamp))

    @property
    def dim(self) -> int:
        return self.sensor_type.dim

    def __repr__(self):
        values = ", ".join(f"{v:.4g}" for v in self.z)
        return f"Measurement({self.sensor_type.value}, t={self.timestamp}, z=[{values}])"


def laser_measurement(px: float, py: float, timestamp: int) -> Measurement:
    """Create a position-only measurement."""
    return Measurement(SensorType.LASER, timestamp, np.array([px, py]))


def radar_measurement(rho: float, phi: float, rho_dot: float,
                      timestamp: int) -> Measurement:
    """Create a range/bearing/range-rate measurement."""
    return Measurement(SensorType.RADAR, timestamp, np.array([rho, phi, rho_dot]))
