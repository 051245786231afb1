"""
CTRV-Fusion Filter Configuration
================================

Noise and tuning parameters for the CTRV Unscented Kalman Filter.

Process noise (``std_a``, ``std_yawdd``) is application-tunable.
Measurement noise values are fixed by the sensor manufacturer and should only
be changed through configuration, never inside the filter.

State vector (CTRV):
    x = [px, py, v, yaw, yaw_rate]
"""

from dataclasses import dataclass
from enum import Enum
import math

import numpy as np


# =============================================================================
# CONSTANTS
# =============================================================================

N_X = 5                  # State dimension [px, py, v, yaw, yaw_rate]
N_AUG = N_X + 2          # Augmented with [nu_a, nu_yawdd]
N_SIGMA = 2 * N_AUG + 1
YAW_INDEX = 3

US_PER_SECOND = 1_000_000.0

# Seed speed for position-only initialisation (m/s). Tuned heuristic; a
# non-zero value keeps the first yaw/yaw-rate update well-posed.
INITIAL_SPEED_SEED = 0.2

YAW_RATE_THRESHOLD = 1e-3   # rad/s, below this CTRV falls back to straight line
MIN_RANGE = 1e-6            # m, radar projection degenerate below this

LASER_INITIAL_COVARIANCE = np.diag([0.01, 0.01, 1.0, 1.0, 1.0])
RADAR_INITIAL_COVARIANCE = np.diag([0.01, 0.01, 0.01, 0.09, 0.09])
LASER_INITIAL_COVARIANCE.setflags(write=False)
RADAR_INITIAL_COVARIANCE.setflags(write=False)


class TimestampPolicy(Enum):
    """What to do with a measurement older than the current belief."""
    REJECT = "reject"   # raise OutOfOrderMeasurementError
    CLAMP = "clamp"     # treat as dt = 0


@dataclass(frozen=True)
class FilterConfig:
    """Immutable filter configuration.

    Attributes:
        std_a: Longitudinal acceleration process noise std (m/s^2)
        std_yawdd: Yaw acceleration process noise std (rad/s^2)
        std_laspx: Laser x position noise std (m)
        std_laspy: Laser y position noise std (m)
        std_radr: Radar range noise std (m)
        std_radphi: Radar bearing noise std (rad)
        std_radrd: Radar range-rate noise std (m/s)
        initial_speed: Speed seeded on laser initialisation (m/s)
        yaw_rate_threshold: |yaw_rate| below which CTRV uses straight-line motion
        min_range: Range below which the radar projection uses its fallback
        use_laser: Process laser measurements after initialisation
        use_radar: Process radar measurements after initialisation
        timestamp_policy: Handling of out-of-order timestamps
    """
    std_a: float = 1.0
    std_yawdd: float = 1.0

    # Sensor-manufacturer values
    std_laspx: float = 0.15
    std_laspy: float = 0.15
    std_radr: float = 0.3
    std_radphi: float = 0.03
    std_radrd: float = 0.3

    initial_speed: float = INITIAL_SPEED_SEED
    yaw_rate_threshold: float = YAW_RATE_THRESHOLD
    min_range: float = MIN_RANGE

    use_laser: bool = True
    use_radar: bool = True
    timestamp_policy: TimestampPolicy = TimestampPolicy.REJECT

    def __post_init__(self):
        for name in ("std_a", "std_yawdd", "std_laspx", "std_laspy",
                     "std_radr", "std_radphi", "std_radrd"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0.0:
                raise ValueError(f"{name} must be a positive finite number, got {value!r}")
        if not math.isfinite(self.initial_speed):
            raise ValueError(f"initial_speed must be finite, got {self.initial_speed!r}")
        for name in ("yaw_rate_threshold", "min_range"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0.0:
                raise ValueError(f"{name} must be a positive finite number, got {value!r}")
        if not isinstance(self.timestamp_policy, TimestampPolicy):
            raise ValueError(f"Unknown timestamp policy: {self.timestamp_policy!r}")

    def process_noise_covariance(self) -> np.ndarray:
        """2x2 covariance of the augmented noise inputs [nu_a, nu_yawdd]."""
        return np.diag([self.std_a**2, self.std_yawdd**2])

    def laser_noise_covariance(self) -> np.ndarray:
        return np.diag([self.std_laspx**2, self.std_laspy**2])

    def radar_noise_covariance(self) -> np.ndarray:
        return np.diag([self.std_radr**2, self.std_radphi**2, self.std_radrd**2])


# === CONVENIENCE FACTORY FUNCTIONS ===

def make_default_config(**overrides) -> FilterConfig:
    """Default configuration with optional field overrides."""
    return FilterConfig(**overrides)


def make_laser_only_config(std_a: float = 1.0, std_yawdd: float = 1.0) -> FilterConfig:
    """Configuration that ignores radar measurements after initialisation."""
    return FilterConfig(std_a=std_a, std_yawdd=std_yawdd, use_radar=False)


def make_radar_only_config(std_a: float = 1.0, std_yawdd: float = 1.0) -> FilterConfig:
    """Configuration that ignores laser measurements after initialisation."""
    return FilterConfig(std_a=std_a, std_yawdd=std_yawdd, use_laser=False)
