"""
CTRV-Fusion Unscented Kalman Filter
===================================

Fuses asynchronous laser (position) and radar (range, bearing, range-rate)
measurements with a CTRV motion model.

Lifecycle:
    Uninitialized --first measurement--> Initialized --measurement--> Initialized

Every measurement after the first runs prediction over the elapsed time and
then the corrector for its sensor type. Prediction and correction are not
exposed separately; :meth:`UnscentedKalmanFilter.process` sequences them.

The filter itself is stateless: it takes the prior :class:`Belief` and returns
the next one, so a failed step leaves the caller's belief untouched.
:class:`FusionTracker` wraps it for callers that want a long-lived object.

Usage::

    ukf = UnscentedKalmanFilter(FilterConfig(std_a=1.0, std_yawdd=0.6))
    belief = None
    for meas in measurements:
        result = ukf.process(belief, meas)
        belief = result.belief
"""

from dataclasses import dataclass
from typing import Dict, List, Optional
import logging
import threading

import numpy as np

from .ctrv_fusion_config import (
    FilterConfig, TimestampPolicy, N_X, US_PER_SECOND,
    LASER_INITIAL_COVARIANCE, RADAR_INITIAL_COVARIANCE,
)
from .ctrv_fusion_measurement import Measurement, SensorType
from .ctrv_fusion_metrics import NISMonitor
from .ctrv_fusion_motion import Prediction, predict
from .ctrv_fusion_update import Correction, make_correctors


logger = logging.getLogger(__name__)


class OutOfOrderMeasurementError(ValueError):
    """Measurement timestamp precedes the current belief."""


# ===== BELIEF =====

@dataclass(frozen=True)
class Belief:
    """Gaussian belief over [px, py, v, yaw, yaw_rate] at ``timestamp`` (us)."""
    x: np.ndarray
    P: np.ndarray
    timestamp: int

    def __post_init__(self):
        x = np.array(self.x, dtype=np.float64).reshape(-1)
        P = np.array(self.P, dtype=np.float64)
        if x.shape != (N_X,) or P.shape != (N_X, N_X):
            raise ValueError(f"Belief needs a ({N_X},) mean and ({N_X},{N_X}) covariance, "
                             f"got {x.shape} and {P.shape}")
        x.setflags(write=False)
        P.setflags(write=False)
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "P", P)
        object.__setattr__(self, "timestamp", int(self.timestamp))

    @property
    def position(self) -> np.ndarray:
        return self.x[:2].copy()

    @property
    def speed(self) -> float:
        return float(self.x[2])

    @property
    def yaw(self) -> float:
        return float(self.x[3])

    @property
    def yaw_rate(self) -> float:
        return float(self.x[4])

    @property
    def velocity(self) -> np.ndarray:
        """Cartesian velocity [vx, vy]."""
        return self.speed * np.array([np.cos(self.yaw), np.sin(self.yaw)])

    def __repr__(self):
        return (f"Belief(t={self.timestamp}, pos=({self.x[0]:.3f}, {self.x[1]:.3f}), "
                f"v={self.x[2]:.3f}, yaw={self.x[3]:.3f}, yawd={self.x[4]:.3f})")


@dataclass
class StepResult:
    """Outcome of processing one measurement."""
    belief: Belief
    sensor_type: SensorType
    dt: float = 0.0
    nis: Optional[float] = None
    initialized: bool = False     # this step seeded the belief
    skipped: bool = False         # sensor disabled, belief unchanged
    prediction: Optional[Prediction] = None
    correction: Optional[Correction] = None


# ===== FILTER =====

class UnscentedKalmanFilter:
    """CTRV Unscented Kalman Filter with laser and radar correctors.

    Args:
        config: Noise and tuning parameters, fixed for the filter's lifetime
    """

    def __init__(self, config: Optional[FilterConfig] = None):
        self.config = config or FilterConfig()
        self._correctors = make_correctors(self.config)

    def initialize(self, measurement: Measurement) -> Belief:
        """Seed the belief from a first measurement."""
        z = measurement.z
        x = np.zeros(N_X)

        if measurement.sensor_type is SensorType.LASER:
            x[0], x[1] = z[0], z[1]
            x[2] = self.config.initial_speed
            P = LASER_INITIAL_COVARIANCE.copy()
        else:
            rho, phi, rho_dot = z
            x[0] = rho * np.cos(phi)
            x[1] = rho * np.sin(phi)
            x[2] = rho_dot
            x[3] = phi
            P = RADAR_INITIAL_COVARIANCE.copy()

        logger.debug("Initialized from %s at t=%d: x=%s",
                     measurement.sensor_type.value, measurement.timestamp, x)
        return Belief(x=x, P=P, timestamp=measurement.timestamp)

    def elapsed_seconds(self, belief: Belief, measurement: Measurement) -> float:
        """Elapsed time, with the out-of-order policy applied.

        Raises:
            OutOfOrderMeasurementError: negative elapsed time under REJECT
        """
        dt = (measurement.timestamp - belief.timestamp) / US_PER_SECOND
        if dt >= 0.0:
            return dt
        if self.config.timestamp_policy is TimestampPolicy.CLAMP:
            logger.warning("Out-of-order measurement at t=%d (belief t=%d), clamping dt to 0",
                           measurement.timestamp, belief.timestamp)
            return 0.0
        raise OutOfOrderMeasurementError(
            f"Measurement timestamp {measurement.timestamp} precedes belief "
            f"timestamp {belief.timestamp}")

    def sensor_enabled(self, sensor_type: SensorType) -> bool:
        if sensor_type is SensorType.LASER:
            return self.config.use_laser
        return self.config.use_radar

    def process(self, belief: Optional[Belief], measurement: Measurement) -> StepResult:
        """Process one measurement and return the next belief.

        ``belief=None`` means the filter is uninitialized; the measurement
        seeds the belief and no prediction or correction happens.

        Raises:
            OutOfOrderMeasurementError: timestamp goes backwards under REJECT
            FilterConsistencyError: covariance lost positive definiteness
        """
        if not isinstance(measurement, Measurement):
            raise TypeError(f"Expected Measurement, got {type(measurement).__name__}")

        if belief is None:
            return StepResult(belief=self.initialize(measurement),
                              sensor_type=measurement.sensor_type,
                              initialized=True)

        dt = self.elapsed_seconds(belief, measurement)

        if not self.sensor_enabled(measurement.sensor_type):
            logger.debug("Ignoring %s measurement at t=%d (sensor disabled)",
                         measurement.sensor_type.value, measurement.timestamp)
            return StepResult(belief=belief, sensor_type=measurement.sensor_type,
                              dt=dt, skipped=True)

        prediction = predict(belief.x, belief.P, dt, self.config)
        correction = self._correctors[measurement.sensor_type].correct(prediction, measurement.z)

        timestamp = max(measurement.timestamp, belief.timestamp)
        new_belief = Belief(x=correction.x, P=correction.P, timestamp=timestamp)
        return StepResult(belief=new_belief, sensor_type=measurement.sensor_type,
                          dt=dt, nis=correction.nis,
                          prediction=prediction, correction=correction)

    def run(self, measurements, belief: Optional[Belief] = None) -> List[StepResult]:
        """Process a sequence of measurements in order."""
        results = []
        for meas in measurements:
            result = self.process(belief, meas)
            belief = result.belief
            results.append(result)
        return results

    def __repr__(self):
        c = self.config
        return f"UnscentedKalmanFilter(std_a={c.std_a}, std_yawdd={c.std_yawdd})"


# ===== STATEFUL WRAPPER =====

class FusionTracker:
    """Long-lived tracker holding the current belief.

    Each :meth:`process_measurement` call runs under a lock, so the tracker
    can be shared between threads. NIS values are collected per sensor in a
    :class:`NISMonitor`.
    """

    def __init__(self, config: Optional[FilterConfig] = None,
                 nis_window: int = 100):
        self.ukf = UnscentedKalmanFilter(config)
        self.monitor = NISMonitor(window=nis_window)
        self._belief: Optional[Belief] = None
        self._lock = threading.Lock()
        self.step_count = 0

    @property
    def config(self) -> FilterConfig:
        return self.ukf.config

    @property
    def initialized(self) -> bool:
        return self._belief is not None

    @property
    def belief(self) -> Belief:
        if self._belief is None:
            raise RuntimeError("Tracker not initialized. Process a measurement first.")
        return self._belief

    @property
    def x(self) -> np.ndarray:
        return self.belief.x.copy()

    @property
    def P(self) -> np.ndarray:
        return self.belief.P.copy()

    @property
    def nis_history(self) -> Dict[str, List[float]]:
        return {name: list(s.history) for name, s in self.monitor.sensors.items()}

    def process_measurement(self, measurement: Measurement) -> StepResult:
        """Predict and correct with one measurement; belief kept on failure."""
        with self._lock:
            result = self.ukf.process(self._belief, measurement)
            self._belief = result.belief
            self.step_count += 1
            if result.nis is not None:
                exceeded = self.monitor.record(measurement.sensor_type.value,
                                               measurement.dim, result.nis)
                if exceeded:
                    logger.debug("NIS %.3f above %s bound at t=%d", result.nis,
                                 measurement.sensor_type.value, measurement.timestamp)
            return result

    def reset(self) -> None:
        with self._lock:
            self._belief = None
            self.step_count = 0
            self.monitor.reset()

    def __repr__(self):
        state = repr(self._belief) if self._belief is not None else "uninitialized"
        return f"FusionTracker({state}, steps={self.step_count})"
