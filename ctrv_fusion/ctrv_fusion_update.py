"""
CTRV-Fusion Measurement Correctors
==================================

Unscented measurement update shared by both sensor types.

    Z[i]  = h(X_pred[i])
    z_hat = sum w_i Z[i]
    S     = sum w_i (Z[i] - z_hat)(Z[i] - z_hat)^T + R
    T     = sum w_i (X[i] - x)(Z[i] - z_hat)^T
    K     = T S^-1
    y     = z - z_hat
    x    += K y
    P    -= K S K^T
    NIS   = y^T S^-1 y

Angle components (state heading, radar bearing) are wrapped into (-pi, pi]
in every residual. The predicted bearing is averaged as wrapped offsets from
the central sigma point.

Correctors:
    LaserCorrector : h(x) = [px, py]                          (linear)
    RadarCorrector : h(x) = [rho, phi, rho_dot]               (nonlinear)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Tuple
import logging

import numpy as np

from .ctrv_fusion_config import FilterConfig, MIN_RANGE
from .ctrv_fusion_measurement import SensorType
from .ctrv_fusion_motion import Prediction
from .ctrv_fusion_sigma import FilterConsistencyError, normalize_angle


logger = logging.getLogger(__name__)

# Innovation covariances worse conditioned than this are treated as singular
MAX_INNOVATION_CONDITION = 1e12


@dataclass
class Correction:
    """Result of one measurement update."""
    x: np.ndarray
    P: np.ndarray
    z_pred: np.ndarray
    S: np.ndarray
    innovation: np.ndarray
    kalman_gain: np.ndarray
    nis: float


class Corrector(ABC):
    """Common unscented update; subclasses supply the measurement model."""

    sensor_type: SensorType
    angle_indices: Tuple[int, ...] = ()

    def __init__(self, R: np.ndarray):
        R = np.asarray(R, dtype=np.float64)
        if R.shape != (self.sensor_type.dim, self.sensor_type.dim):
            raise ValueError(
                f"{type(self).__name__} needs a {self.sensor_type.dim}x"
                f"{self.sensor_type.dim} noise matrix, got {R.shape}")
        self.R = R

    @property
    def dim(self) -> int:
        return self.sensor_type.dim

    @abstractmethod
    def project(self, sigma_points: np.ndarray) -> np.ndarray:
        """Map (N, 5) state sigma points to (N, dim_z) measurement space."""

    def _wrap(self, residuals: np.ndarray) -> np.ndarray:
        for idx in self.angle_indices:
            residuals[..., idx] = normalize_angle(residuals[..., idx])
        return residuals

    def predict_measurement(self, prediction: Prediction) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Predicted measurement mean, innovation covariance S and cross-covariance T."""
        Z = self.project(prediction.sigma_points)
        w = prediction.weights

        z_pred = w @ Z
        for idx in self.angle_indices:
            # Average angles as offsets from the central point so a spread
            # straddling +-pi does not cancel out. Equals w @ Z[:, idx] otherwise.
            ref = Z[0, idx]
            z_pred[idx] = normalize_angle(ref + w @ normalize_angle(Z[:, idx] - ref))
        dz = self._wrap(Z - z_pred)
        dx = prediction.state_residuals()

        S = (w[:, np.newaxis] * dz).T @ dz + self.R
        T = (w[:, np.newaxis] * dx).T @ dz
        return z_pred, S, T

    def correct(self, prediction: Prediction, z: np.ndarray) -> Correction:
        """Apply the measurement ``z`` to a prediction.

        Raises:
            FilterConsistencyError: innovation covariance is singular or non-finite
        """
        z = np.asarray(z, dtype=np.float64)
        if z.shape != (self.dim,):
            raise ValueError(f"Expected {self.dim} measurement values, got {z.shape}")

        z_pred, S, T = self.predict_measurement(prediction)
        S = 0.5 * (S + S.T)

        if not np.all(np.isfinite(S)):
            raise FilterConsistencyError(f"Non-finite innovation covariance: {S}")
        cond = np.linalg.cond(S)
        if not np.isfinite(cond) or cond > MAX_INNOVATION_CONDITION:
            raise FilterConsistencyError(
                f"Innovation covariance is singular (condition number {cond:.3g})")

        y = self._wrap(z - z_pred)

        try:
            # K = T S^-1, solved as S K^T = T^T (S is symmetric)
            K = np.linalg.solve(S, T.T).T
            nis = float(y @ np.linalg.solve(S, y))
        except np.linalg.LinAlgError as exc:
            raise FilterConsistencyError("Innovation covariance is singular") from exc

        x = prediction.x + K @ y
        P = prediction.P - K @ S @ K.T
        P = 0.5 * (P + P.T)

        logger.debug("%s update: NIS=%.4f innovation=%s", self.sensor_type.value, nis, y)
        return Correction(x=x, P=P, z_pred=z_pred, S=S, innovation=y,
                          kalman_gain=K, nis=nis)


class LaserCorrector(Corrector):
    """Position-only sensor; linear projection onto [px, py]."""

    sensor_type = SensorType.LASER

    def project(self, sigma_points: np.ndarray) -> np.ndarray:
        return np.array(sigma_points[:, :2], dtype=np.float64)


class RadarCorrector(Corrector):
    """Range / bearing / range-rate sensor at the origin."""

    sensor_type = SensorType.RADAR
    angle_indices = (1,)

    def __init__(self, R: np.ndarray, min_range: float = MIN_RANGE):
        super().__init__(R)
        self.min_range = min_range

    def project(self, sigma_points: np.ndarray) -> np.ndarray:
        px = sigma_points[:, 0]
        py = sigma_points[:, 1]
        v = sigma_points[:, 2]
        yaw = sigma_points[:, 3]

        rho = np.sqrt(px**2 + py**2)
        degenerate = rho < self.min_range
        if np.any(degenerate):
            # Line of sight undefined at the sensor: bearing 0, range-rate 0
            logger.warning("Radar projection degenerate for %d sigma point(s), "
                           "using zero bearing/range-rate", int(np.count_nonzero(degenerate)))

        safe_rho = np.where(degenerate, 1.0, rho)
        phi = np.where(degenerate, 0.0, np.arctan2(py, px))
        rho_dot = np.where(degenerate, 0.0,
                           (px * v * np.cos(yaw) + py * v * np.sin(yaw)) / safe_rho)

        return np.column_stack((rho, phi, rho_dot))


def make_correctors(config: FilterConfig) -> Dict[SensorType, Corrector]:
    """One corrector per sensor type, built from the configured noise."""
    return {
        SensorType.LASER: LaserCorrector(config.laser_noise_covariance()),
        SensorType.RADAR: RadarCorrector(config.radar_noise_covariance(),
                                         min_range=config.min_range),
    }


def corrector_for(sensor_type: SensorType, config: FilterConfig) -> Corrector:
    """Dispatch a sensor type to its corrector."""
    try:
        return make_correctors(config)[sensor_type]
    except KeyError:
        raise ValueError(f"Unknown sensor type: {sensor_type}") from None
