"""
CTRV-Fusion Motion Model and Prediction
=======================================

Constant Turn Rate and Velocity (CTRV) propagation of augmented sigma points.

For an augmented point [px, py, v, yaw, yawd, nu_a, nu_yawdd] over dt:

    |yawd| > threshold:
        px' = px + v/yawd * ( sin(yaw + yawd dt) - sin(yaw))
        py' = py + v/yawd * (-cos(yaw + yawd dt) + cos(yaw))
    otherwise:
        px' = px + v dt cos(yaw)
        py' = py + v dt sin(yaw)

    v'    = v
    yaw'  = yaw + yawd dt
    yawd' = yawd

    noise: px' += 1/2 dt^2 cos(yaw) nu_a     py' += 1/2 dt^2 sin(yaw) nu_a
           v'  += dt nu_a                    yaw' += 1/2 dt^2 nu_yawdd
           yawd' += dt nu_yawdd
"""

from dataclasses import dataclass
import logging

import numpy as np

from .ctrv_fusion_config import FilterConfig, N_X, YAW_INDEX, YAW_RATE_THRESHOLD
from .ctrv_fusion_sigma import SigmaPointSet, augmented_sigma_points, normalize_angle


logger = logging.getLogger(__name__)


# ===== CTRV TRANSITION =====

def ctrv_transition(points: np.ndarray, dt: float,
                    yaw_rate_threshold: float = YAW_RATE_THRESHOLD) -> np.ndarray:
    """Propagate augmented sigma points (rows) through CTRV.

    Args:
        points: (N, 7) augmented sigma points
        dt: Elapsed time (seconds)
        yaw_rate_threshold: Straight-line switch for |yaw_rate|

    Returns:
        (N, 5) predicted sigma points in state space
    """
    points = np.atleast_2d(np.asarray(points, dtype=np.float64))
    px, py, v, yaw, yawd, nu_a, nu_yawdd = points.T

    turning = np.abs(yawd) > yaw_rate_threshold
    # Avoid dividing by the near-zero rates; those rows take the straight branch
    safe_yawd = np.where(turning, yawd, 1.0)
    yaw_end = yaw + yawd * dt

    px_p = np.where(turning,
                    px + v / safe_yawd * (np.sin(yaw_end) - np.sin(yaw)),
                    px + v * dt * np.cos(yaw))
    py_p = np.where(turning,
                    py + v / safe_yawd * (np.cos(yaw) - np.cos(yaw_end)),
                    py + v * dt * np.sin(yaw))

    half_dt2 = 0.5 * dt * dt
    predicted = np.empty((points.shape[0], N_X))
    predicted[:, 0] = px_p + half_dt2 * np.cos(yaw) * nu_a
    predicted[:, 1] = py_p + half_dt2 * np.sin(yaw) * nu_a
    predicted[:, 2] = v + dt * nu_a
    predicted[:, 3] = yaw_end + half_dt2 * nu_yawdd
    predicted[:, 4] = yawd + dt * nu_yawdd
    return predicted


def ctrv_step(state: np.ndarray, dt: float,
              yaw_rate_threshold: float = YAW_RATE_THRESHOLD) -> np.ndarray:
    """Noise-free CTRV step of a single 5-D state."""
    aug = np.zeros(N_X + 2)
    aug[:N_X] = state
    return ctrv_transition(aug[np.newaxis, :], dt, yaw_rate_threshold)[0]


# ===== PREDICTION =====

@dataclass
class Prediction:
    """Predicted belief plus the sigma points the correctors reuse."""
    x: np.ndarray              # (5,) predicted mean
    P: np.ndarray              # (5, 5) predicted covariance
    sigma_points: np.ndarray   # (2L+1, 5) predicted sigma points
    weights: np.ndarray        # (2L+1,)
    dt: float

    def state_residuals(self) -> np.ndarray:
        """Sigma point minus mean, heading component normalised."""
        diff = self.sigma_points - self.x
        diff[:, YAW_INDEX] = normalize_angle(diff[:, YAW_INDEX])
        return diff


def recover_gaussian(sigma_points: np.ndarray, weights: np.ndarray) -> tuple:
    """Weighted mean and covariance of predicted sigma points.

    Heading differences are wrapped so that points straddling +-pi do not
    inflate the covariance.
    """
    x = weights @ sigma_points
    diff = sigma_points - x
    diff[:, YAW_INDEX] = normalize_angle(diff[:, YAW_INDEX])
    P = (weights[:, np.newaxis] * diff).T @ diff
    return x, P


def predict(x: np.ndarray, P: np.ndarray, dt: float,
            config: FilterConfig) -> Prediction:
    """UKF prediction over ``dt`` seconds.

    Raises:
        ValueError: dt is negative or not finite
        FilterConsistencyError: P is not positive definite
    """
    if not np.isfinite(dt) or dt < 0.0:
        raise ValueError(f"Elapsed time must be finite and non-negative, got {dt}")

    sigma: SigmaPointSet = augmented_sigma_points(x, P, config.std_a, config.std_yawdd)
    predicted = ctrv_transition(sigma.points, dt, config.yaw_rate_threshold)
    x_pred, P_pred = recover_gaussian(predicted, sigma.weights)

    logger.debug("Predicted over dt=%.6f s: x=%s", dt, x_pred)
    return Prediction(x=x_pred, P=P_pred, sigma_points=predicted,
                      weights=sigma.weights, dt=dt)
