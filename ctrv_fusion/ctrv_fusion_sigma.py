"""
CTRV-Fusion Sigma-Point Generation
==================================

Augmented-state sigma points for the CTRV UKF.

    x_aug = [x; 0; 0]
    P_aug = blockdiag(P, diag(std_a^2, std_yawdd^2))
    L     = chol(P_aug)                  (lower)
    lambda = 3 - n_aug

    X[0]         = x_aug
    X[i]         = x_aug + sqrt(lambda + n_aug) * L[:, i-1]
    X[n_aug + i] = x_aug - sqrt(lambda + n_aug) * L[:, i-1]

    w[0] = lambda / (lambda + n_aug),  w[i] = 1 / (2 (lambda + n_aug))

Reference: Julier & Uhlmann (1997), Wan & Van Der Merwe (2000).
"""

from dataclasses import dataclass
import logging

import numpy as np


logger = logging.getLogger(__name__)


class FilterConsistencyError(RuntimeError):
    """Covariance lost positive definiteness or the innovation became singular."""


# =============================================================================
# ANGLE HELPERS
# =============================================================================

def normalize_angle(angle):
    """Wrap angle(s) into (-pi, pi].

    Single remainder operation, so arbitrarily large inputs terminate.
    Values already in range are returned untouched (exactly idempotent).
    Accepts scalars or arrays; scalars come back as float.
    """
    a = np.asarray(angle, dtype=np.float64)
    in_range = (a > -np.pi) & (a <= np.pi)
    wrapped = np.where(in_range, a, np.pi - np.mod(np.pi - a, 2.0 * np.pi))
    # mod can round up to exactly 2*pi for inputs just above pi
    wrapped = np.where(wrapped <= -np.pi, wrapped + 2.0 * np.pi, wrapped)
    if np.ndim(wrapped) == 0:
        return float(wrapped)
    return wrapped


# =============================================================================
# WEIGHTS
# =============================================================================

def spreading_parameter(n_aug: int) -> float:
    return 3.0 - n_aug


def sigma_weights(n_aug: int) -> np.ndarray:
    """Weights for the 2*n_aug+1 sigma points. They sum to one."""
    if n_aug < 1:
        raise ValueError(f"n_aug must be >= 1, got {n_aug}")
    lam = spreading_parameter(n_aug)
    weights = np.full(2 * n_aug + 1, 0.5 / (lam + n_aug))
    weights[0] = lam / (lam + n_aug)
    return weights


# =============================================================================
# SIGMA POINT SET
# =============================================================================

@dataclass
class SigmaPointSet:
    """Sigma points (rows) in augmented-state space with their weights."""
    points: np.ndarray    # (2L+1, L)
    weights: np.ndarray   # (2L+1,)

    @property
    def n_aug(self) -> int:
        return self.points.shape[1]

    @property
    def n_sigma(self) -> int:
        return self.points.shape[0]

    def mean(self) -> np.ndarray:
        """Weighted mean of the points."""
        return self.weights @ self.points

    def covariance(self) -> np.ndarray:
        """Weighted outer-product covariance about :meth:`mean`."""
        diff = self.points - self.mean()
        return (self.weights[:, np.newaxis] * diff).T @ diff


def augment(x: np.ndarray, P: np.ndarray, std_a: float,
            std_yawdd: float) -> tuple:
    """Build the augmented mean and block-diagonal covariance."""
    n_x = x.shape[0]
    x_aug = np.zeros(n_x + 2)
    x_aug[:n_x] = x

    P_aug = np.zeros((n_x + 2, n_x + 2))
    P_aug[:n_x, :n_x] = P
    P_aug[n_x, n_x] = std_a**2
    P_aug[n_x + 1, n_x + 1] = std_yawdd**2
    return x_aug, P_aug


def generate_sigma_points(mean: np.ndarray, covariance: np.ndarray) -> SigmaPointSet:
    """Symmetric sigma points for an arbitrary Gaussian.

    Raises:
        FilterConsistencyError: covariance is not positive definite
    """
    mean = np.asarray(mean, dtype=np.float64)
    covariance = np.asarray(covariance, dtype=np.float64)
    n = mean.shape[0]
    if covariance.shape != (n, n):
        raise ValueError(f"Covariance shape {covariance.shape} does not match mean ({n},)")
    if not np.all(np.isfinite(covariance)):
        raise FilterConsistencyError("Covariance contains non-finite entries")

    try:
        L = np.linalg.cholesky(covariance)
    except np.linalg.LinAlgError as exc:
        logger.error("Cholesky factorisation failed, eigenvalues=%s",
                     np.linalg.eigvalsh(0.5 * (covariance + covariance.T)))
        raise FilterConsistencyError(
            "Augmented covariance is not positive definite") from exc

    c = np.sqrt(spreading_parameter(n) + n)
    points = np.empty((2 * n + 1, n))
    points[0] = mean
    points[1:n + 1] = mean + c * L.T
    points[n + 1:] = mean - c * L.T

    return SigmaPointSet(points=points, weights=sigma_weights(n))


def augmented_sigma_points(x: np.ndarray, P: np.ndarray, std_a: float,
                           std_yawdd: float) -> SigmaPointSet:
    """Sigma points of the state augmented with the two process-noise inputs."""
    x_aug, P_aug = augment(x, P, std_a, std_yawdd)
    return generate_sigma_points(x_aug, P_aug)
