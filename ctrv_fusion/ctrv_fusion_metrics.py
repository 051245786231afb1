"""
CTRV-Fusion Consistency and Accuracy Metrics
============================================

- NIS  : y^T S^-1 y, chi-square with dim_z DOF for a consistent filter
- NEES : e^T P^-1 e, chi-square with n_x DOF
- RMSE : per-component root mean squared error against ground truth

Reference: Bar-Shalom, Li, Kirubarajan (2001), sections 5.4, 11.2.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
from scipy.stats import chi2

from .ctrv_fusion_config import YAW_INDEX
from .ctrv_fusion_sigma import normalize_angle


def compute_nis(innovation: np.ndarray, S: np.ndarray) -> float:
    """Normalized Innovation Squared.

    For a consistent filter E[NIS] = dim_z.
    """
    innovation = np.asarray(innovation, dtype=np.float64)
    try:
        return float(innovation @ np.linalg.solve(S, innovation))
    except np.linalg.LinAlgError:
        return float('inf')


def compute_nees(x_true: np.ndarray, x_est: np.ndarray,
                 P: np.ndarray) -> float:
    """Normalized Estimation Error Squared with the heading error wrapped.

    For a consistent filter E[NEES] = n_x.
    """
    dx = np.asarray(x_true, dtype=np.float64) - np.asarray(x_est, dtype=np.float64)
    if dx.shape[0] > YAW_INDEX:
        dx[YAW_INDEX] = normalize_angle(dx[YAW_INDEX])
    try:
        return float(dx @ np.linalg.solve(P, dx))
    except np.linalg.LinAlgError:
        return float('inf')


def compute_rmse(estimates: Sequence[np.ndarray],
                 ground_truth: Sequence[np.ndarray]) -> np.ndarray:
    """Column-wise RMSE between estimate and truth sequences.

    Raises:
        ValueError: inputs are empty or have different sizes
    """
    est = np.asarray(estimates, dtype=np.float64)
    gt = np.asarray(ground_truth, dtype=np.float64)
    if est.size == 0 or gt.size == 0:
        raise ValueError("Need at least one estimate to compute RMSE")
    if est.shape != gt.shape:
        raise ValueError(f"Estimate shape {est.shape} != ground truth shape {gt.shape}")
    return np.sqrt(np.mean((est - gt) ** 2, axis=0))


def nis_threshold(dim_z: int, confidence: float = 0.95) -> float:
    """Upper chi-square bound for NIS (2 DOF: 5.991, 3 DOF: 7.815 at 95%)."""
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"confidence must be in (0, 1), got {confidence}")
    return float(chi2.ppf(confidence, dim_z))


# ===== NIS MONITOR =====

@dataclass
class NISStatistics:
    """Running NIS statistics for one sensor."""
    dim_z: int
    threshold: float
    history: List[float] = field(default_factory=list)
    count: int = 0
    exceedances: int = 0

    @property
    def average(self) -> float:
        return float(np.mean(self.history)) if self.history else 0.0

    @property
    def exceedance_ratio(self) -> float:
        return self.exceedances / self.count if self.count else 0.0


class NISMonitor:
    """Per-sensor NIS consistency monitor.

    A well-tuned filter exceeds the 95% chi-square bound on roughly 5% of
    updates. Much more means noise is underestimated; much less means it is
    overestimated.
    """

    def __init__(self, window: int = 100, confidence: float = 0.95,
                 tolerance: float = 0.05):
        if window < 1:
            raise ValueError(f"window must be >= 1, got {window}")
        self.window = window
        self.confidence = confidence
        self.tolerance = tolerance
        self.sensors: Dict[str, NISStatistics] = {}

    def record(self, sensor: str, dim_z: int, nis: float) -> bool:
        """Record one NIS value. Returns True when it exceeds the bound."""
        stats = self.sensors.get(sensor)
        if stats is None:
            stats = NISStatistics(dim_z=dim_z, threshold=nis_threshold(dim_z, self.confidence))
            self.sensors[sensor] = stats

        stats.history.append(float(nis))
        if len(stats.history) > self.window:
            stats.history.pop(0)
        stats.count += 1
        exceeded = nis > stats.threshold
        if exceeded:
            stats.exceedances += 1
        return exceeded

    def consistent(self, sensor: str) -> Optional[bool]:
        """Whether the exceedance ratio is within tolerance of the expected rate."""
        stats = self.sensors.get(sensor)
        if stats is None or stats.count == 0:
            return None
        expected = 1.0 - self.confidence
        return abs(stats.exceedance_ratio - expected) <= self.tolerance

    def report(self) -> Dict[str, Dict]:
        return {
            name: {
                "dim_z": s.dim_z,
                "updates": s.count,
                "nis_avg": round(s.average, 3),
                "threshold": round(s.threshold, 3),
                "exceedance_ratio": round(s.exceedance_ratio, 3),
                "consistent": self.consistent(name),
            }
            for name, s in self.sensors.items()
        }

    def reset(self) -> None:
        self.sensors.clear()

    def __repr__(self) -> str:
        return f"NISMonitor({len(self.sensors)} sensors, window={self.window})"
