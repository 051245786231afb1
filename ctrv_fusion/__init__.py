"""CTRV-Fusion: Unscented Kalman Filter for laser/radar object tracking.

Estimates [px, py, v, yaw, yaw_rate] of a moving object from asynchronous
position-only (laser) and range/bearing/range-rate (radar) measurements using
an augmented-state UKF with a CTRV motion model.

Quick Start::

    from ctrv_fusion import FusionTracker, laser_measurement, radar_measurement
    tracker = FusionTracker()
    tracker.process_measurement(laser_measurement(0.3, 0.6, timestamp=0))
    result = tracker.process_measurement(radar_measurement(1.0, 0.5, 0.8, timestamp=50000))
    print(tracker.x, result.nis)
"""

__version__ = "1.0.0"
__license__ = "AGPL-3.0-or-later"

# ---------------------------------------------------------------------------
# Configuration and measurements
# ---------------------------------------------------------------------------
from .ctrv_fusion_config import (
    FilterConfig,
    TimestampPolicy,
    make_default_config,
    make_laser_only_config,
    make_radar_only_config,
    INITIAL_SPEED_SEED,
    N_X,
    N_AUG,
)
from .ctrv_fusion_measurement import (
    SensorType,
    Measurement,
    laser_measurement,
    radar_measurement,
)

# ---------------------------------------------------------------------------
# Core UKF
# ---------------------------------------------------------------------------
from .ctrv_fusion_sigma import (
    FilterConsistencyError,
    SigmaPointSet,
    normalize_angle,
    sigma_weights,
    generate_sigma_points,
    augmented_sigma_points,
)
from .ctrv_fusion_motion import (
    Prediction,
    ctrv_transition,
    ctrv_step,
)
from .ctrv_fusion_update import (
    Correction,
    Corrector,
    LaserCorrector,
    RadarCorrector,
    corrector_for,
)
from .ctrv_fusion_ukf import (
    Belief,
    StepResult,
    UnscentedKalmanFilter,
    FusionTracker,
    OutOfOrderMeasurementError,
)

# ---------------------------------------------------------------------------
# Metrics and scenarios
# ---------------------------------------------------------------------------
from .ctrv_fusion_metrics import (
    compute_nis,
    compute_nees,
    compute_rmse,
    nis_threshold,
    NISMonitor,
)
from .ctrv_fusion_datasets import (
    ScenarioData,
    SyntheticScenarioGenerator,
)

__all__ = [
    "__version__",
    # Config / measurements
    "FilterConfig", "TimestampPolicy", "make_default_config",
    "make_laser_only_config", "make_radar_only_config",
    "INITIAL_SPEED_SEED", "N_X", "N_AUG",
    "SensorType", "Measurement", "laser_measurement", "radar_measurement",
    # Core
    "FilterConsistencyError", "SigmaPointSet", "normalize_angle", "sigma_weights",
    "generate_sigma_points", "augmented_sigma_points",
    "Prediction", "ctrv_transition", "ctrv_step",
    "Correction", "Corrector", "LaserCorrector", "RadarCorrector", "corrector_for",
    "Belief", "StepResult", "UnscentedKalmanFilter", "FusionTracker",
    "OutOfOrderMeasurementError",
    # Metrics / scenarios
    "compute_nis", "compute_nees", "compute_rmse", "nis_threshold", "NISMonitor",
    "ScenarioData", "SyntheticScenarioGenerator",
]
