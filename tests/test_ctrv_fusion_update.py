"""
Tests for CTRV-Fusion laser and radar correctors
=================================================
pytest tests/test_ctrv_fusion_update.py -v
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose
import sys, os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from ctrv_fusion.ctrv_fusion_config import FilterConfig
from ctrv_fusion.ctrv_fusion_measurement import SensorType
from ctrv_fusion.ctrv_fusion_metrics import compute_nis
from ctrv_fusion.ctrv_fusion_motion import Prediction, predict
from ctrv_fusion.ctrv_fusion_sigma import FilterConsistencyError, sigma_weights
from ctrv_fusion.ctrv_fusion_update import (
    Correction, LaserCorrector, RadarCorrector, corrector_for, make_correctors,
)


# ===== FIXTURES =====

@pytest.fixture
def config():
    return FilterConfig()


@pytest.fixture
def prediction(config):
    x = np.array([5.0, 2.0, 3.0, 0.4, 0.1])
    P = np.diag([0.2, 0.2, 0.5, 0.1, 0.1])
    return predict(x, P, 0.1, config)


@pytest.fixture
def laser(config):
    return corrector_for(SensorType.LASER, config)


@pytest.fixture
def radar(config):
    return corrector_for(SensorType.RADAR, config)


def assert_valid_covariance(P):
    assert np.all(np.isfinite(P))
    assert_allclose(P, P.T, atol=1e-12)
    assert np.all(np.diag(P) >= 0.0)


# ===== DISPATCH =====

class TestDispatch:
    def test_corrector_types(self, laser, radar):
        assert isinstance(laser, LaserCorrector)
        assert isinstance(radar, RadarCorrector)
        assert laser.dim == 2
        assert radar.dim == 3

    def test_noise_from_config(self, config):
        correctors = make_correctors(config)
        assert_allclose(correctors[SensorType.LASER].R, np.diag([0.0225, 0.0225]))
        assert_allclose(correctors[SensorType.RADAR].R, np.diag([0.09, 0.0009, 0.09]))

    def test_wrong_noise_shape(self):
        with pytest.raises(ValueError):
            LaserCorrector(np.eye(3))
        with pytest.raises(ValueError):
            RadarCorrector(np.eye(2))


# ===== PROJECTIONS =====

class TestProjection:
    def test_laser_projection(self, laser):
        pts = np.array([[1.0, 2.0, 3.0, 0.1, 0.2], [-1.0, 0.5, 0.0, 0.0, 0.0]])
        assert_allclose(laser.project(pts), [[1.0, 2.0], [-1.0, 0.5]])

    def test_radar_projection(self, radar):
        pts = np.array([[3.0, 4.0, 2.0, 0.0, 0.0]])
        z = radar.project(pts)[0]
        assert z[0] == pytest.approx(5.0)
        assert z[1] == pytest.approx(np.arctan2(4.0, 3.0))
        assert z[2] == pytest.approx(3.0 * 2.0 / 5.0)

    def test_radar_range_rate_is_line_of_sight_projection(self, radar):
        # Moving perpendicular to the line of sight
        pts = np.array([[0.0, 10.0, 4.0, 0.0, 0.0]])
        assert radar.project(pts)[0, 2] == pytest.approx(0.0, abs=1e-12)

    def test_radar_degenerate_origin_fallback(self, radar):
        pts = np.array([[0.0, 0.0, 3.0, 0.5, 0.0], [1.0, 0.0, 3.0, 0.0, 0.0]])
        z = radar.project(pts)
        assert np.all(np.isfinite(z))
        assert_allclose(z[0], [0.0, 0.0, 0.0])
        assert z[1, 2] == pytest.approx(3.0)


# ===== CORRECTION =====

class TestLaserCorrection:
    def test_update_moves_toward_measurement(self, laser, prediction):
        z = prediction.x[:2] + np.array([0.5, -0.3])
        corr = laser.correct(prediction, z)
        assert isinstance(corr, Correction)
        assert prediction.x[0] < corr.x[0] < z[0]
        assert z[1] < corr.x[1] < prediction.x[1]

    def test_covariance_shrinks(self, laser, prediction):
        corr = laser.correct(prediction, prediction.x[:2])
        assert corr.P[0, 0] < prediction.P[0, 0]
        assert corr.P[1, 1] < prediction.P[1, 1]
        assert_valid_covariance(corr.P)

    def test_nis_definition(self, laser, prediction):
        z = prediction.x[:2] + np.array([0.2, 0.1])
        corr = laser.correct(prediction, z)
        assert corr.nis == pytest.approx(compute_nis(corr.innovation, corr.S))
        assert corr.nis >= 0.0

    def test_predicted_measurement_is_position(self, laser, prediction):
        corr = laser.correct(prediction, prediction.x[:2])
        assert_allclose(corr.z_pred, prediction.x[:2], atol=1e-10)

    def test_gain_shape(self, laser, prediction):
        corr = laser.correct(prediction, prediction.x[:2])
        assert corr.kalman_gain.shape == (5, 2)

    def test_wrong_measurement_size(self, laser, prediction):
        with pytest.raises(ValueError):
            laser.correct(prediction, np.zeros(3))

    def test_singular_innovation_raises(self, prediction):
        w = sigma_weights(7)
        x = prediction.x
        collapsed = Prediction(x=x, P=np.zeros((5, 5)),
                               sigma_points=np.tile(x, (15, 1)), weights=w, dt=0.0)
        corrector = LaserCorrector(np.diag([1.0, 1e-20]))
        with pytest.raises(FilterConsistencyError):
            corrector.correct(collapsed, x[:2])


class TestRadarCorrection:
    def test_update_produces_valid_belief(self, radar, prediction):
        z = np.array([np.hypot(5.2, 2.1), np.arctan2(2.1, 5.2), 2.9])
        corr = radar.correct(prediction, z)
        assert np.all(np.isfinite(corr.x))
        assert_valid_covariance(corr.P)
        assert corr.nis == pytest.approx(compute_nis(corr.innovation, corr.S))

    def test_bearing_residual_wrapped(self, config):
        # Target just across the +-pi cut from the measurement
        x = np.array([-10.0, 0.05, 1.0, np.pi, 0.0])
        P = np.diag([0.05, 0.05, 0.1, 0.01, 0.01])
        pred = predict(x, P, 0.05, config)
        radar = RadarCorrector(config.radar_noise_covariance())
        z = np.array([10.0, -np.pi + 0.01, 1.0])
        corr = radar.correct(pred, z)
        assert abs(corr.innovation[1]) < 0.1
        assert corr.nis < 50.0
        assert abs(corr.x[1] - x[1]) < 0.5

    def test_predicted_bearing_covariance_not_inflated(self, config):
        x = np.array([-10.0, 0.0, 1.0, 0.0, 0.0])
        P = np.diag([0.05, 0.05, 0.1, 0.01, 0.01])
        pred = predict(x, P, 0.05, config)
        radar = RadarCorrector(config.radar_noise_covariance())
        _, S, _ = radar.predict_measurement(pred)
        assert S[1, 1] < 0.1

    def test_degenerate_prediction_no_nan(self, config):
        x = np.zeros(5)
        P = np.diag([0.01, 0.01, 0.01, 0.09, 0.09])
        pred = predict(x, P, 0.0, config)
        radar = RadarCorrector(config.radar_noise_covariance())
        corr = radar.correct(pred, np.array([0.0, 0.0, 0.0]))
        assert np.all(np.isfinite(corr.x))
        assert np.all(np.isfinite(corr.P))
        assert np.isfinite(corr.nis)
