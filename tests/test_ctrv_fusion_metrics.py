"""
Tests for CTRV-Fusion metrics, synthetic scenarios and demo
============================================================
pytest tests/test_ctrv_fusion_metrics.py -v
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose
import sys, os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from ctrv_fusion.ctrv_fusion_config import FilterConfig
from ctrv_fusion.ctrv_fusion_datasets import (
    ScenarioData, SyntheticScenarioGenerator, radar_observation,
)
from ctrv_fusion.ctrv_fusion_measurement import SensorType
from ctrv_fusion.ctrv_fusion_metrics import (
    NISMonitor, compute_nees, compute_nis, compute_rmse, nis_threshold,
)
from ctrv_fusion.ctrv_fusion_motion import ctrv_step
from ctrv_fusion.demo import main, run_demo


# ===== NIS / NEES / RMSE =====

class TestMetrics:
    def test_nis(self):
        y = np.array([1.0, 2.0])
        S = np.diag([1.0, 4.0])
        assert compute_nis(y, S) == pytest.approx(2.0)

    def test_nis_singular(self):
        assert compute_nis(np.ones(2), np.zeros((2, 2))) == float('inf')

    def test_nees_identity(self):
        x = np.array([1.0, 2.0, 3.0, 0.1, 0.0])
        assert compute_nees(x, x, np.eye(5)) == pytest.approx(0.0)

    def test_nees_wraps_heading(self):
        x_true = np.array([0.0, 0.0, 1.0, np.pi - 0.05, 0.0])
        x_est = np.array([0.0, 0.0, 1.0, -np.pi + 0.05, 0.0])
        assert compute_nees(x_true, x_est, np.eye(5)) == pytest.approx(0.01)

    def test_rmse(self):
        est = [np.array([1.0, 2.0]), np.array([3.0, 4.0])]
        gt = [np.array([1.0, 1.0]), np.array([3.0, 6.0])]
        assert_allclose(compute_rmse(est, gt), [0.0, np.sqrt(2.5)])

    def test_rmse_invalid(self):
        with pytest.raises(ValueError):
            compute_rmse([], [])
        with pytest.raises(ValueError):
            compute_rmse([np.zeros(2)], [np.zeros(3)])

    def test_chi_square_thresholds(self):
        assert nis_threshold(2) == pytest.approx(5.991, abs=1e-3)
        assert nis_threshold(3) == pytest.approx(7.815, abs=1e-3)
        with pytest.raises(ValueError):
            nis_threshold(2, confidence=1.5)


class TestNISMonitor:
    def test_record_and_report(self):
        mon = NISMonitor(window=3)
        assert not mon.record("laser", 2, 1.0)
        assert mon.record("laser", 2, 10.0)
        mon.record("laser", 2, 2.0)
        mon.record("laser", 2, 3.0)
        stats = mon.sensors["laser"]
        assert stats.count == 4
        assert stats.history == [10.0, 2.0, 3.0]
        assert stats.exceedances == 1
        rep = mon.report()["laser"]
        assert rep["updates"] == 4
        assert rep["exceedance_ratio"] == pytest.approx(0.25)

    def test_consistency(self):
        mon = NISMonitor(tolerance=0.05)
        assert mon.consistent("radar") is None
        for _ in range(95):
            mon.record("radar", 3, 1.0)
        for _ in range(5):
            mon.record("radar", 3, 20.0)
        assert mon.consistent("radar") is True
        for _ in range(50):
            mon.record("radar", 3, 20.0)
        assert mon.consistent("radar") is False

    def test_invalid_window(self):
        with pytest.raises(ValueError):
            NISMonitor(window=0)

    def test_reset(self):
        mon = NISMonitor()
        mon.record("laser", 2, 1.0)
        mon.reset()
        assert mon.sensors == {}


# ===== SYNTHETIC SCENARIOS =====

class TestSyntheticScenario:
    def test_reproducible(self):
        a = SyntheticScenarioGenerator(seed=5).ctrv_trajectory(n_steps=20)
        b = SyntheticScenarioGenerator(seed=5).ctrv_trajectory(n_steps=20)
        for ma, mb in zip(a.measurements, b.measurements):
            assert_allclose(ma.z, mb.z)
        assert_allclose(a.ground_truth, b.ground_truth)

    def test_structure(self):
        data = SyntheticScenarioGenerator(seed=1).ctrv_trajectory(n_steps=10, dt=0.05, t0=1000)
        assert isinstance(data, ScenarioData)
        assert data.n_measurements == 10
        assert data.ground_truth.shape == (10, 5)
        types = [m.sensor_type for m in data.measurements]
        assert types[0] is SensorType.LASER
        assert types[1] is SensorType.RADAR
        stamps = [m.timestamp for m in data.measurements]
        assert stamps[0] == 1000
        assert all(b - a == 50_000 for a, b in zip(stamps, stamps[1:]))

    def test_truth_follows_ctrv(self):
        data = SyntheticScenarioGenerator(seed=1).ctrv_trajectory(n_steps=5, dt=0.1)
        for k in range(1, 5):
            assert_allclose(data.ground_truth[k], ctrv_step(data.ground_truth[k - 1], 0.1))

    def test_single_sensor(self):
        data = SyntheticScenarioGenerator(seed=1).straight_line(
            n_steps=6, sensors=[SensorType.RADAR])
        assert all(m.sensor_type is SensorType.RADAR for m in data.measurements)
        assert np.all(data.ground_truth[:, 4] == 0.0)

    def test_invalid_arguments(self):
        gen = SyntheticScenarioGenerator()
        with pytest.raises(ValueError):
            gen.ctrv_trajectory(n_steps=0)
        with pytest.raises(ValueError):
            gen.straight_line(dt=0.0)

    def test_radar_observation(self):
        z = radar_observation(np.array([3.0, 4.0, 1.0, np.arctan2(4.0, 3.0), 0.0]))
        assert_allclose(z, [5.0, np.arctan2(4.0, 3.0), 1.0])
        assert radar_observation(np.zeros(5))[2] == 0.0

    def test_filter_consistency_on_matched_noise(self):
        from ctrv_fusion.ctrv_fusion_ukf import FusionTracker
        config = FilterConfig()
        data = SyntheticScenarioGenerator(seed=3, config=config).straight_line(n_steps=400)
        tracker = FusionTracker(config, nis_window=400)
        for meas in data.measurements:
            tracker.process_measurement(meas)
        for rep in tracker.monitor.report().values():
            assert rep["exceedance_ratio"] < 0.3


# ===== DEMO =====

class TestDemo:
    def test_run_demo(self):
        out = run_demo(scenario="turn", steps=60, seed=2)
        assert out["rmse"].shape == (4,)
        assert np.all(np.isfinite(out["rmse"]))
        assert set(out["nis"]) == {"laser", "radar"}

    def test_laser_only(self):
        out = run_demo(scenario="straight", steps=40, use_radar=False)
        assert set(out["nis"]) == {"laser"}

    def test_cli(self, capsys):
        main(["--scenario", "straight", "--steps", "30", "--radar-only"])
        captured = capsys.readouterr().out
        assert "RMSE" in captured
        assert "radar" in captured
