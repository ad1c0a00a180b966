"""
Unit tests for the adaptive tau pipeline.

Run: pytest tests/unit/test_adaptive_tau.py -v
"""

import pytest

from src.scheduling.adaptive_tau import AdaptiveTauCalculator
from src.scheduling.calibration import PersonalizedCalibration
from src.scheduling.file_service import JsonFileService


class _FixedCalibration:
    """Calibration double with a fixed personal tau multiplier."""

    def __init__(self, retention, tau_multiplier=1.0, sessions=0):
        self.retention = retention
        self.tau_multiplier = tau_multiplier
        self.sessions = sessions

    def personalized_tau(self, difficulty, repetitions):
        return self.retention.adjusted_tau(difficulty, repetitions) * self.tau_multiplier

    def total_sessions(self):
        return self.sessions


@pytest.fixture
def mature_item(make_item):
    return make_item(foundation_stage=3)


class TestAdaptiveTau:
    """Test source blending."""

    def test_disabled_uses_baseline(self, retention, mature_item, make_entry):
        calc = AdaptiveTauCalculator(retention, enabled=False)
        history = [make_entry(days_ago=d, score=9.0) for d in range(3)]
        breakdown = calc.compute(mature_item, history).value
        assert breakdown.final == pytest.approx(9.0)
        assert breakdown.adaptive is None

    def test_no_sources_uses_baseline(self, retention, mature_item):
        calc = AdaptiveTauCalculator(retention)
        assert calc.integrated_tau(mature_item, []) == pytest.approx(9.0)

    def test_strong_performance_lengthens_tau(self, retention, mature_item, make_entry):
        calc = AdaptiveTauCalculator(retention)
        history = [make_entry(days_ago=d, score=8.0) for d in range(3)]
        breakdown = calc.compute(mature_item, history).value
        assert breakdown.sources["performance"] == pytest.approx((12.6, 1.0))
        assert breakdown.final == pytest.approx(0.9 * 12.6 + 0.1 * 9.0)

    def test_calibration_source(self, retention, mature_item):
        calibration = _FixedCalibration(retention, tau_multiplier=2.0, sessions=10)
        calc = AdaptiveTauCalculator(retention, calibration=calibration)
        assert calc.integrated_tau(mature_item, []) == pytest.approx(0.9 * 18.0 + 0.1 * 9.0)

    def test_calibration_needs_three_sessions(self, retention, mature_item):
        calibration = _FixedCalibration(retention, tau_multiplier=2.0, sessions=2)
        calc = AdaptiveTauCalculator(retention, calibration=calibration)
        assert calc.integrated_tau(mature_item, []) == pytest.approx(9.0)

    def test_learned_calibration_feeds_pipeline(self, retention, mature_item, tmp_path):
        path = tmp_path / "calibration.json"
        JsonFileService(path).write(
            {
                "total_sessions": 30,
                "difficulty_adjustments": {"average": {"adjustment_factor": 2.0, "session_count": 30}},
            }
        )
        calc = AdaptiveTauCalculator(retention, calibration=PersonalizedCalibration(retention, JsonFileService(path)))
        assert calc.integrated_tau(mature_item, []) == pytest.approx(0.9 * 18.0 + 0.1 * 9.0)

    def test_stability_source_needs_two_reviews(self, retention, stability_model, mature_item, success_entry):
        calc = AdaptiveTauCalculator(retention, stability=stability_model)
        stability_model.update_from_session(mature_item.id, success_entry(days_ago=1))
        assert "stability" not in calc.compute(mature_item, []).value.sources

        stability_model.update_from_session(mature_item.id, success_entry())
        assert "stability" in calc.compute(mature_item, []).value.sources

    def test_experience_changes_baseline(self, retention, mature_item):
        calc = AdaptiveTauCalculator(retention, experience="beginner")
        assert calc.baseline_tau(mature_item) == pytest.approx(7.2)

    def test_result_is_clamped(self, retention, mature_item):
        calibration = _FixedCalibration(retention, tau_multiplier=100.0, sessions=10)
        calc = AdaptiveTauCalculator(retention, calibration=calibration)
        assert calc.integrated_tau(mature_item, []) == pytest.approx(180.0)
