"""
Unit tests for settings and service wiring.

Run: pytest tests/unit/test_config.py -v
"""

import pytest

from config import Settings
from src.scheduling import InMemoryHistoryStore, build_services
from src.scheduling.models import Difficulty
from src.scheduling.retention_model import RetentionConfig
from src.scheduling.spaced_repetition import SchedulerConfig


class TestSettings:
    """Test environment-driven settings."""

    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        settings = Settings()
        assert settings.base_tau_days == pytest.approx(3.0)
        assert settings.max_scheduled_sessions == 1000
        assert settings.get_target_retention_table()["Difficult"] == pytest.approx(0.85)

    def test_environment_override(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("BASE_TAU_DAYS", "4.5")
        monkeypatch.setenv("DATA_DIR", str(tmp_path))
        settings = Settings()
        assert settings.base_tau_days == pytest.approx(4.5)
        assert settings.scheduled_sessions_path == tmp_path / "scheduled_sessions.json"

    def test_component_configs(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("TARGET_RETENTION_EASY", "0.75")
        monkeypatch.setenv("USER_EXPERIENCE", "advanced")
        settings = Settings()

        retention = RetentionConfig.from_settings(settings)
        scheduler = SchedulerConfig.from_settings(settings)

        assert retention.target_retention[Difficulty.EASY] == pytest.approx(0.75)
        assert scheduler.user_experience == "advanced"


class TestBuildServices:
    """Test service construction from settings."""

    def test_services_share_clock_and_models(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        settings = Settings(data_dir=tmp_path)
        services = build_services(settings, InMemoryHistoryStore())

        assert services.scheduler.stability is services.stability
        assert services.store.scheduler is services.scheduler
        assert services.practice.store is services.store
        assert services.store.clock is services.clock
        assert services.store.get_all() == []

    def test_calibration_is_wired(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        services = build_services(Settings(data_dir=tmp_path), InMemoryHistoryStore())

        assert services.calibration is not None
        assert services.practice.calibration is services.calibration
        assert services.scheduler.adaptive_tau.calibration is services.calibration

    def test_calibration_can_be_disabled(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        services = build_services(Settings(data_dir=tmp_path, use_personal_calibration=False), InMemoryHistoryStore())

        assert services.calibration is None
        assert services.scheduler.adaptive_tau.calibration is None
