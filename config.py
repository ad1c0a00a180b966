"""
Configuration settings for the spaced-practice scheduler.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Storage
    # ========================================
    data_dir: Path = Field(
        default=Path.home() / ".spaced_practice",
        description="Directory holding the JSON data files",
    )
    scheduled_sessions_file: str = Field(
        default="scheduled_sessions.json",
        description="File name of the scheduled session store",
    )
    memory_stability_file: str = Field(
        default="memory_stability.json",
        description="File name of the memory stability table",
    )
    library_file: str = Field(
        default="library.json",
        description="File name of the library snapshot (owners, items, history)",
    )
    calibration_file: str = Field(
        default="calibration.json",
        description="File name of the personal memory calibration",
    )

    # ========================================
    # Retention Model (forgetting curve)
    # ========================================
    base_tau_days: float = Field(
        default=3.0,
        description="Base decay constant in days before material and difficulty scaling",
    )
    material_factor: float = Field(
        default=3.0,
        description="Multiplier for procedural/motor material over verbal material",
    )
    learning_strength: float = Field(
        default=0.80,
        description="Initial learning strength of the extended forgetting curve",
    )
    retention_baseline: float = Field(
        default=0.15,
        description="Asymptotic retention floor of the extended forgetting curve",
    )
    target_retention_difficult: float = Field(default=0.85, ge=0.5, le=0.95)
    target_retention_average: float = Field(default=0.80, ge=0.5, le=0.95)
    target_retention_easy: float = Field(default=0.70, ge=0.5, le=0.95)
    target_retention_mastered: float = Field(default=0.65, ge=0.5, le=0.95)
    min_tau_days: float = Field(default=1.0, description="Lower bound for tau")
    max_tau_days: float = Field(default=180.0, description="Upper bound for tau")
    min_interval_days: float = Field(default=1.0, description="Shortest planned interval")
    max_interval_days: float = Field(default=365.0, description="Longest planned interval")
    max_tau_multiple: float = Field(
        default=5.0,
        description="Interval may not exceed this multiple of tau or stability",
    )

    # ========================================
    # Frustration Cool-down
    # ========================================
    manual_frustration_cooldown_days: float = Field(
        default=2.0,
        description="Interval after a user-marked frustrating session",
    )
    auto_frustration_cooldown_days: float = Field(
        default=3.0,
        description="Interval after an automatically detected frustrating session",
    )

    # ========================================
    # Memory Stability
    # ========================================
    initial_stability: float = Field(
        default=1.8,
        description="Stability (days) of a freshly created stability record",
    )
    stability_threshold: float = Field(
        default=0.8,
        description="Retrievability at which the stability model schedules a review",
    )

    # ========================================
    # Schedule Store
    # ========================================
    max_scheduled_sessions: int = Field(
        default=1000,
        description="Maximum retained scheduled session records",
    )

    # ========================================
    # User Profile
    # ========================================
    user_age: int | None = Field(default=None, description="Learner age in years")
    user_experience: Literal[
        "beginner", "intermediate", "advanced", "professional", "expert"
    ] = Field(
        default="intermediate",
        description="Learner experience level",
    )

    # ========================================
    # Feature Flags
    # ========================================
    use_adaptive_tau: bool = Field(
        default=True,
        description="Blend calibration, stability and performance into tau",
    )
    use_personal_calibration: bool = Field(
        default=True,
        description="Learn a personal tau factor per difficulty from session accuracy",
    )
    calibration_learning_rate: float = Field(
        default=0.1,
        description="Step towards the target factor after each session",
    )
    use_memory_stability: bool = Field(
        default=True,
        description="Enable the stability path for mature items",
    )
    use_performance_trend: bool = Field(
        default=True,
        description="Nudge target retention with the recent score trend",
    )

    # ========================================
    # Runtime
    # ========================================
    session_timezone: str | None = Field(
        default=None,
        description="IANA timezone defining the practice day boundary (local time if unset)",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Minimum level written to stderr",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional rotating log file",
    )

    # ========================================
    # Helpers
    # ========================================
    @property
    def scheduled_sessions_path(self) -> Path:
        return Path(self.data_dir) / self.scheduled_sessions_file

    @property
    def memory_stability_path(self) -> Path:
        return Path(self.data_dir) / self.memory_stability_file

    @property
    def calibration_path(self) -> Path:
        return Path(self.data_dir) / self.calibration_file

    @property
    def library_path(self) -> Path:
        return Path(self.data_dir) / self.library_file

    def get_target_retention_table(self) -> dict[str, float]:
        """Target retention per difficulty, keyed by difficulty value."""
        return {
            "Difficult": self.target_retention_difficult,
            "Average": self.target_retention_average,
            "Easy": self.target_retention_easy,
            "Mastered": self.target_retention_mastered,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
