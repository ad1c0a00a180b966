"""Service wiring from application settings."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from .adaptive_tau import AdaptiveTauCalculator
from .calibration import CalibrationConfig, PersonalizedCalibration
from .dates import SessionClock
from .file_service import JsonFileService
from .history import HistoryStore
from .item_memory import ItemMemoryModel
from .practice_scheduler import PracticeScheduler
from .retention_model import RetentionConfig, RetentionModel
from .schedule_store import ScheduleStore, StoreConfig
from .spaced_repetition import SchedulerConfig, SpacedRepetitionScheduler
from .stability_model import StabilityConfig, StabilityModel


@dataclass
class SchedulingServices:
    clock: SessionClock
    retention: RetentionModel
    stability: StabilityModel
    item_memory: ItemMemoryModel
    calibration: PersonalizedCalibration | None
    scheduler: SpacedRepetitionScheduler
    store: ScheduleStore
    practice: PracticeScheduler


def build_services(settings, history: HistoryStore) -> SchedulingServices:
    """
    Construct every scheduling service once, sharing clock and models.

    Args:
        settings: config.Settings instance
        history: Practice log consumed by the scheduler
    """
    clock = SessionClock(timezone=settings.session_timezone)
    retention = RetentionModel(RetentionConfig.from_settings(settings))
    stability = StabilityModel(
        JsonFileService(settings.memory_stability_path),
        StabilityConfig.from_settings(settings),
        clock,
    )
    item_memory = ItemMemoryModel(retention)
    calibration = None
    if settings.use_personal_calibration:
        calibration = PersonalizedCalibration(
            retention,
            JsonFileService(settings.calibration_path),
            CalibrationConfig.from_settings(settings),
        )
    scheduler_config = SchedulerConfig.from_settings(settings)
    adaptive_tau = AdaptiveTauCalculator(
        retention,
        stability=stability,
        item_memory=item_memory,
        calibration=calibration,
        enabled=settings.use_adaptive_tau,
        experience=scheduler_config.user_experience,
    )
    scheduler = SpacedRepetitionScheduler(
        retention,
        stability=stability,
        item_memory=item_memory,
        adaptive_tau=adaptive_tau,
        config=scheduler_config,
        clock=clock,
    )
    store = ScheduleStore(
        JsonFileService(settings.scheduled_sessions_path),
        scheduler,
        StoreConfig.from_settings(settings),
        clock,
    )
    practice = PracticeScheduler(
        scheduler, store, history, stability=stability, calibration=calibration, clock=clock
    )

    logger.debug(f"Scheduling services ready (data dir {settings.data_dir})")
    return SchedulingServices(clock, retention, stability, item_memory, calibration, scheduler, store, practice)
