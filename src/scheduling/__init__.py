"""
Adaptive spaced-repetition scheduling.

Decides when each practice item is practiced next and keeps a persistent
list of planned sessions consistent.

Components:
- RetentionModel: Extended forgetting curve, tau and interval bounds
- SpacedRepetitionScheduler: Per-item next date (stability, frustration, foundation, mature paths)
- StabilityModel: Per-item stability/difficulty memory model
- PersonalizedCalibration: Personal tau factors learned from session accuracy
- ScheduleStore: Scheduled session persistence and maintenance
- PracticeScheduler: Library-wide planning and session registration
"""

from .adaptive_tau import AdaptiveTauCalculator, CalibrationProvider
from .calibration import CalibrationConfig, DifficultyAdjustment, PersonalizedCalibration
from .dates import SessionClock
from .errors import ErrorKind, PersistenceError, Result, SchedulingError
from .history import HistoryStore, InMemoryHistoryStore
from .item_memory import ItemMemoryModel
from .library import Library
from .models import (
    Difficulty,
    HistoryEntry,
    ItemOwner,
    LifecycleState,
    OverrideRequest,
    PracticeItem,
    ScheduledSession,
    ScheduleResult,
    SessionOutcome,
    SessionStatus,
    StabilityRecord,
)
from .overlearning import OverlearningMode, OverlearningTracker
from .practice_scheduler import PracticeScheduler
from .retention_model import RetentionConfig, RetentionModel
from .schedule_store import ScheduleChanged, ScheduleStore, StoreConfig
from .services import SchedulingServices, build_services
from .spaced_repetition import SchedulerConfig, SpacedRepetitionScheduler
from .stability_model import MemoryStats, StabilityConfig, StabilityModel

__all__ = [
    # Records
    "Difficulty",
    "HistoryEntry",
    "ItemOwner",
    "LifecycleState",
    "OverrideRequest",
    "PracticeItem",
    "ScheduledSession",
    "ScheduleResult",
    "SessionOutcome",
    "SessionStatus",
    "StabilityRecord",
    # Models
    "RetentionModel",
    "RetentionConfig",
    "StabilityModel",
    "StabilityConfig",
    "MemoryStats",
    "ItemMemoryModel",
    "AdaptiveTauCalculator",
    "CalibrationProvider",
    "PersonalizedCalibration",
    "CalibrationConfig",
    "DifficultyAdjustment",
    "OverlearningTracker",
    "OverlearningMode",
    # Scheduling
    "SpacedRepetitionScheduler",
    "SchedulerConfig",
    "PracticeScheduler",
    # Persistence
    "ScheduleStore",
    "StoreConfig",
    "ScheduleChanged",
    "HistoryStore",
    "InMemoryHistoryStore",
    "Library",
    # Infrastructure
    "SessionClock",
    "SchedulingServices",
    "build_services",
    "ErrorKind",
    "Result",
    "SchedulingError",
    "PersistenceError",
]
