"""
Data model for practice items, their history, and scheduled sessions.

Every persisted record is a dataclass with to_dict/from_dict so the JSON
files stay human-readable.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum

from .dates import format_date, parse_date

# =============================================================================
# Enums
# =============================================================================


class Difficulty(str, Enum):
    """Perceived difficulty of a practice item."""

    EASY = "Easy"
    AVERAGE = "Average"
    DIFFICULT = "Difficult"
    MASTERED = "Mastered"

    @classmethod
    def parse(cls, value: "str | Difficulty | None") -> "Difficulty":
        """Case-insensitive parse with synonyms; unknown values map to Average."""
        if isinstance(value, Difficulty):
            return value
        key = (value or "").strip().lower()
        return _DIFFICULTY_SYNONYMS.get(key, cls.AVERAGE)


_DIFFICULTY_SYNONYMS = {
    "easy": Difficulty.EASY,
    "simple": Difficulty.EASY,
    "average": Difficulty.AVERAGE,
    "default": Difficulty.AVERAGE,
    "difficult": Difficulty.DIFFICULT,
    "hard": Difficulty.DIFFICULT,
    "challenging": Difficulty.DIFFICULT,
    "mastered": Difficulty.MASTERED,
    "review": Difficulty.MASTERED,
    "maintain": Difficulty.MASTERED,
}


class SessionOutcome(str, Enum):
    TARGET_REACHED = "TargetReached"
    TARGET_NOT_REACHED = "TargetNotReached"
    FRUSTRATION = "Frustration"
    MANUAL_FRUSTRATION = "ManualFrustration"

    @property
    def is_frustration(self) -> bool:
        return self in (SessionOutcome.FRUSTRATION, SessionOutcome.MANUAL_FRUSTRATION)


class LifecycleState(str, Enum):
    ACTIVE = "Active"
    MAINTENANCE = "Maintenance"
    INACTIVE = "Inactive"


class SessionStatus(str, Enum):
    PLANNED = "Planned"
    COMPLETED = "Completed"


MATURE_STAGE = 3

# =============================================================================
# Library Records
# =============================================================================


@dataclass
class ItemOwner:
    """Parent collection of practice items (e.g. a piece or a course)."""

    id: str
    title: str = ""
    paused_until: date | None = None

    def is_paused(self, today: date) -> bool:
        return self.paused_until is not None and self.paused_until >= today

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "paused_until": format_date(self.paused_until)}

    @classmethod
    def from_dict(cls, data: dict) -> "ItemOwner":
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            paused_until=parse_date(data.get("paused_until")),
        )


@dataclass
class PracticeItem:
    """A discrete unit that gets scheduled (e.g. a passage, a card)."""

    id: str
    owner_id: str
    label: str = ""
    difficulty: Difficulty = Difficulty.AVERAGE
    completed_repetitions: int = 0
    foundation_stage: int = 0
    next_due_date: date | None = None
    interval_days: float = 1.0
    last_practice_date: date | None = None
    last_frustration_date: date | None = None
    lifecycle_state: LifecycleState = LifecycleState.ACTIVE
    target_repetitions: int = 6
    attempts_till_success: int = 0
    start_date: date | None = None

    @property
    def is_mature(self) -> bool:
        return self.foundation_stage >= MATURE_STAGE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "label": self.label,
            "difficulty": self.difficulty.value,
            "completed_repetitions": self.completed_repetitions,
            "foundation_stage": self.foundation_stage,
            "next_due_date": format_date(self.next_due_date),
            "interval_days": self.interval_days,
            "last_practice_date": format_date(self.last_practice_date),
            "last_frustration_date": format_date(self.last_frustration_date),
            "lifecycle_state": self.lifecycle_state.value,
            "target_repetitions": self.target_repetitions,
            "attempts_till_success": self.attempts_till_success,
            "start_date": format_date(self.start_date),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PracticeItem":
        return cls(
            id=str(data["id"]),
            owner_id=str(data["owner_id"]),
            label=data.get("label", ""),
            difficulty=Difficulty.parse(data.get("difficulty")),
            completed_repetitions=int(data.get("completed_repetitions", 0)),
            foundation_stage=int(data.get("foundation_stage", 0)),
            next_due_date=parse_date(data.get("next_due_date")),
            interval_days=float(data.get("interval_days", 1.0)),
            last_practice_date=parse_date(data.get("last_practice_date")),
            last_frustration_date=parse_date(data.get("last_frustration_date")),
            lifecycle_state=LifecycleState(data.get("lifecycle_state", LifecycleState.ACTIVE.value)),
            target_repetitions=int(data.get("target_repetitions", 6)),
            attempts_till_success=int(data.get("attempts_till_success", 0)),
            start_date=parse_date(data.get("start_date")),
        )


@dataclass
class HistoryEntry:
    """One recorded practice session. Append-only per item."""

    item_id: str
    date: date
    performance_score: float = 5.0
    repetitions: int = 0
    duration: timedelta = field(default_factory=timedelta)
    session_outcome: SessionOutcome = SessionOutcome.TARGET_NOT_REACHED
    total_failures: int = 0
    owner_id: str = ""
    is_deleted: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "owner_id": self.owner_id,
            "date": self.date.isoformat(),
            "performance_score": self.performance_score,
            "repetitions": self.repetitions,
            "duration_seconds": self.duration.total_seconds(),
            "session_outcome": self.session_outcome.value,
            "total_failures": self.total_failures,
            "is_deleted": self.is_deleted,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryEntry":
        return cls(
            id=str(data.get("id") or uuid.uuid4()),
            item_id=str(data["item_id"]),
            owner_id=str(data.get("owner_id", "")),
            date=parse_date(data["date"]),
            performance_score=float(data.get("performance_score", 5.0)),
            repetitions=int(data.get("repetitions", 0)),
            duration=timedelta(seconds=float(data.get("duration_seconds", 0))),
            session_outcome=SessionOutcome(data.get("session_outcome", SessionOutcome.TARGET_NOT_REACHED.value)),
            total_failures=int(data.get("total_failures", 0)),
            is_deleted=bool(data.get("is_deleted", False)),
        )


# =============================================================================
# Scheduling Records
# =============================================================================


@dataclass
class ScheduledSession:
    """A planned (or completed) practice slot for one item."""

    item_id: str
    owner_id: str
    scheduled_date: date
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    owner_title: str = ""
    item_label: str = ""
    estimated_duration: timedelta = field(default_factory=lambda: timedelta(minutes=5))
    difficulty: Difficulty = Difficulty.AVERAGE
    status: SessionStatus = SessionStatus.PLANNED
    tau_value: float = 0.0
    completion_date: date | None = None
    completion_reason: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status != SessionStatus.COMPLETED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "owner_id": self.owner_id,
            "owner_title": self.owner_title,
            "item_label": self.item_label,
            "scheduled_date": self.scheduled_date.isoformat(),
            "estimated_duration_seconds": self.estimated_duration.total_seconds(),
            "difficulty": self.difficulty.value,
            "status": self.status.value,
            "tau_value": self.tau_value,
            "completion_date": format_date(self.completion_date),
            "completion_reason": self.completion_reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduledSession":
        return cls(
            id=str(data["id"]),
            item_id=str(data["item_id"]),
            owner_id=str(data["owner_id"]),
            owner_title=data.get("owner_title", ""),
            item_label=data.get("item_label", ""),
            scheduled_date=parse_date(data["scheduled_date"]),
            estimated_duration=timedelta(seconds=float(data.get("estimated_duration_seconds", 300))),
            difficulty=Difficulty.parse(data.get("difficulty")),
            status=SessionStatus(data.get("status", SessionStatus.PLANNED.value)),
            tau_value=float(data.get("tau_value", 0.0)),
            completion_date=parse_date(data.get("completion_date")),
            completion_reason=data.get("completion_reason"),
        )


@dataclass
class StabilityRecord:
    """Stability/difficulty state of one item in the stability model."""

    item_id: str
    stability: float
    difficulty: float
    last_review_date: date | None = None
    review_count: int = 0
    created_date: datetime = field(default_factory=datetime.now)
    modified_date: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "stability": self.stability,
            "difficulty": self.difficulty,
            "last_review_date": format_date(self.last_review_date),
            "review_count": self.review_count,
            "created_date": self.created_date.isoformat(),
            "modified_date": self.modified_date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StabilityRecord":
        return cls(
            item_id=str(data["item_id"]),
            stability=float(data["stability"]),
            difficulty=float(data["difficulty"]),
            last_review_date=parse_date(data.get("last_review_date")),
            review_count=int(data.get("review_count", 0)),
            created_date=datetime.fromisoformat(data["created_date"]) if data.get("created_date") else datetime.now(),
            modified_date=datetime.fromisoformat(data["modified_date"]) if data.get("modified_date") else datetime.now(),
        )


@dataclass(frozen=True)
class OverrideRequest:
    """User-supplied interval that replaces the computed one."""

    interval_days: float
    reason: str = ""


@dataclass
class ScheduleResult:
    """Outcome of a next-practice-date computation."""

    next_date: date
    tau: float
    path: str
    interval_days: float
    clamp_reason: str = "none"
    target_retention: float | None = None
    performance_factor: float | None = None
    pattern_factor: float | None = None
    error: str | None = None

    def as_tuple(self) -> tuple[date, float]:
        return self.next_date, self.tau


def active_history(history: list[HistoryEntry]) -> list[HistoryEntry]:
    """Non-deleted entries sorted by date (stable for same-day entries)."""
    return sorted((h for h in history if not h.is_deleted), key=lambda h: h.date)
