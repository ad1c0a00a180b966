"""
Personalized memory calibration.

Learns, per difficulty, whether the user forgets faster or slower than the
demographic forgetting curve predicts. After every session the predicted
retention is compared with the retention implied by the session score and
a per-difficulty tau factor moves towards:

    accuracy < 0.3    0.70   (forgets much faster: shorter tau)
    accuracy < 0.5    0.85
    accuracy <= 0.8   1.15
    accuracy > 0.8    1.30   (retains better: longer tau)

The factor is trusted gradually. During the first five sessions a rapid
phase applies it with at most 60% confidence; afterwards confidence grows
with the total session count. The state is persisted as one JSON object.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from .adjustments import clamp
from .errors import PersistenceError
from .file_service import JsonFileService
from .models import Difficulty, HistoryEntry, PracticeItem
from .retention_model import RetentionModel

RAPID_PHASE_SESSIONS = 5
MIN_CALIBRATION_SESSIONS = 5
RAPID_PHASE_MAX_CONFIDENCE = 0.6
FULL_CONFIDENCE_SESSIONS = 25.0
FACTOR_BOUNDS = (0.3, 3.0)


@dataclass
class CalibrationConfig:
    learning_rate: float = 0.1

    @classmethod
    def from_settings(cls, settings) -> "CalibrationConfig":
        return cls(learning_rate=settings.calibration_learning_rate)


@dataclass
class DifficultyAdjustment:
    """Learned tau factor for one difficulty."""

    adjustment_factor: float = 1.0
    confidence: float = 0.0
    session_count: int = 0

    def to_dict(self) -> dict:
        return {
            "adjustment_factor": self.adjustment_factor,
            "confidence": self.confidence,
            "session_count": self.session_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DifficultyAdjustment":
        return cls(
            adjustment_factor=float(data.get("adjustment_factor", 1.0)),
            confidence=float(data.get("confidence", 0.0)),
            session_count=int(data.get("session_count", 0)),
        )


def estimate_actual_retention(entry: HistoryEntry) -> float:
    """
    Retention implied by a finished session.

    The 0-10 score maps linearly onto 0.2-0.95. Without a usable score the
    practice rate (repetitions per minute, 2/min counting as full recall)
    stands in, reduced by the share of failed attempts.
    """
    if math.isfinite(entry.performance_score):
        return clamp(0.2 + entry.performance_score / 10.0 * 0.75, 0.1, 1.0)

    minutes = entry.duration.total_seconds() / 60.0
    if minutes <= 0:
        return 0.5
    efficiency = clamp(entry.repetitions / minutes / 2.0, 0.1, 1.0)
    if entry.total_failures > 0:
        failure_ratio = entry.total_failures / (entry.repetitions + entry.total_failures)
        efficiency *= 1.0 - failure_ratio * 0.5
    return clamp(efficiency, 0.1, 1.0)


class PersonalizedCalibration:
    """
    Per-difficulty personal tau factors learned from session accuracy.

    Satisfies the calibration provider consumed by AdaptiveTauCalculator.

    Args:
        retention: Forgetting-curve model supplying the baseline tau
        file_service: Backing JSON file (in-memory only when None)
        config: Learning rate (uses defaults if None)
    """

    def __init__(
        self,
        retention: RetentionModel | None = None,
        file_service: JsonFileService | None = None,
        config: CalibrationConfig | None = None,
    ):
        self.retention = retention or RetentionModel()
        self.config = config or CalibrationConfig()
        self._file = file_service
        self._lock = threading.RLock()
        self._total_sessions = 0
        self._adjustments: dict[str, DifficultyAdjustment] = {}
        self._last_update: str | None = None
        self._load()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _load(self) -> None:
        if self._file is None:
            return
        try:
            raw = self._file.read()
        except PersistenceError as e:
            logger.error(f"Calibration data unreadable, starting uncalibrated: {e}")
            return
        if not isinstance(raw, dict):
            if raw is not None:
                logger.warning("Calibration file is not an object, starting uncalibrated")
            return

        try:
            total = int(raw.get("total_sessions", 0))
            adjustments = {
                str(key): DifficultyAdjustment.from_dict(value)
                for key, value in (raw.get("difficulty_adjustments") or {}).items()
            }
        except (AttributeError, TypeError, ValueError) as e:
            logger.warning(f"Malformed calibration data, starting uncalibrated: {e}")
            return

        self._total_sessions = total
        self._adjustments = adjustments
        self._last_update = raw.get("last_update")
        logger.info(f"Loaded calibration ({total} sessions, {len(adjustments)} difficulties)")

    def _save(self) -> bool:
        if self._file is None:
            return True
        self._last_update = datetime.now().isoformat(timespec="seconds")
        try:
            self._file.write(
                {
                    "total_sessions": self._total_sessions,
                    "difficulty_adjustments": {k: a.to_dict() for k, a in self._adjustments.items()},
                    "last_update": self._last_update,
                }
            )
        except PersistenceError as e:
            logger.error(f"Failed to save calibration data: {e}")
            return False
        return True

    # -------------------------------------------------------------------------
    # Calibration provider
    # -------------------------------------------------------------------------

    def total_sessions(self) -> int:
        with self._lock:
            return self._total_sessions

    @property
    def is_calibrated(self) -> bool:
        return self.total_sessions() >= MIN_CALIBRATION_SESSIONS

    def get_adjustment(self, difficulty: Difficulty) -> DifficultyAdjustment | None:
        with self._lock:
            return self._adjustments.get(difficulty.value.lower())

    def personal_adjustment(self, difficulty: Difficulty) -> float:
        """Confidence-weighted factor for a difficulty, bounded to [0.3, 3.0]."""
        with self._lock:
            adjustment = self._adjustments.get(difficulty.value.lower())
            if adjustment is None or adjustment.session_count == 0:
                return 1.0

            if self._total_sessions <= RAPID_PHASE_SESSIONS:
                confidence = min(RAPID_PHASE_MAX_CONFIDENCE, adjustment.session_count / 3.0)
            else:
                confidence = min(1.0, self._total_sessions / FULL_CONFIDENCE_SESSIONS)

            factor = 1.0 + (adjustment.adjustment_factor - 1.0) * confidence
            return clamp(factor, *FACTOR_BOUNDS)

    def personalized_tau(self, difficulty: Difficulty, repetitions: int) -> float | None:
        base = self.retention.adjusted_tau(difficulty, repetitions)
        personal = base * self.personal_adjustment(difficulty)
        logger.debug(f"Personal tau {difficulty.value}: {base:.2f}d x{personal / base:.2f} -> {personal:.2f}d")
        return personal

    # -------------------------------------------------------------------------
    # Learning
    # -------------------------------------------------------------------------

    def prediction_accuracy(self, item: PracticeItem, entry: HistoryEntry) -> float:
        """
        How well the demographic curve predicted this session (1.0 = exactly).

        Must be called before the item's last practice date and repetition
        count are advanced to include ``entry``.
        """
        last_practice = item.last_practice_date or entry.date
        days_since = (entry.date - last_practice).days
        if days_since <= 0:
            return 1.0

        expected_tau = self.retention.adjusted_tau(item.difficulty, max(0, item.completed_repetitions))
        expected = self.retention.calculate_retention(days_since, expected_tau)
        actual = estimate_actual_retention(entry)
        return clamp(1.0 - abs(expected - actual), 0.0, 1.0)

    @staticmethod
    def target_factor(accuracy: float) -> float:
        if accuracy < 0.5:
            return 0.7 if accuracy < 0.3 else 0.85
        return 1.3 if accuracy > 0.8 else 1.15

    def update_from_session(self, item: PracticeItem, entry: HistoryEntry) -> DifficultyAdjustment:
        """Learn from one finished session and persist the new state."""
        accuracy = self.prediction_accuracy(item, entry)
        key = item.difficulty.value.lower()

        with self._lock:
            adjustment = self._adjustments.setdefault(key, DifficultyAdjustment())
            target = self.target_factor(accuracy)
            adjustment.adjustment_factor += self.config.learning_rate * (target - adjustment.adjustment_factor)
            adjustment.session_count += 1
            adjustment.confidence = min(1.0, adjustment.session_count / 20.0)
            self._total_sessions += 1
            self._save()

        logger.info(
            f"Calibration {item.difficulty.value}: accuracy={accuracy:.3f} target x{target:.2f} "
            f"-> factor {adjustment.adjustment_factor:.3f} ({adjustment.session_count} sessions)"
        )
        return adjustment

    def reset(self) -> None:
        with self._lock:
            self._total_sessions = 0
            self._adjustments.clear()
            self._save()
        logger.info("Calibration reset")

    def stats(self) -> dict[str, DifficultyAdjustment]:
        """Snapshot of the learned factors keyed by difficulty name."""
        with self._lock:
            return {
                key: DifficultyAdjustment(a.adjustment_factor, a.confidence, a.session_count)
                for key, a in self._adjustments.items()
            }
