"""
Memory Stability Model (SM-17-like).

Tracks two numbers per item:
- Stability S: days until recall probability drops to 50%
- Difficulty D: 0.0 (easy) to 1.0 (hard)

Retrievability decays as R = 0.5 ** (elapsed / S). Successful reviews at
low retrievability grow S the most; failures shrink it. The table is
persisted as a JSON array and rewritten in full on every mutation.
"""

from __future__ import annotations

import math
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from loguru import logger

from .adjustments import clamp
from .dates import SessionClock
from .errors import PersistenceError
from .file_service import JsonFileService
from .models import HistoryEntry, SessionOutcome, StabilityRecord

# =============================================================================
# Configuration
# =============================================================================


@dataclass
class StabilityConfig:
    """Constants of the stability model."""

    initial_stability: float = 1.8
    default_difficulty: float = 0.3
    growth_factor: float = 1.3
    difficulty_rate: float = 0.05
    retrievability_threshold: float = 0.8

    @classmethod
    def from_settings(cls, settings) -> "StabilityConfig":
        return cls(
            initial_stability=settings.initial_stability,
            retrievability_threshold=settings.stability_threshold,
        )


@dataclass
class MemoryStats:
    """Snapshot of an item's stability state for display and tau blending."""

    item_id: str
    is_new: bool
    stability: float
    difficulty: float
    current_retrievability: float
    review_count: int
    last_review_date: date | None
    days_since_last_review: float
    optimal_next_review: date

    @property
    def retention_strength(self) -> float:
        """0-100 score mixing stability, review count and ease."""
        return (
            min(100.0, self.stability * 5.0) * 0.5
            + min(100.0, self.review_count * 10.0) * 0.3
            + (1.0 - self.difficulty) * 100.0 * 0.2
        )

    def learning_progress(self, initial_stability: float = 1.8) -> float:
        """0-100 estimate of how far the item has come since creation."""
        stability_gain = min(100.0, (self.stability / initial_stability - 1.0) * 20.0)
        difficulty_gain = (0.3 - self.difficulty) * 200.0
        review_gain = min(100.0, self.review_count * 5.0)
        return max(0.0, (stability_gain + difficulty_gain + review_gain) / 3.0)


# =============================================================================
# Stability Model
# =============================================================================


class StabilityModel:
    """
    Stability/difficulty engine for mature items.

    Args:
        file_service: Backing JSON file (in-memory only when None)
        config: Model constants (uses defaults if None)
        clock: Source of the current session date
    """

    def __init__(
        self,
        file_service: JsonFileService | None = None,
        config: StabilityConfig | None = None,
        clock: SessionClock | None = None,
    ):
        self.config = config or StabilityConfig()
        self.clock = clock or SessionClock()
        self._file = file_service
        self._records: dict[str, StabilityRecord] = {}
        self._lock = threading.RLock()
        self._load()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _load(self) -> None:
        if self._file is None:
            return
        try:
            raw = self._file.read() or []
        except PersistenceError as e:
            logger.error(f"Memory stability table unreadable, starting empty: {e}")
            return

        for data in raw:
            try:
                record = StabilityRecord.from_dict(data)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed stability record {data!r}: {e}")
                continue
            self._records[record.item_id] = record
        logger.info(f"Loaded {len(self._records)} stability records")

    def _save(self) -> bool:
        if self._file is None:
            return True
        try:
            self._file.write([r.to_dict() for r in self._records.values()])
        except PersistenceError as e:
            logger.error(f"Failed to save memory stability table: {e}")
            return False
        return True

    # -------------------------------------------------------------------------
    # Algorithm
    # -------------------------------------------------------------------------

    @staticmethod
    def retrievability(stability: float, elapsed_days: float) -> float:
        """R = 0.5 ** (elapsed / S), floored at 0.01."""
        if elapsed_days <= 0:
            return 1.0
        if stability <= 0:
            return 0.1
        return max(0.01, math.exp(elapsed_days * math.log(0.5) / stability))

    @staticmethod
    def is_successful(entry: HistoryEntry) -> bool:
        """A review counts as a success when at least two signals agree."""
        signals = [
            entry.performance_score >= 6.0,
            entry.repetitions > 0,
            entry.session_outcome == SessionOutcome.TARGET_REACHED,
            entry.duration >= timedelta(minutes=1),
        ]
        return sum(signals) >= 2

    def target_interval(self, stability: float, threshold: float) -> float:
        """Days after the last review at which R falls to ``threshold``."""
        if threshold >= 1.0:
            return 0.0
        if threshold <= 0.01:
            return stability * 10.0
        interval = stability * math.log(threshold) / math.log(0.5)
        return clamp(interval, 0.1, stability * 5.0)

    @staticmethod
    def apply_difficulty_adjustment(interval: float, difficulty: float) -> float:
        return max(0.5, interval * (1.0 - 0.4 * difficulty))

    def _new_record(self, item_id: str) -> StabilityRecord:
        return StabilityRecord(
            item_id=item_id,
            stability=self.config.initial_stability,
            difficulty=self.config.default_difficulty,
        )

    def update_from_session(self, item_id: str, entry: HistoryEntry) -> StabilityRecord:
        """
        Fold one practice session into the item's stability record.

        Args:
            item_id: Item that was practiced
            entry: The session as recorded in history

        Returns:
            The updated record (also persisted)
        """
        cfg = self.config
        with self._lock:
            record = self._records.get(item_id) or self._new_record(item_id)

            elapsed = (
                float((entry.date - record.last_review_date).days)
                if record.last_review_date is not None
                else 0.0
            )
            r = self.retrievability(record.stability, elapsed)
            old_s, old_d = record.stability, record.difficulty

            if self.is_successful(entry):
                # harder recall (low R) and easier items grow stability more
                multiplier = cfg.growth_factor * math.sqrt(1.0 - r + 0.1) * (1.0 - 0.3 * record.difficulty)
                record.stability *= multiplier
                record.difficulty = max(0.01, record.difficulty - cfg.difficulty_rate)
            else:
                record.stability = max(cfg.initial_stability * 0.8, record.stability * 0.3)
                record.difficulty = min(0.99, record.difficulty + cfg.difficulty_rate * 2)

            if entry.performance_score >= 8.0:
                record.stability *= 1.05
            elif entry.performance_score <= 4.0:
                record.stability *= 0.95

            minutes = entry.duration.total_seconds() / 60.0
            if minutes < 2.0:
                record.stability *= 0.98
            elif minutes > 15.0:
                record.stability *= 1.02

            record.review_count += 1
            record.last_review_date = entry.date
            record.modified_date = datetime.now()
            self._records[item_id] = record
            self._save()

        logger.info(
            f"Stability update item={item_id} R={r:.3f} "
            f"S {old_s:.2f} -> {record.stability:.2f} D {old_d:.3f} -> {record.difficulty:.3f}"
        )
        return record

    def optimal_review_date(self, item_id: str, threshold: float | None = None) -> date:
        """Date at which the item's retrievability reaches the threshold."""
        threshold = self.config.retrievability_threshold if threshold is None else threshold
        with self._lock:
            record = self._records.get(item_id)
            if record is None or record.last_review_date is None:
                return self.clock.next_practice_date(self.clock.today(), self.config.initial_stability)

            interval = self.apply_difficulty_adjustment(
                self.target_interval(record.stability, threshold),
                record.difficulty,
            )
            return self.clock.next_practice_date(record.last_review_date, interval)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_record(self, item_id: str) -> StabilityRecord | None:
        with self._lock:
            return self._records.get(item_id)

    def all_records(self) -> list[StabilityRecord]:
        with self._lock:
            return list(self._records.values())

    def get_memory_stats(self, item_id: str) -> MemoryStats:
        today = self.clock.today()
        with self._lock:
            record = self._records.get(item_id)
            if record is None:
                return MemoryStats(
                    item_id=item_id,
                    is_new=True,
                    stability=self.config.initial_stability,
                    difficulty=self.config.default_difficulty,
                    current_retrievability=1.0,
                    review_count=0,
                    last_review_date=None,
                    days_since_last_review=0.0,
                    optimal_next_review=self.optimal_review_date(item_id),
                )

            days_since = (
                float(max(0, (today - record.last_review_date).days))
                if record.last_review_date is not None
                else 0.0
            )
            return MemoryStats(
                item_id=item_id,
                is_new=False,
                stability=record.stability,
                difficulty=record.difficulty,
                current_retrievability=self.retrievability(record.stability, days_since),
                review_count=record.review_count,
                last_review_date=record.last_review_date,
                days_since_last_review=days_since,
                optimal_next_review=self.optimal_review_date(item_id),
            )

    def predict_retention_curve(self, item_id: str, days_ahead: int = 30) -> list[tuple[date, float]]:
        """Daily retrievability from the last review (or today) onwards."""
        stats = self.get_memory_stats(item_id)
        start = stats.last_review_date or self.clock.today()
        return [
            (start + timedelta(days=day), self.retrievability(stats.stability, day))
            for day in range(max(0, days_ahead) + 1)
        ]

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def merge(self, old_item_ids: Iterable[str], new_item_id: str) -> StabilityRecord | None:
        """
        Combine several items' records into one.

        Stability and difficulty are averaged weighted by review count; the
        earliest creation date, latest review date and summed review count
        are kept. The old records are replaced atomically.

        Returns:
            The merged record, or None when none of the old ids had a record.
        """
        old_ids = list(dict.fromkeys(old_item_ids))
        with self._lock:
            sources = [self._records[i] for i in old_ids if i in self._records]
            if not sources:
                logger.info(f"Stability merge into {new_item_id}: no source records")
                return None

            total_reviews = sum(r.review_count for r in sources)
            weights = [
                (r.review_count / total_reviews) if total_reviews > 0 else 1.0 / len(sources)
                for r in sources
            ]
            stability = sum(r.stability * w for r, w in zip(sources, weights))
            difficulty = sum(r.difficulty * w for r, w in zip(sources, weights))
            review_dates = [r.last_review_date for r in sources if r.last_review_date is not None]

            merged = StabilityRecord(
                item_id=new_item_id,
                stability=max(stability, self.config.initial_stability),
                difficulty=clamp(difficulty, 0.0, 1.0),
                last_review_date=max(review_dates) if review_dates else None,
                review_count=total_reviews,
                created_date=min(r.created_date for r in sources),
                modified_date=datetime.now(),
            )

            for item_id in old_ids:
                self._records.pop(item_id, None)
            self._records[new_item_id] = merged
            self._save()

        logger.info(
            f"Merged stability of {len(sources)} items into {new_item_id}: "
            f"S={merged.stability:.2f} D={merged.difficulty:.3f} reviews={merged.review_count}"
        )
        return merged

    def remove(self, item_id: str) -> bool:
        with self._lock:
            if self._records.pop(item_id, None) is None:
                return False
            self._save()
            return True
