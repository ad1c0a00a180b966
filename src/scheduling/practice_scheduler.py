"""
Practice Scheduler: library-wide planning and session registration.

Ties the pure SpacedRepetitionScheduler to the persistent services:

- schedule_future_sessions: zero-rep replanning of every active item
- replan_item: zero-rep replanning of one item
- register_session: record a finished session and plan the next one
- merge_stability_data: fold several items into one
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, timedelta

from loguru import logger

from .calibration import PersonalizedCalibration
from .dates import SessionClock, interval_days_between
from .history import HistoryStore
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
    StabilityRecord,
)
from .overlearning import OverlearningTracker
from .schedule_store import ScheduleStore
from .spaced_repetition import SpacedRepetitionScheduler
from .stability_model import StabilityModel

DEFAULT_SESSION_ESTIMATE = timedelta(minutes=5)


class PracticeScheduler:
    """
    Coordinates scheduling across the whole library.

    Args:
        scheduler: Per-item next-date computation
        store: Scheduled session persistence
        history: Practice log
        stability: Stability model updated after mature sessions (optional)
        calibration: Personal calibration learning from every session (optional)
        overlearning: Target-repetition policy applied on first success
        clock: Source of the current session date
    """

    def __init__(
        self,
        scheduler: SpacedRepetitionScheduler,
        store: ScheduleStore,
        history: HistoryStore,
        stability: StabilityModel | None = None,
        calibration: PersonalizedCalibration | None = None,
        overlearning: OverlearningTracker | None = None,
        clock: SessionClock | None = None,
    ):
        self.scheduler = scheduler
        self.store = store
        self.history = history
        self.stability = stability
        self.calibration = calibration
        self.overlearning = overlearning or OverlearningTracker()
        self.clock = clock or scheduler.clock

    # =========================================================================
    # Batch Planning
    # =========================================================================

    def schedule_future_sessions(
        self,
        items: Iterable[PracticeItem],
        owners: Iterable[ItemOwner],
        history: HistoryStore | None = None,
        current_sessions: Sequence[ScheduledSession] = (),
        today: date | None = None,
    ) -> list[ScheduledSession]:
        """
        Plan the next session of every schedulable item.

        Items of paused owners and Inactive items are skipped. Each planned
        item gets ``next_due_date``/``interval_days`` updated in place.

        Args:
            items: Items to plan
            owners: Their owners
            history: Practice log (the injected one if None)
            current_sessions: Existing entries; open ones donate their duration estimate
            today: Current session date (clock date if None)

        Returns:
            New Planned sessions, one per scheduled item.
        """
        today = today or self.clock.today()
        history = history or self.history
        owners_by_id = {o.id: o for o in owners}
        estimates = {s.item_id: s.estimated_duration for s in current_sessions if s.is_open}

        planned: list[ScheduledSession] = []
        skipped = 0
        for item in items:
            owner = owners_by_id.get(item.owner_id)
            if owner is None or owner.is_paused(today) or item.lifecycle_state == LifecycleState.INACTIVE:
                skipped += 1
                continue

            entries = history.get_history_for_item(item.id)
            last_practice = item.last_practice_date or item.start_date or today
            last_performance = 5.0 if item.completed_repetitions > 0 else 1.0

            result = self.scheduler.calculate_next_practice_date(item, entries, last_performance, today, 0)
            interval = interval_days_between(last_practice, result.next_date)
            next_date = self.clock.next_practice_date(last_practice, interval)

            item.next_due_date = next_date
            item.interval_days = result.interval_days
            planned.append(
                ScheduledSession(
                    item_id=item.id,
                    owner_id=owner.id,
                    owner_title=owner.title,
                    item_label=item.label,
                    scheduled_date=next_date,
                    estimated_duration=estimates.get(item.id, DEFAULT_SESSION_ESTIMATE),
                    difficulty=item.difficulty,
                    tau_value=result.tau,
                )
            )

        logger.info(f"Planned {len(planned)} sessions ({skipped} items skipped: paused, inactive or orphaned)")
        return planned

    def recompute_all(
        self,
        items: Iterable[PracticeItem],
        owners: Iterable[ItemOwner],
        today: date | None = None,
        preserve_due_date: bool = False,
    ) -> int:
        """
        Replan every item and replace the open entries of the store.

        Returns:
            Number of planned sessions (0 when skipped).
        """
        if preserve_due_date:
            logger.info("Preserve due date active, skipping full recompute")
            return 0

        planned = self.schedule_future_sessions(
            items, owners, current_sessions=self.store.get_all(), today=today
        )
        self.store.replace_all_non_completed(planned)
        return len(planned)

    def replan_item(
        self,
        item: PracticeItem,
        owner: ItemOwner,
        override: OverrideRequest | None = None,
        today: date | None = None,
    ) -> ScheduleResult:
        """Zero-rep replanning of a single item from its last recorded score."""
        today = today or self.clock.today()
        entries = self.history.get_history_for_item(item.id)
        if entries:
            last_performance = entries[-1].performance_score
        else:
            last_performance = 5.0 if item.completed_repetitions > 0 else 1.0

        result = self.scheduler.calculate_next_practice_date(item, entries, last_performance, today, 0, override)
        item.next_due_date = result.next_date
        item.interval_days = result.interval_days
        self.store.add(self._planned_session(item, owner, result))
        return result

    # =========================================================================
    # Session Registration
    # =========================================================================

    def register_session(
        self,
        item: PracticeItem,
        owner: ItemOwner,
        entry: HistoryEntry,
        override: OverrideRequest | None = None,
        preserve_due_date: bool = False,
    ) -> ScheduleResult | None:
        """
        Record a finished session and schedule the item's next one.

        Args:
            item: Practiced item (repetitions, dates and stage updated in place)
            owner: Owner of the item
            entry: The finished session
            override: User-chosen interval for the next session
            preserve_due_date: Extra same-day practice; keep the current due date

        Returns:
            The schedule for the next session, or None when the due date was preserved.
        """
        if self.calibration is not None:
            # accuracy is measured against the interval before this session
            self.calibration.update_from_session(item, entry)

        self.history.add_history(entry)
        item.completed_repetitions += max(0, entry.repetitions)
        item.last_practice_date = entry.date

        if entry.session_outcome == SessionOutcome.TARGET_REACHED and item.attempts_till_success == 0:
            item.attempts_till_success = entry.total_failures + 1
            target = self.overlearning.apply(item)
            logger.info(
                f"First success for {item.id} after {item.attempts_till_success} attempt(s), "
                f"target repetitions set to {target}"
            )

        if self.stability is not None and item.is_mature:
            self.stability.update_from_session(item.id, entry)

        entries = self.history.get_history_for_item(item.id)
        self.store.complete_todays_session_for(item.id, entries, entry.date)

        if preserve_due_date:
            logger.info(f"Same-day practice for {item.id}, due date {item.next_due_date} preserved")
            return None

        result = self.scheduler.calculate_next_practice_date(
            item,
            entries,
            entry.performance_score,
            entry.date,
            entry.repetitions,
            override,
        )
        item.next_due_date = result.next_date
        item.interval_days = result.interval_days
        self.store.add(self._planned_session(item, owner, result))
        return result

    @staticmethod
    def _planned_session(item: PracticeItem, owner: ItemOwner, result: ScheduleResult) -> ScheduledSession:
        return ScheduledSession(
            item_id=item.id,
            owner_id=owner.id,
            owner_title=owner.title,
            item_label=item.label,
            scheduled_date=result.next_date,
            difficulty=item.difficulty,
            tau_value=result.tau,
        )

    def update_item_difficulty(self, item: PracticeItem, difficulty: Difficulty) -> int:
        """Change an item's difficulty and propagate it to its upcoming sessions."""
        item.difficulty = difficulty
        return self.store.update_difficulty_for_upcoming_sessions(item.id, difficulty)

    # =========================================================================
    # Merging
    # =========================================================================

    def merge_stability_data(self, old_item_ids: Iterable[str], new_item_id: str) -> StabilityRecord | None:
        """
        Merge the stability of several items into a new one.

        Scheduled sessions of the merged items are removed; the new item is
        planned on the next recompute.
        """
        old_ids = [i for i in dict.fromkeys(old_item_ids) if i != new_item_id]
        if self.stability is None:
            logger.warning("Stability model disabled, nothing to merge")
            return None

        merged = self.stability.merge(old_ids, new_item_id)
        removed = sum(self.store.remove_for_item(item_id) for item_id in old_ids)
        logger.info(f"Merge into {new_item_id}: removed {removed} scheduled sessions of {len(old_ids)} items")
        return merged
