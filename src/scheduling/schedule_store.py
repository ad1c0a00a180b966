"""
Scheduled session persistence.

Keeps the collection of "next session" entries in scheduled_sessions.json
and enforces on every mutation:
- at most one open (non-Completed) entry per item
- at most ``max_scheduled_sessions`` records (most recent kept)

All mutators serialize on one lock per store and notify subscribers after
each successful state change.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta

from loguru import logger

from .dates import SessionClock
from .errors import PersistenceError
from .file_service import JsonFileService
from .history import HistoryStore
from .models import (
    Difficulty,
    HistoryEntry,
    ItemOwner,
    LifecycleState,
    PracticeItem,
    ScheduledSession,
    SessionOutcome,
    SessionStatus,
    active_history,
)
from .spaced_repetition import SpacedRepetitionScheduler

PREP_MIN_DURATION = timedelta(seconds=15)


@dataclass
class StoreConfig:
    max_scheduled_sessions: int = 1000

    @classmethod
    def from_settings(cls, settings) -> "StoreConfig":
        return cls(max_scheduled_sessions=settings.max_scheduled_sessions)


@dataclass
class ScheduleChanged:
    """Notification payload sent to subscribers."""

    action: str
    session_ids: list[str] = field(default_factory=list)


ScheduleListener = Callable[[ScheduleChanged], None]


def classify_completion(entry: HistoryEntry) -> tuple[bool, str]:
    """
    Decide whether a session completes today's planned entry.

    1. Outcome TargetReached completes.
    2. Preparation only (no repetitions, at least 15 s, not a failed
       attempt) does not complete.
    3. Any repetitions complete.
    4. Anything else does not complete.
    """
    if entry.session_outcome == SessionOutcome.TARGET_REACHED:
        return True, f"Outcome={entry.session_outcome.value}"

    is_prep = (
        entry.repetitions == 0
        and entry.duration >= PREP_MIN_DURATION
        and entry.session_outcome != SessionOutcome.TARGET_NOT_REACHED
    )
    if is_prep:
        return False, "Preparation only"

    if entry.repetitions > 0:
        minutes = entry.duration.total_seconds() / 60.0
        return True, f"Repetitions={entry.repetitions}, Duration={minutes:.1f}min"

    return False, "No repetitions"


class ScheduleStore:
    """
    Persistent collection of ScheduledSession records.

    Args:
        file_service: Backing JSON file (in-memory only when None)
        scheduler: Used to recompute overdue entries
        config: Store limits (uses defaults if None)
        clock: Source of the current session date
    """

    def __init__(
        self,
        file_service: JsonFileService | None = None,
        scheduler: SpacedRepetitionScheduler | None = None,
        config: StoreConfig | None = None,
        clock: SessionClock | None = None,
    ):
        self.config = config or StoreConfig()
        self.clock = clock or SessionClock()
        self.scheduler = scheduler or SpacedRepetitionScheduler(clock=self.clock)
        self._file = file_service
        self._sessions: list[ScheduledSession] = []
        self._listeners: list[ScheduleListener] = []
        self._lock = threading.RLock()
        self.load()

    # =========================================================================
    # Notifications
    # =========================================================================

    def subscribe(self, listener: ScheduleListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: ScheduleListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: ScheduleChanged) -> None:
        for listener in list(self._listeners):
            listener(event)

    # =========================================================================
    # Persistence
    # =========================================================================

    def load(self) -> None:
        """Load sessions from disk; a missing or unreadable file gives an empty store."""
        with self._lock:
            self._sessions = []
            if self._file is None:
                return
            try:
                raw = self._file.read()
            except PersistenceError as e:
                logger.error(f"Scheduled sessions unreadable, starting empty: {e}")
                return
            if raw is None:
                logger.info("No scheduled sessions file yet")
                return

            for data in raw:
                try:
                    self._sessions.append(ScheduledSession.from_dict(data))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping malformed scheduled session {data!r}: {e}")

            logger.info(f"Loaded {len(self._sessions)} scheduled sessions")
            if self._prune():
                self._write()

    def reload(self) -> None:
        self.load()
        self._notify(ScheduleChanged("reloaded"))

    def _prune(self) -> int:
        limit = self.config.max_scheduled_sessions
        if len(self._sessions) <= limit:
            return 0

        def recency(s: ScheduledSession) -> date:
            return s.completion_date or s.scheduled_date

        self._sessions.sort(key=recency, reverse=True)
        removed = len(self._sessions) - limit
        self._sessions = self._sessions[:limit]
        earliest = min(recency(s) for s in self._sessions)
        logger.info(f"Pruned {removed} scheduled sessions, earliest kept {earliest}")
        return removed

    def _write(self) -> bool:
        if self._file is None:
            return True
        try:
            self._file.write([s.to_dict() for s in self._sessions])
        except PersistenceError as e:
            logger.error(f"Failed to save scheduled sessions (not yet durable): {e}")
            return False
        logger.info(f"Saved {len(self._sessions)} scheduled sessions")
        return True

    def save(self) -> bool:
        """Prune and persist. Returns False when the write failed."""
        with self._lock:
            self._prune()
            return self._write()

    def _commit(self, action: str, session_ids: Iterable[str] = ()) -> bool:
        saved = self.save()
        if saved:
            self._notify(ScheduleChanged(action, list(session_ids)))
        return saved

    # =========================================================================
    # Queries
    # =========================================================================

    def get_all(self) -> list[ScheduledSession]:
        """All sessions, ordered by scheduled date."""
        with self._lock:
            return sorted(self._sessions, key=lambda s: (s.scheduled_date, s.id))

    def get_open_sessions(self) -> list[ScheduledSession]:
        return [s for s in self.get_all() if s.is_open]

    def get_for_item(self, item_id: str) -> ScheduledSession | None:
        """Earliest open session for an item."""
        with self._lock:
            open_sessions = [s for s in self._sessions if s.item_id == item_id and s.is_open]
            return min(open_sessions, key=lambda s: s.scheduled_date, default=None)

    def count_open_for_item(self, item_id: str) -> int:
        with self._lock:
            return sum(1 for s in self._sessions if s.item_id == item_id and s.is_open)

    # =========================================================================
    # CRUD
    # =========================================================================

    def _remove_open_for_item(self, item_id: str) -> list[ScheduledSession]:
        superseded = [s for s in self._sessions if s.item_id == item_id and s.is_open]
        if superseded:
            self._sessions = [s for s in self._sessions if s not in superseded]
        return superseded

    def add(self, session: ScheduledSession, preserve_due_date: bool = False) -> bool:
        """
        Insert a session, superseding any open entry of the same item.

        A session with a known id only updates that entry's status.

        Returns:
            True when the change was persisted; False when skipped or not saved.
        """
        if preserve_due_date:
            logger.info(f"Preserve due date active, skipping add for item {session.item_id}")
            return False

        with self._lock:
            existing = next((s for s in self._sessions if s.id == session.id), None)
            if existing is not None:
                existing.status = session.status
                return self._commit("updated", [existing.id])

            superseded = self._remove_open_for_item(session.item_id)
            if superseded:
                logger.info(
                    f"Superseded {len(superseded)} open session(s) for item {session.item_id} "
                    f"(dates: {', '.join(str(s.scheduled_date) for s in superseded)})"
                )
            self._sessions.append(session)
            return self._commit("added", [session.id] + [s.id for s in superseded])

    def add_with_bypass(self, session: ScheduledSession) -> bool:
        """Repair-path insert that ignores same-day preservation."""
        return self.add(session, preserve_due_date=False)

    def replace_all_non_completed(
        self,
        sessions: Sequence[ScheduledSession],
        preserve_due_date: bool = False,
    ) -> bool:
        """Keep completed history, replace every open entry with ``sessions``."""
        if preserve_due_date:
            logger.info("Preserve due date active, skipping replacement of open sessions")
            return False

        with self._lock:
            completed = [s for s in self._sessions if not s.is_open]
            incoming: dict[str, ScheduledSession] = {}
            for session in sessions:
                if session.item_id in incoming:
                    logger.warning(f"Duplicate planned session for item {session.item_id} dropped ({session.scheduled_date})")
                    continue
                incoming[session.item_id] = session
            self._sessions = completed + list(incoming.values())
            return self._commit("replaced", [s.id for s in incoming.values()])

    def remove(self, session_id: str) -> bool:
        with self._lock:
            before = len(self._sessions)
            self._sessions = [s for s in self._sessions if s.id != session_id]
            if len(self._sessions) == before:
                return False
            return self._commit("removed", [session_id])

    def remove_for_item(self, item_id: str, save: bool = True) -> int:
        """Delete every session (open or completed) of an item."""
        with self._lock:
            removed = [s for s in self._sessions if s.item_id == item_id]
            if not removed:
                return 0
            self._sessions = [s for s in self._sessions if s.item_id != item_id]
            if save:
                self._commit("removed", [s.id for s in removed])
            return len(removed)

    def update_difficulty_for_upcoming_sessions(self, item_id: str, difficulty: Difficulty) -> int:
        today = self.clock.today()
        with self._lock:
            upcoming = [
                s for s in self._sessions
                if s.item_id == item_id and s.is_open and s.scheduled_date >= today and s.difficulty != difficulty
            ]
            for session in upcoming:
                session.difficulty = difficulty
            if upcoming:
                self._commit("difficulty", [s.id for s in upcoming])
            return len(upcoming)

    # =========================================================================
    # Completion
    # =========================================================================

    def complete_todays_session_for(
        self,
        item_id: str,
        history: Sequence[HistoryEntry],
        today: date | None = None,
    ) -> bool:
        """
        Mark today's planned entry of an item as Completed.

        Duplicate open entries for today are deleted (keeping the earliest).

        Returns:
            True when an entry was completed.
        """
        today = today or self.clock.today()
        todays = [h for h in active_history(history) if h.item_id == item_id and h.date == today]
        if not todays:
            logger.debug(f"No history today for item {item_id}, nothing to complete")
            return False

        complete, reason = classify_completion(todays[-1])
        if not complete:
            logger.info(f"Today's session for item {item_id} not completed: {reason}")
            return False

        with self._lock:
            candidates = sorted(
                (s for s in self._sessions if s.item_id == item_id and s.is_open and s.scheduled_date == today),
                key=lambda s: (s.scheduled_date, s.id),
            )
            if not candidates:
                logger.debug(f"No open session planned today for item {item_id}")
                return False

            keep, duplicates = candidates[0], candidates[1:]
            if duplicates:
                logger.warning(f"Removing {len(duplicates)} duplicate session(s) for item {item_id} on {today}")
                self._sessions = [s for s in self._sessions if s not in duplicates]

            keep.status = SessionStatus.COMPLETED
            keep.completion_date = today
            keep.completion_reason = reason
            logger.info(f"Completed session {keep.id} for item {item_id} ({reason})")
            return self._commit("completed", [keep.id] + [s.id for s in duplicates])

    # =========================================================================
    # Maintenance
    # =========================================================================

    def reschedule_overdue_sessions(
        self,
        items: Iterable[PracticeItem],
        owners: Iterable[ItemOwner],
        history: HistoryStore,
        today: date | None = None,
        preserve_due_date: bool = False,
    ) -> int:
        """
        Recompute open entries dated before today.

        The new date is always after today. Entries of paused or removed
        owners and of unknown items are left alone.

        Returns:
            Number of rescheduled entries.
        """
        if preserve_due_date:
            logger.info("Preserve due date active, skipping overdue rescheduling")
            return 0

        today = today or self.clock.today()
        items_by_id = {i.id: i for i in items}
        owners_by_id = {o.id: o for o in owners}

        with self._lock:
            overdue = [s for s in self._sessions if s.is_open and s.scheduled_date < today]
            changed: list[str] = []
            for session in overdue:
                owner = owners_by_id.get(session.owner_id)
                if owner is None or owner.is_paused(today):
                    logger.debug(f"Skipping overdue session {session.id}: owner missing or paused")
                    continue
                item = items_by_id.get(session.item_id)
                if item is None:
                    logger.debug(f"Skipping overdue session {session.id}: item missing")
                    continue

                entries = history.get_history_for_item(item.id)
                if entries:
                    last_performance = entries[-1].performance_score
                else:
                    last_performance = 5.0 if item.completed_repetitions > 0 else 1.0

                result = self.scheduler.calculate_next_practice_date(item, entries, last_performance, today, 0)
                proposed = result.next_date
                if proposed <= today:
                    proposed = today + timedelta(days=1)

                logger.info(f"Rescheduled overdue session {session.id}: {session.scheduled_date} -> {proposed}")
                session.scheduled_date = proposed
                session.tau_value = result.tau
                item.next_due_date = proposed
                changed.append(session.id)

            if changed:
                self._commit("rescheduled", changed)
            return len(changed)

    def cleanup_orphaned_sessions(self, valid_item_ids: Iterable[str], valid_owner_ids: Iterable[str]) -> int:
        """Drop entries that reference an item or owner that no longer exists."""
        item_ids, owner_ids = set(valid_item_ids), set(valid_owner_ids)
        with self._lock:
            orphans = [s for s in self._sessions if s.item_id not in item_ids or s.owner_id not in owner_ids]
            if not orphans:
                return 0
            self._sessions = [s for s in self._sessions if s not in orphans]
            logger.info(f"Removed {len(orphans)} orphaned scheduled sessions")
            self._commit("cleanup", [s.id for s in orphans])
            return len(orphans)

    def auto_repair_missing_sessions(
        self,
        items: Iterable[PracticeItem],
        owners: Iterable[ItemOwner],
        history: HistoryStore,
        today: date | None = None,
    ) -> int:
        """
        Give items practiced today a "tomorrow" entry when they lost theirs.

        Applies to active items of non-paused owners whose due date is today,
        in the past or missing and which have no open entry.

        Returns:
            Number of inserted entries.
        """
        today = today or self.clock.today()
        tomorrow = today + timedelta(days=1)
        owners_by_id = {o.id: o for o in owners}
        retention = self.scheduler.retention

        with self._lock:
            repaired: list[str] = []
            for item in items:
                owner = owners_by_id.get(item.owner_id)
                if owner is None or owner.is_paused(today) or item.lifecycle_state == LifecycleState.INACTIVE:
                    continue
                if not any(h.date == today for h in history.get_history_for_item(item.id)):
                    continue
                if item.next_due_date is not None and item.next_due_date > today:
                    continue
                if self.count_open_for_item(item.id) > 0:
                    continue

                session = ScheduledSession(
                    item_id=item.id,
                    owner_id=owner.id,
                    owner_title=owner.title,
                    item_label=item.label,
                    scheduled_date=tomorrow,
                    difficulty=item.difficulty,
                    tau_value=retention.adjusted_tau(item.difficulty, item.completed_repetitions, item.foundation_stage),
                )
                self._sessions.append(session)
                item.next_due_date = tomorrow
                repaired.append(session.id)
                logger.warning(f"Auto-repair: planned missing session for item {item.id} on {tomorrow}")

            if repaired:
                self._commit("repaired", repaired)
            return len(repaired)
