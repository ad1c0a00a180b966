"""
Spaced Repetition Scheduler.

Decides when an item is practiced next. Paths are evaluated in priority
order:

1. Stability   - mature item, >= 5 sessions, erratic recent scores
2. Frustration - latest session marked frustrating, no cool-down in the last day
3. Foundation  - new item, fixed 1-day intervals for the first three sessions
4. Mature      - adaptive tau, trend-nudged R*, curve inversion, two adjustments

Every path ends in the central interval clamp. The scheduler does no I/O;
worst case it answers "tomorrow".
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta

from loguru import logger

from .adaptive_tau import AdaptiveTauCalculator
from .adjustments import performance_adjustment, population_variance, practice_pattern_factor
from .dates import SessionClock, interval_days_between, parse_date
from .errors import ErrorKind, Result
from .item_memory import ItemMemoryModel
from .models import (
    MATURE_STAGE,
    HistoryEntry,
    OverrideRequest,
    PracticeItem,
    ScheduleResult,
    SessionOutcome,
    active_history,
)
from .retention_model import RetentionModel
from .stability_model import StabilityModel

EARLIEST_SESSION_DATE = date(2020, 1, 1)
MAX_SESSION_REPETITIONS = 200
FOUNDATION_INTERVALS = {0: 1.0, 1: 1.0, 2: 1.0}

# =============================================================================
# Configuration
# =============================================================================


@dataclass
class SchedulerConfig:
    """Configuration for path selection and cool-downs."""

    manual_frustration_days: float = 2.0
    auto_frustration_days: float = 3.0
    frustration_cooldown_window_days: int = 1
    use_memory_stability: bool = True
    use_performance_trend: bool = True
    stability_min_history: int = 5
    stability_variance_threshold: float = 1.0
    user_experience: str | None = None
    user_age: int | None = None

    @classmethod
    def from_settings(cls, settings) -> "SchedulerConfig":
        return cls(
            manual_frustration_days=settings.manual_frustration_cooldown_days,
            auto_frustration_days=settings.auto_frustration_cooldown_days,
            use_memory_stability=settings.use_memory_stability,
            use_performance_trend=settings.use_performance_trend,
            user_experience=settings.user_experience,
            user_age=settings.user_age,
        )


@dataclass
class DynamicInterval:
    raw: float
    target_retention: float
    performance_factor: float
    pattern_factor: float


# =============================================================================
# Scheduler
# =============================================================================


class SpacedRepetitionScheduler:
    """
    Computes ``(next_date, tau)`` for a practice item.

    Args:
        retention: Forgetting-curve model
        stability: Stability model for the stability path (path disabled if None)
        item_memory: Per-item tau refinements
        adaptive_tau: Tau pipeline for the mature path
        config: Path configuration (uses defaults if None)
        clock: Source of the current session date
    """

    def __init__(
        self,
        retention: RetentionModel | None = None,
        stability: StabilityModel | None = None,
        item_memory: ItemMemoryModel | None = None,
        adaptive_tau: AdaptiveTauCalculator | None = None,
        config: SchedulerConfig | None = None,
        clock: SessionClock | None = None,
    ):
        self.config = config or SchedulerConfig()
        self.retention = retention or RetentionModel()
        self.clock = clock or SessionClock()
        self.stability = stability
        self.item_memory = item_memory or ItemMemoryModel(self.retention)
        self.adaptive_tau = adaptive_tau or AdaptiveTauCalculator(
            self.retention,
            stability=stability,
            item_memory=self.item_memory,
            experience=self.config.user_experience,
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def calculate_next_practice_date(
        self,
        item: PracticeItem,
        history: Sequence[HistoryEntry],
        performance_score: float,
        today: date | None = None,
        repetitions_this_session: int = 0,
        override: OverrideRequest | None = None,
    ) -> ScheduleResult:
        """
        Next practice date and tau for an item.

        Args:
            item: The item; foundation stage and frustration marker are updated
            history: The item's practice history (any order)
            performance_score: Score of the session just finished (0-10)
            today: Current session date (clock date if None)
            repetitions_this_session: 0 when replanning without a new session
            override: User-chosen interval replacing the computed one

        Returns:
            ScheduleResult; ``path == "fallback"`` when computation failed.
        """
        base_date = self.clock.today()
        try:
            base_date, score, repetitions = self._apply_input_rails(
                today or base_date, performance_score, repetitions_this_session
            )
            entries = active_history(history)
            result = self._select_path(item, entries, score, base_date, repetitions, override)
        except Exception as e:
            logger.exception(
                f"Scheduling failed for item={item.id} score={performance_score} reps={repetitions_this_session} "
                f"stage={item.foundation_stage} difficulty={item.difficulty.value}"
            )
            result = Result.fail(ErrorKind.ALGORITHMIC, str(e))

        if not result.is_ok:
            return self._fallback(item, base_date, result)
        return result.value

    def should_use_memory_stability(self, item: PracticeItem, history: Sequence[HistoryEntry]) -> bool:
        cfg = self.config
        if not cfg.use_memory_stability or self.stability is None:
            return False
        if item.foundation_stage < MATURE_STAGE or len(history) < cfg.stability_min_history:
            return False
        recent = [h.performance_score for h in history[-5:]]
        return population_variance(recent) > cfg.stability_variance_threshold

    def retention_curve_for(
        self,
        item: PracticeItem,
        days_ahead: int = 30,
    ) -> list[tuple[date, float]]:
        """Predicted retention percentages from the item's last practice onwards."""
        tau = self.retention.adjusted_tau(item.difficulty, item.completed_repetitions, item.foundation_stage)
        return self.retention.retention_curve(
            days_ahead,
            tau,
            repetitions=item.completed_repetitions,
            difficulty=item.difficulty,
            experience=self.config.user_experience,
            start=item.last_practice_date or self.clock.today(),
            age=self.config.user_age,
        )

    # -------------------------------------------------------------------------
    # Path selection
    # -------------------------------------------------------------------------

    def _select_path(
        self,
        item: PracticeItem,
        history: list[HistoryEntry],
        score: float,
        base_date: date,
        repetitions: int,
        override: OverrideRequest | None,
    ) -> Result[ScheduleResult]:
        latest = history[-1] if history else None

        if self.should_use_memory_stability(item, history):
            result = self._stability_path(item, base_date)
            if result.is_ok:
                return result
            logger.error(f"Stability path failed for {item.id} ({result.detail}), using curve with neutral score")
            return self._mature_path(item, history, 5.0, base_date, None)

        if self._is_recent_frustration(item, latest, base_date):
            return self._frustration_path(item, latest, base_date)

        self._advance_foundation_stage(item, len(history), repetitions)
        if item.foundation_stage < MATURE_STAGE:
            return self._foundation_path(item, latest, base_date)

        return self._mature_path(item, history, score, base_date, override)

    def _is_recent_frustration(
        self,
        item: PracticeItem,
        latest: HistoryEntry | None,
        base_date: date,
    ) -> bool:
        if latest is None or not latest.session_outcome.is_frustration:
            return False
        if item.last_frustration_date is None:
            return True
        return interval_days_between(item.last_frustration_date, base_date) > self.config.frustration_cooldown_window_days

    def _stability_path(self, item: PracticeItem, base_date: date) -> Result[ScheduleResult]:
        stats = self.stability.get_memory_stats(item.id)
        if not math.isfinite(stats.stability) or stats.stability <= 0:
            return Result.fail(ErrorKind.MODEL_DOMAIN, f"stability {stats.stability}")

        optimal = self.stability.optimal_review_date(item.id)
        raw = interval_days_between(base_date, optimal)
        clamp = self.retention.clamp_interval_to_bounds(raw, stability=stats.stability)
        next_date = self.clock.next_practice_date(base_date, clamp.value)

        logger.info(
            f"[Stability] item={item.id} S={stats.stability:.3f} t_raw={raw:.2f}d "
            f"t_final={clamp.value:.2f}d clamp={clamp.reason.value} next={next_date}"
        )
        return Result.ok(
            ScheduleResult(
                next_date=next_date,
                tau=stats.stability,
                path="stability",
                interval_days=clamp.value,
                clamp_reason=clamp.reason.value,
                target_retention=self.retention.target_retention(item.difficulty),
            )
        )

    def _frustration_path(
        self,
        item: PracticeItem,
        latest: HistoryEntry,
        base_date: date,
    ) -> Result[ScheduleResult]:
        manual = latest.session_outcome == SessionOutcome.MANUAL_FRUSTRATION
        fixed_days = self.config.manual_frustration_days if manual else self.config.auto_frustration_days
        item.last_frustration_date = base_date

        tau_ref = self.retention.adjusted_tau(item.difficulty, item.completed_repetitions, item.foundation_stage)
        clamp = self.retention.clamp_interval_to_bounds(fixed_days, tau=tau_ref)
        next_date = self.clock.next_practice_date(base_date, clamp.value)

        logger.info(
            f"Frustration detected for {item.id}: {fixed_days:g}-day break, "
            f"cool-down marker set for {base_date} (clamp={clamp.reason.value})"
        )
        return Result.ok(
            ScheduleResult(
                next_date=next_date,
                tau=tau_ref,
                path="frustration",
                interval_days=clamp.value,
                clamp_reason=clamp.reason.value,
            )
        )

    def _advance_foundation_stage(self, item: PracticeItem, history_count: int, repetitions: int) -> None:
        if item.foundation_stage >= MATURE_STAGE:
            return
        if repetitions > 0:
            item.foundation_stage += 1
            logger.info(f"[Stage] item {item.id} advanced to stage {item.foundation_stage}")
            return
        # zero-rep replanning: catch up with the sessions already in history
        expected = min(history_count, MATURE_STAGE)
        if item.foundation_stage < expected:
            item.foundation_stage = expected
            logger.info(f"[Stage] item {item.id} auto-advanced to stage {expected} (history: {history_count} sessions)")

    def _foundation_path(
        self,
        item: PracticeItem,
        latest: HistoryEntry | None,
        base_date: date,
    ) -> Result[ScheduleResult]:
        if item.foundation_stage < 0:
            logger.warning(f"Negative foundation stage {item.foundation_stage} corrected to 0 for {item.id}")
            item.foundation_stage = 0

        fixed_days = FOUNDATION_INTERVALS.get(item.foundation_stage)
        if fixed_days is None:
            logger.warning(f"Unexpected foundation stage {item.foundation_stage} for {item.id}, defaulting to 1 day")
            fixed_days = 1.0

        tau_ref = self.retention.adjusted_tau(item.difficulty, item.completed_repetitions, item.foundation_stage)
        clamp = self.retention.clamp_interval_to_bounds(fixed_days, tau=tau_ref)
        self._refine_item_tau(item, latest, clamp.value, tau_ref)
        next_date = self.clock.next_practice_date(base_date, clamp.value)

        logger.info(
            f"Foundation phase for {item.id} (stage {item.foundation_stage}): "
            f"{clamp.value:.2f} days, tau(ref)={tau_ref:.3f}"
        )
        return Result.ok(
            ScheduleResult(
                next_date=next_date,
                tau=tau_ref,
                path="foundation",
                interval_days=clamp.value,
                clamp_reason=clamp.reason.value,
            )
        )

    def _mature_path(
        self,
        item: PracticeItem,
        history: list[HistoryEntry],
        score: float,
        base_date: date,
        override: OverrideRequest | None,
    ) -> Result[ScheduleResult]:
        tau = self.adaptive_tau.integrated_tau(item, history)

        dynamic = self._dynamic_interval(item, history, score, tau)
        if dynamic.is_ok:
            interval = dynamic.value
        else:
            logger.error(f"Dynamic interval failed for {item.id}: {dynamic.detail}. Fallback to 1 day.")
            interval = DynamicInterval(
                raw=1.0,
                target_retention=self.retention.target_retention(item.difficulty),
                performance_factor=1.0,
                pattern_factor=1.0,
            )

        clamp = self.retention.clamp_interval_to_bounds(interval.raw, tau=tau)
        self._refine_item_tau(item, history[-1] if history else None, clamp.value, tau)

        result = ScheduleResult(
            next_date=self.clock.next_practice_date(base_date, clamp.value),
            tau=tau,
            path="mature",
            interval_days=clamp.value,
            clamp_reason=clamp.reason.value,
            target_retention=interval.target_retention,
            performance_factor=interval.performance_factor,
            pattern_factor=interval.pattern_factor,
        )

        if override is not None:
            user_clamp = self.retention.clamp_interval_to_bounds(override.interval_days, tau=tau)
            logger.info(
                f"[UserOverride] item {item.id}: algorithm={clamp.value:.1f}d -> user={override.interval_days:.1f}d "
                f"(applied {user_clamp.value:.1f}d). Reason: '{override.reason}'"
            )
            result.next_date = self.clock.next_practice_date(base_date, user_clamp.value)
            result.interval_days = user_clamp.value
            result.clamp_reason = user_clamp.reason.value
            result.path = "override"

        logger.info(
            f"[NextDate] item={item.id} next={result.next_date} interval={result.interval_days:.2f}d "
            f"tau={tau:.3f} path={result.path}"
        )
        return Result.ok(result)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _dynamic_interval(
        self,
        item: PracticeItem,
        history: list[HistoryEntry],
        score: float,
        tau: float,
    ) -> Result[DynamicInterval]:
        if self.config.use_performance_trend:
            target = self.retention.trend_adjusted_target_retention(item.difficulty, history)
        else:
            target = self.retention.target_retention(item.difficulty)

        optimal = self.retention.raw_interval(tau, target)
        performance_factor = performance_adjustment(score)
        pattern_factor = practice_pattern_factor(history)
        final = optimal * performance_factor * pattern_factor

        logger.debug(
            f"Dynamic interval {item.id}: tau={tau:.3f} R*={target:.3f} optimal={optimal:.2f}d "
            f"perf x{performance_factor:.3f} pattern x{pattern_factor:.3f} -> {final:.2f}d"
        )
        if not math.isfinite(final) or final <= 0:
            return Result.fail(
                ErrorKind.ALGORITHMIC,
                f"interval {final} from tau={tau} R*={target} score={score}",
            )
        return Result.ok(DynamicInterval(final, target, performance_factor, pattern_factor))

    def _refine_item_tau(
        self,
        item: PracticeItem,
        latest: HistoryEntry | None,
        interval_days: float,
        tau: float,
    ) -> None:
        correct = latest is not None and latest.session_outcome == SessionOutcome.TARGET_REACHED
        self.item_memory.update(
            item.id,
            interval_days,
            correct,
            self.retention.target_retention(item.difficulty),
            init_tau=lambda: tau,
        )

    def _apply_input_rails(
        self,
        session_date: date,
        performance_score: float,
        repetitions: int,
    ) -> tuple[date, float, int]:
        notes = []
        session_date = parse_date(session_date)
        if performance_score is None or not math.isfinite(performance_score):
            notes.append(f"score={performance_score}->5.0")
            performance_score = 5.0
        elif not 0.0 <= performance_score <= 10.0:
            clamped = max(0.0, min(10.0, performance_score))
            notes.append(f"score={performance_score}->{clamped}")
            performance_score = clamped

        if repetitions < 0 or repetitions > MAX_SESSION_REPETITIONS:
            clamped_reps = max(0, min(MAX_SESSION_REPETITIONS, repetitions))
            notes.append(f"reps={repetitions}->{clamped_reps}")
            repetitions = clamped_reps

        today = self.clock.today()
        if session_date < EARLIEST_SESSION_DATE or session_date > today + timedelta(days=365):
            notes.append(f"date={session_date}->{today}")
            session_date = today

        if notes:
            logger.info(f"InputClamp {', '.join(notes)}")
        return session_date, performance_score, repetitions

    def _fallback(self, item: PracticeItem, base_date: date, failure: Result) -> ScheduleResult:
        tau = self.retention.adjusted_tau(item.difficulty, max(0, item.completed_repetitions))
        logger.error(
            f"Falling back to tomorrow for item={item.id} ({failure.error.value}: {failure.detail})"
        )
        return ScheduleResult(
            next_date=self.clock.next_practice_date(base_date, 1.0),
            tau=tau,
            path="fallback",
            interval_days=1.0,
            error=failure.detail,
        )
