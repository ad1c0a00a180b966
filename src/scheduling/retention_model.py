"""
Retention Model - extended Ebbinghaus forgetting curve.

    R(t) = baseline + learning_strength * exp(-t / tau)

Provides:
- tau derivation from difficulty, repetitions and foundation stage
- target retention (R*) per difficulty, nudged by the recent score trend
- curve inversion for the raw interval at which R(t) falls to R*
- the central interval clamp every scheduling path goes through
- forward retention curves for visualization

All methods are pure apart from logging.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum

from loguru import logger

from .adjustments import clamp, linear_regression, valid_scores
from .models import Difficulty, HistoryEntry

# =============================================================================
# Constants
# =============================================================================

DEFAULT_TARGET_RETENTION = {
    Difficulty.DIFFICULT: 0.85,
    Difficulty.AVERAGE: 0.80,
    Difficulty.EASY: 0.70,
    Difficulty.MASTERED: 0.65,
}

DIFFICULTY_MODIFIERS = {
    Difficulty.DIFFICULT: 0.6,
    Difficulty.AVERAGE: 1.0,
    Difficulty.EASY: 1.7,
    Difficulty.MASTERED: 3.5,
}

# Mastered material grows into its full modifier over the late stages
MASTERED_STAGE_MODIFIERS = {3: 2.0, 4: 2.5}

REPETITION_DIFFICULTY_BONUS = {
    Difficulty.DIFFICULT: 1.3,
    Difficulty.MASTERED: 0.7,
    Difficulty.EASY: 0.9,
}

EXPERIENCE_TAU_MULTIPLIERS = {
    "beginner": 0.8,
    "intermediate": 1.0,
    "advanced": 1.1,
    "professional": 1.3,
    "expert": 1.3,
}

EXPERIENCE_INDIVIDUALITY = {
    "beginner": 0.8,
    "intermediate": 1.0,
    "advanced": 1.2,
    "professional": 1.4,
    "expert": 1.4,
}

TARGET_RETENTION_FLOOR = 0.60
TARGET_RETENTION_CEILING = 0.90
MAX_TREND_NUDGE = 0.05
MAX_REPETITIONS = 1000
MOTOR_PLATEAU_DAYS = 0.4


class ClampReason(str, Enum):
    """Why the central interval clamp changed a value."""

    NONE = "none"
    LOW_BOUND = "low-bound"
    HIGH_BOUND = "high-bound"
    EXTREME = "extreme"
    INVALID = "invalid"


@dataclass(frozen=True)
class IntervalClamp:
    value: float
    reason: ClampReason = ClampReason.NONE

    @property
    def changed(self) -> bool:
        return self.reason != ClampReason.NONE


@dataclass
class RetentionConfig:
    """Calibrated constants of the forgetting curve."""

    base_tau_days: float = 3.0
    material_factor: float = 3.0
    learning_strength: float = 0.80
    baseline: float = 0.15
    min_tau: float = 1.0
    max_tau: float = 180.0
    min_interval: float = 1.0
    max_interval: float = 365.0
    max_tau_multiple: float = 5.0
    target_retention: dict[Difficulty, float] = field(
        default_factory=lambda: dict(DEFAULT_TARGET_RETENTION)
    )

    @classmethod
    def from_settings(cls, settings) -> "RetentionConfig":
        return cls(
            base_tau_days=settings.base_tau_days,
            material_factor=settings.material_factor,
            learning_strength=settings.learning_strength,
            baseline=settings.retention_baseline,
            min_tau=settings.min_tau_days,
            max_tau=settings.max_tau_days,
            min_interval=settings.min_interval_days,
            max_interval=settings.max_interval_days,
            max_tau_multiple=settings.max_tau_multiple,
            target_retention={
                Difficulty(key): value
                for key, value in settings.get_target_retention_table().items()
            },
        )


# =============================================================================
# Retention Model
# =============================================================================


class RetentionModel:
    """
    Forgetting-curve arithmetic shared by every scheduling path.

    Args:
        config: Curve constants (uses defaults if None)
    """

    def __init__(self, config: RetentionConfig | None = None):
        self.config = config or RetentionConfig()

    # -------------------------------------------------------------------------
    # Tau
    # -------------------------------------------------------------------------

    def clamp_tau(self, tau: float) -> float:
        """Bound tau to [min_tau, max_tau]; NaN/inf fall back to the base tau."""
        cfg = self.config
        if tau is None or not math.isfinite(tau):
            logger.warning(f"clamp_tau: invalid tau {tau}, using base {cfg.base_tau_days}")
            return cfg.base_tau_days
        return clamp(tau, cfg.min_tau, cfg.max_tau)

    def difficulty_modifier(self, difficulty: Difficulty, stage: int | None = None) -> float:
        difficulty = Difficulty.parse(difficulty)
        if difficulty == Difficulty.MASTERED and stage is not None:
            if stage <= 3:
                return MASTERED_STAGE_MODIFIERS[3]
            return MASTERED_STAGE_MODIFIERS.get(stage, DIFFICULTY_MODIFIERS[Difficulty.MASTERED])
        return DIFFICULTY_MODIFIERS[difficulty]

    def repetition_bonus(self, difficulty: Difficulty, repetitions: int) -> float:
        """Logarithmic bonus for accumulated repetitions, capped at 2x."""
        if repetitions <= 0:
            return 1.0
        base = 1.0 + math.log(1 + repetitions) * 0.15
        return min(2.0, base * REPETITION_DIFFICULTY_BONUS.get(Difficulty.parse(difficulty), 1.0))

    def _clamp_repetitions(self, repetitions: int) -> int:
        if repetitions < 0 or repetitions > MAX_REPETITIONS:
            clamped = int(clamp(repetitions, 0, MAX_REPETITIONS))
            logger.info(f"InputClamp repetitions {repetitions} -> {clamped}")
            return clamped
        return repetitions

    def adjusted_tau(
        self,
        difficulty: Difficulty,
        completed_repetitions: int,
        stage: int | None = None,
    ) -> float:
        """
        Tau for an item from difficulty, repetitions and (optionally) stage.

        Args:
            difficulty: Item difficulty
            completed_repetitions: Total successful repetitions so far
            stage: Foundation stage; enables graduated Mastered growth

        Returns:
            Tau in days, within [min_tau, max_tau]
        """
        cfg = self.config
        repetitions = self._clamp_repetitions(completed_repetitions)
        tau = cfg.base_tau_days * cfg.material_factor * self.difficulty_modifier(difficulty, stage)
        tau *= self.repetition_bonus(difficulty, repetitions)
        return self.clamp_tau(tau)

    def personalized_tau(
        self,
        difficulty: Difficulty,
        completed_repetitions: int,
        experience: str | None,
        stage: int | None = None,
    ) -> float:
        """Demographic tau variant scaled by the learner's experience level."""
        cfg = self.config
        repetitions = self._clamp_repetitions(completed_repetitions)
        tau = cfg.base_tau_days * cfg.material_factor * self.difficulty_modifier(difficulty, stage)
        tau *= EXPERIENCE_TAU_MULTIPLIERS.get((experience or "").lower(), 1.0)
        if repetitions > 0:
            bonus = min(6.0, math.sqrt(math.log2(repetitions + 1)) * 1.3)
            tau *= 1.0 + min(0.5, bonus * 0.08)
        return self.clamp_tau(tau)

    # -------------------------------------------------------------------------
    # Target retention
    # -------------------------------------------------------------------------

    def target_retention(self, difficulty: Difficulty) -> float:
        difficulty = Difficulty.parse(difficulty)
        return self.config.target_retention.get(difficulty, DEFAULT_TARGET_RETENTION[Difficulty.AVERAGE])

    def trend_adjusted_target_retention(
        self,
        difficulty: Difficulty,
        history: Sequence[HistoryEntry],
    ) -> float:
        """
        R* for the difficulty, nudged by the last five sessions.

        Strong improving performance lowers R* (longer wait); weak declining
        performance raises it (shorter wait). The nudge is at most 0.05 and
        the result stays within [0.60, 0.90].
        """
        base = self.target_retention(difficulty)
        scores = valid_scores(history)
        if len(scores) < 2:
            return base

        slope, average = linear_regression(scores)
        p = average / 10.0
        slope_norm = clamp(slope / 10.0, -0.5, 0.5)

        if p >= 0.8 and slope > 0:
            label = "strong_improving"
            delta = -clamp(0.03 + min(0.02, slope_norm * 0.5), 0.0, MAX_TREND_NUDGE)
        elif p <= 0.4 and slope < 0:
            label = "weak_declining"
            delta = clamp(0.03 + min(0.02, abs(slope_norm) * 0.5), 0.0, MAX_TREND_NUDGE)
        elif slope > 0.2:
            label = "positive_trend"
            delta = -0.01
        elif slope < -0.2:
            label = "negative_trend"
            delta = 0.01
        else:
            return base

        adjusted = clamp(base + delta, TARGET_RETENTION_FLOOR, TARGET_RETENTION_CEILING)
        logger.debug(
            f"R* trend nudge {label}: avg={average:.2f} slope={slope:.2f} "
            f"R* {base:.3f} -> {adjusted:.3f}"
        )
        return adjusted

    # -------------------------------------------------------------------------
    # Curve inversion and clamping
    # -------------------------------------------------------------------------

    def raw_interval(self, tau: float, target_retention: float) -> float:
        """Days until R(t) decays to ``target_retention``."""
        cfg = self.config
        tau = self.clamp_tau(tau)

        lower = cfg.baseline + 0.001
        upper = min(0.999, cfg.baseline + cfg.learning_strength - 0.001)
        if not math.isfinite(target_retention) or not lower <= target_retention <= upper:
            corrected = clamp(target_retention, lower, upper) if math.isfinite(target_retention) else upper
            logger.warning(
                f"Target retention {target_retention} outside curve domain "
                f"({lower:.3f}, {upper:.3f}), using {corrected:.3f}"
            )
            target_retention = corrected

        ratio = clamp((target_retention - cfg.baseline) / cfg.learning_strength, 1e-6, 0.999999)
        return -tau * math.log(ratio)

    def clamp_interval_to_bounds(
        self,
        raw: float,
        tau: float | None = None,
        stability: float | None = None,
    ) -> IntervalClamp:
        """
        Central clamp for every planned interval.

        The result lies in [min_interval, max_interval] and does not exceed
        max_tau_multiple times the governing parameter (stability when given,
        else tau). When that cap falls below the minimum, the minimum wins.
        """
        cfg = self.config
        if raw is None or not math.isfinite(raw) or raw <= 0:
            logger.warning(f"Interval clamp: invalid raw interval {raw}, using {cfg.min_interval}")
            return IntervalClamp(cfg.min_interval, ClampReason.INVALID)

        value = raw
        reason = ClampReason.NONE
        if value < cfg.min_interval:
            value, reason = cfg.min_interval, ClampReason.LOW_BOUND
        elif value > cfg.max_interval:
            value, reason = cfg.max_interval, ClampReason.HIGH_BOUND

        governing = stability if stability is not None else tau
        if governing is not None and math.isfinite(governing) and governing > 0:
            cap = cfg.max_tau_multiple * governing
            if value > cap:
                value = max(cfg.min_interval, cap)
                reason = ClampReason.EXTREME

        if reason == ClampReason.NONE:
            logger.debug(f"Interval clamp: {raw:.2f}d within bounds")
        else:
            logger.warning(f"Interval clamp: {raw:.2f}d -> {value:.2f}d ({reason.value})")
        return IntervalClamp(value, reason)

    # -------------------------------------------------------------------------
    # Forward curve
    # -------------------------------------------------------------------------

    def individuality_factor(self, experience: str | None, age: int | None = None) -> float:
        factor = EXPERIENCE_INDIVIDUALITY.get((experience or "").lower(), 1.0)
        if age is not None and age > 0:
            factor *= max(0.85, 1.1 - (age - 20) * 0.005)
        return clamp(factor, 0.6, 1.8)

    def calculate_retention(
        self,
        days_since_practice: float,
        tau: float,
        repetitions: int = 0,
        difficulty: Difficulty = Difficulty.AVERAGE,
        experience: str | None = None,
        age: int | None = None,
    ) -> float:
        """Predicted recall probability ``days_since_practice`` days after practice."""
        cfg = self.config
        t = max(0.0, days_since_practice) if math.isfinite(days_since_practice) else 0.0
        if t <= MOTOR_PLATEAU_DAYS:
            # consolidation plateau right after motor practice
            t = t * (1.0 - 0.6 * (1.0 - t / MOTOR_PLATEAU_DAYS))

        effective_tau = (
            self.clamp_tau(tau)
            * self.repetition_bonus(difficulty, self._clamp_repetitions(repetitions))
            * self.individuality_factor(experience, age)
        )
        exponent = -t / effective_tau
        if exponent < -50:
            return cfg.baseline
        return clamp(cfg.learning_strength * math.exp(exponent) + cfg.baseline, 0.0, 1.0)

    def retention_curve(
        self,
        days_ahead: int,
        tau: float,
        repetitions: int = 0,
        difficulty: Difficulty = Difficulty.AVERAGE,
        experience: str | None = None,
        start: date | None = None,
        age: int | None = None,
    ) -> list[tuple[date, float]]:
        """
        Daily retention percentages from ``start`` over ``days_ahead`` days.

        The curve is non-increasing. If the arithmetic breaks down a linear
        fallback (90% minus 2.5 points per day, floor 15%) is returned.
        """
        start = start or date.today()
        days_ahead = int(clamp(days_ahead, 1, 365))
        curve: list[tuple[date, float]] = []
        for day in range(days_ahead + 1):
            percent = self.calculate_retention(day, tau, repetitions, difficulty, experience, age) * 100.0
            if not math.isfinite(percent):
                logger.error(f"Retention curve broke down at day {day} (tau={tau}), using linear fallback")
                return [
                    (start + timedelta(days=i), max(15.0, 90.0 - 2.5 * i))
                    for i in range(days_ahead + 1)
                ]
            curve.append((start + timedelta(days=day), percent))
        return curve
