"""
Adaptive tau pipeline.

Blends the demographic baseline tau with whatever personal evidence is
available for an item:

    source          tau estimate                    max weight
    calibration     personalized tau hint           0.4
    stability       S * 0.7 * (1 + 0.3 D)           0.5
    performance     baseline x0.7 / x1.0 / x1.4     0.3
    item memory     refined per-item tau            0.5

The blend is trusted in proportion to the combined confidence of the
sources that reported.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from loguru import logger

from .errors import ErrorKind, Result
from .item_memory import ItemMemoryModel
from .models import Difficulty, HistoryEntry, PracticeItem
from .retention_model import RetentionModel
from .stability_model import StabilityModel

SOURCE_WEIGHTS = {
    "calibration": 0.4,
    "stability": 0.5,
    "performance": 0.3,
    "item_memory": 0.5,
}


class CalibrationProvider(Protocol):
    """Personal calibration learned from the user's whole practice log."""

    def personalized_tau(self, difficulty: Difficulty, repetitions: int) -> float | None: ...

    def total_sessions(self) -> int: ...


@dataclass
class TauBreakdown:
    baseline: float
    final: float
    adaptive: float | None = None
    confidence: float = 0.0
    sources: dict[str, tuple[float, float]] = field(default_factory=dict)  # name -> (tau, confidence)


class AdaptiveTauCalculator:
    """
    Computes the tau used on the mature scheduling path.

    Args:
        retention: Forgetting-curve model (baseline tau and clamping)
        stability: Stability model consulted for established items
        item_memory: Per-item tau refinements
        calibration: Personal calibration provider
        enabled: When False only the baseline tau is used
        experience: Learner experience level for the demographic baseline
    """

    def __init__(
        self,
        retention: RetentionModel | None = None,
        stability: StabilityModel | None = None,
        item_memory: ItemMemoryModel | None = None,
        calibration: CalibrationProvider | None = None,
        enabled: bool = True,
        experience: str | None = None,
    ):
        self.retention = retention or RetentionModel()
        self.stability = stability
        self.item_memory = item_memory
        self.calibration = calibration
        self.enabled = enabled
        self.experience = experience

    def baseline_tau(self, item: PracticeItem) -> float:
        if self.experience:
            return self.retention.personalized_tau(
                item.difficulty, item.completed_repetitions, self.experience, item.foundation_stage
            )
        return self.retention.adjusted_tau(item.difficulty, item.completed_repetitions, item.foundation_stage)

    def _performance_tau(self, average_score: float) -> float:
        cfg = self.retention.config
        base = cfg.base_tau_days * cfg.material_factor
        if average_score < 4.0:
            return base * 0.7
        if average_score > 7.5:
            return base * 1.4
        return base

    def _gather_sources(
        self, item: PracticeItem, history: Sequence[HistoryEntry]
    ) -> dict[str, tuple[float, float]]:
        sources: dict[str, tuple[float, float]] = {}

        if self.calibration is not None:
            tau = self.calibration.personalized_tau(item.difficulty, item.completed_repetitions)
            sessions = self.calibration.total_sessions()
            if tau is not None and math.isfinite(tau) and tau > 0:
                confidence = min(1.0, sessions / 10.0) if sessions >= 3 else 0.0
                sources["calibration"] = (tau, confidence)

        if self.stability is not None:
            stats = self.stability.get_memory_stats(item.id)
            if not stats.is_new and stats.review_count >= 2:
                tau = stats.stability * 0.7 * (1.0 + stats.difficulty * 0.3)
                sources["stability"] = (tau, min(1.0, stats.review_count / 5.0))

        usable = [h for h in history if not h.is_deleted]
        if len(usable) >= 2:
            recent = sorted(usable, key=lambda h: h.date)[-3:]
            average = sum(h.performance_score for h in recent) / len(recent)
            sources["performance"] = (self._performance_tau(average), min(1.0, len(recent) / 3.0))

        if self.item_memory is not None:
            state = self.item_memory.get(item.id)
            if state is not None and state.review_count > 0:
                sources["item_memory"] = (state.tau_days, min(1.0, state.review_count / 5.0))

        return sources

    @staticmethod
    def _combined_confidence(sources: dict[str, tuple[float, float]]) -> float:
        if not sources:
            return 0.0
        confidence = sum(c for _, c in sources.values()) / len(sources)
        # agreement between independent sources raises trust
        if len(sources) >= 2:
            confidence *= 1.2
        if len(sources) >= 3:
            confidence *= 1.1
        return min(1.0, confidence)

    def compute(self, item: PracticeItem, history: Sequence[HistoryEntry]) -> Result[TauBreakdown]:
        baseline = self.baseline_tau(item)
        if not self.enabled:
            return Result.ok(TauBreakdown(baseline=baseline, final=baseline))

        sources = self._gather_sources(item, history)
        weighted = [(tau, c * SOURCE_WEIGHTS[name]) for name, (tau, c) in sources.items() if c > 0]
        total_weight = sum(w for _, w in weighted)
        confidence = self._combined_confidence(sources)

        if total_weight <= 0 or confidence < 0.1:
            return Result.ok(TauBreakdown(baseline=baseline, final=baseline, confidence=confidence, sources=sources))

        adaptive = sum(tau * w for tau, w in weighted) / total_weight
        if confidence > 0.8:
            integrated = adaptive * 0.9 + baseline * 0.1
        else:
            integrated = adaptive * confidence + baseline * (1.0 - confidence)

        if not math.isfinite(integrated):
            return Result.fail(
                ErrorKind.ALGORITHMIC,
                f"integrated tau not finite (baseline={baseline}, sources={sources})",
            )

        final = self.retention.clamp_tau(integrated)
        logger.info(
            f"Integrated tau for {item.id}: baseline={baseline:.3f} adaptive={adaptive:.3f} "
            f"confidence={confidence:.3f} final={final:.3f}"
        )
        return Result.ok(
            TauBreakdown(
                baseline=baseline,
                final=final,
                adaptive=adaptive,
                confidence=confidence,
                sources=sources,
            )
        )

    def integrated_tau(self, item: PracticeItem, history: Sequence[HistoryEntry]) -> float:
        """Adaptive tau, falling back to the stage-aware adjusted tau on failure."""
        result = self.compute(item, history)
        if not result.is_ok:
            logger.error(f"Adaptive tau failed for {item.id}: {result.detail}")
            return self.retention.adjusted_tau(item.difficulty, item.completed_repetitions, item.foundation_stage)
        return result.value.final
