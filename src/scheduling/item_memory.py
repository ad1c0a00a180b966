"""
Per-item tau refinement.

Each item keeps its own tau estimate, nudged after every review by
whether the item was actually recalled at the interval that was used.
"""

from __future__ import annotations

import math
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from .adjustments import clamp
from .retention_model import RetentionModel


@dataclass
class ItemMemoryConfig:
    """Update rates for per-item tau."""

    smoothing: float = 0.20  # blend of proposed tau into the old one
    up_rate: float = 0.35  # growth per unit of overshoot on success
    down_rate: float = 0.45  # reduction on a miss
    retention_margin: float = 0.05
    min_tau: float = 1.0
    max_tau: float = 180.0


@dataclass
class ItemMemoryState:
    item_id: str
    tau_days: float
    review_count: int = 0
    last_review: datetime | None = None
    last_predicted_retention: float | None = None
    last_planned_interval_days: float | None = None


class ItemMemoryModel:
    """
    In-memory table of per-item tau estimates.

    Thread-safe; one lock guards the table.
    """

    def __init__(
        self,
        retention: RetentionModel | None = None,
        config: ItemMemoryConfig | None = None,
    ):
        self.retention = retention or RetentionModel()
        self.config = config or ItemMemoryConfig()
        self._states: dict[str, ItemMemoryState] = {}
        self._lock = threading.Lock()

    def get(self, item_id: str) -> ItemMemoryState | None:
        with self._lock:
            return self._states.get(item_id)

    def get_or_create(self, item_id: str, init_tau: Callable[[], float]) -> ItemMemoryState:
        if not item_id or not item_id.strip():
            raise ValueError("item_id is empty")
        with self._lock:
            state = self._states.get(item_id)
            if state is None:
                state = ItemMemoryState(item_id=item_id, tau_days=self.retention.clamp_tau(init_tau()))
                self._states[item_id] = state
            return state

    def update(
        self,
        item_id: str,
        interval_days: float,
        correct: bool,
        target_retention: float,
        init_tau: Callable[[], float],
    ) -> ItemMemoryState:
        """
        Update an item's tau from one review outcome.

        Args:
            item_id: Item the review belongs to
            interval_days: Interval that was used before this review
            correct: Whether the item was recalled (target reached)
            target_retention: R* the interval was planned for
            init_tau: Factory for the starting tau of an unseen item

        Returns:
            The updated state
        """
        cfg = self.config
        state = self.get_or_create(item_id, init_tau)

        with self._lock:
            old_tau = state.tau_days
            interval_days = max(0.1, interval_days)
            target_retention = clamp(target_retention, 0.50, 0.95)

            predicted = math.exp(-interval_days / old_tau)
            target_ratio = -math.log(target_retention)
            observed_ratio = interval_days / old_tau

            if correct:
                # recalled after a relatively long wait: tau goes up
                adjustment = clamp(cfg.up_rate * (observed_ratio - target_ratio), -0.15, 0.50)
                proposed = old_tau * (1.0 + adjustment)
            else:
                severity = 0.7 if predicted < target_retention - cfg.retention_margin else 1.0
                proposed = old_tau * (1.0 - cfg.down_rate * severity)

            new_tau = clamp((1 - cfg.smoothing) * old_tau + cfg.smoothing * proposed, cfg.min_tau, cfg.max_tau)

            state.tau_days = new_tau
            state.review_count += 1
            state.last_review = datetime.now()
            state.last_predicted_retention = predicted
            state.last_planned_interval_days = self.plan_next_interval(new_tau, target_retention)

        logger.info(
            f"[ItemTauUpdate] item='{item_id}' rev#{state.review_count} interval={interval_days:.2f}d "
            f"correct={correct} predR={predicted:.3f} tau {old_tau:.3f} -> {new_tau:.3f}"
        )
        return state

    def plan_next_interval(self, tau_days: float, target_retention: float) -> float:
        """Simple exponential-decay interval for a tau and R*, centrally clamped."""
        tau_days = self.retention.clamp_tau(tau_days)
        target_retention = clamp(target_retention, 0.50, 0.95)
        raw = -tau_days * math.log(target_retention)
        return self.retention.clamp_interval_to_bounds(raw, tau=tau_days).value

    def reset(self) -> None:
        with self._lock:
            self._states.clear()
