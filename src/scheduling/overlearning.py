"""Overlearning: how many extra repetitions follow the first success."""

from __future__ import annotations

import math
from enum import Enum

from .models import PracticeItem

DEFAULT_OVERLEARNING_REPETITIONS = 5


class OverlearningMode(str, Enum):
    FULL = "full"  # 100%: as many extra repetitions as attempts were needed
    HALF = "half"  # 50%


class OverlearningTracker:
    """Derives target repetitions from attempts-till-success."""

    def __init__(self, mode: OverlearningMode = OverlearningMode.FULL):
        self.mode = mode

    def required_repetitions(self, attempts_till_success: int) -> int:
        if attempts_till_success <= 0:
            return DEFAULT_OVERLEARNING_REPETITIONS
        if self.mode == OverlearningMode.HALF:
            extra = math.ceil(attempts_till_success / 2)
        else:
            extra = attempts_till_success
        return DEFAULT_OVERLEARNING_REPETITIONS + extra

    def apply(self, item: PracticeItem) -> int:
        """Set the item's target repetitions and return it."""
        item.target_repetitions = self.required_repetitions(item.attempts_till_success)
        return item.target_repetitions
