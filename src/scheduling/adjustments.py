"""
Interval adjustments derived from performance scores.

Two multiplicative factors are applied to the raw forgetting-curve
interval on the mature path:

- performance adjustment: how well the session that just ended went
- practice-pattern adjustment: where the last few sessions are heading
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from loguru import logger

from .models import HistoryEntry

PATTERN_WINDOW = 5
MAX_SLOPE = 5.0


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def valid_scores(history: Sequence[HistoryEntry], window: int = PATTERN_WINDOW) -> list[float]:
    """Scores of the last ``window`` usable sessions, oldest first."""
    usable = [
        h for h in history
        if not h.is_deleted and math.isfinite(h.performance_score) and 0.0 <= h.performance_score <= 10.0
    ]
    usable.sort(key=lambda h: h.date)
    return [h.performance_score for h in usable[-window:]]


def linear_regression(scores: Sequence[float]) -> tuple[float, float]:
    """
    Least-squares slope of scores against their index.

    Returns:
        (slope, average). Slope is limited to +/-5 points per session and is
        0 when the fit is degenerate. Fewer than two points give (0, 5.0).
    """
    n = len(scores)
    if n < 2:
        return 0.0, 5.0

    xs = range(n)
    sum_x = sum(xs)
    sum_y = sum(scores)
    sum_xy = sum(x * y for x, y in zip(xs, scores))
    sum_xx = sum(x * x for x in xs)

    denominator = n * sum_xx - sum_x * sum_x
    average = sum_y / n
    if abs(denominator) < 1e-10:
        return 0.0, average

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    if not math.isfinite(slope):
        logger.error(f"Regression produced non-finite slope for scores {list(scores)}")
        return 0.0, average
    return clamp(slope, -MAX_SLOPE, MAX_SLOPE), average


def population_variance(scores: Sequence[float]) -> float:
    if not scores:
        return 0.0
    mean = sum(scores) / len(scores)
    return sum((s - mean) ** 2 for s in scores) / len(scores)


# =============================================================================
# Performance Adjustment
# =============================================================================


def performance_adjustment(performance_score: float) -> float:
    """
    Composite multiplier from a 0-10 session score.

    50% sigmoid (steepness 6, midpoint 0.5), 30% confidence modifier
    (concave below 0.5, convex above), 20% cognitive-load factor.
    Clamped to [0.3, 2.5].
    """
    if not math.isfinite(performance_score):
        performance_score = 5.0
    n = clamp(performance_score, 0.0, 10.0) / 10.0

    sigmoid = 0.4 + 1.6 / (1.0 + math.exp(-(n - 0.5) * 6.0))

    if n <= 0.5:
        confidence = 0.6 + 0.8 * n
    else:
        confidence = 1.0 + ((n - 0.5) * 2.0) ** 1.5 * 0.8

    if n < 0.3:
        # very low scores carry a heavy load penalty
        cognitive_load = 0.3 + 0.4 * (1.0 - (0.3 - n) / 0.3)
    elif n < 0.7:
        cognitive_load = 0.8 + 0.4 * n
    else:
        cognitive_load = 1.0 + (n - 0.7) * 0.5

    combined = 0.5 * sigmoid + 0.3 * confidence + 0.2 * cognitive_load
    return clamp(combined, 0.3, 2.5)


# =============================================================================
# Practice-Pattern Adjustment
# =============================================================================


def nonlinear_base_factor(average_score: float) -> float:
    """Map an average 0-10 score onto a base multiplier around 1.0."""
    n = clamp(average_score, 0.0, 10.0) / 10.0
    if n < 0.3:
        severity = (0.3 - n) / 0.3
        return 0.7 + 0.1 * (1.0 - severity * severity)
    if n < 0.5:
        return 0.8 + (n - 0.3) * 0.4
    if n < 0.7:
        return 0.88 + (n - 0.5) * 0.6
    return min(1.3, 1.0 + math.log(1.0 + (n - 0.7) * 3.0) * 0.1)


def practice_pattern_factor(history: Sequence[HistoryEntry]) -> float:
    """
    Multiplier from the score trend of the last five sessions.

    Without usable history the interval is left unchanged (1.0). A single
    session contributes only the non-linear base factor of its score.
    """
    scores = valid_scores(history)
    if not scores:
        return 1.0
    if len(scores) == 1:
        return nonlinear_base_factor(scores[0])

    slope, average = linear_regression(scores)
    normalized_slope = clamp(slope * 0.1, -0.3, 0.3)
    return clamp(nonlinear_base_factor(average) + normalized_slope, 0.7, 1.3)
