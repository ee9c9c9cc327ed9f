"""
Lesson confidence bookkeeping.

Adjustment is deliberately asymmetric: each success adds less than the last,
each failure takes away more than the last. Old lessons decay in 30-day steps.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from .lessons import Lesson

SUCCESS_STEP = 0.05
SUCCESS_SHRINK = 0.9
FAILURE_STEP = 0.1
FAILURE_GROWTH = 1.1
DEFAULT_DECAY_RATE = 0.01
DECAY_PERIOD_DAYS = 30


class AdjustmentReason(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    DECAY = "decay"


@dataclass
class ConfidenceAdjustment:
    lesson_id: str
    old_confidence: float
    new_confidence: float
    reason: AdjustmentReason

    def to_dict(self) -> dict[str, Any]:
        return {
            "lesson_id": self.lesson_id,
            "old_confidence": self.old_confidence,
            "new_confidence": self.new_confidence,
            "reason": self.reason.value,
        }


def calculate_confidence_adjustment(
    lesson: Lesson,
    success: bool,
    usage_count: int,
) -> ConfidenceAdjustment:
    """
    New confidence after one more application of ``lesson``.

    Success adds ``0.05 * 0.9^n`` (capped at 1.0); failure subtracts
    ``0.1 * 1.1^n`` (floored at 0.0), where ``n`` is the prior usage count.
    """
    old = lesson.confidence
    if success:
        new = min(1.0, old + SUCCESS_STEP * SUCCESS_SHRINK**usage_count)
        reason = AdjustmentReason.SUCCESS
    else:
        new = max(0.0, old - FAILURE_STEP * FAILURE_GROWTH**usage_count)
        reason = AdjustmentReason.FAILURE
    return ConfidenceAdjustment(lesson.id, old, new, reason)


def apply_confidence_decay(
    lessons: list[Lesson],
    decay_rate: float = DEFAULT_DECAY_RATE,
    reference: datetime | None = None,
) -> list[ConfidenceAdjustment]:
    """
    Decay lessons older than 30 days by ``(1 - rate)^floor(age_days / 30)``.

    Returns the adjustments; the lessons themselves are not modified.
    """
    reference = reference or datetime.now()
    adjustments = []

    for lesson in lessons:
        age_days = (reference - lesson.created_at).total_seconds() / 86400
        if age_days <= DECAY_PERIOD_DAYS:
            continue

        factor = (1 - decay_rate) ** math.floor(age_days / DECAY_PERIOD_DAYS)
        new = lesson.confidence * factor
        if new != lesson.confidence:
            adjustments.append(
                ConfidenceAdjustment(lesson.id, lesson.confidence, new, AdjustmentReason.DECAY)
            )

    return adjustments
