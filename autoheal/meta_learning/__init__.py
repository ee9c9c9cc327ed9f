"""
Meta-Learning - Lessons from refinement sessions
================================================

Extracts lessons from completed refinement sessions, keeps their confidence
honest as they are reused, and recommends them for new failures.
"""

from .confidence import (
    AdjustmentReason,
    ConfidenceAdjustment,
    apply_confidence_decay,
    calculate_confidence_adjustment,
)
from .lesson_store import LessonStats, LessonStore
from .lessons import (
    AggregatedPattern,
    AttemptOutcome,
    CodeFix,
    ErrorAnalysis,
    ErrorCategory,
    Lesson,
    LessonExtractionOptions,
    LessonType,
    RefinementSession,
    SessionAttempt,
    aggregate_lessons,
    extract_fix_pattern,
    extract_lessons_from_session,
)
from .recommendation import LessonRecommendation, recommend_lessons

__all__ = [
    "AdjustmentReason",
    "ConfidenceAdjustment",
    "apply_confidence_decay",
    "calculate_confidence_adjustment",
    "LessonStats",
    "LessonStore",
    "AggregatedPattern",
    "AttemptOutcome",
    "CodeFix",
    "ErrorAnalysis",
    "ErrorCategory",
    "Lesson",
    "LessonExtractionOptions",
    "LessonType",
    "RefinementSession",
    "SessionAttempt",
    "aggregate_lessons",
    "extract_fix_pattern",
    "extract_lessons_from_session",
    "LessonRecommendation",
    "recommend_lessons",
]
