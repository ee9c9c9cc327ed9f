"""
Lesson recommendation for new failures.

relevance = 0.5 * same error category
          + 0.3 * selector strategy similarity
          + 0.2 * lesson type among the category's suggested fixes

score = relevance * confidence; verified lessons with confidence >= 0.6 only.
"""

from dataclasses import dataclass
from typing import Any

from .lessons import ErrorAnalysis, ErrorCategory, Lesson, LessonType

MIN_RECOMMENDATION_CONFIDENCE = 0.6
ATTRIBUTE_STRATEGIES = frozenset({"testid", "role", "label"})

_SUGGESTED_FIX_TYPES: dict[ErrorCategory, tuple[str, ...]] = {
    ErrorCategory.SELECTOR_NOT_FOUND: ("SELECTOR_CHANGE", "LOCATOR_STRATEGY_CHANGED"),
    ErrorCategory.TIMEOUT: ("WAIT_ADDED", "TIMEOUT_INCREASED"),
    ErrorCategory.ASSERTION_FAILED: ("ASSERTION_MODIFIED",),
}

_LESSON_FIX_TYPE: dict[LessonType, str] = {
    LessonType.SELECTOR_PATTERN: "SELECTOR_CHANGE",
    LessonType.WAIT_STRATEGY: "WAIT_ADDED",
    LessonType.FLOW_PATTERN: "FLOW_REORDERED",
    LessonType.ERROR_FIX: "OTHER",
}


@dataclass
class LessonRecommendation:
    lesson: Lesson
    relevance_score: float
    applicability_reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "lesson_id": self.lesson.id,
            "relevance_score": self.relevance_score,
            "applicability_reason": self.applicability_reason,
        }


def selector_strategy(selector: str) -> str:
    if "data-testid" in selector:
        return "testid"
    if "role=" in selector:
        return "role"
    if "aria-label" in selector:
        return "label"
    if selector[:1] in (".", "#"):
        return "css"
    return "other"


def selector_similarity(first: str, second: str) -> float:
    a, b = selector_strategy(first), selector_strategy(second)
    if a == b:
        return 0.8
    if a in ATTRIBUTE_STRATEGIES and b in ATTRIBUTE_STRATEGIES:
        return 0.5
    return 0.2


def suggested_fix_types(category: ErrorCategory) -> tuple[str, ...]:
    return _SUGGESTED_FIX_TYPES.get(category, ("OTHER",))


def calculate_relevance(lesson: Lesson, error: ErrorAnalysis) -> float:
    score = 0.0
    if lesson.error_category == error.category:
        score += 0.5
    if lesson.original_selector and error.selector:
        score += 0.3 * selector_similarity(lesson.original_selector, error.selector)
    if _LESSON_FIX_TYPE[lesson.type] in suggested_fix_types(error.category):
        score += 0.2
    return score


def explain_relevance(lesson: Lesson, error: ErrorAnalysis) -> str:
    reasons = []
    if lesson.error_category == error.category:
        reasons.append(f"Same error type: {error.category.value}")
    if lesson.original_selector and error.selector:
        reasons.append("Similar selector pattern")
    reasons.append(f"Solution: {lesson.pattern}")
    return "; ".join(reasons)


def recommend_lessons(
    errors: list[ErrorAnalysis],
    lessons: list[Lesson],
    max_recommendations: int = 5,
) -> list[LessonRecommendation]:
    """
    Rank lessons that may fix any of ``errors``.

    Each lesson is recommended at most once, for the first error it is
    relevant to.
    """
    recommendations = []

    for lesson in lessons:
        if lesson.confidence < MIN_RECOMMENDATION_CONFIDENCE or not lesson.verified:
            continue
        for error in errors:
            relevance = calculate_relevance(lesson, error)
            if relevance > 0:
                recommendations.append(
                    LessonRecommendation(
                        lesson=lesson,
                        relevance_score=relevance * lesson.confidence,
                        applicability_reason=explain_relevance(lesson, error),
                    )
                )
                break

    recommendations.sort(key=lambda r: r.relevance_score, reverse=True)
    return recommendations[:max_recommendations]
