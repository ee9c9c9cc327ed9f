"""
Lesson Extraction
=================

Turns a completed refinement session into reusable lessons: "for this kind of
error on this kind of element, this fix worked".

Only attempts that fully or partially succeeded and actually applied a fix
teach anything; only full successes produce verified lessons.

Usage:
    lessons = extract_lessons_from_session(session)
    for group in aggregate_lessons(lessons):
        print(group.pattern, group.occurrences)
"""

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

logger = logging.getLogger("autoheal.meta_learning.lessons")


class ErrorCategory(Enum):
    """Refinement-level error categories, as reported by the error parser"""

    SELECTOR_NOT_FOUND = "SELECTOR_NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    ASSERTION_FAILED = "ASSERTION_FAILED"
    NAVIGATION_ERROR = "NAVIGATION_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"
    SYNTAX_ERROR = "SYNTAX_ERROR"
    TYPE_ERROR = "TYPE_ERROR"
    RUNTIME_ERROR = "RUNTIME_ERROR"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: "ErrorCategory | str") -> "ErrorCategory":
        if isinstance(value, ErrorCategory):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.UNKNOWN


class LessonType(Enum):
    SELECTOR_PATTERN = "selector_pattern"
    WAIT_STRATEGY = "wait_strategy"
    FLOW_PATTERN = "flow_pattern"
    ERROR_FIX = "error_fix"


class AttemptOutcome(Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"
    ERROR = "error"


FIX_TYPE_TO_LESSON_TYPE: dict[str, LessonType] = {
    "SELECTOR_CHANGE": LessonType.SELECTOR_PATTERN,
    "LOCATOR_STRATEGY_CHANGED": LessonType.SELECTOR_PATTERN,
    "FRAME_CONTEXT_ADDED": LessonType.SELECTOR_PATTERN,
    "WAIT_ADDED": LessonType.WAIT_STRATEGY,
    "TIMEOUT_INCREASED": LessonType.WAIT_STRATEGY,
    "RETRY_ADDED": LessonType.WAIT_STRATEGY,
    "FLOW_REORDERED": LessonType.FLOW_PATTERN,
    "ASSERTION_MODIFIED": LessonType.ERROR_FIX,
    "ERROR_HANDLING_ADDED": LessonType.ERROR_FIX,
    "OTHER": LessonType.ERROR_FIX,
}


# =============================================================================
# Session Model
# =============================================================================


@dataclass
class ErrorAnalysis:
    category: ErrorCategory
    message: str = ""
    selector: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "message": self.message,
            "selector": self.selector,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ErrorAnalysis":
        return cls(
            category=ErrorCategory.parse(data.get("category", "UNKNOWN")),
            message=data.get("message", ""),
            selector=data.get("selector"),
        )


@dataclass
class CodeFix:
    """A concrete edit proposed during refinement"""

    type: str
    fixed_code: str
    confidence: float
    description: str = ""
    reasoning: str | None = None
    step_description: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CodeFix":
        return cls(
            type=data["type"],
            fixed_code=data.get("fixed_code", ""),
            confidence=data.get("confidence", 0.0),
            description=data.get("description", ""),
            reasoning=data.get("reasoning"),
            step_description=data.get("step_description"),
        )


@dataclass
class SessionAttempt:
    outcome: AttemptOutcome
    error: ErrorAnalysis
    applied_fix: CodeFix | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionAttempt":
        fix = data.get("applied_fix")
        return cls(
            outcome=AttemptOutcome(data.get("outcome", "failure")),
            error=ErrorAnalysis.from_dict(data.get("error", {})),
            applied_fix=CodeFix.from_dict(fix) if fix else None,
        )


@dataclass
class RefinementSession:
    journey_id: str
    attempts: list[SessionAttempt] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RefinementSession":
        return cls(
            journey_id=data["journey_id"],
            attempts=[SessionAttempt.from_dict(a) for a in data.get("attempts", [])],
        )


# =============================================================================
# Lesson
# =============================================================================


@dataclass
class Lesson:
    """A fix that worked, with the context it worked in"""

    id: str
    type: LessonType
    journey_id: str
    error_category: ErrorCategory
    element: str
    pattern: str
    code: str
    explanation: str
    confidence: float
    original_selector: str | None = None
    verified: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    success_count: int = 0
    failure_count: int = 0
    last_used_at: datetime | None = None

    @property
    def applications(self) -> int:
        return self.success_count + self.failure_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "context": {
                "journey_id": self.journey_id,
                "error_category": self.error_category.value,
                "original_selector": self.original_selector,
                "element": self.element,
            },
            "solution": {
                "pattern": self.pattern,
                "code": self.code,
                "explanation": self.explanation,
            },
            "confidence": self.confidence,
            "verified": self.verified,
            "created_at": self.created_at.isoformat(),
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Lesson":
        context = data.get("context", {})
        solution = data.get("solution", {})
        return cls(
            id=data["id"],
            type=LessonType(data["type"]),
            journey_id=context.get("journey_id", ""),
            error_category=ErrorCategory.parse(context.get("error_category", "UNKNOWN")),
            original_selector=context.get("original_selector"),
            element=context.get("element", "unknown element"),
            pattern=solution.get("pattern", ""),
            code=solution.get("code", ""),
            explanation=solution.get("explanation", ""),
            confidence=data.get("confidence", 0.5),
            verified=data.get("verified", False),
            created_at=datetime.fromisoformat(data["created_at"])
            if data.get("created_at")
            else datetime.now(),
            success_count=data.get("success_count", 0),
            failure_count=data.get("failure_count", 0),
            last_used_at=datetime.fromisoformat(data["last_used_at"])
            if data.get("last_used_at")
            else None,
        )


# =============================================================================
# Extraction
# =============================================================================


@dataclass
class LessonExtractionOptions:
    min_confidence: float = 0.7
    include_unverified: bool = False
    max_lessons_per_session: int = 10


def string_hash(text: str) -> str:
    """Small stable base36 hash used in lesson ids."""
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 2**31:
        value -= 2**32
    value = abs(value)

    digits = ""
    alphabet = "0123456789abcdefghijklmnopqrstuvwxyz"
    while value:
        value, rem = divmod(value, 36)
        digits = alphabet[rem] + digits
    return digits or "0"


def _element_from_selector(selector: str) -> str:
    for pattern in (
        r"data-testid[=~*^$]*[\"']?([^\"'\]]+)",
        r"role=[\"']?([^\"'\]]+)",
        r"\.([a-zA-Z0-9_-]+)",
    ):
        match = re.search(pattern, selector)
        if match:
            return match.group(1)
    return selector[:30]


def _element_description(fix: CodeFix, error: ErrorAnalysis) -> str:
    if fix.step_description:
        return fix.step_description
    if error.selector:
        return _element_from_selector(error.selector)
    match = re.search(r"getBy\w+\(['\"]([^'\"]+)['\"]\)", fix.fixed_code)
    if match:
        return match.group(1)
    return "unknown element"


_SELECTOR_MARKERS = (
    ("getByTestId", "testid"),
    ("getByRole", "role"),
    ("getByText", "text"),
    ("getByLabel", "label"),
    ("getByPlaceholder", "placeholder"),
    ("locator", "css"),
)
_WAIT_MARKERS = (
    ("waitForSelector", "waitForSelector"),
    ("waitForLoadState", "waitForLoadState"),
    ("waitForResponse", "waitForResponse"),
    ("waitForTimeout", "waitForTimeout"),
    ("toBeVisible", "expectVisible"),
)
_ASSERTION_MARKERS = (
    ("toHaveText", "toHaveText"),
    ("toHaveValue", "toHaveValue"),
    ("toBeVisible", "toBeVisible"),
    ("toBeEnabled", "toBeEnabled"),
    ("toHaveCount", "toHaveCount"),
)


def _first_marker(code: str, markers: tuple[tuple[str, str], ...]) -> str:
    return next((name for marker, name in markers if marker in code), "unknown")


def extract_fix_pattern(fix: CodeFix) -> str:
    """Generalizable name for what the fix did."""
    if fix.type == "SELECTOR_CHANGE":
        return _first_marker(fix.fixed_code, _SELECTOR_MARKERS)
    if fix.type == "WAIT_ADDED":
        return _first_marker(fix.fixed_code, _WAIT_MARKERS)
    if fix.type == "ASSERTION_MODIFIED":
        return _first_marker(fix.fixed_code, _ASSERTION_MARKERS)
    return fix.type


def _lesson_from_fix(
    journey_id: str, fix: CodeFix, error: ErrorAnalysis, verified: bool
) -> Lesson | None:
    lesson_type = FIX_TYPE_TO_LESSON_TYPE.get(fix.type)
    if lesson_type is None:
        return None

    millis = int(time.time() * 1000)
    return Lesson(
        id=f"lesson-{journey_id}-{error.category.value}-{string_hash(fix.fixed_code[:50])}-{millis}",
        type=lesson_type,
        journey_id=journey_id,
        error_category=error.category,
        original_selector=error.selector,
        element=_element_description(fix, error),
        pattern=extract_fix_pattern(fix),
        code=fix.fixed_code,
        explanation=fix.reasoning or fix.description,
        confidence=fix.confidence,
        verified=verified,
    )


def extract_lessons_from_session(
    session: RefinementSession,
    options: LessonExtractionOptions | None = None,
) -> list[Lesson]:
    """
    Lessons from the successful and partially successful attempts of a session.

    Args:
        session: Completed refinement session
        options: Confidence threshold, unverified handling and per-session cap

    Returns:
        Lessons in attempt order, at most ``max_lessons_per_session``
    """
    options = options or LessonExtractionOptions()
    lessons: list[Lesson] = []

    for attempt in session.attempts:
        if attempt.outcome not in (AttemptOutcome.SUCCESS, AttemptOutcome.PARTIAL):
            continue
        fix = attempt.applied_fix
        if fix is None or fix.confidence < options.min_confidence:
            continue

        lesson = _lesson_from_fix(
            session.journey_id,
            fix,
            attempt.error,
            verified=attempt.outcome == AttemptOutcome.SUCCESS,
        )
        if lesson and (lesson.verified or options.include_unverified):
            lessons.append(lesson)

        if len(lessons) >= options.max_lessons_per_session:
            break

    logger.debug(f"Extracted {len(lessons)} lessons from session {session.journey_id}")
    return lessons


# =============================================================================
# Aggregation
# =============================================================================


@dataclass
class AggregatedPattern:
    pattern: str
    occurrences: int
    average_confidence: float
    contexts: list[str]
    representative_code: str


def aggregate_lessons(lessons: list[Lesson]) -> list[AggregatedPattern]:
    """Group lessons by ``type:pattern``, most frequent first."""
    groups: dict[str, list[Lesson]] = {}
    for lesson in lessons:
        groups.setdefault(f"{lesson.type.value}:{lesson.pattern}", []).append(lesson)

    aggregated = [
        AggregatedPattern(
            pattern=key,
            occurrences=len(members),
            average_confidence=sum(m.confidence for m in members) / len(members),
            contexts=list(dict.fromkeys(m.error_category.value for m in members)),
            representative_code=members[0].code,
        )
        for key, members in groups.items()
    ]
    return sorted(aggregated, key=lambda a: a.occurrences, reverse=True)
