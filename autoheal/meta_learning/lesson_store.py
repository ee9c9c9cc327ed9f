"""
Lesson Store - Persisted Refinement Lessons
===========================================

Keeps extracted lessons in ``refinement-lessons.json`` and tracks how well
each one performs when it is applied again.

Usage:
    store = LessonStore(".autoheal/refinement-lessons.json")
    store.add_lessons(extract_lessons_from_session(session))

    for lesson in store.find(error_category=ErrorCategory.TIMEOUT):
        ...

    store.record_success(lesson.id)
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from autoheal.core.exceptions import CorruptStateError
from autoheal.storage.atomic import atomic_write_json, backup_corrupt_file, read_json_document

from .confidence import apply_confidence_decay
from .lessons import ErrorCategory, Lesson, LessonType

logger = logging.getLogger("autoheal.meta_learning.lessons")

STORE_VERSION = "1.0.0"
SUCCESS_BOOST = 0.05
FAILURE_PENALTY = 0.1
MAX_CONFIDENCE = 0.95
MIN_CONFIDENCE = 0.1


@dataclass
class LessonStats:
    total_lessons: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    average_confidence: float = 0.0
    total_applications: int = 0
    success_rate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_lessons": self.total_lessons,
            "by_type": self.by_type,
            "average_confidence": self.average_confidence,
            "total_applications": self.total_applications,
            "success_rate": self.success_rate,
        }


class LessonStore:
    """
    File-backed lesson collection.

    Every mutation is written through immediately. A corrupt file is moved
    aside and the store starts empty.
    """

    def __init__(self, path: str | Path = ".autoheal/refinement-lessons.json"):
        self.path = Path(path)
        self._lessons: dict[str, Lesson] = {}
        self._lock = threading.Lock()
        self._logger = logger
        self._load()

    # =========================================================================
    # Queries
    # =========================================================================

    def all(self) -> list[Lesson]:
        with self._lock:
            return list(self._lessons.values())

    def get(self, lesson_id: str) -> Lesson | None:
        with self._lock:
            return self._lessons.get(lesson_id)

    def find(
        self,
        lesson_type: LessonType | None = None,
        error_category: ErrorCategory | None = None,
        min_confidence: float = 0.0,
        verified_only: bool = False,
    ) -> list[Lesson]:
        """Lessons matching every given filter, most confident first."""
        with self._lock:
            found = [
                lesson
                for lesson in self._lessons.values()
                if (lesson_type is None or lesson.type == lesson_type)
                and (error_category is None or lesson.error_category == error_category)
                and lesson.confidence >= min_confidence
                and (lesson.verified or not verified_only)
            ]
        return sorted(found, key=lambda lesson: lesson.confidence, reverse=True)

    def __len__(self) -> int:
        return len(self._lessons)

    # =========================================================================
    # Mutations
    # =========================================================================

    def add_lessons(self, lessons: list[Lesson]) -> int:
        """Add or replace lessons by id. Returns how many were stored."""
        if not lessons:
            return 0
        with self._lock:
            for lesson in lessons:
                self._lessons[lesson.id] = lesson
            self._save()
        self._logger.info(f"Stored {len(lessons)} lessons")
        return len(lessons)

    def record_success(self, lesson_id: str) -> Lesson | None:
        with self._lock:
            lesson = self._lessons.get(lesson_id)
            if lesson is None:
                return None
            lesson.success_count += 1
            lesson.confidence = min(MAX_CONFIDENCE, lesson.confidence + SUCCESS_BOOST)
            lesson.last_used_at = datetime.now()
            self._save()
            return lesson

    def record_failure(self, lesson_id: str) -> Lesson | None:
        with self._lock:
            lesson = self._lessons.get(lesson_id)
            if lesson is None:
                return None
            lesson.failure_count += 1
            lesson.confidence = max(MIN_CONFIDENCE, lesson.confidence - FAILURE_PENALTY)
            lesson.last_used_at = datetime.now()
            self._save()
            return lesson

    def prune(self, min_confidence: float = 0.2, min_applications: int = 3) -> int:
        """
        Drop lessons that have been tried enough and still score badly.

        Lessons with fewer than ``min_applications`` uses are kept regardless
        of confidence. Returns the number removed.
        """
        with self._lock:
            doomed = [
                lesson_id
                for lesson_id, lesson in self._lessons.items()
                if lesson.applications >= min_applications and lesson.confidence < min_confidence
            ]
            for lesson_id in doomed:
                del self._lessons[lesson_id]
            if doomed:
                self._save()

        if doomed:
            self._logger.info(f"Pruned {len(doomed)} lessons")
        return len(doomed)

    def apply_decay(self, decay_rate: float = 0.01, reference: datetime | None = None) -> int:
        """Age-decay stored confidences. Returns the number of lessons changed."""
        with self._lock:
            adjustments = apply_confidence_decay(
                list(self._lessons.values()), decay_rate, reference
            )
            for adjustment in adjustments:
                self._lessons[adjustment.lesson_id].confidence = adjustment.new_confidence
            if adjustments:
                self._save()
        return len(adjustments)

    def clear(self) -> None:
        with self._lock:
            self._lessons.clear()
            self._save()

    # =========================================================================
    # Reporting
    # =========================================================================

    def get_stats(self) -> LessonStats:
        lessons = self.all()
        if not lessons:
            return LessonStats()

        by_type: dict[str, int] = {}
        for lesson in lessons:
            by_type[lesson.type.value] = by_type.get(lesson.type.value, 0) + 1

        applications = sum(lesson.applications for lesson in lessons)
        successes = sum(lesson.success_count for lesson in lessons)
        return LessonStats(
            total_lessons=len(lessons),
            by_type=by_type,
            average_confidence=sum(lesson.confidence for lesson in lessons) / len(lessons),
            total_applications=applications,
            success_rate=successes / applications if applications else 0.0,
        )

    def export(
        self,
        output_path: str | Path | None = None,
        min_confidence: float = 0.5,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """
        The most confident lessons as plain dicts.

        When ``output_path`` is given they are also written there as JSON.
        """
        exported = [lesson.to_dict() for lesson in self.find(min_confidence=min_confidence)]
        exported = exported[:limit]

        if output_path is not None:
            atomic_write_json(
                output_path,
                {
                    "version": STORE_VERSION,
                    "exported_at": datetime.now().isoformat(),
                    "lessons": exported,
                },
            )
        return exported

    # =========================================================================
    # Persistence
    # =========================================================================

    def _save(self) -> bool:
        """Save lessons to disk. Caller holds the lock."""
        try:
            return atomic_write_json(
                self.path,
                {
                    "version": STORE_VERSION,
                    "updated_at": datetime.now().isoformat(),
                    "lessons": [lesson.to_dict() for lesson in self._lessons.values()],
                },
            )
        except (OSError, TypeError, ValueError) as e:
            self._logger.error(f"Failed to save lesson store: {e}")
            return False

    def _load(self) -> bool:
        """Load lessons from disk, quarantining a corrupt file."""
        if not self.path.exists():
            return False

        try:
            document = read_json_document(self.path)
            lessons = [Lesson.from_dict(item) for item in document.get("lessons", [])]
        except (CorruptStateError, AttributeError, KeyError, TypeError, ValueError) as e:
            backup = backup_corrupt_file(self.path)
            self._logger.warning(
                f"Lesson store {self.path} is corrupt ({e}); backed up to {backup}, starting empty"
            )
            return False

        self._lessons = {lesson.id: lesson for lesson in lessons}
        self._logger.info(f"Loaded {len(self._lessons)} lessons")
        return True
