# Convergence Detector
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Trend(Enum):
    """Direction of per-attempt error counts"""

    IMPROVING = "improving"
    STAGNATING = "stagnating"
    DEGRADING = "degrading"
    OSCILLATING = "oscillating"


@dataclass
class ConvergenceInfo:
    """Snapshot of a detector's history and derived trend"""

    converged: bool
    attempts: int
    error_count_history: list[int] = field(default_factory=list)
    unique_errors_history: list[set[str]] = field(default_factory=list)
    last_improvement: int | None = None
    stagnation_count: int = 0
    trend: Trend = Trend.STAGNATING

    def to_dict(self) -> dict[str, Any]:
        return {
            "converged": self.converged,
            "attempts": self.attempts,
            "error_count_history": list(self.error_count_history),
            "unique_errors_history": [sorted(s) for s in self.unique_errors_history],
            "last_improvement": self.last_improvement,
            "stagnation_count": self.stagnation_count,
            "trend": self.trend.value,
        }


def _fingerprint_of(error: Any) -> str:
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        return str(error["fingerprint"])
    return str(error.fingerprint)


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


class ConvergenceDetector:
    """
    Tracks error counts and fingerprint sets across attempts.

    Only raw history is authoritative: ``last_improvement`` and
    ``stagnation_count`` are derived from the counts and are recomputed on
    restore.
    """

    def __init__(self) -> None:
        self._error_count_history: list[int] = []
        self._unique_errors_history: list[set[str]] = []
        self._last_improvement: int | None = None
        self._stagnation_count = 0

    @property
    def stagnation_count(self) -> int:
        return self._stagnation_count

    @property
    def last_improvement(self) -> int | None:
        return self._last_improvement

    def record_attempt(self, errors: Sequence[Any]) -> None:
        self._error_count_history.append(len(errors))
        self._unique_errors_history.append({_fingerprint_of(e) for e in errors})

        if len(self._error_count_history) >= 2:
            self._apply_improvement_rule(len(self._error_count_history) - 1)

    def _apply_improvement_rule(self, index: int) -> None:
        previous = self._error_count_history[index - 1]
        current = self._error_count_history[index]
        if current < previous:
            self._last_improvement = index
            self._stagnation_count = 0
        else:
            self._stagnation_count += 1

    def get_info(self) -> ConvergenceInfo:
        return ConvergenceInfo(
            converged=self.is_converged(),
            attempts=len(self._error_count_history),
            error_count_history=list(self._error_count_history),
            unique_errors_history=[set(s) for s in self._unique_errors_history],
            last_improvement=self._last_improvement,
            stagnation_count=self._stagnation_count,
            trend=self.detect_trend(),
        )

    def is_converged(self) -> bool:
        if not self._error_count_history:
            return False
        return self._error_count_history[-1] == 0

    def detect_trend(self) -> Trend:
        """
        Classify the error-count trend.

        Oscillation (alternating non-zero differences over the last four
        counts) is checked first; then the last three counts decide between
        stagnating, improving and degrading.
        """
        if len(self._error_count_history) < 2:
            return Trend.STAGNATING

        if self._is_oscillating():
            return Trend.OSCILLATING

        recent = self._error_count_history[-3:]
        pairs = list(zip(recent, recent[1:]))
        decreasing = all(b <= a for a, b in pairs)
        increasing = all(b >= a for a, b in pairs)
        all_same = all(v == recent[0] for v in recent)

        if all_same or self._stagnation_count >= 2:
            return Trend.STAGNATING
        if decreasing:
            return Trend.IMPROVING
        if increasing:
            return Trend.DEGRADING
        return Trend.STAGNATING

    def _is_oscillating(self) -> bool:
        if len(self._error_count_history) < 4:
            return False

        a, b, c, d = self._error_count_history[-4:]
        s1, s2, s3 = _sign(b - a), _sign(c - b), _sign(d - c)
        return s1 != 0 and s1 == -s2 and s2 == -s3

    def get_improvement_percentage(self) -> int:
        if len(self._error_count_history) < 2:
            return 0

        first = self._error_count_history[0]
        last = self._error_count_history[-1]

        if first == 0:
            return 100 if last == 0 else 0

        # halves round up
        return math.floor((first - last) / first * 100 + 0.5)

    def get_new_errors(self) -> set[str]:
        """Fingerprints in the latest attempt that the previous one did not have."""
        if len(self._unique_errors_history) < 2:
            return set(self._unique_errors_history[0]) if self._unique_errors_history else set()

        previous, current = self._unique_errors_history[-2], self._unique_errors_history[-1]
        return current - previous

    def get_fixed_errors(self) -> set[str]:
        if len(self._unique_errors_history) < 2:
            return set()

        previous, current = self._unique_errors_history[-2], self._unique_errors_history[-1]
        return previous - current

    def reset(self) -> None:
        self._error_count_history = []
        self._unique_errors_history = []
        self._last_improvement = None
        self._stagnation_count = 0

    def restore_from_history(self, counts: Sequence[int]) -> None:
        """
        Rehydrate from persisted error counts.

        Fingerprint sets cannot be recovered and come back empty; derived
        fields are recomputed by replaying the improvement rule.
        """
        if not counts:
            return

        self._error_count_history = [int(c) for c in counts]
        self._unique_errors_history = [set() for _ in counts]
        self._last_improvement = None
        self._stagnation_count = 0

        for index in range(1, len(self._error_count_history)):
            self._apply_improvement_rule(index)

    def get_error_count_history(self) -> list[int]:
        return list(self._error_count_history)
