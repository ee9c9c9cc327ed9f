"""
Healing Log - Per-Session Attempt Journal
=========================================

One HealingLog per (journey, session), persisted as
``{output_dir}/{journey_id}.heal-log.json`` after every mutation.

Usage:
    log = HealingLogger("JRN-0001", "artifacts/heal", max_attempts=3)
    log.log_attempt(HealingAttempt(attempt=1, failure_type="selector", ...))
    log.mark_exhausted("Healing exhausted after 3 attempts.")

    print(format_healing_log(log.get_log()))
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from autoheal.storage.atomic import atomic_write_json

logger = logging.getLogger("autoheal.healing.log")


class HealingStatus(Enum):
    IN_PROGRESS = "in_progress"
    HEALED = "healed"
    FAILED = "failed"
    EXHAUSTED = "exhausted"


class AttemptResult(Enum):
    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class HealingAttempt:
    """A single fix-and-verify attempt"""

    attempt: int
    failure_type: str
    fix_type: str
    file: str
    change: str
    result: AttemptResult
    duration: int = 0  # ms
    evidence: list[str] = field(default_factory=list)
    error_message: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        data = {
            "attempt": self.attempt,
            "timestamp": self.timestamp.isoformat(),
            "failure_type": self.failure_type,
            "fix_type": self.fix_type,
            "file": self.file,
            "change": self.change,
            "evidence": list(self.evidence),
            "result": self.result.value,
            "duration": self.duration,
        }
        if self.error_message:
            data["error_message"] = self.error_message
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HealingAttempt":
        return cls(
            attempt=data.get("attempt", 0),
            failure_type=data.get("failure_type", "unknown"),
            fix_type=data.get("fix_type", ""),
            file=data.get("file", ""),
            change=data.get("change", ""),
            result=AttemptResult(data.get("result", "fail")),
            duration=data.get("duration", 0),
            evidence=list(data.get("evidence", [])),
            error_message=data.get("error_message"),
            timestamp=datetime.fromisoformat(data["timestamp"])
            if "timestamp" in data
            else datetime.now(),
        )


@dataclass
class HealingSummary:
    total_attempts: int = 0
    successful_fixes: int = 0
    failed_attempts: int = 0
    total_duration: int = 0
    fix_types_attempted: list[str] = field(default_factory=list)
    recommendation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "total_attempts": self.total_attempts,
            "successful_fixes": self.successful_fixes,
            "failed_attempts": self.failed_attempts,
            "total_duration": self.total_duration,
            "fix_types_attempted": list(self.fix_types_attempted),
        }
        if self.recommendation:
            data["recommendation"] = self.recommendation
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HealingSummary":
        return cls(
            total_attempts=data.get("total_attempts", 0),
            successful_fixes=data.get("successful_fixes", 0),
            failed_attempts=data.get("failed_attempts", 0),
            total_duration=data.get("total_duration", 0),
            fix_types_attempted=list(data.get("fix_types_attempted", [])),
            recommendation=data.get("recommendation"),
        )


@dataclass
class HealingLog:
    journey_id: str
    max_attempts: int = 3
    status: HealingStatus = HealingStatus.IN_PROGRESS
    session_start: datetime = field(default_factory=datetime.now)
    session_end: datetime | None = None
    attempts: list[HealingAttempt] = field(default_factory=list)
    summary: HealingSummary | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "journey_id": self.journey_id,
            "session_start": self.session_start.isoformat(),
            "max_attempts": self.max_attempts,
            "status": self.status.value,
            "attempts": [a.to_dict() for a in self.attempts],
        }
        if self.session_end:
            data["session_end"] = self.session_end.isoformat()
        if self.summary:
            data["summary"] = self.summary.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HealingLog":
        return cls(
            journey_id=data["journey_id"],
            max_attempts=data.get("max_attempts", 3),
            status=HealingStatus(data.get("status", "in_progress")),
            session_start=datetime.fromisoformat(data["session_start"])
            if "session_start" in data
            else datetime.now(),
            session_end=datetime.fromisoformat(data["session_end"])
            if data.get("session_end")
            else None,
            attempts=[HealingAttempt.from_dict(a) for a in data.get("attempts", [])],
            summary=HealingSummary.from_dict(data["summary"]) if data.get("summary") else None,
        )


# =============================================================================
# Logger
# =============================================================================


class HealingLogger:
    """
    Records attempts for one healing session and keeps the JSON file current.

    Attempt numbers are assigned by the caller and must increase from 1.
    """

    def __init__(self, journey_id: str, output_dir: Path | str, max_attempts: int = 3) -> None:
        self.output_path = Path(output_dir) / f"{journey_id}.heal-log.json"
        self._log = HealingLog(journey_id=journey_id, max_attempts=max_attempts)
        self._logger = logger

    def log_attempt(self, attempt: HealingAttempt) -> None:
        last = self.get_last_attempt()
        if last is not None and attempt.attempt <= last.attempt:
            raise ValueError(
                f"attempt numbers must increase: got {attempt.attempt} after {last.attempt}"
            )
        attempt.timestamp = datetime.now()
        self._log.attempts.append(attempt)
        self.save()

    def mark_healed(self) -> None:
        self._finish(HealingStatus.HEALED, None)

    def mark_failed(self, recommendation: str | None = None) -> None:
        self._finish(HealingStatus.FAILED, recommendation)

    def mark_exhausted(self, recommendation: str | None = None) -> None:
        self._finish(HealingStatus.EXHAUSTED, recommendation)

    def _finish(self, status: HealingStatus, recommendation: str | None) -> None:
        self._log.status = status
        self._log.session_end = datetime.now()
        self._log.summary = self._calculate_summary()
        if recommendation:
            self._log.summary.recommendation = recommendation
        self.save()

    def _calculate_summary(self) -> HealingSummary:
        attempts = self._log.attempts
        return HealingSummary(
            total_attempts=len(attempts),
            successful_fixes=sum(1 for a in attempts if a.result == AttemptResult.PASS),
            failed_attempts=sum(
                1 for a in attempts if a.result in (AttemptResult.FAIL, AttemptResult.ERROR)
            ),
            total_duration=sum(a.duration for a in attempts),
            fix_types_attempted=list(dict.fromkeys(a.fix_type for a in attempts)),
        )

    def get_log(self) -> HealingLog:
        return self._log

    def get_last_attempt(self) -> HealingAttempt | None:
        return self._log.attempts[-1] if self._log.attempts else None

    def get_attempt_count(self) -> int:
        return len(self._log.attempts)

    def is_max_attempts_reached(self) -> bool:
        return len(self._log.attempts) >= self._log.max_attempts

    def save(self) -> bool:
        saved = atomic_write_json(self.output_path, self._log.to_dict())
        if not saved:
            self._logger.error(f"Failed to save heal log {self.output_path}")
        return saved


# =============================================================================
# Reading and Reporting
# =============================================================================


def load_healing_log(path: Path | str) -> HealingLog | None:
    path = Path(path)
    if not path.exists():
        return None

    try:
        with open(path, encoding="utf-8") as f:
            return HealingLog.from_dict(json.load(f))
    except (OSError, ValueError, KeyError) as e:
        logger.error(f"Failed to load heal log {path}: {e}")
        return None


def format_healing_log(log: HealingLog) -> str:
    """Render a heal log as markdown."""
    lines = [
        f"# Healing Log: {log.journey_id}",
        "",
        f"Status: {log.status.value.upper()}",
        f"Started: {log.session_start.isoformat()}",
    ]
    if log.session_end:
        lines.append(f"Ended: {log.session_end.isoformat()}")
    lines += ["", "## Attempts", ""]

    for attempt in log.attempts:
        icon = "✅" if attempt.result == AttemptResult.PASS else "❌"
        lines += [
            f"### Attempt {attempt.attempt} {icon}",
            "",
            f"- **Fix Type**: {attempt.fix_type}",
            f"- **Failure Type**: {attempt.failure_type}",
            f"- **File**: {attempt.file}",
            f"- **Duration**: {attempt.duration}ms",
            f"- **Result**: {attempt.result.value}",
        ]
        if attempt.error_message:
            lines.append(f"- **Error**: {attempt.error_message}")
        if attempt.change:
            lines.append(f"- **Change**: {attempt.change}")
        if attempt.evidence:
            lines.append(f"- **Evidence**: {', '.join(attempt.evidence)}")
        lines.append("")

    if log.summary:
        summary = log.summary
        lines += [
            "## Summary",
            "",
            f"- Total Attempts: {summary.total_attempts}",
            f"- Successful Fixes: {summary.successful_fixes}",
            f"- Failed Attempts: {summary.failed_attempts}",
            f"- Total Duration: {summary.total_duration}ms",
            f"- Fix Types Tried: {', '.join(summary.fix_types_attempted)}",
        ]
        if summary.recommendation:
            lines += ["", f"**Recommendation**: {summary.recommendation}"]

    return "\n".join(lines)


def create_healing_report(log: HealingLog) -> dict[str, Any]:
    passing = next((a for a in log.attempts if a.result == AttemptResult.PASS), None)
    return {
        "success": log.status == HealingStatus.HEALED,
        "attempt_count": len(log.attempts),
        "fix_applied": passing.fix_type if passing else None,
        "recommendation": log.summary.recommendation if log.summary else None,
    }


def aggregate_healing_logs(logs: list[HealingLog]) -> dict[str, Any]:
    """Roll up many sessions: outcome counts and the most common fixes/failures."""
    fix_counts: Counter[str] = Counter()
    failure_counts: Counter[str] = Counter()
    for log in logs:
        for attempt in log.attempts:
            fix_counts[attempt.fix_type] += 1
            failure_counts[attempt.failure_type] += 1

    return {
        "total_journeys": len(logs),
        "healed": sum(1 for log in logs if log.status == HealingStatus.HEALED),
        "failed": sum(1 for log in logs if log.status == HealingStatus.FAILED),
        "exhausted": sum(1 for log in logs if log.status == HealingStatus.EXHAUSTED),
        "total_attempts": sum(fix_counts.values()),
        "most_common_fixes": [
            {"fix": fix, "count": count} for fix, count in fix_counts.most_common()
        ],
        "most_common_failures": [
            {"failure": failure, "count": count}
            for failure, count in failure_counts.most_common()
        ],
    }
