"""
Refinement State Persistence
============================

Persists circuit breaker and convergence detector state per test file so a
later process can resume a session without resetting the attempt cap or the
wall-clock budget.

File layout (``refine-state-{test file stem}.json``):

    {
        "test_path": "tests/login.spec.ts",
        "attempts": 2,
        "circuit_breaker_state": {...},
        "error_count_history": [3, 2],
        "saved_at": "2026-02-17T10:30:00"
    }

Older files stored the breaker under ``circuit_breaker`` (or the camelCase
keys of the first release); they are migrated on read. Corrupt files are
backed up with a timestamped suffix and the session starts fresh.
"""

from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator

from autoheal.core.logging import get_standard_logger
from autoheal.healing.circuit_breaker import CircuitBreaker, CircuitBreakerState, OpenReason
from autoheal.healing.convergence import ConvergenceDetector
from autoheal.storage.atomic import atomic_write_json, load_or_quarantine

logger = get_standard_logger("autoheal.healing.state")

_LEGACY_KEYS = {
    "testPath": "test_path",
    "errorCountHistory": "error_count_history",
    "circuitBreakerState": "circuit_breaker_state",
    "circuitBreaker": "circuit_breaker_state",
    "circuit_breaker": "circuit_breaker_state",
}

_LEGACY_BREAKER_KEYS = {
    "isOpen": "is_open",
    "openReason": "open_reason",
    "attemptCount": "attempt_count",
    "errorHistory": "error_history",
    "startTime": "start_time",
    "tokensUsed": "tokens_used",
    "maxAttempts": "max_attempts",
}


class CircuitBreakerSnapshot(BaseModel):
    is_open: bool = False
    open_reason: OpenReason | None = None
    attempt_count: int = Field(default=0, ge=0)
    error_history: list[str] = Field(default_factory=list)
    start_time: datetime | None = None
    tokens_used: int = Field(default=0, ge=0)
    max_attempts: int = 3

    @model_validator(mode="before")
    @classmethod
    def _migrate_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {_LEGACY_BREAKER_KEYS.get(k, k): v for k, v in data.items()}
        return data

    def to_state(self) -> CircuitBreakerState:
        data = self.model_dump()
        data["start_time"] = self.start_time.isoformat() if self.start_time else None
        return CircuitBreakerState.from_dict(data)


class RefinementSnapshot(BaseModel):
    test_path: str
    attempts: int = Field(default=0, ge=0)
    circuit_breaker_state: CircuitBreakerSnapshot | None = None
    error_count_history: list[int] = Field(default_factory=list)
    saved_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _migrate_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {_LEGACY_KEYS.get(k, k): v for k, v in data.items()}
        return data


class RefinementStateStore:
    """
    Snapshot store keyed by test file.

    Usage:
        store = RefinementStateStore(".autoheal/state")
        store.restore("tests/login.spec.ts", breaker, detector)
        ...
        store.save("tests/login.spec.ts", breaker, detector, attempts=1)
    """

    def __init__(self, state_dir: Path | str) -> None:
        self.state_dir = Path(state_dir)
        self._logger = logger

    def path_for(self, test_file: Path | str) -> Path:
        return self.state_dir / f"refine-state-{Path(test_file).stem}.json"

    def load(self, test_file: Path | str) -> RefinementSnapshot | None:
        return load_or_quarantine(self.path_for(test_file), RefinementSnapshot, self._logger)

    def save(
        self,
        test_file: Path | str,
        circuit_breaker: CircuitBreaker,
        convergence_detector: ConvergenceDetector,
        attempts: int,
    ) -> bool:
        snapshot = {
            "test_path": str(test_file),
            "attempts": attempts,
            "circuit_breaker_state": circuit_breaker.get_state().to_dict(),
            "error_count_history": convergence_detector.get_error_count_history(),
            "saved_at": datetime.now().isoformat(),
        }
        saved = atomic_write_json(self.path_for(test_file), snapshot)
        if not saved:
            self._logger.error(f"Failed to save refinement state for {test_file}")
        return saved

    def restore(
        self,
        test_file: Path | str,
        circuit_breaker: CircuitBreaker,
        convergence_detector: ConvergenceDetector,
    ) -> RefinementSnapshot | None:
        """
        Rehydrate both trackers from the stored snapshot, if any.

        Returns the snapshot that was applied, or None for a fresh start.
        """
        snapshot = self.load(test_file)
        if snapshot is None:
            return None

        if snapshot.circuit_breaker_state is not None:
            circuit_breaker.restore(snapshot.circuit_breaker_state.to_state())
        convergence_detector.restore_from_history(snapshot.error_count_history)

        self._logger.info(
            f"Resumed refinement state for {test_file}: "
            f"{snapshot.attempts} prior attempts, history {snapshot.error_count_history}"
        )
        return snapshot

    def clear(self, test_file: Path | str) -> bool:
        path = self.path_for(test_file)
        if not path.exists():
            return False
        path.unlink()
        return True
