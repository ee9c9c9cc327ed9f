"""
Circuit Breaker - Multi-Condition Termination
=============================================

Bounds a refinement session by five independent conditions:

    MAX_ATTEMPTS     attempt count reached the cap
    SAME_ERROR       one fingerprint repeated too often
    OSCILLATION      fingerprints alternate A-B-A-B
    TIMEOUT          wall-clock budget spent
    BUDGET_EXCEEDED  token budget spent

All five checks run after every attempt, in that order, and each one that
holds overwrites the reported reason: when several hold at once the last one
wins. Once open the circuit stays open until ``reset()``.

Usage:
    breaker = CircuitBreaker(CircuitBreakerConfig(max_attempts=3))
    breaker.record_attempt(["a1b2c3"], token_usage=1200)
    if not breaker.can_attempt():
        print(breaker.get_state().open_reason)
"""

import logging
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from autoheal.healing.healing_config import CircuitBreakerConfig

logger = logging.getLogger("autoheal.healing.circuit_breaker")


class OpenReason(Enum):
    """Why the circuit opened"""

    MAX_ATTEMPTS = "MAX_ATTEMPTS"
    SAME_ERROR = "SAME_ERROR"
    OSCILLATION = "OSCILLATION"
    TIMEOUT = "TIMEOUT"
    BUDGET_EXCEEDED = "BUDGET_EXCEEDED"


@dataclass
class CircuitBreakerState:
    """Serializable circuit breaker state"""

    is_open: bool = False
    open_reason: OpenReason | None = None
    attempt_count: int = 0
    error_history: list[str] = field(default_factory=list)
    start_time: datetime = field(default_factory=datetime.now)
    tokens_used: int = 0
    max_attempts: int = 3

    def copy(self) -> "CircuitBreakerState":
        return CircuitBreakerState(
            is_open=self.is_open,
            open_reason=self.open_reason,
            attempt_count=self.attempt_count,
            error_history=list(self.error_history),
            start_time=self.start_time,
            tokens_used=self.tokens_used,
            max_attempts=self.max_attempts,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_open": self.is_open,
            "open_reason": self.open_reason.value if self.open_reason else None,
            "attempt_count": self.attempt_count,
            "error_history": list(self.error_history),
            "start_time": self.start_time.isoformat(),
            "tokens_used": self.tokens_used,
            "max_attempts": self.max_attempts,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CircuitBreakerState":
        reason = data.get("open_reason")
        return cls(
            is_open=data.get("is_open", False),
            open_reason=OpenReason(reason) if reason else None,
            attempt_count=data.get("attempt_count", 0),
            error_history=list(data.get("error_history") or []),
            start_time=datetime.fromisoformat(data["start_time"])
            if data.get("start_time")
            else datetime.now(),
            tokens_used=data.get("tokens_used", 0) or 0,
            max_attempts=data.get("max_attempts", 3),
        )


def _fingerprint_of(error: Any) -> str:
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        return str(error["fingerprint"])
    return str(error.fingerprint)


def _token_count(token_usage: Any) -> int:
    if token_usage is None:
        return 0
    if isinstance(token_usage, int):
        return token_usage
    if isinstance(token_usage, dict):
        return int(token_usage.get("total_tokens", 0))
    return int(getattr(token_usage, "total_tokens", 0))


class CircuitBreaker:
    """
    Bounded-retry guard for a refinement session.

    The timeout is evaluated lazily: there is no background timer, so
    ``can_attempt()`` re-checks elapsed time before answering. The attempt
    cap is re-checked too, so a restored session already at the current
    cap is refused without spending another attempt.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        initial_state: CircuitBreakerState | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._config = config or CircuitBreakerConfig()
        self._clock = clock
        self._logger = logger
        self._state = self._initial_state()
        if initial_state is not None:
            self.restore(initial_state)

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    def _initial_state(self) -> CircuitBreakerState:
        return CircuitBreakerState(
            start_time=self._clock(),
            max_attempts=self._config.max_attempts,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def reset(self) -> None:
        self._state = self._initial_state()

    def restore(self, snapshot: CircuitBreakerState | dict[str, Any]) -> None:
        """
        Continue from a prior session's state.

        Counters, history, start time and the open flag carry over; the
        attempt cap always comes from the current configuration.
        """
        if isinstance(snapshot, dict):
            snapshot = CircuitBreakerState.from_dict(snapshot)

        self._state = CircuitBreakerState(
            is_open=snapshot.is_open,
            open_reason=snapshot.open_reason,
            attempt_count=snapshot.attempt_count,
            error_history=list(snapshot.error_history),
            start_time=snapshot.start_time,
            tokens_used=snapshot.tokens_used,
            max_attempts=self._config.max_attempts,
        )

    def get_state(self) -> CircuitBreakerState:
        return self._state.copy()

    # =========================================================================
    # Recording
    # =========================================================================

    def record_attempt(
        self,
        errors: Sequence[Any],
        token_usage: Any = None,
    ) -> CircuitBreakerState:
        """
        Record one attempt's errors and evaluate every termination check.

        Args:
            errors: Fingerprint strings, or objects/dicts with a ``fingerprint``
            token_usage: Token count (int) or an object/dict with ``total_tokens``

        Returns:
            A copy of the updated state
        """
        self._state.attempt_count += 1
        self._state.error_history.extend(_fingerprint_of(e) for e in errors)
        self._state.tokens_used += _token_count(token_usage)

        self._check_max_attempts()
        self._check_same_error()
        self._check_oscillation()
        self._check_timeout()
        self._check_budget()

        return self.get_state()

    def can_attempt(self) -> bool:
        if self._state.is_open:
            return False

        self._check_max_attempts()
        self._check_timeout()

        return not self._state.is_open

    def remaining_attempts(self) -> int:
        if self._state.is_open:
            return 0
        return max(0, self._config.max_attempts - self._state.attempt_count)

    def remaining_token_budget(self) -> int:
        return max(0, self._config.max_token_budget - self._state.tokens_used)

    def would_exceed_budget(self, estimated_tokens: int) -> bool:
        return self._state.tokens_used + estimated_tokens > self._config.max_token_budget

    def elapsed_ms(self) -> float:
        return (self._clock() - self._state.start_time).total_seconds() * 1000

    # =========================================================================
    # Checks
    # =========================================================================

    def _check_max_attempts(self) -> None:
        if self._state.attempt_count >= self._config.max_attempts:
            self._open(OpenReason.MAX_ATTEMPTS)

    def _check_same_error(self) -> None:
        history = self._state.error_history
        if len(history) < self._config.same_error_threshold:
            return

        counts = Counter(history)
        if any(count >= self._config.same_error_threshold for count in counts.values()):
            self._open(OpenReason.SAME_ERROR)

    def _check_oscillation(self) -> None:
        if not self._config.oscillation_detection:
            return

        window = self._config.oscillation_window_size
        history = self._state.error_history
        if len(history) < window:
            return

        recent = history[-window:]
        if len(set(recent)) != 2:
            return

        if all(recent[i] == recent[i - 2] for i in range(2, len(recent))):
            self._open(OpenReason.OSCILLATION)

    def _check_timeout(self) -> None:
        if self.elapsed_ms() >= self._config.total_timeout_ms:
            self._open(OpenReason.TIMEOUT)

    def _check_budget(self) -> None:
        if self._state.tokens_used >= self._config.max_token_budget:
            self._open(OpenReason.BUDGET_EXCEEDED)

    def _open(self, reason: OpenReason) -> None:
        if not self._state.is_open or self._state.open_reason != reason:
            self._logger.debug(f"Circuit open: {reason.value}")
        self._state.is_open = True
        self._state.open_reason = reason
