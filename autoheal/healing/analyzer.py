"""
Refinement Analyzer
===================

Combines circuit breaker and convergence state into a single
continue / stop / escalate decision. Rules are evaluated in priority order
and the first match wins:

    1. circuit open            -> stop
    2. converged               -> stop
    3. trend degrading         -> escalate
    4. trend oscillating       -> escalate
    5. stagnation >= limit     -> escalate
    6. otherwise               -> continue
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from autoheal.healing.circuit_breaker import CircuitBreaker, CircuitBreakerState
from autoheal.healing.convergence import ConvergenceDetector, ConvergenceInfo, Trend

DEFAULT_STAGNATION_LIMIT = 2


class RefinementAction(Enum):
    """Analyzer recommendation"""

    CONTINUE = "continue"
    STOP = "stop"
    ESCALATE = "escalate"


@dataclass
class RefinementAnalysis:
    should_continue: bool
    reason: str
    recommendation: RefinementAction
    circuit_breaker: CircuitBreakerState
    convergence: ConvergenceInfo

    def to_dict(self) -> dict[str, Any]:
        return {
            "should_continue": self.should_continue,
            "reason": self.reason,
            "recommendation": self.recommendation.value,
            "circuit_breaker": self.circuit_breaker.to_dict(),
            "convergence": self.convergence.to_dict(),
        }


def analyze_refinement_progress(
    circuit_breaker: CircuitBreaker,
    convergence_detector: ConvergenceDetector,
    stagnation_limit: int = DEFAULT_STAGNATION_LIMIT,
) -> RefinementAnalysis:
    """
    Decide whether a refinement session should keep going.

    Pure with respect to both trackers: neither is mutated.
    """
    cb_state = circuit_breaker.get_state()
    info = convergence_detector.get_info()

    def decide(action: RefinementAction, reason: str) -> RefinementAnalysis:
        return RefinementAnalysis(
            should_continue=action == RefinementAction.CONTINUE,
            reason=reason,
            recommendation=action,
            circuit_breaker=cb_state,
            convergence=info,
        )

    if cb_state.is_open:
        reason = cb_state.open_reason.value if cb_state.open_reason else "UNKNOWN"
        return decide(RefinementAction.STOP, f"Circuit breaker open: {reason}")

    if info.converged:
        return decide(RefinementAction.STOP, "All errors resolved")

    if info.trend == Trend.DEGRADING:
        return decide(
            RefinementAction.ESCALATE,
            "Error count increasing - fixes are making things worse",
        )

    if info.trend == Trend.OSCILLATING:
        return decide(RefinementAction.ESCALATE, "Error counts oscillating - cannot converge")

    if info.stagnation_count >= stagnation_limit:
        return decide(
            RefinementAction.ESCALATE,
            f"No improvement in last {stagnation_limit} attempts - stagnating",
        )

    return decide(RefinementAction.CONTINUE, "Progress being made")
