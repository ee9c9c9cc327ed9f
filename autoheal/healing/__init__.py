"""
Bounded Self-Healing
====================

Repairs a failing test by trying legal fixes one at a time, re-verifying after
each, and stopping as soon as continuing is pointless.

Components:
    - rules: which fix types are legal for a failure category
    - CircuitBreaker: hard stop on attempts, repeated errors, oscillation,
      wall-clock timeout or token budget
    - ConvergenceDetector: error-count trend across attempts
    - analyze_refinement_progress: continue / stop / escalate decision
    - run_healing_loop: the orchestrator
    - HealingLogger: per-session JSON journal

Usage:
    from autoheal.healing import HealingConfig, run_healing_loop

    result = await run_healing_loop(
        "JRN-0001", "tests/login.spec.ts", "artifacts/heal", verify,
        config=HealingConfig.conservative(),
        strategies=registry,
    )
"""

from .analyzer import RefinementAction, RefinementAnalysis, analyze_refinement_progress
from .circuit_breaker import CircuitBreaker, CircuitBreakerState, OpenReason
from .convergence import ConvergenceDetector, ConvergenceInfo, Trend
from .fixes import FixContext, FixRegistry, FixResult, FixStrategy
from .healing_config import CircuitBreakerConfig, HealingConfig, create_healing_config
from .healing_log import (
    AttemptResult,
    HealingAttempt,
    HealingLog,
    HealingLogger,
    HealingStatus,
    aggregate_healing_logs,
    format_healing_log,
    load_healing_log,
)
from .loop import (
    FixPreview,
    HealingResult,
    LoopStatus,
    extract_line_number,
    preview_healing_fixes,
    run_healing_loop,
    would_fix_apply,
)
from .rules import (
    DEFAULT_HEALING_RULES,
    FORBIDDEN_FIXES,
    HealingEvaluation,
    evaluate_healing,
    get_next_fix,
    is_fix_allowed,
    is_fix_forbidden,
)
from .state import RefinementSnapshot, RefinementStateStore

__all__ = [
    "HealingConfig",
    "CircuitBreakerConfig",
    "create_healing_config",
    "DEFAULT_HEALING_RULES",
    "FORBIDDEN_FIXES",
    "HealingEvaluation",
    "evaluate_healing",
    "get_next_fix",
    "is_fix_allowed",
    "is_fix_forbidden",
    "CircuitBreaker",
    "CircuitBreakerState",
    "OpenReason",
    "ConvergenceDetector",
    "ConvergenceInfo",
    "Trend",
    "RefinementAction",
    "RefinementAnalysis",
    "analyze_refinement_progress",
    "FixContext",
    "FixRegistry",
    "FixResult",
    "FixStrategy",
    "AttemptResult",
    "HealingAttempt",
    "HealingLog",
    "HealingLogger",
    "HealingStatus",
    "aggregate_healing_logs",
    "format_healing_log",
    "load_healing_log",
    "FixPreview",
    "HealingResult",
    "LoopStatus",
    "extract_line_number",
    "preview_healing_fixes",
    "run_healing_loop",
    "would_fix_apply",
    "RefinementSnapshot",
    "RefinementStateStore",
]
