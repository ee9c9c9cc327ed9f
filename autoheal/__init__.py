"""
autoheal
========

Bounded self-healing for failing end-to-end browser tests.

Architecture:
    - healing: rule engine, circuit breaker, convergence detector, analyzer
      and the healing loop
    - llkb: learned pattern knowledge base (confidence, promotion, export)
    - meta_learning: lessons extracted from refinement sessions
    - cli: maintenance commands over the persisted artifacts

Usage:
    from autoheal import HealingConfig, run_healing_loop

    result = await run_healing_loop(
        "JRN-0001", "tests/login.spec.ts", "artifacts/heal", verify,
        config=HealingConfig(),
        strategies=registry,
    )
"""

__version__ = "0.1.0"

from .core import (
    AutohealException,
    FailureCategory,
    FailureClassification,
    VerifyResult,
    configure_logging,
    get_logger,
)
from .core.config import AutohealConfig, load_config
from .healing import (
    CircuitBreaker,
    ConvergenceDetector,
    FixRegistry,
    HealingConfig,
    HealingResult,
    analyze_refinement_progress,
    evaluate_healing,
    run_healing_loop,
)
from .llkb import LlkbContext, match_llkb_pattern, record_pattern_success
from .meta_learning import LessonStore, extract_lessons_from_session, recommend_lessons

__all__ = [
    "__version__",
    # Core
    "AutohealException",
    "FailureCategory",
    "FailureClassification",
    "VerifyResult",
    "configure_logging",
    "get_logger",
    "AutohealConfig",
    "load_config",
    # Healing
    "CircuitBreaker",
    "ConvergenceDetector",
    "FixRegistry",
    "HealingConfig",
    "HealingResult",
    "analyze_refinement_progress",
    "evaluate_healing",
    "run_healing_loop",
    # LLKB
    "LlkbContext",
    "match_llkb_pattern",
    "record_pattern_success",
    # Lessons
    "LessonStore",
    "extract_lessons_from_session",
    "recommend_lessons",
]
