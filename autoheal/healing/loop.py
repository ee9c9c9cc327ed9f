"""
Healing Loop Controller
=======================

Drives one bounded healing session for a failing test:

    evaluating -> applying_fix -> verifying -> (healed | next attempt)
                                            -> failed / exhausted

The loop only suspends while awaiting the external ``verify`` call; rule
evaluation, circuit breaker, convergence and analysis are synchronous. Every
fix type is tried at most once per session, attempts are numbered from 1, and
every non-healed outcome carries a recommendation.

Usage:
    async def verify() -> VerifyResult:
        return await runner.run("tests/login.spec.ts")

    result = await run_healing_loop(
        journey_id="JRN-0001",
        test_file="tests/login.spec.ts",
        output_dir="artifacts/heal",
        verify=verify,
        strategies=registry,
    )
    print(result.status, result.recommendation)
"""

import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from autoheal.core.exceptions import VerificationError, wrap_exception
from autoheal.core.logging import get_logger
from autoheal.core.types import FailureClassification, VerifyResult, generate_fingerprint
from autoheal.healing.analyzer import RefinementAction, analyze_refinement_progress
from autoheal.healing.circuit_breaker import CircuitBreaker, OpenReason
from autoheal.healing.convergence import ConvergenceDetector
from autoheal.healing.fixes import FixContext, FixRegistry, FixResult
from autoheal.healing.healing_config import CircuitBreakerConfig, HealingConfig
from autoheal.healing.healing_log import AttemptResult, HealingAttempt, HealingLogger
from autoheal.healing.rules import (
    evaluate_healing,
    get_next_fix,
    get_post_healing_recommendation,
)
from autoheal.healing.state import RefinementStateStore
from autoheal.storage.atomic import atomic_write

logger = get_logger("autoheal.healing.loop")

VerifyFn = Callable[[], Awaitable[VerifyResult]]


class LoopStatus(Enum):
    NOT_HEALABLE = "not_healable"
    HEALED = "healed"
    FAILED = "failed"
    EXHAUSTED = "exhausted"


@dataclass
class HealingResult:
    """What a healing session reports back to its caller"""

    success: bool
    status: LoopStatus
    attempts: int
    log_path: str
    applied_fix: str | None = None
    recommendation: str | None = None
    modified_code: str | None = None
    stop_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "attempts": self.attempts,
            "log_path": self.log_path,
            "applied_fix": self.applied_fix,
            "recommendation": self.recommendation,
            "stop_reason": self.stop_reason,
        }


@dataclass
class FixPreview:
    fix_type: str
    preview: str
    confidence: float


@dataclass
class _Session:
    """Mutable per-session bookkeeping"""

    healing_log: HealingLogger
    breaker: CircuitBreaker
    detector: ConvergenceDetector
    classification: FailureClassification
    code: str
    attempted_fixes: list[str] = field(default_factory=list)
    last_error: str = ""


# =============================================================================
# Helpers
# =============================================================================

_LINE_PATTERNS = (
    re.compile(r":(\d+)(?::\d+)?(?:\)|$)"),
    re.compile(r"at line (\d+)", re.IGNORECASE),
)


def extract_line_number(error_message: str) -> int:
    """Line number from a stack frame or 'at line N'; defaults to 1."""
    for pattern in _LINE_PATTERNS:
        match = pattern.search(error_message)
        if match:
            return int(match.group(1))
    return 1


def _as_registry(strategies: FixRegistry | list[Any] | None) -> FixRegistry:
    if isinstance(strategies, FixRegistry):
        return strategies
    return FixRegistry(list(strategies or []))


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _finish_failed(
    session_log: HealingLogger,
    status: LoopStatus,
    recommendation: str,
    attempts: int = 0,
    stop_reason: str | None = None,
) -> HealingResult:
    if status == LoopStatus.EXHAUSTED:
        session_log.mark_exhausted(recommendation)
    else:
        session_log.mark_failed(recommendation)
    return HealingResult(
        success=False,
        status=status,
        attempts=attempts,
        log_path=str(session_log.output_path),
        recommendation=recommendation,
        stop_reason=stop_reason,
    )


# =============================================================================
# Main Loop
# =============================================================================


async def run_healing_loop(
    journey_id: str,
    test_file: Path | str,
    output_dir: Path | str,
    verify: VerifyFn,
    config: HealingConfig | None = None,
    *,
    classification: FailureClassification | None = None,
    strategies: FixRegistry | list[Any] | None = None,
    circuit_breaker_config: CircuitBreakerConfig | None = None,
    state_store: RefinementStateStore | None = None,
) -> HealingResult:
    """
    Run a bounded healing session.

    Args:
        journey_id: Journey the test belongs to (names the heal log)
        test_file: Test file that fixes are written to
        output_dir: Directory for ``{journey_id}.heal-log.json``
        verify: Async callable that runs the test and reports the outcome
        config: Healing configuration
        classification: Known failure classification; when omitted an
            initial ``verify()`` establishes it
        strategies: Fix strategies by fix type
        circuit_breaker_config: Breaker limits; defaults to ``config``'s,
            always with ``config.max_attempts`` as the attempt cap
        state_store: When given, breaker/detector state is restored before
            the first attempt and saved after every attempt

    Returns:
        HealingResult
    """
    config = config or HealingConfig()
    registry = _as_registry(strategies)
    test_path = Path(test_file)
    session_log = HealingLogger(journey_id, output_dir, config.max_attempts)

    logger.bind(journey_id=journey_id, test_file=str(test_path))
    try:
        if not test_path.exists():
            return _finish_failed(session_log, LoopStatus.FAILED, "Test file not found")

        try:
            code = test_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Unable to read {test_path}: {e}")
            return _finish_failed(session_log, LoopStatus.FAILED, "Unable to read test file")

        if classification is None:
            baseline = await _baseline(verify, session_log)
            if isinstance(baseline, HealingResult):
                return baseline
            classification = baseline

        evaluation = evaluate_healing(classification, config)
        if not evaluation.can_heal:
            reason = evaluation.reason or "Failure cannot be healed"
            logger.info(f"Not healable: {reason}")
            session_log.mark_failed(reason)
            return HealingResult(
                success=False,
                status=LoopStatus.NOT_HEALABLE,
                attempts=0,
                log_path=str(session_log.output_path),
                recommendation=reason,
            )

        if circuit_breaker_config is None:
            breaker_config = config.breaker_config()
        else:
            breaker_config = CircuitBreakerConfig.from_dict(
                {**circuit_breaker_config.to_dict(), "max_attempts": config.max_attempts}
            )

        session = _Session(
            healing_log=session_log,
            breaker=CircuitBreaker(breaker_config),
            detector=ConvergenceDetector(),
            classification=classification,
            code=code,
            last_error=classification.error_message,
        )
        if state_store is not None:
            state_store.restore(test_path, session.breaker, session.detector)

        return await _attempt_loop(session, test_path, verify, config, registry, state_store)
    finally:
        logger.unbind("journey_id", "test_file")


async def _baseline(
    verify: VerifyFn,
    session_log: HealingLogger,
) -> FailureClassification | HealingResult:
    """Initial verify: establishes the classification or ends the session."""
    try:
        outcome = await verify()
    except Exception as e:
        error = wrap_exception(e, VerificationError, f"Initial verification failed: {e}")
        logger.error(str(error))
        return _finish_failed(session_log, LoopStatus.FAILED, "Initial verification failed")

    if outcome.passed:
        session_log.mark_healed()
        return HealingResult(
            success=True,
            status=LoopStatus.HEALED,
            attempts=0,
            log_path=str(session_log.output_path),
        )

    if outcome.classification is None:
        return _finish_failed(
            session_log, LoopStatus.FAILED, "Unable to classify failure for healing"
        )

    return outcome.classification


async def _attempt_loop(
    session: _Session,
    test_path: Path,
    verify: VerifyFn,
    config: HealingConfig,
    registry: FixRegistry,
    state_store: RefinementStateStore | None,
) -> HealingResult:
    session_log = session.healing_log

    while True:
        attempt_number = session_log.get_attempt_count() + 1

        if not session.breaker.can_attempt():
            return _stop_on_breaker(session)

        if session_log.is_max_attempts_reached():
            recommendation = get_post_healing_recommendation(
                session.classification, config.max_attempts
            )
            return _finish_failed(
                session_log,
                LoopStatus.EXHAUSTED,
                recommendation,
                attempts=session_log.get_attempt_count(),
                stop_reason=OpenReason.MAX_ATTEMPTS.value,
            )

        fix_type = get_next_fix(session.classification, session.attempted_fixes, config)
        if fix_type is None:
            recommendation = get_post_healing_recommendation(
                session.classification, attempt_number - 1
            )
            return _finish_failed(
                session_log,
                LoopStatus.EXHAUSTED,
                recommendation,
                attempts=attempt_number - 1,
                stop_reason="NO_FIXES_LEFT",
            )

        session.attempted_fixes.append(fix_type)
        started = time.monotonic()

        fix = registry.apply(
            fix_type,
            FixContext(
                code=session.code,
                classification=session.classification,
                line_number=extract_line_number(session.last_error),
                error_message=session.last_error,
                test_file=str(test_path),
                max_timeout_increase=config.max_timeout_increase,
            ),
        )

        if not fix.applied:
            _record_skipped(session, attempt_number, fix_type, fix, test_path, started)
        else:
            outcome = await _apply_and_verify(
                session, attempt_number, fix_type, fix, test_path, verify, started
            )
            if outcome is not None and outcome.passed:
                if state_store is not None:
                    state_store.save(
                        test_path, session.breaker, session.detector, attempt_number
                    )
                session_log.mark_healed()
                logger.info(f"Healed with {fix_type} on attempt {attempt_number}")
                return HealingResult(
                    success=True,
                    status=LoopStatus.HEALED,
                    attempts=attempt_number,
                    log_path=str(session_log.output_path),
                    applied_fix=fix_type,
                    modified_code=session.code,
                )

        if state_store is not None:
            state_store.save(test_path, session.breaker, session.detector, attempt_number)

        analysis = analyze_refinement_progress(
            session.breaker, session.detector, config.stagnation_limit
        )
        logger.event(
            "attempt_analyzed",
            attempt=attempt_number,
            fix_type=fix_type,
            decision=analysis.recommendation.value,
            reason=analysis.reason,
        )
        if analysis.recommendation != RefinementAction.CONTINUE:
            return _stop_on_analysis(session, analysis.reason, analysis.circuit_breaker.open_reason)


def _record_skipped(
    session: _Session,
    attempt_number: int,
    fix_type: str,
    fix: FixResult,
    test_path: Path,
    started: float,
) -> None:
    """A fix that could not be applied still uses up its attempt slot."""
    logger.warning(f"Fix {fix_type} not applied: {fix.description}")
    session.healing_log.log_attempt(
        HealingAttempt(
            attempt=attempt_number,
            failure_type=session.classification.category.value,
            fix_type=fix_type,
            file=str(test_path),
            change=fix.description,
            result=AttemptResult.FAIL,
            error_message="Fix not applied",
            duration=_elapsed_ms(started),
        )
    )
    session.breaker.record_attempt([], token_usage=fix.tokens_used)


async def _apply_and_verify(
    session: _Session,
    attempt_number: int,
    fix_type: str,
    fix: FixResult,
    test_path: Path,
    verify: VerifyFn,
    started: float,
) -> VerifyResult | None:
    """Write the fixed code, verify it and record the outcome everywhere."""
    category = session.classification.category.value

    if not atomic_write(test_path, fix.code):
        # the file on disk still holds the previous code
        session.healing_log.log_attempt(
            HealingAttempt(
                attempt=attempt_number,
                failure_type=category,
                fix_type=fix_type,
                file=str(test_path),
                change=fix.description,
                result=AttemptResult.ERROR,
                error_message="Failed to write test file",
                duration=_elapsed_ms(started),
            )
        )
        fingerprints = [generate_fingerprint(category, "write error", file=str(test_path))]
        session.breaker.record_attempt(fingerprints, token_usage=fix.tokens_used)
        session.detector.record_attempt(fingerprints)
        return None

    session.code = fix.code

    try:
        outcome = await verify()
    except Exception as e:
        error = wrap_exception(e, VerificationError, attempt=attempt_number)
        logger.error(f"Verify raised on attempt {attempt_number}: {error.message}")
        session.healing_log.log_attempt(
            HealingAttempt(
                attempt=attempt_number,
                failure_type=category,
                fix_type=fix_type,
                file=str(test_path),
                change=fix.description,
                result=AttemptResult.ERROR,
                error_message=str(e),
                duration=_elapsed_ms(started),
            )
        )
        fingerprints = [generate_fingerprint(category, f"verify error: {e}")]
        session.breaker.record_attempt(fingerprints, token_usage=fix.tokens_used)
        session.detector.record_attempt(fingerprints)
        session.last_error = str(e)
        return None

    attempt = HealingAttempt(
        attempt=attempt_number,
        failure_type=category,
        fix_type=fix_type,
        file=str(test_path),
        change=fix.description,
        result=AttemptResult.PASS if outcome.passed else AttemptResult.FAIL,
        evidence=[outcome.report_path] if outcome.report_path else [],
        duration=_elapsed_ms(started),
    )

    if not outcome.passed:
        attempt.error_message = outcome.first_error
        session.last_error = attempt.error_message
        reclassified = outcome.classification
        if reclassified and reclassified.category != session.classification.category:
            logger.info(
                f"Failure re-classified from {category} to {reclassified.category.value}"
            )
            session.classification = reclassified

    session.healing_log.log_attempt(attempt)

    fingerprints = outcome.error_fingerprints()
    session.breaker.record_attempt(fingerprints, token_usage=fix.tokens_used + outcome.token_usage)
    session.detector.record_attempt(fingerprints)
    return outcome


def _stop_on_breaker(session: _Session) -> HealingResult:
    state = session.breaker.get_state()
    reason = f"Circuit breaker open: {state.open_reason.value if state.open_reason else 'UNKNOWN'}"
    return _stop_on_analysis(session, reason, state.open_reason)


def _stop_on_analysis(
    session: _Session,
    reason: str,
    open_reason: OpenReason | None,
) -> HealingResult:
    attempts = session.healing_log.get_attempt_count()
    advice = get_post_healing_recommendation(session.classification, attempts)

    if open_reason == OpenReason.MAX_ATTEMPTS:
        status = LoopStatus.EXHAUSTED
        recommendation = advice
    else:
        status = LoopStatus.FAILED
        recommendation = f"{reason}. {advice}"

    logger.info(f"Stopping healing session: {reason}")
    return _finish_failed(
        session.healing_log,
        status,
        recommendation,
        attempts=attempts,
        stop_reason=open_reason.value if open_reason else reason,
    )


# =============================================================================
# Dry Run
# =============================================================================


def preview_healing_fixes(
    code: str,
    classification: FailureClassification,
    config: HealingConfig | None = None,
    strategies: FixRegistry | list[Any] | None = None,
) -> list[FixPreview]:
    """
    Preview which fixes would apply, in rule order, without writing or logging.
    """
    evaluation = evaluate_healing(classification, config)
    if not evaluation.can_heal:
        return []

    registry = _as_registry(strategies)
    previews = []
    for fix_type in evaluation.applicable_fixes:
        result = registry.apply(fix_type, FixContext(code=code, classification=classification))
        if result.applied:
            previews.append(
                FixPreview(fix_type=fix_type, preview=result.description, confidence=result.confidence)
            )
    return previews


def would_fix_apply(
    code: str,
    fix_type: str,
    classification: FailureClassification,
    strategies: FixRegistry | list[Any] | None = None,
) -> bool:
    registry = _as_registry(strategies)
    return registry.apply(fix_type, FixContext(code=code, classification=classification)).applied
