"""
Tests for heal logs and refinement state snapshots
"""

import json

import pytest

from autoheal.healing.circuit_breaker import CircuitBreaker, OpenReason
from autoheal.healing.convergence import ConvergenceDetector
from autoheal.healing.healing_config import CircuitBreakerConfig
from autoheal.healing.healing_log import (
    AttemptResult,
    HealingAttempt,
    HealingLog,
    HealingLogger,
    HealingStatus,
    aggregate_healing_logs,
    create_healing_report,
    format_healing_log,
    load_healing_log,
)
from autoheal.healing.state import RefinementStateStore


def attempt(number: int, fix_type: str, result: AttemptResult = AttemptResult.FAIL, **kw):
    return HealingAttempt(
        attempt=number,
        failure_type="selector",
        fix_type=fix_type,
        file="tests/login.spec.ts",
        change=f"Applied {fix_type}",
        result=result,
        duration=kw.pop("duration", 100),
        **kw,
    )


class TestHealingLogger:
    """Tests for HealingLogger."""

    def test_writes_file_after_each_attempt(self, tmp_path):
        log = HealingLogger("JRN-0001", tmp_path, max_attempts=3)

        log.log_attempt(attempt(1, "missing-await"))

        data = json.loads(log.output_path.read_text(encoding="utf-8"))
        assert log.output_path.name == "JRN-0001.heal-log.json"
        assert data["status"] == "in_progress"
        assert len(data["attempts"]) == 1

    def test_attempt_numbers_must_increase(self, tmp_path):
        log = HealingLogger("JRN-0001", tmp_path)
        log.log_attempt(attempt(1, "missing-await"))

        with pytest.raises(ValueError):
            log.log_attempt(attempt(1, "selector-refine"))

    def test_max_attempts_reached(self, tmp_path):
        log = HealingLogger("JRN-0001", tmp_path, max_attempts=2)
        log.log_attempt(attempt(1, "missing-await"))
        assert not log.is_max_attempts_reached()

        log.log_attempt(attempt(2, "selector-refine"))

        assert log.is_max_attempts_reached()
        assert log.get_attempt_count() == 2

    def test_mark_exhausted_builds_summary(self, tmp_path):
        log = HealingLogger("JRN-0001", tmp_path)
        log.log_attempt(attempt(1, "missing-await", duration=150))
        log.log_attempt(attempt(2, "selector-refine", AttemptResult.ERROR, duration=50))

        log.mark_exhausted("Quarantine the test")

        summary = log.get_log().summary
        assert log.get_log().status == HealingStatus.EXHAUSTED
        assert log.get_log().session_end is not None
        assert summary.total_attempts == 2
        assert summary.failed_attempts == 2
        assert summary.total_duration == 200
        assert summary.fix_types_attempted == ["missing-await", "selector-refine"]
        assert summary.recommendation == "Quarantine the test"

    def test_load_round_trip(self, tmp_path):
        log = HealingLogger("JRN-0002", tmp_path)
        log.log_attempt(attempt(1, "add-exact", AttemptResult.PASS, evidence=["report.html"]))
        log.mark_healed()

        loaded = load_healing_log(log.output_path)

        assert loaded.status == HealingStatus.HEALED
        assert loaded.attempts[0].evidence == ["report.html"]
        assert create_healing_report(loaded)["fix_applied"] == "add-exact"

    def test_load_missing_or_broken(self, tmp_path):
        broken = tmp_path / "broken.heal-log.json"
        broken.write_text("{", encoding="utf-8")

        assert load_healing_log(tmp_path / "nope.json") is None
        assert load_healing_log(broken) is None


class TestReporting:
    def test_format_markdown(self):
        log = HealingLog(journey_id="JRN-0003", status=HealingStatus.FAILED)
        log.attempts.append(attempt(1, "missing-await", error_message="still failing"))

        text = format_healing_log(log)

        assert text.startswith("# Healing Log: JRN-0003")
        assert "Status: FAILED" in text
        assert "### Attempt 1 ❌" in text
        assert "- **Error**: still failing" in text

    def test_aggregate(self):
        healed = HealingLog(journey_id="A", status=HealingStatus.HEALED)
        healed.attempts = [attempt(1, "missing-await"), attempt(2, "add-exact")]
        exhausted = HealingLog(journey_id="B", status=HealingStatus.EXHAUSTED)
        exhausted.attempts = [attempt(1, "missing-await")]

        summary = aggregate_healing_logs([healed, exhausted])

        assert summary["total_journeys"] == 2
        assert summary["healed"] == 1
        assert summary["exhausted"] == 1
        assert summary["total_attempts"] == 3
        assert summary["most_common_fixes"][0] == {"fix": "missing-await", "count": 2}


class TestRefinementStateStore:
    """Tests for snapshot persistence."""

    def test_save_and_restore(self, tmp_path):
        store = RefinementStateStore(tmp_path)
        breaker = CircuitBreaker(CircuitBreakerConfig(max_attempts=5))
        detector = ConvergenceDetector()
        for fingerprints in (["a", "b"], ["b"]):
            breaker.record_attempt(fingerprints, token_usage=100)
            detector.record_attempt(fingerprints)

        assert store.save("tests/login.spec.ts", breaker, detector, attempts=2)

        new_breaker = CircuitBreaker(CircuitBreakerConfig(max_attempts=5))
        new_detector = ConvergenceDetector()
        snapshot = store.restore("tests/login.spec.ts", new_breaker, new_detector)

        assert snapshot.attempts == 2
        assert new_breaker.get_state().attempt_count == 2
        assert new_breaker.get_state().tokens_used == 200
        assert new_breaker.get_state().start_time == breaker.get_state().start_time
        assert new_detector.get_error_count_history() == [2, 1]
        assert new_detector.last_improvement == 1

    def test_path_per_test_file(self, tmp_path):
        store = RefinementStateStore(tmp_path)

        assert store.path_for("e2e/checkout.spec.ts").name == "refine-state-checkout.spec.json"

    def test_missing_snapshot(self, tmp_path):
        store = RefinementStateStore(tmp_path)

        assert store.restore("tests/x.spec.ts", CircuitBreaker(), ConvergenceDetector()) is None

    def test_corrupt_snapshot_is_backed_up(self, tmp_path):
        store = RefinementStateStore(tmp_path)
        path = store.path_for("tests/login.spec.ts")
        path.write_text("not json at all", encoding="utf-8")

        assert store.load("tests/login.spec.ts") is None
        assert not path.exists()
        backups = list(tmp_path.glob("refine-state-login.spec.json.corrupt-*"))
        assert len(backups) == 1
        assert backups[0].read_text(encoding="utf-8") == "not json at all"

    def test_legacy_camel_case_snapshot(self, tmp_path):
        store = RefinementStateStore(tmp_path)
        store.path_for("tests/login.spec.ts").write_text(
            json.dumps(
                {
                    "testPath": "tests/login.spec.ts",
                    "attempts": 3,
                    "errorCountHistory": [4, 4, 4],
                    "circuitBreaker": {
                        "isOpen": True,
                        "openReason": "SAME_ERROR",
                        "attemptCount": 3,
                        "errorHistory": ["x", "x", "x"],
                        "tokensUsed": 0,
                    },
                }
            ),
            encoding="utf-8",
        )
        breaker = CircuitBreaker()

        store.restore("tests/login.spec.ts", breaker, ConvergenceDetector())

        assert not breaker.can_attempt()
        assert breaker.get_state().open_reason == OpenReason.SAME_ERROR

    def test_clear(self, tmp_path):
        store = RefinementStateStore(tmp_path)
        store.save("tests/a.spec.ts", CircuitBreaker(), ConvergenceDetector(), attempts=0)

        assert store.clear("tests/a.spec.ts")
        assert not store.clear("tests/a.spec.ts")
