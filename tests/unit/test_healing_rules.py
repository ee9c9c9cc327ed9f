"""
Tests for the healing rule engine and healing configuration
"""

import pytest

from autoheal.core.types import FailureCategory, FailureClassification
from autoheal.healing.healing_config import (
    CircuitBreakerConfig,
    HealingConfig,
    create_healing_config,
)
from autoheal.healing.rules import (
    FORBIDDEN_FIXES,
    evaluate_healing,
    get_applicable_rules,
    get_healing_recommendation,
    get_next_fix,
    get_post_healing_recommendation,
    is_category_healable,
    is_fix_allowed,
    is_fix_forbidden,
)


def classify(category: str) -> FailureClassification:
    return FailureClassification(category=category, error_message="boom")


class TestHealingConfig:
    """Tests for HealingConfig and its presets."""

    def test_defaults(self):
        config = HealingConfig()

        assert config.enabled
        assert config.max_attempts == 3
        assert "timeout-increase" not in config.allowed_fixes
        assert "add-sleep" in config.forbidden_fixes

    def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            HealingConfig(max_attempts=0)

    def test_invalid_breaker_window(self):
        with pytest.raises(ValueError):
            CircuitBreakerConfig(oscillation_window_size=1)

    def test_round_trip_preserves_nested_breaker(self):
        config = HealingConfig.aggressive()

        restored = HealingConfig.from_dict(config.to_dict())

        assert restored.max_attempts == 5
        assert restored.circuit_breaker.same_error_threshold == 3
        assert "timeout-increase" in restored.allowed_fixes

    def test_breaker_config_takes_attempt_cap_from_healing(self):
        config = HealingConfig(max_attempts=2)

        assert config.breaker_config().max_attempts == 2

    def test_create_with_overrides(self):
        config = create_healing_config("conservative", max_attempts=4)

        assert config.max_attempts == 4
        assert config.allowed_fixes == ["selector-refine", "add-exact"]

    def test_create_rejects_invalid_override(self):
        with pytest.raises(ValueError):
            create_healing_config("default", stagnation_limit=0)


class TestPredicates:
    def test_forbidden_fixes(self):
        for fix in ("add-sleep", "remove-assertion", "weaken-assertion", "force-click", "bypass-auth"):
            assert is_fix_forbidden(fix)
        assert not is_fix_forbidden("selector-refine")

    def test_forbidden_fix_never_allowed_even_if_configured(self):
        config = HealingConfig(allowed_fixes=["add-sleep", "selector-refine"])

        assert not is_fix_allowed("add-sleep", config)
        assert is_fix_allowed("selector-refine", config)

    def test_disabled_config_allows_nothing(self):
        config = HealingConfig(enabled=False)

        assert not is_fix_allowed("selector-refine", config)

    @pytest.mark.parametrize("category", ["auth", "env", "unknown"])
    def test_unhealable_categories(self, category):
        assert not is_category_healable(category)

    def test_unrecognized_category_string_is_unknown(self):
        assert not is_category_healable("cosmic-rays")


class TestRuleEvaluation:
    """Tests for evaluate_healing / get_next_fix."""

    def test_selector_fixes_in_priority_order(self):
        evaluation = evaluate_healing(classify("selector"))

        assert evaluation.can_heal
        assert evaluation.applicable_fixes == ["missing-await", "selector-refine", "add-exact"]

    def test_timing_excludes_timeout_increase_by_default(self):
        rules = get_applicable_rules(classify("timing"), HealingConfig())

        assert [r.fix_type for r in rules] == [
            "missing-await",
            "navigation-wait",
            "web-first-assertion",
        ]

    def test_timing_with_aggressive_preset(self):
        evaluation = evaluate_healing(classify("timing"), HealingConfig.aggressive())

        assert evaluation.applicable_fixes[-1] == "timeout-increase"

    def test_auth_is_not_healable(self):
        evaluation = evaluate_healing(classify("auth"))

        assert not evaluation.can_heal
        assert "auth" in evaluation.reason
        assert evaluation.applicable_fixes == []

    def test_disabled(self):
        evaluation = evaluate_healing(classify("selector"), HealingConfig(enabled=False))

        assert not evaluation.can_heal
        assert evaluation.reason == "Healing is disabled"

    def test_no_rules_after_filtering(self):
        config = HealingConfig(allowed_fixes=["navigation-wait"])

        evaluation = evaluate_healing(classify("selector"), config)

        assert not evaluation.can_heal
        assert evaluation.reason == "No applicable healing rules for this failure"

    def test_applicable_fixes_never_contain_forbidden(self):
        config = HealingConfig(allowed_fixes=[*FORBIDDEN_FIXES, "selector-refine"])

        for category in FailureCategory:
            evaluation = evaluate_healing(classify(category.value), config)
            assert not set(evaluation.applicable_fixes) & FORBIDDEN_FIXES

    def test_next_fix_skips_attempted(self):
        classification = classify("selector")

        assert get_next_fix(classification, []) == "missing-await"
        assert get_next_fix(classification, ["missing-await"]) == "selector-refine"
        assert (
            get_next_fix(classification, {"missing-await", "selector-refine", "add-exact"})
            is None
        )

    def test_next_fix_unhealable(self):
        assert get_next_fix(classify("env"), []) is None


class TestRecommendations:
    def test_category_recommendation(self):
        assert "testid" in get_healing_recommendation(classify("selector"))

    def test_fallback_recommendation(self):
        assert get_healing_recommendation(classify("unknown")).startswith("Review error details")

    def test_post_healing_selector(self):
        text = get_post_healing_recommendation(classify("selector"), 3)

        assert text.startswith("Healing exhausted after 3 attempts.")
        assert "data-testid" in text

    def test_post_healing_other(self):
        text = get_post_healing_recommendation(classify("data"), 2)

        assert "quarantining" in text
