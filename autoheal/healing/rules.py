# Healing Rules
from dataclasses import dataclass, field
from typing import Any

from autoheal.core.types import FailureCategory, FailureClassification
from autoheal.healing.healing_config import HealingConfig

# =============================================================================
# Constants
# =============================================================================

# Fix types that can never be attempted, whatever the configuration says.
FORBIDDEN_FIXES: frozenset[str] = frozenset(
    (
        "add-sleep",
        "remove-assertion",
        "weaken-assertion",
        "force-click",
        "bypass-auth",
    )
)

UNHEALABLE_CATEGORIES: frozenset[FailureCategory] = frozenset(
    (
        FailureCategory.AUTH,  # needs a credential/session fix
        FailureCategory.ENV,  # needs an environment fix
        FailureCategory.UNKNOWN,  # no basis for choosing a fix
    )
)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class HealingRule:
    """A fix type and the failure categories it may repair"""

    fix_type: str
    applies_to: tuple[FailureCategory, ...]
    priority: int
    description: str
    enabled_by_default: bool = True


@dataclass
class HealingEvaluation:
    """Outcome of evaluating a failure against the rule table"""

    can_heal: bool
    applicable_fixes: list[str] = field(default_factory=list)
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "can_heal": self.can_heal,
            "applicable_fixes": list(self.applicable_fixes),
            "reason": self.reason,
        }


DEFAULT_HEALING_RULES: tuple[HealingRule, ...] = (
    HealingRule(
        fix_type="missing-await",
        applies_to=(FailureCategory.SELECTOR, FailureCategory.TIMING, FailureCategory.SCRIPT),
        priority=1,
        description="Add missing await to async operations",
    ),
    HealingRule(
        fix_type="selector-refine",
        applies_to=(FailureCategory.SELECTOR,),
        priority=2,
        description="Replace CSS selector with role/label/testid",
    ),
    HealingRule(
        fix_type="add-exact",
        applies_to=(FailureCategory.SELECTOR,),
        priority=3,
        description="Add exact: true to resolve ambiguous locators",
    ),
    HealingRule(
        fix_type="navigation-wait",
        applies_to=(FailureCategory.NAVIGATION, FailureCategory.TIMING),
        priority=4,
        description="Add waitForURL or toHaveURL assertion",
    ),
    HealingRule(
        fix_type="web-first-assertion",
        applies_to=(FailureCategory.TIMING, FailureCategory.DATA),
        priority=5,
        description="Convert to auto-retrying web-first assertion",
    ),
    HealingRule(
        fix_type="timeout-increase",
        applies_to=(FailureCategory.TIMING,),
        priority=6,
        description="Increase operation timeout (bounded)",
        enabled_by_default=False,  # can mask real performance problems
    ),
)


# =============================================================================
# Predicates
# =============================================================================


def is_fix_forbidden(fix_type: str) -> bool:
    """Membership test against the built-in denylist."""
    return fix_type in FORBIDDEN_FIXES


def is_fix_allowed(fix_type: str, config: HealingConfig | None = None) -> bool:
    config = config or HealingConfig()
    return config.enabled and fix_type in config.allowed_fixes and not is_fix_forbidden(fix_type)


def is_category_healable(category: FailureCategory | str) -> bool:
    return FailureCategory.parse(category) not in UNHEALABLE_CATEGORIES


# =============================================================================
# Rule Evaluation
# =============================================================================


def get_applicable_rules(
    classification: FailureClassification,
    config: HealingConfig | None = None,
) -> list[HealingRule]:
    """Rules for the classification's category, filtered by config, by priority."""
    config = config or HealingConfig()
    if not config.enabled or not is_category_healable(classification.category):
        return []

    rules = [
        rule
        for rule in DEFAULT_HEALING_RULES
        if classification.category in rule.applies_to and is_fix_allowed(rule.fix_type, config)
    ]
    return sorted(rules, key=lambda r: r.priority)


def evaluate_healing(
    classification: FailureClassification,
    config: HealingConfig | None = None,
) -> HealingEvaluation:
    """
    Decide whether a failure can be healed and which fixes are legal.

    Args:
        classification: Classifier verdict for the failure
        config: Healing configuration (defaults when omitted)

    Returns:
        HealingEvaluation with the ordered applicable fix types, or the
        reason healing is impossible
    """
    config = config or HealingConfig()

    if not config.enabled:
        return HealingEvaluation(can_heal=False, reason="Healing is disabled")

    if not is_category_healable(classification.category):
        return HealingEvaluation(
            can_heal=False,
            reason=f"Category '{classification.category.value}' cannot be healed automatically",
        )

    rules = get_applicable_rules(classification, config)
    if not rules:
        return HealingEvaluation(
            can_heal=False,
            reason="No applicable healing rules for this failure",
        )

    return HealingEvaluation(can_heal=True, applicable_fixes=[r.fix_type for r in rules])


def get_next_fix(
    classification: FailureClassification,
    attempted_fixes: list[str] | set[str],
    config: HealingConfig | None = None,
) -> str | None:
    """First applicable fix not yet attempted this session, or None."""
    evaluation = evaluate_healing(classification, config)
    if not evaluation.can_heal:
        return None

    for fix in evaluation.applicable_fixes:
        if fix not in attempted_fixes:
            return fix

    return None


# =============================================================================
# Recommendations
# =============================================================================

_HEALING_RECOMMENDATIONS: dict[FailureCategory, str] = {
    FailureCategory.SELECTOR: "Refine selector to use role, label, or testid locator strategy",
    FailureCategory.TIMING: "Add explicit wait for expected state or use web-first assertion",
    FailureCategory.NAVIGATION: "Add waitForURL or toHaveURL assertion after navigation",
    FailureCategory.DATA: "Verify test data and consider using expect.poll for dynamic values",
    FailureCategory.AUTH: "Check authentication state; may need to refresh session",
    FailureCategory.ENV: "Verify environment connectivity and application availability",
    FailureCategory.SCRIPT: "Fix the JavaScript/TypeScript error in the test code",
}


def get_healing_recommendation(classification: FailureClassification) -> str:
    return _HEALING_RECOMMENDATIONS.get(
        classification.category,
        "Review error details manually to determine appropriate fix",
    )


def get_post_healing_recommendation(
    classification: FailureClassification,
    attempt_count: int,
) -> str:
    """Next-step guidance once healing has given up on a failure."""
    base = f"Healing exhausted after {attempt_count} attempts."

    if classification.category == FailureCategory.SELECTOR:
        return (
            f"{base} Consider adding data-testid to the target element "
            "or quarantining the test."
        )
    if classification.category == FailureCategory.TIMING:
        return f"{base} The application may have a genuine performance issue. Consider quarantining."
    if classification.category == FailureCategory.NAVIGATION:
        return f"{base} The navigation flow may have changed. Review Journey steps."
    return f"{base} Consider quarantining the test and filing a bug report."
