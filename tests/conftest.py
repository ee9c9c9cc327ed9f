"""
Shared pytest fixtures for autoheal tests

Includes:
    - Failure classifications for the common categories
    - A throwaway test file to heal
    - Scripted verify() callables and fix strategies
    - A temporary LLKB context
"""

from pathlib import Path
from typing import Any

import pytest

from autoheal.core.exceptions import FixNotApplicableError
from autoheal.core.types import (
    FailureCategory,
    FailureClassification,
    VerifyResult,
    generate_fingerprint,
)
from autoheal.healing.fixes import FixContext, FixRegistry, FixResult
from autoheal.healing.rules import DEFAULT_HEALING_RULES
from autoheal.llkb import LlkbContext

SPEC_SOURCE = """import { test, expect } from '@playwright/test';

test('save settings', async ({ page }) => {
  await page.goto('/settings');
  page.click('button.save');
  await expect(page.getByText('Saved')).toBeVisible();
});
"""


# =============================================================================
# Fakes
# =============================================================================


class AppendCommentStrategy:
    """Applies by appending a marker comment naming its fix type."""

    def __init__(self, fix_type: str, tokens: int = 0):
        self.fix_type = fix_type
        self.tokens = tokens
        self.calls: list[FixContext] = []

    def apply(self, context: FixContext) -> FixResult:
        self.calls.append(context)
        return FixResult(
            applied=True,
            code=f"{context.code}// healed: {self.fix_type}\n",
            description=f"Applied {self.fix_type}",
            confidence=0.8,
            tokens_used=self.tokens,
        )


class NeverAppliesStrategy:
    def __init__(self, fix_type: str, raise_error: bool = False):
        self.fix_type = fix_type
        self.raise_error = raise_error

    def apply(self, context: FixContext) -> FixResult:
        if self.raise_error:
            raise FixNotApplicableError(self.fix_type, "Pattern not present in code")
        return FixResult.not_applied(context.code, "Pattern not present in code")


class ScriptedVerify:
    """
    Async verify() returning scripted outcomes in order.

    Items may be VerifyResult instances or exceptions to raise. The last item
    repeats once the script runs out.
    """

    def __init__(self, outcomes: list[Any]):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self) -> VerifyResult:
        index = min(self.calls, len(self.outcomes) - 1)
        self.calls += 1
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def failing_result(
    classification: FailureClassification,
    fingerprint_seed: str | None = None,
    tokens: int = 0,
) -> VerifyResult:
    errors = []
    if fingerprint_seed is not None:
        errors = [generate_fingerprint(classification.category, fingerprint_seed)]
    return VerifyResult(
        passed=False,
        classification=classification,
        errors=errors,
        token_usage=tokens,
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def selector_failure() -> FailureClassification:
    return FailureClassification(
        category=FailureCategory.SELECTOR,
        error_message="locator('button.save') resolved to 0 elements at settings.spec.ts:5:8",
        selector="button.save",
    )


@pytest.fixture
def timing_failure() -> FailureClassification:
    return FailureClassification(
        category=FailureCategory.TIMING,
        error_message="Timeout 5000ms exceeded waiting for getByText('Saved')",
    )


@pytest.fixture
def spec_file(tmp_path) -> Path:
    path = tmp_path / "tests" / "settings.spec.ts"
    path.parent.mkdir(parents=True)
    path.write_text(SPEC_SOURCE, encoding="utf-8")
    return path


@pytest.fixture
def heal_dir(tmp_path) -> Path:
    return tmp_path / "heal"


@pytest.fixture
def all_strategies() -> FixRegistry:
    return FixRegistry([AppendCommentStrategy(rule.fix_type) for rule in DEFAULT_HEALING_RULES])


@pytest.fixture
def llkb_ctx(tmp_path) -> LlkbContext:
    return LlkbContext(tmp_path / "llkb")


@pytest.fixture
def make_verify():
    return ScriptedVerify


@pytest.fixture
def make_failing():
    return failing_result


@pytest.fixture
def append_strategy():
    return AppendCommentStrategy


@pytest.fixture
def never_applies():
    return NeverAppliesStrategy
