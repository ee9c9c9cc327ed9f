"""
Fix Strategy Contract
=====================

The healing loop never rewrites test code itself. Each fix type is served by
a strategy object with a uniform ``apply(context) -> FixResult`` contract;
strategies are registered per fix type in a :class:`FixRegistry`.

Usage:
    class AddExactStrategy:
        fix_type = "add-exact"

        def apply(self, context: FixContext) -> FixResult:
            if "getByText(" not in context.code:
                return FixResult.not_applied(context.code, "No text locator found")
            code = context.code.replace("')", "', { exact: true })")
            return FixResult(applied=True, code=code, description="Added exact: true")

    registry = FixRegistry()
    registry.register(AddExactStrategy())
"""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from autoheal.core.exceptions import FixNotApplicableError
from autoheal.core.types import FailureClassification


@dataclass
class FixContext:
    """Everything a strategy may look at when proposing an edit"""

    code: str
    classification: FailureClassification
    line_number: int = 1
    error_message: str = ""
    test_file: str | None = None
    max_timeout_increase: int = 30_000
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class FixResult:
    applied: bool
    code: str
    description: str
    confidence: float = 0.5
    tokens_used: int = 0

    @classmethod
    def not_applied(cls, code: str, description: str) -> "FixResult":
        return cls(applied=False, code=code, description=description, confidence=0.0)


@runtime_checkable
class FixStrategy(Protocol):
    """One implementation per fix type"""

    fix_type: str

    def apply(self, context: FixContext) -> FixResult: ...


class FixRegistry:
    """Maps fix types to their strategies."""

    def __init__(self, strategies: list[FixStrategy] | None = None) -> None:
        self._strategies: dict[str, FixStrategy] = {}
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: FixStrategy) -> None:
        self._strategies[strategy.fix_type] = strategy

    def get(self, fix_type: str) -> FixStrategy | None:
        return self._strategies.get(fix_type)

    def __contains__(self, fix_type: str) -> bool:
        return fix_type in self._strategies

    def fix_types(self) -> list[str]:
        return sorted(self._strategies)

    def apply(self, fix_type: str, context: FixContext) -> FixResult:
        """
        Apply the strategy for ``fix_type``.

        Unknown types are never applied. A strategy may either return
        ``FixResult.not_applied`` or raise ``FixNotApplicableError``.
        """
        strategy = self.get(fix_type)
        if strategy is None:
            return FixResult.not_applied(context.code, f"Unknown fix type: {fix_type}")
        try:
            return strategy.apply(context)
        except FixNotApplicableError as e:
            return FixResult.not_applied(context.code, e.reason)
