"""
Healing Configuration - Bounded Repair Settings
===============================================

Key Features:
- Which fix types may be attempted and how many times
- Circuit breaker limits (attempts, repetition, oscillation, time, tokens)
- Preset configurations (conservative, aggressive, development)

Usage:
    # Simple - defaults
    config = HealingConfig()

    # Conservative - two attempts, no timing fixes
    config = HealingConfig.conservative()

    # Aggressive - every rule including timeout-increase
    config = HealingConfig.aggressive()

    # Factory with overrides
    config = create_healing_config("aggressive", max_attempts=4)
"""

from dataclasses import dataclass, field
from typing import Any, Literal

DEFAULT_ALLOWED_FIXES: tuple[str, ...] = (
    "selector-refine",
    "add-exact",
    "missing-await",
    "navigation-wait",
    "web-first-assertion",
)

DEFAULT_FORBIDDEN_FIXES: tuple[str, ...] = (
    "add-sleep",
    "remove-assertion",
    "weaken-assertion",
    "force-click",
    "bypass-auth",
)


@dataclass
class CircuitBreakerConfig:
    """Termination limits for one refinement session"""

    max_attempts: int = 3
    same_error_threshold: int = 2
    oscillation_detection: bool = True
    oscillation_window_size: int = 4
    total_timeout_ms: int = 300_000
    cooldown_ms: int = 1000
    max_token_budget: int = 50_000

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        if self.same_error_threshold < 1:
            raise ValueError("same_error_threshold must be at least 1")

        if self.oscillation_window_size < 2:
            raise ValueError("oscillation_window_size must be at least 2")

        if self.total_timeout_ms <= 0:
            raise ValueError("total_timeout_ms must be positive")

        if self.max_token_budget <= 0:
            raise ValueError("max_token_budget must be positive")

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "same_error_threshold": self.same_error_threshold,
            "oscillation_detection": self.oscillation_detection,
            "oscillation_window_size": self.oscillation_window_size,
            "total_timeout_ms": self.total_timeout_ms,
            "cooldown_ms": self.cooldown_ms,
            "max_token_budget": self.max_token_budget,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CircuitBreakerConfig":
        return cls(
            max_attempts=data.get("max_attempts", 3),
            same_error_threshold=data.get("same_error_threshold", 2),
            oscillation_detection=data.get("oscillation_detection", True),
            oscillation_window_size=data.get("oscillation_window_size", 4),
            total_timeout_ms=data.get("total_timeout_ms", 300_000),
            cooldown_ms=data.get("cooldown_ms", 1000),
            max_token_budget=data.get("max_token_budget", 50_000),
        )


@dataclass
class HealingConfig:
    """
    Main healing configuration.

    Attributes:
        enabled: Master switch; a disabled config never heals
        max_attempts: Attempts allowed per healing session
        allowed_fixes: Fix types the rule engine may return
        forbidden_fixes: Advisory list mirrored into logs and reports; the
            built-in denylist in ``autoheal.healing.rules`` is what is enforced
        max_timeout_increase: Upper bound (ms) for timeout-increase fixes
        circuit_breaker: Limits for the per-session circuit breaker
        stagnation_limit: Attempts without improvement before escalating
        state_dir: Directory holding per-test refinement snapshots

    Presets:
        - conservative(): two attempts, selector fixes only
        - aggressive(): every rule including timeout-increase
        - development(): generous limits for local iteration
    """

    enabled: bool = True
    max_attempts: int = 3
    allowed_fixes: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_FIXES))
    forbidden_fixes: list[str] = field(default_factory=lambda: list(DEFAULT_FORBIDDEN_FIXES))
    max_timeout_increase: int = 30_000

    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    stagnation_limit: int = 2
    state_dir: str = ".autoheal/state"

    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        if self.max_timeout_increase < 0:
            raise ValueError("max_timeout_increase must be non-negative")

        if self.stagnation_limit < 1:
            raise ValueError("stagnation_limit must be at least 1")

    def breaker_config(self) -> CircuitBreakerConfig:
        """Circuit breaker limits with the attempt cap taken from this config."""
        data = self.circuit_breaker.to_dict()
        data["max_attempts"] = self.max_attempts
        return CircuitBreakerConfig.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "max_attempts": self.max_attempts,
            "allowed_fixes": list(self.allowed_fixes),
            "forbidden_fixes": list(self.forbidden_fixes),
            "max_timeout_increase": self.max_timeout_increase,
            "circuit_breaker": self.circuit_breaker.to_dict(),
            "stagnation_limit": self.stagnation_limit,
            "state_dir": self.state_dir,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HealingConfig":
        return cls(
            enabled=data.get("enabled", True),
            max_attempts=data.get("max_attempts", 3),
            allowed_fixes=list(data.get("allowed_fixes", DEFAULT_ALLOWED_FIXES)),
            forbidden_fixes=list(data.get("forbidden_fixes", DEFAULT_FORBIDDEN_FIXES)),
            max_timeout_increase=data.get("max_timeout_increase", 30_000),
            circuit_breaker=CircuitBreakerConfig.from_dict(data.get("circuit_breaker", {})),
            stagnation_limit=data.get("stagnation_limit", 2),
            state_dir=data.get("state_dir", ".autoheal/state"),
            metadata=data.get("metadata", {}),
        )

    @classmethod
    def conservative(cls) -> "HealingConfig":
        """
        Preset for conservative healing.

        - Two attempts
        - Selector fixes only
        - Tight time budget
        """
        return cls(
            max_attempts=2,
            allowed_fixes=["selector-refine", "add-exact"],
            circuit_breaker=CircuitBreakerConfig(
                max_attempts=2,
                total_timeout_ms=120_000,
                max_token_budget=20_000,
            ),
        )

    @classmethod
    def aggressive(cls) -> "HealingConfig":
        """
        Preset for aggressive healing.

        - Five attempts
        - Every rule, including bounded timeout increases
        """
        return cls(
            max_attempts=5,
            allowed_fixes=[*DEFAULT_ALLOWED_FIXES, "timeout-increase"],
            circuit_breaker=CircuitBreakerConfig(
                max_attempts=5,
                same_error_threshold=3,
                total_timeout_ms=600_000,
                max_token_budget=100_000,
            ),
            stagnation_limit=3,
        )

    @classmethod
    def development(cls) -> "HealingConfig":
        """Preset for local iteration: generous limits, no oscillation cut-off."""
        return cls(
            max_attempts=6,
            allowed_fixes=[*DEFAULT_ALLOWED_FIXES, "timeout-increase"],
            circuit_breaker=CircuitBreakerConfig(
                max_attempts=6,
                same_error_threshold=4,
                oscillation_detection=False,
                total_timeout_ms=1_800_000,
                max_token_budget=200_000,
            ),
            stagnation_limit=4,
        )


def create_healing_config(
    preset: Literal["default", "conservative", "aggressive", "development"] = "default",
    **overrides: Any,
) -> HealingConfig:
    """
    Factory function to create HealingConfig.

    Args:
        preset: Configuration preset
        **overrides: Override specific settings

    Returns:
        HealingConfig instance

    Example:
        >>> config = create_healing_config("aggressive", max_attempts=3)
    """
    if preset == "conservative":
        config = HealingConfig.conservative()
    elif preset == "aggressive":
        config = HealingConfig.aggressive()
    elif preset == "development":
        config = HealingConfig.development()
    else:
        config = HealingConfig()

    for key, value in overrides.items():
        if hasattr(config, key):
            setattr(config, key, value)

    config.__post_init__()
    return config
