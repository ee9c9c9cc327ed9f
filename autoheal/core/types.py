"""
Core Types
==========

Shared value types for the healing loop and its collaborators:

- FailureCategory: why a test failed, as reported by the external classifier
- FailureClassification: the classifier's verdict for one failure
- VerifyResult: what the external verify() call reports back
- generate_fingerprint(): stable identifier for a specific error condition
"""

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# =============================================================================
# Enums
# =============================================================================


class FailureCategory(Enum):
    """Failure categories produced by the test classifier"""

    SELECTOR = "selector"
    TIMING = "timing"
    NAVIGATION = "navigation"
    DATA = "data"
    AUTH = "auth"
    ENV = "env"
    SCRIPT = "script"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: "FailureCategory | str") -> "FailureCategory":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


# =============================================================================
# Fingerprinting
# =============================================================================

_DYNAMIC_VALUE_PATTERNS: list[tuple[str, str]] = [
    (r"\d+ms", "Xms"),
    (r"\d+ element", "X element"),
    (r"(?i)timeout of \d+", "timeout of X"),
    (r"'[^']+'", "'X'"),
    (r'"[^"]+"', '"X"'),
]


def normalize_error_message(message: str) -> str:
    """Strip durations, counts and quoted literals so reruns hash the same."""
    normalized = message
    for pattern, replacement in _DYNAMIC_VALUE_PATTERNS:
        normalized = re.sub(pattern, replacement, normalized)
    return normalized.lower().strip()


def generate_fingerprint(
    category: FailureCategory | str,
    message: str,
    selector: str | None = None,
    file: str | None = None,
    line: int | None = None,
) -> str:
    """
    Compute a stable fingerprint for an error condition.

    Two errors that differ only in timings, element counts or quoted values
    produce the same fingerprint.
    """
    category_value = category.value if isinstance(category, FailureCategory) else str(category)
    components = [
        category_value,
        normalize_error_message(message)[:100],
        selector or "",
        file or "",
        str(line) if line is not None else "",
    ]
    return hashlib.md5("|".join(components).encode()).hexdigest()[:12]


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class FailureClassification:
    """Classifier verdict for a failing test"""

    category: FailureCategory
    error_message: str = ""
    selector: str | None = None
    explanation: str = ""
    confidence: float = 1.0

    def __post_init__(self) -> None:
        self.category = FailureCategory.parse(self.category)

    def fingerprint(self) -> str:
        return generate_fingerprint(self.category, self.error_message, self.selector)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "error_message": self.error_message,
            "selector": self.selector,
            "explanation": self.explanation,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FailureClassification":
        return cls(
            category=FailureCategory.parse(data.get("category", "unknown")),
            error_message=data.get("error_message", ""),
            selector=data.get("selector"),
            explanation=data.get("explanation", ""),
            confidence=data.get("confidence", 1.0),
        )


@dataclass
class VerifyResult:
    """
    Outcome of one external verify() call.

    ``errors`` holds the fingerprints of every error the run reported. When a
    failing run reports none, the classification's own fingerprint stands in.
    """

    passed: bool
    classification: FailureClassification | None = None
    errors: list[str] = field(default_factory=list)
    report_path: str | None = None
    token_usage: int = 0

    def error_fingerprints(self) -> list[str]:
        if self.passed:
            return []
        if self.errors:
            return list(self.errors)
        if self.classification is not None:
            return [self.classification.fingerprint()]
        return [generate_fingerprint(FailureCategory.UNKNOWN, "unclassified failure")]

    @property
    def first_error(self) -> str:
        if self.classification and self.classification.error_message:
            return self.classification.error_message
        return "Unknown error"
