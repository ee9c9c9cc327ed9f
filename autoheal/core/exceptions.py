import traceback
from datetime import datetime
from typing import Any

# =============================================================================
# Base Exception
# =============================================================================


class AutohealException(Exception):
    """
    Base exception for all autoheal errors.

    Carries:
    - a unique error code
    - structured details
    - remediation suggestions
    - the originating traceback when wrapping another error
    """

    error_code: str = "AH_000"
    error_category: str = "general"
    severity: str = "error"  # debug, info, warning, error, critical

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        suggestions: list[str] | None = None,
        cause: Exception | None = None,
        recoverable: bool = True,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.suggestions = suggestions or []
        self.cause = cause
        self.recoverable = recoverable
        self.context = context or {}
        self.timestamp = datetime.now()
        self.traceback = traceback.format_exc() if cause else None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and heal-log evidence."""
        return {
            "error_code": self.error_code,
            "error_category": self.error_category,
            "severity": self.severity,
            "message": self.message,
            "details": self.details,
            "suggestions": self.suggestions,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
            "traceback": self.traceback,
        }

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.suggestions:
            parts.append(f"Suggestions: {', '.join(self.suggestions)}")
        return " | ".join(parts)


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(AutohealException):
    """Invalid or unusable configuration"""

    error_code = "AH_CFG_001"
    error_category = "configuration"
    severity = "error"


class InvalidConfigValueError(ConfigurationError):
    """A configuration value has the wrong type or range"""

    error_code = "AH_CFG_002"

    def __init__(self, key: str, value: Any, expected_type: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Invalid configuration value for '{key}'",
            details={"key": key, "value": str(value), "expected_type": expected_type},
            suggestions=[f"Provide a valid {expected_type} value for '{key}'"],
            **kwargs,
        )


class ConfigLoadError(ConfigurationError):
    """Configuration file could not be read or parsed"""

    error_code = "AH_CFG_003"

    def __init__(self, config_path: str, reason: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Failed to load configuration from '{config_path}'",
            details={"path": config_path, "reason": reason},
            suggestions=[
                "Check if the file exists",
                "Verify the file format (YAML/JSON)",
                "Check file permissions",
            ],
            **kwargs,
        )


# =============================================================================
# Healing Exceptions
# =============================================================================


class HealingError(AutohealException):
    """Error raised while driving a healing session"""

    error_code = "AH_HLG_001"
    error_category = "healing"
    severity = "error"


class VerificationError(HealingError):
    """The external verify call raised instead of reporting an outcome"""

    error_code = "AH_HLG_002"

    def __init__(self, message: str, attempt: int = 0, **kwargs: Any) -> None:
        kwargs.setdefault("details", {"attempt": attempt})
        kwargs.setdefault(
            "suggestions",
            [
                "Check that the test runner is installed and reachable",
                "Run the test manually to inspect the crash",
            ],
        )
        super().__init__(message=message, **kwargs)


class FixNotApplicableError(HealingError):
    """A fix strategy found nothing to change in the test code"""

    error_code = "AH_HLG_003"
    severity = "warning"

    def __init__(self, fix_type: str, reason: str, **kwargs: Any) -> None:
        kwargs.setdefault("details", {"fix_type": fix_type, "reason": reason})
        super().__init__(message=f"Fix '{fix_type}' not applicable: {reason}", **kwargs)
        self.fix_type = fix_type
        self.reason = reason


# =============================================================================
# Storage Exceptions
# =============================================================================


class StorageError(AutohealException):
    """Persisted artifact could not be read or written"""

    error_code = "AH_STG_001"
    error_category = "storage"


class CorruptStateError(StorageError):
    """A persisted document exists but cannot be parsed or validated"""

    error_code = "AH_STG_002"
    severity = "warning"

    def __init__(self, path: str, reason: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Corrupt state file '{path}'",
            details={"path": path, "reason": reason},
            suggestions=["Inspect the backed-up copy", "Delete the file to start fresh"],
            **kwargs,
        )


# =============================================================================
# Utility Functions
# =============================================================================


def wrap_exception(
    original: Exception,
    exception_class: type[AutohealException],
    message: str | None = None,
    **kwargs: Any,
) -> AutohealException:
    """
    Wrap a plain exception into an autoheal exception.

    Args:
        original: The original exception
        exception_class: Autoheal exception class to wrap into
        message: Optional custom message
        **kwargs: Extra constructor arguments

    Returns:
        The wrapped exception
    """
    return exception_class(message=message or str(original), cause=original, **kwargs)


def is_recoverable(error: Exception) -> bool:
    if isinstance(error, AutohealException):
        return error.recoverable
    return True
