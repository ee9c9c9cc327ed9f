"""
Core building blocks shared by every autoheal subsystem: failure types and
fingerprints, the exception hierarchy and logging.

Configuration lives in :mod:`autoheal.core.config`.
"""

from .exceptions import (
    AutohealException,
    ConfigLoadError,
    ConfigurationError,
    CorruptStateError,
    FixNotApplicableError,
    HealingError,
    InvalidConfigValueError,
    StorageError,
    VerificationError,
    is_recoverable,
    wrap_exception,
)
from .logging import configure_logging, get_logger, get_standard_logger
from .types import (
    FailureCategory,
    FailureClassification,
    VerifyResult,
    generate_fingerprint,
    normalize_error_message,
)

__all__ = [
    # Exceptions
    "AutohealException",
    "ConfigurationError",
    "ConfigLoadError",
    "InvalidConfigValueError",
    "HealingError",
    "FixNotApplicableError",
    "VerificationError",
    "StorageError",
    "CorruptStateError",
    "wrap_exception",
    "is_recoverable",
    # Logging
    "configure_logging",
    "get_logger",
    "get_standard_logger",
    # Types
    "FailureCategory",
    "FailureClassification",
    "VerifyResult",
    "generate_fingerprint",
    "normalize_error_message",
]
