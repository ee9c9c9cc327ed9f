"""
Centralized Logging Module for autoheal

Provides unified logging configuration with:

Features:
    - Structured logging support (structlog)
    - JSON output for CI environments
    - Console output for local runs

Usage:
    from autoheal.core.logging import get_logger, configure_logging

    # Configure global logging
    configure_logging(level=logging.INFO, json_format=False)

    # Get logger
    logger = get_logger("autoheal.healing.loop")
    logger.info("Attempt finished", journey_id="JRN-0001", result="fail")

Environment Variables:
    AUTOHEAL_LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    AUTOHEAL_LOG_FORMAT: Set format (console, json)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import structlog

# =============================================================================
# Constants
# =============================================================================

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "console"
MAX_CACHE_SIZE = 128
ROOT_LOGGER_NAME = "autoheal"

_RESERVED_RECORD_KEYS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
        "asctime",
    )
)


def env_log_level() -> int:
    return getattr(
        logging, os.getenv("AUTOHEAL_LOG_LEVEL", "INFO").upper(), DEFAULT_LOG_LEVEL
    )


def env_json_format() -> bool:
    return os.getenv("AUTOHEAL_LOG_FORMAT", DEFAULT_LOG_FORMAT) == "json"


# =============================================================================
# Logger Class
# =============================================================================


class AutohealLogger:
    """
    Structured logger for healing sessions.

    Keyword arguments passed to the log methods travel as ``extra`` on the
    standard record (rendered by :class:`JSONFormatter`) and are also bound
    into the structlog event for console rendering.

    Usage:
        >>> logger = get_logger("autoheal.healing.loop")
        >>> logger.info("Fix applied", fix_type="selector-refine")
    """

    def __init__(
        self,
        name: str,
        level: int = logging.INFO,
        json_format: bool = False,
    ) -> None:
        self.name = name
        self.level = level
        self.json_format = json_format or env_json_format()
        self._logger = logging.getLogger(name)
        self._setup_logger()
        self._setup_structlog()
        self._struct = structlog.get_logger(name)

    def _setup_logger(self) -> None:
        if self._logger.handlers or logging.getLogger(ROOT_LOGGER_NAME).handlers:
            return

        handler = logging.StreamHandler(sys.stderr)

        formatter: logging.Formatter
        if self.json_format:
            formatter = JSONFormatter()
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )

        handler.setFormatter(formatter)
        self._logger.addHandler(handler)
        self._logger.setLevel(self.level)

    def _setup_structlog(self) -> None:
        """Route structlog events through the standard library logger."""
        if structlog.is_configured():
            return

        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.KeyValueRenderer(key_order=["event"]),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(self.level),
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=False,
        )

    def bind(self, **kwargs: Any) -> None:
        """Bind context (journey id, test file) to every following event."""
        structlog.contextvars.bind_contextvars(**kwargs)

    def unbind(self, *keys: str) -> None:
        structlog.contextvars.unbind_contextvars(*keys)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(message, extra=kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(message, extra=kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        """
        Log warning message.

        Use for:
        - Corrupt persisted state that was backed up
        - Fixes that could not be applied
        """
        self._logger.warning(message, extra=kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._logger.error(message, extra=kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log with traceback; call from inside an except block."""
        self._logger.exception(message, extra=kwargs)

    def event(self, event: str, **kwargs: Any) -> None:
        """Emit a structlog key/value event (bound context included)."""
        self._struct.info(event, **kwargs)


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Example output:
        {
            "timestamp": "2026-02-17T10:30:00.000000+00:00",
            "level": "INFO",
            "logger": "autoheal.healing.loop",
            "message": "Fix applied",
            "extra": {"fix_type": "selector-refine"}
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra_fields = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_KEYS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


# =============================================================================
# Factory Functions
# =============================================================================


@lru_cache(maxsize=MAX_CACHE_SIZE)
def get_logger(name: str, level: int | None = None) -> AutohealLogger:
    """
    Get or create a structured logger instance.

    Args:
        name: Logger name (e.g. "autoheal.healing.loop")
        level: Optional log level override (default: from AUTOHEAL_LOG_LEVEL)

    Returns:
        Configured AutohealLogger instance
    """
    return AutohealLogger(name, level or env_log_level(), env_json_format())


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    include_timestamp: bool = True,
) -> None:
    """
    Configure autoheal logging globally.

    Should be called once at application startup (the CLI does this).

    Args:
        level: Log level (default: INFO)
        json_format: Enable JSON formatting for CI logs (default: False)
        include_timestamp: Include timestamp in console format (default: True)
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)

    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        fmt = (
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            if include_timestamp
            else "%(name)s - %(levelname)s - %(message)s"
        )
        formatter = logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


def get_standard_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Get a standard Python logger with autoheal formatting.

    Lightweight alternative to AutohealLogger for modules that need plain
    logging without structured fields. Handlers are only attached when the
    ``autoheal`` root logger has not been configured, so records are never
    emitted twice.

    Example:
        >>> from autoheal.core.logging import get_standard_logger
        >>> logger = get_standard_logger("autoheal.llkb.patterns")
        >>> logger.info("Loaded 12 learned patterns")
    """
    logger = logging.getLogger(name)

    if not logger.handlers and not logging.getLogger(ROOT_LOGGER_NAME).handlers:
        handler = logging.StreamHandler()
        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        formatter = logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(level or env_log_level())

    return logger


__all__ = [
    "get_logger",
    "get_standard_logger",
    "configure_logging",
    "AutohealLogger",
    "JSONFormatter",
]
