"""
Tests for autoheal exceptions and logging helpers
"""

import json
import logging

from autoheal.core.exceptions import (
    AutohealException,
    ConfigLoadError,
    CorruptStateError,
    FixNotApplicableError,
    VerificationError,
    is_recoverable,
    wrap_exception,
)
from autoheal.core.logging import JSONFormatter, env_json_format, env_log_level, get_logger


class TestAutohealException:
    def test_basic_exception(self):
        exc = AutohealException("Test error")

        assert exc.message == "Test error"
        assert exc.error_code == "AH_000"
        assert exc.recoverable is True
        assert exc.details == {}
        assert exc.suggestions == []

    def test_str_includes_code_and_details(self):
        exc = ConfigLoadError(config_path="autoheal.yaml", reason="File does not exist")

        text = str(exc)

        assert text.startswith("[AH_CFG_003] Failed to load configuration from 'autoheal.yaml'")
        assert "File does not exist" in text

    def test_to_dict(self):
        cause = ValueError("Original error")
        exc = wrap_exception(cause, VerificationError, attempt=2)

        data = exc.to_dict()

        assert data["error_code"] == "AH_HLG_002"
        assert data["message"] == "Original error"
        assert data["details"] == {"attempt": 2}
        assert data["cause"] == "Original error"

    def test_fix_not_applicable(self):
        exc = FixNotApplicableError("add-exact", "no getByText call")

        assert exc.fix_type == "add-exact"
        assert exc.severity == "warning"
        assert "not applicable" in exc.message

    def test_corrupt_state(self):
        exc = CorruptStateError("state.json", "invalid JSON")

        assert exc.details == {"path": "state.json", "reason": "invalid JSON"}
        assert exc.error_category == "storage"

    def test_is_recoverable(self):
        assert is_recoverable(RuntimeError("x"))
        assert not is_recoverable(AutohealException("x", recoverable=False))


class TestLogging:
    def test_env_helpers(self, monkeypatch):
        monkeypatch.setenv("AUTOHEAL_LOG_LEVEL", "debug")
        monkeypatch.setenv("AUTOHEAL_LOG_FORMAT", "json")

        assert env_log_level() == logging.DEBUG
        assert env_json_format()

    def test_env_helpers_defaults(self, monkeypatch):
        monkeypatch.delenv("AUTOHEAL_LOG_LEVEL", raising=False)
        monkeypatch.delenv("AUTOHEAL_LOG_FORMAT", raising=False)

        assert env_log_level() == logging.INFO
        assert not env_json_format()

    def test_json_formatter_carries_extra(self):
        record = logging.LogRecord(
            "autoheal.healing.loop", logging.INFO, __file__, 1, "Fix applied", None, None
        )
        record.fix_type = "selector-refine"

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "autoheal.healing.loop"
        assert data["message"] == "Fix applied"
        assert data["extra"] == {"fix_type": "selector-refine"}

    def test_get_logger_is_cached(self):
        assert get_logger("autoheal.test") is get_logger("autoheal.test")

    def test_logger_passes_fields_as_extra(self, caplog):
        logger = get_logger("autoheal.test.extra")

        with caplog.at_level(logging.INFO, logger="autoheal.test.extra"):
            logger.info("Attempt recorded", attempt=2)

        assert caplog.records[-1].attempt == 2
