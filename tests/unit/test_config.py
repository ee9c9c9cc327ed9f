"""
Tests for autoheal configuration loading
"""

import json

import pytest

from autoheal.core.config import (
    AutohealConfig,
    ConfigLoader,
    LessonsConfig,
    LlkbConfig,
    get_default_config,
    load_config,
)
from autoheal.core.exceptions import ConfigLoadError, ConfigurationError, InvalidConfigValueError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for suffix in (
        "LOG_LEVEL",
        "HEALING_ENABLED",
        "MAX_ATTEMPTS",
        "TOTAL_TIMEOUT_MS",
        "MAX_TOKEN_BUDGET",
        "STATE_DIR",
        "LLKB_DIR",
        "LLKB_GLOSSARY",
        "LESSONS_PATH",
    ):
        monkeypatch.delenv(f"AUTOHEAL_{suffix}", raising=False)


class TestSectionDefaults:
    def test_defaults(self):
        config = get_default_config()

        assert config.healing.max_attempts == 3
        assert config.llkb.base_dir == ".autoheal/llkb"
        assert config.llkb.high_confidence == 0.7
        assert config.llkb.low_confidence == 0.3
        assert config.lessons.store_path == ".autoheal/refinement-lessons.json"
        assert config.log_level == "INFO"

    def test_llkb_validation(self):
        with pytest.raises(ValueError):
            LlkbConfig(high_confidence=1.2)
        with pytest.raises(ValueError):
            LlkbConfig(low_confidence=0.8, high_confidence=0.7)

    def test_lessons_validation(self):
        with pytest.raises(ValueError):
            LessonsConfig(max_lessons_per_session=0)

    def test_round_trip(self):
        config = AutohealConfig(llkb=LlkbConfig(base_dir="/tmp/llkb"), log_level="DEBUG")

        restored = AutohealConfig.from_dict(config.to_dict())

        assert restored.llkb.base_dir == "/tmp/llkb"
        assert restored.log_level == "DEBUG"
        assert restored.healing.allowed_fixes == config.healing.allowed_fixes
        assert restored.healing.state_dir == ".autoheal/state"

    def test_unknown_key_is_config_error(self):
        with pytest.raises(InvalidConfigValueError):
            AutohealConfig.from_dict({"llkb": {"colour": "blue"}})

    def test_out_of_range_value_is_config_error(self):
        with pytest.raises(ConfigurationError):
            AutohealConfig.from_dict({"healing": {"max_attempts": 0}})


class TestConfigLoader:
    """Tests for ConfigLoader."""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "autoheal.yaml"
        path.write_text(
            "healing:\n"
            "  max_attempts: 5\n"
            "  circuit_breaker:\n"
            "    total_timeout_ms: 1000\n"
            "llkb:\n"
            "  base_dir: custom/llkb\n",
            encoding="utf-8",
        )

        config = load_config(path)

        assert config.healing.max_attempts == 5
        assert config.healing.circuit_breaker.total_timeout_ms == 1000
        assert config.llkb.base_dir == "custom/llkb"

    def test_json_file(self, tmp_path):
        path = tmp_path / "autoheal.json"
        path.write_text(json.dumps({"lessons": {"decay_rate": 0.05}}), encoding="utf-8")

        assert load_config(path).lessons.decay_rate == 0.05

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigLoadError) as exc_info:
            ConfigLoader().load_from_file(tmp_path / "nope.yaml")

        assert exc_info.value.details["reason"] == "File does not exist"

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "autoheal.toml"
        path.write_text("x = 1", encoding="utf-8")

        with pytest.raises(ConfigLoadError):
            ConfigLoader().load_from_file(path)

    def test_broken_yaml(self, tmp_path):
        path = tmp_path / "autoheal.yaml"
        path.write_text("healing: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigLoadError):
            ConfigLoader().load_from_file(path)

    def test_yaml_must_be_mapping(self, tmp_path):
        path = tmp_path / "autoheal.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigLoadError):
            ConfigLoader().load_from_file(path)

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "autoheal.yaml"
        path.write_text("healing:\n  max_attempts: 5\n  enabled: true\n", encoding="utf-8")
        monkeypatch.setenv("AUTOHEAL_MAX_ATTEMPTS", "2")
        monkeypatch.setenv("AUTOHEAL_HEALING_ENABLED", "no")
        monkeypatch.setenv("AUTOHEAL_LLKB_DIR", "/env/llkb")
        monkeypatch.setenv("AUTOHEAL_STATE_DIR", "/env/state")

        config = load_config(path)

        assert config.healing.max_attempts == 2
        assert not config.healing.enabled
        assert config.llkb.base_dir == "/env/llkb"
        assert config.healing.state_dir == "/env/state"

    def test_env_int_must_parse(self, monkeypatch):
        monkeypatch.setenv("AUTOHEAL_MAX_TOKEN_BUDGET", "lots")

        with pytest.raises(InvalidConfigValueError):
            ConfigLoader().load_from_env()

    def test_deep_merge_does_not_mutate(self):
        loader = ConfigLoader()
        base = {"healing": {"max_attempts": 3, "enabled": True}}

        merged = loader.deep_merge(base, {"healing": {"max_attempts": 4}})

        assert merged == {"healing": {"max_attempts": 4, "enabled": True}}
        assert base["healing"]["max_attempts"] == 3
