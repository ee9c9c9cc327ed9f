"""
Configuration Management for autoheal
=====================================

- ConfigLoader: loads YAML/JSON files and ``AUTOHEAL_*`` environment variables
- AutohealConfig: healing, llkb and lessons sections
- load_config: file + environment, deep-merged, converted to dataclasses

Example ``autoheal.yaml``:

    healing:
      max_attempts: 3
      allowed_fixes: [selector-refine, add-exact, missing-await]
      circuit_breaker:
        total_timeout_ms: 300000
      state_dir: .autoheal/state
    llkb:
      base_dir: .autoheal/llkb
      high_confidence: 0.7
    lessons:
      store_path: .autoheal/refinement-lessons.json
"""

from __future__ import annotations

import json
import logging
import os
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from autoheal.healing.healing_config import HealingConfig

from .exceptions import ConfigLoadError, InvalidConfigValueError

# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class LlkbConfig:
    """Pattern store location and confidence cutoffs"""

    base_dir: str = ".autoheal/llkb"
    glossary_path: str | None = None
    min_match_confidence: float = 0.5
    high_confidence: float = 0.7
    low_confidence: float = 0.3
    export_min_confidence: float = 0.7
    prune_min_success: int = 1
    prune_max_age_days: int = 90

    def __post_init__(self) -> None:
        for name in (
            "min_match_confidence",
            "high_confidence",
            "low_confidence",
            "export_min_confidence",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1")
        if self.low_confidence > self.high_confidence:
            raise ValueError("low_confidence cannot exceed high_confidence")
        if self.prune_max_age_days < 0:
            raise ValueError("prune_max_age_days must be non-negative")


@dataclass
class LessonsConfig:
    store_path: str = ".autoheal/refinement-lessons.json"
    min_confidence: float = 0.7
    include_unverified: bool = False
    max_lessons_per_session: int = 10
    decay_rate: float = 0.01
    max_recommendations: int = 5

    def __post_init__(self) -> None:
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ValueError("min_confidence must be between 0 and 1")
        if self.max_lessons_per_session < 1:
            raise ValueError("max_lessons_per_session must be at least 1")
        if self.decay_rate < 0:
            raise ValueError("decay_rate must be non-negative")


@dataclass
class AutohealConfig:
    """Complete autoheal configuration"""

    healing: HealingConfig = field(default_factory=HealingConfig)
    llkb: LlkbConfig = field(default_factory=LlkbConfig)
    lessons: LessonsConfig = field(default_factory=LessonsConfig)
    log_level: str = "INFO"

    def to_dict(self) -> dict[str, Any]:
        return {
            "healing": self.healing.to_dict(),
            "llkb": dict(self.llkb.__dict__),
            "lessons": dict(self.lessons.__dict__),
            "log_level": self.log_level,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AutohealConfig:
        try:
            return cls(
                healing=HealingConfig.from_dict(data.get("healing", {})),
                llkb=LlkbConfig(**data.get("llkb", {})),
                lessons=LessonsConfig(**data.get("lessons", {})),
                log_level=str(data.get("log_level", "INFO")).upper(),
            )
        except (TypeError, ValueError) as e:
            raise InvalidConfigValueError(key="<section>", value=e, expected_type="known keys")


# =============================================================================
# ConfigLoader - Handles file and environment loading
# =============================================================================

_ENV_MAPPINGS: dict[str, tuple[tuple[str, ...], type]] = {
    "LOG_LEVEL": (("log_level",), str),
    "HEALING_ENABLED": (("healing", "enabled"), bool),
    "MAX_ATTEMPTS": (("healing", "max_attempts"), int),
    "TOTAL_TIMEOUT_MS": (("healing", "circuit_breaker", "total_timeout_ms"), int),
    "MAX_TOKEN_BUDGET": (("healing", "circuit_breaker", "max_token_budget"), int),
    "STATE_DIR": (("healing", "state_dir"), str),
    "LLKB_DIR": (("llkb", "base_dir"), str),
    "LLKB_GLOSSARY": (("llkb", "glossary_path"), str),
    "LESSONS_PATH": (("lessons", "store_path"), str),
}


class ConfigLoader:
    """
    Loads configuration from files (YAML/JSON) and environment variables.
    """

    def __init__(self, env_prefix: str = "AUTOHEAL_"):
        self.env_prefix = env_prefix
        self._logger = logging.getLogger("autoheal.config.loader")

    def load_from_file(self, path: str | Path) -> dict[str, Any]:
        """Load configuration from a YAML or JSON file"""
        file_path = Path(path)

        if not file_path.exists():
            raise ConfigLoadError(config_path=str(path), reason="File does not exist")

        try:
            content = file_path.read_text(encoding="utf-8")

            if file_path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(content) or {}
                if not isinstance(data, dict):
                    raise ConfigLoadError(
                        config_path=str(path), reason="Top level must be a mapping"
                    )
                return data
            elif file_path.suffix.lower() == ".json":
                return dict(json.loads(content))
            else:
                raise ConfigLoadError(
                    config_path=str(path), reason=f"Unsupported file format: {file_path.suffix}"
                )
        except yaml.YAMLError as e:
            raise ConfigLoadError(config_path=str(path), reason=f"YAML error: {e}")
        except json.JSONDecodeError as e:
            raise ConfigLoadError(config_path=str(path), reason=f"JSON error: {e}")
        except OSError as e:
            raise ConfigLoadError(config_path=str(path), reason=str(e))

    def load_from_env(self) -> dict[str, Any]:
        """Load configuration from ``{prefix}*`` environment variables"""
        config: dict[str, Any] = {}

        for suffix, (config_path, kind) in _ENV_MAPPINGS.items():
            env_var = f"{self.env_prefix}{suffix}"
            raw = os.environ.get(env_var)
            if raw is None:
                continue
            self._set_nested(config, config_path, self._coerce(env_var, raw, kind))

        return config

    @staticmethod
    def _coerce(env_var: str, raw: str, kind: type) -> Any:
        if kind is bool:
            return raw.strip().lower() in ("1", "true", "yes", "on")
        if kind is int:
            try:
                return int(raw)
            except ValueError:
                raise InvalidConfigValueError(key=env_var, value=raw, expected_type="int")
        return raw

    def _set_nested(self, config: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
        """Set a value in a nested dictionary path"""
        current = config
        for key in path[:-1]:
            current = current.setdefault(key, {})
        current[path[-1]] = value

    def deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries"""
        result = deepcopy(base)

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self.deep_merge(result[key], value)
            else:
                result[key] = deepcopy(value)

        return result


# =============================================================================
# Convenience Functions
# =============================================================================


def get_default_config() -> AutohealConfig:
    return AutohealConfig()


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "AUTOHEAL_",
) -> AutohealConfig:
    """
    Load configuration from available sources.

    Environment variables override file values.

    Args:
        config_path: Path to a YAML/JSON configuration file (optional)
        env_prefix: Environment variable prefix

    Returns:
        Configuration object
    """
    loader = ConfigLoader(env_prefix=env_prefix)
    data: dict[str, Any] = {}
    if config_path is not None:
        data = loader.load_from_file(config_path)
        loader._logger.debug(f"Loaded configuration from {config_path}")
    data = loader.deep_merge(data, loader.load_from_env())
    return AutohealConfig.from_dict(data)
