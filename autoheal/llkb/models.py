"""
LLKB document models.

``learned-patterns.json``:

    {
        "version": "1.0.0",
        "last_updated": "2026-02-17T10:30:00",
        "patterns": [
            {
                "id": "LPM6X0Q2K1AB3",
                "original_text": "User clicks the 'Save' button",
                "normalized_text": "user click the 'Save' button",
                "mapped_action": {"type": "click", "locator": {...}},
                "confidence": 0.76,
                "source_journeys": ["JRN-0001", "JRN-0004"],
                "success_count": 3,
                "fail_count": 0,
                ...
            }
        ]
    }

Both files are validated on read. Seed entries that only carry an action kind
name (``ir_primitive: "click"``) are expanded into a full action; seed entries
whose kind cannot be mapped are dropped.
"""

import re
import secrets
import string
import time
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from .discovered import build_action

STORE_VERSION = "1.0.0"

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")
_BASE36 = string.digits + string.ascii_lowercase


def _snake_keys(data: Any) -> Any:
    if isinstance(data, dict):
        return {_CAMEL_RE.sub("_", k).lower(): v for k, v in data.items()}
    return data


def _base36(value: int) -> str:
    digits = ""
    while value:
        value, rem = divmod(value, 36)
        digits = _BASE36[rem] + digits
    return digits or "0"


def generate_pattern_id() -> str:
    """``LP`` + base36 millisecond timestamp + four random characters."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"LP{_base36(int(time.time() * 1000))}{suffix}".upper()


class LearnedPattern(BaseModel):
    """A step text -> action mapping learned from successful generation runs"""

    id: str = Field(default_factory=generate_pattern_id)
    original_text: str
    normalized_text: str
    mapped_action: dict[str, Any]
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    source_journeys: list[str] = Field(default_factory=list)
    success_count: int = Field(default=0, ge=0)
    fail_count: int = Field(default=0, ge=0)
    last_used: datetime = Field(default_factory=datetime.now)
    created_at: datetime = Field(default_factory=datetime.now)
    promoted_to_core: bool = False
    promoted_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _migrate(cls, data: Any) -> Any:
        data = _snake_keys(data)
        if isinstance(data, dict) and "mapped_action" not in data:
            if "mapped_primitive" in data:
                data["mapped_action"] = data.pop("mapped_primitive")
            elif isinstance(data.get("ir_primitive"), str):
                data["mapped_action"] = build_action(data.pop("ir_primitive"))
            if "last_updated" in data and "last_used" not in data:
                data["last_used"] = data.pop("last_updated")
        return data

    @field_validator("last_used", "created_at", "promoted_at")
    @classmethod
    def _local_naive(cls, value: datetime | None) -> datetime | None:
        # stores written by other tools carry UTC offsets
        if value is not None and value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value

    @property
    def total_uses(self) -> int:
        return self.success_count + self.fail_count

    @property
    def success_rate(self) -> float:
        return self.success_count / self.total_uses if self.total_uses else 0.0


class LearnedPatternsDocument(BaseModel):
    version: str = STORE_VERSION
    last_updated: datetime = Field(default_factory=datetime.now)
    patterns: list[LearnedPattern] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _drop_unmappable_seeds(cls, data: Any) -> Any:
        data = _snake_keys(data)
        if isinstance(data, dict) and isinstance(data.get("patterns"), list):
            data["patterns"] = [p for p in data["patterns"] if not _is_unmappable_seed(p)]
        return data


def _is_unmappable_seed(entry: Any) -> bool:
    if not isinstance(entry, dict):
        return False
    entry = _snake_keys(entry)
    if "mapped_action" in entry or "mapped_primitive" in entry:
        return False
    kind = entry.get("ir_primitive")
    return isinstance(kind, str) and build_action(kind) is None


class SelectorHint(BaseModel):
    strategy: str
    value: str
    confidence: float | None = None


class DiscoveredPattern(BaseModel):
    """A pattern mined from the application under test"""

    id: str
    normalized_text: str
    original_text: str = ""
    mapped_action: str | dict[str, Any]
    confidence: float = Field(ge=0.0, le=1.0)
    layer: str = "universal"
    category: str | None = None
    selector_hints: list[SelectorHint] = Field(default_factory=list)
    source_journeys: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _migrate(cls, data: Any) -> Any:
        data = _snake_keys(data)
        if isinstance(data, dict) and "mapped_primitive" in data:
            data.setdefault("mapped_action", data.pop("mapped_primitive"))
        return data

    def to_action(self) -> dict[str, Any] | None:
        """Full action; stored kind names are expanded, full actions kept."""
        if isinstance(self.mapped_action, dict):
            return self.mapped_action if isinstance(self.mapped_action.get("type"), str) else None
        hints = [h.model_dump() for h in self.selector_hints]
        return build_action(self.mapped_action, hints)


class DiscoveredPatternsDocument(BaseModel):
    version: str = STORE_VERSION
    patterns: list[DiscoveredPattern] = Field(default_factory=list)
