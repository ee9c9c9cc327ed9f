"""
LLKB Context
============

Explicit owner of everything the pattern store reads from disk:

- the synonym glossary (defaults, optionally extended by a YAML file)
- learned patterns (``learned-patterns.json``)
- discovered patterns (``discovered-patterns.json``, read-only here)

Nothing is cached at module level; tests build a context on ``tmp_path``
and two contexts on different directories never see each other's data.

Usage:
    ctx = LlkbContext(".autoheal/llkb", glossary_path="glossary.yaml")
    record_pattern_success("User clicks Save", action, "JRN-0001", ctx)
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from autoheal.storage.atomic import atomic_write_json, load_or_quarantine

from .glossary import DEFAULT_GLOSSARY, Glossary, build_synonym_map, load_glossary, normalize_step_text
from .models import (
    DiscoveredPattern,
    DiscoveredPatternsDocument,
    LearnedPattern,
    LearnedPatternsDocument,
)

logger = logging.getLogger("autoheal.llkb.context")

PATTERNS_FILE = "learned-patterns.json"
DISCOVERED_FILE = "discovered-patterns.json"
EXPORT_FILE = "autogen-patterns.json"


class LlkbContext:
    """
    Pattern store rooted at ``base_dir``.

    ``ensure_loaded()`` is idempotent; writes go through ``save_learned()``
    which persists atomically and keeps the in-memory copy current. Readers
    always get copies, so nothing outside the store can change it in place.
    """

    def __init__(
        self,
        base_dir: Path | str = ".autoheal/llkb",
        glossary_path: Path | str | None = None,
    ) -> None:
        self.base_dir = Path(base_dir)
        self.glossary_path = Path(glossary_path) if glossary_path else None

        self._glossary: Glossary | None = None
        self._synonyms: dict[str, str] = {}
        self._learned: list[LearnedPattern] | None = None
        self._discovered: list[DiscoveredPattern] | None = None
        self._lock = threading.RLock()
        self._logger = logger

    # =========================================================================
    # Paths
    # =========================================================================

    @property
    def patterns_path(self) -> Path:
        return self.base_dir / PATTERNS_FILE

    @property
    def discovered_path(self) -> Path:
        return self.base_dir / DISCOVERED_FILE

    @property
    def export_path(self) -> Path:
        return self.base_dir / EXPORT_FILE

    # =========================================================================
    # Loading
    # =========================================================================

    def ensure_loaded(self) -> None:
        """Load glossary and both pattern files once; later calls are no-ops."""
        with self._lock:
            if self._glossary is None:
                self._glossary = (
                    load_glossary(self.glossary_path) if self.glossary_path else DEFAULT_GLOSSARY
                )
                self._synonyms = build_synonym_map(self._glossary)
            if self._learned is None:
                self._learned = self._load_learned()
            if self._discovered is None:
                self._discovered = self._load_discovered()

    def reload(self) -> None:
        """Drop everything in memory and read it again from disk."""
        with self._lock:
            self._glossary = None
            self._learned = None
            self._discovered = None
            self.ensure_loaded()

    def _load_learned(self) -> list[LearnedPattern]:
        document = load_or_quarantine(self.patterns_path, LearnedPatternsDocument, self._logger)
        return list(document.patterns) if document else []

    def _load_discovered(self) -> list[DiscoveredPattern]:
        document = load_or_quarantine(
            self.discovered_path, DiscoveredPatternsDocument, self._logger
        )
        return list(document.patterns) if document else []

    # =========================================================================
    # Access
    # =========================================================================

    @property
    def glossary(self) -> Glossary:
        self.ensure_loaded()
        assert self._glossary is not None
        return self._glossary

    def normalize(self, text: str) -> str:
        self.ensure_loaded()
        return normalize_step_text(text, self._synonyms)

    def learned_patterns(self) -> list[LearnedPattern]:
        self.ensure_loaded()
        return [p.model_copy(deep=True) for p in self._learned or []]

    def discovered_patterns(self) -> list[DiscoveredPattern]:
        self.ensure_loaded()
        return [p.model_copy(deep=True) for p in self._discovered or []]

    @contextmanager
    def editing(self) -> Iterator[list[LearnedPattern]]:
        """
        Mutate learned patterns under the context lock.

        The yielded list holds copies; it is saved when the block exits
        without raising, and the in-memory store only changes if that save
        succeeds.
        """
        with self._lock:
            patterns = self.learned_patterns()
            yield patterns
            self.save_learned(patterns)

    # =========================================================================
    # Persistence
    # =========================================================================

    def save_learned(self, patterns: list[LearnedPattern]) -> bool:
        document = LearnedPatternsDocument(last_updated=datetime.now(), patterns=patterns)
        with self._lock:
            saved = atomic_write_json(self.patterns_path, document.model_dump(mode="json"))
            if saved:
                self._learned = [p.model_copy(deep=True) for p in patterns]
            else:
                self._logger.error(f"Failed to save learned patterns to {self.patterns_path}")
            return saved

    def clear_learned(self) -> None:
        with self._lock:
            if self.patterns_path.exists():
                self.patterns_path.unlink()
            self._learned = []
