"""
Step Text Glossary
==================

Synonym table used to normalize journey step text before pattern lookup, so
"Customer tap the Save btn" and "user click the save button" land on the same
learned pattern.

A project glossary (YAML) extends the defaults:

    version: 1
    entries:
      - canonical: click
        synonyms: [smash]
      - canonical: grid
        synonyms: [table, datagrid]
"""

import logging
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger("autoheal.llkb.glossary")


class GlossaryEntry(BaseModel):
    canonical: str
    synonyms: list[str] = Field(default_factory=list)


class Glossary(BaseModel):
    version: int = 1
    entries: list[GlossaryEntry] = Field(default_factory=list)


DEFAULT_GLOSSARY = Glossary(
    version=1,
    entries=[
        GlossaryEntry(canonical="click", synonyms=["press", "tap", "select", "hit"]),
        GlossaryEntry(canonical="enter", synonyms=["type", "fill", "input", "write"]),
        GlossaryEntry(canonical="navigate", synonyms=["go", "open", "visit", "browse"]),
        GlossaryEntry(canonical="see", synonyms=["view", "observe", "notice", "find"]),
        GlossaryEntry(canonical="visible", synonyms=["displayed", "shown", "present"]),
        GlossaryEntry(canonical="button", synonyms=["btn", "action", "cta"]),
        GlossaryEntry(canonical="field", synonyms=["input", "textbox", "text field", "text input"]),
        GlossaryEntry(
            canonical="dropdown",
            synonyms=["select", "combo", "combobox", "selector", "picker"],
        ),
        GlossaryEntry(canonical="checkbox", synonyms=["check", "tick", "toggle"]),
        GlossaryEntry(canonical="login", synonyms=["log in", "sign in", "authenticate"]),
        GlossaryEntry(canonical="logout", synonyms=["log out", "sign out", "exit"]),
        GlossaryEntry(canonical="submit", synonyms=["send", "save", "confirm", "ok"]),
        GlossaryEntry(canonical="cancel", synonyms=["close", "dismiss", "abort", "back"]),
        GlossaryEntry(canonical="success", synonyms=["passed", "completed", "done", "finished"]),
        GlossaryEntry(canonical="error", synonyms=["failure", "failed", "problem", "issue"]),
        GlossaryEntry(
            canonical="toast",
            synonyms=["notification", "message", "alert", "snackbar"],
        ),
        GlossaryEntry(canonical="modal", synonyms=["dialog", "popup", "overlay", "lightbox"]),
        GlossaryEntry(canonical="user", synonyms=["customer", "visitor", "member", "client"]),
        GlossaryEntry(canonical="page", synonyms=["screen", "view", "section"]),
        GlossaryEntry(canonical="form", synonyms=["questionnaire", "survey", "wizard"]),
    ],
)

_TOKEN_RE = re.compile(r"(['\"][^'\"]+['\"])|(\S+)")


def merge_glossaries(base: Glossary, extension: Glossary) -> Glossary:
    """Extension entries add synonyms to matching canonicals or append new ones."""
    merged = base.model_copy(deep=True)
    merged.version = max(base.version, extension.version)

    by_canonical = {entry.canonical.lower(): entry for entry in merged.entries}
    for ext in extension.entries:
        existing = by_canonical.get(ext.canonical.lower())
        if existing is None:
            entry = ext.model_copy(deep=True)
            merged.entries.append(entry)
            by_canonical[entry.canonical.lower()] = entry
        else:
            existing.synonyms = list(dict.fromkeys([*existing.synonyms, *ext.synonyms]))
    return merged


def load_glossary(path: Path | str) -> Glossary:
    """
    Load a YAML glossary and merge it over the defaults.

    A missing or invalid file logs a warning and yields the defaults.
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Glossary file not found at {path}, using defaults")
        return DEFAULT_GLOSSARY

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        extension = Glossary.model_validate(data)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        logger.warning(f"Invalid glossary file at {path}, using defaults: {e}")
        return DEFAULT_GLOSSARY

    return merge_glossaries(DEFAULT_GLOSSARY, extension)


def build_synonym_map(glossary: Glossary) -> dict[str, str]:
    """Lowercased term -> canonical. Later entries win on shared synonyms."""
    synonyms: dict[str, str] = {}
    for entry in glossary.entries:
        synonyms[entry.canonical.lower()] = entry.canonical
        for synonym in entry.synonyms:
            synonyms[synonym.lower()] = entry.canonical
    return synonyms


def normalize_step_text(text: str, synonyms: dict[str, str]) -> str:
    """
    Canonicalize step text word by word.

    Quoted literals are kept verbatim; every other word is lowercased and
    replaced by its canonical term when the glossary has one.
    """
    parts = []
    for match in _TOKEN_RE.finditer(text):
        token = match.group(0)
        if token[0] in "'\"":
            parts.append(token)
        else:
            word = token.lower()
            parts.append(synonyms.get(word, word))
    return " ".join(parts)
