"""
Atomic Write Operations
=======================

Implements atomic file writes to prevent data corruption of heal logs,
refinement snapshots and the LLKB stores.

Pattern:
1. Write to temporary file {name}.tmp
2. Flush and sync to disk
3. Atomic rename to final path

Corrupt documents are never silently discarded: ``backup_corrupt_file``
moves them aside under a timestamped name before a fresh default is used.
"""

import json
import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from autoheal.core.exceptions import CorruptStateError

logger = logging.getLogger("autoheal.storage.atomic")

T = TypeVar("T", bound=BaseModel)

CORRUPT_SUFFIX = ".corrupt"


def atomic_write(
    path: Path | str,
    content: str | bytes,
    encoding: str = "utf-8",
    sync: bool = True,
) -> bool:
    """
    Write content to file atomically.

    Args:
        path: Target file path
        content: Content to write (string or bytes)
        encoding: Encoding for string content
        sync: Whether to sync to disk (fsync)

    Returns:
        True if successful
    """
    path = Path(path)
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)

        mode = "wb" if isinstance(content, bytes) else "w"
        kwargs: dict[str, Any] = {} if isinstance(content, bytes) else {"encoding": encoding}
        with open(os.fspath(tmp_path), mode, **kwargs) as f:
            f.write(content)
            if sync:
                f.flush()
                os.fsync(f.fileno())

        tmp_path.replace(path)

        return True

    except OSError as e:
        logger.error(f"Atomic write failed for {path}: {e}")

        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass

        return False


def atomic_write_json(path: Path | str, data: Any) -> bool:
    """Serialize ``data`` as indented JSON and write it atomically."""
    content = json.dumps(data, ensure_ascii=False, indent=2, default=str)
    return atomic_write(path, content)


def backup_corrupt_file(path: Path | str) -> Path | None:
    """
    Move a corrupt file aside with a timestamped suffix.

    ``state.json`` becomes ``state.json.corrupt-20260217_103000``.

    Returns:
        The backup path, or None if the file could not be moved
    """
    path = Path(path)
    if not path.exists():
        return None

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_path = path.with_name(f"{path.name}{CORRUPT_SUFFIX}-{timestamp}")
    counter = 1
    while backup_path.exists():
        backup_path = path.with_name(f"{path.name}{CORRUPT_SUFFIX}-{timestamp}-{counter}")
        counter += 1

    try:
        shutil.move(os.fspath(path), os.fspath(backup_path))
        return backup_path
    except OSError as e:
        logger.error(f"Failed to back up corrupt file {path}: {e}")
        return None


def read_json_document(path: Path | str) -> Any:
    """
    Read a JSON document.

    Raises:
        CorruptStateError: the file exists but does not hold valid JSON
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CorruptStateError(str(path), f"invalid JSON: {e}", cause=e)


def read_model(path: Path | str, model_class: type[T]) -> T:
    """
    Read and validate a pydantic model from a JSON file.

    Raises:
        CorruptStateError: invalid JSON or schema mismatch
    """
    data = read_json_document(path)
    try:
        return model_class.model_validate(data)
    except ValidationError as e:
        raise CorruptStateError(str(path), f"schema mismatch: {e.error_count()} error(s)", cause=e)


def load_or_quarantine(
    path: Path | str,
    model_class: type[T],
    log: logging.Logger | None = None,
) -> T | None:
    """
    Load a validated document, backing it up if corrupt.

    Returns None when the file is missing or was corrupt; in the corrupt case
    the original is preserved under a ``.corrupt-<timestamp>`` name and a
    warning is logged.
    """
    path = Path(path)
    log = log or logger
    if not path.exists():
        return None

    try:
        return read_model(path, model_class)
    except CorruptStateError as e:
        backup = backup_corrupt_file(path)
        log.warning(
            f"{e.message} ({e.details.get('reason')}); "
            f"backed up to {backup}, starting from defaults"
        )
        return None
