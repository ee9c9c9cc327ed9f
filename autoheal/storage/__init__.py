from .atomic import (
    atomic_write,
    atomic_write_json,
    backup_corrupt_file,
    load_or_quarantine,
    read_json_document,
    read_model,
)

__all__ = [
    "atomic_write",
    "atomic_write_json",
    "backup_corrupt_file",
    "load_or_quarantine",
    "read_json_document",
    "read_model",
]
