"""Reading and writing the per-user YAML files of a Daybook workspace.

Settings live in ``users/<user_id>/settings.yaml`` as a flat mapping. Every
other collection lives in ``users/<user_id>/<name>.yaml`` as a single list
under its own name, e.g. ``{"meetings": [...]}``. A missing or empty file
reads as no settings or an empty collection. Writes replace the whole file
atomically so a concurrent pass never sees half a collection.
"""

from __future__ import annotations

import fcntl
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml


def read_yaml(path: Path) -> dict[str, Any]:
    """Top-level mapping of a workspace file; {} when missing, empty or not a mapping."""
    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    result = yaml.safe_load(text)
    return result if isinstance(result, dict) else {}


def read_collection(path: Path, name: str) -> list[dict[str, Any]]:
    """Entries stored under *name*. Entries that are not mappings are dropped."""
    entries = read_yaml(path).get(name) or []
    return [d for d in entries if isinstance(d, dict)]


def _atomic_write(path: Path, content: str) -> None:
    # Temp file in the user's directory, locked while written, then renamed over.
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_", suffix=".yaml")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        os.rename(temp_path, path)
    except Exception:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


def write_yaml_atomic(path: Path, data: dict[str, Any]) -> None:
    """Replace a settings or collection file, keeping field order as given."""
    content = yaml.dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)
    _atomic_write(path, content)


def write_collection(path: Path, name: str, items: list[dict[str, Any]]) -> None:
    write_yaml_atomic(path, {name: items})
