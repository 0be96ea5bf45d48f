"""Workspace root, timezone, path helpers for Daybook."""

from __future__ import annotations

import os
import re
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from daybook.fileio import read_yaml

_USER_ID_RE = re.compile(r"^[A-Za-z0-9_.@-]+$")

COLLECTIONS = (
    "meetings",
    "habits",
    "habit_overrides",
    "sessions",
    "task_logs",
    "tasks",
    "categories",
    "buffers",
)


def workspace_root() -> Path:
    """Get the workspace root directory (contains users/<user_id>/)."""
    return Path(
        os.environ.get("DAYBOOK_ROOT", str(Path.home() / "daybook"))
    ).expanduser().resolve()


def user_dir(user_id: str, root: Path | None = None) -> Path:
    """Directory holding one user's YAML files."""
    if root is None:
        root = workspace_root()
    if not user_id or user_id in {".", ".."} or not _USER_ID_RE.match(user_id):
        raise ValueError(f"Invalid user id: {user_id!r}")
    return root / "users" / user_id


def get_user_timezone(user_id: str, root: Path | None = None) -> ZoneInfo:
    """Get the user's timezone from settings.yaml, defaulting to UTC."""
    settings = read_yaml(settings_path(user_id, root))
    name = settings.get("timezone") if settings else None
    if name:
        try:
            return ZoneInfo(str(name))
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return ZoneInfo("UTC")


# ── Path helpers ──────────────────────────────────────────────

def settings_path(user_id: str, root: Path | None = None) -> Path:
    return user_dir(user_id, root) / "settings.yaml"


def collection_path(user_id: str, name: str, root: Path | None = None) -> Path:
    if name not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {name}")
    return user_dir(user_id, root) / f"{name}.yaml"
