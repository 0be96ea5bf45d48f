"""Error taxonomy for Daybook."""

from __future__ import annotations

from typing import Any


class DaybookError(Exception):
    """Base exception for Daybook."""

    def __init__(self, message: str, details: Any | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ConfigurationError(DaybookError):
    """Invalid user settings (work hours, slot granularity)."""


class NotFoundError(DaybookError):
    """Referenced habit, task, meeting, session or category is missing."""


class StaleDataError(DaybookError):
    """A load was applied after the view moved on to another day."""
