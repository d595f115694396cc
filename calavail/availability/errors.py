"""Errors raised by the availability schedule manager.

Each error carries a stable ``code`` so callers can tell kinds apart without
inspecting messages; persistence-layer exceptions never cross this boundary.
"""

from typing import List, Optional


class ScheduleError(Exception):
    """Base class for schedule manager errors."""

    code = "schedule_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ValidationError(ScheduleError):
    """Submitted schedule data is malformed. Never retried automatically."""

    code = "validation_error"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])

    def to_dict(self) -> dict:
        return {**super().to_dict(), "errors": self.errors}


class NotFound(ScheduleError):
    """Unknown schedule id, or a schedule owned by someone else."""

    code = "not_found"


class Conflict(ScheduleError):
    """A concurrent write won the race; the caller may retry the whole operation."""

    code = "conflict"


class DependencyInUse(ScheduleError):
    """The schedule is still referenced by an active booking."""

    code = "dependency_in_use"
