"""Availability schedule manager for calavail."""

from calavail.availability.errors import Conflict, DependencyInUse, NotFound, ScheduleError, ValidationError
from calavail.availability.manager import ScheduleManager
from calavail.availability.summary import availability_as_string
from calavail.availability.validation import validate_blocks, validate_time_zone
from calavail.availability.weekly import DEFAULT_SCHEDULE, availability_from_weekly, default_blocks, weekly_from_availability

__all__ = [
    "Conflict",
    "DependencyInUse",
    "NotFound",
    "ScheduleError",
    "ValidationError",
    "ScheduleManager",
    "availability_as_string",
    "validate_blocks",
    "validate_time_zone",
    "DEFAULT_SCHEDULE",
    "availability_from_weekly",
    "default_blocks",
    "weekly_from_availability",
]
