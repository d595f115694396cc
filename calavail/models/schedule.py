"""Schedule and availability block data models for calavail.

A schedule is a named weekly availability definition owned by one user. Its
availability is an ordered list of blocks; each block is either recurring
(applies to a set of weekdays, 0 = Sunday) or a dated exception (applies to
an absolute start/end date range). Times are wall-clock times interpreted in
the schedule's time zone.

Field names serialize in camelCase (``ownerId``, ``timeZone``, ``isDefault``,
``startTime``...) and times serialize as ``HH:MM``.
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel


def _hhmm(value: time) -> str:
    return value.strftime("%H:%M")


class TimeRange(BaseModel):
    """One start/end range in the day-indexed weekly form."""

    start: time
    end: time

    @field_serializer("start", "end")
    def _serialize_time(self, value: time) -> str:
        return _hhmm(value)


class AvailabilityBlock(BaseModel):
    """One contiguous bookable interval of a schedule.

    Exactly one of ``days`` or ``start_date``/``end_date`` is expected; the
    schedule manager enforces this (and every other block invariant) so that
    violations surface as a single validation error for the whole update.
    """

    days: Optional[List[int]] = Field(None, description="Weekdays the block recurs on (0 = Sunday)")
    start_date: Optional[date] = Field(None, description="First date of a dated exception block")
    end_date: Optional[date] = Field(None, description="Last date (inclusive) of a dated exception block")
    start_time: time = Field(..., description="Block start (minute resolution)")
    end_time: time = Field(..., description="Block end (minute resolution)")
    summary: Optional[str] = Field(None, description="Human readable rendering, filled on read")

    class Config:
        """Pydantic configuration."""
        alias_generator = to_camel
        populate_by_name = True

    @field_serializer("start_time", "end_time")
    def _serialize_time(self, value: time) -> str:
        return _hhmm(value)

    @property
    def is_recurring(self) -> bool:
        return self.days is not None


class Schedule(BaseModel):
    """A named, reusable weekly availability definition."""

    id: Optional[str] = Field(None, description="Schedule id (None for the unsaved fallback template)")
    owner_id: str = Field(..., description="Owning user id")
    name: str = Field(..., description="Display name")
    time_zone: str = Field(..., description="IANA time zone the blocks are interpreted in")
    is_default: bool = Field(False, description="Whether this is the owner's default schedule")
    availability: List[AvailabilityBlock] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        """Pydantic configuration."""
        alias_generator = to_camel
        populate_by_name = True


class ScheduleCreate(BaseModel):
    """Input for creating a schedule."""

    name: str = Field(..., min_length=1)
    time_zone: Optional[str] = None
    availability: Optional[List[AvailabilityBlock]] = None

    class Config:
        """Pydantic configuration."""
        alias_generator = to_camel
        populate_by_name = True

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class ScheduleUpdate(BaseModel):
    """Input for updating a schedule.

    ``availability`` (or the day-indexed ``schedule`` form) is the full
    replacement block list; an empty list means unavailable every day.
    """

    name: Optional[str] = None
    time_zone: Optional[str] = None
    is_default: Optional[bool] = None
    availability: Optional[List[AvailabilityBlock]] = None
    schedule: Optional[List[List[TimeRange]]] = Field(
        None, description="Day-indexed weekly form: seven lists of ranges, index 0 = Sunday"
    )

    class Config:
        """Pydantic configuration."""
        alias_generator = to_camel
        populate_by_name = True
