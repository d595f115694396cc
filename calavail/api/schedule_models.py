"""Request/response models for availability schedule endpoints."""

from typing import List

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from calavail.models.schedule import Schedule, TimeRange


class ScheduleResponse(BaseModel):
    """One schedule plus its day-indexed weekly view (index 0 = Sunday)."""
    schedule: Schedule
    availability: List[List[TimeRange]]
    time_zone: str
    is_default: bool

    class Config:
        """Pydantic configuration."""
        alias_generator = to_camel
        populate_by_name = True


class ScheduleListResponse(BaseModel):
    """Response for listing schedules."""
    schedules: List[Schedule]
    count: int
