"""Conversion between the day-indexed weekly form and availability blocks.

The weekly form is a list of seven lists of time ranges (index 0 = Sunday).
Blocks are the stored shape: days sharing an identical range are grouped into
one recurring block.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

from calavail.models.constants import DEFAULT_END_TIME, DEFAULT_START_TIME, DEFAULT_WORKING_DAYS
from calavail.models.schedule import AvailabilityBlock, TimeRange


DEFAULT_SCHEDULE: List[List[TimeRange]] = [
    [TimeRange(start=DEFAULT_START_TIME, end=DEFAULT_END_TIME)] if day in DEFAULT_WORKING_DAYS else []
    for day in range(7)
]


def default_blocks() -> List[AvailabilityBlock]:
    """Monday through Friday, 09:00-17:00. A fresh list on every call."""
    return availability_from_weekly(DEFAULT_SCHEDULE)


def availability_from_weekly(weekly: List[List[TimeRange]]) -> List[AvailabilityBlock]:
    """Group days with identical ranges into recurring blocks.

    Blocks keep the order in which their range first appears, scanning from
    Sunday. A range repeated on the same day goes into a second block.
    """
    blocks: List[AvailabilityBlock] = []
    by_range: Dict[Tuple, List[AvailabilityBlock]] = {}
    for day, ranges in enumerate(weekly):
        for time_range in ranges:
            candidates = by_range.setdefault((time_range.start, time_range.end), [])
            block = next((b for b in candidates if day not in b.days), None)
            if block is None:
                block = AvailabilityBlock(days=[], start_time=time_range.start, end_time=time_range.end)
                candidates.append(block)
                blocks.append(block)
            block.days.append(day)
    return blocks


def weekly_from_availability(blocks: List[AvailabilityBlock]) -> List[List[TimeRange]]:
    """Expand recurring blocks back into the weekly form; dated blocks are skipped."""
    weekly: List[List[TimeRange]] = [[] for _ in range(7)]
    for block in blocks:
        if block.days is None:
            continue
        for day in block.days:
            if 0 <= day < 7:
                weekly[day].append(TimeRange(start=block.start_time, end=block.end_time))
    for ranges in weekly:
        ranges.sort(key=lambda r: (r.start, r.end))
    return weekly
