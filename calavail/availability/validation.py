"""Validation of submitted availability.

All problems in a submission are collected and reported together in one
``ValidationError``; nothing is persisted when any block is invalid.

Overlapping blocks on the same weekday (or dated blocks whose date ranges
intersect) are rejected rather than merged. Blocks that merely touch, one
ending when the next starts, are accepted.
"""

from __future__ import annotations

from datetime import time
from typing import Dict, List, Tuple

import pytz

from calavail.availability.errors import ValidationError
from calavail.models.constants import WEEKDAYS
from calavail.models.schedule import AvailabilityBlock, TimeRange


def validate_time_zone(time_zone: str) -> str:
    """Exact IANA zone name, as listed by pytz."""
    if not time_zone or time_zone not in pytz.all_timezones_set:
        raise ValidationError("Invalid time zone", [f"timeZone: {time_zone!r} is not a known IANA time zone"])
    return time_zone


def validate_weekly(weekly: List[List[TimeRange]]) -> None:
    if len(weekly) != 7:
        raise ValidationError(
            "Invalid weekly schedule",
            [f"schedule: expected 7 days (Sunday first), got {len(weekly)}"],
        )


def _has_minute_resolution(value: time) -> bool:
    return value.second == 0 and value.microsecond == 0


def _block_problems(block: AvailabilityBlock) -> List[str]:
    problems: List[str] = []
    has_dates = block.start_date is not None or block.end_date is not None

    if block.days is not None and has_dates:
        problems.append("a block is either recurring (days) or dated (startDate/endDate), not both")
    elif block.days is not None:
        if not block.days:
            problems.append("days must not be empty")
        out_of_range = [d for d in block.days if d not in WEEKDAYS]
        if out_of_range:
            problems.append(f"days must be between 0 and 6, got {out_of_range}")
        if len(set(block.days)) != len(block.days):
            problems.append("days must not contain duplicates")
    elif block.start_date is None or block.end_date is None:
        problems.append("a block needs either days or both startDate and endDate")
    elif block.start_date > block.end_date:
        problems.append("startDate must not be after endDate")

    if not (_has_minute_resolution(block.start_time) and _has_minute_resolution(block.end_time)):
        problems.append("times must have minute resolution")
    if block.start_time >= block.end_time:
        problems.append("startTime must be before endTime")
    return problems


def _overlap_problems(blocks: List[Tuple[int, AvailabilityBlock]]) -> List[str]:
    problems: List[str] = []

    by_day: Dict[int, List[Tuple[time, time, int]]] = {}
    dated: List[Tuple[int, AvailabilityBlock]] = []
    for index, block in blocks:
        if block.is_recurring:
            for day in block.days:
                by_day.setdefault(day, []).append((block.start_time, block.end_time, index))
        else:
            dated.append((index, block))

    reported = set()
    for day in sorted(by_day):
        intervals = sorted(by_day[day])
        latest_end, latest_idx = intervals[0][1], intervals[0][2]
        for start, end, idx in intervals[1:]:
            if start < latest_end and (latest_idx, idx) not in reported:
                reported.add((latest_idx, idx))
                problems.append(f"availability[{idx}] overlaps availability[{latest_idx}]")
            if end > latest_end:
                latest_end, latest_idx = end, idx

    for pos, (i, a) in enumerate(dated):
        for j, b in dated[pos + 1:]:
            dates_intersect = a.start_date <= b.end_date and b.start_date <= a.end_date
            times_intersect = a.start_time < b.end_time and b.start_time < a.end_time
            if dates_intersect and times_intersect:
                problems.append(f"availability[{j}] overlaps availability[{i}]")
    return problems


def validate_blocks(blocks: List[AvailabilityBlock]) -> List[AvailabilityBlock]:
    """Check every block invariant; raise ValidationError listing all problems."""
    problems: List[str] = []
    valid: List[Tuple[int, AvailabilityBlock]] = []
    for index, block in enumerate(blocks):
        block_problems = _block_problems(block)
        if block_problems:
            problems.extend(f"availability[{index}]: {p}" for p in block_problems)
        else:
            valid.append((index, block))

    problems.extend(_overlap_problems(valid))
    if problems:
        raise ValidationError("Invalid availability", problems)
    return blocks
