"""Human readable rendering of availability blocks.

``Monday - Friday, 9:00 AM – 5:00 PM``; non-consecutive days are listed as
separate ranges (``Monday, Wednesday - Thursday, ...``) and dated blocks render
their date span (``Dec 24, 2026 - Dec 26, 2026, ...``).
"""

from __future__ import annotations

from datetime import date, time
from typing import Iterable, List

from calavail.models.constants import DAY_NAMES, MONTH_ABBREVIATIONS
from calavail.models.schedule import AvailabilityBlock

TIME_SEPARATOR = " – "


def _consecutive_runs(days: Iterable[int]) -> List[List[int]]:
    runs: List[List[int]] = []
    for day in sorted(set(days)):
        if runs and runs[-1][-1] == day - 1:
            runs[-1].append(day)
        else:
            runs.append([day])
    return runs


def day_span(days: Iterable[int]) -> str:
    parts = []
    for run in _consecutive_runs(days):
        if len(run) == 1:
            parts.append(DAY_NAMES[run[0]])
        else:
            parts.append(f"{DAY_NAMES[run[0]]} - {DAY_NAMES[run[-1]]}")
    return ", ".join(parts)


def date_span(start: date, end: date) -> str:
    if start == end:
        return date_label(start)
    return f"{date_label(start)} - {date_label(end)}"


def date_label(value: date) -> str:
    return f"{MONTH_ABBREVIATIONS[value.month - 1]} {value.day}, {value.year}"


def time_label(value: time) -> str:
    """12-hour clock label, e.g. 9:00 AM, 12:30 PM."""
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def availability_as_string(block: AvailabilityBlock) -> str:
    if block.is_recurring:
        span = day_span(block.days)
    else:
        span = date_span(block.start_date, block.end_date or block.start_date)
    return f"{span}, {time_label(block.start_time)}{TIME_SEPARATOR}{time_label(block.end_time)}"
