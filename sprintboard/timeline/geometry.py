"""Date ↔ pixel mapping for the sprint timeline.

All functions are pure. A timeline maps the closed interval
``[range_start, range_end]`` linearly onto ``[0, width]`` pixels.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

DAY = timedelta(days=1)


def date_to_x(date: datetime, range_start: datetime, range_end: datetime, width: float) -> float:
    """Horizontal position of ``date``, clamped to ``[0, width]``.

    A degenerate range (``range_end <= range_start``) has no extent and maps
    everything to 0.
    """
    span = (range_end - range_start).total_seconds()
    if span <= 0:
        return 0.0
    if date <= range_start:
        return 0.0
    if date >= range_end:
        return float(width)
    return (date - range_start).total_seconds() / span * width


def x_to_date(x: float, range_start: datetime, range_end: datetime, width: float) -> datetime:
    """Date at horizontal position ``x``; inverse of ``date_to_x``.

    The fractional position is clamped to ``[0, 1]``. A non-positive width
    returns ``range_start``.
    """
    if width <= 0:
        return range_start
    fraction = max(0.0, min(1.0, x / width))
    return range_start + (range_end - range_start) * fraction


def total_days(range_start: datetime, range_end: datetime) -> float:
    """Length of the range in (fractional) days; never negative."""
    return max(0.0, (range_end - range_start) / DAY)


def day_width(range_start: datetime, range_end: datetime, width: float) -> float:
    """Pixels per day, treating ranges shorter than a day as one day."""
    return width / max(1.0, total_days(range_start, range_end))


@dataclass(frozen=True)
class DayLabel:
    """Header cell for one calendar day of the timeline."""

    date: datetime
    label: str
    is_weekend: bool


def day_labels(range_start: datetime, range_end: datetime) -> list[DayLabel]:
    """One label per day from ``range_start``, covering the whole range."""
    count = math.ceil(total_days(range_start, range_end)) + 1
    labels = []
    for i in range(count):
        day = range_start + i * DAY
        labels.append(DayLabel(
            date=day,
            label=f"{day.day} {day.strftime('%a')}",
            is_weekend=day.weekday() >= 5,
        ))
    return labels


def today_x(now: datetime, range_start: datetime, range_end: datetime, width: float) -> float | None:
    """Position of the "today" marker, or None when now is outside the range."""
    if now < range_start or now > range_end:
        return None
    return date_to_x(now, range_start, range_end, width)
