"""
Weekly time grid construction.
"""

from datetime import date, timedelta

from core.config import (
    DAYS_IN_WEEK,
    GRID_END_HOUR,
    GRID_START_HOUR,
    HOUR_KEY_FORMAT,
    PERIOD_KEY_FORMAT,
    WEEK_START_WEEKDAY,
)
from models.events import Slot, SlotStatus, WeekGrid


def hour_key(hour: int) -> str:
    """Bucket key for an hour of the day, e.g. 9 -> '09:00'."""
    return HOUR_KEY_FORMAT.format(hour)


def grid_hours() -> list[str]:
    """Bucket keys of the configured daily window."""
    return [hour_key(h) for h in range(GRID_START_HOUR, GRID_END_HOUR + 1)]


def week_start(anchor: date) -> date:
    """First day of the week containing anchor."""
    offset = (anchor.weekday() - WEEK_START_WEEKDAY) % DAYS_IN_WEEK
    return anchor - timedelta(days=offset)


def week_dates(anchor: date) -> list[date]:
    """The seven dates of the week containing anchor."""
    start = week_start(anchor)
    return [start + timedelta(days=i) for i in range(DAYS_IN_WEEK)]


def build_empty_week(anchor: date) -> WeekGrid:
    """
    Build the empty grid for the week containing anchor.

    Every date gets one unspecified Slot per hour of the window.
    """
    hours = grid_hours()
    return {
        day: {hour: Slot(date=day, hour=hour, status=SlotStatus.UNSPECIFIED) for hour in hours}
        for day in week_dates(anchor)
    }


def period_key(day: date) -> str:
    """Month cache key for a date, e.g. '2025-03'."""
    return day.strftime(PERIOD_KEY_FORMAT)


def period_window(key: str) -> tuple[date, date]:
    """
    Date range fetched for a month period.

    Runs from the first day of the week containing the 1st of the month to
    the day after the week containing its last day, so any week anchored in
    the month is fully covered. End date is exclusive.
    """
    year, month = (int(part) for part in key.split("-"))
    first = date(year, month, 1)
    if month == 12:
        next_first = date(year + 1, 1, 1)
    else:
        next_first = date(year, month + 1, 1)
    last = next_first - timedelta(days=1)
    return week_start(first), week_start(last) + timedelta(days=DAYS_IN_WEEK)
