"""
Default and recurring weekly availability for the practice.
"""

import logging
from datetime import date, timedelta

from core.config import DAYS_IN_WEEK, DEFAULT_AVAILABILITY_PATTERN, GRID_END_HOUR, GRID_START_HOUR
from core.timegrid import hour_key, week_start
from models.events import AvailabilityEntry, RecurringRule, SlotStatus
from services.store import InternalStore

logger = logging.getLogger(__name__)


def sunday_weekday(day: date) -> int:
    """Weekday number with Sunday=0."""
    return (day.weekday() + 1) % 7


def default_entries(start: date, weeks: int = 4) -> list[AvailabilityEntry]:
    """Entries of the default pattern for `weeks` weeks from the week containing start."""
    first = week_start(start)
    entries = []
    for offset in range(weeks * DAYS_IN_WEEK):
        day = first + timedelta(days=offset)
        weekday = sunday_weekday(day)
        for weekdays, from_hour, to_hour in DEFAULT_AVAILABILITY_PATTERN:
            if weekday not in weekdays:
                continue
            for hour in range(from_hour, to_hour):
                entries.append(
                    AvailabilityEntry(
                        date=day,
                        start_time=hour_key(hour),
                        status=SlotStatus.AVAILABLE,
                        is_recurring=True,
                    )
                )
    return entries


async def apply_default_availability(store: InternalStore, start: date, weeks: int = 4) -> int:
    """Write the default pattern, keeping any entry that already exists. Returns entries added."""
    entries = default_entries(start, weeks)
    added = await store.add_availability_if_absent(entries)
    logger.info(
        "Default availability from %s for %d weeks: %d of %d entries added",
        week_start(start), weeks, added, len(entries),
    )
    return added


def _rule_hours(rule: RecurringRule) -> range:
    try:
        first = int(rule.start_time.split(":", 1)[0])
        last = int(rule.end_time.split(":", 1)[0])
    except ValueError:
        raise ValueError(f"Invalid time range {rule.start_time}-{rule.end_time}") from None
    if not GRID_START_HOUR <= first < last <= GRID_END_HOUR + 1:
        raise ValueError(
            f"Time range {rule.start_time}-{rule.end_time} outside "
            f"{GRID_START_HOUR}:00-{GRID_END_HOUR + 1}:00"
        )
    return range(first, last)


def recurring_entries(rule: RecurringRule) -> list[AvailabilityEntry]:
    """
    Hourly entries for a weekly rule.

    The first occurrence is the rule's weekday in the week of start_date,
    moved a week later when that day is before start_date.
    """
    if not 0 <= rule.day < DAYS_IN_WEEK:
        raise ValueError(f"Day must be 0 (Sunday) to 6 (Saturday), got {rule.day}")
    if rule.count < 1:
        raise ValueError(f"Count must be positive, got {rule.count}")
    hours = _rule_hours(rule)

    first = week_start(rule.start_date) + timedelta(days=rule.day)
    if first < rule.start_date:
        first += timedelta(days=DAYS_IN_WEEK)

    entries = []
    for occurrence in range(rule.count):
        day = first + timedelta(weeks=occurrence)
        for hour in hours:
            entries.append(
                AvailabilityEntry(
                    date=day,
                    start_time=hour_key(hour),
                    status=SlotStatus.AVAILABLE,
                    is_recurring=True,
                )
            )
    return entries


async def apply_recurring_availability(store: InternalStore, rule: RecurringRule) -> int:
    """Write a weekly rule, keeping any entry that already exists. Returns entries added."""
    entries = recurring_entries(rule)
    added = await store.add_availability_if_absent(entries)
    logger.info(
        "Recurring availability for day %d %s-%s from %s x%d: %d of %d entries added",
        rule.day, rule.start_time, rule.end_time, rule.start_date, rule.count,
        added, len(entries),
    )
    return added
