"""Tests for the default weekly availability pattern."""

from collections import Counter
from datetime import date

import pytest

from models.events import AvailabilityEntry, RecurringRule, SlotStatus
from services.availability import (
    apply_default_availability,
    apply_recurring_availability,
    default_entries,
    recurring_entries,
    sunday_weekday,
)


def test_sunday_weekday():
    assert sunday_weekday(date(2025, 3, 9)) == 0  # Sunday
    assert sunday_weekday(date(2025, 3, 15)) == 6  # Saturday


def test_default_pattern_for_one_week():
    entries = default_entries(date(2025, 3, 12), weeks=1)
    per_day = Counter(entry.date for entry in entries)

    assert len(entries) == 44
    assert per_day[date(2025, 3, 9)] == 10  # Sunday: 08-16 and 21-23
    assert per_day[date(2025, 3, 12)] == 2  # Wednesday: evening only
    assert per_day[date(2025, 3, 14)] == 2  # Friday: 09-11
    assert per_day[date(2025, 3, 15)] == 0  # Saturday
    assert {e.start_time for e in entries if e.date == date(2025, 3, 14)} == {"09:00", "10:00"}
    assert all(e.status == SlotStatus.AVAILABLE and e.is_recurring for e in entries)


@pytest.mark.asyncio
async def test_apply_default_availability_keeps_existing(store):
    await store.upsert_availability(
        AvailabilityEntry(date(2025, 3, 9), "08:00", SlotStatus.PRIVATE, notes="חופש")
    )

    added = await apply_default_availability(store, date(2025, 3, 9), weeks=1)
    again = await apply_default_availability(store, date(2025, 3, 9), weeks=1)

    assert added == 43
    assert again == 0
    entries = await store.list_availability(date(2025, 3, 9), date(2025, 3, 10))
    first = entries[0]
    assert (first.start_time, first.status, first.notes) == ("08:00", SlotStatus.PRIVATE, "חופש")


def test_recurring_rule_starts_next_week_when_day_has_passed():
    # Tuesday evenings, starting on a Wednesday
    rule = RecurringRule(
        day=2, start_time="16:00", end_time="18:00", count=3, start_date=date(2025, 3, 12)
    )

    entries = recurring_entries(rule)

    assert [(e.date, e.start_time) for e in entries] == [
        (date(2025, 3, 18), "16:00"),
        (date(2025, 3, 18), "17:00"),
        (date(2025, 3, 25), "16:00"),
        (date(2025, 3, 25), "17:00"),
        (date(2025, 4, 1), "16:00"),
        (date(2025, 4, 1), "17:00"),
    ]
    assert all(e.status == SlotStatus.AVAILABLE and e.is_recurring for e in entries)


def test_recurring_rule_includes_start_date_on_matching_day():
    rule = RecurringRule(
        day=3, start_time="21:00", end_time="22:00", count=2, start_date=date(2025, 3, 12)
    )

    assert [e.date for e in recurring_entries(rule)] == [date(2025, 3, 12), date(2025, 3, 19)]


@pytest.mark.parametrize(
    "day, start_time, end_time, count",
    [
        (7, "09:00", "10:00", 1),
        (1, "09:00", "10:00", 0),
        (1, "12:00", "12:00", 1),
        (1, "06:00", "09:00", 1),
    ],
)
def test_invalid_recurring_rule(day, start_time, end_time, count):
    rule = RecurringRule(day, start_time, end_time, count, date(2025, 3, 9))

    with pytest.raises(ValueError):
        recurring_entries(rule)


@pytest.mark.asyncio
async def test_apply_recurring_availability_keeps_existing(store):
    await store.upsert_availability(
        AvailabilityEntry(date(2025, 3, 18), "16:00", SlotStatus.PRIVATE, notes="רופא")
    )
    rule = RecurringRule(
        day=2, start_time="16:00", end_time="18:00", count=3, start_date=date(2025, 3, 12)
    )

    added = await apply_recurring_availability(store, rule)
    again = await apply_recurring_availability(store, rule)

    assert added == 5
    assert again == 0
    entries = await store.list_availability(date(2025, 3, 16), date(2025, 4, 6))
    assert len(entries) == 6
    assert (entries[0].start_time, entries[0].status) == ("16:00", SlotStatus.PRIVATE)
