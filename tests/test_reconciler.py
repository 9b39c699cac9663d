"""Tests for merging provider events and bookings into one week."""

from dataclasses import replace
from datetime import date

from conftest import at
from models.events import AvailabilityEntry, ExternalEvent, InternalBooking, SlotStatus, SourceKind, SyncStatus
from services.reconciler import compare_sources, reconcile

MONDAY = date(2025, 3, 10)


def test_unlinked_booking_in_event_bucket_is_a_conflict(meeting_event, unlinked_booking):
    grid, conflicts = reconcile(MONDAY, [meeting_event], [unlinked_booking])

    assert len(conflicts) == 1
    conflict = conflicts[0]
    assert (conflict.date, conflict.hour) == (MONDAY, "11:00")
    assert conflict.external_event is meeting_event
    assert conflict.booking is unlinked_booking

    slot = grid[MONDAY]["11:00"]
    assert slot.notes == "פגישה עם רונית"
    assert slot.sync_status == SyncStatus.EXTERNAL_ONLY
    assert slot.refs_of(SourceKind.EXTERNAL) == ["evt-1"]
    assert slot.refs_of(SourceKind.BOOKING) == ["17"]
    # both are 90-minute meetings, the second bucket stays external too
    assert grid[MONDAY]["12:00"].notes == "פגישה עם רונית"


def test_linked_booking_is_not_a_conflict(meeting_event, unlinked_booking):
    linked = replace(unlinked_booking, external_event_id="evt-1")

    grid, conflicts = reconcile(MONDAY, [meeting_event], [linked])

    assert conflicts == []
    slot = grid[MONDAY]["11:00"]
    assert slot.sync_status == SyncStatus.SYNCED
    assert slot.refs_of(SourceKind.EXTERNAL) == ["evt-1"]
    assert slot.refs_of(SourceKind.BOOKING) == ["17"]


def test_booking_without_events_is_internal_only(unlinked_booking):
    grid, conflicts = reconcile(MONDAY, [], [unlinked_booking])

    assert conflicts == []
    slot = grid[MONDAY]["11:00"]
    assert slot.status == SlotStatus.BOOKED
    assert slot.notes == "פגישה עם מיכל"
    assert slot.sync_status == SyncStatus.INTERNAL_ONLY


def test_link_to_missing_event_is_internal_only(unlinked_booking):
    linked = replace(unlinked_booking, external_event_id="gone")

    grid, _ = reconcile(MONDAY, [], [linked])

    assert grid[MONDAY]["11:00"].sync_status == SyncStatus.INTERNAL_ONLY


def test_partial_overlap_is_reported_once_at_first_shared_bucket(unlinked_booking):
    event = ExternalEvent("evt-2", at(2025, 3, 10, 12), at(2025, 3, 10, 13), "ישיבת צוות")

    grid, conflicts = reconcile(MONDAY, [event], [unlinked_booking])

    assert len(conflicts) == 1
    assert conflicts[0].hour == "12:00"
    assert grid[MONDAY]["11:00"].notes == "פגישה עם מיכל"
    assert grid[MONDAY]["12:00"].notes == "ישיבת צוות"


def test_one_booking_against_two_events():
    first = ExternalEvent("a", at(2025, 3, 10, 11), at(2025, 3, 10, 12), "ישיבה")
    second = ExternalEvent("b", at(2025, 3, 10, 12), at(2025, 3, 10, 13), "שיחה")
    booking = InternalBooking("1", "1", at(2025, 3, 10, 11), patient_name="דנה")

    _, conflicts = reconcile(MONDAY, [first, second], [booking])

    assert [c.key for c in conflicts] == [("a", "1"), ("b", "1")]


def test_availability_never_overrides(meeting_event):
    availability = [
        AvailabilityEntry(MONDAY, "11:00", SlotStatus.AVAILABLE, id="1"),
        AvailabilityEntry(MONDAY, "15:00", SlotStatus.AVAILABLE, id="2"),
    ]

    grid, _ = reconcile(MONDAY, [meeting_event], [], availability)

    assert grid[MONDAY]["11:00"].status == SlotStatus.BOOKED
    assert grid[MONDAY]["15:00"].status == SlotStatus.AVAILABLE
    assert grid[MONDAY]["15:00"].sync_status == SyncStatus.SYNCED


def test_unlinked_event_is_external_only(meeting_event):
    grid, _ = reconcile(MONDAY, [meeting_event], [])

    assert grid[MONDAY]["11:00"].sync_status == SyncStatus.EXTERNAL_ONLY


def test_reconcile_is_deterministic(meeting_event, unlinked_booking):
    first = reconcile(MONDAY, [meeting_event], [unlinked_booking])
    second = reconcile(MONDAY, [meeting_event], [unlinked_booking])

    assert first.grid == second.grid
    assert first.conflicts == second.conflicts


def test_compare_sources(meeting_event, unlinked_booking):
    lone_event = ExternalEvent("evt-3", at(2025, 3, 11, 9), at(2025, 3, 11, 10), "ישיבה")
    lone_booking = InternalBooking("20", "4", at(2025, 3, 12, 18), patient_name="דנה")

    result = compare_sources([meeting_event, lone_event], [unlinked_booking, lone_booking])

    assert result["matching"] == [(meeting_event, unlinked_booking)]
    assert result["only_external"] == [lone_event]
    assert result["only_internal"] == [lone_booking]
