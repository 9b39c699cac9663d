"""Tests for the SQLite-backed internal store."""

from datetime import date

import pytest

from conftest import at
from core.errors import StoreReadFailed, StoreWriteFailed
from models.events import AvailabilityEntry, SlotStatus
from services.store import InternalStore

MONDAY = date(2025, 3, 10)


@pytest.mark.asyncio
async def test_insert_booking_with_new_patient(store):
    booking = await store.insert_booking(
        at(2025, 3, 10, 11), new_patient_name="רונית", meeting_type="Zoom", title="פגישה עם רונית"
    )

    bookings = await store.list_bookings(at(2025, 3, 9, 0), at(2025, 3, 16, 0))

    assert len(bookings) == 1
    stored = bookings[0]
    assert stored.id == booking.id
    assert stored.patient_name == "רונית"
    assert stored.scheduled_at == at(2025, 3, 10, 11)
    assert stored.meeting_type == "Zoom"
    assert stored.status == "Scheduled"
    assert stored.external_event_id is None

    patients = await store.find_patients("רונ")
    assert [p.name for p in patients] == ["רונית"]
    assert patients[0].id == stored.patient_id


@pytest.mark.asyncio
async def test_failed_booking_insert_leaves_no_patient(store):
    with pytest.raises(StoreWriteFailed) as exc_info:
        await store.insert_booking(
            at(2025, 3, 10, 11), new_patient_name="יעל", meeting_type="Carrier pigeon"
        )

    assert exc_info.value.operation == "insert_booking"
    assert exc_info.value.side == "internal"
    assert await store.find_patients("יעל") == []


@pytest.mark.asyncio
async def test_booking_for_existing_patient(store):
    patient = await store.create_patient("דנה כהן")

    booking = await store.insert_booking(at(2025, 3, 11, 9), patient_id=patient.id)
    stored = await store.get_booking(booking.id)

    assert stored.patient_id == patient.id
    assert stored.patient_name == "דנה כהן"


@pytest.mark.asyncio
async def test_list_bookings_range_is_half_open(store):
    await store.insert_booking(at(2025, 3, 9, 0), new_patient_name="א")
    await store.insert_booking(at(2025, 3, 15, 23), new_patient_name="ב")
    await store.insert_booking(at(2025, 3, 16, 0), new_patient_name="ג")

    bookings = await store.list_bookings(at(2025, 3, 9, 0), at(2025, 3, 16, 0))

    assert [b.patient_name for b in bookings] == ["א", "ב"]


@pytest.mark.asyncio
async def test_booking_updates(store):
    booking = await store.insert_booking(at(2025, 3, 10, 11), new_patient_name="מיכל")

    assert await store.update_booking_time(booking.id, at(2025, 3, 10, 15))
    assert await store.link_booking(booking.id, "evt-9")
    stored = await store.get_booking(booking.id)
    assert stored.scheduled_at == at(2025, 3, 10, 15)
    assert stored.external_event_id == "evt-9"

    assert await store.delete_booking(booking.id)
    assert await store.get_booking(booking.id) is None
    assert not await store.delete_booking(booking.id)
    assert not await store.update_booking_time(booking.id, at(2025, 3, 10, 16))
    assert not await store.link_booking(booking.id, "evt-9")


@pytest.mark.asyncio
async def test_availability_upsert_and_delete(store):
    entry_id = await store.upsert_availability(
        AvailabilityEntry(MONDAY, "09:00", SlotStatus.AVAILABLE)
    )
    same_id = await store.upsert_availability(
        AvailabilityEntry(MONDAY, "09:00", SlotStatus.PRIVATE, notes="סידורים")
    )

    entries = await store.list_availability(date(2025, 3, 9), date(2025, 3, 16))

    assert same_id == entry_id
    assert len(entries) == 1
    assert entries[0].status == SlotStatus.PRIVATE
    assert entries[0].notes == "סידורים"

    assert await store.delete_availability(MONDAY, "09:00")
    assert await store.list_availability(date(2025, 3, 9), date(2025, 3, 16)) == []
    assert not await store.delete_availability(MONDAY, "09:00")


@pytest.mark.asyncio
async def test_availability_status_is_validated(store):
    with pytest.raises(ValueError):
        await store.upsert_availability(AvailabilityEntry(MONDAY, "09:00", SlotStatus.BOOKED))


@pytest.mark.asyncio
async def test_add_availability_keeps_existing_entries(store):
    await store.upsert_availability(AvailabilityEntry(MONDAY, "09:00", SlotStatus.PRIVATE))

    added = await store.add_availability_if_absent(
        [
            AvailabilityEntry(MONDAY, "09:00", SlotStatus.AVAILABLE),
            AvailabilityEntry(MONDAY, "10:00", SlotStatus.AVAILABLE),
        ]
    )

    entries = await store.list_availability(MONDAY, date(2025, 3, 11))
    assert added == 1
    assert [(e.start_time, e.status) for e in entries] == [
        ("09:00", SlotStatus.PRIVATE),
        ("10:00", SlotStatus.AVAILABLE),
    ]


@pytest.mark.asyncio
async def test_unreadable_database(tmp_path):
    store = InternalStore(tmp_path)  # a directory, not a database file

    with pytest.raises(StoreReadFailed) as exc_info:
        await store.list_bookings(at(2025, 3, 9, 0), at(2025, 3, 16, 0))

    assert exc_info.value.operation == "list_bookings"
