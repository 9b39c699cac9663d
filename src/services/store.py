"""
Internal store: async access to availability, bookings and patients.

Each call opens its own SQLite connection in a worker thread, so calls
never share a connection across threads.
"""

import asyncio
import logging
import sqlite3
from datetime import date, datetime
from pathlib import Path

from core import database
from core.config import DB_PATH, DEFAULT_BOOKING_STATUS, DEFAULT_MEETING_TYPE, HOUR_KEY_FORMAT
from core.errors import StoreReadFailed, StoreWriteFailed
from models.events import AvailabilityEntry, InternalBooking, Patient, SlotStatus

logger = logging.getLogger(__name__)

AVAILABILITY_STATUSES = (SlotStatus.AVAILABLE, SlotStatus.PRIVATE)


def _booking_from_row(row: sqlite3.Row) -> InternalBooking:
    return InternalBooking(
        id=str(row["id"]),
        patient_id=str(row["patient_id"]),
        scheduled_at=database.from_db_instant(row["session_date"]),
        meeting_type=row["meeting_type"] or DEFAULT_MEETING_TYPE,
        status=row["status"] or DEFAULT_BOOKING_STATUS,
        patient_name=row["patient_name"] or "",
        title=row["title"] or "",
        external_event_id=row["external_event_id"],
    )


def _availability_from_row(row: sqlite3.Row) -> AvailabilityEntry:
    return AvailabilityEntry(
        date=date.fromisoformat(row["date"]),
        start_time=row["start_time"],
        status=row["slot_type"],
        id=str(row["id"]),
        notes=row["notes"] or "",
        is_recurring=bool(row["is_recurring"]),
    )


def _end_of_hour(start_time: str) -> str:
    return HOUR_KEY_FORMAT.format(int(start_time[:2]) + 1)


class InternalStore:
    """Async facade over core.database."""

    def __init__(self, db_path: Path | str = DB_PATH):
        self.db_path = db_path

    def _run(self, operation: str, write: bool, func, *args, **kwargs):
        conn = None
        try:
            conn = database.get_connection(self.db_path)
            return func(conn, *args, **kwargs)
        except sqlite3.Error as e:
            logger.error("Internal store %s failed: %s", operation, e)
            error_class = StoreWriteFailed if write else StoreReadFailed
            raise error_class(f"Internal store {operation} failed: {e}", operation=operation) from e
        finally:
            if conn is not None:
                conn.close()

    async def _read(self, operation: str, func, *args, **kwargs):
        return await asyncio.to_thread(self._run, operation, False, func, *args, **kwargs)

    async def _write(self, operation: str, func, *args, **kwargs):
        return await asyncio.to_thread(self._run, operation, True, func, *args, **kwargs)

    async def ping(self) -> bool:
        await self._read("ping", lambda conn: conn.execute("SELECT 1").fetchone())
        return True

    # Availability

    async def list_availability(self, start: date, end: date) -> list[AvailabilityEntry]:
        rows = await self._read("list_availability", database.list_availability, start, end)
        return [_availability_from_row(row) for row in rows]

    async def upsert_availability(self, entry: AvailabilityEntry) -> str:
        if entry.status not in AVAILABILITY_STATUSES:
            raise ValueError(f"Availability status must be one of {AVAILABILITY_STATUSES}")
        entry_id = await self._write(
            "upsert_availability",
            database.upsert_availability,
            entry.date,
            entry.start_time,
            _end_of_hour(entry.start_time),
            entry.status,
            entry.notes,
            entry.is_recurring,
        )
        return str(entry_id)

    async def add_availability_if_absent(self, entries: list[AvailabilityEntry]) -> int:
        """Insert entries whose time is still free; returns how many were added."""
        rows = [
            (e.date, e.start_time, _end_of_hour(e.start_time), e.status, e.is_recurring)
            for e in entries
        ]
        return await self._write("add_availability", database.insert_availability_if_absent, rows)

    async def delete_availability(self, day: date, start_time: str) -> bool:
        return await self._write(
            "delete_availability", database.delete_availability, day, start_time
        )

    # Patients

    async def find_patients(self, name_fragment: str) -> list[Patient]:
        rows = await self._read("find_patients", database.find_patients, name_fragment)
        return [Patient(id=str(row["id"]), name=row["name"]) for row in rows]

    async def create_patient(self, name: str) -> Patient:
        patient_id = await self._write("create_patient", database.create_patient, name)
        return Patient(id=str(patient_id), name=name)

    # Bookings

    async def list_bookings(self, start: datetime, end: datetime) -> list[InternalBooking]:
        rows = await self._read("list_bookings", database.list_bookings, start, end)
        return [_booking_from_row(row) for row in rows]

    async def get_booking(self, booking_id: str) -> InternalBooking | None:
        row = await self._read("get_booking", database.get_booking, int(booking_id))
        return _booking_from_row(row) if row is not None else None

    async def insert_booking(
        self,
        scheduled_at: datetime,
        *,
        patient_id: str | None = None,
        new_patient_name: str | None = None,
        meeting_type: str = DEFAULT_MEETING_TYPE,
        status: str = DEFAULT_BOOKING_STATUS,
        title: str = "",
        external_event_id: str | None = None,
    ) -> InternalBooking:
        """Insert a booking, creating the patient in the same transaction when named."""
        booking_id, stored_patient_id = await self._write(
            "insert_booking",
            database.insert_booking,
            scheduled_at,
            patient_id=int(patient_id) if patient_id is not None else None,
            new_patient_name=new_patient_name,
            meeting_type=meeting_type,
            status=status,
            title=title,
            external_event_id=external_event_id,
        )
        logger.info("Inserted booking %s at %s", booking_id, scheduled_at)
        return InternalBooking(
            id=str(booking_id),
            patient_id=str(stored_patient_id),
            scheduled_at=scheduled_at,
            meeting_type=meeting_type,
            status=status,
            patient_name=new_patient_name or "",
            title=title,
            external_event_id=external_event_id,
        )

    async def update_booking_time(self, booking_id: str, scheduled_at: datetime) -> bool:
        return await self._write(
            "update_booking", database.update_booking_time, int(booking_id), scheduled_at
        )

    async def link_booking(self, booking_id: str, external_event_id: str | None) -> bool:
        return await self._write(
            "link_booking", database.link_booking, int(booking_id), external_event_id
        )

    async def delete_booking(self, booking_id: str) -> bool:
        return await self._write("delete_booking", database.delete_booking, int(booking_id))
