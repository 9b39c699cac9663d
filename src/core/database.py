"""
SQLite database operations for the practice calendar.

Every function takes an explicit connection. Instants are stored as UTC ISO
strings so range queries can compare them as text.
"""

import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path

from core.config import DB_PATH

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS patients (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        phone TEXT,
        email TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS future_sessions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        patient_id INTEGER NOT NULL,
        session_date TEXT NOT NULL,
        meeting_type TEXT NOT NULL DEFAULT 'In-Person'
            CHECK(meeting_type IN ('Zoom', 'Phone', 'In-Person')),
        status TEXT NOT NULL DEFAULT 'Scheduled',
        title TEXT,
        external_event_id TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (patient_id) REFERENCES patients(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS calendar_slots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        date TEXT NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        slot_type TEXT NOT NULL CHECK(slot_type IN ('available', 'private')),
        notes TEXT,
        is_recurring INTEGER NOT NULL DEFAULT 0,
        UNIQUE(date, start_time)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS api_requests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_id TEXT UNIQUE NOT NULL,
        timestamp TEXT NOT NULL,
        endpoint TEXT NOT NULL,
        method TEXT NOT NULL,
        client_ip TEXT,
        anchor_date TEXT,
        status_code INTEGER NOT NULL,
        error_code TEXT,
        error_message TEXT,
        processing_time_ms INTEGER NOT NULL,
        conflicts_found INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS api_request_details (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_id TEXT NOT NULL,
        detail_type TEXT NOT NULL CHECK(detail_type IN ('error_detail', 'conflict', 'warning')),
        message TEXT NOT NULL,
        FOREIGN KEY (request_id) REFERENCES api_requests(request_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_future_sessions_date ON future_sessions(session_date)",
    "CREATE INDEX IF NOT EXISTS idx_calendar_slots_date ON calendar_slots(date)",
    "CREATE INDEX IF NOT EXISTS idx_api_requests_timestamp ON api_requests(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_api_requests_status ON api_requests(status_code)",
    "CREATE INDEX IF NOT EXISTS idx_api_request_details_request ON api_request_details(request_id)",
]


def get_connection(path: Path | str = DB_PATH) -> sqlite3.Connection:
    """Get a database connection."""
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Create tables and indexes if they don't exist."""
    cursor = conn.cursor()
    for statement in SCHEMA:
        cursor.execute(statement)
    conn.commit()


def to_db_instant(instant: datetime) -> str:
    if instant.tzinfo is None:
        raise ValueError(f"Instant must be timezone-aware: {instant!r}")
    return instant.astimezone(timezone.utc).isoformat()


def from_db_instant(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# AVAILABILITY
# =============================================================================


def list_availability(conn: sqlite3.Connection, start: date, end: date) -> list[sqlite3.Row]:
    """Availability entries with start <= date < end."""
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT id, date, start_time, end_time, slot_type, notes, is_recurring
        FROM calendar_slots
        WHERE date >= ? AND date < ?
        ORDER BY date, start_time
        """,
        (start.isoformat(), end.isoformat()),
    )
    return cursor.fetchall()


def upsert_availability(
    conn: sqlite3.Connection,
    day: date,
    start_time: str,
    end_time: str,
    slot_type: str,
    notes: str = "",
    is_recurring: bool = False,
) -> int:
    """Insert or replace the entry at (day, start_time) and return its id."""
    cursor = conn.cursor()
    cursor.execute(
        """
        INSERT INTO calendar_slots (date, start_time, end_time, slot_type, notes, is_recurring)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(date, start_time) DO UPDATE SET
            end_time = excluded.end_time,
            slot_type = excluded.slot_type,
            notes = excluded.notes,
            is_recurring = excluded.is_recurring
        """,
        (day.isoformat(), start_time, end_time, slot_type, notes, int(is_recurring)),
    )
    conn.commit()
    cursor.execute(
        "SELECT id FROM calendar_slots WHERE date = ? AND start_time = ?",
        (day.isoformat(), start_time),
    )
    return cursor.fetchone()["id"]


def insert_availability_if_absent(
    conn: sqlite3.Connection,
    entries: list[tuple[date, str, str, str, bool]],
) -> int:
    """Insert (day, start, end, type, recurring) entries, skipping occupied times. Returns rows added."""
    cursor = conn.cursor()
    added = 0
    for day, start_time, end_time, slot_type, is_recurring in entries:
        cursor.execute(
            """
            INSERT OR IGNORE INTO calendar_slots (date, start_time, end_time, slot_type, is_recurring)
            VALUES (?, ?, ?, ?, ?)
            """,
            (day.isoformat(), start_time, end_time, slot_type, int(is_recurring)),
        )
        added += cursor.rowcount
    conn.commit()
    return added


def delete_availability(conn: sqlite3.Connection, day: date, start_time: str) -> bool:
    cursor = conn.cursor()
    cursor.execute(
        "DELETE FROM calendar_slots WHERE date = ? AND start_time = ?",
        (day.isoformat(), start_time),
    )
    conn.commit()
    return cursor.rowcount > 0


# =============================================================================
# PATIENTS
# =============================================================================


def find_patients(conn: sqlite3.Connection, name_fragment: str) -> list[sqlite3.Row]:
    """Patients whose name contains the fragment (case-insensitive for ASCII)."""
    cursor = conn.cursor()
    cursor.execute(
        "SELECT id, name FROM patients WHERE name LIKE ? ORDER BY name",
        (f"%{name_fragment}%",),
    )
    return cursor.fetchall()


def create_patient(conn: sqlite3.Connection, name: str) -> int:
    cursor = conn.cursor()
    cursor.execute("INSERT INTO patients (name) VALUES (?)", (name,))
    conn.commit()
    return cursor.lastrowid


# =============================================================================
# BOOKINGS (future sessions)
# =============================================================================

_BOOKING_SELECT = """
    SELECT s.id, s.patient_id, s.session_date, s.meeting_type, s.status,
           s.title, s.external_event_id, p.name AS patient_name
    FROM future_sessions s
    LEFT JOIN patients p ON p.id = s.patient_id
"""


def list_bookings(conn: sqlite3.Connection, start: datetime, end: datetime) -> list[sqlite3.Row]:
    """Bookings scheduled in [start, end), with the patient's name."""
    cursor = conn.cursor()
    cursor.execute(
        _BOOKING_SELECT + " WHERE s.session_date >= ? AND s.session_date < ? ORDER BY s.session_date",
        (to_db_instant(start), to_db_instant(end)),
    )
    return cursor.fetchall()


def get_booking(conn: sqlite3.Connection, booking_id: int) -> sqlite3.Row | None:
    cursor = conn.cursor()
    cursor.execute(_BOOKING_SELECT + " WHERE s.id = ?", (booking_id,))
    return cursor.fetchone()


def insert_booking(
    conn: sqlite3.Connection,
    scheduled_at: datetime,
    *,
    patient_id: int | None = None,
    new_patient_name: str | None = None,
    meeting_type: str = "In-Person",
    status: str = "Scheduled",
    title: str = "",
    external_event_id: str | None = None,
) -> tuple[int, int]:
    """
    Insert a booking and return (booking_id, patient_id).

    When new_patient_name is given the patient is created in the same
    transaction; nothing is written if either insert fails.
    """
    if (patient_id is None) == (new_patient_name is None):
        raise ValueError("Pass exactly one of patient_id or new_patient_name")

    cursor = conn.cursor()
    try:
        if new_patient_name is not None:
            cursor.execute("INSERT INTO patients (name) VALUES (?)", (new_patient_name,))
            patient_id = cursor.lastrowid
        cursor.execute(
            """
            INSERT INTO future_sessions (
                patient_id, session_date, meeting_type, status, title, external_event_id
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                patient_id,
                to_db_instant(scheduled_at),
                meeting_type,
                status,
                title,
                external_event_id,
            ),
        )
        booking_id = cursor.lastrowid
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    return booking_id, patient_id


def update_booking_time(conn: sqlite3.Connection, booking_id: int, scheduled_at: datetime) -> bool:
    cursor = conn.cursor()
    cursor.execute(
        "UPDATE future_sessions SET session_date = ? WHERE id = ?",
        (to_db_instant(scheduled_at), booking_id),
    )
    conn.commit()
    return cursor.rowcount > 0


def link_booking(conn: sqlite3.Connection, booking_id: int, external_event_id: str | None) -> bool:
    """Record (or clear) the provider event a booking is linked to."""
    cursor = conn.cursor()
    cursor.execute(
        "UPDATE future_sessions SET external_event_id = ? WHERE id = ?",
        (external_event_id, booking_id),
    )
    conn.commit()
    return cursor.rowcount > 0


def delete_booking(conn: sqlite3.Connection, booking_id: int) -> bool:
    cursor = conn.cursor()
    cursor.execute("DELETE FROM future_sessions WHERE id = ?", (booking_id,))
    conn.commit()
    return cursor.rowcount > 0
