"""
Pytest configuration and shared fixtures.
"""

import itertools
import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from core.config import TIMEZONE
from core.database import get_connection, init_schema
from core.errors import AuthExpired
from models.events import ExternalEvent, InternalBooking
from models.sync import AccessToken
from services.calendar import CalendarProvider
from services.store import InternalStore
from services.sync_session import SyncSessionManager


def at(year: int, month: int, day: int, hour: int, minute: int = 0) -> datetime:
    """Aware datetime in the operating timezone."""
    return datetime(year, month, day, hour, minute, tzinfo=TIMEZONE)


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider(CalendarProvider):
    """In-memory calendar provider recording every call."""

    def __init__(self, clock: FakeClock, events=()):
        self.clock = clock
        self.events: dict[str, ExternalEvent] = {e.id: e for e in events}
        self.calls: list[tuple] = []
        # operation -> queue of exceptions, raised one per call
        self.failures: dict[str, list[Exception]] = {}
        self.accept_credentials = True
        self.token_lifetime = 3600.0
        self.gate = None  # asyncio.Event holding list_events until set
        self._ids = itertools.count(1)

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    def fail(self, operation: str, *errors: Exception) -> None:
        self.failures.setdefault(operation, []).extend(errors)

    def _maybe_fail(self, operation: str) -> None:
        queue = self.failures.get(operation)
        if queue:
            raise queue.pop(0)

    async def acquire_token(self, force: bool = False) -> AccessToken:
        self.calls.append(("acquire_token", force))
        self._maybe_fail("acquire_token")
        if not self.accept_credentials:
            raise AuthExpired("Credentials rejected", operation="refresh")
        return AccessToken(token="token", expires_at=self.clock() + self.token_lifetime)

    async def list_events(self, time_min, time_max):
        self.calls.append(("list_events", time_min, time_max))
        if self.gate is not None:
            await self.gate.wait()
        self._maybe_fail("list_events")
        return [
            e for e in self.events.values() if e.start < time_max and e.end > time_min
        ]

    async def create_event(self, summary, start, end, description=""):
        self.calls.append(("create_event", summary, start, end, description))
        self._maybe_fail("create_event")
        event_id = f"new-{next(self._ids)}"
        self.events[event_id] = ExternalEvent(event_id, start, end, summary, description)
        return event_id

    async def update_event(self, event_id, summary, start, end, description=""):
        self.calls.append(("update_event", event_id, summary, start, end, description))
        self._maybe_fail("update_event")
        self.events[event_id] = ExternalEvent(event_id, start, end, summary, description)

    async def delete_event(self, event_id):
        self.calls.append(("delete_event", event_id))
        self._maybe_fail("delete_event")
        return self.events.pop(event_id, None) is not None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider(clock):
    return FakeProvider(clock)


@pytest.fixture
def session(provider, clock):
    """Session manager on the fake provider, not yet signed in."""
    return SyncSessionManager(
        provider, clock=clock, cooldown_seconds=30, refresh_interval=2700
    )


@pytest.fixture
def db_path(tmp_path):
    """Temporary SQLite database with the schema applied."""
    path = tmp_path / "calendar.db"
    conn = get_connection(path)
    try:
        init_schema(conn)
    finally:
        conn.close()
    return path


@pytest.fixture
def store(db_path):
    return InternalStore(db_path)


@pytest.fixture
def meeting_event():
    """Provider meeting on Monday 2025-03-10 at 11:00."""
    return ExternalEvent(
        id="evt-1",
        start=at(2025, 3, 10, 11),
        end=at(2025, 3, 10, 12),
        summary="פגישה עם רונית",
        description="",
    )


@pytest.fixture
def unlinked_booking():
    """Booking for a different patient at the same instant as meeting_event."""
    return InternalBooking(
        id="17",
        patient_id="3",
        scheduled_at=at(2025, 3, 10, 11),
        patient_name="מיכל",
    )
