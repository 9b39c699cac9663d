"""
Data models for calendar events, bookings and the weekly grid.

Slots are rebuilt on every reconciliation pass and never persisted as-is.
Records coming from the provider or the store are frozen; links between
them are recorded ids, never object references.
"""

from dataclasses import dataclass, field
from datetime import date, datetime


class SlotStatus:
    """Slot status values."""

    UNSPECIFIED = "unspecified"
    AVAILABLE = "available"
    PRIVATE = "private"
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELED = "canceled"


class SyncStatus:
    """Which systems a slot's content is present in."""

    SYNCED = "synced"
    EXTERNAL_ONLY = "external-only"
    INTERNAL_ONLY = "internal-only"


class SourceKind:
    """Origin of a record projected into the grid."""

    EXTERNAL = "external"
    BOOKING = "booking"
    AVAILABILITY = "availability"


class MeetingKind:
    """Meeting kinds recognised from meeting text."""

    REGULAR = "regular"
    INTAKE = "intake"
    SEFT = "seft"


@dataclass(frozen=True)
class SourceRef:
    """Back-reference from a slot to the record projected into it."""

    kind: str
    record_id: str


@dataclass(frozen=True)
class ExternalEvent:
    """Event as received from the external calendar provider."""

    id: str
    start: datetime
    end: datetime
    summary: str = ""
    description: str = ""


@dataclass(frozen=True)
class InternalBooking:
    """Future session stored internally."""

    id: str
    patient_id: str
    scheduled_at: datetime
    meeting_type: str = "In-Person"
    status: str = "Scheduled"
    patient_name: str = ""
    title: str = ""
    # id of the provider event this booking is linked to, if any
    external_event_id: str | None = None


@dataclass(frozen=True)
class AvailabilityEntry:
    """Single-hour availability entry (available or private time)."""

    date: date
    start_time: str  # HH:MM
    status: str
    id: str | None = None
    notes: str = ""
    is_recurring: bool = False


@dataclass(frozen=True)
class RecurringRule:
    """Weekly availability: `count` occurrences of `day` (Sunday=0) from start_date on."""

    day: int
    start_time: str  # HH:MM
    end_time: str  # HH:MM, exclusive
    count: int
    start_date: date


@dataclass(frozen=True)
class Patient:
    id: str
    name: str


@dataclass
class Slot:
    """One (date, hour) cell of the weekly grid."""

    date: date
    hour: str
    status: str = SlotStatus.UNSPECIFIED
    notes: str = ""
    description: str = ""
    sync_status: str = SyncStatus.SYNCED
    source_refs: list[SourceRef] = field(default_factory=list)
    is_meeting: bool = False
    meeting_kind: str | None = None
    is_first_hour: bool = False
    is_last_hour: bool = False
    start_minute: int = 0
    end_minute: int = 60

    @property
    def is_partial(self) -> bool:
        return self.start_minute != 0 or self.end_minute != 60

    def refs_of(self, kind: str) -> list[str]:
        """Record ids of the given source kind referenced by this slot."""
        return [ref.record_id for ref in self.source_refs if ref.kind == kind]


# date -> hour key ("HH:00") -> Slot, both in chronological order
WeekGrid = dict[date, dict[str, Slot]]


@dataclass(frozen=True)
class ConflictCandidate:
    """Same-bucket disagreement between a provider event and an unlinked booking."""

    date: date
    hour: str
    external_event: ExternalEvent
    booking: InternalBooking

    @property
    def key(self) -> tuple[str, str]:
        return (self.external_event.id, self.booking.id)
