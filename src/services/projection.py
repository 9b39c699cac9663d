"""
Projection of provider events, bookings and availability onto the weekly grid.

Events are discretized into hour buckets in the operating timezone. Patient
meetings always occupy the canonical meeting duration, whatever end time
their source declares. Buckets outside the grid are dropped silently.
"""

import logging
from collections.abc import Container
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from core.config import MEETING_DURATION_MINUTES, TIMEZONE
from core.meetings import classify_meeting, is_patient_meeting, meeting_summary, meeting_type_label
from core.timegrid import hour_key
from models.events import (
    AvailabilityEntry,
    ExternalEvent,
    InternalBooking,
    MeetingKind,
    Slot,
    SlotStatus,
    SourceKind,
    SourceRef,
    SyncStatus,
    WeekGrid,
)

logger = logging.getLogger(__name__)

UNKNOWN_PATIENT = "לקוח לא ידוע"

# Booking status (as stored) -> slot status
BOOKING_STATUS_MAP = {
    "scheduled": SlotStatus.BOOKED,
    "completed": SlotStatus.COMPLETED,
    "canceled": SlotStatus.CANCELED,
    "cancelled": SlotStatus.CANCELED,
}


@dataclass(frozen=True)
class Placement:
    """One hour bucket touched by an event, with partial-hour metadata."""

    date: date
    hour: str
    is_first_hour: bool = False
    is_last_hour: bool = False
    start_minute: int = 0
    end_minute: int = 60


def to_local(instant: datetime, tz: ZoneInfo = TIMEZONE) -> datetime:
    """Naive wall-clock time of an instant in the operating timezone."""
    if instant.tzinfo is None:
        raise ValueError(f"Instant must be timezone-aware: {instant!r}")
    return instant.astimezone(tz).replace(tzinfo=None)


def effective_end(start: datetime, end: datetime, is_meeting: bool) -> datetime:
    """End instant used for placement; meetings get the canonical duration."""
    if is_meeting:
        return start + timedelta(minutes=MEETING_DURATION_MINUTES)
    return end


def placements(
    start: datetime, end: datetime, *, is_meeting: bool = False, tz: ZoneInfo = TIMEZONE
) -> list[Placement]:
    """
    Hour buckets covered by [start, end).

    The bucket holding the end is excluded when the end falls exactly on
    the hour. An event with no duration still occupies its start bucket.
    """
    local_start = to_local(start, tz)
    local_end = to_local(effective_end(start, end, is_meeting), tz)

    buckets = []
    bucket = local_start.replace(minute=0, second=0, microsecond=0)
    while True:
        buckets.append(bucket)
        bucket += timedelta(hours=1)
        if bucket >= local_end:
            break

    result = []
    last_index = len(buckets) - 1
    for index, bucket in enumerate(buckets):
        first = index == 0 and local_start.minute != 0
        last = index == last_index and local_end.minute != 0 and local_end > bucket
        result.append(
            Placement(
                date=bucket.date(),
                hour=hour_key(bucket.hour),
                is_first_hour=first,
                is_last_hour=last,
                start_minute=local_start.minute if first else 0,
                end_minute=local_end.minute if last else 60,
            )
        )
    return result


def _slot_at(grid: WeekGrid, day: date, hour: str) -> Slot | None:
    day_map = grid.get(day)
    if day_map is None:
        return None
    return day_map.get(hour)


def _add_ref(slot: Slot, ref: SourceRef) -> None:
    if ref not in slot.source_refs:
        slot.source_refs.append(ref)


def _write(
    slot: Slot,
    placement: Placement,
    *,
    status: str,
    notes: str,
    description: str,
    sync_status: str,
    ref: SourceRef,
    is_meeting: bool,
    meeting_kind: str | None,
) -> None:
    slot.status = status
    slot.notes = notes
    slot.description = description
    slot.sync_status = sync_status
    slot.is_meeting = is_meeting
    slot.meeting_kind = meeting_kind
    slot.is_first_hour = placement.is_first_hour
    slot.is_last_hour = placement.is_last_hour
    slot.start_minute = placement.start_minute
    slot.end_minute = placement.end_minute
    _add_ref(slot, ref)


def event_placements(event: ExternalEvent) -> list[Placement]:
    return placements(event.start, event.end, is_meeting=is_patient_meeting(event.summary))


def booking_placements(booking: InternalBooking) -> list[Placement]:
    # Bookings are patient meetings by origin
    return placements(booking.scheduled_at, booking.scheduled_at, is_meeting=True)


def project_external_event(
    grid: WeekGrid, event: ExternalEvent, *, sync_status: str = SyncStatus.SYNCED
) -> WeekGrid:
    """Write a provider event into every grid bucket it touches."""
    meeting = is_patient_meeting(event.summary)
    kind = classify_meeting(event.summary)
    ref = SourceRef(SourceKind.EXTERNAL, event.id)
    for placement in event_placements(event):
        slot = _slot_at(grid, placement.date, placement.hour)
        if slot is None:
            continue
        _write(
            slot,
            placement,
            status=SlotStatus.BOOKED,
            notes=event.summary,
            description=event.description,
            sync_status=sync_status,
            ref=ref,
            is_meeting=meeting,
            meeting_kind=kind,
        )
    return grid


def project_booking(
    grid: WeekGrid,
    booking: InternalBooking,
    *,
    sync_status: str = SyncStatus.SYNCED,
    reference_only: Container[tuple[date, str]] = (),
) -> WeekGrid:
    """
    Write a booking into every grid bucket it touches.

    Buckets listed in reference_only keep their visual fields and only gain
    the booking's back-reference.
    """
    name = booking.patient_name or UNKNOWN_PATIENT
    notes = meeting_summary(name)
    description = f"פגישה {meeting_type_label(booking.meeting_type)} עם {name}"
    status = BOOKING_STATUS_MAP.get((booking.status or "").lower(), SlotStatus.BOOKED)
    kind = classify_meeting(f"{notes} {booking.title}") or MeetingKind.REGULAR
    ref = SourceRef(SourceKind.BOOKING, booking.id)
    for placement in booking_placements(booking):
        slot = _slot_at(grid, placement.date, placement.hour)
        if slot is None:
            continue
        if (placement.date, placement.hour) in reference_only:
            _add_ref(slot, ref)
            continue
        _write(
            slot,
            placement,
            status=status,
            notes=notes,
            description=description,
            sync_status=sync_status,
            ref=ref,
            is_meeting=True,
            meeting_kind=kind,
        )
    return grid


def project_availability(grid: WeekGrid, entry: AvailabilityEntry) -> WeekGrid:
    """Mark an availability entry's bucket, only if nothing else claimed it."""
    slot = _slot_at(grid, entry.date, hour_key(int(entry.start_time[:2])))
    if slot is None or slot.status != SlotStatus.UNSPECIFIED:
        return grid
    slot.status = entry.status
    slot.notes = entry.notes or ""
    slot.sync_status = SyncStatus.SYNCED
    _add_ref(slot, SourceRef(SourceKind.AVAILABILITY, entry.id or f"{entry.date}T{entry.start_time}"))
    return grid


def project(grid: WeekGrid, source, *, sync_status: str = SyncStatus.SYNCED) -> WeekGrid:
    """Project any supported source record onto the grid."""
    if isinstance(source, ExternalEvent):
        return project_external_event(grid, source, sync_status=sync_status)
    if isinstance(source, InternalBooking):
        return project_booking(grid, source, sync_status=sync_status)
    if isinstance(source, AvailabilityEntry):
        return project_availability(grid, source)
    raise TypeError(f"Cannot project {type(source).__name__}")
