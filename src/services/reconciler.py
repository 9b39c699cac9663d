"""
Reconciliation of provider events and internal bookings into one weekly grid.

External events are projected first, then bookings, then availability.
Conflict detection runs before precedence is applied, so an unlinked
booking that shares a bucket with a provider event is always reported
instead of being overwritten or hidden.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import date
from typing import NamedTuple

from core.timegrid import build_empty_week
from models.events import (
    AvailabilityEntry,
    ConflictCandidate,
    ExternalEvent,
    InternalBooking,
    SyncStatus,
    WeekGrid,
)
from services.projection import (
    booking_placements,
    event_placements,
    project_availability,
    project_booking,
    project_external_event,
    to_local,
)

logger = logging.getLogger(__name__)


class Reconciliation(NamedTuple):
    grid: WeekGrid
    conflicts: list[ConflictCandidate]


def reconcile(
    anchor: date,
    external_events: Iterable[ExternalEvent],
    bookings: Iterable[InternalBooking],
    availability: Iterable[AvailabilityEntry] = (),
) -> Reconciliation:
    """
    Build the authoritative grid for the week containing anchor.

    Returns the grid and the conflict candidates found, at most one per
    (external event, booking) pair, reported at the first bucket where
    they overlap.
    """
    grid = build_empty_week(anchor)
    external_events = list(external_events)
    bookings = list(bookings)

    linked_ids = {b.external_event_id for b in bookings if b.external_event_id}

    # External layer
    bucket_index: dict[tuple[date, str], list[ExternalEvent]] = defaultdict(list)
    for event in external_events:
        status = SyncStatus.SYNCED if event.id in linked_ids else SyncStatus.EXTERNAL_ONLY
        project_external_event(grid, event, sync_status=status)
        for placement in event_placements(event):
            if placement.date in grid and placement.hour in grid[placement.date]:
                bucket_index[(placement.date, placement.hour)].append(event)

    external_ids = {event.id for event in external_events}

    # Booking layer
    conflicts: list[ConflictCandidate] = []
    for booking in bookings:
        contested: set[tuple[date, str]] = set()
        reported: set[str] = set()
        for placement in booking_placements(booking):
            key = (placement.date, placement.hour)
            rivals = [
                event for event in bucket_index.get(key, [])
                if event.id != booking.external_event_id
            ]
            if not rivals:
                continue
            contested.add(key)
            for event in rivals:
                if event.id in reported:
                    continue
                reported.add(event.id)
                conflicts.append(
                    ConflictCandidate(
                        date=placement.date,
                        hour=placement.hour,
                        external_event=event,
                        booking=booking,
                    )
                )
                logger.info(
                    "Conflict at %s %s: external event %s vs booking %s",
                    placement.date, placement.hour, event.id, booking.id,
                )

        if booking.external_event_id and booking.external_event_id in external_ids:
            status = SyncStatus.SYNCED
        else:
            status = SyncStatus.INTERNAL_ONLY
        project_booking(grid, booking, sync_status=status, reference_only=contested)

    # Availability fills only what is still unspecified
    for entry in availability:
        project_availability(grid, entry)

    return Reconciliation(grid, conflicts)


def compare_sources(
    external_events: Iterable[ExternalEvent], bookings: Iterable[InternalBooking]
) -> dict[str, list]:
    """
    Match provider events and bookings by start minute in the operating timezone.

    Returns matching pairs and the records present on only one side.
    """
    by_start: dict[str, ExternalEvent] = {}
    for event in external_events:
        by_start[to_local(event.start).strftime("%Y-%m-%d_%H:%M")] = event

    booking_by_start: dict[str, InternalBooking] = {}
    for booking in bookings:
        booking_by_start[to_local(booking.scheduled_at).strftime("%Y-%m-%d_%H:%M")] = booking

    matching = []
    only_external = []
    for key, event in by_start.items():
        if key in booking_by_start:
            matching.append((event, booking_by_start[key]))
        else:
            only_external.append(event)
    only_internal = [b for key, b in booking_by_start.items() if key not in by_start]

    return {
        "matching": matching,
        "only_external": only_external,
        "only_internal": only_internal,
    }
