"""
Conflict resolution workflow.

A ConflictResolver is created for one ConflictCandidate and accepts exactly
one successful operation. Failed operations raise and leave the resolver
in the presented state; nothing is ever half-applied across the two
systems. A failed compensation, or an event created after sign-out, is
reported as PartialResolution.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from core.config import GRID_END_HOUR, GRID_START_HOUR, MEETING_DURATION_MINUTES, TIMEZONE
from core.errors import (
    AmbiguousPromotion,
    CalendarSyncError,
    PartialResolution,
    ResolutionStateError,
    SessionClosed,
    Side,
    StoreWriteFailed,
)
from core.meetings import (
    extract_patient_name,
    infer_meeting_type,
    is_patient_meeting,
    meeting_summary,
    meeting_type_label,
)
from models.events import ConflictCandidate, Patient
from services.projection import UNKNOWN_PATIENT, to_local
from services.store import InternalStore
from services.sync_session import SyncSessionManager

logger = logging.getLogger(__name__)

PROMOTED_EVENT_NOTE = "פגישה שהתווספה מלוח הפגישות"


class ResolutionState:
    """Resolver states; every state except PRESENTED is terminal."""

    PRESENTED = "presented"
    RETIMED = "retimed"
    DELETED = "deleted"
    PROMOTED = "promoted"
    DISMISSED = "dismissed"


class ResolutionAction:
    RETIME = "retime"
    DELETE = "delete"
    PROMOTE = "promote"
    DISMISS = "dismiss"


@dataclass(frozen=True)
class ResolutionOutcome:
    """What a successful resolution operation changed."""

    action: str
    state: str
    side: str | None = None
    record_id: str | None = None
    message: str = ""


def parse_hour(value: int | str) -> int:
    """Hour of day from 9, '9' or '09:00', restricted to the grid window."""
    if isinstance(value, str):
        value = value.split(":", 1)[0]
    try:
        hour = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid hour: {value!r}") from None
    if not GRID_START_HOUR <= hour <= GRID_END_HOUR:
        raise ValueError(f"Hour {hour} outside {GRID_START_HOUR}:00-{GRID_END_HOUR}:00")
    return hour


def _check_side(side: str | None) -> str:
    if side not in (Side.INTERNAL, Side.EXTERNAL):
        raise ValueError(f"Side must be '{Side.INTERNAL}' or '{Side.EXTERNAL}', got {side!r}")
    return side


def _at_hour(instant: datetime, hour: int) -> datetime:
    """Same local day as instant, at hour:00 in the operating timezone."""
    day = to_local(instant).date()
    return datetime(day.year, day.month, day.day, hour, tzinfo=TIMEZONE)


def promoted_event_description(meeting_type: str) -> str:
    return f"סוג פגישה: {meeting_type_label(meeting_type)}\n{PROMOTED_EVENT_NOTE}"


class ConflictResolver:
    """Single-use workflow over one external-event / booking pair."""

    def __init__(
        self,
        candidate: ConflictCandidate,
        session: SyncSessionManager,
        store: InternalStore,
    ):
        self.candidate = candidate
        self.session = session
        self.store = store
        self.state = ResolutionState.PRESENTED

    @property
    def is_resolved(self) -> bool:
        return self.state != ResolutionState.PRESENTED

    def _require_presented(self) -> None:
        if self.is_resolved:
            raise ResolutionStateError(
                f"Conflict {self.candidate.key} already resolved ({self.state})"
            )

    def _finish(self, state: str, action: str, side: str | None, record_id=None, message=""):
        self.state = state
        logger.info(
            "Conflict %s resolved: %s %s (%s)", self.candidate.key, action, side or "-", message
        )
        return ResolutionOutcome(
            action=action, state=state, side=side, record_id=record_id, message=message
        )

    # -------------------------------------------------------------------------
    # Retime
    # -------------------------------------------------------------------------

    async def retime(self, side: str, new_hour: int | str) -> ResolutionOutcome:
        """Move one side's record to new_hour on its own day; the other side is untouched."""
        self._require_presented()
        side = _check_side(side)
        hour = parse_hour(new_hour)

        if side == Side.EXTERNAL:
            event = self.candidate.external_event
            start = _at_hour(event.start, hour)
            if is_patient_meeting(event.summary):
                duration = timedelta(minutes=MEETING_DURATION_MINUTES)
            else:
                duration = event.end - event.start
            await self.session.update_event(
                event.id, event.summary, start, start + duration, event.description
            )
            return self._finish(
                ResolutionState.RETIMED, ResolutionAction.RETIME, side, event.id,
                f"event moved to {start.isoformat()}",
            )

        booking = self.candidate.booking
        start = _at_hour(booking.scheduled_at, hour)
        if not await self.store.update_booking_time(booking.id, start):
            raise StoreWriteFailed(f"Booking {booking.id} no longer exists", operation="retime")
        return self._finish(
            ResolutionState.RETIMED, ResolutionAction.RETIME, side, booking.id,
            f"booking moved to {start.isoformat()}",
        )

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    async def delete(self, side: str) -> ResolutionOutcome:
        """Remove one side's record. A record that is already gone counts as deleted."""
        self._require_presented()
        side = _check_side(side)

        if side == Side.EXTERNAL:
            record_id = self.candidate.external_event.id
            existed = await self.session.delete_event(record_id)
        else:
            record_id = self.candidate.booking.id
            existed = await self.store.delete_booking(record_id)

        message = "deleted" if existed else "already gone"
        return self._finish(
            ResolutionState.DELETED, ResolutionAction.DELETE, side, record_id, message
        )

    # -------------------------------------------------------------------------
    # Promote
    # -------------------------------------------------------------------------

    async def promote(self, side: str) -> ResolutionOutcome:
        """
        Copy the record on `side` into the other system, linked to its source.

        Promoting the external event creates a booking; promoting the booking
        creates a provider event of the canonical meeting duration.
        """
        self._require_presented()
        side = _check_side(side)
        if side == Side.EXTERNAL:
            return await self._promote_external()
        return await self._promote_internal()

    async def _select_patient(self, name: str) -> Patient | None:
        """Existing patient for name, or None when a new one should be created."""
        matches = await self.store.find_patients(name)
        if not matches:
            return None
        if len(matches) == 1:
            return matches[0]
        exact = [p for p in matches if p.name.strip().casefold() == name.casefold()]
        if len(exact) == 1:
            return exact[0]
        raise AmbiguousPromotion(
            f"{len(matches)} patients match '{name}'",
            candidates=matches,
            operation="promote",
        )

    async def _promote_external(self) -> ResolutionOutcome:
        event = self.candidate.external_event
        name = extract_patient_name(event.summary)
        if not name:
            raise AmbiguousPromotion(
                f"No patient name found in '{event.summary}'", operation="promote"
            )

        patient = await self._select_patient(name)
        booking = await self.store.insert_booking(
            event.start,
            patient_id=patient.id if patient else None,
            new_patient_name=None if patient else name,
            meeting_type=infer_meeting_type(f"{event.summary} {event.description}"),
            title=event.summary,
            external_event_id=event.id,
        )
        message = f"booking created for {patient.name if patient else name}"
        if patient is None:
            message += " (new patient)"
        return self._finish(
            ResolutionState.PROMOTED, ResolutionAction.PROMOTE, Side.EXTERNAL, booking.id, message
        )

    async def _promote_internal(self) -> ResolutionOutcome:
        booking = self.candidate.booking
        start = booking.scheduled_at
        try:
            event_id = await self.session.create_event(
                meeting_summary(booking.patient_name or UNKNOWN_PATIENT),
                start,
                start + timedelta(minutes=MEETING_DURATION_MINUTES),
                promoted_event_description(booking.meeting_type),
            )
        except SessionClosed as e:
            if e.result is None:
                raise
            # the event exists but the closed session can neither link nor remove it
            logger.error(
                "Event %s created after sign-out, booking %s left unlinked", e.result, booking.id
            )
            raise PartialResolution(
                f"Event {e.result} was created but the session closed before booking "
                f"{booking.id} could be linked",
                applied_side=Side.EXTERNAL,
                failed_side=Side.INTERNAL,
                operation="promote",
            ) from e

        try:
            if not await self.store.link_booking(booking.id, event_id):
                raise StoreWriteFailed(
                    f"Booking {booking.id} no longer exists", operation="promote"
                )
        except StoreWriteFailed as e:
            logger.warning("Linking booking %s failed, removing event %s", booking.id, event_id)
            try:
                await self.session.delete_event(event_id)
            except CalendarSyncError as compensation_error:
                logger.error(
                    "Could not remove event %s after failed link: %s", event_id, compensation_error
                )
                raise PartialResolution(
                    f"Event {event_id} was created but booking {booking.id} could not be "
                    f"linked and the event could not be removed",
                    applied_side=Side.EXTERNAL,
                    failed_side=Side.INTERNAL,
                    operation="promote",
                ) from e
            raise

        return self._finish(
            ResolutionState.PROMOTED, ResolutionAction.PROMOTE, Side.INTERNAL, event_id,
            f"event created for booking {booking.id}",
        )

    # -------------------------------------------------------------------------
    # Dismiss
    # -------------------------------------------------------------------------

    def dismiss(self) -> ResolutionOutcome:
        """Take no action; the conflict comes back on the next pass if it persists."""
        self._require_presented()
        return self._finish(ResolutionState.DISMISSED, ResolutionAction.DISMISS, None)

    async def apply(
        self, action: str, side: str | None = None, new_hour: int | str | None = None
    ) -> ResolutionOutcome:
        """Dispatch a resolution action by name."""
        if action == ResolutionAction.RETIME:
            if new_hour is None:
                raise ValueError("Retime needs a new hour")
            return await self.retime(side, new_hour)
        if action == ResolutionAction.DELETE:
            return await self.delete(side)
        if action == ResolutionAction.PROMOTE:
            return await self.promote(side)
        if action == ResolutionAction.DISMISS:
            return self.dismiss()
        raise ValueError(f"Unknown resolution action: {action!r}")
