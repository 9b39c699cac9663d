"""
Weekly calendar view: fetch, read, reconcile, and resolve conflicts.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from core.config import DAYS_IN_WEEK, TIMEZONE
from core.errors import AuthExpired, CalendarSyncError, ProviderUnavailable, RateLimited, SessionClosed
from core.timegrid import period_key, week_start
from models.events import ConflictCandidate, ExternalEvent, WeekGrid
from services.reconciler import compare_sources, reconcile
from services.resolver import ConflictResolver, ResolutionOutcome
from services.store import InternalStore
from services.sync_session import SyncSessionManager

logger = logging.getLogger(__name__)


class ExternalStatus:
    """Where the external layer of a week view came from."""

    LIVE = "live"
    CACHED = "cached"
    SIGNED_OUT = "signed-out"
    UNAVAILABLE = "unavailable"


@dataclass
class WeekView:
    anchor: date
    grid: WeekGrid
    conflicts: list[ConflictCandidate]
    external_status: str = ExternalStatus.LIVE
    advisory: RateLimited | None = None
    warnings: list[str] = field(default_factory=list)

    def find_conflict(self, external_event_id: str, booking_id: str) -> ConflictCandidate | None:
        for candidate in self.conflicts:
            if candidate.key == (external_event_id, booking_id):
                return candidate
        return None


@dataclass
class ResolutionReport:
    """Outcome of one resolution attempt plus the week as it stands afterwards."""

    view: WeekView
    outcome: ResolutionOutcome | None = None
    error: CalendarSyncError | None = None

    @property
    def success(self) -> bool:
        return self.error is None


def _describe(error: CalendarSyncError) -> str:
    parts = [error.message] + error.details()
    return "; ".join(parts)


def _week_bounds(anchor: date) -> tuple[date, date]:
    start = week_start(anchor)
    return start, start + timedelta(days=DAYS_IN_WEEK)


class CalendarService:
    """Ties the sync session, the internal store and the reconciler together."""

    def __init__(self, session: SyncSessionManager, store: InternalStore):
        self.session = session
        self.store = store

    async def sign_in(self) -> bool:
        return await self.session.sign_in()

    def sign_out(self) -> None:
        self.session.sign_out()

    async def _external_events(
        self, anchor: date, force: bool, warnings: list[str]
    ) -> tuple[list[ExternalEvent], str, RateLimited | None]:
        if not self.session.session.is_authenticated:
            warnings.append("Not signed in to the calendar provider; showing internal data only")
            return [], ExternalStatus.SIGNED_OUT, None

        try:
            try:
                result = await self.session.fetch_events(anchor, force=force)
            except AuthExpired as e:
                if not e.recovered:
                    raise
                # token was refreshed, the fetch itself has to be repeated
                result = await self.session.fetch_events(anchor, force=force)
        except (AuthExpired, SessionClosed) as e:
            warnings.append(f"Calendar provider session ended: {_describe(e)}")
            return [], ExternalStatus.SIGNED_OUT, None
        except ProviderUnavailable as e:
            warnings.append(f"Calendar provider unavailable, showing cached events: {_describe(e)}")
            return self.session.cached_events(period_key(anchor)), ExternalStatus.UNAVAILABLE, None

        if result.advisory is not None:
            warnings.append(
                f"Provider fetch rate-limited, retry in {result.advisory.wait_seconds:.0f}s"
            )
        status = ExternalStatus.CACHED if result.from_cache else ExternalStatus.LIVE
        return result.events, status, result.advisory

    async def load_week(self, anchor: date, force: bool = False) -> WeekView:
        """
        Reconciled view of the week containing anchor.

        Internal store failures propagate; provider trouble degrades the
        view to cached or internal-only data with a warning.
        """
        warnings: list[str] = []
        events, external_status, advisory = await self._external_events(anchor, force, warnings)

        start, end = _week_bounds(anchor)
        availability = await self.store.list_availability(start, end)
        bookings = await self.store.list_bookings(
            datetime.combine(start, datetime.min.time(), tzinfo=TIMEZONE),
            datetime.combine(end, datetime.min.time(), tzinfo=TIMEZONE),
        )

        grid, conflicts = reconcile(anchor, events, bookings, availability)
        logger.info(
            "Week of %s reconciled: %d events, %d bookings, %d conflicts (%s)",
            start, len(events), len(bookings), len(conflicts), external_status,
        )
        return WeekView(
            anchor=anchor,
            grid=grid,
            conflicts=conflicts,
            external_status=external_status,
            advisory=advisory,
            warnings=warnings,
        )

    async def resolve(
        self,
        candidate: ConflictCandidate,
        action: str,
        side: str | None = None,
        new_hour: int | str | None = None,
        *,
        anchor: date | None = None,
    ) -> ResolutionReport:
        """
        Run one resolution action, then reload the week whatever the result.

        Sync errors are captured in the report. Invalid arguments raise
        ValueError before anything is changed.
        """
        resolver = ConflictResolver(candidate, self.session, self.store)
        outcome = None
        error = None
        try:
            outcome = await resolver.apply(action, side, new_hour)
        except CalendarSyncError as e:
            logger.error("Resolution %s/%s of %s failed: %s", action, side, candidate.key, e)
            error = e

        view = await self.load_week(anchor or candidate.date)
        return ResolutionReport(view=view, outcome=outcome, error=error)

    async def compare_week(self, anchor: date) -> dict[str, list]:
        """Start-time comparison of provider events and bookings for the week."""
        warnings: list[str] = []
        events, _, _ = await self._external_events(anchor, False, warnings)
        start, end = _week_bounds(anchor)
        bookings = await self.store.list_bookings(
            datetime.combine(start, datetime.min.time(), tzinfo=TIMEZONE),
            datetime.combine(end, datetime.min.time(), tzinfo=TIMEZONE),
        )
        in_week = [
            e for e in events
            if start <= e.start.astimezone(TIMEZONE).date() < end
        ]
        return compare_sources(in_week, bookings)
