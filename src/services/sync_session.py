"""
Sync session management for the external calendar provider.

One SyncSessionManager owns the provider token lifecycle, the global fetch
cooldown and the per-month event cache. All session state lives on the
manager instance and is only mutated from the event loop, between awaits,
so readers never observe a half-applied change.

Sign-out bumps a generation counter. Any provider call that started under
an older generation has its result discarded when it completes.
"""

import asyncio
import logging
import time
from datetime import date, datetime

from core.config import (
    FETCH_COOLDOWN_SECONDS,
    TIMEZONE,
    TOKEN_EXPIRY_MARGIN_SECONDS,
    TOKEN_REFRESH_INTERVAL_SECONDS,
)
from core.errors import (
    AuthExpired,
    CalendarSyncError,
    ProviderUnavailable,
    RateLimited,
    SessionClosed,
)
from core.timegrid import period_key, period_window
from models.events import ExternalEvent
from models.sync import FetchResult, SyncSession
from services.calendar import CalendarProvider

logger = logging.getLogger(__name__)


def _period_bounds(key: str) -> tuple[datetime, datetime]:
    start, end = period_window(key)
    return (
        datetime.combine(start, datetime.min.time(), tzinfo=TIMEZONE),
        datetime.combine(end, datetime.min.time(), tzinfo=TIMEZONE),
    )


class SyncSessionManager:
    """Token lifecycle, fetch cooldown and period cache for one provider."""

    def __init__(
        self,
        provider: CalendarProvider,
        *,
        clock=time.time,
        cooldown_seconds: float = FETCH_COOLDOWN_SECONDS,
        refresh_interval: float = TOKEN_REFRESH_INTERVAL_SECONDS,
        expiry_margin: float = TOKEN_EXPIRY_MARGIN_SECONDS,
    ):
        self.provider = provider
        self.session = SyncSession()
        self._clock = clock
        self._cooldown_seconds = cooldown_seconds
        self._refresh_interval = refresh_interval
        self._expiry_margin = expiry_margin

        self._period_events: dict[str, list[ExternalEvent]] = {}
        self._last_period: str | None = None
        self._inflight: dict[str, asyncio.Task] = {}
        self._refresh_lock = asyncio.Lock()
        self._refresh_task: asyncio.Task | None = None
        self._generation = 0

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    def is_valid(self) -> bool:
        """True while authenticated with a token that is not about to expire."""
        if not self.session.is_authenticated or self.session.token_expiry is None:
            return False
        return self.session.token_expiry > self._clock() + self._expiry_margin

    async def refresh(self, force: bool = False) -> bool:
        """
        Make sure a valid token is held.

        Without force, a still-valid token is kept. Returns False and flips
        the session to unauthenticated when the provider rejects the
        credentials. ProviderUnavailable propagates.
        """
        if not force and self.is_valid():
            return True
        generation = self._generation
        async with self._refresh_lock:
            if not force and self.is_valid():
                return True
            try:
                token = await self.provider.acquire_token(force=force)
            except AuthExpired as e:
                logger.warning("Token refresh rejected: %s", e)
                if generation == self._generation:
                    self._mark_unauthenticated()
                return False
            if generation != self._generation:
                logger.warning("Token refresh completed after sign-out, discarding")
                return False
            self.session.is_authenticated = True
            self.session.token_expiry = token.expires_at
            logger.info("Provider token refreshed, expires at %s", token.expires_at)
            return True

    async def sign_in(self) -> bool:
        """Authenticate and start keeping the token warm."""
        if not await self.refresh(force=True):
            return False
        self._start_background_refresh()
        return True

    def sign_out(self) -> None:
        """
        Drop authentication, cached events and loaded periods.

        Applies immediately; calls still in flight are abandoned when they
        complete.
        """
        self._generation += 1
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None
        self._mark_unauthenticated()
        self.session.last_fetch_timestamp = None
        self.session.loaded_periods.clear()
        self._period_events.clear()
        self._last_period = None
        self._inflight.clear()
        logger.info("Signed out of provider, cache cleared")

    def _mark_unauthenticated(self) -> None:
        self.session.is_authenticated = False
        self.session.token_expiry = None

    def _start_background_refresh(self) -> None:
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def _refresh_loop(self) -> None:
        while self.session.is_authenticated:
            await asyncio.sleep(self._refresh_interval)
            if not self.session.is_authenticated:
                break
            try:
                await self.refresh(force=True)
            except ProviderUnavailable as e:
                logger.warning("Background token refresh failed: %s", e)

    async def _recover(self) -> bool:
        """Single silent refresh after an auth-class failure."""
        try:
            return await self.refresh(force=True)
        except ProviderUnavailable as e:
            logger.error("Silent refresh failed: %s", e)
            self._mark_unauthenticated()
            return False

    async def _call(self, operation: str, call):
        if not self.session.is_authenticated:
            raise AuthExpired("Not signed in to the calendar provider", operation=operation)
        generation = self._generation
        try:
            result = await call()
        except AuthExpired as e:
            if generation != self._generation:
                raise SessionClosed(operation=operation) from e
            recovered = await self._recover()
            raise AuthExpired(
                f"Provider credentials expired during {operation}",
                recovered=recovered,
                operation=operation,
            ) from e
        if generation != self._generation:
            logger.warning("%s completed after sign-out, result discarded", operation)
            raise SessionClosed(operation=operation, result=result)
        return result

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    def cooldown_remaining(self) -> float:
        last = self.session.last_fetch_timestamp
        if last is None:
            return 0.0
        return max(0.0, last + self._cooldown_seconds - self._clock())

    def cached_events(self, key: str | None = None) -> list[ExternalEvent]:
        """Events cached for a period, or the most recently fetched set."""
        if key is not None and key in self._period_events:
            return list(self._period_events[key])
        if self._last_period is None:
            return []
        return list(self._period_events.get(self._last_period, []))

    async def fetch_events(self, period: date | str, force: bool = False) -> FetchResult:
        """
        Events for a month period.

        A loaded period is served from cache unless forced. Within the
        cooldown no fetch is issued, not even a forced one; the cached
        events come back with a RateLimited advisory. Concurrent callers
        for the same period share one provider call.
        """
        key = period if isinstance(period, str) else period_key(period)
        if not self.session.is_authenticated:
            raise AuthExpired("Not signed in to the calendar provider", operation="fetch_events")

        if key in self.session.loaded_periods and not force:
            return FetchResult(key, self.cached_events(key), from_cache=True)

        task = self._inflight.get(key)
        if task is None:
            wait = self.cooldown_remaining()
            if wait > 0:
                logger.info("Fetch of %s blocked by cooldown, %.1fs left", key, wait)
                return FetchResult(
                    key, self.cached_events(key), from_cache=True, advisory=RateLimited(wait)
                )
            # claimed before scheduling, so same-tick requests for other periods see it
            previous = self.session.last_fetch_timestamp
            self.session.last_fetch_timestamp = self._clock()
            task = asyncio.create_task(self._fetch(key, previous, self._generation))
            self._inflight[key] = task
            task.add_done_callback(lambda done, k=key: self._forget_inflight(k, done))
        return await asyncio.shield(task)

    def _forget_inflight(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _fetch(self, key: str, previous: float | None, generation: int) -> FetchResult:
        if generation != self._generation:
            raise SessionClosed(operation="fetch_events")
        time_min, time_max = _period_bounds(key)
        try:
            events = await self._call(
                "fetch_events", lambda: self.provider.list_events(time_min, time_max)
            )
        except SessionClosed:
            raise
        except CalendarSyncError:
            if generation == self._generation:
                self.session.last_fetch_timestamp = previous
            raise

        self._period_events[key] = list(events)
        self._last_period = key
        self.session.loaded_periods.add(key)
        logger.info("Loaded %d events for %s", len(events), key)
        return FetchResult(key, list(events))

    # -------------------------------------------------------------------------
    # Mutations (write-through to the period cache)
    # -------------------------------------------------------------------------

    async def create_event(
        self, summary: str, start: datetime, end: datetime, description: str = ""
    ) -> str:
        event_id = await self._call(
            "create_event", lambda: self.provider.create_event(summary, start, end, description)
        )
        self._cache_upsert(ExternalEvent(event_id, start, end, summary, description))
        return event_id

    async def update_event(
        self, event_id: str, summary: str, start: datetime, end: datetime, description: str = ""
    ) -> None:
        await self._call(
            "update_event",
            lambda: self.provider.update_event(event_id, summary, start, end, description),
        )
        self._cache_upsert(ExternalEvent(event_id, start, end, summary, description))

    async def delete_event(self, event_id: str) -> bool:
        deleted = await self._call("delete_event", lambda: self.provider.delete_event(event_id))
        self._cache_remove(event_id)
        return deleted

    def _cache_remove(self, event_id: str) -> None:
        for key, events in self._period_events.items():
            self._period_events[key] = [e for e in events if e.id != event_id]

    def _cache_upsert(self, event: ExternalEvent) -> None:
        self._cache_remove(event.id)
        for key in self._period_events:
            time_min, time_max = _period_bounds(key)
            if event.start < time_max and event.end > time_min:
                self._period_events[key].append(event)

    def status(self) -> dict:
        return {
            "is_authenticated": self.session.is_authenticated,
            "token_valid": self.is_valid(),
            "token_expiry": self.session.token_expiry,
            "loaded_periods": sorted(self.session.loaded_periods),
            "cooldown_remaining": self.cooldown_remaining(),
        }
