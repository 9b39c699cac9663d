"""
External calendar provider: event listing and mutation over MS Graph.
"""

import abc
import asyncio
import logging
import re
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx
from azure.core.exceptions import AzureError, ClientAuthenticationError
from msgraph.generated.models.body_type import BodyType
from msgraph.generated.models.date_time_time_zone import DateTimeTimeZone
from msgraph.generated.models.event import Event
from msgraph.generated.models.item_body import ItemBody
from msgraph.generated.users.item.calendars.item.calendar_view.calendar_view_request_builder import (
    CalendarViewRequestBuilder,
)

from core.config import (
    GRAPH_CALENDAR_ID,
    GRAPH_CALENDAR_USER,
    GRAPH_PAGE_SIZE,
    GRAPH_SCOPE,
    TIMEZONE,
    TIMEZONE_NAME,
)
from core.errors import AuthExpired, CalendarSyncError, ProviderUnavailable
from core.graph_client import get_credential, get_graph_client, reset_graph_client
from models.events import ExternalEvent
from models.sync import AccessToken

logger = logging.getLogger(__name__)

AUTH_ERROR_CODES = {"InvalidAuthenticationToken", "AuthenticationError", "Unauthorized"}


class CalendarProvider(abc.ABC):
    """Contract of the external calendar provider."""

    @abc.abstractmethod
    async def acquire_token(self, force: bool = False) -> AccessToken:
        """Obtain an access token, bypassing any cached token when force is set."""

    @abc.abstractmethod
    async def list_events(self, time_min: datetime, time_max: datetime) -> list[ExternalEvent]:
        """Events overlapping [time_min, time_max)."""

    @abc.abstractmethod
    async def create_event(
        self, summary: str, start: datetime, end: datetime, description: str = ""
    ) -> str:
        """Create an event and return its id."""

    @abc.abstractmethod
    async def update_event(
        self, event_id: str, summary: str, start: datetime, end: datetime, description: str = ""
    ) -> None:
        """Replace an event's text and times."""

    @abc.abstractmethod
    async def delete_event(self, event_id: str) -> bool:
        """Delete an event; False when it no longer exists."""


def translate_error(exc: Exception, operation: str) -> CalendarSyncError:
    """Map SDK and transport errors onto the sync error taxonomy."""
    if isinstance(exc, CalendarSyncError):
        return exc
    if isinstance(exc, ClientAuthenticationError):
        return AuthExpired(f"Authentication failed: {exc}", operation=operation)

    status = getattr(exc, "response_status_code", None)
    error_code = getattr(getattr(exc, "error", None), "code", None)
    if status in (401, 403) or error_code in AUTH_ERROR_CODES:
        return AuthExpired(f"Provider rejected credentials ({status or error_code})", operation=operation)
    if isinstance(exc, httpx.HTTPError):
        return ProviderUnavailable(f"Provider unreachable: {exc}", operation=operation)
    return ProviderUnavailable(
        f"Provider call failed ({status or type(exc).__name__}): {exc}", operation=operation
    )


_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_graph_datetime(value: DateTimeTimeZone | None) -> datetime | None:
    """Parse a Graph dateTimeTimeZone into an aware datetime."""
    if value is None or not value.date_time:
        return None
    # Graph returns seven fractional digits
    naive = datetime.fromisoformat(_FRACTION_RE.sub(r"\1", value.date_time.replace("Z", "")))
    try:
        tz = ZoneInfo(value.time_zone) if value.time_zone else timezone.utc
    except (ZoneInfoNotFoundError, ValueError):
        tz = timezone.utc
    if naive.tzinfo is not None:
        return naive
    return naive.replace(tzinfo=tz)


def to_graph_datetime(instant: datetime) -> DateTimeTimeZone:
    """Aware datetime -> Graph dateTimeTimeZone in the operating timezone."""
    local = instant.astimezone(TIMEZONE).replace(tzinfo=None)
    return DateTimeTimeZone(date_time=local.isoformat(), time_zone=TIMEZONE_NAME)


def parse_event(event) -> ExternalEvent | None:
    """Parse MS Graph event into our format; None for all-day or malformed events."""
    if event.is_all_day:
        return None
    start = parse_graph_datetime(event.start)
    end = parse_graph_datetime(event.end)
    if start is None or end is None:
        logger.warning("Event %s missing start/end, skipping", event.id)
        return None

    description = ""
    if event.body and event.body.content:
        description = event.body.content.strip()
        # Handle both plain text and HTML
        if "<" in description:
            description = re.sub(r"<[^>]+>", "\n", description)
            description = "\n".join(line.strip() for line in description.splitlines() if line.strip())

    return ExternalEvent(
        id=event.id,
        start=start,
        end=end,
        summary=event.subject or "",
        description=description,
    )


def _build_event(summary: str, start: datetime, end: datetime, description: str) -> Event:
    return Event(
        subject=summary,
        start=to_graph_datetime(start),
        end=to_graph_datetime(end),
        body=ItemBody(content_type=BodyType.Text, content=description),
    )


class GraphCalendarProvider(CalendarProvider):
    """Calendar of one mailbox user, accessed with app credentials."""

    def __init__(self, user_id: str = GRAPH_CALENDAR_USER, calendar_id: str = GRAPH_CALENDAR_ID):
        self.user_id = user_id
        self.calendar_id = calendar_id

    def _calendar(self):
        user = get_graph_client().users.by_user_id(self.user_id)
        if self.calendar_id:
            return user.calendars.by_calendar_id(self.calendar_id)
        return user.calendar

    async def acquire_token(self, force: bool = False) -> AccessToken:
        if force:
            reset_graph_client()
        credential = get_credential()
        try:
            token = await asyncio.to_thread(credential.get_token, GRAPH_SCOPE)
        except ClientAuthenticationError as e:
            raise AuthExpired(f"Token request rejected: {e}", operation="refresh") from e
        except AzureError as e:
            raise ProviderUnavailable(f"Token request failed: {e}", operation="refresh") from e
        return AccessToken(token=token.token, expires_at=float(token.expires_on))

    async def list_events(self, time_min: datetime, time_max: datetime) -> list[ExternalEvent]:
        query_params = CalendarViewRequestBuilder.CalendarViewRequestBuilderGetQueryParameters(
            start_date_time=time_min.astimezone(timezone.utc).isoformat(),
            end_date_time=time_max.astimezone(timezone.utc).isoformat(),
            orderby=["start/dateTime"],
            top=GRAPH_PAGE_SIZE,
        )
        config = CalendarViewRequestBuilder.CalendarViewRequestBuilderGetRequestConfiguration(
            query_parameters=query_params
        )
        config.headers.add("Prefer", 'outlook.timezone="UTC"')

        events: list[ExternalEvent] = []
        try:
            view = self._calendar().calendar_view
            response = await view.get(request_configuration=config)
            while response is not None:
                for raw in response.value or []:
                    parsed = parse_event(raw)
                    if parsed is not None:
                        events.append(parsed)
                if not response.odata_next_link:
                    break
                response = await view.with_url(response.odata_next_link).get()
        except Exception as e:
            raise translate_error(e, "list_events") from e

        logger.info("Fetched %d events between %s and %s", len(events), time_min, time_max)
        return events

    async def create_event(
        self, summary: str, start: datetime, end: datetime, description: str = ""
    ) -> str:
        try:
            created = await self._calendar().events.post(
                _build_event(summary, start, end, description)
            )
        except Exception as e:
            raise translate_error(e, "create_event") from e
        if created is None or not created.id:
            raise ProviderUnavailable("Provider returned no event id", operation="create_event")
        logger.info("Created event %s at %s", created.id, start)
        return created.id

    async def update_event(
        self, event_id: str, summary: str, start: datetime, end: datetime, description: str = ""
    ) -> None:
        try:
            await self._calendar().events.by_event_id(event_id).patch(
                _build_event(summary, start, end, description)
            )
        except Exception as e:
            raise translate_error(e, "update_event") from e
        logger.info("Updated event %s to %s", event_id, start)

    async def delete_event(self, event_id: str) -> bool:
        try:
            await self._calendar().events.by_event_id(event_id).delete()
        except Exception as e:
            if getattr(e, "response_status_code", None) == 404:
                logger.warning("Event %s already deleted", event_id)
                return False
            raise translate_error(e, "delete_event") from e
        logger.info("Deleted event %s", event_id)
        return True

    async def list_calendars(self) -> list[dict]:
        """Calendars of the configured user, for setup."""
        try:
            response = await get_graph_client().users.by_user_id(self.user_id).calendars.get()
        except Exception as e:
            raise translate_error(e, "list_calendars") from e
        return [
            {"calendar_id": cal.id, "calendar_name": cal.name, "color": cal.color}
            for cal in (response.value if response and response.value else [])
        ]
