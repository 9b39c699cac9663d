"""
Data models for the external provider session.
"""

from dataclasses import dataclass, field

from core.errors import RateLimited
from models.events import ExternalEvent


@dataclass(frozen=True)
class AccessToken:
    """Provider access token; `expires_at` is a unix timestamp."""

    token: str
    expires_at: float


@dataclass
class SyncSession:
    """Process-wide provider session state, owned by one SyncSessionManager."""

    is_authenticated: bool = False
    token_expiry: float | None = None
    last_fetch_timestamp: float | None = None
    loaded_periods: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class FetchResult:
    """Events for a period plus how they were obtained."""

    period: str
    events: list[ExternalEvent]
    from_cache: bool = False
    advisory: RateLimited | None = None
