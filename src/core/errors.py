"""
Error taxonomy for calendar sync and conflict resolution.

Every error names the side that failed (internal store or external
provider) and the operation that was attempted, so callers can tell the
operator which system still needs attention.
"""

from dataclasses import dataclass


class Side:
    """Which system an operation targets."""

    INTERNAL = "internal"
    EXTERNAL = "external"


class CalendarSyncError(Exception):
    """Base class for failures against the internal store or the provider."""

    def __init__(self, message: str, *, side: str | None = None, operation: str | None = None):
        super().__init__(message)
        self.message = message
        self.side = side
        self.operation = operation

    def details(self) -> list[str]:
        details = []
        if self.side:
            details.append(f"side: {self.side}")
        if self.operation:
            details.append(f"operation: {self.operation}")
        return details


class AuthExpired(CalendarSyncError):
    """
    Provider rejected the credentials.

    `recovered` is True when the single silent refresh succeeded; the
    failed call is not retried and the caller may retry it.
    """

    def __init__(self, message: str, *, recovered: bool = False, **kwargs):
        kwargs.setdefault("side", Side.EXTERNAL)
        super().__init__(message, **kwargs)
        self.recovered = recovered


class ProviderUnavailable(CalendarSyncError):
    """Network failure or 5xx/429 from the external provider."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("side", Side.EXTERNAL)
        super().__init__(message, **kwargs)


class StoreWriteFailed(CalendarSyncError):
    """Internal persistence rejected a write."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("side", Side.INTERNAL)
        super().__init__(message, **kwargs)


class StoreReadFailed(CalendarSyncError):
    """Internal persistence could not be read."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("side", Side.INTERNAL)
        super().__init__(message, **kwargs)


class AmbiguousPromotion(CalendarSyncError):
    """Patient lookup during promote matched no usable candidate or too many."""

    def __init__(self, message: str, *, candidates: list | None = None, **kwargs):
        kwargs.setdefault("side", Side.INTERNAL)
        super().__init__(message, **kwargs)
        self.candidates = candidates or []


class PartialResolution(CalendarSyncError):
    """One side of a resolution was applied and the other failed."""

    def __init__(self, message: str, *, applied_side: str, failed_side: str, **kwargs):
        kwargs.setdefault("side", failed_side)
        super().__init__(message, **kwargs)
        self.applied_side = applied_side
        self.failed_side = failed_side

    def details(self) -> list[str]:
        return super().details() + [f"applied: {self.applied_side}"]


class SessionClosed(CalendarSyncError):
    """
    A provider call finished after sign-out; its result was discarded.

    `result` holds what the provider returned, e.g. the id of an event that
    was created anyway. None when the call never reached the provider.
    """

    def __init__(self, message: str = "Sync session was closed", *, result=None, **kwargs):
        kwargs.setdefault("side", Side.EXTERNAL)
        super().__init__(message, **kwargs)
        self.result = result


class ResolutionStateError(RuntimeError):
    """Operation requested on a conflict that is already resolved."""


@dataclass(frozen=True)
class RateLimited:
    """Advisory outcome: fetch blocked by the cooldown, cached data returned."""

    wait_seconds: float
