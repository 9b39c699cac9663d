"""Mapping of calendar sync errors onto HTTP error responses."""

from fastapi import status

from api.models.responses import ErrorCodes, ErrorResponse
from core.errors import (
    AmbiguousPromotion,
    AuthExpired,
    CalendarSyncError,
    PartialResolution,
    ProviderUnavailable,
    SessionClosed,
    StoreReadFailed,
    StoreWriteFailed,
)

# Checked in order, first match wins
ERROR_MAP: list[tuple[type[CalendarSyncError], int, str]] = [
    (AuthExpired, status.HTTP_401_UNAUTHORIZED, ErrorCodes.AUTH_EXPIRED),
    (SessionClosed, status.HTTP_409_CONFLICT, ErrorCodes.SESSION_CLOSED),
    (ProviderUnavailable, status.HTTP_502_BAD_GATEWAY, ErrorCodes.PROVIDER_UNAVAILABLE),
    (AmbiguousPromotion, status.HTTP_409_CONFLICT, ErrorCodes.AMBIGUOUS_PROMOTION),
    (PartialResolution, status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorCodes.PARTIAL_RESOLUTION),
    (StoreWriteFailed, status.HTTP_503_SERVICE_UNAVAILABLE, ErrorCodes.STORE_WRITE_FAILED),
    (StoreReadFailed, status.HTTP_503_SERVICE_UNAVAILABLE, ErrorCodes.STORE_READ_FAILED),
]


def error_status(error: CalendarSyncError) -> tuple[int, str]:
    for error_class, status_code, code in ERROR_MAP:
        if isinstance(error, error_class):
            return status_code, code
    return status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorCodes.INTERNAL_ERROR


def error_response(error: CalendarSyncError) -> tuple[int, ErrorResponse]:
    """HTTP status and error body naming the failed side and operation."""
    status_code, code = error_status(error)
    details = error.details()
    if isinstance(error, AuthExpired):
        details.append(f"recovered: {str(error.recovered).lower()}")
    if isinstance(error, AmbiguousPromotion):
        details.extend(f"candidate: {patient.name}" for patient in error.candidates)
    return status_code, ErrorResponse(error=error.message, code=code, details=details)
