"""API Pydantic models."""

from .responses import (
    ConflictModel,
    DayModel,
    ErrorCodes,
    ErrorResponse,
    HealthResponse,
    ResolutionResponse,
    ResolveRequest,
    SlotModel,
    SyncStatusResponse,
    WeekResponse,
)

__all__ = [
    "HealthResponse",
    "ErrorResponse",
    "ErrorCodes",
    "SlotModel",
    "DayModel",
    "ConflictModel",
    "WeekResponse",
    "ResolveRequest",
    "ResolutionResponse",
    "SyncStatusResponse",
]
