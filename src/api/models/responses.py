"""Pydantic request and response models for API endpoints."""

from pydantic import BaseModel

from models.events import ConflictCandidate, Slot


class HealthResponse(BaseModel):
    """Health check response."""

    status: str  # "healthy" or "unhealthy"
    version: str
    database_available: bool
    timestamp: str  # ISO 8601 UTC
    error: str | None = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    code: str
    details: list[str] = []


class ErrorCodes:
    """Error code constants."""

    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    AUTH_EXPIRED = "AUTH_EXPIRED"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    STORE_WRITE_FAILED = "STORE_WRITE_FAILED"
    STORE_READ_FAILED = "STORE_READ_FAILED"
    AMBIGUOUS_PROMOTION = "AMBIGUOUS_PROMOTION"
    PARTIAL_RESOLUTION = "PARTIAL_RESOLUTION"
    SESSION_CLOSED = "SESSION_CLOSED"
    CONFLICT_NOT_FOUND = "CONFLICT_NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class SlotModel(BaseModel):
    hour: str
    status: str
    notes: str = ""
    description: str = ""
    sync_status: str
    is_meeting: bool = False
    meeting_kind: str | None = None
    is_first_hour: bool = False
    is_last_hour: bool = False
    start_minute: int = 0
    end_minute: int = 60
    external_event_ids: list[str] = []
    booking_ids: list[str] = []
    availability_ids: list[str] = []

    @classmethod
    def from_slot(cls, slot: Slot) -> "SlotModel":
        return cls(
            hour=slot.hour,
            status=slot.status,
            notes=slot.notes,
            description=slot.description,
            sync_status=slot.sync_status,
            is_meeting=slot.is_meeting,
            meeting_kind=slot.meeting_kind,
            is_first_hour=slot.is_first_hour,
            is_last_hour=slot.is_last_hour,
            start_minute=slot.start_minute,
            end_minute=slot.end_minute,
            external_event_ids=slot.refs_of("external"),
            booking_ids=slot.refs_of("booking"),
            availability_ids=slot.refs_of("availability"),
        )


class DayModel(BaseModel):
    date: str  # YYYY-MM-DD
    slots: list[SlotModel]


class ConflictModel(BaseModel):
    date: str
    hour: str
    external_event_id: str
    external_summary: str
    external_start: str  # ISO 8601
    booking_id: str
    booking_patient: str
    booking_start: str  # ISO 8601

    @classmethod
    def from_candidate(cls, candidate: ConflictCandidate) -> "ConflictModel":
        return cls(
            date=candidate.date.isoformat(),
            hour=candidate.hour,
            external_event_id=candidate.external_event.id,
            external_summary=candidate.external_event.summary,
            external_start=candidate.external_event.start.isoformat(),
            booking_id=candidate.booking.id,
            booking_patient=candidate.booking.patient_name,
            booking_start=candidate.booking.scheduled_at.isoformat(),
        )


class WeekResponse(BaseModel):
    """Reconciled week."""

    week_start: str
    external_status: str  # live, cached, signed-out, unavailable
    retry_after_seconds: float | None = None
    warnings: list[str] = []
    days: list[DayModel]
    conflicts: list[ConflictModel]


class ResolveRequest(BaseModel):
    """Conflict resolution request; the conflict is identified by its pair of ids."""

    date: str  # any date in the week holding the conflict, YYYY-MM-DD
    external_event_id: str
    booking_id: str
    action: str  # retime, delete, promote, dismiss
    side: str | None = None  # internal or external
    new_hour: str | None = None  # "HH:00"


class ResolutionResponse(BaseModel):
    success: bool
    action: str
    state: str | None = None
    side: str | None = None
    record_id: str | None = None
    message: str = ""
    error: ErrorResponse | None = None
    week: WeekResponse


class SyncStatusResponse(BaseModel):
    is_authenticated: bool
    token_valid: bool
    token_expiry: float | None = None
    loaded_periods: list[str] = []
    cooldown_remaining: float = 0.0
