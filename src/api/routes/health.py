"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import get_calendar_service
from api.models.responses import HealthResponse
from core.config import API_VERSION
from core.errors import CalendarSyncError
from services.calendar_view import CalendarService

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(service: CalendarService = Depends(get_calendar_service)):
    """
    Health check endpoint for monitoring.

    Returns 200 if healthy, 503 if the database cannot be read.
    """
    timestamp = datetime.now(timezone.utc).isoformat()

    try:
        await service.store.ping()
    except CalendarSyncError as e:
        return JSONResponse(
            status_code=503,
            content=HealthResponse(
                status="unhealthy",
                version=API_VERSION,
                database_available=False,
                timestamp=timestamp,
                error=e.message,
            ).model_dump(),
        )

    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        database_available=True,
        timestamp=timestamp,
    )
