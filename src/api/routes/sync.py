"""Calendar provider session endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status

from api.dependencies import get_calendar_service, verify_api_key
from api.errors import error_response
from api.models.responses import ErrorCodes, SyncStatusResponse
from core.errors import CalendarSyncError
from services.calendar_view import CalendarService

router = APIRouter(prefix="/v1/sync")


def _status(service: CalendarService) -> SyncStatusResponse:
    return SyncStatusResponse(**service.session.status())


@router.post("/sign-in", response_model=SyncStatusResponse)
async def sign_in(
    service: CalendarService = Depends(get_calendar_service),
    _api_key: str = Depends(verify_api_key),
):
    """Authenticate against the provider and start background token refresh."""
    try:
        signed_in = await service.sign_in()
    except CalendarSyncError as e:
        status_code, body = error_response(e)
        raise HTTPException(status_code=status_code, detail=body.model_dump())

    if not signed_in:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "Calendar provider rejected the credentials",
                "code": ErrorCodes.AUTH_EXPIRED,
                "details": ["side: external", "operation: sign_in"],
            },
        )
    return _status(service)


@router.post("/sign-out", response_model=SyncStatusResponse)
async def sign_out(
    service: CalendarService = Depends(get_calendar_service),
    _api_key: str = Depends(verify_api_key),
):
    """Drop the provider session and every cached event."""
    service.sign_out()
    return _status(service)


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(
    service: CalendarService = Depends(get_calendar_service),
    _api_key: str = Depends(verify_api_key),
):
    return _status(service)
