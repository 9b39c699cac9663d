"""Weekly calendar and conflict resolution endpoints."""

import logging
import time
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from api.dependencies import get_calendar_service, get_client_ip, verify_api_key
from api.errors import error_response
from api.logging import RequestLog, log_request
from api.models.responses import (
    ConflictModel,
    DayModel,
    ErrorCodes,
    ResolutionResponse,
    ResolveRequest,
    SlotModel,
    WeekResponse,
)
from core.errors import CalendarSyncError
from core.timegrid import week_start
from services.calendar_view import CalendarService, WeekView

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/calendar")


def parse_anchor_date(date_str: str | None) -> date:
    """Parse anchor date string; today when omitted."""
    if not date_str:
        return date.today()
    try:
        return datetime.strptime(date_str, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "Invalid date format",
                "code": ErrorCodes.INVALID_REQUEST,
                "details": ["Expected format: YYYY-MM-DD"],
            },
        )


def week_response(view: WeekView) -> WeekResponse:
    return WeekResponse(
        week_start=week_start(view.anchor).isoformat(),
        external_status=view.external_status,
        retry_after_seconds=view.advisory.wait_seconds if view.advisory else None,
        warnings=view.warnings,
        days=[
            DayModel(
                date=day.isoformat(),
                slots=[SlotModel.from_slot(slot) for slot in hours.values()],
            )
            for day, hours in view.grid.items()
        ],
        conflicts=[ConflictModel.from_candidate(c) for c in view.conflicts],
    )


def _finish_log(request: Request, request_log: RequestLog, start_time: float) -> None:
    request_log.processing_time_ms = int((time.time() - start_time) * 1000)
    try:
        log_request(request_log, request.app.state.db_path)
    except Exception as e:
        # Don't fail the request if logging fails
        logger.warning("Request logging failed: %s", e)


def _record_http_error(request_log: RequestLog, e: HTTPException) -> None:
    request_log.status_code = e.status_code
    if isinstance(e.detail, dict):
        request_log.error_code = e.detail.get("code")
        request_log.error_message = e.detail.get("error")
        for detail in e.detail.get("details", []):
            request_log.details.append(("error_detail", detail))
    else:
        request_log.error_message = str(e.detail)


def _sync_http_error(e: CalendarSyncError) -> HTTPException:
    status_code, body = error_response(e)
    return HTTPException(status_code=status_code, detail=body.model_dump())


@router.get("/week", response_model=WeekResponse)
async def get_week(
    request: Request,
    date_str: str | None = Query(None, alias="date", description="Any date in the week (YYYY-MM-DD)"),
    force: bool = Query(False, description="Refetch provider events for the month"),
    service: CalendarService = Depends(get_calendar_service),
    _api_key: str = Depends(verify_api_key),
):
    """
    Reconciled week containing the given date.

    Provider events and internal bookings are merged into hourly slots;
    conflicts between them are listed separately.
    """
    start_time = time.time()
    request_log = RequestLog(
        endpoint="/v1/calendar/week",
        method="GET",
        client_ip=get_client_ip(request),
        anchor_date=date_str,
    )

    try:
        anchor = parse_anchor_date(date_str)
        view = await service.load_week(anchor, force=force)
        request_log.status_code = 200
        request_log.conflicts_found = len(view.conflicts)
        for warning in view.warnings:
            request_log.details.append(("warning", warning))
        return week_response(view)

    except HTTPException as e:
        _record_http_error(request_log, e)
        raise

    except CalendarSyncError as e:
        http_error = _sync_http_error(e)
        _record_http_error(request_log, http_error)
        raise http_error

    finally:
        _finish_log(request, request_log, start_time)


@router.post("/conflicts/resolve", response_model=ResolutionResponse)
async def resolve_conflict(
    request: Request,
    body: ResolveRequest,
    service: CalendarService = Depends(get_calendar_service),
    _api_key: str = Depends(verify_api_key),
):
    """
    Apply one resolution action to a detected conflict.

    The week is reloaded whether or not the action succeeded. A failed
    action answers with the error's status code and the refreshed week.
    """
    start_time = time.time()
    request_log = RequestLog(
        endpoint="/v1/calendar/conflicts/resolve",
        method="POST",
        client_ip=get_client_ip(request),
        anchor_date=body.date,
    )

    try:
        anchor = parse_anchor_date(body.date)
        current = await service.load_week(anchor)
        candidate = current.find_conflict(body.external_event_id, body.booking_id)
        if candidate is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={
                    "error": "Conflict not found",
                    "code": ErrorCodes.CONFLICT_NOT_FOUND,
                    "details": [
                        f"external_event_id: {body.external_event_id}",
                        f"booking_id: {body.booking_id}",
                    ],
                },
            )

        try:
            report = await service.resolve(
                candidate, body.action, body.side, body.new_hour, anchor=anchor
            )
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={
                    "error": "Invalid resolution request",
                    "code": ErrorCodes.INVALID_REQUEST,
                    "details": [str(e)],
                },
            )

        outcome = report.outcome
        response = ResolutionResponse(
            success=report.success,
            action=body.action,
            state=outcome.state if outcome else None,
            side=outcome.side if outcome else body.side,
            record_id=outcome.record_id if outcome else None,
            message=outcome.message if outcome else "",
            week=week_response(report.view),
        )
        request_log.conflicts_found = len(report.view.conflicts)

        if report.error is not None:
            status_code, error_body = error_response(report.error)
            response.error = error_body
            request_log.status_code = status_code
            request_log.error_code = error_body.code
            request_log.error_message = error_body.error
            for detail in error_body.details:
                request_log.details.append(("error_detail", detail))
            return JSONResponse(status_code=status_code, content=response.model_dump())

        request_log.status_code = 200
        return response

    except HTTPException as e:
        _record_http_error(request_log, e)
        raise

    except CalendarSyncError as e:
        http_error = _sync_http_error(e)
        _record_http_error(request_log, http_error)
        raise http_error

    finally:
        _finish_log(request, request_log, start_time)
