"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.errors import error_response
from api.models.responses import ErrorCodes, ErrorResponse
from api.routes import calendar_router, health_router, sync_router
from core.config import API_DEBUG, API_VERSION, DB_PATH, GRAPH_CLIENT_SECRET
from core.database import get_connection, init_schema
from core.errors import CalendarSyncError
from services.calendar import GraphCalendarProvider
from services.calendar_view import CalendarService
from services.store import InternalStore
from services.sync_session import SyncSessionManager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup: make sure the schema exists and build the calendar service
    if getattr(app.state, "calendar_service", None) is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        conn = get_connection(DB_PATH)
        try:
            init_schema(conn)
        finally:
            conn.close()

        session = SyncSessionManager(GraphCalendarProvider())
        app.state.db_path = DB_PATH
        app.state.calendar_service = CalendarService(session, InternalStore(DB_PATH))

        if GRAPH_CLIENT_SECRET:
            try:
                if not await session.sign_in():
                    logger.warning("Calendar provider rejected the configured credentials")
            except CalendarSyncError as e:
                logger.warning("Calendar provider sign-in failed at startup: %s", e)
        else:
            logger.warning("MICROSOFT_GRAPH_CLIENT_SECRET not set, provider sign-in skipped")

    yield

    # Shutdown: stop the token refresh timer
    app.state.calendar_service.sign_out()


app = FastAPI(
    title="Practice Calendar API",
    description="Reconciled weekly calendar over internal bookings and the Outlook calendar",
    version=API_VERSION,
    debug=API_DEBUG,
    lifespan=lifespan,
)

# CORS middleware (for development)
if API_DEBUG:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(CalendarSyncError)
async def sync_exception_handler(request: Request, exc: CalendarSyncError):
    """Sync errors that escaped a route, with side and operation in details."""
    status_code, body = error_response(exc)
    return JSONResponse(status_code=status_code, content=body.model_dump())


# Global exception handler for unexpected errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions with standard error format."""
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal server error",
            code=ErrorCodes.INTERNAL_ERROR,
            details=[],
        ).model_dump(),
    )


# Include routers
app.include_router(health_router)
app.include_router(calendar_router)
app.include_router(sync_router)


# Entry point for uvicorn
if __name__ == "__main__":
    import uvicorn

    from core.config import API_HOST, API_PORT

    logging.basicConfig(level=logging.DEBUG if API_DEBUG else logging.INFO)
    uvicorn.run(
        "api.main:app",
        host=API_HOST,
        port=API_PORT,
        reload=API_DEBUG,
    )
