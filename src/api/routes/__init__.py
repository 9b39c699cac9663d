"""API route modules."""

from .calendar import router as calendar_router
from .health import router as health_router
from .sync import router as sync_router

__all__ = ["health_router", "calendar_router", "sync_router"]
