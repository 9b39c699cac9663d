"""
Configuration constants and environment setup.
"""

import os
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()

# =============================================================================
# PATHS
# =============================================================================

PROJECT_ROOT = Path(__file__).parent.parent.parent
DB_PATH = Path(
    os.environ.get(
        "CALENDAR_DB_PATH", str(PROJECT_ROOT / "data" / "db" / "practice-calendar.db")
    )
)

# =============================================================================
# CALENDAR GRID
# =============================================================================

TIMEZONE_NAME = os.environ.get("CALENDAR_TIMEZONE", "Asia/Jerusalem")
TIMEZONE = ZoneInfo(TIMEZONE_NAME)

# Hour buckets run from GRID_START_HOUR to GRID_END_HOUR inclusive
GRID_START_HOUR = 8
GRID_END_HOUR = 23
HOUR_KEY_FORMAT = "{:02d}:00"

# Python weekday numbering (Monday=0), the practice week starts on Sunday
WEEK_START_WEEKDAY = 6
DAYS_IN_WEEK = 7

MEETING_DURATION_MINUTES = 90

# "meeting with <person>", optionally preceded by a meeting icon
MEETING_PATTERN = r"^\s*(?:[^\w\s]+\s*)?פגישה\s+עם\s+(?P<name>\S.*?)\s*$"
INTAKE_KEYWORDS = ("intake", "אינטייק")
SEFT_KEYWORDS = ("seft", "ספט")

# Hebrew labels used in meeting text written to the provider
MEETING_TYPE_LABELS = {
    "Zoom": "זום",
    "Phone": "טלפון",
    "In-Person": "פגישה פרונטלית",
    "Private": "זמן פרטי",
}
DEFAULT_MEETING_TYPE = "In-Person"
DEFAULT_BOOKING_STATUS = "Scheduled"

# Default weekly availability: (weekdays with Sunday=0, start hour, end hour exclusive)
DEFAULT_AVAILABILITY_PATTERN = [
    ([0, 1, 2, 4], 8, 16),
    ([0, 1, 2, 3, 4], 21, 23),
    ([5], 9, 11),
]

# =============================================================================
# SYNC SESSION
# =============================================================================

FETCH_COOLDOWN_SECONDS = float(os.environ.get("CALENDAR_FETCH_COOLDOWN_SECONDS", "30"))
PERIOD_KEY_FORMAT = "%Y-%m"
TOKEN_REFRESH_INTERVAL_SECONDS = float(
    os.environ.get("CALENDAR_TOKEN_REFRESH_SECONDS", "2700")
)
# Tokens closer than this to expiry are treated as invalid
TOKEN_EXPIRY_MARGIN_SECONDS = 300

# =============================================================================
# MS GRAPH CREDENTIALS (from environment)
# =============================================================================

GRAPH_TENANT_ID = os.environ.get("MICROSOFT_GRAPH_TENANT_ID", "")
GRAPH_APP_ID = os.environ.get("MICROSOFT_GRAPH_APP_ID", "")
GRAPH_CLIENT_SECRET = os.environ.get("MICROSOFT_GRAPH_CLIENT_SECRET", "")
GRAPH_CALENDAR_USER = os.environ.get("MICROSOFT_GRAPH_CALENDAR_USER", "")
GRAPH_CALENDAR_ID = os.environ.get("MICROSOFT_GRAPH_CALENDAR_ID", "")
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
GRAPH_PAGE_SIZE = 100

# =============================================================================
# API CONFIGURATION
# =============================================================================

CALENDAR_API_KEY = os.environ.get("CALENDAR_API_KEY", "")
API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "8000"))
API_DEBUG = os.environ.get("API_DEBUG", "false").lower() == "true"
API_VERSION = "1.0.0"
