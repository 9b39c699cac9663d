#!/usr/bin/env python3
"""
List the calendars of the configured MS365 calendar user.

Use it to find the value for MICROSOFT_GRAPH_CALENDAR_ID.

Usage:
    uv run python src/scripts/list_users_calendars.py [--user someone@example.com]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import GRAPH_CALENDAR_ID, GRAPH_CALENDAR_USER
from core.errors import CalendarSyncError
from services.calendar import GraphCalendarProvider


async def main(user_id: str):
    """Print every calendar of the user."""
    provider = GraphCalendarProvider(user_id=user_id)

    print(f"Fetching calendars for {user_id}...\n")
    try:
        calendars = await provider.list_calendars()
    except CalendarSyncError as e:
        print(f"Error fetching calendars: {e}")
        sys.exit(1)

    print(f"Found {len(calendars)} calendars\n")
    print("=" * 80)
    for cal in calendars:
        marker = " (configured)" if cal["calendar_id"] == GRAPH_CALENDAR_ID else ""
        print(f"  - {cal['calendar_name']}{marker}")
        print(f"    ID: {cal['calendar_id']}")
        if cal["color"]:
            print(f"    Color: {cal['color']}")
    print("-" * 80)

    print("\nDone!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="List calendars of an MS365 user")
    parser.add_argument(
        "--user",
        default=GRAPH_CALENDAR_USER,
        help="User id or principal name (default: MICROSOFT_GRAPH_CALENDAR_USER)",
    )
    args = parser.parse_args()
    if not args.user:
        parser.error("No user given and MICROSOFT_GRAPH_CALENDAR_USER is not set")

    asyncio.run(main(args.user))
