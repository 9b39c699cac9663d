#!/usr/bin/env python3
"""
Print the reconciled week: slots per day, then any conflicts.

Signs in to the calendar provider when credentials are configured,
otherwise shows internal data only.

Usage:
    uv run python src/scripts/show_week.py --date 2025-03-10 [--compare] [--offline]
"""

import argparse
import asyncio
import logging
import sys
from datetime import date, datetime
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import DB_PATH, GRAPH_CLIENT_SECRET
from core.errors import CalendarSyncError
from core.timegrid import week_start
from models.events import SlotStatus
from services.calendar import GraphCalendarProvider
from services.calendar_view import CalendarService, WeekView
from services.store import InternalStore
from services.sync_session import SyncSessionManager

STATUS_MARKS = {
    SlotStatus.UNSPECIFIED: " ",
    SlotStatus.AVAILABLE: "+",
    SlotStatus.PRIVATE: "p",
    SlotStatus.BOOKED: "#",
    SlotStatus.COMPLETED: "v",
    SlotStatus.CANCELED: "x",
}


def print_week(view: WeekView):
    print(f"Week of {week_start(view.anchor)} (external: {view.external_status})")
    for warning in view.warnings:
        print(f"  ! {warning}")
    print("=" * 80)

    for day, hours in view.grid.items():
        print(f"\n{day.strftime('%a %Y-%m-%d')}")
        for hour, slot in hours.items():
            if slot.status == SlotStatus.UNSPECIFIED:
                continue
            span = ""
            if slot.is_partial:
                span = f" [{slot.start_minute:02d}-{slot.end_minute:02d}]"
            print(
                f"  {hour} {STATUS_MARKS.get(slot.status, '?')} "
                f"{slot.notes or slot.status}{span}  ({slot.sync_status})"
            )

    print("-" * 80)
    if not view.conflicts:
        print("No conflicts")
        return
    print(f"Conflicts ({len(view.conflicts)}):")
    for c in view.conflicts:
        print(
            f"  {c.date} {c.hour}: event {c.external_event.id} '{c.external_event.summary}'"
            f" vs booking {c.booking.id} ({c.booking.patient_name or '?'})"
        )


def print_comparison(comparison: dict[str, list]):
    print("\nComparison by start time:")
    print(f"  Matching: {len(comparison['matching'])}")
    for event, booking in comparison["matching"]:
        print(f"    {event.start.isoformat()} {event.summary} <-> booking {booking.id}")
    print(f"  Only in Outlook: {len(comparison['only_external'])}")
    for event in comparison["only_external"]:
        print(f"    {event.start.isoformat()} {event.summary}")
    print(f"  Only internal: {len(comparison['only_internal'])}")
    for booking in comparison["only_internal"]:
        print(f"    {booking.scheduled_at.isoformat()} booking {booking.id} {booking.patient_name}")


async def main(anchor: date, force: bool, compare: bool, offline: bool):
    session = SyncSessionManager(GraphCalendarProvider())
    service = CalendarService(session, InternalStore(DB_PATH))

    try:
        if not offline and GRAPH_CLIENT_SECRET:
            if not await service.sign_in():
                print("Calendar provider rejected the credentials, showing internal data only")
        view = await service.load_week(anchor, force=force)
        print_week(view)
        if compare:
            print_comparison(await service.compare_week(anchor))
    except CalendarSyncError as e:
        print(f"Error: {e}")
        for detail in e.details():
            print(f"  {detail}")
        sys.exit(1)
    finally:
        service.sign_out()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Print the reconciled week")
    parser.add_argument("--date", help="Any date in the week (YYYY-MM-DD), default today")
    parser.add_argument("--force", action="store_true", help="Refetch provider events")
    parser.add_argument("--compare", action="store_true", help="Also compare start times")
    parser.add_argument("--offline", action="store_true", help="Skip the calendar provider")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING)
    anchor = datetime.strptime(args.date, "%Y-%m-%d").date() if args.date else date.today()
    asyncio.run(main(anchor, args.force, args.compare, args.offline))
