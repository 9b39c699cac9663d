#!/usr/bin/env python3
"""
Write availability into the database: the default weekly pattern, or one
weekly recurring rule.

Existing entries are left as they are.

Usage:
    uv run python src/scripts/seed_availability.py --date 2025-03-09 --weeks 4
    uv run python src/scripts/seed_availability.py --date 2025-03-09 --weeks 6 \
        --day 3 --from 16:00 --to 19:00
"""

import argparse
import asyncio
import logging
import sys
from datetime import date, datetime
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import DB_PATH
from core.errors import CalendarSyncError
from core.timegrid import week_start
from models.events import RecurringRule
from services.availability import apply_default_availability, apply_recurring_availability
from services.store import InternalStore


async def main(start: date, weeks: int, rule: RecurringRule | None):
    store = InternalStore(DB_PATH)
    try:
        if rule is None:
            print(f"Seeding default availability from {week_start(start)} for {weeks} weeks...")
            added = await apply_default_availability(store, start, weeks)
        else:
            print(
                f"Seeding day {rule.day} {rule.start_time}-{rule.end_time} "
                f"from {rule.start_date} for {rule.count} weeks..."
            )
            added = await apply_recurring_availability(store, rule)
    except (CalendarSyncError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Added {added} availability entries")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed weekly availability")
    parser.add_argument("--date", help="First date (YYYY-MM-DD), default today")
    parser.add_argument("--weeks", type=int, default=4, help="Number of weeks (default 4)")
    parser.add_argument("--day", type=int, help="Weekday for a recurring rule, Sunday=0")
    parser.add_argument("--from", dest="start_time", default="08:00", help="Rule start (HH:MM)")
    parser.add_argument("--to", dest="end_time", default="16:00", help="Rule end (HH:MM)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    start = datetime.strptime(args.date, "%Y-%m-%d").date() if args.date else date.today()
    rule = None
    if args.day is not None:
        rule = RecurringRule(args.day, args.start_time, args.end_time, args.weeks, start)
    asyncio.run(main(start, args.weeks, rule))
