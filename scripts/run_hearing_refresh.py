"""
Run the daily hearing refresh once (cron entry point).

Re-fetches court data for every case with a hearing on the target date,
retrying the previous run's failures first. Failed and skipped cases are
pushed onto the case fetch queue.

Usage:
    python scripts/run_hearing_refresh.py
    python scripts/run_hearing_refresh.py --date 2026-03-02
"""
import argparse
import asyncio
import json
import sys

from dateutil.parser import isoparse

from lawdesk.config import get_settings
from lawdesk.utils.logging import configure_structured_logging, generate_correlation_id, set_correlation_id
from lawdesk.workers.hearing_refresh import run_daily_refresh


async def main(target_date: str | None) -> int:
    configure_structured_logging(get_settings().log_level)
    set_correlation_id(generate_correlation_id())

    day = isoparse(target_date).date() if target_date else None
    result = await run_daily_refresh(day)
    print(json.dumps(result, indent=2, default=str))
    return 0 if result.get("success") else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the daily hearing refresh")
    parser.add_argument("--date", help="Target date YYYY-MM-DD (default: today in the firm timezone)")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.date)))
