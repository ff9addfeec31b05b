"""Reprocess unprocessed sessions and optionally recompute daily aggregations.

Usage:
    python scripts/reprocess_sessions.py
    python scripts/reprocess_sessions.py --user alice --start 2026-01-01 --end 2026-01-31
"""
import argparse
import asyncio
import logging
from datetime import date

from app.aggregator import DailyAggregator
from app.config import settings
from app.database import AsyncSessionLocal, engine
from app.ingestion import ActivityIngestionService


def parse_args():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--user", help="limit to one user id (default: all users)")
    parser.add_argument("--start", type=date.fromisoformat, help="first date to recompute")
    parser.add_argument("--end", type=date.fromisoformat, help="last date to recompute")
    args = parser.parse_args()
    if (args.start is None) != (args.end is None):
        parser.error("--start and --end must be given together")
    if args.start is not None and args.user is None:
        parser.error("--user is required when recomputing aggregations")
    return args


async def run(args):
    logging.basicConfig(level=settings.LOG_LEVEL)
    async with AsyncSessionLocal() as db:
        print("=== Reprocessing unprocessed sessions ===\n")
        count = await ActivityIngestionService(db).reprocess_unprocessed(args.user)
        print(f"Reprocessed {count} sessions")

        if args.start is not None:
            print(f"\n=== Recomputing aggregations {args.start} .. {args.end} ===\n")
            total = (args.end - args.start).days + 1
            done = await DailyAggregator(db).recompute_range(args.user, args.start, args.end)
            print(f"Recomputed {done}/{total} days")
            if done < total:
                print("Some days failed, see the log output above")

    await engine.dispose()
    print("\nDone.")


if __name__ == "__main__":
    asyncio.run(run(parse_args()))
