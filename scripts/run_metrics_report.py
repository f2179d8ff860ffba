#!/usr/bin/env python3
"""CLI entry point for data capture reports.

Usage:
    # After `pip install -e .`; metrics for a date range
    python scripts/run_metrics_report.py --start 2025-01-01 --end 2025-01-31

    # Month-by-month comparison with last year
    python scripts/run_metrics_report.py --year-over-year
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import datetime

import aiohttp
from redis.asyncio import Redis

from capture_core.metrics.exceptions import MetricsError
from capture_core.metrics.service import DataCaptureService


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


async def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Associate data capture report")
    parser.add_argument("--start", type=str, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--end", type=str, help="End date (YYYY-MM-DD)")
    parser.add_argument(
        "--year-over-year",
        action="store_true",
        help="Compare each month of this year with the same month last year",
    )
    parser.add_argument(
        "--no-redis",
        action="store_true",
        help="Skip Redis and use the default guest SKU and wedding tag",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    if not args.year_over_year and not (args.start and args.end):
        parser.error("either --start and --end, or --year-over-year is required")

    setup_logging(args.verbose)

    redis = None
    if not args.no_redis:
        redis = Redis.from_url(
            os.getenv("REDIS_URL", "redis://localhost:6379"), decode_responses=False
        )

    try:
        async with aiohttp.ClientSession() as session:
            service = DataCaptureService.from_env(session, redis=redis)

            if args.year_over_year:
                comparisons = await service.get_year_over_year()
                output = [comparison.model_dump(mode="json") for comparison in comparisons]
            else:
                start_date = datetime.strptime(args.start, "%Y-%m-%d").date()
                end_date = datetime.strptime(args.end, "%Y-%m-%d").date()
                result = await service.get_metrics(start_date, end_date)
                output = result.model_dump(mode="json")

    except MetricsError as exc:
        logging.getLogger(__name__).error("Report failed: %s", exc)
        return 1
    finally:
        if redis is not None:
            await redis.aclose()

    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
