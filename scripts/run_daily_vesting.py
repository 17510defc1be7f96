#!/usr/bin/env python3
"""
Run the daily vesting batch once and print its summary as JSON.

Intended for cron or a platform scheduler when the in-process scheduler
(VESTING_SCHEDULER_ENABLED) is off. Exits non-zero when any grant failed or
the run timed out, so the trigger can alert.

Usage:
    python scripts/run_daily_vesting.py [--timeout SECONDS]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from vestengine.core.logging import configure_logging
from vestengine.db.session import AsyncSessionLocal, engine
from vestengine.services.container import build_sql_services


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Record all vesting events due today for every tenant.")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Stop starting new grants after this many seconds (defaults to VESTING_BATCH_TIMEOUT_SECONDS).",
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging()
    services = build_sql_services(AsyncSessionLocal)
    try:
        summary = await services.orchestrator(timeout_seconds=args.timeout).run_daily()
    finally:
        await engine.dispose()
    print(json.dumps(summary.to_dict(), indent=2))
    return 1 if summary.errors or summary.timed_out else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
