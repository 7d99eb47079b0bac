"""Run the settlement sweep outside the web process.

Usage:
    python -m job_broker.scheduler            # one sweep, then exit
    python -m job_broker.scheduler --loop     # sweep every N seconds until interrupted
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from job_broker.config import get_settings
from job_broker.infrastructure.database.engine import close_db, get_session_factory
from job_broker.infrastructure.redis_client import close_redis, connect_optional
from job_broker.logging_config import get_logger, setup_logging
from job_broker.services import SettlementService, build_collaborators

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="job-broker-settle",
        description="Auto-confirm lapsed completions, expire stale jobs and release due payouts.",
    )
    parser.add_argument("--loop", action="store_true", help="keep sweeping on an interval")
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="seconds between sweeps with --loop (default: SETTLEMENT_SWEEP_INTERVAL_SECONDS)",
    )
    parser.add_argument("--no-redis", action="store_true", help="log notifications instead of queueing them")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    redis = None if args.no_redis else await connect_optional(settings.redis_url)
    collaborators = build_collaborators(settings, redis)
    service = SettlementService(get_session_factory(), collaborators, settings)
    try:
        if args.loop:
            await service.run_forever(args.interval)
            return 0
        report = await service.run_sweep()
        return 1 if report.failed else 0
    finally:
        await close_db()
        await close_redis()


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    setup_logging(log_level=settings.app_log_level, json_logs=not settings.is_development)
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("scheduler.interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
