"""
Attribution Worker command line entry point

Usage:
    attribution-worker build-journeys [--days N] [--window-hours H] [--batch-size N]
                                      [--max-batches N] [--force-rebuild] [--reset-progress]
    attribution-worker recover [--batch-size N] [--force] [--reset-progress]
    attribution-worker reprocess-strict [--batch-size N] [--window-minutes M] [--days N]
    attribution-worker improve [--lookback-hours H] [--batch-size N]
    attribution-worker cleanup-duplicates [--dry-run]
    attribution-worker lookup-geo <ip>
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from .core.config import settings
from .core.exceptions import AttributionWorkerException, ConfigurationError, StorageError
from .core.logging import build_logging_config, get_logger, setup_logging
from .core.redis import close_redis_client, get_redis_client_instance
from .domains.attribution.jobs import (
    AttributionImprovementJob,
    AttributionRecoveryJob,
    DuplicateJourneyCleanupJob,
    JourneyBuildJob,
    StrictReprocessingJob,
)
from .domains.attribution.services import AttributionService, GeoLookupService

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="attribution-worker",
        description="Multi-touch attribution and customer journey worker",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    build = commands.add_parser("build-journeys", help="Build journeys for recent conversions")
    build.add_argument("--days", type=int, help="Conversion date range in days")
    build.add_argument("--window-hours", type=float, help="Journey lookback window")
    build.add_argument("--batch-size", type=int, help="Conversions per batch")
    build.add_argument("--max-batches", type=int, help="Batches per invocation")
    build.add_argument("--force-rebuild", action="store_true", help="Rebuild existing journeys")
    build.add_argument("--reset-progress", action="store_true", help="Ignore saved progress")

    recover = commands.add_parser("recover", help="Recover conversion-only journeys")
    recover.add_argument("--batch-size", type=int, help="Journeys per batch")
    recover.add_argument("--force", action="store_true", help="Include already attempted journeys")
    recover.add_argument("--reset-progress", action="store_true", help="Ignore saved progress")

    strict = commands.add_parser(
        "reprocess-strict", help="Re-score POSSIBLE attributions with city match required"
    )
    strict.add_argument("--batch-size", type=int, help="Conversions per batch")
    strict.add_argument("--window-minutes", type=float, help="Lookback window in minutes")
    strict.add_argument("--days", type=int, help="Conversion date range in days")

    improve = commands.add_parser("improve", help="Apply the attribution priority ladder")
    improve.add_argument("--lookback-hours", type=float, help="Conversion lookback in hours")
    improve.add_argument("--batch-size", type=int, help="Conversions per batch")

    cleanup = commands.add_parser(
        "cleanup-duplicates", help="Keep one journey per order id"
    )
    cleanup.add_argument("--dry-run", action="store_true", help="Report without deleting")

    geo = commands.add_parser("lookup-geo", help="Resolve an IP through the geo cache")
    geo.add_argument("ip", help="IPv4 or IPv6 address")

    return parser


async def run_command(args: argparse.Namespace, store) -> Dict[str, Any]:
    """Dispatch one CLI command against an open store connection"""
    geo_service = GeoLookupService(store=store)
    service = AttributionService(store, geo_service=geo_service)

    try:
        if args.command == "build-journeys":
            result = await JourneyBuildJob(store, service).run(
                date_range_days=args.days,
                journey_window_hours=args.window_hours,
                batch_size=args.batch_size,
                max_batches=args.max_batches,
                force_rebuild=args.force_rebuild,
                reset_progress=args.reset_progress,
            )
        elif args.command == "recover":
            result = await AttributionRecoveryJob(store, service).run(
                batch_size=args.batch_size,
                force=args.force,
                reset_progress=args.reset_progress,
            )
        elif args.command == "reprocess-strict":
            result = await StrictReprocessingJob(store, service).run(
                batch_size=args.batch_size,
                window_minutes=args.window_minutes,
                date_range_days=args.days,
            )
        elif args.command == "improve":
            result = await AttributionImprovementJob(store, service).run(
                lookback_hours=args.lookback_hours,
                batch_size=args.batch_size,
            )
        elif args.command == "cleanup-duplicates":
            result = await DuplicateJourneyCleanupJob(store).run(dry_run=args.dry_run)
        else:
            record = await service.lookup_geo(args.ip)
            return record.model_dump(mode="json")
    finally:
        await service.close()

    return result.model_dump(mode="json")


async def async_main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    setup_logging(build_logging_config())

    try:
        settings.validate_configuration()
    except ConfigurationError as e:
        logger.critical("Invalid configuration", error=str(e))
        print(json.dumps({"status": "failed", "error": e.to_dict()}, indent=2))
        return e.exit_code

    store = get_redis_client_instance()
    try:
        await store.connect()
        output = await run_command(args, store)
    except StorageError as e:
        logger.critical("Store unavailable, aborting run", error=str(e))
        print(json.dumps({"status": "failed", "error": e.to_dict()}, indent=2))
        return e.exit_code
    except AttributionWorkerException as e:
        logger.error("Run failed", error=str(e))
        print(json.dumps({"status": "failed", "error": e.to_dict()}, indent=2))
        return e.exit_code
    finally:
        await close_redis_client()

    print(json.dumps(output, indent=2, default=str))
    return 0


def main() -> None:
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
