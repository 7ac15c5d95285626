"""
Command line entry point.

Usage: listing-jobs [--config PATH] <command> [options]

Commands:
    run                 - Start the scheduler (and the ops API) until SIGINT/SIGTERM
    scrape [--source]   - Run one scrape cycle, or scrape a single source
    health              - Run one health check
    cleanup [--dry-run] - Run the two-phase cleanup, or only count expired records
    sources             - List configured sources
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from typing import Any, List, Optional

from .config import JobsConfig, load_config
from .errors import ConfigError
from .ops_api import start_ops_server, stop_ops_server
from .service import http_job_scheduler

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format=LOG_FORMAT,
    )


def _dump(obj: Any) -> str:
    if hasattr(obj, "model_dump"):
        obj = obj.model_dump(mode="json")
    return json.dumps(obj, indent=2, sort_keys=True, default=str)


async def run_service(config: JobsConfig) -> None:
    """Run the triggers until a shutdown signal arrives."""
    stop_event = asyncio.Event()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    if not config.enabled_sources():
        logger.warning("No enabled sources configured; scrape cycles will be no-ops")

    async with http_job_scheduler(config) as jobs:
        ops_runner = None
        try:
            if config.ops.enabled:
                ops_runner = await start_ops_server(jobs, config.ops.host, config.ops.port)
            await jobs.start()
            await stop_event.wait()
        finally:
            logger.info("Shutting down...")
            await jobs.stop(wait=True)
            await stop_ops_server(ops_runner)
            logger.info("Shutdown complete")


async def scrape_once(config: JobsConfig, source_name: Optional[str] = None) -> int:
    async with http_job_scheduler(config) as jobs:
        if source_name is None:
            outcome = await jobs.run_scrape_cycle()
            if outcome is None:
                print("No enabled sources configured")
                return 0
            print(_dump({
                "cycle": outcome.model_dump(mode="json"),
                "scrapes": [s.model_dump(mode="json") for s in jobs.metrics.scrapes],
            }))
            return 0

        try:
            source = config.source(source_name)
        except KeyError as e:
            print(str(e), file=sys.stderr)
            return 2

        try:
            result = await jobs.scrape_source(source)
        except Exception as e:
            print(f"Scrape of {source.name} failed: {e}", file=sys.stderr)
            return 1
        print(_dump(result) if result is not None else f"Source {source.name} is disabled")
        return 0


async def health_once(config: JobsConfig) -> int:
    async with http_job_scheduler(config) as jobs:
        snapshot = await jobs.run_health_check()
        print(_dump(snapshot))
        return 0 if snapshot.healthy else 1


async def cleanup_once(config: JobsConfig, dry_run: bool) -> int:
    async with http_job_scheduler(config) as jobs:
        if dry_run:
            result = await jobs.preview_cleanup()
            print(_dump({"would_delete": result.deleted, "errors": result.errors, "dry_run": True}))
            return 0 if not result.errors else 1

        outcome = await jobs.run_cleanup()
        if outcome is None:
            print("No expired records to delete")
            return 0
        print(_dump(outcome))
        return 0 if outcome.success else 1


def show_sources(config: JobsConfig) -> int:
    for source in config.sources:
        state = "enabled" if source.enabled else "disabled"
        print(f"{source.name:<20} {state:<9} pages={source.page_count:<3} ttl={source.ttl_days}d  {source.endpoint}")
    if not config.sources:
        print("No sources configured")
    return 0


def build_parser(default_cmd: Optional[str] = None) -> argparse.ArgumentParser:
    """Build the CLI parser; with ``default_cmd`` the subcommand may be omitted."""
    parser = argparse.ArgumentParser(prog="listing-jobs", description="Listing scrape job orchestration")
    parser.add_argument("--config", default=None, help="Jobs config file (default: $JOBS_CONFIG or jobs.yml)")
    parser.add_argument("--log-level", default=None, help="Log level (default: $LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="cmd", required=default_cmd is None)
    if default_cmd is not None:
        sub.default = default_cmd

    sub.add_parser("run", help="Run the scheduler until interrupted")

    p_scrape = sub.add_parser("scrape", help="Run one scrape cycle")
    p_scrape.add_argument("--source", default=None, help="Scrape only this source")

    sub.add_parser("health", help="Run one health check")

    p_cleanup = sub.add_parser("cleanup", help="Clean up expired records")
    p_cleanup.add_argument("--dry-run", action="store_true", help="Only count what would be deleted")

    sub.add_parser("sources", help="List configured sources")
    return parser


def main(argv: Optional[List[str]] = None, default_cmd: Optional[str] = None) -> int:
    args = build_parser(default_cmd).parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    if args.cmd == "run":
        asyncio.run(run_service(config))
        return 0
    if args.cmd == "scrape":
        return asyncio.run(scrape_once(config, args.source))
    if args.cmd == "health":
        return asyncio.run(health_once(config))
    if args.cmd == "cleanup":
        return asyncio.run(cleanup_once(config, args.dry_run))
    if args.cmd == "sources":
        return show_sources(config)
    return 2


if __name__ == "__main__":
    sys.exit(main())
