# ==============================================
# CLI - Command Line Entry Point
# ==============================================
#
# PURPOSE:
#   Provides command-line interface to run the sync loop.
#   This is how operators interact with the system.
#
# COMMANDS:
# ---------
# 1. Sync continuously (every SYNC_INTERVAL_SECONDS):
#    python -m docsync.cli run
#    python -m docsync.cli run --max-cycles 3 --interval 10
#
# 2. Run a single full rescan and print the report as JSON:
#    python -m docsync.cli once
#
# 3. List the collections that would be synced:
#    python -m docsync.cli collections
#
# EXIT CODES:
# -----------
#   0 success, 1 cycle finished with per-document / per-column
#   failures (once only), 2 configuration error, 3 store unreachable.
#
# ==============================================

import argparse
import json
import sys
from dataclasses import replace
from typing import List, Optional

from loguru import logger

from docsync import __version__
from docsync.config import AppConfig, get_config
from docsync.errors import ConfigError, StoreConnectionError
from docsync.pipeline import SyncPipeline


EXIT_OK = 0
EXIT_CYCLE_ERRORS = 1
EXIT_CONFIG_ERROR = 2
EXIT_CONNECTION_ERROR = 3

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Replace loguru's default sink with ours; optionally log to a file too."""
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)
    if log_file:
        logger.add(log_file, level=level, rotation="50 MB", retention="10 days")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docsync",
        description="Replicate MongoDB collections into MySQL tables with an inferred schema.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Sync continuously until interrupted")
    run.add_argument("--interval", type=float, default=None, help="Seconds between cycles")
    run.add_argument("--max-cycles", type=int, default=None, help="Stop after N cycles")

    subparsers.add_parser("once", help="Run a single full rescan and print the report")
    subparsers.add_parser("collections", help="List the collections that would be synced")
    return parser


def _apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    if getattr(args, "interval", None) is not None:
        config = replace(config, sync=replace(config.sync, interval_seconds=args.interval))
    if args.log_level:
        config = replace(config, log_level=args.log_level.upper())
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = _apply_overrides(get_config(), args)
    except ConfigError as e:
        configure_logging()
        logger.error(f"Invalid configuration: {e.message}")
        return EXIT_CONFIG_ERROR

    configure_logging(config.log_level, config.log_file)

    try:
        with SyncPipeline(config) as pipeline:
            if args.command == "collections":
                for name in pipeline.list_collections():
                    print(name)
                return EXIT_OK

            if args.command == "once":
                report = pipeline.run_once()
                print(json.dumps(report.to_dict(), indent=2))
                return EXIT_OK if report.ok else EXIT_CYCLE_ERRORS

            pipeline.run_forever(max_cycles=args.max_cycles)
            return EXIT_OK
    except StoreConnectionError as e:
        logger.exception(f"❌ Store unreachable: {e.message}")
        return EXIT_CONNECTION_ERROR


if __name__ == "__main__":
    sys.exit(main())
