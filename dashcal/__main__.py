"""Command-line entry for dashcal.

Loads configuration from the environment (and an optional .env file), runs
one aggregation and prints the dashboard payload as JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, NoReturn, Optional

from .config_manager import ConfigManager
from .exceptions import AggregationFailure, ConfigurationError
from .logging_config import configure_logging
from .service import CalendarAggregationService

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for dashcal CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="dashcal",
        description="dashcal - aggregate ICS calendars into one dashboard event list",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m dashcal                               # Next 14 days from DASHCAL_ICS_SOURCES
  python -m dashcal --days 7                      # Next 7 days
  python -m dashcal --timezone Europe/London      # Window in London local time
        """,
    )

    parser.add_argument(
        "--days",
        type=int,
        metavar="N",
        help="Window length in days (default: 14, or from DASHCAL_WINDOW_DAYS env var)",
    )
    parser.add_argument(
        "--timezone",
        metavar="TZ",
        help="IANA timezone for the window (default: DASHCAL_DEFAULT_TIMEZONE or America/Los_Angeles)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        metavar="PATH",
        help="Path to a .env file (default: ./.env)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    return parser


def _build_config(args: argparse.Namespace) -> dict[str, Any]:
    config = ConfigManager(args.env_file).load_full_config()

    if args.days is not None:
        config["window_days"] = args.days
        logger.debug("Applied command line window override: %d days", args.days)
    if args.timezone:
        config["default_timezone"] = args.timezone
        logger.debug("Applied command line timezone override: %s", args.timezone)

    return config


async def _run(config: dict[str, Any]) -> dict[str, Any]:
    service = CalendarAggregationService.from_config(config)
    try:
        result = await service.get_aggregated_events()
    finally:
        await service.aclose()
    return result.to_payload()


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the dashcal CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    configure_logging(debug_mode=args.debug)

    try:
        config = _build_config(args)
        payload = asyncio.run(_run(config))
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(2)
    except AggregationFailure as exc:
        logger.error("Aggregation failed: %s", exc)
        sys.exit(1)

    print(json.dumps(payload, indent=2))
    sys.exit(0)


if __name__ == "__main__":
    main()
