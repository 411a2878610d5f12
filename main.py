# main.py

"""Entry point for the listing_watch monitor."""

import argparse
import asyncio
import logging
import sys

from src.config.logging_config import setup_logging
from src.config.settings import ConfigurationError

logger = logging.getLogger("listing_watch.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="listing_watch",
        description="Restock and price-drop monitor for retail catalogs.",
    )
    parser.add_argument(
        "--once",
        choices=["full", "stock"],
        default=None,
        help="Run a single full scan or stock check, then exit.",
    )
    parser.add_argument(
        "--backend",
        choices=["json", "sqlite"],
        default=None,
        help="Snapshot store backend (default: SNAPSHOT_BACKEND or json).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Echo INFO messages to the console.",
    )
    return parser


def main() -> None:
    """Start the long-running monitor, or a single pass with --once."""
    args = _build_parser().parse_args()
    log_file = setup_logging(
        logging.INFO if args.verbose else logging.WARNING
    )
    logger.info("listing_watch starting, log file: %s", log_file)

    from src.cli.runner import run_monitor, run_once

    try:
        if args.once:
            exit_code = asyncio.run(run_once(args.once, args.backend))
        else:
            exit_code = asyncio.run(run_monitor(args.backend))
    except ConfigurationError as exc:
        logger.critical("Invalid configuration: %s", exc)
        sys.exit(2)
    except Exception:
        logger.critical("Fatal error", exc_info=True)
        raise
    finally:
        logger.info("listing_watch shutting down")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
