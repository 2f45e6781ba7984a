"""Command line entry point: ``python -m dbexplorer``."""

import argparse
import asyncio
import sys
from typing import List, Optional

from . import __version__
from .api import RequestDispatcher, serve_stdio
from .config import load_settings
from .core.exceptions import DBExplorerError
from .logging import get_factory, get_logger, shutdown_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dbexplorer",
        description="Serve DB Explorer operations as JSON lines on stdin/stdout",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                              # Serve with default settings
  %(prog)s --config settings.yaml       # Load settings from YAML
  %(prog)s --data-dir /tmp/dbx -l DEBUG # Separate profile store, verbose logs

Request line:
  {"id": 1, "operation": "list-connections", "payload": null}
        """,
    )
    parser.add_argument(
        "--config", "-c",
        help="YAML settings file (default: $DBEXPLORER_CONFIG)",
    )
    parser.add_argument(
        "--data-dir", "-d",
        help="Application data directory holding the connection records",
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level",
    )
    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.data_dir:
        overrides["data_dir"] = args.data_dir
    try:
        settings = load_settings(args.config, **overrides)
    except DBExplorerError as e:
        print(f"dbexplorer: {e.message}", file=sys.stderr)
        return 2

    if args.log_level:
        settings.logging.level = args.log_level
    get_factory().configure_from_config(settings.logging)
    logger = get_logger("dbexplorer.main")
    logger.info("Starting DB Explorer", version=__version__, data_dir=str(settings.data_dir))

    try:
        asyncio.run(serve_stdio(RequestDispatcher.from_settings(settings)))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        shutdown_logging()
    return 0


if __name__ == "__main__":
    sys.exit(main())
