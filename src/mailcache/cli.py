#!/usr/bin/env python3
"""
Command-line interface for mailcache.

This module provides maintenance commands for a mail cache store when
installed as a package (via `pip install mailcache`).

Usage:
    mailcache [OPTIONS] COMMAND

Commands:
    stats           Print cache statistics as JSON
    vacuum          Compact the store file
    optimize        Refresh planner statistics and merge the search index
    check           Run integrity checks
    rebuild-index   Rebuild the full-text index from stored messages
    recompute       Recompute thread and folder aggregates

Options:
    --db PATH       Store file (defaults to the configured profile)
    --config FILE   TOML configuration file
    --debug         Enable debug logging
    --version       Show version and exit
    --help          Show this message and exit
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from mailcache import __version__
from mailcache.config import LoggingSettings, Settings, get_settings
from mailcache.exceptions import MailCacheError
from mailcache.storage import MailCache


def setup_logging(settings: LoggingSettings, debug: bool = False) -> None:
    """
    Configure logging for the command-line tool.

    Logs go to stderr so command output on stdout stays machine-readable.

    Args:
        settings: Logging settings (level, format, optional file).
        debug: Force debug logging.
    """
    log_level = logging.DEBUG if debug else getattr(logging, settings.level)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.file:
        handlers.append(logging.FileHandler(settings.file))

    logging.basicConfig(
        level=log_level,
        format=settings.format,
        handlers=handlers,
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog="mailcache",
        description="mailcache - Local mail cache maintenance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    Show statistics for the default profile:
        mailcache stats

    Compact a specific store:
        mailcache --db ~/mail/cache.db vacuum

Environment Variables:
    MAILCACHE_CONFIG_FILE           TOML configuration file path
    MAILCACHE_STORAGE_DATA_DIR      Data directory
    MAILCACHE_STORAGE_PROFILE       Profile name
    MAILCACHE_LOG_LEVEL             Log level
        """,
    )

    parser.add_argument("--db", metavar="PATH", help="Path to the store file")
    parser.add_argument("--config", metavar="FILE", help="TOML configuration file")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"mailcache {__version__}",
    )

    parser.add_argument(
        "command",
        choices=["stats", "vacuum", "optimize", "check", "rebuild-index", "recompute"],
        help="Maintenance command to run",
    )

    return parser.parse_args(argv)


def run_command(cache: MailCache, command: str) -> int:
    """Run one command against an open cache and return its exit code."""
    logger = logging.getLogger(__name__)

    if command == "stats":
        print(cache.get_statistics().model_dump_json(by_alias=True, indent=2))
        return 0

    if command == "vacuum":
        ok = cache.vacuum()
    elif command == "optimize":
        ok = cache.optimize()
    elif command == "check":
        ok = cache.check_integrity()
    elif command == "rebuild-index":
        indexed = cache.rebuild_fulltext_index()
        ok = indexed is not None
        if ok:
            print(f"Indexed {indexed} messages")
    else:
        counts = cache.recompute_all()
        ok = counts is not None
        if ok:
            print(f"Recomputed {counts[0]} threads and {counts[1]} folders")

    if not ok:
        logger.error(f"Command '{command}' failed")
        return 1
    print(f"{command}: ok")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for the mailcache command.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    args = parse_args(argv)

    try:
        settings = Settings.from_toml(args.config) if args.config else get_settings()
        settings.validate_required()
    except MailCacheError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(settings.logging, args.debug or settings.debug)
    logger = logging.getLogger(__name__)
    logger.debug(f"mailcache v{__version__}: {args.command}")

    try:
        with MailCache(args.db, settings) as cache:
            return run_command(cache, args.command)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 1

    except MailCacheError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
