#!/usr/bin/env python3
"""
Command-line interface for docker-pull-stats.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import load_configuration
from .models import CombinedStats


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="docker-pull-stats",
        description="Docker Hub pull statistics tracker"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Sync command
    subparsers.add_parser("sync", help="Sample current pull counts and record them")

    # Stats command
    stats_parser = subparsers.add_parser("stats", help="Print total pulls and 1/7/30 day increases")
    stats_parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")

    # Server command
    server_parser = subparsers.add_parser("server", help="Start the web dashboard server")
    server_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to run the server on (default: PORT or 8000)"
    )
    server_parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Background sync interval in seconds (default: SYNC_INTERVAL or 3600)"
    )
    server_parser.add_argument("--no-sync", action="store_true", help="Disable the background sync")

    return parser


def format_stats_table(stats: List[CombinedStats]) -> str:
    """Format combined statistics as a plain-text table."""
    headers = ("Repository", "Total Pulls", "1 Day", "7 Days", "30 Days")
    rows = [
        (stat.key, f"{stat.total_pulls:,}", f"+{stat.one_day_pulls:,}",
         f"+{stat.seven_day_pulls:,}", f"+{stat.thirty_day_pulls:,}")
        for stat in stats
    ]
    widths = [max(len(row[i]) for row in [headers, *rows]) for i in range(len(headers))]
    lines = ["  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip()
             for row in [headers, *rows]]
    lines.insert(1, "  ".join("-" * width for width in widths))
    return "\n".join(lines)


def run_stats(as_json: bool = False) -> int:
    from .app import create_sampler
    from .db_factory import get_database_manager
    from .stats import StatsAggregator, WindowResolver

    settings = load_configuration()
    with get_database_manager(settings) as db_manager:
        aggregator = StatsAggregator(create_sampler(settings), WindowResolver(db_manager), settings.entities)
        stats = aggregator.compute_combined_stats()

    if as_json:
        print(json.dumps([stat.to_dict() for stat in stats], indent=2))
    else:
        print(format_stats_table(stats))
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        if args.command == "sync":
            from .app import main as app_main
            return app_main()
        elif args.command == "stats":
            return run_stats(as_json=args.json)
        elif args.command == "server":
            from .server import run_server
            run_server(port=args.port, enable_background_sync=not args.no_sync, sync_interval=args.interval)
            return 0
        else:
            parser.print_help()
            return 1
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 0
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
