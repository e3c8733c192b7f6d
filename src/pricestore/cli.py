#!/usr/bin/env python3
"""Command-line interface for pricestore."""

from __future__ import annotations

import argparse
import sys

# Exit status for queries that ran but have no single answer
EXIT_NO_RESULT = 3


def _load(args: argparse.Namespace):
    """Load configuration and set up logging for a command."""
    from pricestore.commands.config import load_config
    from pricestore.log import configure_logging

    config = load_config(args.config)
    configure_logging(args.log_level or config.log_level)
    return config


def cmd_query(args: argparse.Namespace) -> int:
    """Report the highest high or lowest low of a symbol over a range."""
    from pricestore.commands.query import (
        build_query_spec,
        format_result,
        run_aggregate_query,
    )
    from pricestore.exceptions import (
        AmbiguousSeriesError,
        NoDataError,
        PriceStoreError,
    )
    from pricestore.query import build
    from pricestore.store import InfluxStore

    try:
        config = _load(args)
        spec = build_query_spec(args.command, args.symbol, args.start, args.end)
    except PriceStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.dry_run:
        try:
            print(build(spec, config.store.measurement).inline())
        except PriceStoreError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        return 0

    try:
        store = InfluxStore(config.store)
        result = run_aggregate_query(store, spec, config.store.measurement)
    except (NoDataError, AmbiguousSeriesError) as e:
        print(f"No result: {e}", file=sys.stderr)
        return EXIT_NO_RESULT
    except PriceStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(format_result(spec, result))
    return 0


def cmd_ingest(args: argparse.Namespace) -> int:
    """Fetch bars for symbols and write them to the store."""
    from pricestore.commands.ingest import format_summary, run_ingest
    from pricestore.exceptions import PriceStoreError
    from pricestore.store import InfluxStore

    try:
        config = _load(args)
        overrides = {
            key: value
            for key, value in (
                ("interval", args.interval),
                ("batch_size", args.batch_size),
                ("max_workers", args.workers),
                ("timeout", args.timeout),
            )
            if value is not None
        }
        ingest_config = config.ingest.model_validate(
            {**config.ingest.model_dump(), **overrides}
        )
        store = InfluxStore(config.store)
        summary = run_ingest(ingest_config, store, symbols=args.symbols)
    except PriceStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Invalid option: {e}", file=sys.stderr)
        return 1

    print("=" * 60)
    print("INGEST")
    print("=" * 60)
    for line in format_summary(summary):
        print(line)

    return 0 if summary.ok else 1


def cmd_ping(args: argparse.Namespace) -> int:
    """Check that the store is reachable."""
    from pricestore.exceptions import PriceStoreError
    from pricestore.store import InfluxStore

    try:
        config = _load(args)
        version = InfluxStore(config.store).ping()
    except PriceStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Store {config.store.host}:{config.store.port} is up (version {version})")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Store stock price history and query price extremes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", help="Path to YAML configuration file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Max / min commands
    for name, help_text in (
        ("max", "Highest high of a symbol over [start, end)"),
        ("min", "Lowest low of a symbol over [start, end)"),
    ):
        query_parser = subparsers.add_parser(name, help=help_text)
        query_parser.add_argument(
            "-b", "--start", required=True, help="Start (YYYY-MM-DD HH:MM:SS, UTC)"
        )
        query_parser.add_argument(
            "-e", "--end", required=True, help="End, exclusive (YYYY-MM-DD HH:MM:SS, UTC)"
        )
        query_parser.add_argument(
            "-s", "--symbol", required=True, help="Stock symbol (e.g., MSFT)"
        )
        query_parser.add_argument(
            "--dry-run", action="store_true", help="Print the query and exit"
        )

    # Ingest command
    ingest_parser = subparsers.add_parser(
        "ingest", help="Fetch historical bars and write them to the store"
    )
    ingest_parser.add_argument(
        "symbols", nargs="*", help="Symbols to ingest (default: from config)"
    )
    ingest_parser.add_argument(
        "-i", "--interval", help="History window, e.g. 1mo, 6mo, 1y (default: 6mo)"
    )
    ingest_parser.add_argument(
        "--batch-size", type=int, help="Points per write (default: all per symbol)"
    )
    ingest_parser.add_argument(
        "-w", "--workers", type=int, help="Symbols ingested concurrently"
    )
    ingest_parser.add_argument(
        "--timeout", type=float, help="Cancel the run after this many seconds"
    )

    # Ping command
    subparsers.add_parser("ping", help="Check that the store is reachable")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command in ("max", "min"):
        return cmd_query(args)
    elif args.command == "ingest":
        return cmd_ingest(args)
    elif args.command == "ping":
        return cmd_ping(args)

    return 0


if __name__ == "__main__":
    sys.exit(main())
