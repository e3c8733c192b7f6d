"""Argument handling and execution for the max and min commands."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from pricestore.exceptions import ConfigError
from pricestore.extract import extract
from pricestore.query import build
from pricestore.store import TimeSeriesStore
from pricestore.types import (
    AggregateQuerySpec,
    AggregateResult,
    Operation,
    Symbol,
)

logger = logging.getLogger(__name__)

CLI_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_cli_datetime(value: str) -> datetime:
    """Parse a ``YYYY-MM-DD HH:MM:SS`` string as a UTC datetime.

    :raises ConfigError: If the string does not match the format.
    """
    try:
        parsed = datetime.strptime(value.strip(), CLI_DATETIME_FORMAT)
    except ValueError as e:
        raise ConfigError(
            f"could not convert {value!r} to YYYY-MM-DD HH:MM:SS format"
        ) from e
    return parsed.replace(tzinfo=timezone.utc)


def build_query_spec(
    operation: Operation | str, symbol: str, start: str, end: str
) -> AggregateQuerySpec:
    """Turn command-line values into a validated query request.

    :raises ConfigError: If a date cannot be parsed or the symbol is empty.
    :raises InvalidRangeError: If ``start >= end``.
    """
    if not symbol:
        raise ConfigError("symbol must not be empty")
    return AggregateQuerySpec(
        operation=Operation(operation),
        symbol=Symbol(symbol),
        start=parse_cli_datetime(start),
        end=parse_cli_datetime(end),
    )


def run_aggregate_query(
    store: TimeSeriesStore, spec: AggregateQuerySpec, measurement: str
) -> AggregateResult:
    """Build, execute and interpret one aggregate query.

    Errors propagate to the caller unchanged.
    """
    logger.info(
        "Searching for %s %s between %s and %s",
        spec.symbol,
        "highest high" if spec.operation is Operation.MAX else "lowest low",
        spec.start.isoformat(),
        spec.end.isoformat(),
    )
    query = build(spec, measurement)
    rows = store.query(query)
    return extract(rows, spec.operation)


def format_result(spec: AggregateQuerySpec, result: AggregateResult) -> str:
    """Render the result line printed on success."""
    timestamp = result.time.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    return f"{spec.operation.value} {spec.symbol} {timestamp} {result.value}"
