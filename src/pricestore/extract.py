"""Mapping of raw aggregate query results to typed answers."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from pricestore.exceptions import (
    AmbiguousSeriesError,
    ExtractError,
    NoDataError,
    StoreQueryError,
)
from pricestore.types import AggregateResult, Operation

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_FRACTION = re.compile(r"\.(\d+)")


def parse_time(value: Any) -> datetime:
    """Parse a result timestamp into a UTC datetime.

    Integers are epoch nanoseconds; strings are RFC3339.

    :raises ExtractError: If the value is neither.
    """
    if isinstance(value, bool):
        raise ExtractError(f"Unexpected timestamp value: {value!r}")
    if isinstance(value, int):
        # Sub-microsecond precision is dropped, datetime cannot carry it
        return _EPOCH + timedelta(microseconds=value // 1_000)
    if isinstance(value, str):
        text = value.replace("Z", "+00:00")
        # fromisoformat accepts at most six fractional digits
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ExtractError(f"Unparseable timestamp: {value!r}") from e
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    raise ExtractError(f"Unexpected timestamp value: {value!r}")


def _column_index(columns: list[str], name: str) -> int:
    try:
        return columns.index(name)
    except ValueError as e:
        raise ExtractError(
            f"Result has no '{name}' column (columns: {columns})"
        ) from e


def extract(rows: Mapping[str, Any], op: Operation) -> AggregateResult:
    """Extract the extremum and its timestamp from one statement result.

    :param rows: Raw statement result, ``{"series": [...]}``.
    :param op: Operation the query answered.
    :returns: Time and value of the extremum.
    :raises StoreQueryError: If the statement reported an error.
    :raises NoDataError: If there is no data in range.
    :raises AmbiguousSeriesError: If more than one series came back.
    :raises ExtractError: If the result does not have the expected shape.
    """
    if rows.get("error"):
        raise StoreQueryError(f"Store reported an error: {rows['error']}")

    series = rows.get("series") or []
    if not series:
        raise NoDataError("No data in the requested range")
    if len(series) > 1:
        names = [s.get("tags") or s.get("name") for s in series]
        raise AmbiguousSeriesError(
            f"Expected one result series, got {len(series)}: {names}"
        )

    only = series[0]
    columns = list(only.get("columns") or [])
    values = only.get("values") or []
    time_idx = _column_index(columns, "time")
    value_idx = _column_index(columns, op.value)

    candidates: list[tuple[float, datetime]] = []
    for row in values:
        if len(row) <= max(time_idx, value_idx):
            raise ExtractError(f"Result row too short: {row}")
        raw_value = row[value_idx]
        if raw_value is None:
            continue
        try:
            value = float(raw_value)
        except (TypeError, ValueError) as e:
            raise ExtractError(f"Non-numeric {op.value} value: {raw_value!r}") from e
        candidates.append((value, parse_time(row[time_idx])))

    if not candidates:
        raise NoDataError("No data in the requested range")

    # Extremum wins, earliest timestamp breaks ties
    if op is Operation.MAX:
        value, time = min(candidates, key=lambda c: (-c[0], c[1]))
    else:
        value, time = min(candidates, key=lambda c: (c[0], c[1]))

    logger.debug("Extracted %s=%s at %s", op.value, value, time.isoformat())
    return AggregateResult(time=time, value=value)
