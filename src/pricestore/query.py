"""InfluxQL rendering for aggregate range queries.

User-supplied values never enter the query text directly: the symbol and the
range bounds travel as bind parameters, and the measurement name is quoted as
an identifier. :func:`inline_params` produces an equivalent literal query with
every value escaped, for display and for stores that cannot bind.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from pricestore.exceptions import QueryBuildError
from pricestore.types import AggregateQuery, AggregateQuerySpec

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")

# Control characters InfluxQL cannot carry inside a quoted token
_UNSUPPORTED_CHARS = re.compile(r"[\x00-\x09\x0b-\x1f\x7f]")


def quote_identifier(name: str) -> str:
    """Quote a measurement or column name.

    :raises QueryBuildError: If the name is empty or has control characters.
    """
    if not name:
        raise QueryBuildError("identifier must not be empty")
    if "\n" in name or _UNSUPPORTED_CHARS.search(name):
        raise QueryBuildError(f"identifier {name!r} contains control characters")
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def quote_literal(value: str) -> str:
    """Quote a string literal, escaping backslash, single quote and newline.

    :raises QueryBuildError: If the value has other control characters.
    """
    if _UNSUPPORTED_CHARS.search(value):
        raise QueryBuildError(f"value {value!r} contains control characters")
    escaped = (
        value.replace("\\", "\\\\").replace("'", "\\'").replace("\n", "\\n")
    )
    return f"'{escaped}'"


def format_time(value: datetime) -> str:
    """Format a datetime as an RFC3339 UTC timestamp."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def inline_params(text: str, params: dict[str, str]) -> str:
    """Replace ``$name`` placeholders with escaped string literals.

    Substitution happens in a single pass so substituted values are never
    scanned for placeholders again.

    :raises QueryBuildError: If a placeholder has no parameter.
    """

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in params:
            raise QueryBuildError(f"no value bound for ${name}")
        return quote_literal(params[name])

    return _PLACEHOLDER.sub(_substitute, text)


def build(spec: AggregateQuerySpec, measurement: str) -> AggregateQuery:
    """Render the extremum query for a symbol over ``[start, end)``.

    ``MAX`` reads the ``high`` field and ``MIN`` the ``low`` field. Selector
    functions without ``GROUP BY`` report the time of the selected point.

    :param spec: Validated query request.
    :param measurement: Measurement holding the price points.
    :returns: Query text, bind parameters and the expected result shape.
    """
    operation = spec.operation
    field = operation.field
    text = (
        f"SELECT {operation.function}({quote_identifier(field)}) "
        f"FROM {quote_identifier(measurement)} "
        f'WHERE "symbol" = $symbol AND time >= $start AND time < $end'
    )
    params = {
        "symbol": str(spec.symbol),
        "start": format_time(spec.start),
        "end": format_time(spec.end),
    }
    logger.debug("Built %s query: %s params=%s", operation.value, text, params)
    return AggregateQuery(
        text=text,
        params=params,
        operation=operation,
        field=field,
        column=operation.value,
    )
