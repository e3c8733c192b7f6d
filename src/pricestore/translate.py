"""Translation of source bars into store-ready points."""

from __future__ import annotations

import logging
import math
from typing import Iterable

from pricestore.exceptions import (
    InvalidPriceError,
    TimestampOverflowError,
    TranslationError,
)
from pricestore.types import Bar, Point, PointFields, Symbol

logger = logging.getLogger(__name__)

NANOS_PER_MILLI = 1_000_000

# InfluxDB stores time as a signed 64-bit count of nanoseconds
MIN_TIME_NS = -(2**63)
MAX_TIME_NS = 2**63 - 1

PRICE_FIELDS = ("open", "high", "low", "close")


def to_nanoseconds(timestamp_ms: int) -> int:
    """Convert an epoch-millisecond timestamp to epoch nanoseconds.

    :param timestamp_ms: Timestamp in milliseconds.
    :returns: Timestamp in nanoseconds.
    :raises TimestampOverflowError: If the result does not fit in int64.
    """
    nanos = int(timestamp_ms) * NANOS_PER_MILLI
    if not MIN_TIME_NS <= nanos <= MAX_TIME_NS:
        raise TimestampOverflowError(
            f"timestamp {timestamp_ms} ms is outside the representable range"
        )
    return nanos


def translate(bar: Bar, symbol: Symbol) -> Point:
    """Convert one bar into a point tagged with its symbol.

    :param bar: Source bar.
    :param symbol: Symbol the bar belongs to.
    :returns: Point with nanosecond time.
    :raises TimestampOverflowError: If the bar timestamp cannot be represented.
    :raises InvalidPriceError: If a price is NaN or infinite.
    """
    # The store rejects non-finite floats and would fail the whole batch
    bad = [name for name in PRICE_FIELDS if not math.isfinite(getattr(bar, name))]
    if bad:
        raise InvalidPriceError(
            f"bar at {bar.timestamp} ms has non-finite {', '.join(bad)}"
        )
    return Point(
        time=to_nanoseconds(bar.timestamp),
        fields=PointFields(
            open=bar.open,
            high=bar.high,
            low=bar.low,
            close=bar.close,
            volume=bar.volume,
        ),
        tags={"symbol": str(symbol)},
    )


def translate_bars(
    bars: Iterable[Bar], symbol: Symbol
) -> tuple[list[Point], list[TranslationError]]:
    """Translate bars in timestamp order, skipping those that cannot be stored.

    :returns: Translated points sorted by time and the errors for skipped bars.
    """
    points: list[Point] = []
    errors: list[TranslationError] = []
    for bar in sorted(bars, key=lambda b: b.timestamp):
        try:
            points.append(translate(bar, symbol))
        except TranslationError as e:
            logger.warning("Skipping bar for %s: %s", symbol, e)
            errors.append(e)
    return points, errors
