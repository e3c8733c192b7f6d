"""Core type definitions for pricestore.

All data models use Pydantic BaseModel for validation and serialization.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, NewType

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pricestore.exceptions import InvalidRangeError

# Instrument identifier, used as the ``symbol`` tag in storage
Symbol = NewType("Symbol", str)


# ---------------------------------------------------------------------------
# Base Configuration
# ---------------------------------------------------------------------------


class FrozenModel(BaseModel):
    """Base model with frozen (immutable) configuration."""

    model_config = ConfigDict(frozen=True)


class MutableModel(BaseModel):
    """Base model for mutable state objects."""

    model_config = ConfigDict(validate_assignment=True)


# ---------------------------------------------------------------------------
# Market Data Types
# ---------------------------------------------------------------------------


class Interval(str, Enum):
    """Look-back window of history requested from a market-data source."""

    ONE_DAY = "1d"
    FIVE_DAYS = "5d"
    ONE_MONTH = "1mo"
    THREE_MONTHS = "3mo"
    SIX_MONTHS = "6mo"
    ONE_YEAR = "1y"
    TWO_YEARS = "2y"
    FIVE_YEARS = "5y"
    TEN_YEARS = "10y"
    YEAR_TO_DATE = "ytd"
    MAX = "max"


class Bar(FrozenModel):
    """One OHLCV sample as delivered by a market-data source.

    The source does not guarantee ``low <= open, close <= high`` and bars that
    violate it are accepted as-is.

    :param timestamp: Sample time in epoch milliseconds.
    :param open: Opening price.
    :param high: Highest price during the bar period.
    :param low: Lowest price during the bar period.
    :param close: Closing price.
    :param volume: Traded volume, or None when the source does not report it.
    """

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: int | None = Field(default=None, ge=0)


class PointFields(FrozenModel):
    """Numeric values stored for one point."""

    open: float
    high: float
    low: float
    close: float
    volume: int | None = None


class Point(FrozenModel):
    """Store-ready data point.

    :param time: Point time in epoch nanoseconds.
    :param fields: Numeric fields that take part in aggregation.
    :param tags: Indexed labels used for filtering (``symbol``).
    """

    time: int
    fields: PointFields
    tags: dict[str, str]

    def to_influx(self, measurement: str) -> dict[str, Any]:
        """Render the point as the mapping accepted by ``write_points``.

        Fields that are None are left out so the store keeps them absent.
        """
        fields = {k: v for k, v in self.fields.model_dump().items() if v is not None}
        return {
            "measurement": measurement,
            "tags": dict(self.tags),
            "time": self.time,
            "fields": fields,
        }


# ---------------------------------------------------------------------------
# Query Types
# ---------------------------------------------------------------------------


class Operation(str, Enum):
    """Aggregate operation over a price range."""

    MAX = "max"
    MIN = "min"

    @property
    def field(self) -> str:
        """Column the extremum is read from.

        The intraday maximum is bounded by the bar's high and the minimum by
        its low, never by the close.
        """
        return "high" if self is Operation.MAX else "low"

    @property
    def function(self) -> str:
        """InfluxQL selector function for this operation."""
        return self.value.upper()


class AggregateQuerySpec(FrozenModel):
    """Request for the extremum of one symbol over ``[start, end)``.

    Naive datetimes are interpreted as UTC.

    :raises InvalidRangeError: If ``start >= end``.
    """

    operation: Operation
    symbol: Symbol = Field(min_length=1)
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def _check_range(self) -> AggregateQuerySpec:
        if self.start >= self.end:
            raise InvalidRangeError(
                f"start ({self.start.isoformat()}) must be before "
                f"end ({self.end.isoformat()})"
            )
        return self


class AggregateQuery(FrozenModel):
    """Rendered aggregate query.

    :param text: InfluxQL text with ``$name`` placeholders.
    :param params: Bind parameters for the placeholders.
    :param operation: Operation the query answers.
    :param field: Stored field the extremum is taken over.
    :param column: Column name the store reports the aggregate under.
    """

    text: str
    params: dict[str, str]
    operation: Operation
    field: str
    column: str

    def inline(self) -> str:
        """Render the query with every bind parameter as an escaped literal."""
        from pricestore.query import inline_params

        return inline_params(self.text, self.params)


class AggregateResult(FrozenModel):
    """Extremum value and the time at which it was observed."""

    time: datetime
    value: float


# ---------------------------------------------------------------------------
# Ingestion Types
# ---------------------------------------------------------------------------


class SymbolIngestReport(MutableModel):
    """Outcome of ingesting one symbol.

    :param symbol: Symbol that was ingested.
    :param bars_fetched: Bars returned by the source.
    :param points_written: Points the store acknowledged.
    :param points_skipped: Bars that could not be translated.
    :param points_incomplete: Points abandoned because the run was cancelled.
    :param batches_failed: Batches that exhausted their write retries.
    :param errors: Human-readable description of every error encountered.
    """

    symbol: Symbol
    bars_fetched: int = 0
    points_written: int = 0
    points_skipped: int = 0
    points_incomplete: int = 0
    batches_failed: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and self.points_incomplete == 0


class IngestSummary(MutableModel):
    """Per-symbol reports for an ingestion run."""

    reports: list[SymbolIngestReport] = Field(default_factory=list)
    cancelled: bool = False

    def report_for(self, symbol: str) -> SymbolIngestReport:
        for report in self.reports:
            if report.symbol == symbol:
                return report
        raise KeyError(symbol)

    @property
    def points_written(self) -> int:
        return sum(r.points_written for r in self.reports)

    @property
    def failed_symbols(self) -> list[Symbol]:
        return [r.symbol for r in self.reports if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.cancelled and all(r.ok for r in self.reports)


# ---------------------------------------------------------------------------
# Configuration Types
# ---------------------------------------------------------------------------


class StoreConfig(FrozenModel):
    """Connection settings for the time-series store.

    :param host: InfluxDB host name.
    :param port: InfluxDB HTTP port.
    :param database: Database the points live in.
    :param measurement: Measurement holding the price points.
    :param username: Optional user name.
    :param password: Optional password.
    :param ssl: Whether to use HTTPS.
    :param verify_ssl: Whether to verify the server certificate.
    :param timeout: Request timeout in seconds.
    """

    host: str = "localhost"
    port: int = Field(default=8086, gt=0, lt=65536)
    database: str = "stocks"
    measurement: str = Field(default="stock_prices", min_length=1)
    username: str | None = None
    password: str | None = None
    ssl: bool = False
    verify_ssl: bool = True
    timeout: float = Field(default=10.0, gt=0)


class IngestConfig(FrozenModel):
    """Settings for an ingestion run.

    :param symbols: Symbols to ingest.
    :param interval: History window to fetch for each symbol.
    :param data_source: Source type ("yahoo" or "csv").
    :param source_params: Source-specific parameters.
    :param batch_size: Points per write call, None for one call per symbol.
    :param max_workers: Symbols ingested concurrently.
    :param retry_attempts: Write attempts per batch.
    :param retry_initial_wait: First backoff wait in seconds.
    :param retry_max_wait: Upper bound on a single backoff wait.
    :param timeout: Overall deadline for the run in seconds, None for none.
    """

    symbols: list[Symbol] = Field(default_factory=list)
    interval: Interval = Interval.SIX_MONTHS
    data_source: str = "yahoo"
    source_params: dict[str, Any] = Field(default_factory=dict)
    batch_size: int | None = Field(default=None, gt=0)
    max_workers: int = Field(default=4, gt=0)
    retry_attempts: int = Field(default=3, gt=0)
    retry_initial_wait: float = Field(default=0.5, ge=0)
    retry_max_wait: float = Field(default=8.0, ge=0)
    timeout: float | None = Field(default=None, gt=0)


class AppConfig(FrozenModel):
    """Top-level configuration file contents."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    ingest: IngestConfig = Field(default_factory=IngestConfig)
    log_level: str = "INFO"
