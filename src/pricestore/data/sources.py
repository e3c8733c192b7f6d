"""Market-data source implementations.

This module provides an abstract interface for market-data sources and
concrete implementations for Yahoo Finance and CSV files.
"""

from __future__ import annotations

import csv
import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pricestore.exceptions import FetchError
from pricestore.types import Bar, Interval, Symbol

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _epoch_millis(ts: datetime) -> int:
    """Whole milliseconds since the epoch for an aware datetime."""
    return (ts - _EPOCH) // timedelta(milliseconds=1)


def _optional_volume(value: Any) -> int | None:
    """Convert a volume cell to int, mapping blanks and NaN to None."""
    if value is None or value == "":
        return None
    number = float(value)
    if math.isnan(number):
        return None
    return int(number)


class MarketDataSource(ABC):
    """Abstract base class for market-data sources.

    All source implementations must inherit from this class and implement
    the `fetch` method.
    """

    @abstractmethod
    def fetch(self, symbol: Symbol, interval: Interval) -> list[Bar]:
        """Fetch historical bars for one symbol.

        :param symbol: Symbol to fetch.
        :param interval: History window to fetch, ending now.
        :returns: Bars in chronological order.
        :raises FetchError: If the source cannot supply the bars.
        """
        ...


class YahooDataSource(MarketDataSource):
    """Data source that fetches history from Yahoo Finance via yfinance.

    :param source_params: Optional parameters for configuring the source.
        - granularity: Bar size (default: "1d")
        - timeout: Request timeout in seconds (default: 30)
    """

    VALID_GRANULARITIES = frozenset([
        "1m", "2m", "5m", "15m", "30m", "60m", "90m",
        "1h", "1d", "5d", "1wk", "1mo", "3mo",
    ])

    def __init__(self, source_params: dict[str, Any] | None = None) -> None:
        self.params = source_params or {}
        self.granularity = self.params.get("granularity", "1d")
        self.timeout = self.params.get("timeout", 30)
        if self.granularity not in self.VALID_GRANULARITIES:
            raise FetchError(
                f"Unsupported granularity '{self.granularity}'. "
                f"Supported: {sorted(self.VALID_GRANULARITIES)}"
            )

    def fetch(self, symbol: Symbol, interval: Interval) -> list[Bar]:
        """Fetch bars from Yahoo Finance.

        :param symbol: Symbol to fetch.
        :param interval: History window to fetch.
        :returns: List of Bar objects.
        :raises FetchError: If fetching fails.
        """
        try:
            import yfinance as yf
        except ImportError as e:
            raise FetchError(
                "yfinance is not installed. Install it with: pip install yfinance"
            ) from e

        period = Interval(interval).value
        try:
            ticker = yf.Ticker(str(symbol))
            df = ticker.history(
                period=period,
                interval=self.granularity,
                timeout=self.timeout,
            )
        except Exception as e:
            raise FetchError(f"Failed to fetch data for symbol '{symbol}': {e}") from e

        if df is None or df.empty:
            logger.warning("No data returned for %s over %s", symbol, period)
            return []

        bars: list[Bar] = []
        try:
            for timestamp, row in df.iterrows():
                # yfinance returns timezone-aware timestamps
                ts = timestamp.to_pydatetime()
                if ts.tzinfo is None:
                    ts = ts.replace(tzinfo=timezone.utc)
                bars.append(
                    Bar(
                        timestamp=_epoch_millis(ts),
                        open=float(row["Open"]),
                        high=float(row["High"]),
                        low=float(row["Low"]),
                        close=float(row["Close"]),
                        volume=_optional_volume(row.get("Volume")),
                    )
                )
        except (KeyError, ValueError) as e:
            raise FetchError(f"Malformed data for symbol '{symbol}': {e}") from e

        return bars


class CSVDataSource(MarketDataSource):
    """Data source that reads bars from a CSV file.

    Expected CSV format (default columns):
    - timestamp: Epoch milliseconds or ISO format datetime string
    - open, high, low, close: Prices
    - volume: Trading volume (optional, blank for unknown)
    - symbol: Symbol (optional; when present, rows are filtered by it)

    The interval is ignored; the file holds whatever history it holds.

    :param source_params: Required parameters:
        - file_path: Path to the CSV file.
        Optional parameters:
        - delimiter: CSV delimiter (default: ",")
        - symbol_col, timestamp_col, open_col, high_col, low_col, close_col,
          volume_col: Column name overrides.
    """

    def __init__(self, source_params: dict[str, Any] | None = None) -> None:
        self.params = source_params or {}
        self.file_path = self.params.get("file_path")
        if not self.file_path:
            raise FetchError("CSVDataSource requires 'file_path' in source_params")

        self.symbol_col = self.params.get("symbol_col", "symbol")
        self.timestamp_col = self.params.get("timestamp_col", "timestamp")
        self.open_col = self.params.get("open_col", "open")
        self.high_col = self.params.get("high_col", "high")
        self.low_col = self.params.get("low_col", "low")
        self.close_col = self.params.get("close_col", "close")
        self.volume_col = self.params.get("volume_col", "volume")
        self.delimiter = self.params.get("delimiter", ",")

    @staticmethod
    def _parse_timestamp(value: str) -> int:
        value = value.strip()
        if value.lstrip("-").isdigit():
            return int(value)
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return _epoch_millis(ts)

    def fetch(self, symbol: Symbol, interval: Interval) -> list[Bar]:
        """Read the bars for one symbol from the CSV file.

        :param symbol: Symbol to select when the file has a symbol column.
        :param interval: Ignored for CSV source.
        :returns: List of Bar objects sorted by timestamp.
        :raises FetchError: If reading or parsing fails.
        """
        path = Path(self.file_path)
        if not path.exists():
            raise FetchError(f"CSV file not found: {self.file_path}")

        bars: list[Bar] = []
        try:
            with open(path, newline="", encoding="utf-8") as f:
                reader = csv.DictReader(f, delimiter=self.delimiter)
                for row in reader:
                    row_symbol = row.get(self.symbol_col)
                    if row_symbol is not None and row_symbol != str(symbol):
                        continue
                    try:
                        bars.append(
                            Bar(
                                timestamp=self._parse_timestamp(row[self.timestamp_col]),
                                open=float(row[self.open_col]),
                                high=float(row[self.high_col]),
                                low=float(row[self.low_col]),
                                close=float(row[self.close_col]),
                                volume=_optional_volume(row.get(self.volume_col)),
                            )
                        )
                    except (KeyError, ValueError, TypeError, AttributeError) as e:
                        raise FetchError(f"Failed to parse row {row}: {e}") from e
        except csv.Error as e:
            raise FetchError(f"CSV parsing error: {e}") from e
        except OSError as e:
            raise FetchError(f"Failed to read CSV file: {e}") from e

        bars.sort(key=lambda b: b.timestamp)
        return bars


def resolve_data_source(
    data_source: str, source_params: dict[str, Any] | None = None
) -> MarketDataSource:
    """Construct a data source by name.

    :param data_source: Source type ("yahoo" or "csv").
    :param source_params: Source-specific parameters.
    :returns: MarketDataSource instance for the specified type.
    :raises FetchError: If the source type is unrecognized.
    """
    source_type = data_source.lower()

    if source_type == "yahoo":
        return YahooDataSource(source_params)
    elif source_type == "csv":
        return CSVDataSource(source_params)
    else:
        raise FetchError(
            f"Unrecognized data source type: '{data_source}'. "
            f"Supported types: yahoo, csv"
        )
