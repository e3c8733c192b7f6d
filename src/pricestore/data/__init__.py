"""Market-data sources."""

from pricestore.data.sources import (
    CSVDataSource,
    MarketDataSource,
    YahooDataSource,
    resolve_data_source,
)

__all__ = [
    "MarketDataSource",
    "YahooDataSource",
    "CSVDataSource",
    "resolve_data_source",
]
