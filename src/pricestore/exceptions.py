"""Exception hierarchy for pricestore.

All pricestore exceptions derive from :class:`PriceStoreError` so callers can
catch every ingestion or query failure uniformly.
"""

from __future__ import annotations


class PriceStoreError(Exception):
    """Base class for pricestore exceptions."""


class ConfigError(PriceStoreError):
    """Raised when configuration files, environment or arguments are invalid."""


class FetchError(PriceStoreError):
    """Raised when a market-data source cannot supply bars for a symbol."""


class TranslationError(PriceStoreError):
    """Raised when a bar cannot be turned into a storable point."""


class TimestampOverflowError(TranslationError):
    """Raised when a bar timestamp does not fit the store's time range."""


class InvalidPriceError(TranslationError):
    """Raised when a bar carries a NaN or infinite price."""


class WriteError(PriceStoreError):
    """Raised when a batch of points cannot be written to the store."""


class StoreQueryError(PriceStoreError):
    """Raised when the store rejects a query or cannot be reached."""


class QueryBuildError(PriceStoreError):
    """Raised when a query cannot be rendered safely."""


class InvalidRangeError(PriceStoreError):
    """Raised when a query range does not satisfy ``start < end``."""


class ExtractError(PriceStoreError):
    """Raised when a query result cannot be mapped to an aggregate result."""


class AmbiguousSeriesError(ExtractError):
    """Raised when the store returns more than one series for a query."""


class NoDataError(ExtractError):
    """Raised when there is no data in the requested range."""


class IngestError(PriceStoreError):
    """Raised when an ingestion run cannot start."""


__all__ = [
    "PriceStoreError",
    "ConfigError",
    "FetchError",
    "TranslationError",
    "TimestampOverflowError",
    "InvalidPriceError",
    "WriteError",
    "StoreQueryError",
    "QueryBuildError",
    "InvalidRangeError",
    "ExtractError",
    "AmbiguousSeriesError",
    "NoDataError",
    "IngestError",
]
