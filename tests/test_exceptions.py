"""Tests for the pricestore exception hierarchy."""

import pytest

from pricestore.exceptions import (
    AmbiguousSeriesError,
    ConfigError,
    ExtractError,
    FetchError,
    IngestError,
    InvalidPriceError,
    InvalidRangeError,
    NoDataError,
    PriceStoreError,
    QueryBuildError,
    StoreQueryError,
    TimestampOverflowError,
    TranslationError,
    WriteError,
)


def test_pricestore_error_is_base_exception() -> None:
    """PriceStoreError should be catchable as Exception."""
    with pytest.raises(Exception):
        raise PriceStoreError("test error")


@pytest.mark.parametrize(
    "error_class",
    [
        ConfigError,
        FetchError,
        TimestampOverflowError,
        InvalidPriceError,
        WriteError,
        StoreQueryError,
        QueryBuildError,
        InvalidRangeError,
        ExtractError,
        IngestError,
    ],
)
def test_errors_inherit_from_pricestore_error(error_class: type) -> None:
    """Every error should be catchable as PriceStoreError."""
    with pytest.raises(PriceStoreError):
        raise error_class("failed")


def test_no_data_and_ambiguous_are_extract_errors() -> None:
    """Result-shape errors share the ExtractError base."""
    assert issubclass(NoDataError, ExtractError)
    assert issubclass(AmbiguousSeriesError, ExtractError)
    assert not issubclass(NoDataError, StoreQueryError)


def test_invalid_range_is_not_a_value_error() -> None:
    """InvalidRangeError must escape pydantic validation unwrapped."""
    assert not issubclass(InvalidRangeError, ValueError)


def test_exception_messages_preserved() -> None:
    """Exception messages should be accessible via str()."""
    msg = "detailed error message"
    err = FetchError(msg)
    assert str(err) == msg


def test_bar_errors_share_translation_base() -> None:
    """Per-bar problems are caught together when translating."""
    assert issubclass(TimestampOverflowError, TranslationError)
    assert issubclass(InvalidPriceError, TranslationError)
