"""Execution of the ingest command."""

from __future__ import annotations

import threading
from typing import Sequence

from pricestore.data.sources import resolve_data_source
from pricestore.exceptions import ConfigError
from pricestore.pipeline import IngestionPipeline
from pricestore.store import TimeSeriesStore
from pricestore.types import IngestConfig, IngestSummary, Symbol


def run_ingest(
    config: IngestConfig,
    store: TimeSeriesStore,
    symbols: Sequence[str] | None = None,
    cancel: threading.Event | None = None,
) -> IngestSummary:
    """Ingest the configured (or explicitly given) symbols into the store.

    :param config: Ingest settings.
    :param store: Destination store.
    :param symbols: Symbols overriding ``config.symbols``.
    :param cancel: Event that abandons outstanding work when set.
    :raises ConfigError: If no symbols are configured.
    :raises FetchError: If the data source cannot be constructed.
    """
    chosen = [Symbol(s) for s in (symbols or config.symbols)]
    if not chosen:
        raise ConfigError("No symbols to ingest; pass them or set 'ingest.symbols'")

    source = resolve_data_source(config.data_source, config.source_params)
    pipeline = IngestionPipeline.from_config(config, source, store)
    return pipeline.ingest(
        chosen, interval=config.interval, cancel=cancel, timeout=config.timeout
    )


def format_summary(summary: IngestSummary) -> list[str]:
    """Render one line per symbol plus a totals line."""
    lines = [
        f"{'Symbol':<10} {'Fetched':>8} {'Written':>8} {'Skipped':>8} "
        f"{'Incompl.':>8} {'Failed':>7}"
    ]
    for r in summary.reports:
        lines.append(
            f"{r.symbol:<10} {r.bars_fetched:>8} {r.points_written:>8} "
            f"{r.points_skipped:>8} {r.points_incomplete:>8} {r.batches_failed:>7}"
        )
        for error in r.errors:
            lines.append(f"    ! {error}")
    status = "cancelled" if summary.cancelled else ("ok" if summary.ok else "partial")
    lines.append(f"Total written: {summary.points_written} ({status})")
    return lines
