"""Ingestion pipeline: fetch bars, translate them, write points.

Failures are contained per unit of work. A symbol whose fetch fails, a bar
that cannot be translated or a batch that keeps failing to write is recorded
in the :class:`~pricestore.types.IngestSummary` and the run moves on.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Iterator, Sequence

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    stop_any,
    wait_exponential,
)

from pricestore.data.sources import MarketDataSource
from pricestore.exceptions import FetchError, IngestError, WriteError
from pricestore.store import TimeSeriesStore
from pricestore.translate import translate_bars
from pricestore.types import (
    FrozenModel,
    IngestConfig,
    IngestSummary,
    Interval,
    Point,
    Symbol,
    SymbolIngestReport,
)

logger = logging.getLogger(__name__)


class RetryPolicy(FrozenModel):
    """Bounded exponential backoff for batch writes.

    :param attempts: Total write attempts per batch.
    :param initial_wait: Wait before the second attempt, in seconds.
    :param max_wait: Upper bound on any single wait, in seconds.
    """

    attempts: int = 3
    initial_wait: float = 0.5
    max_wait: float = 8.0


class _Cancelled(Exception):
    """Internal signal that the run was cancelled between write attempts."""


def _batches(points: Sequence[Point], size: int | None) -> Iterator[Sequence[Point]]:
    if size is None:
        if points:
            yield points
        return
    for i in range(0, len(points), size):
        yield points[i : i + size]


class IngestionPipeline:
    """Fetches bars for symbols and writes them to a store.

    :param source: Market-data source.
    :param store: Time-series store; shared by all workers.
    :param batch_size: Points per write call, None for one call per symbol.
    :param max_workers: Symbols processed concurrently.
    :param retry: Backoff policy for failed batch writes.
    """

    def __init__(
        self,
        source: MarketDataSource,
        store: TimeSeriesStore,
        batch_size: int | None = None,
        max_workers: int = 4,
        retry: RetryPolicy | None = None,
    ) -> None:
        if batch_size is not None and batch_size < 1:
            raise IngestError(f"batch_size must be positive, got {batch_size}")
        if max_workers < 1:
            raise IngestError(f"max_workers must be positive, got {max_workers}")
        self.source = source
        self.store = store
        self.batch_size = batch_size
        self.max_workers = max_workers
        self.retry = retry or RetryPolicy()
        if self.retry.attempts < 1:
            raise IngestError(
                f"retry attempts must be positive, got {self.retry.attempts}"
            )

    @classmethod
    def from_config(
        cls, config: IngestConfig, source: MarketDataSource, store: TimeSeriesStore
    ) -> IngestionPipeline:
        """Build a pipeline from the ingest section of the configuration."""
        return cls(
            source=source,
            store=store,
            batch_size=config.batch_size,
            max_workers=config.max_workers,
            retry=RetryPolicy(
                attempts=config.retry_attempts,
                initial_wait=config.retry_initial_wait,
                max_wait=config.retry_max_wait,
            ),
        )

    def ingest(
        self,
        symbols: Sequence[Symbol],
        interval: Interval = Interval.SIX_MONTHS,
        cancel: threading.Event | None = None,
        timeout: float | None = None,
    ) -> IngestSummary:
        """Ingest every symbol, containing failures per symbol.

        :param symbols: Symbols to ingest; duplicates are ingested once.
        :param interval: History window to fetch for each symbol.
        :param cancel: Event that abandons outstanding work when set.
        :param timeout: Seconds after which the run is cancelled.
        :returns: Summary with one report per symbol, in input order.
        :raises IngestError: If no symbols were given.
        """
        unique = list(dict.fromkeys(Symbol(str(s)) for s in symbols))
        if not unique:
            raise IngestError("No symbols to ingest")
        interval = Interval(interval)
        cancel = cancel or threading.Event()

        logger.info(
            "Ingesting %d symbols over %s with %d workers",
            len(unique), interval.value, min(self.max_workers, len(unique)),
        )
        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(unique)),
            thread_name_prefix="ingest",
        ) as pool:
            # Reports live here so a crashing worker keeps its partial counts
            reports = [SymbolIngestReport(symbol=symbol) for symbol in unique]
            futures = [
                pool.submit(self._ingest_symbol, report, interval, cancel)
                for report in reports
            ]
            try:
                _, pending = wait(futures, timeout=timeout)
            except KeyboardInterrupt:
                logger.warning("Interrupted, abandoning outstanding batches")
                cancel.set()
                pending = set()
            if pending:
                logger.warning(
                    "Ingestion timed out after %ss, cancelling %d symbols",
                    timeout, len(pending),
                )
                cancel.set()

        for report, future in zip(reports, futures):
            try:
                future.result()
            except Exception as e:
                logger.exception("Unexpected failure ingesting %s", report.symbol)
                report.errors.append(f"{type(e).__name__}: {e}")

        summary = IngestSummary(reports=reports, cancelled=cancel.is_set())
        logger.info(
            "Ingestion finished: %d points written, failed symbols: %s",
            summary.points_written, summary.failed_symbols or "none",
        )
        return summary

    def _ingest_symbol(
        self,
        report: SymbolIngestReport,
        interval: Interval,
        cancel: threading.Event,
    ) -> SymbolIngestReport:
        symbol = report.symbol
        if cancel.is_set():
            report.errors.append("Cancelled before fetch")
            return report

        try:
            bars = self.source.fetch(symbol, interval)
        except FetchError as e:
            logger.error("Fetch failed for %s: %s", symbol, e)
            report.errors.append(f"FetchError: {e}")
            return report
        report.bars_fetched = len(bars)

        points, skipped = translate_bars(bars, symbol)
        report.points_skipped = len(skipped)
        report.errors.extend(f"{type(e).__name__}: {e}" for e in skipped)

        batches = list(_batches(points, self.batch_size))
        for index, batch in enumerate(batches):
            if cancel.is_set():
                self._abandon(report, batches[index:])
                break
            try:
                self._write_with_retry(batch, cancel)
            except _Cancelled:
                self._abandon(report, batches[index:])
                break
            except WriteError as e:
                if cancel.is_set():
                    self._abandon(report, batches[index:])
                    break
                logger.error(
                    "Batch %d/%d for %s failed after %d attempts: %s",
                    index + 1, len(batches), symbol, self.retry.attempts, e,
                )
                report.batches_failed += 1
                report.errors.append(f"WriteError: {e}")
                continue
            report.points_written += len(batch)

        logger.info(
            "%s: fetched=%d written=%d skipped=%d incomplete=%d",
            symbol, report.bars_fetched, report.points_written,
            report.points_skipped, report.points_incomplete,
        )
        return report

    @staticmethod
    def _abandon(report: SymbolIngestReport, batches: Sequence[Sequence[Point]]) -> None:
        abandoned = sum(len(b) for b in batches)
        report.points_incomplete += abandoned
        report.errors.append(f"Cancelled with {abandoned} points unwritten")

    def _write_with_retry(self, batch: Sequence[Point], cancel: threading.Event) -> None:
        def _cancelled(retry_state: object) -> bool:
            return cancel.is_set()

        retrying = Retrying(
            stop=stop_any(stop_after_attempt(self.retry.attempts), _cancelled),
            wait=wait_exponential(
                multiplier=self.retry.initial_wait, max=self.retry.max_wait
            ),
            retry=retry_if_exception_type(WriteError),
            sleep=cancel.wait,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                if cancel.is_set():
                    raise _Cancelled()
                self.store.write(batch)
