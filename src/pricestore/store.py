"""Time-series store implementations.

This module provides the store interface used by the ingestion pipeline and
the query path, and an implementation backed by InfluxDB 1.x.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Sequence

import requests
from influxdb import InfluxDBClient
from influxdb.exceptions import InfluxDBClientError, InfluxDBServerError

from pricestore.exceptions import StoreQueryError, WriteError
from pricestore.types import AggregateQuery, Point, StoreConfig

logger = logging.getLogger(__name__)

# Failures the InfluxDB client surfaces for a request
_CLIENT_ERRORS = (InfluxDBClientError, InfluxDBServerError, requests.RequestException)


class TimeSeriesStore(ABC):
    """Abstract base class for time-series stores.

    Implementations must be safe to call from several threads at once.
    """

    @abstractmethod
    def write(self, points: Sequence[Point]) -> None:
        """Write a batch of points.

        :param points: Points to write, in non-decreasing time order.
        :raises WriteError: If the batch is not acknowledged.
        """
        ...

    @abstractmethod
    def query(self, query: AggregateQuery) -> dict[str, Any]:
        """Execute an aggregate query.

        :param query: Query text and bind parameters.
        :returns: Raw statement result (``{"series": [...]}``).
        :raises StoreQueryError: If the store rejects the query or is unreachable.
        """
        ...

    def ping(self) -> str:
        """Check connectivity and return the server version."""
        return "unknown"


class InfluxStore(TimeSeriesStore):
    """Store backed by the InfluxDB 1.x HTTP API.

    Each thread gets its own client so connection pools are never shared.

    :param config: Connection settings.
    :param client_factory: Callable building a client, defaults to
        :class:`influxdb.InfluxDBClient`.
    """

    def __init__(
        self,
        config: StoreConfig,
        client_factory: Callable[..., Any] | None = None,
    ) -> None:
        self.config = config
        self.measurement = config.measurement
        self._client_factory = client_factory or InfluxDBClient
        self._local = threading.local()

    def _client(self) -> Any:
        client = getattr(self._local, "client", None)
        if client is None:
            kwargs: dict[str, Any] = {
                "host": self.config.host,
                "port": self.config.port,
                "database": self.config.database,
                "ssl": self.config.ssl,
                "verify_ssl": self.config.verify_ssl,
                "timeout": self.config.timeout,
                # Retries are handled by the ingestion pipeline
                "retries": 1,
            }
            if self.config.username is not None:
                kwargs["username"] = self.config.username
            if self.config.password is not None:
                kwargs["password"] = self.config.password
            client = self._client_factory(**kwargs)
            self._local.client = client
        return client

    def write(self, points: Sequence[Point]) -> None:
        if not points:
            return
        body = [p.to_influx(self.measurement) for p in points]
        try:
            ok = self._client().write_points(body, time_precision="n")
        except _CLIENT_ERRORS as e:
            raise WriteError(f"Failed to write {len(body)} points: {e}") from e
        if ok is False:
            raise WriteError(f"Store did not acknowledge {len(body)} points")

    def query(self, query: AggregateQuery) -> dict[str, Any]:
        logger.debug("Executing query: %s params=%s", query.text, query.params)
        try:
            result = self._client().query(
                query.text,
                bind_params=dict(query.params),
                epoch="ns",
            )
        except _CLIENT_ERRORS as e:
            raise StoreQueryError(f"Query failed: {e}") from e
        return dict(result.raw)

    def ping(self) -> str:
        try:
            return str(self._client().ping())
        except _CLIENT_ERRORS as e:
            raise StoreQueryError(
                f"Cannot reach store at {self.config.host}:{self.config.port}: {e}"
            ) from e
