"""Tests for command configuration loading and execution."""

from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml

from fakes import FakeSource, FakeStore, bar_at, msft_bars
from pricestore.commands.config import load_config
from pricestore.commands.ingest import format_summary, run_ingest
from pricestore.commands.query import (
    build_query_spec,
    format_result,
    parse_cli_datetime,
    run_aggregate_query,
)
from pricestore.exceptions import (
    AmbiguousSeriesError,
    ConfigError,
    InvalidRangeError,
    NoDataError,
)
from pricestore.pipeline import IngestionPipeline, RetryPolicy
from pricestore.types import (
    AggregateQuerySpec,
    IngestConfig,
    Interval,
    Operation,
    Symbol,
)

MEASUREMENT = "stock_prices"


def loaded_store(bars_by_symbol: dict) -> FakeStore:
    """Store populated through the real ingestion pipeline."""
    store = FakeStore(MEASUREMENT)
    pipeline = IngestionPipeline(
        FakeSource(bars_by_symbol), store, retry=RetryPolicy(initial_wait=0, max_wait=0)
    )
    summary = pipeline.ingest([Symbol(s) for s in bars_by_symbol])
    assert summary.ok
    return store


def spec(operation: str, symbol: str, start: str, end: str) -> AggregateQuerySpec:
    return build_query_spec(operation, symbol, start, end)


class TestParseCliDatetime:
    """Tests for command-line datetime parsing."""

    def test_parse(self) -> None:
        assert parse_cli_datetime("2022-06-10 00:00:00") == datetime(
            2022, 6, 10, tzinfo=timezone.utc
        )

    def test_surrounding_whitespace(self) -> None:
        assert parse_cli_datetime(" 2022-06-10 13:30:00 ").hour == 13

    @pytest.mark.parametrize("value", ["2022-06-10", "2022/06/10 00:00:00", "tomorrow"])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(ConfigError, match="YYYY-MM-DD HH:MM:SS"):
            parse_cli_datetime(value)


class TestBuildQuerySpec:
    """Tests for turning CLI values into a query request."""

    def test_valid(self) -> None:
        result = spec("max", "MSFT", "2022-06-10 00:00:00", "2022-07-12 00:00:00")
        assert result.operation is Operation.MAX
        assert result.end == datetime(2022, 7, 12, tzinfo=timezone.utc)

    def test_empty_symbol(self) -> None:
        with pytest.raises(ConfigError, match="symbol"):
            spec("max", "", "2022-06-10 00:00:00", "2022-07-12 00:00:00")

    def test_reversed_range(self) -> None:
        with pytest.raises(InvalidRangeError):
            spec("min", "MSFT", "2022-07-12 00:00:00", "2022-06-10 00:00:00")


class TestRunAggregateQuery:
    """End-to-end query tests against the in-memory store."""

    def test_msft_scenario_min(self) -> None:
        store = loaded_store({"MSFT": msft_bars()})

        result = run_aggregate_query(
            store,
            spec("min", "MSFT", "2022-06-10 00:00:00", "2022-07-12 00:00:00"),
            MEASUREMENT,
        )

        assert result.time == datetime(2022, 6, 14, 13, 30, tzinfo=timezone.utc)
        assert result.value == 241.51

    def test_msft_scenario_max(self) -> None:
        store = loaded_store({"MSFT": msft_bars()})

        result = run_aggregate_query(
            store,
            spec("max", "MSFT", "2022-06-10 00:00:00", "2022-07-12 00:00:00"),
            MEASUREMENT,
        )

        assert result.time == datetime(2022, 7, 7, 13, 30, tzinfo=timezone.utc)
        assert result.value == 269.06

    def test_extremum_read_from_high_and_low_not_close(self) -> None:
        """Max reports the bar's high and min its low, even when close differs."""
        bars = [
            bar_at(datetime(2024, 1, 2, 14, 30, tzinfo=timezone.utc), high=110.0, low=90.0, close=200.0),
            bar_at(datetime(2024, 1, 3, 14, 30, tzinfo=timezone.utc), high=120.0, low=95.0, close=10.0),
        ]
        store = loaded_store({"AAPL": bars})

        high = run_aggregate_query(
            store, spec("max", "AAPL", "2024-01-01 00:00:00", "2024-01-04 00:00:00"), MEASUREMENT
        )
        low = run_aggregate_query(
            store, spec("min", "AAPL", "2024-01-01 00:00:00", "2024-01-04 00:00:00"), MEASUREMENT
        )

        assert high.value == 120.0
        assert low.value == 90.0

    def test_half_open_range(self) -> None:
        """A sample at start is included and a sample at end is excluded."""
        bars = [
            bar_at(datetime(2024, 1, 2, 14, 30, tzinfo=timezone.utc), high=100.0, low=50.0),
            bar_at(datetime(2024, 1, 3, 14, 30, tzinfo=timezone.utc), high=300.0, low=10.0),
        ]
        store = loaded_store({"AAPL": bars})
        query_spec = spec("max", "AAPL", "2024-01-02 14:30:00", "2024-01-03 14:30:00")

        high = run_aggregate_query(store, query_spec, MEASUREMENT)
        low = run_aggregate_query(
            store, query_spec.model_copy(update={"operation": Operation.MIN}), MEASUREMENT
        )

        assert high.value == 100.0
        assert high.time == datetime(2024, 1, 2, 14, 30, tzinfo=timezone.utc)
        assert low.value == 50.0

    def test_symbol_filter(self) -> None:
        store = loaded_store({"MSFT": msft_bars(), "AAPL": [
            bar_at(datetime(2022, 6, 20, 13, 30, tzinfo=timezone.utc), high=999.0, low=1.0)
        ]})

        result = run_aggregate_query(
            store,
            spec("max", "MSFT", "2022-06-10 00:00:00", "2022-07-12 00:00:00"),
            MEASUREMENT,
        )

        assert result.value == 269.06

    def test_quoted_symbol_filters_literally(self) -> None:
        """A symbol with quotes matches only the identically named series."""
        tricky = "MSFT' OR symbol != '"
        store = loaded_store({
            "MSFT": msft_bars(),
            tricky: [bar_at(datetime(2022, 6, 20, 13, 30, tzinfo=timezone.utc), high=5.0, low=4.0)],
        })

        result = run_aggregate_query(
            store,
            spec("max", tricky, "2022-06-10 00:00:00", "2022-07-12 00:00:00"),
            MEASUREMENT,
        )

        assert result.value == 5.0
        assert tricky not in store.queries[-1].text

    def test_quoted_symbol_without_data(self) -> None:
        store = loaded_store({"MSFT": msft_bars()})

        with pytest.raises(NoDataError):
            run_aggregate_query(
                store,
                spec("max", "MSFT' OR '1'='1", "2022-06-10 00:00:00", "2022-07-12 00:00:00"),
                MEASUREMENT,
            )

    def test_empty_range(self) -> None:
        store = loaded_store({"MSFT": msft_bars()})

        with pytest.raises(NoDataError):
            run_aggregate_query(
                store,
                spec("min", "MSFT", "2023-01-01 00:00:00", "2023-02-01 00:00:00"),
                MEASUREMENT,
            )

    def test_ambiguous_series_propagates(self) -> None:
        class TwoSeriesStore(FakeStore):
            def query(self, query):
                return {
                    "series": [
                        {"name": "a", "columns": ["time", "max"], "values": [[1, 1.0]]},
                        {"name": "b", "columns": ["time", "max"], "values": [[2, 2.0]]},
                    ]
                }

        with pytest.raises(AmbiguousSeriesError):
            run_aggregate_query(
                TwoSeriesStore(),
                spec("max", "MSFT", "2022-06-10 00:00:00", "2022-07-12 00:00:00"),
                MEASUREMENT,
            )

    def test_format_result(self) -> None:
        store = loaded_store({"MSFT": msft_bars()})
        query_spec = spec("min", "MSFT", "2022-06-10 00:00:00", "2022-07-12 00:00:00")

        line = format_result(query_spec, run_aggregate_query(store, query_spec, MEASUREMENT))

        assert line == "min MSFT 2022-06-14T13:30:00Z 241.51"


class TestLoadConfig:
    """Tests for configuration loading."""

    def test_defaults_without_file(self) -> None:
        config = load_config(None, environ={})
        assert config.store.host == "localhost"
        assert config.ingest.interval is Interval.SIX_MONTHS
        assert config.ingest.max_workers == 4
        assert config.log_level == "INFO"

    def test_load_valid_config(self, tmp_path: Path) -> None:
        raw = {
            "store": {"host": "influx", "port": 9999, "database": "prices"},
            "ingest": {
                "symbols": ["AAPL", "MSFT"],
                "interval": "1y",
                "batch_size": 500,
                "retry_attempts": 5,
            },
            "logging": {"level": "debug"},
        }
        config_file = tmp_path / "pricestore.yaml"
        config_file.write_text(yaml.dump(raw))

        config = load_config(config_file, environ={})

        assert config.store.host == "influx"
        assert config.store.port == 9999
        assert config.ingest.symbols == ["AAPL", "MSFT"]
        assert config.ingest.interval is Interval.ONE_YEAR
        assert config.ingest.batch_size == 500
        assert config.ingest.retry_attempts == 5
        assert config.log_level == "DEBUG"

    def test_empty_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        assert load_config(config_file, environ={}).store.port == 8086

    def test_environment_overrides(self, tmp_path: Path) -> None:
        config_file = tmp_path / "pricestore.yaml"
        config_file.write_text(yaml.dump({"store": {"host": "file-host"}}))

        config = load_config(
            config_file,
            environ={"INFLUX_HOST": "env-host", "INFLUX_PORT": "8087", "INFLUX_PASSWORD": "pw"},
        )

        assert config.store.host == "env-host"
        assert config.store.port == 8087
        assert config.store.password == "pw"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.yaml", environ={})

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("store: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(config_file, environ={})

    def test_non_mapping(self, tmp_path: Path) -> None:
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(config_file, environ={})

    def test_section_not_mapping(self, tmp_path: Path) -> None:
        config_file = tmp_path / "bad.yaml"
        config_file.write_text(yaml.dump({"store": "localhost"}))
        with pytest.raises(ConfigError, match="'store' must be a mapping"):
            load_config(config_file, environ={})

    def test_invalid_port(self, tmp_path: Path) -> None:
        config_file = tmp_path / "bad.yaml"
        config_file.write_text(yaml.dump({"store": {"port": 0}}))
        with pytest.raises(ConfigError, match="Invalid 'store' configuration: port"):
            load_config(config_file, environ={})

    def test_unknown_interval(self, tmp_path: Path) -> None:
        config_file = tmp_path / "bad.yaml"
        config_file.write_text(yaml.dump({"ingest": {"interval": "7mo"}}))
        with pytest.raises(ConfigError, match="Invalid 'ingest' configuration"):
            load_config(config_file, environ={})

    def test_invalid_data_source(self, tmp_path: Path) -> None:
        config_file = tmp_path / "bad.yaml"
        config_file.write_text(yaml.dump({"ingest": {"data_source": "bloomberg"}}))
        with pytest.raises(ConfigError, match="Invalid data_source"):
            load_config(config_file, environ={})

    def test_invalid_symbols(self, tmp_path: Path) -> None:
        config_file = tmp_path / "bad.yaml"
        config_file.write_text(yaml.dump({"ingest": {"symbols": ["AAPL", ""]}}))
        with pytest.raises(ConfigError, match="non-empty strings"):
            load_config(config_file, environ={})

    def test_invalid_log_level(self, tmp_path: Path) -> None:
        config_file = tmp_path / "bad.yaml"
        config_file.write_text(yaml.dump({"logging": {"level": "LOUD"}}))
        with pytest.raises(ConfigError, match="Invalid log level"):
            load_config(config_file, environ={})


class TestRunIngest:
    """Tests for the ingest command."""

    def test_requires_symbols(self) -> None:
        with pytest.raises(ConfigError, match="No symbols"):
            run_ingest(IngestConfig(), FakeStore())

    def test_csv_ingest_then_query(self, tmp_path: Path) -> None:
        csv_file = tmp_path / "msft.csv"
        csv_file.write_text(
            "timestamp,open,high,low,close,volume\n"
            "2022-06-14T13:30:00Z,243.86,245.74,241.51,244.49,28651500\n"
            "2022-07-07T13:30:00Z,265.12,269.06,265.02,268.40,20859900\n"
        )
        config = IngestConfig(
            symbols=[Symbol("MSFT")],
            data_source="csv",
            source_params={"file_path": str(csv_file)},
            retry_initial_wait=0,
        )
        store = FakeStore(MEASUREMENT)

        summary = run_ingest(config, store)

        assert summary.ok
        assert summary.points_written == 2
        result = run_aggregate_query(
            store,
            spec("max", "MSFT", "2022-06-01 00:00:00", "2022-08-01 00:00:00"),
            MEASUREMENT,
        )
        assert result.value == 269.06

    def test_explicit_symbols_override_config(self, tmp_path: Path) -> None:
        csv_file = tmp_path / "bars.csv"
        csv_file.write_text(
            "symbol,timestamp,open,high,low,close,volume\n"
            "AAPL,1000,1,2,0.5,1.5,10\n"
        )
        config = IngestConfig(
            symbols=[Symbol("MSFT")],
            data_source="csv",
            source_params={"file_path": str(csv_file)},
        )

        summary = run_ingest(config, FakeStore(), symbols=["AAPL"])

        assert [r.symbol for r in summary.reports] == ["AAPL"]
        assert summary.points_written == 1

    def test_format_summary(self) -> None:
        store = FakeStore()
        pipeline = IngestionPipeline(
            FakeSource({"MSFT": msft_bars()}, failing={"AAPL": "rate limited"}),
            store,
            retry=RetryPolicy(initial_wait=0, max_wait=0),
        )
        summary = pipeline.ingest([Symbol("AAPL"), Symbol("MSFT")])

        lines = format_summary(summary)

        assert lines[0].startswith("Symbol")
        assert any(line.startswith("AAPL") for line in lines)
        assert any("rate limited" in line for line in lines)
        assert lines[-1] == f"Total written: {len(msft_bars())} (partial)"
