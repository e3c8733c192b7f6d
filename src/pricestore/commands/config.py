"""Configuration loading for all commands.

Example config file (pricestore.yaml):

    store:
      host: "localhost"
      port: 8086
      database: "stocks"
      measurement: "stock_prices"
      username: null
      password: null
      ssl: false
      timeout: 10
    ingest:
      symbols:
        - "AAPL"
        - "MSFT"
      interval: "6mo"
      data_source: "yahoo"
      source_params: {}
      batch_size: null  # One write per symbol
      max_workers: 4
      retry_attempts: 3
      retry_initial_wait: 0.5
      retry_max_wait: 8.0
      timeout: null
    logging:
      level: "INFO"

Every section is optional. ``INFLUX_*`` environment variables override the
store section.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from pricestore.exceptions import ConfigError
from pricestore.types import AppConfig, IngestConfig, StoreConfig

# Valid log levels
VALID_LOG_LEVELS = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])

# Environment variable -> store setting
ENV_OVERRIDES = {
    "INFLUX_HOST": "host",
    "INFLUX_PORT": "port",
    "INFLUX_DATABASE": "database",
    "INFLUX_MEASUREMENT": "measurement",
    "INFLUX_USERNAME": "username",
    "INFLUX_PASSWORD": "password",
}

VALID_DATA_SOURCES = frozenset(["yahoo", "csv"])


def _section(raw_config: Mapping[str, Any], name: str) -> dict[str, Any]:
    section = raw_config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return dict(section)


def _format_validation_error(section: str, error: ValidationError) -> str:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in error.errors()
    )
    return f"Invalid '{section}' configuration: {problems}"


def _read_yaml(config_path: Path) -> dict[str, Any]:
    try:
        with open(config_path) as f:
            raw_config = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {config_path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in configuration file: {e}") from e

    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Configuration must be a YAML mapping")
    return raw_config


def load_config(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Parse and validate the configuration file and environment.

    :param config_path: Path to YAML configuration file, or None for defaults.
    :param environ: Environment to read overrides from, defaults to os.environ.
    :returns: Validated AppConfig object.
    :raises ConfigError: If the file cannot be read or the config is invalid.
    """
    raw_config = _read_yaml(Path(config_path)) if config_path is not None else {}
    environ = os.environ if environ is None else environ

    store_raw = _section(raw_config, "store")
    for env_name, key in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value:
            store_raw[key] = value

    try:
        store = StoreConfig(**store_raw)
    except ValidationError as e:
        raise ConfigError(_format_validation_error("store", e)) from e
    except TypeError as e:
        raise ConfigError(f"Invalid 'store' configuration: {e}") from e

    ingest_raw = _section(raw_config, "ingest")
    data_source = ingest_raw.get("data_source", "yahoo")
    if data_source not in VALID_DATA_SOURCES:
        raise ConfigError(
            f"Invalid data_source '{data_source}'. "
            f"Valid options: {sorted(VALID_DATA_SOURCES)}"
        )
    raw_symbols = ingest_raw.get("symbols", [])
    if not isinstance(raw_symbols, list):
        raise ConfigError("'ingest.symbols' must be a list")
    if any(not isinstance(s, str) or not s for s in raw_symbols):
        raise ConfigError("'ingest.symbols' must contain non-empty strings")

    try:
        ingest = IngestConfig(**ingest_raw)
    except ValidationError as e:
        raise ConfigError(_format_validation_error("ingest", e)) from e
    except TypeError as e:
        raise ConfigError(f"Invalid 'ingest' configuration: {e}") from e

    raw_logging = _section(raw_config, "logging")
    log_level = str(raw_logging.get("level", "INFO")).upper()
    if log_level not in VALID_LOG_LEVELS:
        raise ConfigError(
            f"Invalid log level '{log_level}'. "
            f"Valid options: {sorted(VALID_LOG_LEVELS)}"
        )

    return AppConfig(store=store, ingest=ingest, log_level=log_level)
