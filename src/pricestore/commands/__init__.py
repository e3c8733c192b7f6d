"""CLI command implementations for pricestore.

Each command module provides:
- Argument or configuration parsing and validation
- Command execution logic
- Integration with core library functions
"""

from pricestore.commands.config import load_config
from pricestore.commands.ingest import run_ingest
from pricestore.commands.query import build_query_spec, run_aggregate_query

__all__ = [
    "load_config",
    "run_ingest",
    "build_query_spec",
    "run_aggregate_query",
]
