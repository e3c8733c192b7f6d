"""pricestore package root."""

from pricestore.exceptions import PriceStoreError

__version__ = "0.1.0"

__all__ = ["PriceStoreError", "__version__"]
