"""Data module exports."""

from .providers import (
    InMemoryMarketDataProvider,
    MarketDataProvider,
    YFinanceProvider,
    default_provider,
    get_provider,
    normalize_dataframe,
)
from .stores import InMemoryStore, PatternStore, SQLiteStore

__all__ = [
    "MarketDataProvider",
    "YFinanceProvider",
    "InMemoryMarketDataProvider",
    "default_provider",
    "get_provider",
    "normalize_dataframe",
    "PatternStore",
    "InMemoryStore",
    "SQLiteStore",
]
