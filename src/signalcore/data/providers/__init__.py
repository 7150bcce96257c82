"""Data providers module."""

from typing import Optional

from signalcore.config import get_settings

from .base import MarketDataProvider, frame_to_candle_list, normalize_dataframe
from .memory import InMemoryMarketDataProvider
from .yfinance import YFinanceProvider, default_provider


def get_provider(name: Optional[str] = None) -> MarketDataProvider:
    """Provider by name, defaulting to Settings.DATA_PROVIDER_DEFAULT."""
    name = (name or get_settings().DATA_PROVIDER_DEFAULT).lower()
    if name == "yfinance":
        return default_provider
    if name == "memory":
        return InMemoryMarketDataProvider()
    raise ValueError(f"Unknown data provider: {name}")


__all__ = [
    "MarketDataProvider",
    "normalize_dataframe",
    "frame_to_candle_list",
    "YFinanceProvider",
    "default_provider",
    "get_provider",
    "InMemoryMarketDataProvider",
]
