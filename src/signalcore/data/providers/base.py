"""Base market data provider interface."""

from abc import ABC, abstractmethod

import pandas as pd

from signalcore.core.models import Candle, Timeframe

OHLCV_COLUMNS = ["open", "high", "low", "close", "volume"]


class MarketDataProvider(ABC):
    """Abstract base class for market data providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        ...

    @abstractmethod
    def get_candles(self, symbol: str, count: int, timeframe: Timeframe = Timeframe.D1) -> list[Candle]:
        """
        Get the most recent bars for a symbol.

        Args:
            symbol: Ticker symbol
            count: Maximum number of bars to return
            timeframe: Bar timeframe

        Returns:
            Up to ``count`` candles in ascending time order

        Raises:
            MarketDataError: When the data source is unavailable
        """
        ...


def normalize_dataframe(df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize DataFrame column names to lowercase, stripped.

    This handles yfinance returning MultiIndex columns or mixed-case columns.

    Args:
        df: Input DataFrame

    Returns:
        DataFrame with normalized column names
    """
    if df.empty:
        return df

    # Flatten ('Close', 'AAPL') style columns to the field name
    if isinstance(df.columns, pd.MultiIndex):
        df.columns = df.columns.get_level_values(0)

    df.columns = df.columns.astype(str).str.lower().str.strip()
    return df


def frame_to_candle_list(df: pd.DataFrame, count: int) -> list[Candle]:
    """Convert the tail of a normalized OHLCV frame to candles, dropping incomplete rows."""
    if df.empty:
        return []
    df = df[OHLCV_COLUMNS].dropna(subset=["open", "high", "low", "close"]).tail(count)
    return [
        Candle(
            time=idx.to_pydatetime(),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row["volume"]) if pd.notna(row["volume"]) else 0.0,
        )
        for idx, row in df.iterrows()
    ]
