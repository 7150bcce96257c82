"""Yahoo Finance market data provider."""

import time
from typing import Optional

import pandas as pd
import yfinance as yf

from signalcore.config import get_logger
from signalcore.core.errors import MarketDataError
from signalcore.core.models import Candle, Timeframe

from .base import MarketDataProvider, frame_to_candle_list, normalize_dataframe

logger = get_logger("data.yfinance")

# yfinance has no 4h interval; 4h bars are resampled from 1h
_YF_INTERVALS = {
    Timeframe.M1: "1m",
    Timeframe.M5: "5m",
    Timeframe.M15: "15m",
    Timeframe.M30: "30m",
    Timeframe.H1: "1h",
    Timeframe.H4: "1h",
    Timeframe.D1: "1d",
    Timeframe.W1: "1wk",
}

# Longest lookback yfinance serves per intraday interval
_MAX_PERIODS = {
    "1m": "7d",
    "5m": "60d",
    "15m": "60d",
    "30m": "60d",
    "1h": "730d",
}


def _period_for(timeframe: Timeframe, count: int) -> str:
    interval = _YF_INTERVALS[timeframe]
    if interval in _MAX_PERIODS:
        return _MAX_PERIODS[interval]
    if timeframe is Timeframe.W1:
        return f"{max(count * 7 + 14, 60)}d"
    # Daily: leave room for weekends and holidays
    return f"{max(int(count * 1.6) + 10, 30)}d"


def _resample_4h(df: pd.DataFrame) -> pd.DataFrame:
    return df.resample("4h").agg(
        {"open": "first", "high": "max", "low": "min", "close": "last", "volume": "sum"}
    ).dropna(subset=["close"])


class YFinanceProvider(MarketDataProvider):
    """Market data provider using the yfinance library."""

    def __init__(self, max_retries: int = 3, retry_delay: float = 1.0):
        """
        Initialize the yfinance provider.

        Args:
            max_retries: Maximum number of retry attempts
            retry_delay: Delay between retries in seconds
        """
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    @property
    def name(self) -> str:
        return "yfinance"

    def _download(self, symbol: str, interval: str, period: str) -> pd.DataFrame:
        last_error: Optional[Exception] = None
        for attempt in range(self._max_retries):
            try:
                logger.info(f"Downloading {symbol} ({interval}, {period})")
                return yf.download(
                    tickers=symbol,
                    period=period,
                    interval=interval,
                    auto_adjust=True,
                    threads=False,
                    progress=False,
                )
            except Exception as e:
                last_error = e
                logger.error(f"Download attempt {attempt + 1} failed for {symbol}: {e}")
                if attempt < self._max_retries - 1:
                    time.sleep(self._retry_delay * (attempt + 1))
        raise MarketDataError(f"yfinance download failed for {symbol}: {last_error}")

    def get_candles(self, symbol: str, count: int, timeframe: Timeframe = Timeframe.D1) -> list[Candle]:
        """
        Download the most recent ``count`` bars from Yahoo Finance.

        Raises:
            MarketDataError: Download failed after retries or returned no rows
        """
        if count <= 0:
            return []

        interval = _YF_INTERVALS[timeframe]
        df = self._download(symbol, interval, _period_for(timeframe, count))
        if df is None or df.empty:
            raise MarketDataError(f"No data returned for {symbol}")

        df = normalize_dataframe(df)
        if df.index.tz is None:
            df.index = df.index.tz_localize("UTC")
        else:
            df.index = df.index.tz_convert("UTC")

        if timeframe is Timeframe.H4:
            df = _resample_4h(df)

        candles = frame_to_candle_list(df, count)
        logger.info(f"Downloaded {len(candles)} bars for {symbol}")
        return candles


# Default provider instance
default_provider = YFinanceProvider()
