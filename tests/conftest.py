"""Pytest configuration and fixtures."""

import numpy as np
import pandas as pd
import pytest

from signalcore.config import Settings
from signalcore.data import InMemoryMarketDataProvider, InMemoryStore

from helpers import series_candles


@pytest.fixture
def sample_ohlcv():
    """Generate sample OHLCV data for testing."""
    np.random.seed(42)
    n = 100

    dates = pd.date_range("2024-01-01", periods=n, freq="D", tz="UTC")
    close = 100 + np.cumsum(np.random.randn(n) * 2)

    df = pd.DataFrame({
        "open": close + np.random.randn(n) * 0.5,
        "high": close + abs(np.random.randn(n)) + 0.5,
        "low": close - abs(np.random.randn(n)) - 0.5,
        "close": close,
        "volume": np.random.randint(1000000, 5000000, n).astype(float),
    }, index=dates)
    df["high"] = df[["open", "high", "close"]].max(axis=1)
    df["low"] = df[["open", "low", "close"]].min(axis=1)
    return df


@pytest.fixture
def uptrend_candles():
    """260 bars of a steady 0.5%/day advance."""
    closes = [100 * (1.005 ** i) for i in range(260)]
    return series_candles(closes)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def provider():
    return InMemoryMarketDataProvider()


@pytest.fixture
def settings():
    """Settings isolated from the environment, with no advisory delay."""
    return Settings(
        _env_file=None,
        AI_CALL_DELAY_MS=0,
        MAX_SCANS_PER_TICK=5,
        SCAN_CANDLE_COUNT=250,
    )
