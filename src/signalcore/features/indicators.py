"""
Technical indicators shared by the feature engine and the pattern detector.

Every function takes an OHLCV DataFrame (columns open, high, low, close,
volume) and returns a Series aligned to its index. Values that cannot be
computed yet are NaN.
"""

from typing import Any, Callable, Optional, Sequence

import numpy as np
import pandas as pd

from signalcore.core.models import Candle

OHLCV_COLUMNS = ["open", "high", "low", "close", "volume"]


# =============================================================================
# Frame conversion
# =============================================================================


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    """
    Build an OHLCV DataFrame indexed by candle time.

    Args:
        candles: Candles in ascending time order

    Returns:
        DataFrame with open, high, low, close, volume columns
    """
    if not candles:
        return pd.DataFrame(columns=OHLCV_COLUMNS, index=pd.DatetimeIndex([], tz="UTC"))

    df = pd.DataFrame(
        {
            "open": [c.open for c in candles],
            "high": [c.high for c in candles],
            "low": [c.low for c in candles],
            "close": [c.close for c in candles],
            "volume": [c.volume for c in candles],
        },
        index=pd.DatetimeIndex([c.time for c in candles], name="time"),
    )
    return df.astype(float)


def frame_to_candles(df: pd.DataFrame) -> list[Candle]:
    """Convert an OHLCV DataFrame with a datetime index back to candles."""
    candles = []
    for ts, row in df.iterrows():
        time = ts.to_pydatetime() if isinstance(ts, pd.Timestamp) else ts
        candles.append(
            Candle(
                time=time,
                open=float(row["open"]),
                high=float(row["high"]),
                low=float(row["low"]),
                close=float(row["close"]),
                volume=float(row.get("volume", 0.0) or 0.0),
            )
        )
    return candles


# =============================================================================
# Moving averages
# =============================================================================


def _seeded_ema(values: np.ndarray, period: int) -> np.ndarray:
    """EMA seeded with the simple average of the first ``period`` valid values.

    Leading NaNs are skipped. With fewer valid values than ``period`` the
    input is returned unchanged.
    """
    out = np.full(len(values), np.nan)
    valid = np.flatnonzero(~np.isnan(values))
    if len(valid) == 0:
        return out
    start = valid[0]
    if len(values) - start < period:
        return values.astype(float).copy()

    k = 2.0 / (period + 1)
    seed_at = start + period - 1
    out[seed_at] = values[start:seed_at + 1].mean()
    for i in range(seed_at + 1, len(values)):
        out[i] = (values[i] - out[i - 1]) * k + out[i - 1]
    return out


def sma(df: pd.DataFrame, period: int = 20, column: str = "close") -> pd.Series:
    """
    Simple Moving Average.

    Args:
        df: DataFrame with OHLCV data
        period: Number of periods for the moving average
        column: Column to calculate SMA on

    Returns:
        Series with SMA values
    """
    return df[column].rolling(window=period).mean().rename(f"sma_{period}")


def ema(df: pd.DataFrame, period: int = 20, column: str = "close") -> pd.Series:
    """
    Exponential Moving Average seeded with the SMA of the first window.

    Args:
        df: DataFrame with OHLCV data
        period: Number of periods for the EMA
        column: Column to calculate EMA on

    Returns:
        Series with EMA values (NaN before the seed)
    """
    values = df[column].to_numpy(dtype=float)
    return pd.Series(_seeded_ema(values, period), index=df.index, name=f"ema_{period}")


# =============================================================================
# Momentum
# =============================================================================


def rsi(df: pd.DataFrame, period: int = 14, column: str = "close") -> pd.Series:
    """
    Relative Strength Index with Wilder smoothing.

    The first average gain/loss is the simple mean of the first ``period``
    changes. A zero average loss gives 100.

    Returns:
        Series with RSI values (0-100)
    """
    closes = df[column].to_numpy(dtype=float)
    out = np.full(len(closes), np.nan)
    if len(closes) < period + 1:
        return pd.Series(out, index=df.index, name="rsi")

    delta = np.diff(closes)
    gains = np.where(delta > 0, delta, 0.0)
    losses = np.where(delta < 0, -delta, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    out[period] = _rsi_value(avg_gain, avg_loss)
    for i in range(period, len(gains)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        out[i + 1] = _rsi_value(avg_gain, avg_loss)

    return pd.Series(out, index=df.index, name="rsi")


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


def simple_rsi(df: pd.DataFrame, period: int = 14, column: str = "close") -> pd.Series:
    """
    Rolling (non-smoothed) RSI used by the technical setup scan.

    Each value uses plain means of the gains and losses over the trailing
    ``period`` changes; a zero average loss uses RS = 100.
    """
    delta = df[column].diff()
    avg_gain = delta.clip(lower=0).rolling(window=period).mean()
    avg_loss = (-delta).clip(lower=0).rolling(window=period).mean()
    rs = (avg_gain / avg_loss.where(avg_loss != 0)).fillna(100.0)
    rs = rs.where(avg_gain.notna())
    return (100 - 100 / (1 + rs)).rename("simple_rsi")


def macd(
    df: pd.DataFrame,
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
    column: str = "close",
) -> dict[str, pd.Series]:
    """
    Moving Average Convergence Divergence.

    Returns dict with: macd_line, signal_line, histogram
    """
    fast_ema = ema(df, fast_period, column)
    slow_ema = ema(df, slow_period, column)

    macd_line = fast_ema - slow_ema
    signal_line = pd.Series(
        _seeded_ema(macd_line.to_numpy(dtype=float), signal_period), index=df.index
    )
    histogram = macd_line - signal_line

    return {
        "macd_line": macd_line.rename("macd"),
        "signal_line": signal_line.rename("macd_signal"),
        "histogram": histogram.rename("macd_histogram"),
    }


# =============================================================================
# Volatility
# =============================================================================


def true_range(df: pd.DataFrame) -> pd.Series:
    """True range per bar; the first bar has no previous close and is NaN."""
    prev_close = df["close"].shift()
    tr = pd.concat(
        [
            df["high"] - df["low"],
            (df["high"] - prev_close).abs(),
            (df["low"] - prev_close).abs(),
        ],
        axis=1,
    ).max(axis=1)
    tr.iloc[:1] = np.nan
    return tr.rename("true_range")


def atr(df: pd.DataFrame, period: int = 14) -> pd.Series:
    """
    Average True Range with Wilder smoothing.

    Args:
        df: DataFrame with high, low, close columns
        period: ATR period

    Returns:
        Series with ATR values
    """
    tr = true_range(df).to_numpy(dtype=float)
    out = np.full(len(tr), np.nan)
    if len(tr) <= period:
        return pd.Series(out, index=df.index, name="atr")

    out[period] = tr[1:period + 1].mean()
    for i in range(period + 1, len(tr)):
        out[i] = (out[i - 1] * (period - 1) + tr[i]) / period
    return pd.Series(out, index=df.index, name="atr")


def bollinger_bands(
    df: pd.DataFrame,
    period: int = 20,
    std_dev: float = 2.0,
    column: str = "close",
) -> dict[str, pd.Series]:
    """
    Bollinger Bands using the population standard deviation.

    Returns dict with: upper, middle, lower
    """
    middle = df[column].rolling(window=period).mean()
    std = df[column].rolling(window=period).std(ddof=0)

    upper = middle + (std_dev * std)
    lower = middle - (std_dev * std)

    return {
        "upper": upper.rename("bb_upper"),
        "middle": middle.rename("bb_middle"),
        "lower": lower.rename("bb_lower"),
    }


# =============================================================================
# Volume
# =============================================================================


def vwap(df: pd.DataFrame) -> pd.Series:
    """
    Volume Weighted Average Price.

    Cumulative from the first bar, so the last value covers the whole window.
    Zero cumulative volume gives 0.
    """
    typical_price = (df["high"] + df["low"] + df["close"]) / 3
    cum_volume = df["volume"].cumsum()
    vwap_values = (typical_price * df["volume"]).cumsum() / cum_volume.where(cum_volume > 0)

    return vwap_values.fillna(0.0).rename("vwap")


# =============================================================================
# INDICATORS_CONFIG Registry
# =============================================================================

INDICATORS_CONFIG: dict[str, dict[str, Any]] = {
    "sma": {
        "func": sma,
        "params": {"period": 20},
        "category": "Trend",
        "desc": "Simple Moving Average",
    },
    "ema": {
        "func": ema,
        "params": {"period": 12},
        "category": "Trend",
        "desc": "Exponential Moving Average (SMA seeded)",
    },
    "rsi": {
        "func": rsi,
        "params": {"period": 14},
        "category": "Momentum",
        "desc": "Relative Strength Index (Wilder)",
    },
    "simple_rsi": {
        "func": simple_rsi,
        "params": {"period": 14},
        "category": "Momentum",
        "desc": "Rolling Relative Strength Index",
    },
    "macd": {
        "func": macd,
        "params": {"fast_period": 12, "slow_period": 26, "signal_period": 9},
        "category": "Momentum",
        "desc": "MACD",
    },
    "atr": {
        "func": atr,
        "params": {"period": 14},
        "category": "Volatility",
        "desc": "Average True Range (Wilder)",
    },
    "bollinger_bands": {
        "func": bollinger_bands,
        "params": {"period": 20, "std_dev": 2.0},
        "category": "Volatility",
        "desc": "Bollinger Bands",
    },
    "vwap": {
        "func": vwap,
        "params": {},
        "category": "Volume",
        "desc": "Volume Weighted Average Price",
    },
}


def compute_indicator(
    df: pd.DataFrame,
    indicator_name: str,
    params: Optional[dict[str, Any]] = None,
) -> pd.Series | dict[str, pd.Series]:
    """
    Compute an indicator by name with optional parameter overrides.

    Args:
        df: OHLCV DataFrame
        indicator_name: Name from INDICATORS_CONFIG
        params: Optional parameter overrides

    Returns:
        Series or dict of Series depending on indicator
    """
    if indicator_name not in INDICATORS_CONFIG:
        raise ValueError(f"Unknown indicator: {indicator_name}")

    config = INDICATORS_CONFIG[indicator_name]
    func: Callable[..., Any] = config["func"]

    final_params = {**config["params"]}
    if params:
        final_params.update(params)

    return func(df, **final_params)


def get_indicators_by_category(category: str) -> list[str]:
    """Get indicator names filtered by category."""
    return [
        name
        for name, config in INDICATORS_CONFIG.items()
        if config["category"] == category
    ]
