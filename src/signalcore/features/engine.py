"""
Feature engine.

Reduces a candle window to the FeatureVector consumed by the regime
classifier and the advisory prompt.
"""

import math

import pandas as pd

from signalcore.core.errors import InsufficientDataError, safe_div
from signalcore.core.models import FeatureVector, utcnow
from signalcore.features.indicators import (
    atr,
    bollinger_bands,
    candles_to_frame,
    ema,
    macd,
    rsi,
    sma,
    vwap,
)
from signalcore.features.results import CandleInput

MIN_CANDLES = 50
SLOPE_LOOKBACK = 5


def _last(series: pd.Series, default: float = 0.0) -> float:
    """Last value of a series, or ``default`` when it is NaN."""
    value = float(series.iloc[-1])
    return default if math.isnan(value) else value


def compute_features(symbol: str, data: CandleInput) -> FeatureVector:
    """
    Compute the indicator snapshot for the latest bar.

    Args:
        symbol: Ticker the candles belong to
        data: Candles (or OHLCV DataFrame) in ascending time order

    Returns:
        FeatureVector with every value rounded to 4 dp

    Raises:
        InsufficientDataError: fewer than 50 candles
    """
    df = data if isinstance(data, pd.DataFrame) else candles_to_frame(data)
    if len(df) < MIN_CANDLES:
        raise InsufficientDataError(MIN_CANDLES, len(df), "feature engine")

    price = float(df["close"].iloc[-1])

    rsi_value = _last(rsi(df, 14), default=50.0)
    macd_values = macd(df, 12, 26, 9)
    bands = bollinger_bands(df, 20, 2.0)
    sma20_series = sma(df, 20).dropna()
    sma20 = float(sma20_series.iloc[-1])
    atr_value = _last(atr(df, 14))

    sma20_slope = 0.0
    if len(sma20_series) >= SLOPE_LOOKBACK:
        base = float(sma20_series.iloc[-SLOPE_LOOKBACK])
        sma20_slope = safe_div(sma20 - base, base) * 100

    upper = _last(bands["upper"])
    lower = _last(bands["lower"])

    return FeatureVector(
        symbol=symbol,
        rsi=round(rsi_value, 4),
        macd=round(_last(macd_values["macd_line"]), 4),
        macd_signal=round(_last(macd_values["signal_line"]), 4),
        bollinger_upper=round(upper, 4),
        bollinger_middle=round(sma20, 4),
        bollinger_lower=round(lower, 4),
        bollinger_width=round(safe_div(upper - lower, sma20) * 100, 4),
        atr=round(atr_value, 4),
        atr_percent=round(safe_div(atr_value, price) * 100, 4),
        sma20=round(sma20, 4),
        sma50=round(_last(sma(df, 50)), 4),
        ema12=round(_last(ema(df, 12)), 4),
        ema26=round(_last(ema(df, 26)), 4),
        vwap=round(_last(vwap(df)), 4),
        volume_avg20=int(df["volume"].iloc[-20:].mean()),
        sma20_slope=round(sma20_slope, 4),
        current_price=price,
        calculated_at=utcnow(),
    )
