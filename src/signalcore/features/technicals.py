"""
Indicator-based technical setups.

Moving-average crosses, RSI extremes, Bollinger squeezes, volume breakouts
and MACD zero-line crosses evaluated on the most recent bars.
"""

import math

from signalcore.core.errors import safe_div
from signalcore.core.models import PatternDirection, PatternResult, PatternType, Timeframe
from signalcore.features.indicators import bollinger_bands, candles_to_frame, ema, simple_rsi, sma
from signalcore.features.results import CandleInput, as_candles, make_result

MIN_CANDLES = 50
CROSS_MIN_CANDLES = 200


def _valid(*values: float) -> bool:
    return all(not math.isnan(v) for v in values)


def detect_technical_setups(
    data: CandleInput,
    timeframe: Timeframe = Timeframe.D1,
) -> list[PatternResult]:
    """
    Evaluate indicator setups on the last bar.

    Args:
        data: Candles (or OHLCV DataFrame) in ascending time order
        timeframe: Timeframe tag copied onto each result

    Returns:
        Matching setups; empty for fewer than 50 candles
    """
    candles = as_candles(data)
    n = len(candles)
    if n < MIN_CANDLES:
        return []

    df = candles_to_frame(candles)
    last = candles[-1]
    results: list[PatternResult] = []

    # Golden / Death Cross (SMA50 vs SMA200)
    if n >= CROSS_MIN_CANDLES:
        sma50 = sma(df, 50)
        sma200 = sma(df, 200)
        curr50, prev50 = float(sma50.iloc[-1]), float(sma50.iloc[-2])
        curr200, prev200 = float(sma200.iloc[-1]), float(sma200.iloc[-2])

        if _valid(curr50, prev50, curr200, prev200):
            if prev50 <= prev200 and curr50 > curr200:
                results.append(make_result(
                    candles, PatternType.GOLDEN_CROSS, "Golden Cross", PatternDirection.BULLISH,
                    75, 64,
                    "50-period SMA crossed above the 200-period SMA. Major bullish signal.",
                    n - 2, n - 1, last.close, last.close * 0.95, last.close * 1.10, timeframe,
                ))
            if prev50 >= prev200 and curr50 < curr200:
                results.append(make_result(
                    candles, PatternType.DEATH_CROSS, "Death Cross", PatternDirection.BEARISH,
                    75, 62,
                    "50-period SMA crossed below the 200-period SMA. Major bearish signal.",
                    n - 2, n - 1, last.close, last.close * 1.05, last.close * 0.90, timeframe,
                ))

    # RSI extremes
    rsi_value = float(simple_rsi(df, 14).iloc[-1])
    if _valid(rsi_value):
        if rsi_value < 30:
            results.append(make_result(
                candles, PatternType.RSI_OVERSOLD, "RSI Oversold", PatternDirection.BULLISH,
                60 + (30 - rsi_value) * 1.5, 58,
                f"RSI at {rsi_value:.1f}, below the 30 oversold threshold. Selling pressure may be exhausted.",
                n - 1, n - 1, last.close, last.low * 0.97, last.close * 1.05, timeframe,
            ))
        if rsi_value > 70:
            results.append(make_result(
                candles, PatternType.RSI_OVERBOUGHT, "RSI Overbought", PatternDirection.BEARISH,
                60 + (rsi_value - 70) * 1.5, 56,
                f"RSI at {rsi_value:.1f}, above the 70 overbought threshold. Upward momentum may be fading.",
                n - 1, n - 1, last.close, last.high * 1.03, last.close * 0.95, timeframe,
            ))

    # Bollinger squeeze
    bands = bollinger_bands(df, 20, 2.0)
    upper = bands["upper"].dropna()
    lower = bands["lower"].dropna()
    middle = bands["middle"].dropna()
    widths = [safe_div(u - lo, m) for u, lo, m in zip(upper, lower, middle)]
    if len(widths) >= 5:
        recent = widths[-20:]
        avg_width = sum(recent) / len(recent)
        if widths[-1] < avg_width * 0.6:
            results.append(make_result(
                candles, PatternType.BOLLINGER_SQUEEZE, "Bollinger Squeeze", PatternDirection.NEUTRAL,
                70, 60,
                "Bollinger Bands are contracting to a volatility low. A breakout move is likely.",
                n - 5, n - 1, last.close, float(lower.iloc[-1]), float(upper.iloc[-1]), timeframe,
            ))

    # Volume breakout
    volumes = df["volume"]
    avg_volume = float(volumes.iloc[-20:-1].mean())
    if last.volume > avg_volume * 2 and last.is_bullish:
        if avg_volume > 0:
            description = f"Volume is {safe_div(last.volume, avg_volume):.1f}x the 20-bar average on a bullish candle."
        else:
            description = "Volume spike on a bullish candle after 20 bars without trading volume."
        results.append(make_result(
            candles, PatternType.VOLUME_BREAKOUT, "Volume Breakout (Bullish)", PatternDirection.BULLISH,
            68, 60,
            description,
            n - 1, n - 1, last.close, last.low, last.close + last.range * 2, timeframe,
        ))

    # MACD zero-line cross
    macd_line = ema(df, 12) - ema(df, 26)
    curr_macd, prev_macd = float(macd_line.iloc[-1]), float(macd_line.iloc[-2])
    if _valid(curr_macd, prev_macd):
        if prev_macd <= 0 < curr_macd:
            results.append(make_result(
                candles, PatternType.MACD_CROSS_UP, "MACD Bullish Cross", PatternDirection.BULLISH,
                65, 58,
                "MACD line crossed above zero. Bullish momentum is building.",
                n - 2, n - 1, last.close, last.close * 0.97, last.close * 1.05, timeframe,
            ))
        elif prev_macd >= 0 > curr_macd:
            results.append(make_result(
                candles, PatternType.MACD_CROSS_DOWN, "MACD Bearish Cross", PatternDirection.BEARISH,
                65, 56,
                "MACD line crossed below zero. Bearish momentum is building.",
                n - 2, n - 1, last.close, last.close * 1.03, last.close * 0.95, timeframe,
            ))

    return results
