"""
Candlestick pattern detection algorithms.

Implements single-bar, dual-bar, and triple-bar candlestick pattern recognition.
Every bar from the third onward is checked against each rule; a bar may match
several rules.
"""

from typing import Sequence

from signalcore.core.models import (
    Candle,
    PatternDirection,
    PatternResult,
    PatternType,
    Timeframe,
)
from signalcore.features.results import CandleInput, as_candles, make_result

MIN_CANDLES = 5
AVG_RANGE_WINDOW = 14

BULLISH = PatternDirection.BULLISH
BEARISH = PatternDirection.BEARISH


# =============================================================================
# HELPERS
# =============================================================================


def _avg_range(candles: Sequence[Candle], i: int) -> float:
    """Mean range of the 14-bar window starting at max(0, i - 14)."""
    start = max(0, i - AVG_RANGE_WINDOW)
    window = candles[start:start + AVG_RANGE_WINDOW]
    return sum(c.range for c in window) / len(window)


def _wick_ratio(wick: float, body: float) -> float:
    # Zero body makes the ratio unbounded; callers cap it.
    if body == 0:
        return float("inf")
    return wick / body


# =============================================================================
# SINGLE-BAR PATTERNS
# =============================================================================


def _single_bar(candles: Sequence[Candle], i: int, avg_range: float, tf: Timeframe) -> list[PatternResult]:
    c = candles[i]
    prev = candles[i - 1]
    found = []
    big_enough = c.range > avg_range * 0.5

    if c.is_doji and big_enough:
        found.append(make_result(
            candles, PatternType.DOJI, "Doji", PatternDirection.NEUTRAL,
            60 + (1 - c.body / c.range) * 30, 50,
            "Indecision candle with open and close almost equal. Often marks a reversal at support or resistance.",
            i, i, c.close, c.low, c.close + (c.close - c.low) * 2, tf,
        ))

    hammer_shape = c.lower_wick >= c.body * 2 and c.upper_wick < c.body * 0.5
    if hammer_shape and big_enough and prev.is_bearish:
        found.append(make_result(
            candles, PatternType.HAMMER, "Hammer", BULLISH,
            65 + min(_wick_ratio(c.lower_wick, c.body) * 5, 25), 60,
            "Long lower wick with a small body at the top. Buyers rejected the selloff.",
            i, i, c.high, c.low, c.high + c.range, tf,
        ))

    inverted_shape = c.upper_wick >= c.body * 2 and c.lower_wick < c.body * 0.5
    if inverted_shape and big_enough and prev.is_bearish:
        found.append(make_result(
            candles, PatternType.INVERTED_HAMMER, "Inverted Hammer", BULLISH,
            60 + min(_wick_ratio(c.upper_wick, c.body) * 5, 20), 55,
            "Long upper wick with a small body at the bottom after a decline. Potential bullish reversal.",
            i, i, c.high, c.low, c.high + c.range, tf,
        ))

    if inverted_shape and big_enough and prev.is_bullish:
        found.append(make_result(
            candles, PatternType.SHOOTING_STAR, "Shooting Star", BEARISH,
            65 + min(_wick_ratio(c.upper_wick, c.body) * 5, 25), 59,
            "Long upper wick after an advance. Sellers pushed price back down.",
            i, i, c.low, c.high, c.low - c.range, tf,
        ))

    if c.body > avg_range * 0.8 and c.upper_wick < c.body * 0.05 and c.lower_wick < c.body * 0.05:
        bullish = c.is_bullish
        found.append(make_result(
            candles, PatternType.MARUBOZU,
            "Bullish Marubozu" if bullish else "Bearish Marubozu",
            BULLISH if bullish else BEARISH,
            75, 62,
            f"Full-body candle with no wicks showing strong {'buying' if bullish else 'selling'} momentum.",
            i, i, c.close,
            c.low if bullish else c.high,
            c.close + c.body if bullish else c.close - c.body,
            tf,
        ))

    return found


# =============================================================================
# DUAL-BAR PATTERNS
# =============================================================================


def _dual_bar(candles: Sequence[Candle], i: int, tf: Timeframe) -> list[PatternResult]:
    c = candles[i]
    prev = candles[i - 1]
    found = []

    if prev.is_bearish and c.is_bullish and c.open <= prev.close and c.close >= prev.open and c.body > prev.body:
        stop = min(c.low, prev.low)
        found.append(make_result(
            candles, PatternType.BULLISH_ENGULFING, "Bullish Engulfing", BULLISH,
            70 + min(c.body / prev.body * 5, 20), 63,
            "Green candle fully engulfs the prior red candle. Buyers overwhelmed sellers.",
            i - 1, i, c.close, stop, c.close + (c.close - stop) * 2, tf,
        ))

    if prev.is_bullish and c.is_bearish and c.open >= prev.close and c.close <= prev.open and c.body > prev.body:
        stop = max(c.high, prev.high)
        found.append(make_result(
            candles, PatternType.BEARISH_ENGULFING, "Bearish Engulfing", BEARISH,
            70 + min(c.body / prev.body * 5, 20), 63,
            "Red candle fully engulfs the prior green candle. Sellers overwhelmed buyers.",
            i - 1, i, c.close, stop, c.close - (stop - c.close) * 2, tf,
        ))

    if prev.is_bearish and c.is_bullish and c.open >= prev.close and c.close <= prev.open and c.body < prev.body * 0.5:
        found.append(make_result(
            candles, PatternType.BULLISH_HARAMI, "Bullish Harami", BULLISH,
            60, 53,
            "Small green candle inside the prior large red candle. Selling pressure is fading.",
            i - 1, i, c.high, prev.low, c.high + prev.body, tf,
        ))

    if prev.is_bullish and c.is_bearish and c.open <= prev.close and c.close >= prev.open and c.body < prev.body * 0.5:
        found.append(make_result(
            candles, PatternType.BEARISH_HARAMI, "Bearish Harami", BEARISH,
            60, 53,
            "Small red candle inside the prior large green candle. Buying pressure is fading.",
            i - 1, i, c.low, prev.high, c.low - prev.body, tf,
        ))

    if prev.is_bearish and c.is_bullish and c.open < prev.low and prev.body_center < c.close < prev.open:
        found.append(make_result(
            candles, PatternType.PIERCING_LINE, "Piercing Line", BULLISH,
            65, 57,
            "Opens below the prior low and closes above the middle of the prior red body.",
            i - 1, i, c.close, c.low, c.close + prev.body, tf,
        ))

    if prev.is_bullish and c.is_bearish and c.open > prev.high and prev.open < c.close < prev.body_center:
        found.append(make_result(
            candles, PatternType.DARK_CLOUD_COVER, "Dark Cloud Cover", BEARISH,
            65, 57,
            "Opens above the prior high and closes below the middle of the prior green body.",
            i - 1, i, c.close, c.high, c.close - prev.body, tf,
        ))

    return found


# =============================================================================
# TRIPLE-BAR PATTERNS
# =============================================================================


def _triple_bar(candles: Sequence[Candle], i: int, avg_range: float, tf: Timeframe) -> list[PatternResult]:
    c = candles[i]
    prev = candles[i - 1]
    prev2 = candles[i - 2]
    found = []

    if prev2.is_bearish and prev.body < prev2.body * 0.3 and c.is_bullish and c.close > prev2.body_center:
        found.append(make_result(
            candles, PatternType.MORNING_STAR, "Morning Star", BULLISH,
            78, 65,
            "Large red, small indecision, then a green close above the first body's middle.",
            i - 2, i, c.close, prev.low, c.close + (c.close - prev.low) * 2, tf,
        ))

    if prev2.is_bullish and prev.body < prev2.body * 0.3 and c.is_bearish and c.close < prev2.body_center:
        found.append(make_result(
            candles, PatternType.EVENING_STAR, "Evening Star", BEARISH,
            78, 65,
            "Large green, small indecision, then a red close below the first body's middle.",
            i - 2, i, c.close, prev.high, c.close - (prev.high - c.close) * 2, tf,
        ))

    strong = all(x.body > avg_range * 0.4 for x in (prev2, prev, c))

    if (
        strong
        and prev2.is_bullish and prev.is_bullish and c.is_bullish
        and prev.open > prev2.open and prev.close > prev2.close
        and c.open > prev.open and c.close > prev.close
    ):
        found.append(make_result(
            candles, PatternType.THREE_WHITE_SOLDIERS, "Three White Soldiers", BULLISH,
            80, 66,
            "Three large green candles, each closing higher.",
            i - 2, i, c.close, prev2.low, c.close + (c.close - prev2.low) * 0.5, tf,
        ))

    if (
        strong
        and prev2.is_bearish and prev.is_bearish and c.is_bearish
        and prev.open < prev2.open and prev.close < prev2.close
        and c.open < prev.open and c.close < prev.close
    ):
        found.append(make_result(
            candles, PatternType.THREE_BLACK_CROWS, "Three Black Crows", BEARISH,
            80, 66,
            "Three large red candles, each closing lower.",
            i - 2, i, c.close, prev2.high, c.close - (prev2.high - c.close) * 0.5, tf,
        ))

    return found


# =============================================================================
# MASTER FUNCTION
# =============================================================================


def detect_candlestick_patterns(
    data: CandleInput,
    timeframe: Timeframe = Timeframe.D1,
) -> list[PatternResult]:
    """
    Scan every bar for candlestick patterns.

    Args:
        data: Candles (or OHLCV DataFrame) in ascending time order
        timeframe: Timeframe tag copied onto each result

    Returns:
        Results in bar order; empty for fewer than 5 candles
    """
    candles = as_candles(data)
    if len(candles) < MIN_CANDLES:
        return []

    results: list[PatternResult] = []
    for i in range(2, len(candles)):
        avg_range = _avg_range(candles, i)
        if avg_range == 0:
            continue
        results.extend(_single_bar(candles, i, avg_range, timeframe))
        results.extend(_dual_bar(candles, i, timeframe))
        results.extend(_triple_bar(candles, i, avg_range, timeframe))

    return results
