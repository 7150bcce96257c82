"""
Chart pattern detection algorithms.

Rule-based detection of double tops/bottoms and head-and-shoulders built on
strict swing points.
"""

from typing import Sequence

import numpy as np

from signalcore.core.models import (
    Candle,
    PatternDirection,
    PatternResult,
    PatternType,
    Timeframe,
)
from signalcore.features.results import CandleInput, as_candles, make_result

MIN_CANDLES = 30
SWING_ORDER = 5
DOUBLE_MIN_GAP = 10
DOUBLE_MAX_GAP = 60
DOUBLE_TOLERANCE = 0.02
SHOULDER_TOLERANCE = 0.03


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def find_swing_points(
    values: Sequence[float] | np.ndarray,
    order: int = SWING_ORDER,
    highs: bool = True,
) -> list[tuple[int, float]]:
    """
    Find strict swing highs or lows.

    A swing high must be strictly greater than every value within ``order``
    bars on both sides; swing lows mirror this.

    Args:
        values: Price series
        order: Number of bars on each side to compare
        highs: Find highs when True, lows otherwise

    Returns:
        List of (index, value) in ascending index order
    """
    data = np.asarray(values, dtype=float)
    points = []
    for i in range(order, len(data) - order):
        neighbours = np.concatenate((data[i - order:i], data[i + 1:i + order + 1]))
        if highs:
            is_swing = bool(np.all(data[i] > neighbours))
        else:
            is_swing = bool(np.all(data[i] < neighbours))
        if is_swing:
            points.append((i, float(data[i])))
    return points


# =============================================================================
# REVERSAL PATTERNS
# =============================================================================


def detect_double_top_bottom(
    candles: Sequence[Candle],
    swing_highs: list[tuple[int, float]],
    swing_lows: list[tuple[int, float]],
    timeframe: Timeframe = Timeframe.D1,
) -> list[PatternResult]:
    """Detect Double Top and Double Bottom patterns on consecutive swings."""
    patterns = []
    highs = np.array([c.high for c in candles])
    lows = np.array([c.low for c in candles])
    last_close = candles[-1].close

    # Double Top
    for (idx1, val1), (idx2, val2) in zip(swing_highs, swing_highs[1:]):
        if not DOUBLE_MIN_GAP <= idx2 - idx1 <= DOUBLE_MAX_GAP:
            continue
        if abs(val1 - val2) >= val1 * DOUBLE_TOLERANCE:
            continue

        neckline = float(lows[idx1:idx2].min())
        height = (val1 + val2) / 2 - neckline
        # Price must be near or below the neckline
        if last_close < neckline + height * 0.2:
            patterns.append(make_result(
                candles, PatternType.DOUBLE_TOP, "Double Top", PatternDirection.BEARISH,
                72, 65,
                f"Two peaks at similar levels ({val1:.2f}, {val2:.2f}) with neckline at {neckline:.2f}. "
                "Target is the neckline minus the pattern height.",
                idx1, idx2, neckline, max(val1, val2), neckline - height, timeframe,
            ))

    # Double Bottom
    for (idx1, val1), (idx2, val2) in zip(swing_lows, swing_lows[1:]):
        if not DOUBLE_MIN_GAP <= idx2 - idx1 <= DOUBLE_MAX_GAP:
            continue
        if abs(val1 - val2) >= val1 * DOUBLE_TOLERANCE:
            continue

        neckline = float(highs[idx1:idx2].max())
        height = neckline - (val1 + val2) / 2
        if last_close > neckline - height * 0.2:
            patterns.append(make_result(
                candles, PatternType.DOUBLE_BOTTOM, "Double Bottom", PatternDirection.BULLISH,
                72, 65,
                f"Two troughs at similar levels ({val1:.2f}, {val2:.2f}) with neckline at {neckline:.2f}. "
                "Target is the neckline plus the pattern height.",
                idx1, idx2, neckline, min(val1, val2), neckline + height, timeframe,
            ))

    return patterns


def detect_head_and_shoulders(
    candles: Sequence[Candle],
    swing_highs: list[tuple[int, float]],
    swing_lows: list[tuple[int, float]],
    timeframe: Timeframe = Timeframe.D1,
) -> list[PatternResult]:
    """Detect Head and Shoulders (and the inverse) on three consecutive swings."""
    patterns = []
    highs = np.array([c.high for c in candles])
    lows = np.array([c.low for c in candles])

    for left, head, right in zip(swing_highs, swing_highs[1:], swing_highs[2:]):
        if not (head[1] > left[1] and head[1] > right[1]):
            continue
        if abs(left[1] - right[1]) >= left[1] * SHOULDER_TOLERANCE:
            continue

        neckline = float(lows[left[0]:right[0]].min())
        height = head[1] - neckline
        patterns.append(make_result(
            candles, PatternType.HEAD_AND_SHOULDERS, "Head and Shoulders", PatternDirection.BEARISH,
            82, 70,
            f"Left shoulder {left[1]:.2f}, head {head[1]:.2f}, right shoulder {right[1]:.2f}. "
            f"Neckline at {neckline:.2f}.",
            left[0], right[0], neckline, right[1], neckline - height, timeframe,
        ))

    for left, head, right in zip(swing_lows, swing_lows[1:], swing_lows[2:]):
        if not (head[1] < left[1] and head[1] < right[1]):
            continue
        if abs(left[1] - right[1]) >= left[1] * SHOULDER_TOLERANCE:
            continue

        neckline = float(highs[left[0]:right[0]].max())
        height = neckline - head[1]
        patterns.append(make_result(
            candles, PatternType.INVERSE_HEAD_AND_SHOULDERS, "Inverse Head and Shoulders",
            PatternDirection.BULLISH,
            82, 70,
            f"Left shoulder {left[1]:.2f}, head {head[1]:.2f}, right shoulder {right[1]:.2f}. "
            f"Neckline at {neckline:.2f}.",
            left[0], right[0], neckline, right[1], neckline + height, timeframe,
        ))

    return patterns


# =============================================================================
# MASTER FUNCTION
# =============================================================================


def detect_chart_patterns(
    data: CandleInput,
    timeframe: Timeframe = Timeframe.D1,
) -> list[PatternResult]:
    """
    Run all chart pattern detectors.

    Args:
        data: Candles (or OHLCV DataFrame) in ascending time order
        timeframe: Timeframe tag copied onto each result

    Returns:
        Double tops/bottoms first, then head-and-shoulders; empty for fewer
        than 30 candles
    """
    candles = as_candles(data)
    if len(candles) < MIN_CANDLES:
        return []

    swing_highs = find_swing_points([c.high for c in candles], SWING_ORDER, highs=True)
    swing_lows = find_swing_points([c.low for c in candles], SWING_ORDER, highs=False)

    patterns = detect_double_top_bottom(candles, swing_highs, swing_lows, timeframe)
    patterns.extend(detect_head_and_shoulders(candles, swing_highs, swing_lows, timeframe))
    return patterns


