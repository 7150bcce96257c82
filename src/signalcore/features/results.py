"""Shared helpers for building detector results."""

from typing import Sequence, Union

import pandas as pd

from signalcore.core.models import (
    Candle,
    PatternDirection,
    PatternResult,
    PatternType,
    Timeframe,
)
from signalcore.features.indicators import frame_to_candles

CandleInput = Union[Sequence[Candle], pd.DataFrame]


def as_candles(data: CandleInput) -> list[Candle]:
    """Accept a candle list or an OHLCV DataFrame."""
    if isinstance(data, pd.DataFrame):
        return frame_to_candles(data)
    return list(data)


def clamp_confidence(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def make_result(
    candles: Sequence[Candle],
    pattern_type: PatternType,
    name: str,
    direction: PatternDirection,
    confidence: float,
    win_rate: float,
    description: str,
    start: int,
    end: int,
    entry: float,
    stop: float,
    target: float,
    timeframe: Timeframe = Timeframe.D1,
) -> PatternResult:
    """Build a PatternResult spanning ``candles[start..end]``."""
    return PatternResult(
        pattern_type=pattern_type,
        pattern_name=name,
        direction=direction,
        confidence=clamp_confidence(confidence),
        historical_win_rate=win_rate,
        description=description,
        timeframe=timeframe,
        start_index=start,
        end_index=end,
        start_date=candles[start].time,
        end_date=candles[end].time,
        suggested_entry=float(entry),
        suggested_stop=float(stop),
        suggested_target=float(target),
    )
