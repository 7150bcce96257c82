"""Run every detector pass and rank the combined results."""

from signalcore.config import get_logger
from signalcore.core.models import PatternResult, Timeframe
from signalcore.features.candlestick_patterns import detect_candlestick_patterns
from signalcore.features.patterns import detect_chart_patterns
from signalcore.features.results import CandleInput, as_candles
from signalcore.features.technicals import detect_technical_setups

logger = get_logger("features.detector")


def detect_all(
    data: CandleInput,
    timeframe: Timeframe = Timeframe.D1,
) -> list[PatternResult]:
    """
    Detect candlestick, chart and technical patterns.

    Args:
        data: Candles (or OHLCV DataFrame) in ascending time order
        timeframe: Timeframe tag copied onto each result

    Returns:
        All results sorted by descending confidence; ties keep pass order
    """
    candles = as_candles(data)

    results = detect_candlestick_patterns(candles, timeframe)
    results.extend(detect_chart_patterns(candles, timeframe))
    results.extend(detect_technical_setups(candles, timeframe))

    # sorted() is stable, so equal confidences keep detection order
    ranked = sorted(results, key=lambda r: r.confidence, reverse=True)
    logger.debug(f"Detected {len(ranked)} patterns over {len(candles)} candles")
    return ranked
