"""Unit tests for candlestick, chart and technical pattern detection."""

import numpy as np
import pytest

from signalcore.core.models import PatternDirection, PatternType, Timeframe
from signalcore.features.candlestick_patterns import detect_candlestick_patterns
from signalcore.features.detector import detect_all
from signalcore.features.patterns import detect_chart_patterns, find_swing_points
from signalcore.features.technicals import detect_technical_setups

from helpers import flat_candles, make_candle, series_candles


def _by_type(results, pattern_type):
    return [r for r in results if r.pattern_type == pattern_type]


def _piecewise(points):
    """Linear interpolation through (index, price) anchors."""
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return list(np.interp(np.arange(xs[-1] + 1), xs, ys))


def _level_candles(closes):
    """Candles with open == close and a symmetric 0.5 wick, so highs mirror closes."""
    return [make_candle(i, c, c + 0.5, c - 0.5, c) for i, c in enumerate(closes)]


class TestCandlestickPatterns:
    """Test single, dual and triple bar candlestick rules."""

    def test_too_few_candles(self):
        assert detect_candlestick_patterns(flat_candles(4)) == []

    def test_hammer_after_bearish_bar(self):
        """Long lower wick with small body after a red bar is a hammer."""
        candles = flat_candles(4)  # last bar is bearish
        candles.append(make_candle(4, 99.5, 100.1, 97.0, 100.0))

        hammers = _by_type(detect_candlestick_patterns(candles), PatternType.HAMMER)

        assert len(hammers) == 1
        hammer = hammers[0]
        assert hammer.direction == PatternDirection.BULLISH
        assert hammer.confidence == pytest.approx(90.0)
        assert hammer.start_index == hammer.end_index == 4
        assert hammer.suggested_entry == pytest.approx(100.1)
        assert hammer.suggested_stop == pytest.approx(97.0)
        assert hammer.suggested_target == pytest.approx(103.2)

    def test_bullish_engulfing(self):
        candles = flat_candles(4)
        candles.append(make_candle(4, 99.7, 100.6, 99.6, 100.5))

        found = _by_type(detect_candlestick_patterns(candles), PatternType.BULLISH_ENGULFING)

        assert len(found) == 1
        engulfing = found[0]
        assert engulfing.confidence == pytest.approx(80.0)
        assert engulfing.start_index == 3
        assert engulfing.suggested_entry == pytest.approx(100.5)
        assert engulfing.suggested_stop == pytest.approx(99.0)
        assert engulfing.suggested_target == pytest.approx(103.5)

    def test_morning_star(self):
        candles = flat_candles(3)
        candles.append(make_candle(3, 102.0, 102.2, 97.8, 98.0))
        candles.append(make_candle(4, 97.8, 98.1, 97.5, 97.9))
        candles.append(make_candle(5, 98.0, 101.2, 97.9, 101.0))

        stars = _by_type(detect_candlestick_patterns(candles), PatternType.MORNING_STAR)

        assert len(stars) == 1
        assert stars[0].confidence == 78
        assert stars[0].start_index == 3
        assert stars[0].end_index == 5
        assert stars[0].suggested_entry == pytest.approx(101.0)
        assert stars[0].suggested_stop == pytest.approx(97.5)
        assert stars[0].suggested_target == pytest.approx(108.0)

    def test_three_white_soldiers(self):
        candles = flat_candles(3)
        candles.append(make_candle(3, 100.0, 101.7, 99.8, 101.5))
        candles.append(make_candle(4, 101.0, 102.7, 100.8, 102.5))
        candles.append(make_candle(5, 102.0, 103.7, 101.8, 103.5))

        soldiers = _by_type(detect_candlestick_patterns(candles), PatternType.THREE_WHITE_SOLDIERS)

        assert len(soldiers) == 1
        assert soldiers[0].confidence == 80
        assert soldiers[0].suggested_entry == pytest.approx(103.5)
        assert soldiers[0].suggested_stop == pytest.approx(99.8)
        assert soldiers[0].suggested_target == pytest.approx(105.35)

    def test_doji(self):
        candles = flat_candles(4)
        candles.append(make_candle(4, 100.0, 101.5, 98.5, 100.15))

        dojis = _by_type(detect_candlestick_patterns(candles), PatternType.DOJI)

        assert len(dojis) == 1
        doji = dojis[0]
        assert doji.direction == PatternDirection.NEUTRAL
        assert doji.confidence == pytest.approx(88.5)
        assert doji.suggested_entry == pytest.approx(100.15)
        assert doji.suggested_stop == pytest.approx(98.5)
        assert doji.suggested_target == pytest.approx(103.45)

    def test_inverted_hammer_after_bearish_bar(self):
        candles = flat_candles(4)
        candles.append(make_candle(4, 99.6, 101.0, 99.5, 100.0))

        results = detect_candlestick_patterns(candles)
        found = _by_type(results, PatternType.INVERTED_HAMMER)

        assert len(found) == 1
        assert found[0].confidence == pytest.approx(72.5)
        assert found[0].suggested_entry == pytest.approx(101.0)
        assert found[0].suggested_stop == pytest.approx(99.5)
        assert found[0].suggested_target == pytest.approx(102.5)
        assert _by_type(results, PatternType.SHOOTING_STAR) == []

    def test_shooting_star_after_bullish_bar(self):
        """Same shape as an inverted hammer, but after a green bar."""
        candles = flat_candles(5)  # last bar is bullish
        candles.append(make_candle(5, 100.4, 101.4, 99.9, 100.0))

        results = detect_candlestick_patterns(candles)
        stars = _by_type(results, PatternType.SHOOTING_STAR)

        assert len(stars) == 1
        star = stars[0]
        assert star.direction == PatternDirection.BEARISH
        assert star.confidence == pytest.approx(77.5)
        assert star.suggested_entry == pytest.approx(99.9)
        assert star.suggested_stop == pytest.approx(101.4)
        assert star.suggested_target == pytest.approx(98.4)
        assert _by_type(results, PatternType.INVERTED_HAMMER) == []

    @pytest.mark.parametrize("bar,name,direction,entry,stop,target", [
        ((99.0, 101.5, 99.0, 101.5), "Bullish Marubozu", PatternDirection.BULLISH, 101.5, 99.0, 104.0),
        ((101.0, 101.0, 98.5, 98.5), "Bearish Marubozu", PatternDirection.BEARISH, 98.5, 101.0, 96.0),
    ])
    def test_marubozu(self, bar, name, direction, entry, stop, target):
        candles = flat_candles(4)
        candles.append(make_candle(4, *bar))

        found = _by_type(detect_candlestick_patterns(candles), PatternType.MARUBOZU)

        assert len(found) == 1
        assert found[0].pattern_name == name
        assert found[0].direction == direction
        assert found[0].confidence == 75
        assert found[0].suggested_entry == pytest.approx(entry)
        assert found[0].suggested_stop == pytest.approx(stop)
        assert found[0].suggested_target == pytest.approx(target)

    def test_bearish_engulfing(self):
        candles = flat_candles(5)  # last bar is bullish
        candles.append(make_candle(5, 100.3, 100.4, 99.4, 99.5))

        found = _by_type(detect_candlestick_patterns(candles), PatternType.BEARISH_ENGULFING)

        assert len(found) == 1
        engulfing = found[0]
        assert engulfing.confidence == pytest.approx(80.0)
        assert engulfing.start_index == 4
        assert engulfing.suggested_entry == pytest.approx(99.5)
        assert engulfing.suggested_stop == pytest.approx(101.0)
        assert engulfing.suggested_target == pytest.approx(96.5)

    @pytest.mark.parametrize("pattern_type,big,small,entry,stop,target", [
        (
            PatternType.BULLISH_HARAMI,
            (102.0, 102.2, 97.8, 98.0), (98.5, 99.7, 98.4, 99.5),
            99.7, 97.8, 103.7,
        ),
        (
            PatternType.BEARISH_HARAMI,
            (98.0, 102.2, 97.8, 102.0), (101.5, 101.6, 100.4, 100.5),
            100.4, 102.2, 96.4,
        ),
    ])
    def test_harami(self, pattern_type, big, small, entry, stop, target):
        candles = flat_candles(3)
        candles.append(make_candle(3, *big))
        candles.append(make_candle(4, *small))

        found = _by_type(detect_candlestick_patterns(candles), pattern_type)

        assert len(found) == 1
        assert found[0].confidence == 60
        assert (found[0].start_index, found[0].end_index) == (3, 4)
        assert found[0].suggested_entry == pytest.approx(entry)
        assert found[0].suggested_stop == pytest.approx(stop)
        assert found[0].suggested_target == pytest.approx(target)

    def test_piercing_line(self):
        candles = flat_candles(3)
        candles.append(make_candle(3, 102.0, 102.2, 97.8, 98.0))
        candles.append(make_candle(4, 97.5, 100.6, 97.4, 100.5))

        found = _by_type(detect_candlestick_patterns(candles), PatternType.PIERCING_LINE)

        assert len(found) == 1
        assert found[0].direction == PatternDirection.BULLISH
        assert found[0].confidence == 65
        assert found[0].suggested_entry == pytest.approx(100.5)
        assert found[0].suggested_stop == pytest.approx(97.4)
        assert found[0].suggested_target == pytest.approx(104.5)

    def test_dark_cloud_cover(self):
        candles = flat_candles(3)
        candles.append(make_candle(3, 98.0, 102.2, 97.8, 102.0))
        candles.append(make_candle(4, 102.5, 102.6, 99.4, 99.5))

        found = _by_type(detect_candlestick_patterns(candles), PatternType.DARK_CLOUD_COVER)

        assert len(found) == 1
        assert found[0].direction == PatternDirection.BEARISH
        assert found[0].confidence == 65
        assert found[0].suggested_entry == pytest.approx(99.5)
        assert found[0].suggested_stop == pytest.approx(102.6)
        assert found[0].suggested_target == pytest.approx(95.5)

    def test_evening_star(self):
        candles = flat_candles(3)
        candles.append(make_candle(3, 98.0, 102.2, 97.8, 102.0))
        candles.append(make_candle(4, 102.2, 102.5, 101.9, 102.1))
        candles.append(make_candle(5, 102.0, 102.1, 98.8, 99.0))

        stars = _by_type(detect_candlestick_patterns(candles), PatternType.EVENING_STAR)

        assert len(stars) == 1
        assert stars[0].confidence == 78
        assert (stars[0].start_index, stars[0].end_index) == (3, 5)
        assert stars[0].suggested_entry == pytest.approx(99.0)
        assert stars[0].suggested_stop == pytest.approx(102.5)
        assert stars[0].suggested_target == pytest.approx(92.0)

    def test_three_black_crows(self):
        candles = flat_candles(3)
        candles.append(make_candle(3, 100.0, 100.2, 98.3, 98.5))
        candles.append(make_candle(4, 99.0, 99.2, 97.3, 97.5))
        candles.append(make_candle(5, 98.0, 98.2, 96.3, 96.5))

        crows = _by_type(detect_candlestick_patterns(candles), PatternType.THREE_BLACK_CROWS)

        assert len(crows) == 1
        assert crows[0].confidence == 80
        assert crows[0].suggested_entry == pytest.approx(96.5)
        assert crows[0].suggested_stop == pytest.approx(100.2)
        assert crows[0].suggested_target == pytest.approx(94.65)


    def test_timeframe_tag(self):
        candles = flat_candles(4)
        candles.append(make_candle(4, 99.5, 100.1, 97.0, 100.0))

        results = detect_candlestick_patterns(candles, Timeframe.H4)
        assert results
        assert all(r.timeframe == Timeframe.H4 for r in results)

    def test_accepts_dataframe(self, sample_ohlcv):
        results = detect_candlestick_patterns(sample_ohlcv)
        assert all(0 <= r.confidence <= 100 for r in results)


class TestSwingPoints:
    """Test strict swing point detection."""

    def test_strict_highs(self):
        values = [1, 2, 3, 4, 5, 9, 5, 4, 3, 2, 1]
        assert find_swing_points(values, order=5, highs=True) == [(5, 9.0)]

    def test_plateau_is_not_a_swing(self):
        values = [1, 2, 3, 4, 9, 9, 4, 3, 2, 1, 0, 0]
        assert find_swing_points(values, order=5, highs=True) == []

    def test_lows(self):
        values = [9, 8, 7, 6, 5, 1, 5, 6, 7, 8, 9]
        assert find_swing_points(values, order=5, highs=False) == [(5, 1.0)]


class TestChartPatterns:
    """Test double top/bottom and head-and-shoulders detection."""

    def test_too_few_candles(self):
        assert detect_chart_patterns(flat_candles(29)) == []

    def test_double_top(self):
        closes = _piecewise([(0, 100), (10, 110), (20, 100), (30, 110.5), (45, 98)])
        results = detect_chart_patterns(_level_candles(closes))

        assert len(results) == 1
        top = results[0]
        assert top.pattern_type == PatternType.DOUBLE_TOP
        assert top.direction == PatternDirection.BEARISH
        assert top.confidence == 72
        assert (top.start_index, top.end_index) == (10, 30)
        assert top.suggested_entry == pytest.approx(99.5)
        assert top.suggested_stop == pytest.approx(111.0)
        assert top.suggested_target == pytest.approx(88.25)

    def test_double_top_needs_breakdown(self):
        """Price still well above the neckline means no double top yet."""
        closes = _piecewise([(0, 100), (10, 110), (20, 100), (30, 110.5), (40, 108), (45, 107)])
        results = detect_chart_patterns(_level_candles(closes))
        assert _by_type(results, PatternType.DOUBLE_TOP) == []

    def test_head_and_shoulders(self):
        closes = _piecewise([(0, 100), (10, 110), (17, 101), (25, 115), (32, 101.5), (40, 110.3), (50, 100)])
        results = detect_chart_patterns(_level_candles(closes))

        hs = _by_type(results, PatternType.HEAD_AND_SHOULDERS)
        assert len(hs) == 1
        assert hs[0].confidence == 82
        assert (hs[0].start_index, hs[0].end_index) == (10, 40)
        assert hs[0].suggested_stop == pytest.approx(110.8)

    def test_double_bottom(self):
        closes = _piecewise([(0, 100), (10, 90), (20, 100), (30, 89.5), (45, 102)])
        results = detect_chart_patterns(_level_candles(closes))

        assert len(results) == 1
        bottom = results[0]
        assert bottom.pattern_type == PatternType.DOUBLE_BOTTOM
        assert bottom.direction == PatternDirection.BULLISH
        assert bottom.confidence == 72
        assert (bottom.start_index, bottom.end_index) == (10, 30)
        assert bottom.suggested_entry == pytest.approx(100.5)
        assert bottom.suggested_stop == pytest.approx(89.0)
        assert bottom.suggested_target == pytest.approx(111.75)

    def test_inverse_head_and_shoulders(self):
        closes = _piecewise([(0, 100), (10, 90), (17, 99), (25, 85), (32, 98.5), (40, 89.7), (50, 100)])
        results = detect_chart_patterns(_level_candles(closes))

        ihs = _by_type(results, PatternType.INVERSE_HEAD_AND_SHOULDERS)
        assert len(ihs) == 1
        assert ihs[0].direction == PatternDirection.BULLISH
        assert ihs[0].confidence == 82
        assert (ihs[0].start_index, ihs[0].end_index) == (10, 40)
        assert ihs[0].suggested_entry == pytest.approx(99.5)
        assert ihs[0].suggested_stop == pytest.approx(89.2)
        assert ihs[0].suggested_target == pytest.approx(114.5)


class TestTechnicalSetups:
    """Test indicator-based setups on the last bar."""

    def test_too_few_candles(self):
        assert detect_technical_setups(flat_candles(49)) == []

    def test_rsi_oversold(self):
        closes = [200.0 - i for i in range(60)]
        results = detect_technical_setups(series_candles(closes))

        oversold = _by_type(results, PatternType.RSI_OVERSOLD)
        assert len(oversold) == 1
        assert oversold[0].confidence == 100.0  # clamped
        assert _by_type(results, PatternType.RSI_OVERBOUGHT) == []

    def test_rsi_overbought(self):
        closes = [100.0 + i for i in range(60)]
        results = detect_technical_setups(series_candles(closes))
        assert len(_by_type(results, PatternType.RSI_OVERBOUGHT)) == 1

    def test_volume_breakout(self):
        candles = flat_candles(59)
        candles.append(make_candle(59, 99.8, 101.0, 99.0, 100.8, volume=3_000_000))

        breakout = _by_type(detect_technical_setups(candles), PatternType.VOLUME_BREAKOUT)

        assert len(breakout) == 1
        assert breakout[0].confidence == 68
        assert breakout[0].suggested_stop == pytest.approx(99.0)
        assert breakout[0].suggested_target == pytest.approx(100.8 + 2 * 2.0)

    def test_volume_spike_on_red_bar_ignored(self):
        candles = flat_candles(59)
        candles.append(make_candle(59, 100.8, 101.0, 99.0, 99.8, volume=3_000_000))
        assert _by_type(detect_technical_setups(candles), PatternType.VOLUME_BREAKOUT) == []

    def test_volume_breakout_after_silent_window(self):
        candles = flat_candles(40) + [c.model_copy(update={"volume": 0.0}) for c in flat_candles(19, start_day=40)]
        candles.append(make_candle(59, 99.8, 101.0, 99.0, 100.8, volume=500_000))

        breakout = _by_type(detect_technical_setups(candles), PatternType.VOLUME_BREAKOUT)

        assert len(breakout) == 1
        assert "0.0x" not in breakout[0].description
        assert "without trading volume" in breakout[0].description
        assert breakout[0].suggested_stop == pytest.approx(99.0)

    def test_no_crosses_below_200_bars(self, uptrend_candles):
        results = detect_technical_setups(uptrend_candles[:150])
        assert _by_type(results, PatternType.GOLDEN_CROSS) == []
        assert _by_type(results, PatternType.DEATH_CROSS) == []

    def test_golden_cross(self):
        # SMA50 and SMA200 sit level until the last bar pulls the faster one above
        results = detect_technical_setups(series_candles([100.0] * 249 + [101.0]))

        crosses = _by_type(results, PatternType.GOLDEN_CROSS)
        assert len(crosses) == 1
        assert crosses[0].confidence == 75
        assert (crosses[0].start_index, crosses[0].end_index) == (248, 249)
        assert crosses[0].suggested_entry == pytest.approx(101.0)
        assert crosses[0].suggested_stop == pytest.approx(95.95)
        assert crosses[0].suggested_target == pytest.approx(111.1)
        assert _by_type(results, PatternType.DEATH_CROSS) == []

    def test_death_cross(self):
        results = detect_technical_setups(series_candles([100.0] * 249 + [99.0]))

        crosses = _by_type(results, PatternType.DEATH_CROSS)
        assert len(crosses) == 1
        assert crosses[0].direction == PatternDirection.BEARISH
        assert crosses[0].confidence == 75
        assert crosses[0].suggested_entry == pytest.approx(99.0)
        assert crosses[0].suggested_stop == pytest.approx(103.95)
        assert crosses[0].suggested_target == pytest.approx(89.1)
        assert _by_type(results, PatternType.GOLDEN_CROSS) == []

    def test_bollinger_squeeze(self):
        """A calm 20-bar stretch after wide swings contracts the bands."""
        wide = [90.0 if i % 2 == 0 else 110.0 for i in range(40)]
        calm = [99.9 if i % 2 == 0 else 100.1 for i in range(20)]

        squeezes = _by_type(detect_technical_setups(series_candles(wide + calm)), PatternType.BOLLINGER_SQUEEZE)

        assert len(squeezes) == 1
        squeeze = squeezes[0]
        assert squeeze.direction == PatternDirection.NEUTRAL
        assert squeeze.confidence == 70
        assert squeeze.suggested_entry == pytest.approx(100.1)
        assert squeeze.suggested_stop == pytest.approx(99.8)
        assert squeeze.suggested_target == pytest.approx(100.2)

    def test_macd_cross_up(self):
        results = detect_technical_setups(series_candles([100.0] * 59 + [110.0]))

        crosses = _by_type(results, PatternType.MACD_CROSS_UP)
        assert len(crosses) == 1
        assert crosses[0].confidence == 65
        assert crosses[0].suggested_entry == pytest.approx(110.0)
        assert crosses[0].suggested_stop == pytest.approx(106.7)
        assert crosses[0].suggested_target == pytest.approx(115.5)
        assert _by_type(results, PatternType.MACD_CROSS_DOWN) == []

    def test_macd_cross_down(self):
        results = detect_technical_setups(series_candles([100.0] * 59 + [90.0]))

        crosses = _by_type(results, PatternType.MACD_CROSS_DOWN)
        assert len(crosses) == 1
        assert crosses[0].direction == PatternDirection.BEARISH
        assert crosses[0].confidence == 65
        assert crosses[0].suggested_entry == pytest.approx(90.0)
        assert crosses[0].suggested_stop == pytest.approx(92.7)
        assert crosses[0].suggested_target == pytest.approx(85.5)


class TestDetector:
    """Test the combined detector."""

    def test_sorted_by_confidence(self, sample_ohlcv):
        results = detect_all(sample_ohlcv)
        confidences = [r.confidence for r in results]
        assert confidences == sorted(confidences, reverse=True)

    def test_includes_every_pass(self):
        candles = flat_candles(58)  # last bar is bearish
        candles.append(make_candle(58, 99.7, 100.6, 99.6, 100.5, volume=3_000_000))

        results = detect_all(candles)
        categories = {r.pattern_type.category.value for r in results}
        assert "technical" in categories
        assert "candlestick" in categories

    def test_empty_for_short_input(self):
        assert detect_all(flat_candles(3)) == []

    def test_deterministic(self, sample_ohlcv):
        assert detect_all(sample_ohlcv) == detect_all(sample_ohlcv)

    def test_tolerates_inconsistent_bars(self):
        """Bars whose high/low do not bracket open/close are scanned, not rejected."""
        candles = flat_candles(60)
        candles[10] = make_candle(10, 100.0, 99.0, 101.0, 100.5)
        candles[30] = make_candle(30, 100.0, 100.0, 100.0, 100.0)
        candles[-1] = make_candle(59, 100.0, 99.5, 100.5, 101.0)

        results = detect_all(candles)

        assert all(0 <= r.confidence <= 100 for r in results)
        assert detect_all(candles) == results
