"""
Rule-based market regime classifier.

Each regime has a checklist scored from the feature vector:

  1. Trending:       strong SMA20 slope, price/SMA20 on one side of SMA50,
                     MACD and EMA alignment with the slope
  2. VolExpansion:   high ATR%, wide Bollinger Bands, extreme RSI
  3. MeanReversion:  extreme RSI, price at a band edge, flat slope
  4. Choppy:         flat slope, mid-range RSI, narrow bands and low ATR

Scores are capped at 100 and the highest wins. Ties go to the regime listed
first above.
"""

from datetime import datetime
from typing import Callable, Optional, Sequence

from signalcore.config import get_logger
from signalcore.core.errors import InsufficientDataError, MarketDataError
from signalcore.core.models import (
    Candle,
    FeatureVector,
    MarketRegime,
    RegimeHistory,
    RegimeResult,
    Timeframe,
    utcnow,
)
from signalcore.data.providers.base import MarketDataProvider
from signalcore.data.stores.base import PatternStore
from signalcore.features.engine import MIN_CANDLES, compute_features

logger = get_logger("regime")

Score = tuple[MarketRegime, float, list[str]]


# =============================================================================
# SCORERS
# =============================================================================


def score_trending(f: FeatureVector) -> Score:
    score = 0.0
    reasons: list[str] = []
    slope = f.sma20_slope

    if abs(slope) > 1.0:
        score += 30
        reasons.append(f"Strong SMA20 slope ({slope:.2f}%)")
    elif abs(slope) > 0.5:
        score += 20
        reasons.append(f"Moderate SMA20 slope ({slope:.2f}%)")

    if f.current_price > f.sma50 and f.sma20 > f.sma50:
        score += 20
        reasons.append("Price & SMA20 above SMA50 (uptrend)")
    elif f.current_price < f.sma50 and f.sma20 < f.sma50:
        score += 20
        reasons.append("Price & SMA20 below SMA50 (downtrend)")

    if (slope > 0 and f.macd > f.macd_signal) or (slope < 0 and f.macd < f.macd_signal):
        score += 15
        reasons.append("MACD confirms trend direction")

    if 55 < f.rsi < 75 and slope > 0:
        score += 10
        reasons.append(f"RSI bullish range ({f.rsi:.1f})")
    elif 25 < f.rsi < 45 and slope < 0:
        score += 10
        reasons.append(f"RSI bearish range ({f.rsi:.1f})")

    if 1.0 < f.atr_percent < 3.5:
        score += 10
        reasons.append(f"Healthy ATR% ({f.atr_percent:.2f}%)")

    if (f.ema12 > f.ema26 and slope > 0) or (f.ema12 < f.ema26 and slope < 0):
        score += 10
        reasons.append("EMA12/26 aligned with trend")

    return MarketRegime.TRENDING, min(score, 100.0), reasons


def score_vol_expansion(f: FeatureVector) -> Score:
    score = 0.0
    reasons: list[str] = []

    if f.atr_percent > 4.0:
        score += 30
        reasons.append(f"Very high ATR% ({f.atr_percent:.2f}%)")
    elif f.atr_percent > 3.0:
        score += 20
        reasons.append(f"High ATR% ({f.atr_percent:.2f}%)")

    if f.bollinger_width > 8.0:
        score += 25
        reasons.append(f"Wide Bollinger Bands ({f.bollinger_width:.2f}%)")
    elif f.bollinger_width > 5.0:
        score += 15
        reasons.append(f"Expanding Bollinger Bands ({f.bollinger_width:.2f}%)")

    if f.rsi > 75 or f.rsi < 25:
        score += 20
        reasons.append(f"Extreme RSI ({f.rsi:.1f})")

    if f.current_price != 0 and abs(f.macd - f.macd_signal) / f.current_price * 100 > 0.5:
        score += 15
        reasons.append("Large MACD/Signal divergence")

    if f.current_price > f.bollinger_upper or f.current_price < f.bollinger_lower:
        score += 15
        reasons.append("Price outside Bollinger Bands")

    return MarketRegime.VOL_EXPANSION, min(score, 100.0), reasons


def score_mean_reversion(f: FeatureVector) -> Score:
    score = 0.0
    reasons: list[str] = []

    if f.rsi > 70:
        score += 25
        reasons.append(f"Overbought RSI ({f.rsi:.1f}), reversion likely")
    elif f.rsi < 30:
        score += 25
        reasons.append(f"Oversold RSI ({f.rsi:.1f}), reversion likely")

    if f.bollinger_width < 6.0:
        if f.current_price >= f.bollinger_upper * 0.98:
            score += 20
            reasons.append("Price at upper Bollinger Band")
        elif f.current_price <= f.bollinger_lower * 1.02:
            score += 20
            reasons.append("Price at lower Bollinger Band")

    if abs(f.sma20_slope) < 0.3:
        score += 15
        reasons.append(f"Flat SMA20 slope ({f.sma20_slope:.2f}%), range-bound")

    if abs(f.macd) < abs(f.macd_signal) * 0.3 or abs(f.macd - f.macd_signal) < 0.01:
        score += 10
        reasons.append("MACD converging, momentum fading")

    if 1.0 < f.atr_percent < 3.0:
        score += 10
        reasons.append(f"Moderate volatility ({f.atr_percent:.2f}%)")

    if f.vwap > 0 and f.current_price > 0:
        if abs(f.current_price - f.vwap) / f.current_price * 100 < 1.0:
            score += 10
            reasons.append("Price near VWAP")

    return MarketRegime.MEAN_REVERSION, min(score, 100.0), reasons


def score_choppy(f: FeatureVector) -> Score:
    score = 0.0
    reasons: list[str] = []
    slope = abs(f.sma20_slope)

    if slope < 0.3:
        score += 25
        reasons.append(f"Flat SMA20 slope ({f.sma20_slope:.2f}%)")
    elif slope < 0.5:
        score += 15
        reasons.append(f"Nearly flat SMA20 slope ({f.sma20_slope:.2f}%)")

    if 40 < f.rsi < 60:
        score += 20
        reasons.append(f"Mid-range RSI ({f.rsi:.1f}), no directional conviction")

    if f.bollinger_width < 3.0:
        score += 20
        reasons.append(f"Narrow Bollinger Bands ({f.bollinger_width:.2f}%)")
    elif f.bollinger_width < 4.5:
        score += 10
        reasons.append(f"Tight Bollinger Bands ({f.bollinger_width:.2f}%)")

    if f.atr_percent < 1.5:
        score += 15
        reasons.append(f"Low ATR% ({f.atr_percent:.2f}%)")

    if f.current_price != 0 and abs(f.macd) / f.current_price * 100 < 0.2:
        score += 10
        reasons.append("MACD near zero, no momentum")

    if f.sma20 > 0 and abs(f.sma20 - f.sma50) / f.sma20 * 100 < 1.0:
        score += 10
        reasons.append("SMA20 and SMA50 converged")

    return MarketRegime.CHOPPY, min(score, 100.0), reasons


# Declaration order doubles as the tie-break order.
SCORERS: list[Callable[[FeatureVector], Score]] = [
    score_trending,
    score_vol_expansion,
    score_mean_reversion,
    score_choppy,
]


def classify_regime(features: FeatureVector, now: Optional[datetime] = None) -> RegimeResult:
    """
    Pick the best-scoring regime for a feature vector.

    Args:
        features: Feature snapshot to classify
        now: Optional timestamp for the result (defaults to current UTC time)

    Returns:
        RegimeResult with the winner's confidence rounded to 1 dp
    """
    candidates = [scorer(features) for scorer in SCORERS]
    # max() returns the first maximal element
    regime, confidence, reasons = max(candidates, key=lambda c: c[1])

    return RegimeResult(
        symbol=features.symbol,
        regime=regime,
        confidence=round(confidence, 1),
        rationale=reasons,
        features=features,
        detected_at=now or utcnow(),
    )


# =============================================================================
# SERVICE
# =============================================================================


class RegimeService:
    """Fetch candles, classify, and append the result to regime history."""

    PREFERRED_CANDLES = 250
    FALLBACK_CANDLES = 100

    def __init__(self, provider: MarketDataProvider, store: PatternStore):
        self.provider = provider
        self.store = store

    def detect(self, symbol: str, timeframe: Timeframe = Timeframe.D1) -> RegimeResult:
        """
        Classify the current regime for a symbol and record it.

        Raises:
            MarketDataError: the provider could not supply candles
            InsufficientDataError: fewer than 50 candles available
        """
        try:
            candles = self.provider.get_candles(symbol, self.PREFERRED_CANDLES, timeframe)
        except MarketDataError as e:
            logger.debug(f"{symbol}: {e}; retrying with {self.FALLBACK_CANDLES} bars")
            candles = self.provider.get_candles(symbol, self.FALLBACK_CANDLES, timeframe)
        return self.classify(symbol, candles)

    def classify(self, symbol: str, candles: Sequence[Candle]) -> RegimeResult:
        """Classify already-fetched candles and record the result."""
        if len(candles) < MIN_CANDLES:
            raise InsufficientDataError(MIN_CANDLES, len(candles), "regime detection")

        result = classify_regime(compute_features(symbol, candles))
        self.store.add_regime_history(RegimeHistory.from_result(result))
        logger.info(f"{symbol}: regime {result.regime.value} ({result.confidence:.1f})")
        return result

    def latest(self, symbol: str) -> Optional[RegimeHistory]:
        """Most recent recorded regime for a symbol, if any."""
        history = self.store.list_regime_history(symbol, limit=1)
        return history[0] if history else None
