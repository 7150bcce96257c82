"""
Single-symbol watchlist scan.

Fetch bars, detect and filter patterns, classify the regime, run the
advisory synthesis, persist what was found, and open a simulated trade
for strong agreeing signals.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Optional, Sequence

from signalcore.advisory import Advisor
from signalcore.config import Settings, get_logger, get_settings
from signalcore.core.errors import ExternalServiceError, InsufficientDataError
from signalcore.core.models import (
    AdvisoryAnalysis,
    Candle,
    DetectedPattern,
    FeatureVector,
    MarketRegime,
    PatternDirection,
    PatternResult,
    RiskInput,
    ScanReport,
    SimulatedTrade,
    SimulationStatus,
    TradeContext,
    TradeDirection,
    TradeSignal,
    WatchlistItem,
    to_utc,
    utcnow,
)
from signalcore.data.providers.base import MarketDataProvider
from signalcore.data.stores.base import PatternStore
from signalcore.features.detector import detect_all
from signalcore.features.engine import MIN_CANDLES as FEATURE_MIN_CANDLES
from signalcore.lifecycle.patterns import invalidate_contradictions
from signalcore.lifecycle.simulation import TradeSimulationService
from signalcore.regime.classifier import RegimeService
from signalcore.risk.engine import RiskEngine

from .throttle import AdvisoryThrottle

logger = get_logger("scanner")

RECENT_TRADE_WINDOW = timedelta(hours=24)
BREAKOUT_VOLUME_MULTIPLE = 1.5


def volume_profile(candles: Sequence[Candle], features: FeatureVector) -> str:
    if features.volume_avg20 > 0 and candles[-1].volume > features.volume_avg20 * BREAKOUT_VOLUME_MULTIPLE:
        return "Breakout"
    return "Normal"


def ma_alignment(features: FeatureVector) -> str:
    price = features.current_price
    if price > features.sma20 > features.sma50:
        return "Bullish"
    if price < features.sma20 < features.sma50:
        return "Bearish"
    return "Mixed"


def _lean(tag: Optional[str]) -> Optional[str]:
    tag = (tag or "").lower()
    if "bullish" in tag:
        return "Bullish"
    if "bearish" in tag:
        return "Bearish"
    return None


def signal_alignment(pattern_direction: PatternDirection, ma_tag: Optional[str], bias: str) -> str:
    """
    Agreement between the pattern, the moving-average stack and the advisory bias.

    Returns:
        "All Bullish" / "All Bearish" when every source leans the same way,
        "Conflicting" when any two lean opposite ways, otherwise "Mixed"
    """
    leans = [_lean(pattern_direction.value), _lean(ma_tag), _lean(bias)]
    directional = {lean for lean in leans if lean is not None}
    if len(directional) > 1:
        return "Conflicting"
    if len(directional) == 1 and None not in leans:
        return f"All {directional.pop()}"
    return "Mixed"


def regime_alignment(regime: MarketRegime, direction: TradeDirection, ma_tag: Optional[str]) -> str:
    """A trending regime agrees with trades that follow the MA stack; other regimes are "Mixed"."""
    lean = _lean(ma_tag)
    if regime is not MarketRegime.TRENDING or lean is None:
        return "Mixed"
    follows = (lean == "Bullish") == (direction is TradeDirection.LONG)
    return "Aligned" if follows else "Conflicting"


class WatchlistScanner:
    """Runs one scan for a watchlist item."""

    def __init__(
        self,
        provider: MarketDataProvider,
        store: PatternStore,
        advisor: Advisor,
        throttle: Optional[AdvisoryThrottle] = None,
        simulation: Optional[TradeSimulationService] = None,
        risk_engine: Optional[RiskEngine] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.provider = provider
        self.store = store
        self.advisor = advisor
        self.throttle = throttle or AdvisoryThrottle.from_settings(self.settings)
        self.simulation = simulation or TradeSimulationService(
            provider, store, self.settings.DEFAULT_MAX_EXPIRATION_DAYS
        )
        self.risk_engine = risk_engine or RiskEngine(self.settings)
        self.regime_service = RegimeService(provider, store)

    async def _fetch(self, item: WatchlistItem) -> list[Candle]:
        return await asyncio.wait_for(
            asyncio.to_thread(
                self.provider.get_candles, item.symbol, self.settings.SCAN_CANDLE_COUNT, item.timeframe
            ),
            timeout=self.settings.MARKET_DATA_TIMEOUT_SECONDS,
        )

    async def scan_item(
        self,
        item: WatchlistItem,
        use_ai: bool = True,
        now: Optional[datetime] = None,
    ) -> ScanReport:
        """
        Scan one watchlist item and persist the results.

        A market data failure aborts only this item: the report carries the
        error and the item is left due for the next tick.

        Args:
            item: Watchlist entry to scan
            use_ai: Whether the advisory may be called (False skips it entirely)
            now: Scan time (defaults to current UTC time)

        Returns:
            ScanReport describing what was found
        """
        now = to_utc(now) if now else utcnow()
        symbol = item.symbol

        try:
            candles = await self._fetch(item)
        except (ExternalServiceError, asyncio.TimeoutError) as e:
            logger.warning(f"Failed to fetch candles for {symbol}: {e!r}")
            return ScanReport(symbol=symbol, error=str(e) or type(e).__name__, scanned_at=now)
        if not candles:
            return ScanReport(symbol=symbol, error="no candles returned", scanned_at=now)

        current_price = candles[-1].close
        # Detection, classification and store I/O are blocking; keep them off the event loop
        results, regime, features = await asyncio.to_thread(self._analyze, item, candles)

        analysis: Optional[AdvisoryAnalysis] = None
        if results and use_ai:
            stats, performance = await asyncio.to_thread(self._history, item, results)
            async with self.throttle.slot():
                analysis = await self.advisor.synthesize(
                    symbol, results, candles, stats, performance, user_id=item.user_id
                )

        saved = await asyncio.to_thread(self._persist_patterns, item, results, current_price, analysis, now)

        top = results[0] if results else None
        is_alert = (
            top is not None
            and analysis is not None
            and top.confidence >= self.settings.ALERT_MIN_PATTERN_CONFIDENCE
            and analysis.overall_confidence >= self.settings.ALERT_MIN_AI_CONFIDENCE
        )

        trade: Optional[SimulatedTrade] = None
        if is_alert and analysis.source == "ai" and analysis.has_levels:
            trade = await asyncio.to_thread(
                self._auto_trade, item, top, saved[0], analysis, regime, candles, features, now
            )

        item.last_scanned_at = now
        item.last_pattern_count = len(results)
        item.last_bias = analysis.overall_bias if analysis else None
        item.updated_at = now
        await asyncio.to_thread(self.store.save_watchlist_item, item)

        logger.info(
            f"Scanned {symbol}: {len(results)} patterns, regime={regime.value}, "
            f"bias={analysis.overall_bias if analysis else 'N/A'}, AI={'yes' if use_ai else 'skipped'}"
        )

        return ScanReport(
            symbol=symbol,
            pattern_count=len(results),
            current_price=current_price,
            regime=regime,
            top_pattern=top.pattern_name if top else None,
            top_pattern_confidence=top.confidence if top else None,
            overall_bias=analysis.overall_bias if analysis else None,
            ai_confidence=analysis.overall_confidence if analysis else None,
            recommended_action=analysis.recommended_action if analysis else None,
            advisory_source=analysis.source if analysis else None,
            is_alert=is_alert,
            alert_message=(
                f"{symbol}: {top.pattern_name} ({top.confidence:.0f}%), "
                f"advisory says {analysis.recommended_action}"
                if is_alert else None
            ),
            created_trade_id=trade.id if trade else None,
            scanned_at=now,
        )

    def _analyze(
        self, item: WatchlistItem, candles: list[Candle]
    ) -> tuple[list[PatternResult], MarketRegime, Optional[FeatureVector]]:
        results = [r for r in detect_all(candles, item.timeframe) if r.confidence >= item.min_confidence]

        regime = MarketRegime.CHOPPY
        features: Optional[FeatureVector] = None
        if len(candles) >= FEATURE_MIN_CANDLES:
            try:
                regime_result = self.regime_service.classify(item.symbol, candles)
                regime, features = regime_result.regime, regime_result.features
            except InsufficientDataError as e:
                logger.debug(f"{item.symbol}: regime skipped: {e}")
        return results, regime, features

    def _history(self, item: WatchlistItem, results: list[PatternResult]):
        stats = self.simulation.stats(item.user_id)
        performance = self.simulation.relevant_performance(item.user_id, {r.pattern_type for r in results})
        return stats, performance

    def _persist_patterns(
        self,
        item: WatchlistItem,
        results: list[PatternResult],
        current_price: float,
        analysis: Optional[AdvisoryAnalysis],
        now: datetime,
    ) -> list[DetectedPattern]:
        # Only patterns from earlier scans can be contradicted
        existing = self.store.list_live_patterns(asset=item.symbol)
        verdicts = {v.pattern_name.lower(): v for v in analysis.pattern_verdicts} if analysis else {}

        saved = []
        for r in results:
            pattern = DetectedPattern.from_result(
                r, item.symbol, current_price, item.timeframe, now, item.user_id
            )
            verdict = verdicts.get(r.pattern_name.lower())
            if verdict is not None:
                pattern.ai_analysis = f"[{verdict.grade}] {verdict.one_line_reason}"
            if analysis is not None and analysis.source == "ai":
                pattern.ai_confidence = analysis.overall_confidence

            for old in invalidate_contradictions(existing, pattern, now):
                self.store.save_pattern(old)
                logger.info(f"Invalidated {old.pattern_name} on {old.asset} after opposite {pattern.pattern_name}")
            self.store.save_pattern(pattern)
            saved.append(pattern)
        return saved

    def _has_recent_trade(self, item: WatchlistItem, now: datetime) -> bool:
        for t in self.store.list_trades(status=SimulationStatus.ACTIVE, asset=item.symbol, user_id=item.user_id):
            if now - to_utc(t.created_at) < RECENT_TRADE_WINDOW:
                return True
        return False

    def _auto_trade(
        self,
        item: WatchlistItem,
        top: PatternResult,
        top_pattern: DetectedPattern,
        analysis: AdvisoryAnalysis,
        regime: MarketRegime,
        candles: Sequence[Candle],
        features: Optional[FeatureVector],
        now: datetime,
    ) -> Optional[SimulatedTrade]:
        symbol = item.symbol
        if self._has_recent_trade(item, now):
            logger.debug(f"{symbol}: active trade opened in the last 24h, not creating another")
            return None

        direction = TradeDirection.LONG if analysis.is_long else TradeDirection.SHORT
        risk = self.risk_engine.calculate(RiskInput(
            symbol=symbol,
            entry_price=analysis.recommended_entry,
            stop_loss=analysis.recommended_stop,
            target1=analysis.recommended_target,
            portfolio_size=self.settings.SIMULATION_PORTFOLIO_SIZE,
            is_short=direction is TradeDirection.SHORT,
            win_rate=top.historical_win_rate,
        ))
        if not risk.ok:
            logger.warning(f"{symbol}: advisory levels rejected: {risk.error}")
            return None
        assessment = risk.value
        if not assessment.passes_risk_check:
            logger.warning(f"{symbol}: trade skipped, risk check failed: {'; '.join(assessment.violations)}")
            return None

        signal = TradeSignal(
            asset=symbol,
            direction=direction,
            entry_price=analysis.recommended_entry,
            stop_loss=analysis.recommended_stop,
            target1=analysis.recommended_target,
            regime=regime,
            share_count=assessment.share_count,
            position_value=assessment.position_value,
            max_risk=assessment.max_loss,
            ai_confidence=analysis.overall_confidence,
            ai_recommended_action=analysis.recommended_action,
            detected_pattern_id=top_pattern.id,
            user_id=item.user_id,
        )
        ma_tag = ma_alignment(features) if features else None
        context = TradeContext(
            pattern_type=top.pattern_type,
            pattern_direction=top.direction,
            pattern_timeframe=item.timeframe,
            pattern_confidence=top.confidence,
            timeframe_alignment=signal_alignment(top.direction, ma_tag, analysis.overall_bias),
            regime_alignment=regime_alignment(regime, direction, ma_tag),
            ma_alignment=ma_tag,
            volume_profile=volume_profile(candles, features) if features else None,
            rsi_at_entry=features.rsi if features else None,
        )
        trade = self.simulation.open_trade(signal, context, now)

        top_pattern.generated_trade_id = trade.id
        self.store.save_pattern(top_pattern)
        logger.info(
            f"Auto-created simulated trade for {symbol}: {direction.value} at {signal.entry_price}, "
            f"stop {signal.stop_loss}, target {signal.target1} (AI: {analysis.overall_confidence:.0f}%)"
        )
        return trade
