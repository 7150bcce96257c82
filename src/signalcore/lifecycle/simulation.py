"""
Simulated (paper) trades.

A trade is created from an accepted signal, then replayed bar by bar against
daily candles until it hits its stop, a target, or its expiry ceiling.
Resolved trades feed the pattern performance aggregates.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, time, timedelta
from typing import Callable, Iterable, Optional, Sequence

from signalcore.config import get_logger
from signalcore.core.errors import ExternalServiceError
from signalcore.core.models import (
    Candle,
    PatternPerformance,
    PatternType,
    SimulatedTrade,
    SimulationStatus,
    Timeframe,
    TradeContext,
    TradeOutcome,
    TradeSignal,
    TradingStats,
    to_utc,
    utcnow,
)
from signalcore.data.providers.base import MarketDataProvider
from signalcore.data.stores.base import PatternStore
from signalcore.lifecycle.performance import recompute_performance
from signalcore.lifecycle.stats import trading_stats

logger = get_logger("lifecycle.simulation")

CancelCheck = Callable[[], bool]

MIN_RESOLUTION_CANDLES = 30
RESOLUTION_PADDING_DAYS = 5


# =============================================================================
# TRADE MECHANICS
# =============================================================================


def create_trade(
    signal: TradeSignal,
    context: Optional[TradeContext] = None,
    now: Optional[datetime] = None,
    max_expiration_days: int = 30,
) -> SimulatedTrade:
    """Build an Active trade from a signal, seeding the seen extremes with the entry."""
    now = to_utc(now) if now else utcnow()
    context = context or TradeContext()
    return SimulatedTrade(
        signal_id=signal.id,
        detected_pattern_id=signal.detected_pattern_id,
        user_id=signal.user_id,
        asset=signal.asset,
        direction=signal.direction,
        entry_price=signal.entry_price,
        stop_loss=signal.stop_loss,
        target1=signal.target1,
        target2=signal.target2 if signal.target2 and signal.target2 > 0 else None,
        regime_at_entry=signal.regime,
        ai_confidence=signal.ai_confidence,
        ai_recommended_action=signal.ai_recommended_action,
        share_count=signal.share_count,
        position_value=signal.position_value,
        max_risk=signal.max_risk,
        status=SimulationStatus.ACTIVE,
        created_at=now,
        activated_at=now,
        max_expiration_days=max_expiration_days,
        highest_price_seen=signal.entry_price,
        lowest_price_seen=signal.entry_price,
        **context.model_dump(),
    )


def resolve_trade(
    trade: SimulatedTrade,
    outcome: TradeOutcome,
    exit_price: float,
    now: Optional[datetime] = None,
) -> SimulatedTrade:
    """Close a trade and compute its P&L, R-multiple and drawdown."""
    is_long = trade.is_long
    trade.outcome = outcome
    trade.status = SimulationStatus.RESOLVED
    trade.resolved_at = to_utc(now) if now else utcnow()
    trade.exit_price = exit_price

    pnl_per_share = exit_price - trade.entry_price if is_long else trade.entry_price - exit_price
    trade.pnl_percent = pnl_per_share / trade.entry_price * 100
    if trade.share_count is not None:
        trade.pnl_dollars = pnl_per_share * trade.share_count

    risk_per_share = abs(trade.entry_price - trade.stop_loss)
    if risk_per_share > 0:
        trade.r_multiple = pnl_per_share / risk_per_share

    if is_long and trade.lowest_price_seen is not None:
        trade.max_drawdown_percent = (trade.entry_price - trade.lowest_price_seen) / trade.entry_price * 100
    elif not is_long and trade.highest_price_seen is not None:
        trade.max_drawdown_percent = (trade.highest_price_seen - trade.entry_price) / trade.entry_price * 100

    return trade


def process_trade(
    trade: SimulatedTrade,
    candles: Sequence[Candle],
    now: Optional[datetime] = None,
) -> bool:
    """
    Replay unprocessed bars against an active trade.

    Bars must already be restricted to those after activation that have not
    been replayed before. When one bar crosses both stop and target, the
    stop is taken to have hit first if the open sits on the stop side of
    the entry/stop midpoint.

    Args:
        trade: Active trade, updated in place
        candles: Bars in ascending time order
        now: Resolution timestamp

    Returns:
        True when the trade resolved
    """
    if trade.status is not SimulationStatus.ACTIVE:
        return False

    is_long = trade.is_long
    midpoint = (trade.entry_price + trade.stop_loss) / 2

    for bar in candles:
        trade.days_held += 1
        if trade.highest_price_seen is None or bar.high > trade.highest_price_seen:
            trade.highest_price_seen = bar.high
        if trade.lowest_price_seen is None or bar.low < trade.lowest_price_seen:
            trade.lowest_price_seen = bar.low

        if is_long:
            stop_hit = bar.low <= trade.stop_loss
            target_hit = bar.high >= trade.target1
        else:
            stop_hit = bar.high >= trade.stop_loss
            target_hit = bar.low <= trade.target1

        if stop_hit and target_hit:
            stop_hit = bar.open <= midpoint if is_long else bar.open >= midpoint
            target_hit = not stop_hit

        if stop_hit:
            resolve_trade(trade, TradeOutcome.HIT_STOP, trade.stop_loss, now)
            return True

        if target_hit:
            if trade.target2 is not None and (
                bar.high >= trade.target2 if is_long else bar.low <= trade.target2
            ):
                resolve_trade(trade, TradeOutcome.HIT_TARGET2, trade.target2, now)
            else:
                resolve_trade(trade, TradeOutcome.HIT_TARGET1, trade.target1, now)
            return True

        if trade.days_held >= trade.max_expiration_days:
            resolve_trade(trade, TradeOutcome.EXPIRED, bar.close, now)
            return True

    return False


def unprocessed_candles(trade: SimulatedTrade, candles: Iterable[Candle]) -> list[Candle]:
    """Bars dated after the activation day, minus those already replayed."""
    activated = to_utc(trade.activated_at or trade.created_at)
    cutoff = datetime.combine(activated.date(), time.min, tzinfo=activated.tzinfo)
    after = sorted((c for c in candles if c.time > cutoff), key=lambda c: c.time)
    return after[trade.days_held:]


# =============================================================================
# SERVICE
# =============================================================================


class TradeSimulationService:
    """Creates, resolves and aggregates simulated trades through a store."""

    RESOLUTION_TIMEFRAME = Timeframe.D1

    def __init__(
        self,
        provider: MarketDataProvider,
        store: PatternStore,
        max_expiration_days: int = 30,
    ):
        self.provider = provider
        self.store = store
        self.max_expiration_days = max_expiration_days

    def open_trade(
        self,
        signal: TradeSignal,
        context: Optional[TradeContext] = None,
        now: Optional[datetime] = None,
    ) -> SimulatedTrade:
        """Create and persist a trade for an accepted signal."""
        trade = create_trade(signal, context, now, self.max_expiration_days)
        self.store.save_trade(trade)
        logger.info(
            f"Created simulated trade {trade.id} for {trade.asset} "
            f"{trade.direction.value} at {trade.entry_price}"
        )
        return trade

    def resolve_active_trades(
        self,
        asset: Optional[str] = None,
        cancel: Optional[CancelCheck] = None,
        now: Optional[datetime] = None,
    ) -> list[SimulatedTrade]:
        """
        Replay new daily bars against every active trade.

        Args:
            asset: Restrict the pass to one symbol
            cancel: Returns True when the pass should stop early
            now: Evaluation time (defaults to current UTC time)

        Returns:
            Trades resolved during this pass
        """
        now = to_utc(now) if now else utcnow()
        by_asset: dict[str, list[SimulatedTrade]] = defaultdict(list)
        for trade in self.store.list_trades(status=SimulationStatus.ACTIVE, asset=asset):
            by_asset[trade.asset].append(trade)

        resolved: list[SimulatedTrade] = []
        for symbol, trades in by_asset.items():
            if cancel and cancel():
                logger.info("Trade resolution cancelled")
                break

            earliest = min(to_utc(t.activated_at or t.created_at) for t in trades)
            days_since = int((now - earliest) / timedelta(days=1)) + RESOLUTION_PADDING_DAYS
            try:
                candles = self.provider.get_candles(
                    symbol, max(days_since, MIN_RESOLUTION_CANDLES), self.RESOLUTION_TIMEFRAME
                )
            except ExternalServiceError as e:
                logger.warning(f"Failed to fetch candles for {symbol}, skipping resolution: {e}")
                continue
            logger.debug(f"Fetched {len(candles)} candles for {symbol} from {self.provider.name}")

            for trade in trades:
                if cancel and cancel():
                    break
                bars = unprocessed_candles(trade, candles)
                if not bars:
                    continue
                if process_trade(trade, bars, now):
                    resolved.append(trade)
                    logger.info(
                        f"Resolved trade {trade.id}: {trade.asset} {trade.outcome.value} "
                        f"P&L: {trade.pnl_percent:.2f}%"
                    )
                self.store.save_trade(trade)

        for trade in resolved:
            self._update_performance(trade, now)
            self._update_linked_pattern(trade)

        return resolved

    def _update_performance(self, trade: SimulatedTrade, now: datetime) -> Optional[PatternPerformance]:
        key = trade.performance_key
        if key is None:
            return None
        candidates = self.store.list_trades(status=SimulationStatus.RESOLVED, asset=None, user_id=key.user_id)
        perf = recompute_performance(key, candidates, now)
        self.store.save_performance(perf)
        return perf

    def _update_linked_pattern(self, trade: SimulatedTrade) -> None:
        if trade.detected_pattern_id is None:
            return
        pattern = self.store.get_pattern(trade.detected_pattern_id)
        # Terminal patterns are frozen; resolved_at belongs to the pattern lifecycle
        if pattern is None or pattern.status.is_terminal:
            return
        pattern.was_correct = trade.outcome.is_win
        pattern.actual_pnl_percent = trade.pnl_percent
        self.store.save_pattern(pattern)

    def relevant_performance(
        self,
        user_id: str,
        pattern_types: Iterable[PatternType],
        min_trades: int = 3,
    ) -> list[PatternPerformance]:
        """Performance rows with enough history for the given pattern types, busiest first."""
        wanted = set(pattern_types)
        rows = [
            p for p in self.store.list_performance(user_id=user_id)
            if p.key.pattern_type in wanted and p.total_trades >= min_trades
        ]
        return sorted(rows, key=lambda p: p.total_trades, reverse=True)

    def stats(self, user_id: Optional[str] = None) -> TradingStats:
        """Overall stats over the user's resolved trades."""
        return trading_stats(self.store.list_trades(status=SimulationStatus.RESOLVED, user_id=user_id))
