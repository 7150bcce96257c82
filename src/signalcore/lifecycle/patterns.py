"""
Lifecycle of tracked patterns.

Transitions: Active -> PlayingOut -> HitTarget / HitStop / Expired, plus
Invalidated when a newer opposite-direction pattern appears on the same
asset and timeframe. Terminal records are never mutated again.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional

from signalcore.config import get_logger
from signalcore.core.errors import ExternalServiceError, safe_div
from signalcore.core.models import (
    DetectedPattern,
    PatternDirection,
    PatternStatus,
    Timeframe,
    to_utc,
    utcnow,
)
from signalcore.data.providers.base import MarketDataProvider
from signalcore.data.stores.base import PatternStore

logger = get_logger("lifecycle.patterns")

CancelCheck = Callable[[], bool]


def pattern_pnl_percent(pattern: DetectedPattern, price: float) -> float:
    """Percent move from the detection price in the pattern's favour, 2 dp."""
    if pattern.direction is PatternDirection.BEARISH:
        move = pattern.detected_at_price - price
    else:
        move = price - pattern.detected_at_price
    return round(safe_div(move, pattern.detected_at_price) * 100, 2)


def _moved_favorably(pattern: DetectedPattern, price: float) -> bool:
    if pattern.direction is PatternDirection.BULLISH:
        return price > pattern.detected_at_price
    if pattern.direction is PatternDirection.BEARISH:
        return price < pattern.detected_at_price
    return False


def _resolve(
    pattern: DetectedPattern,
    status: PatternStatus,
    price: float,
    was_correct: bool,
    now: datetime,
) -> None:
    pattern.status = status
    pattern.resolved_at = now
    pattern.resolution_price = price
    pattern.was_correct = was_correct
    pattern.actual_pnl_percent = pattern_pnl_percent(pattern, price)


def update_pattern(
    pattern: DetectedPattern,
    current_price: float,
    now: Optional[datetime] = None,
) -> DetectedPattern:
    """
    Advance one pattern against the latest price.

    Water marks move first; expiry is checked before target and stop so an
    expired pattern is never reclassified. Neutral patterns can only expire.

    Args:
        pattern: Pattern to update in place
        current_price: Latest price for the pattern's asset
        now: Evaluation time (defaults to current UTC time)

    Returns:
        The same pattern instance
    """
    if pattern.status.is_terminal:
        return pattern

    now = to_utc(now) if now else utcnow()
    pattern.current_price = current_price
    pattern.updated_at = now
    if pattern.high_water_mark is None or current_price > pattern.high_water_mark:
        pattern.high_water_mark = current_price
    if pattern.low_water_mark is None or current_price < pattern.low_water_mark:
        pattern.low_water_mark = current_price

    if now >= pattern.expires_at:
        _resolve(pattern, PatternStatus.EXPIRED, current_price, _moved_favorably(pattern, current_price), now)
        return pattern

    target = pattern.suggested_target
    stop = pattern.suggested_stop

    if pattern.direction is PatternDirection.BULLISH:
        target_hit = target > 0 and current_price >= target
        stop_hit = stop > 0 and current_price <= stop
    elif pattern.direction is PatternDirection.BEARISH:
        target_hit = target > 0 and current_price <= target
        stop_hit = stop > 0 and current_price >= stop
    else:
        return pattern

    if target_hit:
        _resolve(pattern, PatternStatus.HIT_TARGET, current_price, True, now)
    elif stop_hit:
        _resolve(pattern, PatternStatus.HIT_STOP, current_price, False, now)
    elif pattern.status is PatternStatus.ACTIVE and _moved_favorably(pattern, current_price):
        pattern.status = PatternStatus.PLAYING_OUT

    return pattern


def invalidate_contradictions(
    patterns: Iterable[DetectedPattern],
    newer: DetectedPattern,
    now: Optional[datetime] = None,
) -> list[DetectedPattern]:
    """
    Invalidate live patterns that a newer detection contradicts.

    A pattern is contradicted when it shares the newer pattern's asset and
    timeframe but points the opposite way. Neutral detections contradict
    nothing.

    Returns:
        The patterns that were invalidated
    """
    if newer.direction is PatternDirection.NEUTRAL:
        return []

    now = to_utc(now) if now else utcnow()
    opposite = newer.direction.opposite
    invalidated = []
    for p in patterns:
        if p.id == newer.id or not p.is_live:
            continue
        if p.asset != newer.asset or p.timeframe != newer.timeframe or p.direction is not opposite:
            continue
        p.status = PatternStatus.INVALIDATED
        p.resolved_at = now
        p.updated_at = now
        p.was_correct = False
        invalidated.append(p)
    return invalidated


@dataclass
class LifecycleSummary:
    """Counts from one lifecycle pass."""
    live: int = 0
    resolved: int = 0
    expired: int = 0
    playing_out: int = 0
    skipped_symbols: int = 0


class PatternLifecycleService:
    """Updates every live pattern against the latest price for its asset."""

    PRICE_TIMEFRAME = Timeframe.H1

    def __init__(self, provider: MarketDataProvider, store: PatternStore):
        self.provider = provider
        self.store = store

    def _latest_prices(self, symbols: Iterable[str], cancel: Optional[CancelCheck]) -> dict[str, float]:
        prices: dict[str, float] = {}
        for symbol in symbols:
            if cancel and cancel():
                break
            try:
                candles = self.provider.get_candles(symbol, 1, self.PRICE_TIMEFRAME)
            except ExternalServiceError as e:
                logger.warning(f"Failed to get price for {symbol}: {e}")
                continue
            if candles:
                prices[symbol] = candles[-1].close
        return prices

    def update_all_live(
        self,
        cancel: Optional[CancelCheck] = None,
        now: Optional[datetime] = None,
    ) -> LifecycleSummary:
        """
        Run one lifecycle pass over all live patterns.

        Args:
            cancel: Returns True when the pass should stop early
            now: Evaluation time (defaults to current UTC time)

        Returns:
            LifecycleSummary with transition counts
        """
        live = self.store.list_live_patterns()
        summary = LifecycleSummary(live=len(live))
        if not live:
            return summary

        by_symbol: dict[str, list[DetectedPattern]] = defaultdict(list)
        for p in live:
            by_symbol[p.asset].append(p)

        prices = self._latest_prices(by_symbol.keys(), cancel)
        summary.skipped_symbols = len(by_symbol) - len(prices)

        for pattern in live:
            if cancel and cancel():
                logger.info("Lifecycle pass cancelled")
                break
            price = prices.get(pattern.asset)
            if price is None:
                continue

            before = pattern.status
            update_pattern(pattern, price, now)
            self.store.save_pattern(pattern)

            if pattern.status is PatternStatus.EXPIRED:
                summary.expired += 1
            elif pattern.status in (PatternStatus.HIT_TARGET, PatternStatus.HIT_STOP):
                summary.resolved += 1
            elif pattern.status is PatternStatus.PLAYING_OUT and before is PatternStatus.ACTIVE:
                summary.playing_out += 1

        if summary.resolved or summary.expired or summary.playing_out:
            logger.info(
                f"Pattern lifecycle: {summary.resolved} resolved, {summary.expired} expired, "
                f"{summary.playing_out} playing out (of {summary.live} live)"
            )
        return summary
