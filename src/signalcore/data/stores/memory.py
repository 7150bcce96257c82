"""In-memory store, used in tests and for ephemeral runs."""

import threading
from typing import Optional

from signalcore.core.errors import Result, TradeNotFoundError
from signalcore.core.models import (
    AdvisoryRecord,
    DetectedPattern,
    PatternPerformance,
    PatternStatus,
    PerformanceKey,
    RegimeHistory,
    SimulatedTrade,
    SimulationStatus,
    WatchlistItem,
)

from .base import PatternStore


class InMemoryStore(PatternStore):
    """Dict-backed store; models are deep-copied in and out."""

    def __init__(self):
        self._lock = threading.Lock()
        self._patterns: dict[str, DetectedPattern] = {}
        self._trades: dict[str, SimulatedTrade] = {}
        self._performance: dict[str, PatternPerformance] = {}
        self._regimes: list[RegimeHistory] = []
        self._watchlist: dict[str, WatchlistItem] = {}
        self._advisory: list[AdvisoryRecord] = []

    def save_pattern(self, pattern: DetectedPattern) -> None:
        with self._lock:
            self._patterns[pattern.id] = pattern.model_copy(deep=True)

    def get_pattern(self, pattern_id: str) -> Optional[DetectedPattern]:
        with self._lock:
            p = self._patterns.get(pattern_id)
            return p.model_copy(deep=True) if p else None

    def list_patterns(
        self,
        asset: Optional[str] = None,
        status: Optional[PatternStatus] = None,
    ) -> list[DetectedPattern]:
        with self._lock:
            rows = [
                p.model_copy(deep=True) for p in self._patterns.values()
                if (asset is None or p.asset == asset) and (status is None or p.status is status)
            ]
        return sorted(rows, key=lambda p: p.created_at)

    def save_trade(self, trade: SimulatedTrade) -> None:
        with self._lock:
            self._trades[trade.id] = trade.model_copy(deep=True)

    def get_trade(self, trade_id: str) -> SimulatedTrade:
        with self._lock:
            t = self._trades.get(trade_id)
            if t is None:
                raise TradeNotFoundError(f"Trade {trade_id} not found")
            return t.model_copy(deep=True)

    def list_trades(
        self,
        status: Optional[SimulationStatus] = None,
        asset: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> list[SimulatedTrade]:
        with self._lock:
            rows = [
                t.model_copy(deep=True) for t in self._trades.values()
                if (status is None or t.status is status)
                and (asset is None or t.asset == asset)
                and (user_id is None or t.user_id == user_id)
            ]
        return sorted(rows, key=lambda t: t.created_at)

    def get_performance(self, key: PerformanceKey) -> Optional[PatternPerformance]:
        with self._lock:
            p = self._performance.get(key.as_id())
            return p.model_copy(deep=True) if p else None

    def save_performance(self, performance: PatternPerformance) -> None:
        with self._lock:
            self._performance[performance.key.as_id()] = performance.model_copy(deep=True)

    def list_performance(self, user_id: Optional[str] = None) -> list[PatternPerformance]:
        with self._lock:
            return [
                p.model_copy(deep=True) for p in self._performance.values()
                if user_id is None or p.key.user_id == user_id
            ]

    def add_regime_history(self, history: RegimeHistory) -> None:
        with self._lock:
            self._regimes.append(history.model_copy(deep=True))

    def list_regime_history(self, symbol: str, limit: Optional[int] = None) -> list[RegimeHistory]:
        with self._lock:
            rows = [h.model_copy(deep=True) for h in self._regimes if h.symbol == symbol]
        rows.sort(key=lambda h: h.detected_at, reverse=True)
        return rows[:limit] if limit is not None else rows

    def save_watchlist_item(self, item: WatchlistItem) -> None:
        with self._lock:
            self._watchlist[item.id] = item.model_copy(deep=True)

    def list_watchlist(self, active_only: bool = True) -> list[WatchlistItem]:
        with self._lock:
            return [
                i.model_copy(deep=True) for i in self._watchlist.values()
                if i.is_active or not active_only
            ]

    def add_advisory_record(self, record: AdvisoryRecord) -> Result[AdvisoryRecord]:
        with self._lock:
            self._advisory.append(record.model_copy(deep=True))
        return Result.success(record)

    def list_advisory_records(self, symbol: str, limit: Optional[int] = None) -> list[AdvisoryRecord]:
        with self._lock:
            rows = [r.model_copy(deep=True) for r in self._advisory if r.symbol == symbol]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return rows[:limit] if limit is not None else rows
