"""Persistence contract for patterns, trades, performance and scan history."""

from abc import ABC, abstractmethod
from typing import Optional

from signalcore.core.errors import Result
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


class PatternStore(ABC):
    """
    Abstract store used by the lifecycle services and the scanner.

    Saves are upserts keyed by entity id (performance rows by their key).
    Regime history and advisory records are append-only. List methods
    return copies in a stable order; mutating a returned model does not
    change the store until it is saved again.
    """

    # -------------------------------------------------------------------------
    # Detected patterns
    # -------------------------------------------------------------------------

    @abstractmethod
    def save_pattern(self, pattern: DetectedPattern) -> None:
        ...

    @abstractmethod
    def get_pattern(self, pattern_id: str) -> Optional[DetectedPattern]:
        ...

    @abstractmethod
    def list_patterns(
        self,
        asset: Optional[str] = None,
        status: Optional[PatternStatus] = None,
    ) -> list[DetectedPattern]:
        """Patterns ordered by created_at, oldest first."""
        ...

    def list_live_patterns(self, asset: Optional[str] = None) -> list[DetectedPattern]:
        """Active and PlayingOut patterns."""
        return [p for p in self.list_patterns(asset=asset) if p.is_live]

    # -------------------------------------------------------------------------
    # Simulated trades
    # -------------------------------------------------------------------------

    @abstractmethod
    def save_trade(self, trade: SimulatedTrade) -> None:
        ...

    @abstractmethod
    def get_trade(self, trade_id: str) -> SimulatedTrade:
        """
        Raises:
            TradeNotFoundError: No trade with this id
        """
        ...

    @abstractmethod
    def list_trades(
        self,
        status: Optional[SimulationStatus] = None,
        asset: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> list[SimulatedTrade]:
        """Trades ordered by created_at, oldest first."""
        ...

    def list_active_trades(self, asset: Optional[str] = None) -> list[SimulatedTrade]:
        return self.list_trades(status=SimulationStatus.ACTIVE, asset=asset)

    # -------------------------------------------------------------------------
    # Performance
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_performance(self, key: PerformanceKey) -> Optional[PatternPerformance]:
        ...

    @abstractmethod
    def save_performance(self, performance: PatternPerformance) -> None:
        ...

    @abstractmethod
    def list_performance(self, user_id: Optional[str] = None) -> list[PatternPerformance]:
        ...

    # -------------------------------------------------------------------------
    # Regime history
    # -------------------------------------------------------------------------

    @abstractmethod
    def add_regime_history(self, history: RegimeHistory) -> None:
        ...

    @abstractmethod
    def list_regime_history(self, symbol: str, limit: Optional[int] = None) -> list[RegimeHistory]:
        """Entries for ``symbol``, newest first."""
        ...

    # -------------------------------------------------------------------------
    # Watchlist
    # -------------------------------------------------------------------------

    @abstractmethod
    def save_watchlist_item(self, item: WatchlistItem) -> None:
        ...

    @abstractmethod
    def list_watchlist(self, active_only: bool = True) -> list[WatchlistItem]:
        ...

    # -------------------------------------------------------------------------
    # Advisory log
    # -------------------------------------------------------------------------

    @abstractmethod
    def add_advisory_record(self, record: AdvisoryRecord) -> Result[AdvisoryRecord]:
        """Append an advisory record; failures are reported, not raised."""
        ...

    @abstractmethod
    def list_advisory_records(self, symbol: str, limit: Optional[int] = None) -> list[AdvisoryRecord]:
        """Records for ``symbol``, newest first."""
        ...
