"""In-memory market data provider for tests and seeding."""

from collections import defaultdict
from typing import Iterable

from signalcore.core.errors import MarketDataError
from signalcore.core.models import Candle, Timeframe

from .base import MarketDataProvider


class InMemoryMarketDataProvider(MarketDataProvider):
    """Serves candles loaded with ``add_candles``; unknown symbols raise MarketDataError."""

    def __init__(self):
        self._candles: dict[tuple[str, Timeframe], list[Candle]] = defaultdict(list)
        self._failing: set[str] = set()
        self.calls: list[tuple[str, int, Timeframe]] = []

    @property
    def name(self) -> str:
        return "memory"

    def add_candles(
        self,
        symbol: str,
        candles: Iterable[Candle],
        timeframe: Timeframe = Timeframe.D1,
    ) -> None:
        key = (symbol.upper(), timeframe)
        merged = {c.time: c for c in self._candles[key]}
        merged.update({c.time: c for c in candles})
        self._candles[key] = sorted(merged.values(), key=lambda c: c.time)

    def fail_symbol(self, symbol: str) -> None:
        """Make every request for ``symbol`` raise MarketDataError."""
        self._failing.add(symbol.upper())

    def get_candles(self, symbol: str, count: int, timeframe: Timeframe = Timeframe.D1) -> list[Candle]:
        self.calls.append((symbol, count, timeframe))
        symbol = symbol.upper()
        if symbol in self._failing:
            raise MarketDataError(f"Market data unavailable for {symbol}")

        candles = self._candles.get((symbol, timeframe))
        if not candles:
            # Fall back to daily bars so one series can answer any timeframe
            candles = self._candles.get((symbol, Timeframe.D1))
        if not candles:
            raise MarketDataError(f"No candles loaded for {symbol}")
        return list(candles[-count:]) if count > 0 else []
