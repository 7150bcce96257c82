"""Overall trading stats used as advisory context."""

from typing import Iterable

from signalcore.core.models import SimulatedTrade, SimulationStatus, TradeDirection, TradingStats
from signalcore.lifecycle.performance import is_aligned, is_conflicting, win_rate


def trading_stats(trades: Iterable[SimulatedTrade]) -> TradingStats:
    """Summarize resolved trades; unresolved ones are ignored."""
    resolved = [t for t in trades if t.status is SimulationStatus.RESOLVED]
    if not resolved:
        return TradingStats()

    pnls = [t.pnl_percent or 0.0 for t in resolved]
    return TradingStats(
        total_trades=len(resolved),
        wins=sum(1 for t in resolved if t.outcome.is_win),
        losses=sum(1 for t in resolved if t.outcome.is_loss),
        win_rate=win_rate(resolved),
        avg_r_multiple=round(sum(t.r_multiple or 0.0 for t in resolved) / len(resolved), 2),
        total_pnl_percent=round(sum(pnls), 2),
        best_trade=round(max(pnls), 2),
        worst_trade=round(min(pnls), 2),
        avg_days_held=round(sum(t.days_held for t in resolved) / len(resolved), 2),
        long_win_rate=win_rate(t for t in resolved if t.direction is TradeDirection.LONG),
        short_win_rate=win_rate(t for t in resolved if t.direction is TradeDirection.SHORT),
        aligned_win_rate=win_rate(t for t in resolved if is_aligned(t)),
        conflicting_win_rate=win_rate(t for t in resolved if is_conflicting(t)),
    )
