"""Aggregate resolved trades into per-key pattern performance."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from signalcore.core.errors import safe_div
from signalcore.core.models import (
    PatternPerformance,
    PerformanceKey,
    SimulatedTrade,
    SimulationStatus,
    utcnow,
)

NO_LOSS_PROFIT_FACTOR = 99.0


def win_rate(trades: Iterable[SimulatedTrade]) -> float:
    """Wins / (wins + losses) x 100; undecided outcomes are excluded."""
    wins = losses = 0
    for t in trades:
        if t.outcome.is_win:
            wins += 1
        elif t.outcome.is_loss:
            losses += 1
    return round(safe_div(wins, wins + losses) * 100, 2)


def profit_factor(wins: list[SimulatedTrade], losses: list[SimulatedTrade]) -> float:
    gross_win = sum(abs(t.pnl_percent or 0.0) for t in wins)
    gross_loss = sum(abs(t.pnl_percent or 0.0) for t in losses)
    if gross_loss > 0:
        return round(gross_win / gross_loss, 2)
    return NO_LOSS_PROFIT_FACTOR if gross_win > 0 else 0.0


def _mean(values: list[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def is_aligned(trade: SimulatedTrade) -> bool:
    return trade.timeframe_alignment is not None and "All" in trade.timeframe_alignment


def is_conflicting(trade: SimulatedTrade) -> bool:
    return trade.timeframe_alignment == "Conflicting"


def has_breakout_volume(trade: SimulatedTrade) -> bool:
    return trade.volume_profile == "Breakout"


def recompute_performance(
    key: PerformanceKey,
    trades: Iterable[SimulatedTrade],
    now: Optional[datetime] = None,
) -> PatternPerformance:
    """
    Rebuild the performance row for ``key`` from scratch.

    Only resolved trades whose pattern metadata matches the key are counted.

    Args:
        key: Pattern type, direction, timeframe, regime and user
        trades: Candidate trades (filtered here)
        now: Timestamp for updated_at / last_trade_date

    Returns:
        A fresh PatternPerformance
    """
    now = now or utcnow()
    matching = [
        t for t in trades
        if t.status is SimulationStatus.RESOLVED and t.performance_key == key
    ]
    wins = [t for t in matching if t.outcome.is_win]
    losses = [t for t in matching if t.outcome.is_loss]
    pnls = [t.pnl_percent or 0.0 for t in matching]

    aligned = [t for t in matching if is_aligned(t)]
    conflicting = [t for t in matching if is_conflicting(t)]
    breakout = [t for t in matching if has_breakout_volume(t)]

    return PatternPerformance(
        key=key,
        total_trades=len(matching),
        wins=len(wins),
        losses=len(losses),
        expired=len(matching) - len(wins) - len(losses),
        win_rate=win_rate(matching),
        avg_win_percent=_mean([t.pnl_percent or 0.0 for t in wins]),
        avg_loss_percent=_mean([t.pnl_percent or 0.0 for t in losses]),
        avg_r_multiple=_mean([t.r_multiple or 0.0 for t in matching]),
        best_trade_percent=round(max(pnls), 2) if pnls else 0.0,
        worst_trade_percent=round(min(pnls), 2) if pnls else 0.0,
        total_pnl_percent=round(sum(pnls), 2),
        profit_factor=profit_factor(wins, losses),
        win_rate_when_aligned=win_rate(aligned),
        trades_when_aligned=len(aligned),
        win_rate_when_conflicting=win_rate(conflicting),
        trades_when_conflicting=len(conflicting),
        win_rate_with_breakout_vol=win_rate(breakout),
        trades_with_breakout_vol=len(breakout),
        avg_days_held=_mean([float(t.days_held) for t in matching]),
        last_trade_date=now if matching else None,
        updated_at=now,
    )
