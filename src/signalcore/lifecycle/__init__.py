"""Pattern lifecycle, trade simulation and performance feedback."""

from .patterns import LifecycleSummary, PatternLifecycleService, invalidate_contradictions, update_pattern
from .performance import recompute_performance, win_rate
from .simulation import TradeSimulationService, create_trade, process_trade, resolve_trade
from .stats import trading_stats

__all__ = [
    "update_pattern",
    "invalidate_contradictions",
    "PatternLifecycleService",
    "LifecycleSummary",
    "create_trade",
    "process_trade",
    "resolve_trade",
    "TradeSimulationService",
    "recompute_performance",
    "win_rate",
    "trading_stats",
]
