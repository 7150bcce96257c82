"""Watchlist scanning and the periodic scheduler."""

from .scheduler import ScanScheduler, TickSummary, select_due_items
from .throttle import AdvisoryThrottle
from .watchlist import WatchlistScanner

__all__ = [
    "WatchlistScanner",
    "ScanScheduler",
    "TickSummary",
    "AdvisoryThrottle",
    "select_due_items",
]
