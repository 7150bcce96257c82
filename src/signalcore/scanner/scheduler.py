"""Periodic tick loop driving resolution, lifecycle and watchlist scans."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from signalcore.config import Settings, get_logger, get_settings
from signalcore.core.models import ScanReport, WatchlistItem, to_utc, utcnow
from signalcore.data.stores.base import PatternStore
from signalcore.lifecycle.patterns import LifecycleSummary, PatternLifecycleService
from signalcore.lifecycle.simulation import TradeSimulationService

from .watchlist import WatchlistScanner

logger = get_logger("scanner.scheduler")

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class TickSummary:
    """What one tick did."""
    started_at: datetime
    resolved_trades: int = 0
    lifecycle: Optional[LifecycleSummary] = None
    reports: list[ScanReport] = field(default_factory=list)
    ai_paused: bool = False
    cancelled: bool = False

    @property
    def alerts(self) -> list[ScanReport]:
        return [r for r in self.reports if r.is_alert]


def select_due_items(items: list[WatchlistItem], now: datetime, limit: int) -> list[WatchlistItem]:
    """Due items, never-scanned and oldest-scanned first, at most ``limit``."""
    due = [i for i in items if i.is_due(now)]
    due.sort(key=lambda i: to_utc(i.last_scanned_at) if i.last_scanned_at else _NEVER)
    return due[:limit]


class ScanScheduler:
    """
    Cooperative, non-reentrant scheduler.

    Each tick resolves active trades, advances live patterns, then scans up
    to ``MAX_SCANS_PER_TICK`` due watchlist items concurrently. A tick never
    overlaps another; if one is still running, the next call is skipped.
    """

    def __init__(
        self,
        scanner: WatchlistScanner,
        store: PatternStore,
        simulation: Optional[TradeSimulationService] = None,
        lifecycle: Optional[PatternLifecycleService] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.scanner = scanner
        self.store = store
        self.simulation = simulation or scanner.simulation
        self.lifecycle = lifecycle or PatternLifecycleService(scanner.provider, store)
        self._lock = asyncio.Lock()

    @property
    def is_running_tick(self) -> bool:
        return self._lock.locked()

    async def tick(
        self,
        stop_event: Optional[asyncio.Event] = None,
        now: Optional[datetime] = None,
    ) -> Optional[TickSummary]:
        """
        Run one tick.

        Args:
            stop_event: Set to stop the tick at the next loop boundary
            now: Tick time (defaults to current UTC time)

        Returns:
            TickSummary, or None when a previous tick is still running
        """
        if self._lock.locked():
            logger.debug("Previous tick still running, skipping")
            return None

        async with self._lock:
            stop_event = stop_event or asyncio.Event()
            cancel = stop_event.is_set
            now = to_utc(now) if now else utcnow()
            summary = TickSummary(started_at=now)

            try:
                resolved = await asyncio.to_thread(self.simulation.resolve_active_trades, None, cancel, now)
                summary.resolved_trades = len(resolved)
            except Exception as e:
                logger.error(f"Trade resolution pass failed: {e}", exc_info=True)

            if cancel():
                summary.cancelled = True
                return summary

            try:
                summary.lifecycle = await asyncio.to_thread(self.lifecycle.update_all_live, cancel, now)
            except Exception as e:
                logger.error(f"Pattern lifecycle pass failed: {e}", exc_info=True)

            if cancel():
                summary.cancelled = True
                return summary

            due = select_due_items(self.store.list_watchlist(), now, self.settings.MAX_SCANS_PER_TICK)
            if not due:
                return summary

            summary.ai_paused = self.scanner.throttle.is_paused(now)
            logger.info(
                f"Scanning {len(due)} watchlist items (max {self.settings.MAX_SCANS_PER_TICK}/tick, "
                f"AI {'PAUSED' if summary.ai_paused else 'active'})"
            )

            reports = await asyncio.gather(
                *(self._scan_one(item, summary.ai_paused, stop_event, now) for item in due)
            )
            summary.reports = [r for r in reports if r is not None]
            summary.cancelled = stop_event.is_set()
            return summary

    async def _scan_one(
        self,
        item: WatchlistItem,
        ai_paused: bool,
        stop_event: asyncio.Event,
        now: datetime,
    ) -> Optional[ScanReport]:
        if stop_event.is_set():
            return None
        try:
            return await self.scanner.scan_item(item, use_ai=item.enable_ai and not ai_paused, now=now)
        except Exception as e:
            logger.warning(f"Failed to scan {item.symbol} for user {item.user_id or '-'}: {e}", exc_info=True)
            return ScanReport(symbol=item.symbol, error=str(e), scanned_at=now)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick every ``TICK_INTERVAL_SECONDS`` until ``stop_event`` is set."""
        interval = self.settings.TICK_INTERVAL_SECONDS
        logger.info(f"Scan scheduler started (tick every {interval}s)")
        while not stop_event.is_set():
            await self.tick(stop_event)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Scan scheduler stopped")
