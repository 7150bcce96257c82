"""Throttling for advisory calls."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

from signalcore.config import Settings, get_logger, get_settings
from signalcore.core.models import to_utc, utcnow

logger = get_logger("scanner.throttle")


class AdvisoryThrottle:
    """
    Gate for the expensive advisory collaborator.

    At most ``max_concurrent`` calls run at once, and each holder keeps its
    slot for ``delay_ms`` after finishing so consecutive calls are spaced
    out. Calls can also be paused for a daily UTC window.
    """

    def __init__(
        self,
        max_concurrent: int = 1,
        delay_ms: int = 3000,
        pause_during_market_hours: bool = False,
        market_open_hour_utc: int = 14,
        market_close_hour_utc: int = 21,
    ):
        self.max_concurrent = max_concurrent
        self.delay_ms = delay_ms
        self.pause_during_market_hours = pause_during_market_hours
        self.market_open_hour_utc = market_open_hour_utc
        self.market_close_hour_utc = market_close_hour_utc
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self.in_flight = 0
        self.peak_in_flight = 0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "AdvisoryThrottle":
        settings = settings or get_settings()
        return cls(
            max_concurrent=settings.MAX_CONCURRENT_AI_CALLS,
            delay_ms=settings.AI_CALL_DELAY_MS,
            pause_during_market_hours=settings.PAUSE_AI_DURING_MARKET_HOURS,
            market_open_hour_utc=settings.MARKET_OPEN_HOUR_UTC,
            market_close_hour_utc=settings.MARKET_CLOSE_HOUR_UTC,
        )

    def is_paused(self, now: Optional[datetime] = None) -> bool:
        """True inside [open, close) UTC hours when the market-hours pause is enabled."""
        if not self.pause_during_market_hours:
            return False
        hour = to_utc(now).hour if now else utcnow().hour
        return self.market_open_hour_utc <= hour < self.market_close_hour_utc

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one advisory slot for the duration of the block plus the call delay."""
        async with self._semaphore:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                yield
            finally:
                self.in_flight -= 1
                if self.delay_ms > 0:
                    await asyncio.sleep(self.delay_ms / 1000)
